"""
Data models for the queue lease protocol.

A message moves through the broker as:
store lease (LeasedMessage) -> threshold check -> application Message
or -> dead queue relocation.
"""

from dataclasses import dataclass
from typing import Any

from scanstack_common.constants import (
    DEFAULT_MAX_DEQUEUE_COUNT,
    DEFAULT_MESSAGE_VISIBILITY_TIMEOUT_SECONDS,
)


@dataclass(frozen=True)
class QueueRuntimeConfig:
    """
    Queue settings read fresh on every broker operation.

    Attributes:
        max_dequeue_count: Deliveries allowed before a message is dead-lettered
        message_visibility_timeout_seconds: Lease duration for dequeued messages
    """

    max_dequeue_count: int = DEFAULT_MAX_DEQUEUE_COUNT
    message_visibility_timeout_seconds: int = DEFAULT_MESSAGE_VISIBILITY_TIMEOUT_SECONDS

    def __post_init__(self):
        if self.max_dequeue_count < 1:
            raise ValueError(f"max_dequeue_count must be >= 1, got {self.max_dequeue_count}")
        if self.message_visibility_timeout_seconds <= 0:
            raise ValueError(
                "message_visibility_timeout_seconds must be > 0, "
                f"got {self.message_visibility_timeout_seconds}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueueRuntimeConfig":
        """Create QueueRuntimeConfig from a configuration table entry."""
        return cls(
            max_dequeue_count=int(data.get("max_dequeue_count", DEFAULT_MAX_DEQUEUE_COUNT)),
            message_visibility_timeout_seconds=int(
                data.get(
                    "message_visibility_timeout_seconds",
                    DEFAULT_MESSAGE_VISIBILITY_TIMEOUT_SECONDS,
                )
            ),
        )


@dataclass(frozen=True)
class LeasedMessage:
    """A message as returned by the queue store's leased dequeue."""

    id: str
    lease_token: str
    text: str
    dequeue_count: int


@dataclass(frozen=True)
class Message:
    """
    Application-level message handed to crawl workers.

    Attributes:
        text: Opaque payload (JSON text for crawl requests)
        id: Store-assigned message id
        lease_token: Token required to delete the message
        dequeue_count: Number of deliveries so far, including this one
    """

    text: str
    id: str
    lease_token: str
    dequeue_count: int = 1

    @classmethod
    def from_leased(cls, leased: LeasedMessage) -> "Message":
        return cls(
            text=leased.text,
            id=leased.id,
            lease_token=leased.lease_token,
            dequeue_count=leased.dequeue_count,
        )
