"""
Message lease broker.

Wraps a QueueStore with the lease/dead-letter protocol used by crawl workers:

- Leased fetches honour the runtime visibility timeout.
- Messages delivered more than max_dequeue_count times are relocated to
  "<queue>-dead" at fetch time and never reach the caller.
- Publishing retries blindly with a fixed interval and reports failure as
  False instead of raising.
"""

import json
import logging
from collections.abc import Callable
from typing import Any

from scanstack_common.constants import (
    DEAD_QUEUE_SUFFIX,
    DEFAULT_MAX_ENQUEUE_RETRY_COUNT,
    DEFAULT_RETRY_INTERVAL_MS,
    MAX_MESSAGES_PER_BATCH,
)
from scanstack_common.exceptions import EnqueueError
from scanstack_common.messaging.models import LeasedMessage, Message, QueueRuntimeConfig
from scanstack_common.messaging.store import QueueStore
from scanstack_common.retry import execute_with_retries

logger = logging.getLogger(__name__)


def dead_queue_name(queue_name: str) -> str:
    """Name of the dead-letter queue paired with queue_name."""
    return f"{queue_name}{DEAD_QUEUE_SUFFIX}"


class MessageLeaseBroker:
    """
    Lease broker adding dead-letter semantics on top of a QueueStore.

    Usage:
        broker = MessageLeaseBroker(SqsQueueStore(), config_manager.get_queue_config)
        for message in broker.fetch_total("crawl-requests", 50):
            ...
            broker.acknowledge("crawl-requests", message)

    Design Decisions:
        - The queue config provider is called on every operation, so threshold
          and visibility changes apply without a restart
        - The dequeue threshold is checked with ">" so a message gets exactly
          max_dequeue_count deliveries before quarantine on the next fetch
        - Acknowledge is not retried; a stale lease token is an error for the caller
    """

    def __init__(
        self,
        store: QueueStore,
        queue_config_provider: Callable[[], QueueRuntimeConfig],
        max_enqueue_retry_count: int = DEFAULT_MAX_ENQUEUE_RETRY_COUNT,
        retry_interval_ms: int = DEFAULT_RETRY_INTERVAL_MS,
    ):
        self.store = store
        self.queue_config_provider = queue_config_provider
        self.max_enqueue_retry_count = max_enqueue_retry_count
        self.retry_interval_ms = retry_interval_ms

    def ensure_queue_exists(self, queue_name: str) -> None:
        self.store.ensure(queue_name)

    def fetch_batch(self, queue_name: str, count: int = MAX_MESSAGES_PER_BATCH) -> list[Message]:
        """
        Lease up to count messages, dead-lettering any over the delivery threshold.

        Args:
            queue_name: Origin queue name
            count: Number of messages to lease (1-32)

        Returns:
            Non-poison messages in store order (possibly empty)

        Raises:
            ValueError: If count is outside 1-32
            ClientError: If the store rejects the dequeue or relocation
        """
        if not 1 <= count <= MAX_MESSAGES_PER_BATCH:
            raise ValueError(f"count must be between 1 and {MAX_MESSAGES_PER_BATCH}, got {count}")

        queue_config = self.queue_config_provider()
        dead_queue = dead_queue_name(queue_name)

        self.store.ensure(queue_name)
        self.store.ensure(dead_queue)

        leased = self.store.lease_dequeue(
            queue_name, count, queue_config.message_visibility_timeout_seconds
        )

        messages: list[Message] = []
        for leased_message in leased:
            if leased_message.dequeue_count > queue_config.max_dequeue_count:
                self._move_to_dead_queue(queue_name, dead_queue, leased_message)
                logger.warning(
                    f"Queue message {leased_message.id} exceeded dequeue threshold of "
                    f"{queue_config.max_dequeue_count} and moved to the {dead_queue} queue"
                )
            else:
                messages.append(Message.from_leased(leased_message))

        return messages

    def fetch_total(self, queue_name: str, total: int) -> list[Message]:
        """
        Collect up to total messages across several batches.

        Stops early when a batch comes back empty (queue currently drained).
        """
        messages: list[Message] = []

        while len(messages) < total:
            batch_size = min(MAX_MESSAGES_PER_BATCH, total - len(messages))
            batch = self.fetch_batch(queue_name, batch_size)
            if not batch:
                break
            messages.extend(batch)

        return messages

    def acknowledge(self, queue_name: str, message: Message) -> None:
        """Delete a processed message using its lease token."""
        self.store.delete(queue_name, message.lease_token)
        logger.debug(f"Acknowledged message {message.id} on {queue_name}")

    def publish(self, queue_name: str, payload: Any) -> bool:
        """
        Serialize and enqueue payload with bounded retries.

        Every failure (serialization included) consumes an attempt.

        Returns:
            True if the message was enqueued, False once retries are exhausted
        """

        def _enqueue():
            self.store.ensure(queue_name)
            response = self.store.enqueue(queue_name, json.dumps(payload))
            if not response or not response.get("id"):
                raise EnqueueError(queue_name, response)
            return response

        try:
            execute_with_retries(
                _enqueue,
                max_attempts=self.max_enqueue_retry_count,
                retry_interval_ms=self.retry_interval_ms,
            )
            return True
        except Exception as e:
            logger.error(
                f"Failed to create message in queue {queue_name}: {payload!r:.200}. Error: {e}"
            )
            return False

    def approximate_depth(self, queue_name: str) -> int:
        """Advisory message count; no consistency guarantee."""
        return self.store.approximate_count(queue_name)

    def _move_to_dead_queue(
        self, queue_name: str, dead_queue: str, leased_message: LeasedMessage
    ) -> None:
        """Copy the message text verbatim to the dead queue, then delete the original."""
        response = self.store.enqueue(dead_queue, leased_message.text)
        if not response or not response.get("id"):
            raise EnqueueError(dead_queue, response)
        self.store.delete(queue_name, leased_message.lease_token)
