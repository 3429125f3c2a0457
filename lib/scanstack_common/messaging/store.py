"""
Queue store capability and its SQS implementation.

The store is the transport underneath the lease broker: create-if-absent,
enqueue, leased dequeue with a visibility timeout, delete by lease token
and an approximate depth. Dead-letter semantics live in the broker.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from scanstack_common.constants import SQS_MAX_RECEIVE_BATCH
from scanstack_common.messaging.models import LeasedMessage

logger = logging.getLogger(__name__)

_QUEUE_MISSING_CODES = {"AWS.SimpleQueueService.NonExistentQueue", "QueueDoesNotExist"}
_QUEUE_EXISTS_CODES = {"QueueAlreadyExists", "AWS.SimpleQueueService.QueueAlreadyExists"}


class QueueStore(ABC):
    """Durable at-least-once message store keyed by queue name."""

    @abstractmethod
    def ensure(self, name: str) -> None:
        """Create the queue if absent. Must not fail when it already exists."""

    @abstractmethod
    def enqueue(self, name: str, text: str) -> dict[str, Any]:
        """Add a message. Returns the store response, which carries "id"."""

    @abstractmethod
    def lease_dequeue(
        self, name: str, count: int, visibility_timeout_seconds: int
    ) -> list[LeasedMessage]:
        """Lease up to count messages, hiding them for the visibility window."""

    @abstractmethod
    def delete(self, name: str, lease_token: str) -> None:
        """Delete a leased message. Fails if the lease token is stale."""

    @abstractmethod
    def approximate_count(self, name: str) -> int:
        """Advisory number of messages in the queue."""


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class SqsQueueStore(QueueStore):
    """
    QueueStore backed by Amazon SQS standard queues.

    Message id maps to MessageId, lease token to ReceiptHandle and dequeue
    count to the ApproximateReceiveCount attribute. FIFO queues are not
    supported because "<name>.fifo-dead" is not a valid queue name.

    Usage:
        store = SqsQueueStore()
        store.ensure("crawl-requests")
        store.enqueue("crawl-requests", '{"url": "https://example.com"}')
    """

    def __init__(self, client=None, region: str | None = None):
        """
        Initialize the store.

        Args:
            client: Optional boto3 SQS client (for testing)
            region: AWS region when creating a client
        """
        if client is None:
            config = Config(retries={"max_attempts": 5, "mode": "standard"})
            client = boto3.client("sqs", region_name=region, config=config)
        self.client = client
        self._queue_urls: dict[str, str] = {}

    def ensure(self, name: str) -> None:
        self._get_queue_url(name, create=True)

    def enqueue(self, name: str, text: str) -> dict[str, Any]:
        response = self.client.send_message(
            QueueUrl=self._get_queue_url(name),
            MessageBody=text,
        )
        return {"id": response.get("MessageId")}

    def lease_dequeue(
        self, name: str, count: int, visibility_timeout_seconds: int
    ) -> list[LeasedMessage]:
        queue_url = self._get_queue_url(name)
        leased: list[LeasedMessage] = []

        # SQS caps a single receive at 10 messages
        while len(leased) < count:
            batch_size = min(SQS_MAX_RECEIVE_BATCH, count - len(leased))
            response = self.client.receive_message(
                QueueUrl=queue_url,
                MaxNumberOfMessages=batch_size,
                VisibilityTimeout=visibility_timeout_seconds,
                WaitTimeSeconds=0,
                AttributeNames=["ApproximateReceiveCount"],
            )
            messages = response.get("Messages", [])
            if not messages:
                break

            for sqs_message in messages:
                attributes = sqs_message.get("Attributes", {})
                leased.append(
                    LeasedMessage(
                        id=sqs_message["MessageId"],
                        lease_token=sqs_message["ReceiptHandle"],
                        text=sqs_message.get("Body", ""),
                        dequeue_count=int(attributes.get("ApproximateReceiveCount", "1")),
                    )
                )

        return leased

    def delete(self, name: str, lease_token: str) -> None:
        self.client.delete_message(
            QueueUrl=self._get_queue_url(name),
            ReceiptHandle=lease_token,
        )

    def approximate_count(self, name: str) -> int:
        response = self.client.get_queue_attributes(
            QueueUrl=self._get_queue_url(name),
            AttributeNames=["ApproximateNumberOfMessages"],
        )
        return int(response.get("Attributes", {}).get("ApproximateNumberOfMessages", "0"))

    def _get_queue_url(self, name: str, create: bool = False) -> str:
        """Resolve a queue name to its URL, optionally creating the queue."""
        queue_url = self._queue_urls.get(name)
        if queue_url is not None:
            return queue_url

        try:
            queue_url = self.client.get_queue_url(QueueName=name)["QueueUrl"]
        except ClientError as e:
            if not create or _error_code(e) not in _QUEUE_MISSING_CODES:
                raise
            queue_url = self._create_queue(name)

        self._queue_urls[name] = queue_url
        return queue_url

    def _create_queue(self, name: str) -> str:
        try:
            queue_url = self.client.create_queue(QueueName=name)["QueueUrl"]
            logger.info(f"Created queue: {name}")
            return queue_url
        except ClientError as e:
            # Another worker created it between our lookup and create
            if _error_code(e) in _QUEUE_EXISTS_CODES:
                return self.client.get_queue_url(QueueName=name)["QueueUrl"]
            logger.error(f"Failed to create queue {name}: {_error_code(e)} - {e}")
            raise
