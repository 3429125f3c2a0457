"""
Queue messaging for the crawl pipeline.

Architecture:
- Store: transport capability (SQS implementation)
- Broker: lease protocol, dead-letter relocation, enqueue retry
"""

from scanstack_common.messaging.broker import MessageLeaseBroker, dead_queue_name
from scanstack_common.messaging.models import LeasedMessage, Message, QueueRuntimeConfig
from scanstack_common.messaging.store import QueueStore, SqsQueueStore

__all__ = [
    "LeasedMessage",
    "Message",
    "MessageLeaseBroker",
    "QueueRuntimeConfig",
    "QueueStore",
    "SqsQueueStore",
    "dead_queue_name",
]
