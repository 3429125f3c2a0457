"""Unit tests for the SQS queue store."""

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from scanstack_common.messaging import MessageLeaseBroker, QueueRuntimeConfig, SqsQueueStore


def _store():
    return SqsQueueStore(client=boto3.client("sqs", region_name="us-east-1"))


class TestSqsQueueStore:
    """Tests for SqsQueueStore against moto."""

    @mock_aws
    def test_ensure_creates_queue(self):
        store = _store()

        store.ensure("crawl-requests")

        url = store.client.get_queue_url(QueueName="crawl-requests")["QueueUrl"]
        assert url.endswith("/crawl-requests")

    @mock_aws
    def test_ensure_is_idempotent(self):
        store = _store()
        store.ensure("crawl-requests")

        # A fresh store (empty URL cache) must not fail on an existing queue
        other = _store()
        other.ensure("crawl-requests")

        assert len(other.client.list_queues()["QueueUrls"]) == 1

    @mock_aws
    def test_unknown_queue_raises_without_create(self):
        store = _store()

        with pytest.raises(ClientError):
            store.enqueue("missing", "text")

    @mock_aws
    def test_enqueue_returns_message_id(self):
        store = _store()
        store.ensure("q")

        response = store.enqueue("q", '{"url": "https://example.com"}')

        assert response["id"]

    @mock_aws
    def test_lease_dequeue_maps_sqs_fields(self):
        store = _store()
        store.ensure("q")
        message_id = store.enqueue("q", "hello")["id"]

        leased = store.lease_dequeue("q", 5, 30)

        assert len(leased) == 1
        assert leased[0].id == message_id
        assert leased[0].text == "hello"
        assert leased[0].lease_token
        assert leased[0].dequeue_count == 1

    @mock_aws
    def test_dequeue_count_grows_on_redelivery(self):
        store = _store()
        store.ensure("q")
        store.enqueue("q", "again")

        # Zero visibility makes the message immediately visible again
        store.lease_dequeue("q", 1, 0)
        leased = store.lease_dequeue("q", 1, 0)

        assert leased[0].dequeue_count == 2

    @mock_aws
    def test_lease_dequeue_beyond_receive_limit(self):
        store = _store()
        store.ensure("q")
        for i in range(15):
            store.enqueue("q", f"m{i}")

        leased = store.lease_dequeue("q", 15, 30)

        assert len(leased) == 15
        assert len({m.id for m in leased}) == 15

    @mock_aws
    def test_lease_dequeue_empty_queue(self):
        store = _store()
        store.ensure("q")

        assert store.lease_dequeue("q", 5, 30) == []

    @mock_aws
    def test_delete_removes_message(self):
        store = _store()
        store.ensure("q")
        store.enqueue("q", "bye")
        leased = store.lease_dequeue("q", 1, 30)

        store.delete("q", leased[0].lease_token)

        assert store.approximate_count("q") == 0

    @mock_aws
    def test_approximate_count(self):
        store = _store()
        store.ensure("q")
        store.enqueue("q", "a")
        store.enqueue("q", "b")

        assert store.approximate_count("q") == 2


class TestBrokerOverSqs:
    """Dead-letter relocation end to end on moto."""

    @mock_aws
    def test_poison_message_relocated_verbatim(self):
        store = _store()
        broker = MessageLeaseBroker(
            store,
            lambda: QueueRuntimeConfig(max_dequeue_count=1, message_visibility_timeout_seconds=1),
        )
        store.ensure("crawl")
        store.enqueue("crawl", '{"url": "https://example.com/loop"}')

        first = broker.fetch_batch("crawl", 10)
        # Expire the lease by hand instead of waiting for the timeout
        store.client.change_message_visibility(
            QueueUrl=store.client.get_queue_url(QueueName="crawl")["QueueUrl"],
            ReceiptHandle=first[0].lease_token,
            VisibilityTimeout=0,
        )
        second = broker.fetch_batch("crawl", 10)

        assert len(first) == 1
        assert second == []
        dead = store.lease_dequeue("crawl-dead", 10, 30)
        assert [m.text for m in dead] == ['{"url": "https://example.com/loop"}']
        assert store.approximate_count("crawl") == 0
