"""Unit tests for crawl and queue data models."""

import json

import pytest

from scanstack_common.crawler.models import (
    AttemptKind,
    AttemptOutcome,
    CrawlRequest,
    PageFailure,
    request_id_for_url,
)
from scanstack_common.exceptions import InvalidCrawlRequestError
from scanstack_common.messaging import LeasedMessage, Message, QueueRuntimeConfig


class TestCrawlRequest:
    """Tests for CrawlRequest payload handling."""

    def test_id_derived_from_url(self):
        request = CrawlRequest.from_payload({"url": "https://example.com/a"})

        assert request.id == request_id_for_url("https://example.com/a")
        assert request.id != request_id_for_url("https://example.com/b")

    def test_id_shared_by_equivalent_urls(self):
        seed = CrawlRequest.from_payload({"url": "https://Example.com/docs/"})

        assert seed.url == "https://Example.com/docs/"
        assert seed.id == request_id_for_url("https://example.com/docs")
        assert seed.id == request_id_for_url("https://example.com/docs#intro")

    def test_explicit_id_kept(self):
        request = CrawlRequest.from_payload({"id": "req-1", "url": "https://example.com"})

        assert request.id == "req-1"

    def test_payload_carries_context_and_errors(self):
        request = CrawlRequest(
            id="req-1",
            url="https://example.com",
            user_data={"label": "home"},
            prior_error_messages=["Timeout"],
        )

        restored = CrawlRequest.from_message_text(json.dumps(request.to_payload()))

        assert restored == request

    def test_minimal_payload(self):
        assert CrawlRequest(id="req-1", url="https://example.com").to_payload() == {
            "id": "req-1",
            "url": "https://example.com",
        }

    @pytest.mark.parametrize(
        "text",
        [
            "not json",
            "[1, 2]",
            json.dumps({"id": "req-1"}),
            json.dumps({"url": "ftp://example.com"}),
            json.dumps({"url": 42}),
        ],
    )
    def test_invalid_payloads(self, text):
        with pytest.raises(InvalidCrawlRequestError):
            CrawlRequest.from_message_text(text)


class TestAttemptOutcome:
    @pytest.mark.parametrize(
        "kind,acknowledge",
        [
            (AttemptKind.SUCCESS, True),
            (AttemptKind.TERMINAL_FAILURE, True),
            (AttemptKind.RETRYABLE_FAILURE, False),
        ],
    )
    def test_should_acknowledge(self, kind, acknowledge):
        outcome = AttemptOutcome(
            kind=kind,
            request=CrawlRequest(id="r", url="https://example.com"),
            scan_outcome=PageFailure("trace"),
        )

        assert outcome.should_acknowledge is acknowledge


class TestQueueRuntimeConfig:
    def test_defaults(self):
        config = QueueRuntimeConfig()

        assert config.max_dequeue_count == 3
        assert config.message_visibility_timeout_seconds == 300

    def test_rejects_zero_visibility(self):
        with pytest.raises(ValueError, match="message_visibility_timeout_seconds"):
            QueueRuntimeConfig(message_visibility_timeout_seconds=0)

    def test_from_dict_partial(self):
        config = QueueRuntimeConfig.from_dict({"max_dequeue_count": "5"})

        assert config.max_dequeue_count == 5
        assert config.message_visibility_timeout_seconds == 300


class TestMessage:
    def test_from_leased(self):
        leased = LeasedMessage(id="m1", lease_token="t1", text="body", dequeue_count=2)

        message = Message.from_leased(leased)

        assert message == Message(text="body", id="m1", lease_token="t1", dequeue_count=2)
