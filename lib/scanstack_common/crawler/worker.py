"""
Crawl worker: scheduler adapter between the lease broker and the page processor.

Leases crawl messages one round (max_concurrency messages) at a time, runs
each round through the page processor on a bounded thread pool and
translates attempt outcomes into queue actions:

- SUCCESS / TERMINAL_FAILURE: acknowledge (delete the lease)
- RETRYABLE_FAILURE: leave the lease to expire so the queue redelivers it,
  until the broker dead-letters the message
"""

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import AbstractContextManager
from dataclasses import dataclass

from scanstack_common.crawler.browser import browser_session
from scanstack_common.crawler.models import AttemptKind, CrawlRequest
from scanstack_common.crawler.page_processor import PageProcessorBase
from scanstack_common.exceptions import InvalidCrawlRequestError, RequestRetriesExhaustedError
from scanstack_common.logging_utils import log_summary
from scanstack_common.messaging.broker import MessageLeaseBroker
from scanstack_common.messaging.models import Message

logger = logging.getLogger(__name__)


@dataclass
class WorkerSummary:
    """Counts for one worker run."""

    fetched: int = 0
    succeeded: int = 0
    retrying: int = 0
    failed: int = 0
    invalid: int = 0
    remaining: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "fetched": self.fetched,
            "succeeded": self.succeeded,
            "retrying": self.retrying,
            "failed": self.failed,
            "invalid": self.invalid,
            "remaining": self.remaining,
        }


class CrawlWorker:
    """
    Runs leased crawl messages through a page processor.

    Args:
        broker: Lease broker for the crawl queue
        processor: Page processor (shared by all threads)
        queue_name: Crawl queue name
        max_concurrency: Concurrent page attempts
        max_request_retries: Deliveries after which a request is failed
            without running the processor (None disables the check)
        session_factory: Returns a context manager yielding a fresh page
    """

    def __init__(
        self,
        broker: MessageLeaseBroker,
        processor: PageProcessorBase,
        queue_name: str,
        max_concurrency: int = 4,
        max_request_retries: int | None = None,
        session_factory: Callable[[], AbstractContextManager] = browser_session,
    ):
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.broker = broker
        self.processor = processor
        self.queue_name = queue_name
        self.max_concurrency = max_concurrency
        self.max_request_retries = max_request_retries
        self.session_factory = session_factory

    def run(self, max_messages: int) -> WorkerSummary:
        """
        Process up to max_messages, leasing at most max_concurrency at a time.

        Each round is leased just before it runs, so a message's visibility
        timeout only has to cover its own attempt.
        """
        summary = WorkerSummary()

        with ThreadPoolExecutor(max_workers=self.max_concurrency) as executor:
            while summary.fetched < max_messages:
                batch_size = min(self.max_concurrency, max_messages - summary.fetched)
                messages = self.broker.fetch_total(self.queue_name, batch_size)
                if not messages:
                    break
                summary.fetched += len(messages)

                futures = {executor.submit(self.handle_message, m): m for m in messages}
                for future in as_completed(futures):
                    try:
                        result = future.result()
                    except Exception as e:
                        # Acknowledge failed (e.g. lease expired); the queue owns the message again
                        logger.error(f"Failed to settle message {futures[future].id}: {e}")
                        result = AttemptKind.RETRYABLE_FAILURE
                    self._count(summary, result)

        summary.remaining = self.broker.approximate_depth(self.queue_name)
        logger.info(log_summary("crawl_worker_run", item_count=summary.fetched, **summary.to_dict()))
        return summary

    @staticmethod
    def _count(summary: WorkerSummary, result: AttemptKind | str) -> None:
        if result == "invalid":
            summary.invalid += 1
        elif result == AttemptKind.SUCCESS:
            summary.succeeded += 1
        elif result == AttemptKind.TERMINAL_FAILURE:
            summary.failed += 1
        else:
            summary.retrying += 1

    def handle_message(self, message: Message) -> AttemptKind | str:
        """
        Process one leased message and acknowledge it when appropriate.

        Returns:
            The attempt kind, or "invalid" for unparseable payloads
        """
        try:
            request = CrawlRequest.from_message_text(message.text)
        except InvalidCrawlRequestError as e:
            # Cannot succeed on redelivery either
            logger.error(f"Dropping invalid crawl message {message.id}: {e}")
            self.broker.acknowledge(self.queue_name, message)
            return "invalid"

        try:
            if (
                self.max_request_retries is not None
                and message.dequeue_count > self.max_request_retries
            ):
                request.prior_error_messages = self.processor.load_request_errors(request)
                outcome = self.processor.handle_failed_request(
                    request,
                    RequestRetriesExhaustedError(
                        request.id, request.url, message.dequeue_count - 1
                    ),
                )
            else:
                with self.session_factory() as page:
                    outcome = self.processor.process(page, request)
        except Exception as e:
            logger.error(
                f"Crawl attempt for {request.url} ({request.id}) raised, "
                f"leaving message {message.id} for redelivery: {e}",
                exc_info=True,
            )
            return AttemptKind.RETRYABLE_FAILURE

        if outcome.should_acknowledge:
            self.broker.acknowledge(self.queue_name, message)
        else:
            logger.info(
                f"Attempt {message.dequeue_count} for {request.url} failed, "
                f"message {message.id} will be redelivered"
            )
        return outcome.kind
