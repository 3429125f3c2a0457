"""
Page crawl state machine.

Drives one crawl request through a single attempt:

    configure page -> navigate -> validate response -> wait for rendering
    -> process_page (extraction + scan) -> record outcome

Every attempt records exactly one summary outcome (pass, fail, browser_error
or page_error) and returns an AttemptOutcome instead of raising, so the
scheduler decides between acknowledging and redelivering the message.
Failures writing to the sinks are not crawl failures: they propagate.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from scanstack_common.constants import MAX_ERROR_TEXT_LENGTH
from scanstack_common.crawler.browser import PageConfigurator, PlaywrightBrowserDriver
from scanstack_common.crawler.discovery import discover_links, normalize_url
from scanstack_common.crawler.models import (
    AttemptKind,
    AttemptOutcome,
    BrowserError,
    BrowserFailure,
    CrawlerConfig,
    CrawlRequest,
    PageFailure,
    ScanSuccess,
    SummaryRecordType,
    request_id_for_url,
)
from scanstack_common.crawler.response_validator import ResponseValidator
from scanstack_common.crawler.scanner import PageScanner
from scanstack_common.exceptions import PageResponseError, format_stack
from scanstack_common.logging_utils import log_summary
from scanstack_common.messaging.broker import MessageLeaseBroker
from scanstack_common.storage import BlobStore, ResultStream, SummaryStore

logger = logging.getLogger(__name__)


class PageProcessorBase(ABC):
    """
    Base crawl state machine; subclasses implement process_page().

    Instances hold no per-request state, so one processor can serve many
    worker threads as long as each thread brings its own page.
    """

    def __init__(
        self,
        config: CrawlerConfig,
        scanner: PageScanner,
        summary_store: SummaryStore,
        blob_store: BlobStore,
        result_stream: ResultStream,
        response_validator: ResponseValidator | None = None,
        page_configurator: PageConfigurator | None = None,
        browser: PlaywrightBrowserDriver | None = None,
    ):
        self.config = config
        self.base_url = config.base_url
        self.snapshot = config.snapshot
        self.discovery_patterns = config.discovery_patterns
        self.goto_timeout_secs = config.goto_timeout_secs
        self.page_rendering_timeout_msecs = config.page_rendering_timeout_msecs

        self.scanner = scanner
        self.summary_store = summary_store
        self.blob_store = blob_store
        self.result_stream = result_stream
        self.response_validator = response_validator or ResponseValidator()
        self.page_configurator = page_configurator or PageConfigurator()
        self.browser = browser or PlaywrightBrowserDriver()

    @abstractmethod
    def process_page(self, page, request: CrawlRequest) -> ScanSuccess:
        """
        Extract data from a loaded page and scan it.

        Called after navigation succeeded and rendering settled. Any exception
        raised here is recorded as a page failure.
        """

    def process(self, page, request: CrawlRequest) -> AttemptOutcome:
        """
        Run one attempt for request on page.

        Returns:
            AttemptOutcome: SUCCESS, or RETRYABLE_FAILURE for browser and page failures

        Raises:
            Exception: Only when a sink write fails while recording the outcome
        """
        start = time.monotonic()
        try:
            outcome = self._run_attempt(page, request)
        finally:
            self.save_scan_metadata(request, page)

        logger.info(
            log_summary(
                "crawl_attempt",
                success=outcome.kind == AttemptKind.SUCCESS,
                duration_ms=(time.monotonic() - start) * 1000,
                request_id=request.id,
                url=request.url,
                outcome=type(outcome.scan_outcome).__name__,
            )
        )
        return outcome

    def handle_failed_request(self, request: CrawlRequest, error: BaseException) -> AttemptOutcome:
        """
        Record a request the scheduler gave up on before any attempt ran.

        Writes the failure using only what the request carries (url, id and
        accumulated error messages, see load_request_errors) and returns a
        TERMINAL_FAILURE. The stack of the last real page failure is kept on
        the page_error record as last_attempt_error.
        """
        stack = format_stack(error)
        previous = self.summary_store.get(SummaryRecordType.PAGE_ERROR.value, request.id)

        self.result_stream.push(
            {
                "id": request.id,
                "url": request.url,
                "succeeded": False,
                "context": request.user_data,
                "error": str(error),
                "request_errors": request.prior_error_messages,
                "issue_count": 0,
            }
        )
        self.log_page_error(request, stack)
        self.save_page_error(
            request,
            stack,
            request_errors=request.prior_error_messages,
            last_attempt_error=previous.get("error") if previous else None,
        )

        logger.error(
            f"Crawl request {request.id} for {request.url} permanently failed: {error}. "
            f"Previous errors: {request.prior_error_messages}"
        )
        return AttemptOutcome(
            kind=AttemptKind.TERMINAL_FAILURE,
            request=request,
            scan_outcome=PageFailure(stack_trace=stack),
            error=error,
        )

    def load_request_errors(self, request: CrawlRequest) -> list[str]:
        """Error messages from the payload followed by those recorded by earlier attempts."""
        record = self.summary_store.get(SummaryRecordType.REQUEST_ERRORS.value, request.id)
        stored = list(record.get("messages", [])) if record else []
        return [*request.prior_error_messages, *stored]

    def _run_attempt(self, page, request: CrawlRequest) -> AttemptOutcome:
        try:
            self.page_configurator.configure_page(page)
        except Exception as e:
            return self._record_page_failure(request, e)

        try:
            response = self.browser.navigate(
                page,
                request.url,
                wait_until="networkidle",
                timeout_ms=self.goto_timeout_secs * 1000,
            )
        except Exception as e:
            navigation_error = self.response_validator.classify_navigation_error(e)
            return self._record_browser_failure(request, navigation_error, e)

        response_error = self.response_validator.classify_response(response)
        if response_error is not None:
            return self._record_browser_failure(
                request, response_error, PageResponseError(response_error)
            )

        try:
            self.browser.await_render_complete(page, self.page_rendering_timeout_msecs)
            scan_success = self.process_page(page, request)
        except Exception as e:
            return self._record_page_failure(request, e)

        self.save_scan_result(request, scan_success.issue_count, scan_success.report_location)
        return AttemptOutcome(kind=AttemptKind.SUCCESS, request=request, scan_outcome=scan_success)

    def _record_browser_failure(
        self, request: CrawlRequest, browser_error: BrowserError, error: BaseException
    ) -> AttemptOutcome:
        logger.warning(
            f"Browser failure for {request.url} ({request.id}): "
            f"{browser_error.error_type.value} - {browser_error.message}"
        )
        log_location = self.log_browser_failure(request, browser_error)
        self.save_browser_error(request, browser_error, log_location)
        self.save_request_error(request, f"{browser_error.error_type.value}: {browser_error.message}")
        self.push_scan_data({"id": request.id, "url": request.url, "succeeded": False})

        return AttemptOutcome(
            kind=AttemptKind.RETRYABLE_FAILURE,
            request=request,
            scan_outcome=BrowserFailure(
                error_type=browser_error.error_type,
                message=browser_error.message,
                log_location=log_location,
            ),
            error=error,
        )

    def _record_page_failure(self, request: CrawlRequest, error: BaseException) -> AttemptOutcome:
        logger.error(f"Page processing failed for {request.url} ({request.id}): {error}", exc_info=error)
        stack = format_stack(error)

        self.push_scan_data({"id": request.id, "url": request.url, "succeeded": False})
        self.save_page_error(request, stack)
        self.save_request_error(request, f"{type(error).__name__}: {error}")
        self.log_page_error(request, stack)

        return AttemptOutcome(
            kind=AttemptKind.RETRYABLE_FAILURE,
            request=request,
            scan_outcome=PageFailure(stack_trace=stack),
            error=error,
        )

    # ------------------------------------------------------------------
    # Sink writes
    # ------------------------------------------------------------------

    def push_scan_data(self, scan_data: dict[str, Any]) -> None:
        self.result_stream.push(scan_data)

    def save_browser_error(
        self, request: CrawlRequest, browser_error: BrowserError, log_location: str
    ) -> None:
        record = {
            "url": request.url,
            "error_description": browser_error.message[:MAX_ERROR_TEXT_LENGTH],
            "error_type": browser_error.error_type.value,
            "error_log_location": log_location,
        }
        if browser_error.status_code is not None:
            record["status_code"] = browser_error.status_code
        self.summary_store.put(SummaryRecordType.BROWSER_ERROR.value, request.id, record)

    def save_page_error(
        self,
        request: CrawlRequest,
        stack: str,
        request_errors: list[str] | None = None,
        last_attempt_error: str | None = None,
    ) -> None:
        record: dict[str, Any] = {"url": request.url, "error": stack[:MAX_ERROR_TEXT_LENGTH]}
        if request_errors:
            record["request_errors"] = request_errors
        if last_attempt_error:
            record["last_attempt_error"] = last_attempt_error
        self.summary_store.put(SummaryRecordType.PAGE_ERROR.value, request.id, record)

    def save_request_error(self, request: CrawlRequest, message: str) -> None:
        """Add one failed attempt's message to the request's error history."""
        self.summary_store.append(
            SummaryRecordType.REQUEST_ERRORS.value,
            request.id,
            "messages",
            [message[:MAX_ERROR_TEXT_LENGTH]],
        )

    def save_scan_result(
        self, request: CrawlRequest, issue_count: int, report_location: str, selector: str | None = None
    ) -> None:
        """Write exactly one pass (no issues) or fail record."""
        # Element selector is appended to the URL as a bookmark
        url = request.url if selector is None else f"{request.url}#selector|{selector}"
        record = {
            "url": url,
            "num_failures": issue_count,
            "report_location": report_location,
        }

        if issue_count == 0:
            self.summary_store.put(SummaryRecordType.PASS.value, request.id, record)
        else:
            self.summary_store.put(SummaryRecordType.FAIL.value, request.id, record)

    def save_scan_metadata(self, request: CrawlRequest, page) -> None:
        """Record crawl metadata when request is the base URL."""
        if normalize_url(request.url) != normalize_url(self.base_url):
            return

        try:
            page_title = page.title()
        except Exception as e:
            # A crashed page has no title; the attempt outcome is already recorded
            logger.warning(f"Could not read title of {request.url}: {e}")
            page_title = ""

        self.summary_store.put(
            SummaryRecordType.METADATA.value,
            request.id,
            {
                "base_url": self.base_url,
                "base_page_title": page_title,
                "user_agent": self.page_configurator.get_user_agent(),
            },
        )

    def save_snapshot(self, page, request: CrawlRequest) -> str | None:
        if not self.snapshot:
            return None
        screenshot = page.screenshot(full_page=True, type="png")
        return self.blob_store.set_value(f"{request.id}.screenshot", screenshot, "image/png")

    def log_browser_failure(self, request: CrawlRequest, browser_error: BrowserError) -> str:
        return self.blob_store.set_value(
            f"{request.id}.browser.err", browser_error.stack, "text/plain"
        )

    def log_page_error(self, request: CrawlRequest, stack: str) -> str:
        return self.blob_store.set_value(f"{request.id}.err", stack, "text/plain")


class ClassicPageProcessor(PageProcessorBase):
    """
    Scans each page and, when discovery patterns are configured, enqueues
    matching links found on it as new crawl requests.
    """

    def __init__(
        self,
        config: CrawlerConfig,
        scanner: PageScanner,
        summary_store: SummaryStore,
        blob_store: BlobStore,
        result_stream: ResultStream,
        broker: MessageLeaseBroker | None = None,
        queue_name: str | None = None,
        **kwargs,
    ):
        super().__init__(config, scanner, summary_store, blob_store, result_stream, **kwargs)
        if self.discovery_patterns and (broker is None or not queue_name):
            raise ValueError("Link discovery requires a broker and queue_name")
        self.broker = broker
        self.queue_name = queue_name

    def process_page(self, page, request: CrawlRequest) -> ScanSuccess:
        self.enqueue_links(page, request)

        scan_result = self.scanner.scan(page)
        report_location = self.blob_store.set_value(
            f"{request.id}.report", scan_result.report or {}, "application/json"
        )
        self.save_snapshot(page, request)
        self.push_scan_data(
            {
                "id": request.id,
                "url": request.url,
                "succeeded": True,
                "issue_count": scan_result.issue_count,
            }
        )

        return ScanSuccess(issue_count=scan_result.issue_count, report_location=report_location)

    def enqueue_links(self, page, request: CrawlRequest) -> int:
        """Publish unseen matching links. Returns the number enqueued."""
        if not self.discovery_patterns:
            return 0

        enqueued = 0
        for url in discover_links(page.content(), page.url, self.discovery_patterns):
            link_request = CrawlRequest(id=request_id_for_url(url), url=url)
            # First page to claim a URL enqueues it
            claimed = self.summary_store.claim(
                SummaryRecordType.DISCOVERED.value,
                link_request.id,
                {"url": url, "referrer": request.url},
            )
            if not claimed:
                continue
            if self.broker.publish(self.queue_name, link_request.to_payload()):
                enqueued += 1
            else:
                # Unclaim so the redelivered attempt publishes the link again
                self.summary_store.release(SummaryRecordType.DISCOVERED.value, link_request.id)
                raise RuntimeError(f"Failed to enqueue discovered link {url}")

        logger.info(f"Discovered {enqueued} links on page {page.url}")
        return enqueued
