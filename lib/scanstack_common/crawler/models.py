"""
Data models for the page crawl state machine.

A crawl request flows through one attempt as:
dequeued -> navigating -> page configured -> loaded -> scanning -> recorded

Every attempt ends in exactly one ScanOutcome, wrapped in an AttemptOutcome
that tells the scheduler whether to acknowledge or let the message redeliver.
"""

import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from scanstack_common.constants import (
    DEFAULT_GOTO_TIMEOUT_SECS,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_PAGE_RENDERING_TIMEOUT_MSECS,
)
from scanstack_common.crawler.discovery import normalize_url
from scanstack_common.exceptions import InvalidCrawlRequestError


class SummaryRecordType(str, Enum):
    """Summary store record kinds, one request id may hold several."""

    PASS = "pass"
    FAIL = "fail"
    BROWSER_ERROR = "browser_error"
    PAGE_ERROR = "page_error"
    METADATA = "metadata"
    DISCOVERED = "discovered"
    REQUEST_ERRORS = "request_errors"


class BrowserErrorType(str, Enum):
    """Classification of navigation and response failures."""

    URL_NAVIGATION_TIMEOUT = "UrlNavigationTimeout"
    SSL_ERROR = "SslError"
    RESOURCE_LOAD_FAILURE = "ResourceLoadFailure"
    INVALID_URL = "InvalidUrl"
    URL_NOT_RESOLVED = "UrlNotResolved"
    NAVIGATION_ERROR = "NavigationError"
    EMPTY_PAGE = "EmptyPage"
    HTTP_ERROR_CODE = "HttpErrorCode"
    INVALID_CONTENT_TYPE = "InvalidContentType"


class AttemptKind(str, Enum):
    """What the scheduler should do with the message after an attempt."""

    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    TERMINAL_FAILURE = "terminal_failure"


@dataclass
class CrawlerConfig:
    """
    Static configuration for a crawl worker.

    Attributes:
        base_url: Root URL of the crawl; scan metadata is saved for this page
        snapshot: Save a screenshot of every scanned page
        discovery_patterns: Glob patterns for links to enqueue (empty disables discovery)
        goto_timeout_secs: Navigation timeout in seconds
        page_rendering_timeout_msecs: Best-effort render wait in milliseconds
        max_concurrency: Concurrent page attempts per worker run
        max_request_retries: Deliveries allowed before the worker gives up
            without running the page processor (None disables the check)
    """

    base_url: str
    snapshot: bool = False
    discovery_patterns: list[str] = field(default_factory=list)
    goto_timeout_secs: int = DEFAULT_GOTO_TIMEOUT_SECS
    page_rendering_timeout_msecs: int = DEFAULT_PAGE_RENDERING_TIMEOUT_MSECS
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    max_request_retries: int | None = None


def request_id_for_url(url: str) -> str:
    """
    Deterministic request id derived from the normalized URL.

    Seeds and discovered links pointing at the same page ("/docs/" and
    "/docs#intro") share one id, and with it one discovery claim.
    """
    return str(uuid.uuid5(uuid.NAMESPACE_URL, normalize_url(url)))


@dataclass
class CrawlRequest:
    """
    One page visit owned by the page processor for a single attempt.

    Attributes:
        id: Stable identity across redelivery attempts
        url: Page to visit
        user_data: Opaque caller context, echoed into result records
        prior_error_messages: Errors accumulated by earlier attempts
    """

    id: str
    url: str
    user_data: dict[str, Any] = field(default_factory=dict)
    prior_error_messages: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        """Queue message payload for this request."""
        payload: dict[str, Any] = {"id": self.id, "url": self.url}
        if self.user_data:
            payload["user_data"] = self.user_data
        if self.prior_error_messages:
            payload["error_messages"] = self.prior_error_messages
        return payload

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "CrawlRequest":
        """Create CrawlRequest from a queue message payload."""
        url = data.get("url")
        if not url or not isinstance(url, str):
            raise InvalidCrawlRequestError(f"Crawl payload has no url: {data!r:.200}")
        if not url.startswith(("http://", "https://")):
            raise InvalidCrawlRequestError(f"url must start with http:// or https://: {url}")

        return cls(
            id=data.get("id") or request_id_for_url(url),
            url=url,
            user_data=data.get("user_data") or {},
            prior_error_messages=list(data.get("error_messages") or []),
        )

    @classmethod
    def from_message_text(cls, text: str) -> "CrawlRequest":
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as e:
            raise InvalidCrawlRequestError(f"Crawl payload is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise InvalidCrawlRequestError("Crawl payload must be a JSON object")
        return cls.from_payload(data)


@dataclass
class BrowserError:
    """A classified navigation or HTTP response failure."""

    error_type: BrowserErrorType
    message: str
    stack: str
    status_code: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "errorType": self.error_type.value,
            "message": self.message,
        }
        if self.status_code is not None:
            data["statusCode"] = self.status_code
        return data


@dataclass
class ScanResult:
    """What the scan delegate reports back for a loaded page."""

    issue_count: int
    report: dict[str, Any] | None = None


@dataclass
class ScanSuccess:
    issue_count: int
    report_location: str


@dataclass
class BrowserFailure:
    error_type: BrowserErrorType
    message: str
    log_location: str


@dataclass
class PageFailure:
    stack_trace: str


ScanOutcome = ScanSuccess | BrowserFailure | PageFailure


@dataclass
class AttemptOutcome:
    """
    Result of one page processor attempt.

    The processor never raises for crawl failures; the scheduler adapter maps
    RETRYABLE_FAILURE onto queue redelivery and acknowledges everything else.
    """

    kind: AttemptKind
    request: CrawlRequest
    scan_outcome: ScanOutcome
    error: BaseException | None = None

    @property
    def should_acknowledge(self) -> bool:
        return self.kind != AttemptKind.RETRYABLE_FAILURE
