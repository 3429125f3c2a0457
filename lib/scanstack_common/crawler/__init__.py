"""
Page crawling for the ScanStack pipeline.

Architecture:
- Browser: Playwright navigation, render wait, page configuration
- Response validator: classifies navigation errors and HTTP responses
- Scanner: axe-core accessibility scan delegate
- Page processor: per-attempt state machine recording outcomes to the sinks
- Worker: leases messages and maps attempt outcomes to ack/redelivery
"""

from scanstack_common.crawler.models import (
    AttemptKind,
    AttemptOutcome,
    BrowserError,
    BrowserErrorType,
    BrowserFailure,
    CrawlerConfig,
    CrawlRequest,
    PageFailure,
    ScanResult,
    ScanSuccess,
    SummaryRecordType,
)

__all__ = [
    "AttemptKind",
    "AttemptOutcome",
    "BrowserError",
    "BrowserErrorType",
    "BrowserFailure",
    "CrawlRequest",
    "CrawlerConfig",
    "PageFailure",
    "ScanResult",
    "ScanSuccess",
    "SummaryRecordType",
]
