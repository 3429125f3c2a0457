"""
Custom exceptions for the ScanStack crawl pipeline.

This module defines queue and page-crawl exceptions shared by the
lease broker, the page processor and the Lambda entry points.
"""

import traceback


class ScanStackError(Exception):
    """Base exception for crawl pipeline errors."""


class QueueTransportError(ScanStackError):
    """A queue store call failed or returned an unusable response."""


class EnqueueError(QueueTransportError):
    """Enqueue did not return a store-assigned message id."""

    def __init__(self, queue_name: str, response):
        self.queue_name = queue_name
        self.response = response
        super().__init__(f"Enqueue to {queue_name} failed with response: {response!r}")


class InvalidCrawlRequestError(ScanStackError):
    """Queue message payload cannot be turned into a crawl request."""


class PageResponseError(ScanStackError):
    """The browser received a response that fails validation."""

    def __init__(self, browser_error):
        self.browser_error = browser_error
        super().__init__(f"Page response error: {browser_error.to_dict()}")


class RequestRetriesExhaustedError(ScanStackError):
    """A crawl request ran out of attempts before it could be processed."""

    def __init__(self, request_id: str, url: str, attempts: int):
        self.request_id = request_id
        self.url = url
        self.attempts = attempts
        super().__init__(f"Request {request_id} for {url} failed after {attempts} attempts")


def format_stack(error: BaseException) -> str:
    """Full traceback text of error, as written to error logs and records."""
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))
