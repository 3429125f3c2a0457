"""
Classification of browser navigation errors and page responses.

Maps raw Playwright errors and responses onto BrowserError values so the
page processor can persist a typed browser-error record.
"""

import traceback

from scanstack_common.crawler.models import BrowserError, BrowserErrorType
from scanstack_common.exceptions import format_stack

# First matching rule wins; substrings cover Chromium (net::ERR_*) and
# Firefox (NS_ERROR_*) error texts as surfaced by Playwright.
_NAVIGATION_ERROR_RULES: list[tuple[BrowserErrorType, tuple[str, ...]]] = [
    (
        BrowserErrorType.URL_NAVIGATION_TIMEOUT,
        ("Navigation timeout", "Timeout", "net::ERR_TIMED_OUT", "NS_ERROR_NET_TIMEOUT"),
    ),
    (
        BrowserErrorType.SSL_ERROR,
        ("net::ERR_CERT_", "net::ERR_SSL_", "SSL_ERROR_", "SEC_ERROR_"),
    ),
    (
        BrowserErrorType.RESOURCE_LOAD_FAILURE,
        ("net::ERR_CONNECTION_REFUSED", "net::ERR_CONNECTION_RESET", "NS_ERROR_CONNECTION_REFUSED"),
    ),
    (
        BrowserErrorType.INVALID_URL,
        ("Cannot navigate to invalid URL", "net::ERR_INVALID_URL", "Invalid url", "invalid URL"),
    ),
    (
        BrowserErrorType.URL_NOT_RESOLVED,
        ("net::ERR_NAME_NOT_RESOLVED", "NS_ERROR_UNKNOWN_HOST"),
    ),
]


class ResponseValidator:
    """Classifies navigation errors and validates HTTP-level page responses."""

    def classify_navigation_error(self, error: BaseException) -> BrowserError:
        message = str(error)
        error_type = BrowserErrorType.NAVIGATION_ERROR

        for candidate, needles in _NAVIGATION_ERROR_RULES:
            if any(needle in message for needle in needles):
                error_type = candidate
                break

        return BrowserError(error_type=error_type, message=message, stack=format_stack(error))

    def classify_response(self, response) -> BrowserError | None:
        """
        Validate a navigation response.

        Returns:
            BrowserError for an empty page, an unsuccessful status code or a
            non-HTML content type; None when the response is acceptable.
        """
        if response is None:
            return BrowserError(
                error_type=BrowserErrorType.EMPTY_PAGE,
                message="Unable to get a page response from the browser.",
                stack="".join(traceback.format_stack()),
            )

        if not response.ok:
            return BrowserError(
                error_type=BrowserErrorType.HTTP_ERROR_CODE,
                message=f"Page returned an unsuccessful response code {response.status}",
                stack="".join(traceback.format_stack()),
                status_code=response.status,
            )

        content_type = (response.headers or {}).get("content-type", "")
        if "text/html" not in content_type:
            return BrowserError(
                error_type=BrowserErrorType.INVALID_CONTENT_TYPE,
                message=f"Content type {content_type or '<none>'} is not supported",
                stack="".join(traceback.format_stack()),
                status_code=response.status,
            )

        return None
