"""
Playwright browser driver for page crawling.

Each crawl attempt gets its own Playwright instance, browser and page via
browser_session(); the sync API is confined to the thread that created it,
so sessions are never shared between worker threads.
"""

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager

from scanstack_common.constants import (
    DEFAULT_USER_AGENT,
    DEFAULT_VIEWPORT,
    RENDER_POLL_INTERVAL_MSECS,
)

logger = logging.getLogger(__name__)


class PageConfigurator:
    """Applies page-level settings (viewport, user agent) before navigation."""

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, viewport: dict | None = None):
        self.user_agent = user_agent
        self.viewport = viewport or dict(DEFAULT_VIEWPORT)

    def configure_page(self, page) -> None:
        page.set_viewport_size(self.viewport)
        page.set_extra_http_headers({"User-Agent": self.user_agent})

    def get_user_agent(self) -> str:
        return self.user_agent


class PlaywrightBrowserDriver:
    """Navigation and render-completion wait on a Playwright page."""

    def __init__(self, poll_interval_msecs: int = RENDER_POLL_INTERVAL_MSECS):
        self.poll_interval_msecs = poll_interval_msecs

    def navigate(self, page, url: str, wait_until: str = "networkidle", timeout_ms: int = 30000):
        """
        Open url in page.

        Returns:
            Playwright Response (None for same-document navigations)

        Raises:
            playwright.sync_api.Error: On timeout, DNS, TLS or network errors
        """
        return page.goto(url, wait_until=wait_until, timeout=timeout_ms)

    def await_render_complete(self, page, timeout_ms: int) -> bool:
        """
        Wait until the document stops growing, up to timeout_ms.

        Best effort: a timeout, or a script error such as "Execution context was
        destroyed" after a client-side redirect, is logged and reported as
        False, never raised.
        """
        deadline = time.monotonic() + timeout_ms / 1000.0
        previous_height = -1
        stable_samples = 0

        while time.monotonic() < deadline:
            try:
                height = page.evaluate("() => document.body ? document.body.scrollHeight : 0")
            except Exception as e:
                logger.warning(f"Render wait aborted for {page.url}: {e}")
                return False
            if height == previous_height:
                stable_samples += 1
                # Two consecutive equal samples count as rendered
                if stable_samples >= 2:
                    return True
            else:
                stable_samples = 0
                previous_height = height
            page.wait_for_timeout(self.poll_interval_msecs)

        logger.info(f"Page did not finish rendering within {timeout_ms}ms: {page.url}")
        return False


@contextmanager
def browser_session(headless: bool = True, user_agent: str = DEFAULT_USER_AGENT) -> Iterator:
    """
    Launch Chromium and yield a fresh page, closing everything on exit.

    Usage:
        with browser_session() as page:
            outcome = processor.process(page, request)
    """
    # Import only when needed (the Playwright layer may not be attached)
    from playwright.sync_api import sync_playwright

    with sync_playwright() as p:
        browser = p.chromium.launch(headless=headless)
        try:
            context = browser.new_context(user_agent=user_agent)
            page = context.new_page()
            yield page
        finally:
            browser.close()
