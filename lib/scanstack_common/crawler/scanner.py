"""
Page scan delegates.

The page processor only needs an issue count and an optional report from a
scan. AxePageScanner runs axe-core inside the loaded page; the rule set and
report formatting belong to axe.
"""

import logging
from abc import ABC, abstractmethod

from scanstack_common.crawler.models import ScanResult

logger = logging.getLogger(__name__)

AXE_SCRIPT_URL = "https://cdnjs.cloudflare.com/ajax/libs/axe-core/4.10.2/axe.min.js"


class PageScanner(ABC):
    """Runs an accessibility scan against a loaded page."""

    @abstractmethod
    def scan(self, page) -> ScanResult:
        """Scan the page. May raise; the caller records the failure."""


def count_issues(axe_results: dict) -> int:
    """Total failing elements across all axe violations."""
    return sum(len(violation.get("nodes", [])) for violation in axe_results.get("violations", []))


class AxePageScanner(PageScanner):
    """
    Injects axe-core into the page and runs it.

    Args:
        script_url: URL the axe-core bundle is loaded from
        script_path: Local axe-core bundle, preferred over script_url when set
    """

    def __init__(self, script_url: str = AXE_SCRIPT_URL, script_path: str | None = None):
        self.script_url = script_url
        self.script_path = script_path

    def scan(self, page) -> ScanResult:
        if self.script_path:
            page.add_script_tag(path=self.script_path)
        else:
            page.add_script_tag(url=self.script_url)

        axe_results = page.evaluate("async () => await axe.run()")
        issue_count = count_issues(axe_results)

        report = {
            "url": page.url,
            "pageTitle": page.title(),
            "serviceName": "ScanStack",
            "violations": axe_results.get("violations", []),
            "incomplete": axe_results.get("incomplete", []),
            "testEngine": axe_results.get("testEngine"),
        }

        logger.info(f"Scanned {page.url}: {issue_count} issues")
        return ScanResult(issue_count=issue_count, report=report)
