"""
Link discovery for crawled pages.

The classic page processor enqueues every link on a scanned page that
matches one of the crawl's discovery globs. URLs are normalized first so
"/docs/", "/docs#intro" and "/docs" become one crawl request.
"""

import fnmatch
from urllib.parse import urldefrag, urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

_SKIPPED_SCHEMES = ("javascript:", "mailto:", "tel:", "data:")


def normalize_url(url: str) -> str:
    """
    Canonical form used for request ids and deduplication.

    Drops the fragment, lowercases the host, gives a bare host the root path
    and strips a trailing slash from any other path. Query strings are kept.
    """
    scheme, netloc, path, query, _ = urlsplit(urldefrag(url)[0])
    if not path:
        path = "/"
    elif path != "/" and path.endswith("/"):
        path = path.rstrip("/") or "/"
    return urlunsplit((scheme, netloc.lower(), path, query, ""))


def extract_links(html: str, page_url: str) -> list[str]:
    """
    Absolute http(s) links in document order, normalized and without duplicates.

    Args:
        html: Rendered page HTML
        page_url: URL of the page, for resolving relative hrefs
    """
    soup = BeautifulSoup(html, "lxml")
    found: dict[str, None] = {}

    for anchor in soup.select("a[href]"):
        href = anchor["href"].strip()
        if not href or href.startswith("#") or href.lower().startswith(_SKIPPED_SCHEMES):
            continue

        absolute = urljoin(page_url, href)
        if urlsplit(absolute).scheme in ("http", "https"):
            found.setdefault(normalize_url(absolute))

    return list(found)


def matches_patterns(url: str, patterns: list[str]) -> bool:
    """True if url matches any glob pattern."""
    return any(fnmatch.fnmatch(url, pattern) for pattern in patterns)


def discover_links(html: str, page_url: str, patterns: list[str]) -> list[str]:
    """
    Links on the page that match the discovery patterns, excluding the page itself.

    An empty pattern list disables discovery.
    """
    if not patterns:
        return []

    current = normalize_url(page_url)
    return [
        url
        for url in extract_links(html, page_url)
        if url != current and matches_patterns(url, patterns)
    ]
