"""Unit tests conftest for Lambda function test isolation.

Lambda handlers all live in a module named index.py, so tests load them
with importlib under distinct names (crawl_worker_index, crawl_enqueue_index)
instead of `import index`. A stale "index" module from an interactive
session would still shadow that, so it is dropped at session start.
"""

import sys


def pytest_sessionstart(session):
    """Initialize the test session.

    Cleans any cached modules from a previous test run or interactive session.
    """
    if "index" in sys.modules:
        del sys.modules["index"]
