"""Common Library

Shared utilities and classes for the crawl pipeline: queue lease broker,
page crawl state machine and result sinks.
"""

from scanstack_common import constants
from scanstack_common.config import ConfigurationManager
from scanstack_common.logging_utils import log_summary, safe_log_event

__all__ = [
    "ConfigurationManager",
    "constants",
    "log_summary",
    "safe_log_event",
]
