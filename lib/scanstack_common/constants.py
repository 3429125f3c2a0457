"""
Constants used throughout the ScanStack crawl pipeline.

Centralizes magic numbers and configuration defaults to improve
maintainability and make tuning easier.
"""

# =============================================================================
# Queue Protocol
# =============================================================================

# Maximum number of messages leased in a single batch
MAX_MESSAGES_PER_BATCH = 32

# SQS returns at most this many messages per ReceiveMessage call
SQS_MAX_RECEIVE_BATCH = 10

# Suffix appended to a queue name to derive its dead-letter queue
DEAD_QUEUE_SUFFIX = "-dead"

# Runtime queue config defaults (overridden by the configuration table)
DEFAULT_MAX_DEQUEUE_COUNT = 3
DEFAULT_MESSAGE_VISIBILITY_TIMEOUT_SECONDS = 300

# Enqueue retry policy
DEFAULT_MAX_ENQUEUE_RETRY_COUNT = 3
DEFAULT_RETRY_INTERVAL_MS = 1000


# =============================================================================
# Page Crawling (timeouts)
# =============================================================================

# Page navigation timeout (30 seconds)
DEFAULT_GOTO_TIMEOUT_SECS = 30

# Best-effort wait for page rendering to settle (5 seconds)
DEFAULT_PAGE_RENDERING_TIMEOUT_MSECS = 5000

# Interval between scroll height samples while waiting for rendering
RENDER_POLL_INTERVAL_MSECS = 500

# Number of concurrent page attempts per worker invocation
DEFAULT_MAX_CONCURRENCY = 4

DEFAULT_VIEWPORT = {"width": 1920, "height": 1080}

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 ScanStack/1.0"
)


# =============================================================================
# Result Storage
# =============================================================================

# Key-value store name used for scan artifacts
SCAN_RESULT_STORAGE_NAME = "scan-results"

# S3 prefix for artifacts (error logs, reports, screenshots)
ARTIFACT_PREFIX = f"key_value_stores/{SCAN_RESULT_STORAGE_NAME}"

# S3 prefix for per-attempt result records
RESULT_STREAM_PREFIX = "datasets/default"

# Content types mapped to artifact file extensions
CONTENT_TYPE_EXTENSIONS = {
    "text/plain": ".txt",
    "application/json": ".json",
    "text/html": ".html",
    "image/png": ".png",
    "image/jpeg": ".jpg",
}

# Error text stored in a summary record is truncated to this length
MAX_ERROR_TEXT_LENGTH = 4000
