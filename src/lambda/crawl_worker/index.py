"""
Crawl Worker Lambda

Leases crawl requests from the crawl queue, scans each page in a headless
browser and records the outcome. Poison messages are moved to the
"<queue>-dead" queue by the lease broker before any page is opened.

Input event (EventBridge schedule):
{
    "max_messages": 20,          # optional, defaults to MAX_MESSAGES_PER_RUN
    "base_url": "https://..."    # optional, overrides BASE_URL
}

Output:
{
    "fetched": 20,
    "succeeded": 17,
    "retrying": 2,
    "failed": 1,
    "invalid": 0,
    "remaining": 143
}
"""

import logging
import os

from scanstack_common.config import ConfigurationManager, crawler_config_from_env
from scanstack_common.crawler.page_processor import ClassicPageProcessor
from scanstack_common.crawler.scanner import AxePageScanner
from scanstack_common.crawler.worker import CrawlWorker
from scanstack_common.logging_utils import safe_log_event
from scanstack_common.messaging import MessageLeaseBroker, SqsQueueStore
from scanstack_common.storage import DynamoSummaryStore, S3BlobStore, S3ResultStream

logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO"))


def lambda_handler(event, context):
    """
    Main Lambda handler - processes one batch of crawl requests.
    """
    queue_name = os.environ.get("CRAWL_QUEUE_NAME")
    results_table = os.environ.get("SCAN_RESULTS_TABLE")
    artifacts_bucket = os.environ.get("SCAN_ARTIFACTS_BUCKET")
    max_messages = int(event.get("max_messages") or os.environ.get("MAX_MESSAGES_PER_RUN", "32"))

    if not queue_name:
        raise ValueError("CRAWL_QUEUE_NAME environment variable required")
    if not results_table:
        raise ValueError("SCAN_RESULTS_TABLE environment variable required")
    if not artifacts_bucket:
        raise ValueError("SCAN_ARTIFACTS_BUCKET environment variable required")

    logger.info(f"Starting crawl worker: {safe_log_event(event)}")

    crawler_config = crawler_config_from_env(base_url=event.get("base_url"))
    config_manager = ConfigurationManager()

    broker = MessageLeaseBroker(
        SqsQueueStore(),
        config_manager.get_queue_config,
        max_enqueue_retry_count=int(os.environ.get("MAX_ENQUEUE_RETRY_COUNT", "3")),
        retry_interval_ms=int(os.environ.get("RETRY_INTERVAL_MS", "1000")),
    )

    processor = ClassicPageProcessor(
        crawler_config,
        scanner=AxePageScanner(script_path=os.environ.get("AXE_SCRIPT_PATH")),
        summary_store=DynamoSummaryStore(results_table),
        blob_store=S3BlobStore(artifacts_bucket),
        result_stream=S3ResultStream(artifacts_bucket),
        broker=broker,
        queue_name=queue_name,
    )

    worker = CrawlWorker(
        broker,
        processor,
        queue_name,
        max_concurrency=crawler_config.max_concurrency,
        max_request_retries=crawler_config.max_request_retries,
    )

    summary = worker.run(max_messages)
    logger.info(f"Crawl worker finished: {summary.to_dict()}")

    return summary.to_dict()
