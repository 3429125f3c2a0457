"""
Crawl Enqueue Lambda

Seeds the crawl queue with one or more URLs. Each URL becomes a crawl
request whose id is derived from the URL, so re-seeding the same URL keeps
its summary records under the same key.

Input event:
{
    "urls": ["https://docs.example.com", ...],   # or "url": "https://..."
    "user_data": {...}                            # optional, copied to every request
}

Output:
{
    "queue": "crawl-requests",
    "enqueued": 1,
    "failed": 0,
    "skipped": 0,
    "queue_depth": 12
}
"""

import logging
import os

from scanstack_common.config import ConfigurationManager
from scanstack_common.crawler.models import CrawlRequest, SummaryRecordType
from scanstack_common.exceptions import InvalidCrawlRequestError
from scanstack_common.logging_utils import safe_log_event
from scanstack_common.messaging import MessageLeaseBroker, SqsQueueStore
from scanstack_common.storage import DynamoSummaryStore

logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO"))


def lambda_handler(event, context):
    """
    Main Lambda handler - publishes seed URLs to the crawl queue.
    """
    queue_name = os.environ.get("CRAWL_QUEUE_NAME")
    results_table = os.environ.get("SCAN_RESULTS_TABLE")

    if not queue_name:
        raise ValueError("CRAWL_QUEUE_NAME environment variable required")
    if not results_table:
        raise ValueError("SCAN_RESULTS_TABLE environment variable required")

    logger.info(f"Enqueue request: {safe_log_event(event)}")

    urls = event.get("urls") or ([event["url"]] if event.get("url") else [])
    if not urls:
        raise ValueError("urls is required")

    broker = MessageLeaseBroker(
        SqsQueueStore(),
        ConfigurationManager().get_queue_config,
        max_enqueue_retry_count=int(os.environ.get("MAX_ENQUEUE_RETRY_COUNT", "3")),
        retry_interval_ms=int(os.environ.get("RETRY_INTERVAL_MS", "1000")),
    )
    summary_store = DynamoSummaryStore(results_table)

    enqueued = 0
    failed = 0
    skipped = 0

    for url in urls:
        try:
            request = CrawlRequest.from_payload({"url": url, "user_data": event.get("user_data")})
        except InvalidCrawlRequestError as e:
            logger.warning(f"Skipping invalid URL: {e}")
            skipped += 1
            continue

        # Mark seeds as discovered so pages linking back to them do not re-enqueue them
        claimed = summary_store.claim(
            SummaryRecordType.DISCOVERED.value, request.id, {"url": request.url, "referrer": None}
        )

        if broker.publish(queue_name, request.to_payload()):
            enqueued += 1
            logger.info(f"Enqueued {request.url} as {request.id}")
        else:
            failed += 1
            if claimed:
                summary_store.release(SummaryRecordType.DISCOVERED.value, request.id)

    return {
        "queue": queue_name,
        "enqueued": enqueued,
        "failed": failed,
        "skipped": skipped,
        "queue_depth": broker.approximate_depth(queue_name),
    }
