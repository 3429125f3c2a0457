"""Configuration for the ScanStack crawl pipeline

Two sources feed a crawl worker:

- Queue settings (dequeue threshold, visibility timeout) live in a DynamoDB
  configuration table as a 'queue_config' map on two items, Default and
  Custom. Operators change Custom while workers run; every broker operation
  re-reads it, so there is no cache.
- Static worker settings (base URL, timeouts, concurrency, discovery
  patterns) come from Lambda environment variables via crawler_config_from_env().
"""

import boto3
import os
import logging
from typing import Dict, Any, Optional, Mapping
from botocore.exceptions import ClientError

from scanstack_common.constants import (
    DEFAULT_GOTO_TIMEOUT_SECS,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_PAGE_RENDERING_TIMEOUT_MSECS,
)
from scanstack_common.crawler.models import CrawlerConfig
from scanstack_common.messaging.models import QueueRuntimeConfig

logger = logging.getLogger(__name__)

QUEUE_CONFIG_PARAMETER = 'queue_config'
PARTITION_KEY = 'Configuration'


class ConfigurationManager:
    """
    Reads and updates queue settings in the configuration table.

    The table has partition key 'Configuration' with two reserved items:
    'Default' (deployed values) and 'Custom' (operator overrides).

    Usage:
        config_manager = ConfigurationManager()
        broker = MessageLeaseBroker(SqsQueueStore(), config_manager.get_queue_config)

    Design Decisions:
        - Merge is per field: Custom may override max_dequeue_count alone
        - Missing items or fields fall back to library defaults
        - Table errors propagate; a worker without its thresholds should not run
    """

    def __init__(self, table_name: Optional[str] = None):
        """
        Args:
            table_name: Configuration table name. Defaults to the
                       CONFIGURATION_TABLE_NAME environment variable.

        Raises:
            ValueError: If neither is set
        """
        table_name = table_name or os.environ.get('CONFIGURATION_TABLE_NAME')
        if not table_name:
            raise ValueError("CONFIGURATION_TABLE_NAME environment variable required")

        self.table_name = table_name
        self.table = boto3.resource('dynamodb').Table(table_name)

        logger.info(f"Initialized ConfigurationManager with table: {table_name}")

    def get_queue_config(self) -> QueueRuntimeConfig:
        """
        Current queue settings, Custom fields over Default fields.

        Passed to the lease broker as its config provider.

        Raises:
            ClientError: If DynamoDB access fails
            ValueError: If the stored values are out of range
        """
        default = self._read_item('Default').get(QUEUE_CONFIG_PARAMETER) or {}
        custom = self._read_item('Custom').get(QUEUE_CONFIG_PARAMETER) or {}

        return QueueRuntimeConfig.from_dict({**default, **custom})

    def set_queue_overrides(self, **overrides: int) -> QueueRuntimeConfig:
        """
        Store queue overrides on the Custom item.

        Values are validated against the Default item before anything is
        written, so a bad threshold never reaches running workers.

        Returns:
            The queue config workers will read after the update
        """
        unknown = set(overrides) - {'max_dequeue_count', 'message_visibility_timeout_seconds'}
        if unknown:
            raise ValueError(f"Unknown queue settings: {sorted(unknown)}")

        custom = self._read_item('Custom').get(QUEUE_CONFIG_PARAMETER) or {}
        custom = {**custom, **overrides}
        default = self._read_item('Default').get(QUEUE_CONFIG_PARAMETER) or {}
        updated = QueueRuntimeConfig.from_dict({**default, **custom})

        try:
            self.table.update_item(
                Key={PARTITION_KEY: 'Custom'},
                UpdateExpression='SET #queue_config = :queue_config',
                ExpressionAttributeNames={'#queue_config': QUEUE_CONFIG_PARAMETER},
                ExpressionAttributeValues={':queue_config': custom},
            )
        except ClientError:
            logger.exception("Error updating Custom queue configuration")
            raise

        logger.info(f"Updated Custom queue configuration: {custom}")
        return updated

    def _read_item(self, config_type: str) -> Dict[str, Any]:
        """One configuration item without its partition key ({} if absent)."""
        try:
            item = self.table.get_item(Key={PARTITION_KEY: config_type}).get('Item')
        except ClientError:
            logger.exception(f"Error retrieving {config_type} configuration")
            raise

        if not item:
            logger.debug(f"{config_type} configuration not found in {self.table_name}")
            return {}

        return {k: v for k, v in item.items() if k != PARTITION_KEY}


def _env_bool(value: Optional[str]) -> bool:
    return (value or '').strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(environ: Mapping[str, str], name: str, default: Optional[int]) -> Optional[int]:
    raw = environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def crawler_config_from_env(
    environ: Optional[Mapping[str, str]] = None,
    base_url: Optional[str] = None,
) -> CrawlerConfig:
    """
    Build the crawler configuration from environment variables.

    Args:
        environ: Mapping to read from (defaults to os.environ)
        base_url: Overrides BASE_URL (e.g. when supplied in the invocation event)

    Raises:
        ValueError: If BASE_URL is missing or a numeric variable is malformed
    """
    environ = os.environ if environ is None else environ

    base_url = base_url or environ.get('BASE_URL')
    if not base_url:
        raise ValueError("BASE_URL environment variable required")

    patterns = [p.strip() for p in environ.get('DISCOVERY_PATTERNS', '').split(',') if p.strip()]

    return CrawlerConfig(
        base_url=base_url,
        snapshot=_env_bool(environ.get('SNAPSHOT_ENABLED')),
        discovery_patterns=patterns,
        goto_timeout_secs=_env_int(environ, 'GOTO_TIMEOUT_SECS', DEFAULT_GOTO_TIMEOUT_SECS),
        page_rendering_timeout_msecs=_env_int(
            environ, 'PAGE_RENDERING_TIMEOUT_MSECS', DEFAULT_PAGE_RENDERING_TIMEOUT_MSECS
        ),
        max_concurrency=_env_int(environ, 'MAX_CONCURRENCY', DEFAULT_MAX_CONCURRENCY),
        max_request_retries=_env_int(environ, 'MAX_REQUEST_RETRIES', None),
    )
