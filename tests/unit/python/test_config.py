"""Unit tests for configuration management."""

from unittest.mock import MagicMock, patch

import pytest

from scanstack_common.config import ConfigurationManager, crawler_config_from_env
from scanstack_common.constants import (
    DEFAULT_GOTO_TIMEOUT_SECS,
    DEFAULT_MAX_DEQUEUE_COUNT,
    DEFAULT_MESSAGE_VISIBILITY_TIMEOUT_SECONDS,
)


@pytest.fixture
def mock_table():
    with patch("boto3.resource") as mock_resource:
        table = MagicMock()
        mock_resource.return_value.Table.return_value = table
        yield table


def _items(default=None, custom=None):
    def get_item(Key):
        config_type = Key["Configuration"]
        item = default if config_type == "Default" else custom
        return {"Item": {"Configuration": config_type, **item}} if item is not None else {}

    return get_item


class TestConfigurationManager:
    """Tests for ConfigurationManager."""

    def test_requires_table_name(self, monkeypatch):
        monkeypatch.delenv("CONFIGURATION_TABLE_NAME", raising=False)

        with pytest.raises(ValueError, match="CONFIGURATION_TABLE_NAME"):
            ConfigurationManager()

    def test_table_name_from_env(self, monkeypatch, mock_table):
        monkeypatch.setenv("CONFIGURATION_TABLE_NAME", "config-table")

        manager = ConfigurationManager()

        assert manager.table_name == "config-table"

    def test_queue_config_defaults_when_absent(self, mock_table):
        mock_table.get_item.side_effect = _items()

        queue_config = ConfigurationManager("config-table").get_queue_config()

        assert queue_config.max_dequeue_count == DEFAULT_MAX_DEQUEUE_COUNT
        assert queue_config.message_visibility_timeout_seconds == (
            DEFAULT_MESSAGE_VISIBILITY_TIMEOUT_SECONDS
        )

    def test_queue_config_converts_decimals(self, mock_table):
        from decimal import Decimal

        mock_table.get_item.side_effect = _items(
            default={
                "queue_config": {
                    "max_dequeue_count": Decimal("4"),
                    "message_visibility_timeout_seconds": Decimal("120"),
                }
            }
        )

        queue_config = ConfigurationManager("config-table").get_queue_config()

        assert queue_config.max_dequeue_count == 4
        assert queue_config.message_visibility_timeout_seconds == 120

    def test_queue_config_read_on_every_call(self, mock_table):
        mock_table.get_item.side_effect = _items()
        manager = ConfigurationManager("config-table")

        manager.get_queue_config()
        manager.get_queue_config()

        assert mock_table.get_item.call_count == 4

    def test_invalid_queue_config_rejected(self, mock_table):
        mock_table.get_item.side_effect = _items(default={"queue_config": {"max_dequeue_count": 0}})

        with pytest.raises(ValueError, match="max_dequeue_count"):
            ConfigurationManager("config-table").get_queue_config()

    def test_queue_config_merged_per_field(self, mock_table):
        mock_table.get_item.side_effect = _items(
            default={"queue_config": {"max_dequeue_count": 3, "message_visibility_timeout_seconds": 90}},
            custom={"queue_config": {"max_dequeue_count": 6}},
        )

        queue_config = ConfigurationManager("config-table").get_queue_config()

        assert queue_config.max_dequeue_count == 6
        assert queue_config.message_visibility_timeout_seconds == 90

    def test_set_queue_overrides_writes_custom(self, mock_table):
        mock_table.get_item.side_effect = _items(
            default={"queue_config": {"message_visibility_timeout_seconds": 90}},
            custom={"queue_config": {"max_dequeue_count": 6}},
        )

        updated = ConfigurationManager("config-table").set_queue_overrides(max_dequeue_count=2)

        assert updated.max_dequeue_count == 2
        assert updated.message_visibility_timeout_seconds == 90
        kwargs = mock_table.update_item.call_args.kwargs
        assert kwargs["Key"] == {"Configuration": "Custom"}
        assert kwargs["ExpressionAttributeValues"] == {":queue_config": {"max_dequeue_count": 2}}

    def test_set_queue_overrides_validates_before_write(self, mock_table):
        mock_table.get_item.side_effect = _items()

        with pytest.raises(ValueError, match="max_dequeue_count"):
            ConfigurationManager("config-table").set_queue_overrides(max_dequeue_count=0)

        mock_table.update_item.assert_not_called()

    def test_set_queue_overrides_rejects_unknown_settings(self, mock_table):
        with pytest.raises(ValueError, match="Unknown queue settings"):
            ConfigurationManager("config-table").set_queue_overrides(retries=2)


class TestCrawlerConfigFromEnv:
    """Tests for crawler_config_from_env."""

    def test_requires_base_url(self):
        with pytest.raises(ValueError, match="BASE_URL"):
            crawler_config_from_env({})

    def test_defaults(self):
        config = crawler_config_from_env({"BASE_URL": "https://example.com"})

        assert config.base_url == "https://example.com"
        assert config.snapshot is False
        assert config.discovery_patterns == []
        assert config.goto_timeout_secs == DEFAULT_GOTO_TIMEOUT_SECS
        assert config.max_request_retries is None

    def test_reads_all_variables(self):
        config = crawler_config_from_env(
            {
                "BASE_URL": "https://example.com",
                "SNAPSHOT_ENABLED": "true",
                "DISCOVERY_PATTERNS": "https://example.com/docs/*, https://example.com/api/*",
                "GOTO_TIMEOUT_SECS": "45",
                "PAGE_RENDERING_TIMEOUT_MSECS": "2500",
                "MAX_CONCURRENCY": "2",
                "MAX_REQUEST_RETRIES": "5",
            }
        )

        assert config.snapshot is True
        assert config.discovery_patterns == ["https://example.com/docs/*", "https://example.com/api/*"]
        assert config.goto_timeout_secs == 45
        assert config.page_rendering_timeout_msecs == 2500
        assert config.max_concurrency == 2
        assert config.max_request_retries == 5

    def test_base_url_argument_wins(self):
        config = crawler_config_from_env({"BASE_URL": "https://env.example.com"}, base_url="https://event.example.com")

        assert config.base_url == "https://event.example.com"

    def test_malformed_integer(self):
        with pytest.raises(ValueError, match="GOTO_TIMEOUT_SECS must be an integer"):
            crawler_config_from_env({"BASE_URL": "https://example.com", "GOTO_TIMEOUT_SECS": "soon"})
