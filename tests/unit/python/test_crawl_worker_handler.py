"""Unit tests for crawl_worker Lambda handler."""

import importlib.util
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from scanstack_common.crawler.worker import WorkerSummary


def _load_crawl_worker_module():
    """Load crawl_worker module using importlib (avoids 'lambda' keyword issue)."""
    module_path = Path(__file__).parent.parent.parent.parent / "src/lambda/crawl_worker/index.py"
    spec = importlib.util.spec_from_file_location("crawl_worker_index", module_path)
    module = importlib.util.module_from_spec(spec)
    sys.modules["crawl_worker_index"] = module
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def _mock_env(monkeypatch):
    """Set up environment variables for tests (underscore prefix for side-effect fixture)."""
    monkeypatch.setenv("CRAWL_QUEUE_NAME", "crawl-requests")
    monkeypatch.setenv("SCAN_RESULTS_TABLE", "scan-results")
    monkeypatch.setenv("SCAN_ARTIFACTS_BUCKET", "scan-artifacts")
    monkeypatch.setenv("CONFIGURATION_TABLE_NAME", "config-table")
    monkeypatch.setenv("BASE_URL", "https://example.com")
    monkeypatch.setenv("MAX_REQUEST_RETRIES", "4")
    monkeypatch.setenv("MAX_CONCURRENCY", "2")
    monkeypatch.setenv("LOG_LEVEL", "INFO")


@pytest.fixture
def mock_deps():
    """Replace AWS-backed collaborators in the loaded handler module."""
    module = _load_crawl_worker_module()
    names = [
        "ConfigurationManager",
        "SqsQueueStore",
        "DynamoSummaryStore",
        "S3BlobStore",
        "S3ResultStream",
        "AxePageScanner",
        "CrawlWorker",
    ]
    patchers = {name: patch.object(module, name) for name in names}
    mocks = {name: patcher.start() for name, patcher in patchers.items()}
    mocks["CrawlWorker"].return_value.run.return_value = WorkerSummary(
        fetched=3, succeeded=2, retrying=1, remaining=9
    )
    mocks["module"] = module
    yield mocks
    for patcher in patchers.values():
        patcher.stop()


class TestCrawlWorkerHandler:
    """Tests for crawl_worker lambda_handler."""

    def test_missing_queue_env(self, monkeypatch):
        monkeypatch.delenv("CRAWL_QUEUE_NAME", raising=False)
        monkeypatch.setenv("SCAN_RESULTS_TABLE", "scan-results")
        monkeypatch.setenv("SCAN_ARTIFACTS_BUCKET", "scan-artifacts")

        module = _load_crawl_worker_module()

        with pytest.raises(ValueError, match="CRAWL_QUEUE_NAME"):
            module.lambda_handler({}, None)

    def test_missing_bucket_env(self, _mock_env, monkeypatch):
        monkeypatch.delenv("SCAN_ARTIFACTS_BUCKET")

        module = _load_crawl_worker_module()

        with pytest.raises(ValueError, match="SCAN_ARTIFACTS_BUCKET"):
            module.lambda_handler({}, None)

    def test_missing_base_url(self, _mock_env, monkeypatch, mock_deps):
        monkeypatch.delenv("BASE_URL")

        with pytest.raises(ValueError, match="BASE_URL"):
            mock_deps["module"].lambda_handler({}, None)

    def test_runs_worker_and_returns_summary(self, _mock_env, mock_deps):
        result = mock_deps["module"].lambda_handler({"max_messages": 5}, None)

        assert result == {
            "fetched": 3,
            "succeeded": 2,
            "retrying": 1,
            "failed": 0,
            "invalid": 0,
            "remaining": 9,
        }
        mock_deps["CrawlWorker"].return_value.run.assert_called_once_with(5)
        kwargs = mock_deps["CrawlWorker"].call_args.kwargs
        assert kwargs["max_concurrency"] == 2
        assert kwargs["max_request_retries"] == 4

    def test_wires_sinks_from_env(self, _mock_env, mock_deps):
        mock_deps["module"].lambda_handler({}, None)

        mock_deps["DynamoSummaryStore"].assert_called_once_with("scan-results")
        mock_deps["S3BlobStore"].assert_called_once_with("scan-artifacts")
        mock_deps["S3ResultStream"].assert_called_once_with("scan-artifacts")
        mock_deps["CrawlWorker"].return_value.run.assert_called_once_with(32)

    def test_broker_reads_queue_config_from_table(self, _mock_env, mock_deps):
        mock_deps["module"].lambda_handler({}, None)

        broker = mock_deps["CrawlWorker"].call_args.args[0]
        assert broker.queue_config_provider == (
            mock_deps["ConfigurationManager"].return_value.get_queue_config
        )
        assert broker.store is mock_deps["SqsQueueStore"].return_value

    def test_event_base_url_overrides_env(self, _mock_env, mock_deps):
        mock_deps["module"].lambda_handler({"base_url": "https://docs.example.com"}, None)

        processor = mock_deps["CrawlWorker"].call_args.args[1]
        assert processor.base_url == "https://docs.example.com"

    def test_event_with_secret_not_logged(self, _mock_env, mock_deps, caplog):
        caplog.set_level("INFO")

        mock_deps["module"].lambda_handler({"auth_token": "super-secret-value"}, None)

        assert "super-secret-value" not in caplog.text

    def test_uses_mocked_scanner(self, _mock_env, mock_deps):
        mock_deps["module"].lambda_handler({}, None)

        processor = mock_deps["CrawlWorker"].call_args.args[1]
        assert processor.scanner is mock_deps["AxePageScanner"].return_value
        assert isinstance(processor.scanner, MagicMock)
