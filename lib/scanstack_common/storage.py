"""
Result sinks for crawl attempts.

Provides the three persistence capabilities the page processor writes to,
plus their AWS implementations:

- SummaryStore: small structured facts per attempt (DynamoDB)
- BlobStore: large artifacts such as stack traces, reports, screenshots (S3)
- ResultStream: per-attempt records for downstream aggregation (S3 JSON objects)

All writes are keyed by request id so concurrent attempts never collide.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from scanstack_common.constants import (
    ARTIFACT_PREFIX,
    CONTENT_TYPE_EXTENSIONS,
    RESULT_STREAM_PREFIX,
)

logger = logging.getLogger(__name__)

# Standard retry mode is the retry wrapper for every sink write
_SINK_CLIENT_CONFIG = Config(retries={"max_attempts": 5, "mode": "standard"})

# Lazy-loaded AWS clients (initialized on first use)
_s3_client = None
_dynamodb = None


def get_s3_client():
    """Get or create S3 client."""
    global _s3_client
    if _s3_client is None:
        _s3_client = boto3.client("s3", config=_SINK_CLIENT_CONFIG)
    return _s3_client


def get_dynamodb():
    """Get or create DynamoDB resource."""
    global _dynamodb
    if _dynamodb is None:
        _dynamodb = boto3.resource("dynamodb", config=_SINK_CLIENT_CONFIG)
    return _dynamodb


# ============================================================================
# S3 Helpers
# ============================================================================


def parse_s3_uri(s3_uri: str) -> tuple[str, str]:
    """
    Parse S3 URI into bucket and key.

    Example:
        bucket, key = parse_s3_uri("s3://my-bucket/key_value_stores/scan-results/abc.err.txt")
        # bucket = "my-bucket"
        # key = "key_value_stores/scan-results/abc.err.txt"
    """
    if not s3_uri.startswith("s3://"):
        raise ValueError(f"Invalid S3 URI: {s3_uri}")

    parts = s3_uri[5:].split("/", 1)
    bucket = parts[0]
    key = parts[1] if len(parts) > 1 else ""
    return bucket, key


def write_s3_object(s3_uri: str, body: bytes, content_type: str, client=None) -> str:
    """
    Write raw bytes to S3.

    Returns:
        The S3 URI that was written to
    """
    bucket, key = parse_s3_uri(s3_uri)
    try:
        (client or get_s3_client()).put_object(
            Bucket=bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
        )
        logger.debug(f"Wrote {content_type} to {s3_uri}")
        return s3_uri
    except ClientError as e:
        logger.error(f"Failed to write S3 object to {s3_uri}: {e}")
        raise


def _encode(content: Any, content_type: str) -> bytes:
    if isinstance(content, bytes):
        return content
    if isinstance(content, str):
        return content.encode("utf-8")
    if content_type == "application/json":
        return json.dumps(content, indent=2, default=str).encode("utf-8")
    return str(content).encode("utf-8")


# ============================================================================
# Sink Interfaces
# ============================================================================


class SummaryStore(ABC):
    """Key-value store of small per-attempt summary records."""

    @abstractmethod
    def put(self, record_type: str, request_id: str, record: dict[str, Any]) -> None:
        """Write a record under key (record_type, request_id)."""

    @abstractmethod
    def claim(self, record_type: str, request_id: str, record: dict[str, Any]) -> bool:
        """Write a record only if the key is absent. Returns False if it existed."""

    @abstractmethod
    def release(self, record_type: str, request_id: str) -> None:
        """Delete the record under key, e.g. to give up a claim."""

    @abstractmethod
    def get(self, record_type: str, request_id: str) -> dict[str, Any] | None:
        """Record under key without its key fields, or None."""

    @abstractmethod
    def append(self, record_type: str, request_id: str, field: str, values: list[Any]) -> None:
        """Append values to a list field, creating the record if needed."""


class BlobStore(ABC):
    """Artifact store for large unstructured content."""

    @abstractmethod
    def set_value(self, key: str, content: Any, content_type: str = "application/json") -> str:
        """Store content under key. Returns the artifact location."""

    @abstractmethod
    def location_for(self, key: str, content_type: str = "application/json") -> str:
        """Location a value stored under key would have."""


class ResultStream(ABC):
    """Append-only stream of per-attempt result records."""

    @abstractmethod
    def push(self, record: dict[str, Any]) -> None:
        """Append a record."""


# ============================================================================
# AWS Implementations
# ============================================================================


class DynamoSummaryStore(SummaryStore):
    """
    Summary records in a DynamoDB table keyed by (request_id, record_type).

    Usage:
        store = DynamoSummaryStore("scan-results")
        store.put("pass", request.id, {"url": request.url, "num_failures": 0})
    """

    def __init__(self, table_name: str, dynamodb=None):
        self.table_name = table_name
        self.table = (dynamodb or get_dynamodb()).Table(table_name)

    def put(self, record_type: str, request_id: str, record: dict[str, Any]) -> None:
        try:
            self.table.put_item(Item=self._item(record_type, request_id, record))
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            logger.error(
                f"Failed to write {record_type} record for {request_id}: {error_code} - {e}"
            )
            raise

    def claim(self, record_type: str, request_id: str, record: dict[str, Any]) -> bool:
        try:
            self.table.put_item(
                Item=self._item(record_type, request_id, record),
                ConditionExpression="attribute_not_exists(request_id)",
            )
            return True
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code == "ConditionalCheckFailedException":
                return False
            logger.error(f"Failed to claim {record_type} record for {request_id}: {error_code} - {e}")
            raise

    def release(self, record_type: str, request_id: str) -> None:
        try:
            self.table.delete_item(Key={"request_id": request_id, "record_type": record_type})
        except ClientError as e:
            logger.error(f"Failed to release {record_type} record for {request_id}: {e}")
            raise

    def get(self, record_type: str, request_id: str) -> dict[str, Any] | None:
        try:
            response = self.table.get_item(
                Key={"request_id": request_id, "record_type": record_type},
                ConsistentRead=True,
            )
        except ClientError as e:
            logger.error(f"Failed to read {record_type} record for {request_id}: {e}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return {k: v for k, v in item.items() if k not in ("request_id", "record_type")}

    def append(self, record_type: str, request_id: str, field: str, values: list[Any]) -> None:
        """Single update_item with list_append; concurrent appends all land."""
        try:
            self.table.update_item(
                Key={"request_id": request_id, "record_type": record_type},
                UpdateExpression=(
                    "SET #field = list_append(if_not_exists(#field, :empty), :values), "
                    "recorded_at = :recorded_at"
                ),
                ExpressionAttributeNames={"#field": field},
                ExpressionAttributeValues={
                    ":empty": [],
                    ":values": values,
                    ":recorded_at": datetime.now(UTC).isoformat(),
                },
            )
        except ClientError as e:
            logger.error(f"Failed to append to {record_type}.{field} for {request_id}: {e}")
            raise

    @staticmethod
    def _item(record_type: str, request_id: str, record: dict[str, Any]) -> dict[str, Any]:
        return {
            **record,
            "request_id": request_id,
            "record_type": record_type,
            "recorded_at": datetime.now(UTC).isoformat(),
        }


class S3BlobStore(BlobStore):
    """
    Artifacts stored as S3 objects under a key-value-store prefix.

    The object key gets an extension derived from the content type, so
    "abc.err" stored as text/plain lands at "<prefix>/abc.err.txt".
    """

    def __init__(self, bucket: str, prefix: str = ARTIFACT_PREFIX, client=None):
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.client = client or get_s3_client()

    def location_for(self, key: str, content_type: str = "application/json") -> str:
        extension = CONTENT_TYPE_EXTENSIONS.get(content_type, "")
        return f"s3://{self.bucket}/{self.prefix}/{key}{extension}"

    def set_value(self, key: str, content: Any, content_type: str = "application/json") -> str:
        location = self.location_for(key, content_type)
        return write_s3_object(
            location, _encode(content, content_type), content_type, client=self.client
        )


class S3ResultStream(ResultStream):
    """
    Result records written as individual JSON objects.

    Each push creates a new object, so several records for the same request
    (e.g. one per attempt) are all kept for aggregation.
    """

    def __init__(self, bucket: str, prefix: str = RESULT_STREAM_PREFIX, client=None):
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.client = client or get_s3_client()

    def push(self, record: dict[str, Any]) -> None:
        record_id = record.get("id", "unknown")
        object_name = f"{record_id}-{uuid.uuid4().hex}.json"
        write_s3_object(
            f"s3://{self.bucket}/{self.prefix}/{object_name}",
            _encode(record, "application/json"),
            "application/json",
            client=self.client,
        )
