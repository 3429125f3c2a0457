"""In-memory sinks for driving the page processor end to end in tests."""

import copy
from typing import Any

from scanstack_common.storage import BlobStore, ResultStream, SummaryStore


class InMemorySummaryStore(SummaryStore):
    """SummaryStore backed by a dict keyed by (record_type, request_id)."""

    def __init__(self):
        self.records: dict[tuple[str, str], dict[str, Any]] = {}

    def put(self, record_type: str, request_id: str, record: dict[str, Any]) -> None:
        self.records[(record_type, request_id)] = copy.deepcopy(record)

    def claim(self, record_type: str, request_id: str, record: dict[str, Any]) -> bool:
        if (record_type, request_id) in self.records:
            return False
        self.put(record_type, request_id, record)
        return True

    def release(self, record_type: str, request_id: str) -> None:
        self.records.pop((record_type, request_id), None)

    def get(self, record_type: str, request_id: str) -> dict[str, Any] | None:
        record = self.records.get((record_type, request_id))
        return copy.deepcopy(record) if record is not None else None

    def append(self, record_type: str, request_id: str, field: str, values: list[Any]) -> None:
        record = self.records.setdefault((record_type, request_id), {})
        record.setdefault(field, []).extend(values)


class InMemoryBlobStore(BlobStore):
    def __init__(self):
        self.values: dict[str, Any] = {}

    def location_for(self, key: str, content_type: str = "application/json") -> str:
        return f"memory://{key}"

    def set_value(self, key: str, content: Any, content_type: str = "application/json") -> str:
        self.values[key] = content
        return self.location_for(key, content_type)


class InMemoryResultStream(ResultStream):
    def __init__(self):
        self.records: list[dict[str, Any]] = []

    def push(self, record: dict[str, Any]) -> None:
        self.records.append(copy.deepcopy(record))
