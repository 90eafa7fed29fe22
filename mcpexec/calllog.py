"""Call-log sinks: one append-only record per invocation attempt."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Iterator, List, Optional, Protocol

import yaml

from mcpexec.schema import CallLogRecord, CallRequest, CallStatus


class CallLogStore(Protocol):
    def append(self, record: CallLogRecord) -> None:
        ...


def _serialize(value: Any) -> str:
    return json.dumps(value, default=str, ensure_ascii=False)


def build_log_record(
    request: CallRequest,
    status: CallStatus,
    latency_ms: int,
    result: Any = None,
    error_message: Optional[str] = None,
) -> CallLogRecord:
    """Build the log record for one call; absent users are logged as user 0."""
    return CallLogRecord(
        user_id=request.user_id or 0,
        provider_id=request.provider_id,
        tool=request.tool,
        scope=request.scope,
        params_serialized=_serialize(request.params),
        result_serialized=_serialize(result) if result is not None else None,
        status=status,
        latency_ms=max(latency_ms, 0),
        error_message=error_message,
    )


class MemoryCallLog:
    """Keeps records in a list. Useful for tests and short-lived processes."""

    def __init__(self) -> None:
        self._records: List[CallLogRecord] = []
        self._lock = threading.Lock()

    def append(self, record: CallLogRecord) -> None:
        with self._lock:
            self._records.append(record)

    @property
    def records(self) -> List[CallLogRecord]:
        with self._lock:
            return list(self._records)

    def for_provider(self, provider_id: str) -> List[CallLogRecord]:
        return [r for r in self.records if r.provider_id == provider_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class YamlCallLog:
    """
    Writes each record to ``{directory}/{log_id}.yaml``.

    Files are created exclusively and never rewritten, so the directory is
    an append-only audit trail.
    """

    def __init__(self, directory: Path):
        self._dir = directory
        self._dir.mkdir(parents=True, exist_ok=True)

    def append(self, record: CallLogRecord) -> None:
        path = self._dir / f"{record.log_id}.yaml"
        with open(path, "x") as f:
            yaml.dump(record.model_dump(mode="json"), f, default_flow_style=False, sort_keys=False)

    def read(self, log_id: str) -> Optional[CallLogRecord]:
        """Read a previously written record."""
        path = self._dir / f"{log_id}.yaml"
        if not path.exists():
            return None
        with open(path) as f:
            data = yaml.safe_load(f)
        return CallLogRecord(**data) if data else None

    def iter_records(self) -> Iterator[CallLogRecord]:
        """Yield all records, oldest first."""
        records = []
        for path in self._dir.glob("*.yaml"):
            with open(path) as f:
                data = yaml.safe_load(f)
            if data:
                records.append(CallLogRecord(**data))
        records.sort(key=lambda r: r.created_at)
        yield from records
