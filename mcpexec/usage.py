"""Usage counters: advisory per-user, per-provider invocation counts."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, Protocol, Tuple

import yaml


class UsageStore(Protocol):
    def increment(self, user_id: int, provider_id: str) -> None:
        ...


class MemoryUsageStore:
    """
    In-memory counters with an explicit load/flush lifecycle.

    Counters are keyed by ``(user_id, provider_id)``. ``load()`` restores
    counts from a YAML file at startup and ``flush()`` writes them back;
    neither happens implicitly.
    """

    def __init__(self) -> None:
        self._counts: Dict[Tuple[int, str], int] = {}
        self._lock = threading.Lock()

    def increment(self, user_id: int, provider_id: str) -> None:
        with self._lock:
            key = (user_id, provider_id)
            self._counts[key] = self._counts.get(key, 0) + 1

    def get(self, user_id: int, provider_id: str) -> int:
        with self._lock:
            return self._counts.get((user_id, provider_id), 0)

    def total(self, provider_id: str) -> int:
        with self._lock:
            return sum(n for (_, pid), n in self._counts.items() if pid == provider_id)

    def snapshot(self) -> Dict[Tuple[int, str], int]:
        with self._lock:
            return dict(self._counts)

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()

    # ── Persistence ───────────────────────────────────────────────────────

    def load(self, path: Path) -> None:
        """Merge counts from ``path`` (``{user_id: {provider_id: count}}``)."""
        if not path.exists():
            return
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        with self._lock:
            for user_id, providers in data.items():
                for provider_id, count in (providers or {}).items():
                    key = (int(user_id), str(provider_id))
                    self._counts[key] = self._counts.get(key, 0) + int(count)

    def flush(self, path: Path) -> None:
        """Write all counters to ``path``, replacing its contents."""
        nested: Dict[int, Dict[str, int]] = {}
        for (user_id, provider_id), count in sorted(self.snapshot().items()):
            nested.setdefault(user_id, {})[provider_id] = count
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(nested, f, default_flow_style=False, sort_keys=False)
