"""Permission policies consulted by the registry when listing or checking providers."""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Protocol, Tuple


class PermissionPolicy(Protocol):
    def is_allowed(self, user_id: Optional[int], provider_id: str) -> bool:
        ...


class AllowAllPolicy:
    """Every user may use every provider."""

    def is_allowed(self, user_id: Optional[int], provider_id: str) -> bool:
        return True


class InstallPolicy:
    """
    Per-user install records.

    A user may use a non-builtin provider once they have installed it and
    the install is enabled. Anonymous callers (``user_id`` None) are denied.
    """

    def __init__(self) -> None:
        self._installs: Dict[Tuple[int, str], bool] = {}
        self._lock = threading.Lock()

    def install(self, user_id: int, provider_id: str) -> None:
        with self._lock:
            self._installs[(user_id, provider_id)] = True

    def uninstall(self, user_id: int, provider_id: str) -> bool:
        with self._lock:
            return self._installs.pop((user_id, provider_id), None) is not None

    def set_enabled(self, user_id: int, provider_id: str, enabled: bool) -> None:
        with self._lock:
            if (user_id, provider_id) not in self._installs:
                raise KeyError(f"user {user_id} has not installed {provider_id}")
            self._installs[(user_id, provider_id)] = enabled

    def installed(self, user_id: int) -> List[str]:
        with self._lock:
            return [pid for (uid, pid) in self._installs if uid == user_id]

    def is_allowed(self, user_id: Optional[int], provider_id: str) -> bool:
        if user_id is None:
            return False
        with self._lock:
            return self._installs.get((user_id, provider_id), False)
