"""Provider registry: registration, lookup, visibility and usage accounting."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

import yaml
from pydantic import ValidationError

from mcpexec.permissions import AllowAllPolicy, PermissionPolicy
from mcpexec.schema import ProviderEntry, Scope, ToolDef
from mcpexec.usage import MemoryUsageStore, UsageStore

if TYPE_CHECKING:
    from mcpexec.validation.config import Config

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Raised on invalid registry operations (e.g. duplicate ids)."""


class ToolRegistry:
    """
    Maps provider ids to their scope, connection and tool definitions.

    Entries come from inline configuration, from YAML manifests on disk
    (``{manifests_dir}/{provider_id}.yaml``) or from ``register()`` calls.
    After startup the registry is read-mostly; the only state concurrent
    calls touch is the usage store.
    """

    def __init__(
        self,
        providers: Optional[Iterable[ProviderEntry]] = None,
        permission_policy: Optional[PermissionPolicy] = None,
        usage_store: Optional[UsageStore] = None,
    ):
        self._entries: Dict[str, ProviderEntry] = {}
        self._lock = threading.Lock()
        self.permission_policy: PermissionPolicy = permission_policy or AllowAllPolicy()
        self.usage_store: UsageStore = usage_store if usage_store is not None else MemoryUsageStore()
        for entry in providers or []:
            self.register(entry)

    @classmethod
    def from_config(
        cls,
        config: "Config",
        permission_policy: Optional[PermissionPolicy] = None,
        usage_store: Optional[UsageStore] = None,
    ) -> "ToolRegistry":
        """Build a registry from inline providers plus the manifests directory."""
        registry = cls(permission_policy=permission_policy, usage_store=usage_store)
        manifests_dir = config.resolve_path(config.merged.manifests_dir)
        if manifests_dir is not None:
            registry.load_manifests(manifests_dir)
        for entry in config.provider_entries():
            registry.register(entry, replace=True)
        return registry

    # ── Registration ──────────────────────────────────────────────────────

    def register(self, entry: ProviderEntry, replace: bool = False) -> None:
        """Add a provider. Re-registering an id requires ``replace=True``."""
        with self._lock:
            if entry.id in self._entries and not replace:
                raise RegistryError(f"MCP already registered: {entry.id}")
            self._entries[entry.id] = entry
        logger.debug("Registered %s (%s, %d tools)", entry.id, entry.scope.value, len(entry.tools))

    def unregister(self, provider_id: str) -> bool:
        with self._lock:
            return self._entries.pop(provider_id, None) is not None

    # ── Lookup ────────────────────────────────────────────────────────────

    def resolve(self, provider_id: str) -> Optional[ProviderEntry]:
        """Return the provider, or None if it is not registered."""
        with self._lock:
            return self._entries.get(provider_id)

    def list_providers(self) -> List[ProviderEntry]:
        with self._lock:
            return list(self._entries.values())

    def list_by_scope(self, scope: Scope) -> List[ProviderEntry]:
        return [e for e in self.list_providers() if e.accepts_scope(scope)]

    def is_permitted(self, user_id: Optional[int], entry: ProviderEntry) -> bool:
        """Builtin providers are open to everyone; the rest ask the permission policy."""
        if entry.is_builtin:
            return True
        return self.permission_policy.is_allowed(user_id, entry.id)

    def list_available(self, user_id: Optional[int], scope: Scope) -> List[ProviderEntry]:
        """Providers usable in ``scope`` that ``user_id`` is permitted to use."""
        return [e for e in self.list_by_scope(scope) if self.is_permitted(user_id, e)]

    def get_tools(self, provider_id: str) -> List[ToolDef]:
        entry = self.resolve(provider_id)
        return list(entry.tools) if entry else []

    def get_tool(self, provider_id: str, tool_name: str) -> Optional[ToolDef]:
        entry = self.resolve(provider_id)
        return entry.get_tool(tool_name) if entry else None

    def search(self, query: str, scope: Optional[Scope] = None) -> List[ProviderEntry]:
        """Case-insensitive match on id, name and description."""
        needle = query.lower()
        candidates = self.list_by_scope(scope) if scope else self.list_providers()
        return [
            e
            for e in candidates
            if needle in e.id.lower() or needle in e.name.lower() or needle in e.description.lower()
        ]

    # ── Usage ─────────────────────────────────────────────────────────────

    def record_usage(self, user_id: int, provider_id: str) -> None:
        """Bump the usage counter. Never raises."""
        try:
            self.usage_store.increment(user_id, provider_id)
        except Exception:
            logger.warning("Failed to record usage for user %s on %s", user_id, provider_id, exc_info=True)

    # ── Manifest I/O ──────────────────────────────────────────────────────

    def load_manifests(self, directory: Path) -> List[ProviderEntry]:
        """Register every ``*.yaml`` manifest in ``directory``; bad files are skipped."""
        loaded: List[ProviderEntry] = []
        if not directory.is_dir():
            return loaded
        for path in sorted(directory.glob("*.yaml")):
            try:
                with open(path) as f:
                    data = yaml.safe_load(f) or {}
                if not isinstance(data, dict):
                    raise TypeError("manifest must be a mapping")
                data.setdefault("id", path.stem)
                entry = ProviderEntry(**data)
            except (OSError, yaml.YAMLError, ValidationError, TypeError) as exc:
                logger.warning("Skipping manifest %s: %s", path, exc)
                continue
            self.register(entry, replace=True)
            loaded.append(entry)
        return loaded

    @staticmethod
    def write_manifest(entry: ProviderEntry, directory: Path) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{entry.id}.yaml"
        with open(path, "w") as f:
            yaml.dump(entry.model_dump(mode="json"), f, default_flow_style=False, sort_keys=False)
        return path
