"""
mcpexec Configuration - Configuration loading and validation.

This module provides the Config class for managing mcpexec configuration
from both global (~/.mcpexec/config.yaml) and local (.mcpexec/config.yaml)
sources.
"""

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from mcpexec.schema import ProviderEntry


class ConfigError(Exception):
    """Raised when there's a configuration error."""

    pass


class ExecutorConfig(BaseModel):
    """Configuration for the tool executor."""

    max_workers: Optional[int] = Field(default=None, ge=1)
    enforce_permissions: bool = False


class CallLogConfig(BaseModel):
    """Where call-log records go."""

    backend: Literal["memory", "yaml"] = "memory"
    directory: Optional[str] = None


class UsageConfig(BaseModel):
    """Usage counter persistence. Counters stay in memory when ``file`` is unset."""

    file: Optional[str] = None


class MCPExecConfig(BaseModel):
    """Complete mcpexec configuration schema."""

    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    call_log: CallLogConfig = Field(default_factory=CallLogConfig)
    usage: UsageConfig = Field(default_factory=UsageConfig)
    manifests_dir: Optional[str] = None
    providers: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class Config:
    """
    mcpexec configuration manager.

    Handles loading, merging, and validating configuration from:
    - Global: ~/.mcpexec/config.yaml
    - Local: .mcpexec/config.yaml (project-specific)

    Local configuration overrides global configuration.

    Example:
        >>> config = Config.load()
        >>> config.merged.executor.enforce_permissions
        False
        >>> [p.id for p in config.provider_entries()]
        ['calculator', 'weather']
    """

    GLOBAL_CONFIG_DIR = Path.home() / ".mcpexec"
    LOCAL_CONFIG_DIR = Path(".mcpexec")

    def __init__(
        self,
        global_config: Optional[Dict[str, Any]] = None,
        local_config: Optional[Dict[str, Any]] = None,
        base_dir: Optional[Path] = None,
    ):
        """
        Initialize Config.

        Args:
            global_config: Global configuration dictionary.
            local_config: Local (project) configuration dictionary.
            base_dir: Directory that relative paths in the configuration
                are resolved against (the directory holding the local
                config file). Defaults to the current directory.
        """
        self._global_config = global_config or {}
        self._local_config = local_config or {}
        self._base_dir = base_dir
        self._merged: Optional[MCPExecConfig] = None

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """
        Load configuration from default locations.

        Args:
            path: Explicit local config file; replaces the directory walk.

        Returns:
            Config instance with loaded configuration.
        """
        global_config = cls._load_yaml(cls.GLOBAL_CONFIG_DIR / "config.yaml")
        local_path = path if path is not None else cls._find_local_config()
        local_config = cls._load_yaml(local_path)

        base_dir = local_path.parent if local_path is not None else None
        return cls(global_config=global_config, local_config=local_config, base_dir=base_dir)

    @classmethod
    def _load_yaml(cls, path: Optional[Path]) -> Dict[str, Any]:
        """Load YAML file if it exists."""
        if path is None or not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
                return data if data else {}
        except Exception as e:
            raise ConfigError(f"Failed to load config from {path}: {e}")

    @classmethod
    def _find_local_config(cls) -> Optional[Path]:
        """Find the local config file by walking up the directory tree."""
        current = Path.cwd()
        while current != current.parent:
            config_path = current / cls.LOCAL_CONFIG_DIR / "config.yaml"
            if config_path.exists():
                return config_path
            current = current.parent
        return None

    def get_merged_config(self) -> Dict[str, Any]:
        """Get the merged configuration as a dictionary."""
        return self._deep_merge(self._global_config.copy(), self._local_config)

    @property
    def merged(self) -> MCPExecConfig:
        """Get the validated merged configuration."""
        if self._merged is None:
            try:
                self._merged = MCPExecConfig(**self.get_merged_config())
            except ValidationError as e:
                raise ConfigError(f"Invalid configuration: {e}")
        return self._merged

    def resolve_path(self, value: Optional[str]) -> Optional[Path]:
        """Resolve a configured path against the config's base directory."""
        if not value:
            return None
        path = Path(value).expanduser()
        if not path.is_absolute() and self._base_dir is not None:
            path = self._base_dir / path
        return path

    def provider_entries(self) -> List[ProviderEntry]:
        """Validate the inline ``providers`` section into registry entries."""
        entries: List[ProviderEntry] = []
        for provider_id, raw in self.merged.providers.items():
            try:
                entries.append(ProviderEntry(**{"id": provider_id, **(raw or {})}))
            except ValidationError as e:
                raise ConfigError(f"Invalid provider '{provider_id}': {e}")
        return entries

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    @classmethod
    def create_default_local(cls, directory: Optional[Path] = None) -> Path:
        """Create a starter ``.mcpexec/config.yaml`` in ``directory``."""
        config_dir = (directory or Path.cwd()) / cls.LOCAL_CONFIG_DIR
        config_file = config_dir / "config.yaml"

        if config_file.exists():
            return config_file

        config_dir.mkdir(parents=True, exist_ok=True)

        default_config = {
            "executor": {
                "enforce_permissions": False,
            },
            "call_log": {
                "backend": "yaml",
                "directory": "logs",
            },
            "usage": {
                "file": "usage.yaml",
            },
            "manifests_dir": "manifests",
            "providers": {},
        }

        with open(config_file, "w") as f:
            yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)

        return config_file
