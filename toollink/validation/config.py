"""
ToolLink Configuration - Configuration loading and validation.

This module provides the Config class for managing ToolLink configuration
from both global (~/.toollink/config.yaml) and local (.toollink/config.yaml)
sources.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from toollink import __version__
from toollink.mcp.schema import LaunchSpec


class ConfigError(Exception):
    """Raised when there's a configuration error."""

    pass


class MCPServerConfig(BaseModel):
    """Configuration for a single MCP tool provider."""

    command: str
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    enabled: bool = True

    @field_validator("command")
    @classmethod
    def _command_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("command must not be empty")
        return value

    def to_launch_spec(self) -> LaunchSpec:
        return LaunchSpec(command=self.command, args=tuple(self.args), env=dict(self.env))

    def display(self) -> str:
        return " ".join([self.command, *self.args])


class MCPConfig(BaseModel):
    """Configuration shared by all MCP tool providers."""

    timeout: float = 30.0
    protocol_version: str = "2024-11-05"
    client_name: str = "toollink"
    client_version: str = __version__
    servers: Dict[str, MCPServerConfig] = Field(default_factory=dict)

    @field_validator("timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout must be greater than zero")
        return value


class ToolLinkConfig(BaseModel):
    """Complete ToolLink configuration schema."""

    mcp: MCPConfig = Field(default_factory=MCPConfig)


class Config:
    """
    ToolLink configuration manager.

    Handles loading, merging, and validating configuration from:
    - Global: ~/.toollink/config.yaml
    - Local: .toollink/config.yaml (project-specific)

    Local configuration overrides global configuration. A top-level
    ``mcpServers`` mapping, as written by other MCP hosts, is folded into
    ``mcp.servers``.

    Example:
        >>> config = Config.load()
        >>> config.add_server("time", "uvx", ["mcp-server-time"])
        >>> config.save()
    """

    GLOBAL_CONFIG_DIR = Path.home() / ".toollink"
    LOCAL_CONFIG_DIR = Path(".toollink")

    def __init__(
        self,
        global_config: Optional[Dict[str, Any]] = None,
        local_config: Optional[Dict[str, Any]] = None,
        local_path: Optional[Path] = None,
    ):
        """
        Initialize Config.

        Args:
            global_config: Global configuration dictionary.
            local_config: Local (project) configuration dictionary.
            local_path: Where the local configuration lives, if known.
        """
        self._global_config = global_config or {}
        self._local_config = local_config or {}
        self._local_path = local_path
        self._merged: Optional[ToolLinkConfig] = None

    @classmethod
    def load(cls) -> "Config":
        """
        Load configuration from default locations.

        Returns:
            Config instance with loaded configuration.
        """
        local_path = cls._find_local_config()
        global_config = cls._load_yaml(cls.GLOBAL_CONFIG_DIR / "config.yaml")
        local_config = cls._load_yaml(local_path)

        return cls(global_config=global_config, local_config=local_config, local_path=local_path)

    @classmethod
    def _load_yaml(cls, path: Optional[Path]) -> Dict[str, Any]:
        """Load YAML file if it exists."""
        if path is None or not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return data

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
        merged = self._deep_merge(
            self._normalize(self._global_config),
            self._normalize(self._local_config),
        )
        return merged

    def get_global_config(self) -> Dict[str, Any]:
        """Get the global configuration."""
        return self._global_config

    def get_local_config(self) -> Dict[str, Any]:
        """Get the local configuration."""
        return self._local_config

    @property
    def merged(self) -> ToolLinkConfig:
        """Get the validated merged configuration."""
        if self._merged is None:
            try:
                self._merged = ToolLinkConfig(**self.get_merged_config())
            except ValidationError as e:
                raise ConfigError(f"Invalid configuration: {e}")
        return self._merged

    def get_servers(self, include_disabled: bool = False) -> Dict[str, MCPServerConfig]:
        """Get configured MCP servers, enabled ones only unless asked otherwise."""
        return {
            name: server
            for name, server in self.merged.mcp.servers.items()
            if include_disabled or server.enabled
        }

    def add_server(
        self,
        name: str,
        command: str,
        args: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
        global_: bool = False,
    ) -> MCPServerConfig:
        """
        Add or replace an MCP server.

        Args:
            name: Name the server is listed under.
            command: Executable to launch.
            args: Arguments for the executable.
            env: Extra environment variables for the process.
            global_: Whether to store globally or locally.
        """
        try:
            server = MCPServerConfig(command=command, args=args or [], env=env or {})
        except ValidationError as e:
            raise ConfigError(f"Invalid server '{name}': {e}")

        config = self._global_config if global_ else self._local_config
        config.setdefault("mcp", {}).setdefault("servers", {})[name] = server.model_dump()
        self._merged = None  # Reset cache
        return server

    def remove_server(self, name: str, global_: bool = False) -> bool:
        """Remove an MCP server. Returns False if it was not configured there."""
        config = self._global_config if global_ else self._local_config
        removed = False

        servers = config.get("mcp", {}).get("servers", {})
        if name in servers:
            del servers[name]
            removed = True

        legacy = config.get("mcpServers", {})
        if name in legacy:
            del legacy[name]
            removed = True

        if removed:
            self._merged = None
        return removed

    def save(self) -> None:
        """Save configuration to files."""
        self._save_yaml(self.GLOBAL_CONFIG_DIR / "config.yaml", self._global_config)

        local_path = self._local_path or self._find_local_config()
        if local_path is None and self._local_config:
            local_path = Path.cwd() / self.LOCAL_CONFIG_DIR / "config.yaml"
        if local_path:
            self._save_yaml(local_path, self._local_config)
            self._local_path = local_path

    def _save_yaml(self, path: Path, data: Dict[str, Any]) -> None:
        """Save data to a YAML file."""
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def _normalize(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Fold a top-level ``mcpServers`` mapping into ``mcp.servers``."""
        if "mcpServers" not in config:
            return config.copy()

        result = {key: value for key, value in config.items() if key != "mcpServers"}
        mcp = dict(result.get("mcp") or {})
        servers = dict(config["mcpServers"] or {})
        servers.update(mcp.get("servers") or {})
        mcp["servers"] = servers
        result["mcp"] = mcp
        return result

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result
