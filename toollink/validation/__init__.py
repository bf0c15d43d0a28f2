"""
ToolLink validation module.

This module provides configuration validation and schema enforcement.
"""

from toollink.validation.config import Config, ConfigError, MCPServerConfig, ToolLinkConfig

__all__ = ["Config", "ConfigError", "MCPServerConfig", "ToolLinkConfig"]
