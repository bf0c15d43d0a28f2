"""Shared fixtures for the ToolLink test suite."""

import sys
from pathlib import Path

import pytest

from toollink.mcp.schema import LaunchSpec
from toollink.validation.config import MCPServerConfig

STUB_PROVIDER = Path(__file__).parent / "stub_provider.py"


@pytest.fixture
def stub_spec():
    """Build a LaunchSpec that runs the scripted stub provider."""

    def _make(*flags, env=None):
        return LaunchSpec(
            command=sys.executable,
            args=(str(STUB_PROVIDER), *flags),
            env=env or {},
        )

    return _make


@pytest.fixture
def stub_server():
    """Build an MCPServerConfig that runs the scripted stub provider."""

    def _make(*flags, enabled=True):
        return MCPServerConfig(
            command=sys.executable,
            args=[str(STUB_PROVIDER), *flags],
            enabled=enabled,
        )

    return _make


@pytest.fixture
def missing_spec():
    """A LaunchSpec whose executable does not exist."""
    return LaunchSpec(command="/nonexistent/toollink-provider")
