"""Data models for MCP launch specs, JSON-RPC frames, and tool descriptors."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

JSONRPC_VERSION = "2.0"


class LaunchSpec(BaseModel):
    """How to start a tool provider process. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    command: str
    args: Tuple[str, ...] = ()
    env: Dict[str, str] = Field(default_factory=dict)

    @property
    def argv(self) -> List[str]:
        return [self.command, *self.args]

    def display(self) -> str:
        return " ".join(self.argv)


# ── JSON-RPC frames ───────────────────────────────────────────────────────


class JSONRPCRequest(BaseModel):
    """Outbound request frame."""

    jsonrpc: str = JSONRPC_VERSION
    id: int
    method: str
    params: Dict[str, Any] = Field(default_factory=dict)

    def to_line(self) -> bytes:
        """Serialize as a single ``\\n``-terminated line of UTF-8 JSON."""
        return (json.dumps(self.model_dump(), ensure_ascii=False) + "\n").encode("utf-8")


class JSONRPCErrorObject(BaseModel):
    """Inbound ``error`` member. Providers are not always strict about its shape."""

    code: int = 0
    message: Optional[str] = None
    data: Any = None


# ── Tools ─────────────────────────────────────────────────────────────────


def _empty_object_schema() -> Dict[str, Any]:
    return {"type": "object", "properties": {}}


class ToolDescriptor(BaseModel):
    """A tool as advertised by a provider's ``tools/list`` response."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=_empty_object_schema, alias="inputSchema")

    @field_validator("description", mode="before")
    @classmethod
    def _none_description(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("input_schema", mode="before")
    @classmethod
    def _none_schema(cls, value: Any) -> Any:
        return _empty_object_schema() if value is None else value

    def to_function_schema(self) -> Dict[str, Any]:
        """Generic function-calling shape consumed by chat providers."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }


def content_to_text(content: Optional[List[Any]]) -> str:
    """Flatten an MCP ``content`` array into display text."""
    if not content:
        return ""
    parts = []
    for part in content:
        if isinstance(part, dict) and part.get("type") == "text":
            parts.append(str(part.get("text", "")))
        elif isinstance(part, str):
            parts.append(part)
        else:
            parts.append(json.dumps(part, ensure_ascii=False, separators=(",", ":")))
    return "\n".join(parts)
