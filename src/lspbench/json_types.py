"""JSON value aliases for JSON-RPC payloads.

Every frame body is a JSON object; these keep payload types explicit instead
of widening to ``Any``.
"""

from __future__ import annotations

from typing import TypeAlias

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]
