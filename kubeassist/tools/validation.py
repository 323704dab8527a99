"""
Lenient argument handling for model-issued tool calls.

Raw argument text is parsed into a JSON object, type-checked against the
tool's schema with ``required`` and ``additionalProperties`` relaxed, and
decoded into the tool's argument dataclass.  Missing keys take the
dataclass defaults; unknown keys are ignored.
"""

from __future__ import annotations

import json
from dataclasses import fields
from typing import Any, get_type_hints

import jsonschema

from kubeassist.tools.base import Tool, normalize_schema


class ArgumentError(ValueError):
    pass


def parse_arguments(raw: str) -> dict:
    """Parse raw argument text; empty text means no arguments."""
    if not raw or not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ArgumentError(f"arguments are not valid JSON: {e.msg}") from e
    if not isinstance(value, dict):
        raise ArgumentError("arguments must be a JSON object")
    return value


def lenient_schema(tool: Tool) -> dict:
    schema = normalize_schema(tool.parameters)
    schema.pop("required", None)
    schema.pop("additionalProperties", None)
    return schema


class ToolValidator:
    @staticmethod
    def validate(tool: Tool, arguments: dict) -> tuple[bool, str | None]:
        present = {k: v for k, v in arguments.items() if v is not None}
        try:
            jsonschema.validate(instance=present, schema=lenient_schema(tool))
            return True, None
        except jsonschema.ValidationError as e:
            return False, str(e.message)


def decode_arguments(args_type: type, arguments: dict) -> Any:
    hints = get_type_hints(args_type)
    values: dict[str, Any] = {}
    for f in fields(args_type):
        value = arguments.get(f.name)
        if value is None:
            continue
        if hints.get(f.name) is int and isinstance(value, float):
            value = int(value)
        values[f.name] = value
    return args_type(**values)
