"""Tests for tool argument parsing, validation and decoding."""

from dataclasses import dataclass

import pytest

from kubeassist.tools.kubernetes import ScaleArgs, ScaleDeploymentTool
from kubeassist.tools.validation import (
    ArgumentError,
    ToolValidator,
    decode_arguments,
    lenient_schema,
    parse_arguments,
)
from tests.mock_tools import EchoTool


class StrictTool(EchoTool):
    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {"message": {"type": "string"}},
            "required": ["message"],
            "additionalProperties": False,
        }


class TestParseArguments:
    @pytest.mark.parametrize("raw", ["", "   ", "\n"])
    def test_empty_text_means_no_arguments(self, raw):
        assert parse_arguments(raw) == {}

    def test_object(self):
        assert parse_arguments('{"namespace": "default"}') == {"namespace": "default"}

    def test_invalid_json(self):
        with pytest.raises(ArgumentError, match="not valid JSON"):
            parse_arguments('{"namespace": ')

    @pytest.mark.parametrize("raw", ["[1, 2]", '"default"', "42", "null"])
    def test_non_object(self, raw):
        with pytest.raises(ArgumentError, match="JSON object"):
            parse_arguments(raw)


class TestToolValidator:
    def test_valid_args(self):
        ok, err = ToolValidator.validate(EchoTool(), {"message": "hello"})
        assert ok is True
        assert err is None

    def test_missing_required_is_tolerated(self):
        ok, _ = ToolValidator.validate(StrictTool(), {})
        assert ok

    def test_unknown_keys_are_tolerated(self):
        ok, _ = ToolValidator.validate(StrictTool(), {"message": "x", "extra": 1})
        assert ok

    def test_null_values_are_ignored(self):
        ok, _ = ToolValidator.validate(EchoTool(), {"message": None})
        assert ok

    def test_wrong_type(self):
        ok, err = ToolValidator.validate(EchoTool(), {"message": 123})
        assert not ok
        assert "123" in err

    def test_lenient_schema_leaves_tool_schema_alone(self):
        tool = StrictTool()
        schema = lenient_schema(tool)
        assert "required" not in schema
        assert "additionalProperties" not in schema
        assert tool.parameters["required"] == ["message"]

    def test_integer_replicas(self):
        ok, _ = ToolValidator.validate(ScaleDeploymentTool(), {"replicas": 3})
        assert ok
        ok, err = ToolValidator.validate(ScaleDeploymentTool(), {"replicas": "three"})
        assert not ok


@dataclass
class _Args:
    name: str = "default-name"
    count: int = 0


class TestDecodeArguments:
    def test_missing_keys_take_defaults(self):
        assert decode_arguments(_Args, {}) == _Args()

    def test_unknown_keys_are_dropped(self):
        assert decode_arguments(_Args, {"name": "x", "bogus": True}) == _Args(name="x")

    def test_null_takes_default(self):
        assert decode_arguments(_Args, {"name": None}).name == "default-name"

    def test_integral_float_becomes_int(self):
        args = decode_arguments(ScaleArgs, {"namespace": "default", "name": "web", "replicas": 5.0})
        assert args.replicas == 5
        assert isinstance(args.replicas, int)
        assert args.confirmed is False
