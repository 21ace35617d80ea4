"""
Builtin executors for the general-purpose node types.

These have no external dependencies and are what the CLI runs with. AI
providers and third-party integrations register their own executors.
"""

from __future__ import annotations

import json
from typing import Any, Dict

from ..errors import NodeExecutionError
from .registry import ExecutorRegistry


def run_input(params: Dict[str, Any]) -> Dict[str, Any]:
    """Workflow input: exposes the user-provided value as ``text``."""
    return {"text": params.get("value", "")}


def run_text(params: Dict[str, Any]) -> Dict[str, Any]:
    return {"output": params.get("text", "")}


def run_output(params: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "output": params.get("value", ""),
        "type": params.get("type") or "Text",
    }


def run_note(params: Dict[str, Any]) -> Dict[str, Any]:
    return {"note": params.get("note", "")}


def run_merge(params: Dict[str, Any]) -> Dict[str, Any]:
    """Join the ``inputs`` list with ``separator`` (newline by default)."""
    inputs = params.get("inputs") or []
    if not isinstance(inputs, list):
        inputs = [inputs]
    separator = params.get("separator", "\n")
    return {"output": separator.join(str(item) for item in inputs if item not in (None, ""))}


def run_transform(params: Dict[str, Any]) -> Dict[str, Any]:
    """Apply a simple named transformation to ``input``."""
    data = params.get("input")
    transformation = params.get("transformation")

    if data in (None, "") or not transformation:
        return {"output": data}

    if transformation == "uppercase":
        return {"output": data.upper() if isinstance(data, str) else data}
    if transformation == "lowercase":
        return {"output": data.lower() if isinstance(data, str) else data}
    if transformation == "string":
        return {"output": str(data)}
    if transformation == "number":
        try:
            return {"output": float(data) if "." in str(data) else int(data)}
        except (TypeError, ValueError):
            raise NodeExecutionError(f"Cannot convert {data!r} to a number")
    if transformation == "json":
        if isinstance(data, str):
            try:
                return {"output": json.loads(data)}
            except json.JSONDecodeError as e:
                raise NodeExecutionError(f"Invalid JSON input: {e}")
        return {"output": json.dumps(data)}

    raise NodeExecutionError(f"Unknown transformation: {transformation}")


def register_builtin_executors(registry: ExecutorRegistry) -> ExecutorRegistry:
    """Register the builtin node types on ``registry``."""
    registry.executor("input", output_fields=("text",))(run_input)
    registry.executor("text", output_fields=("output",))(run_text)
    registry.executor("output", output_fields=("output", "type"))(run_output)
    registry.executor("note", output_fields=("note",))(run_note)
    registry.executor("merge", output_fields=("output",), required_params=("inputs",))(run_merge)
    registry.executor("transform", output_fields=("output",), required_params=("input",))(run_transform)
    return registry


def create_default_registry() -> ExecutorRegistry:
    """A fresh registry with the builtin executors."""
    return register_builtin_executors(ExecutorRegistry())


__all__ = [
    "register_builtin_executors",
    "create_default_registry",
]
