"""Tool contract, decorator and schema helpers for LLMs."""

from __future__ import annotations

import inspect
import json
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, get_args, get_origin

from ..core.errors import ToolExecutionError


def tool(
    _fn: Callable | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
) -> Callable:
    """Decorator to mark a function as a tool and optionally name it."""

    def wrapper(fn: Callable) -> Callable:
        tool_name = name or getattr(fn, "__name__", "tool")
        setattr(fn, "__tool_name__", tool_name)
        if description is not None:
            setattr(fn, "__tool_description__", description)
        return fn

    if _fn is None:
        return wrapper

    return wrapper(_fn)


_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}

_ARG_LINE = re.compile(r"^\s+(\w+)(?:\s*\([^)]*\))?:\s*(.*)$")


def _json_type(annotation: Any) -> dict[str, Any]:
    """JSON schema for a parameter annotation; anything unknown is a string."""
    args = [a for a in get_args(annotation) if a is not type(None)]
    origin = get_origin(annotation)
    if origin not in (None, list, dict) and len(args) == 1:
        return _json_type(args[0])

    base = origin or annotation
    schema: dict[str, Any] = {"type": _JSON_TYPES.get(base, "string")}
    if base is list and args:
        schema["items"] = _json_type(args[0])
    return schema


def _arg_descriptions(doc: str) -> dict[str, str]:
    """Parameter descriptions from the ``Args:`` section of a docstring."""
    _, found, section = doc.partition("Args:")
    descriptions: dict[str, str] = {}
    if not found:
        return descriptions

    for line in section.splitlines()[1:]:
        if line.strip() and not line[0].isspace():
            break
        match = _ARG_LINE.match(line)
        if match:
            descriptions[match[1]] = match[2].strip()
    return descriptions


def _summary(doc: str) -> str:
    """First paragraph of a docstring, joined into one line."""
    return " ".join(doc.split("\n\n", 1)[0].split())


def function_to_schema(fn: Callable) -> dict[str, Any]:
    """Describe ``fn`` as a tool: name, summary line and parameter schema."""
    doc = inspect.getdoc(fn) or ""
    described = _arg_descriptions(doc)

    properties: dict[str, Any] = {}
    required = []
    for param_name, param in inspect.signature(fn).parameters.items():
        if param_name == "self":
            continue
        if param.annotation is inspect.Parameter.empty:
            properties[param_name] = {"type": "string"}
        else:
            properties[param_name] = _json_type(param.annotation)
        if param_name in described:
            properties[param_name]["description"] = described[param_name]
        if param.default is inspect.Parameter.empty:
            required.append(param_name)

    return {
        "name": getattr(fn, "__tool_name__", fn.__name__),
        "description": getattr(fn, "__tool_description__", _summary(doc) or fn.__name__),
        "parameters": {"type": "object", "properties": properties, "required": required},
    }


class Tool(ABC):
    """A named capability the agent can invoke.

    Subclass and implement ``ainvoke()``, or wrap a plain function with
    ``as_tool``. Raise ``ToolExecutionError`` to report a failed call.
    """

    name: str = "tool"
    description: str = ""
    parameters: dict[str, Any] = {"type": "object", "properties": {}, "required": []}

    @abstractmethod
    async def ainvoke(self, arguments: dict[str, Any]) -> str:
        """Run the tool and return its observation text."""
        ...

    @property
    def schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"


class FunctionTool(Tool):
    """Tool backed by a sync or async function."""

    def __init__(self, fn: Callable):
        self.fn = fn
        schema = function_to_schema(fn)
        self.name = schema["name"]
        self.description = schema["description"]
        self.parameters = schema["parameters"]

    async def ainvoke(self, arguments: dict[str, Any]) -> str:
        try:
            result = self.fn(**arguments)
            if inspect.isawaitable(result):
                result = await result
        except ToolExecutionError:
            raise
        except Exception as e:
            raise ToolExecutionError(self.name, f"{e.__class__.__name__}: {e}") from e
        return str(result)


def as_tool(obj: Tool | Callable) -> Tool:
    """Return ``obj`` as a Tool, wrapping plain functions."""
    if isinstance(obj, Tool):
        return obj
    if callable(obj):
        return FunctionTool(obj)
    raise TypeError(f"Cannot use {obj!r} as a tool")


def build_tool_map(tools: list[Tool | Callable] | None) -> dict[str, Tool]:
    """Build a name -> tool mapping from a tool list."""
    if not tools:
        return {}

    tool_map: dict[str, Tool] = {}
    for item in tools:
        t = as_tool(item)
        if t.name in tool_map:
            raise ValueError(f"Duplicate tool name: {t.name}")
        tool_map[t.name] = t
    return tool_map


def render_text_description_and_args(tools: list[Tool | Callable]) -> str:
    """Render tools as ``name - description, args: {...}`` lines for prompts."""
    lines = []
    for t in build_tool_map(tools).values():
        args = json.dumps(t.parameters.get("properties", {}), ensure_ascii=False)
        lines.append(f"{t.name} - {t.description}, args: {args}")
    return "\n".join(lines)
