"""Built-in tools: an arithmetic calculator and SerpAPI web search."""

from __future__ import annotations

import ast
import logging
import math
import operator
import os
from typing import Any

import httpx

from ..core.errors import ToolExecutionError
from .tools import Tool

logger = logging.getLogger(__name__)

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS = {ast.UAdd: operator.pos, ast.USub: operator.neg}

_FUNCTIONS = {
    name: getattr(math, name)
    for name in ("sqrt", "sin", "cos", "tan", "log", "log10", "exp", "floor", "ceil")
}
_FUNCTIONS.update({"abs": abs, "round": round})

_CONSTANTS = {"pi": math.pi, "e": math.e}

MAX_EXPONENT = 10_000


def _evaluate(node: ast.AST) -> float | int:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        return node.value
    if isinstance(node, ast.Name) and node.id in _CONSTANTS:
        return _CONSTANTS[node.id]
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left, right = _evaluate(node.left), _evaluate(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise ValueError(f"exponent {right} is too large")
        return _BINARY_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_evaluate(node.operand))
    if (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Name)
        and node.func.id in _FUNCTIONS
        and not node.keywords
    ):
        return _FUNCTIONS[node.func.id](*(_evaluate(arg) for arg in node.args))
    raise ValueError(f"unsupported expression: {ast.dump(node)[:60]}")


def _format_number(value: float | int) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class Calculator(Tool):
    """Evaluates arithmetic expressions without executing arbitrary code."""

    name = "calculator"
    description = (
        "Useful for getting the result of a math expression. The input to this "
        "tool should be a valid mathematical expression that could be executed "
        "by a simple calculator."
    )
    parameters = {
        "type": "object",
        "properties": {
            "input": {"type": "string", "description": "Expression, e.g. 3 * (4 + 5)"}
        },
        "required": ["input"],
    }

    async def ainvoke(self, arguments: dict[str, Any]) -> str:
        expression = str(arguments.get("input", "")).strip()
        if not expression:
            raise ToolExecutionError(self.name, "empty expression")
        try:
            tree = ast.parse(expression, mode="eval")
            return _format_number(_evaluate(tree))
        except (SyntaxError, ValueError, ArithmeticError, TypeError) as e:
            raise ToolExecutionError(self.name, f"{expression!r}: {e}") from e


class SerpAPISearch(Tool):
    """Web search through SerpAPI.

    Requires an API key, passed in or read from ``SERPAPI_API_KEY``.
    """

    name = "search"
    description = (
        "A search engine. Useful for when you need to answer questions about "
        "current events. Input should be a search query."
    )
    parameters = {
        "type": "object",
        "properties": {"input": {"type": "string", "description": "Search query"}},
        "required": ["input"],
    }

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str = "https://serpapi.com/search",
        engine: str = "google",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key or os.getenv("SERPAPI_API_KEY", "")
        self.base_url = base_url
        self.engine = engine
        self.timeout = timeout
        self._client = client

    async def _fetch(self, query: str) -> dict[str, Any]:
        params = {"q": query, "api_key": self.api_key, "engine": self.engine}
        if self._client is not None:
            response = await self._client.get(self.base_url, params=params)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.base_url, params=params)
        response.raise_for_status()
        return response.json()

    async def ainvoke(self, arguments: dict[str, Any]) -> str:
        query = str(arguments.get("input", "")).strip()
        if not self.api_key:
            raise ToolExecutionError(self.name, "SERPAPI_API_KEY is not set")
        if not query:
            raise ToolExecutionError(self.name, "empty query")

        try:
            payload = await self._fetch(query)
        except httpx.HTTPError as e:
            logger.warning("search failed for %r: %s", query, e)
            raise ToolExecutionError(self.name, str(e)) from e

        if "error" in payload:
            raise ToolExecutionError(self.name, str(payload["error"]))
        return summarize_results(payload)


def summarize_results(payload: dict[str, Any]) -> str:
    """Pick the most direct answer from a SerpAPI response."""
    answer_box = payload.get("answer_box") or {}
    for key in ("answer", "snippet"):
        if answer_box.get(key):
            return str(answer_box[key])
    if answer_box.get("snippet_highlighted_words"):
        return str(answer_box["snippet_highlighted_words"][0])

    knowledge_graph = payload.get("knowledge_graph") or {}
    if knowledge_graph.get("description"):
        return str(knowledge_graph["description"])

    for result in payload.get("organic_results") or []:
        if result.get("snippet"):
            return str(result["snippet"])

    return "No good search result found"
