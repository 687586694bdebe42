"""Tool registry: central catalog for the tools offered to the model."""

from __future__ import annotations

import inspect
import logging
import re
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from swiftbot.tools.base import ToolParams, ToolResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

TOOL_ELIGIBLE_PATTERNS = [
    re.compile(r"\bcalculate\b"),
    re.compile(r"\bsolve\b"),
    re.compile(r"\bconvert\b"),
    re.compile(r"\btimezone\b"),
    re.compile(r"\btime in\b"),
    re.compile(r"\bsummari[sz]e\b"),
    re.compile(r"\brewrite\b"),
    re.compile(r"\bkey points?\b"),
    re.compile(r"[0-9]+\s*[-+*/]\s*[0-9]+"),
]


def should_enable_tools(text: str) -> bool:
    """Whether a prompt is worth a tool-calling round before the main reply."""
    message = text.lower()
    return any(pattern.search(message) for pattern in TOOL_ELIGIBLE_PATTERNS)


@dataclass
class ToolDef:
    """Internal representation of a registered tool."""

    name: str
    description: str
    category: str
    handler: Callable[..., Awaitable[ToolResult]]
    params_model: type[ToolParams] | None = None


class ToolRegistry:
    """Central registry for all tools.

    Register stateless async functions with the decorator::

        @registry.tool(
            name="my_tool",
            description="Does a thing",
            category="utility",
        )
        async def my_tool() -> ToolResult:
            return ToolResult(data={"ok": True})
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDef] = {}

    def tool(
        self,
        *,
        name: str,
        description: str,
        category: str,
        params_model: type[ToolParams] | None = None,
    ) -> Callable:
        """Decorator to register an async function as a tool."""

        def decorator(fn: Callable[..., Awaitable[ToolResult]]) -> Callable:
            if not inspect.iscoroutinefunction(fn):
                msg = f"Tool handler '{name}' must be an async function"
                raise TypeError(msg)

            self._tools[name] = ToolDef(
                name=name,
                description=description,
                category=category,
                handler=fn,
                params_model=params_model,
            )
            return fn

        return decorator

    def get(self, name: str) -> ToolDef | None:
        """Look up a tool by name."""
        return self._tools.get(name)

    @property
    def tool_names(self) -> list[str]:
        """All registered tool names."""
        return list(self._tools.keys())

    def get_schemas(self) -> list[dict[str, Any]]:
        """Function-calling schemas for all registered tools."""
        return [self._tool_schema(t) for t in self._tools.values()]

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a tool by name with the given arguments.

        Validates arguments against the params_model if one is defined.
        Failures come back as an error ToolResult so the model can react.
        """
        tool_def = self._tools.get(name)
        if tool_def is None:
            return ToolResult(error=f"Unsupported tool: {name}")

        logger.info("Tool '%s' called with %s", name, arguments)
        t0 = time.monotonic()

        try:
            if tool_def.params_model is not None:
                params = tool_def.params_model(**arguments)
                kwargs = params.model_dump()
            else:
                kwargs = dict(arguments)
        except ValidationError as exc:
            return ToolResult(error=f"Invalid arguments for '{name}': {exc.errors()[0]['msg']}")

        try:
            result = await tool_def.handler(**kwargs)
        except Exception:
            elapsed = time.monotonic() - t0
            logger.exception("Tool '%s' failed in %.2fs", name, elapsed)
            return ToolResult(error=f"Tool '{name}' failed.")

        elapsed = time.monotonic() - t0
        if result.success:
            logger.info("Tool '%s' succeeded in %.2fs", name, elapsed)
        else:
            logger.warning("Tool '%s' returned error in %.2fs: %s", name, elapsed, result.error)
        return result

    @staticmethod
    def _tool_schema(tool_def: ToolDef) -> dict[str, Any]:
        """Build a single function schema dict."""
        if tool_def.params_model is not None:
            parameters = tool_def.params_model.model_json_schema()
        else:
            parameters = {"type": "object", "properties": {}}

        return {
            "type": "function",
            "function": {
                "name": tool_def.name,
                "description": tool_def.description,
                "parameters": parameters,
            },
        }


# Global registry. Import this from anywhere to register or look up tools.
registry = ToolRegistry()
