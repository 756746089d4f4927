"""Map actionable intents to their async handlers.

The orchestrator only dispatches intents that have a handler registered here,
so an intent the classifier invents can never reach the backend.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Dict, Mapping, Protocol

if TYPE_CHECKING:
    from core.action_context import ActionContext
    from core.responses import OrchestratorResponse


class IntentHandler(Protocol):
    def __call__(self, params: Mapping[str, Any], ctx: "ActionContext") -> Awaitable["OrchestratorResponse"]:
        ...


class ToolRegistry:
    """Registry that maps intent names to handler coroutines."""

    def __init__(self) -> None:
        self._tools: Dict[str, IntentHandler] = {}

    # WHAT: register a handler under an intent name.
    # WHY: the orchestrator dispatches through this registry only.
    # HOW: guard against duplicates and store the callable in `_tools`.
    def register_tool(self, name: str, fn: IntentHandler) -> None:
        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered")
        self._tools[name] = fn

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    # WHAT: execute a previously registered handler.
    # WHY: the orchestrator calls this once parameters are complete and the role is allowed.
    # HOW: look up the callable and await it with the normalized parameters and action context.
    async def run_tool(self, name: str, params: Mapping[str, Any], ctx: "ActionContext") -> "OrchestratorResponse":
        try:
            tool_fn = self._tools[name]
        except KeyError as exc:
            raise KeyError(f"Tool '{name}' is not registered") from exc
        return await tool_fn(params, ctx)

    def available_tools(self) -> Dict[str, IntentHandler]:
        return dict(self._tools)
