"""Register the intent handlers with the shared registry.

Each handler module exposes a ``HANDLERS`` mapping of intent name to
coroutine. This module centralises their registration so the orchestrator
and the tests share a single source of truth.
"""

from __future__ import annotations

from core.tool_registry import ToolRegistry
from tools import (
    announcement_tool,
    assignment_tool,
    conversation_tool,
    course_tool,
    email_tool,
    grade_tool,
    meeting_tool,
    roster_tool,
)

HANDLER_MODULES = (
    course_tool,
    roster_tool,
    announcement_tool,
    assignment_tool,
    grade_tool,
    meeting_tool,
    email_tool,
    conversation_tool,
)


def load_all_core_tools(registry: ToolRegistry) -> None:
    # Register every intent handler with ``registry``
    for module in HANDLER_MODULES:
        for intent, handler in module.HANDLERS.items():
            registry.register_tool(intent, handler)
