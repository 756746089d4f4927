"""Outcome types returned by the action orchestrator for a single turn."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from core.conversation_memory import OngoingAction, PendingAction

ERROR_KINDS = ("unauthorized", "transient", "precondition", "not_found", "permission", "invalid", "internal")


@dataclass
class Completed:
    message: str
    data: Optional[Dict[str, Any]] = None
    kind: str = field(default="completed", init=False)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.kind, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


@dataclass
class NeedsDisambiguation:
    message: str
    options: List[Dict[str, Any]]
    pending: PendingAction
    kind: str = field(default="needs_disambiguation", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "message": self.message, "options": list(self.options)}


@dataclass
class NeedsParameter:
    message: str
    missing_parameters: List[str]
    ongoing: OngoingAction
    kind: str = field(default="needs_parameter", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "message": self.message, "missingParameters": list(self.missing_parameters)}


@dataclass
class Failed:
    message: str
    error: str
    error_kind: str = "internal"
    kind: str = field(default="failed", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "message": self.message, "error": self.error, "errorKind": self.error_kind}


OrchestratorResponse = Union[Completed, NeedsDisambiguation, NeedsParameter, Failed]


__all__ = [
    "Completed",
    "ERROR_KINDS",
    "Failed",
    "NeedsDisambiguation",
    "NeedsParameter",
    "OrchestratorResponse",
]
