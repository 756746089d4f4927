"""Shared dataclasses for classifier outputs and pattern rules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict


@dataclass
class IntentResult:
    intent: str
    confidence: float
    parameters: Dict[str, Any] = field(default_factory=dict)
    is_correction: bool = False
    is_parameter_collection: bool = False
    source: str = "pattern"

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "intent": self.intent,
            "confidence": self.confidence,
            "parameters": dict(self.parameters),
            "source": self.source,
        }
        if self.is_correction:
            payload["isCorrection"] = True
        if self.is_parameter_collection:
            payload["isParameterCollection"] = True
        return payload


Predicate = Callable[[str], bool]
Extractor = Callable[[str], Dict[str, Any]]


@dataclass(frozen=True)
class PatternRule:
    """One fallback rule: ``predicate`` sees the lowercased text, ``extractor`` the original."""

    name: str
    predicate: Predicate
    extractor: Extractor
    intent: str
    confidence: float = 0.8


def no_parameters(_message: str) -> Dict[str, Any]:
    return {}


__all__ = ["IntentResult", "PatternRule", "no_parameters"]
