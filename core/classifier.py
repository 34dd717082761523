"""Failure-output classifier: maps a failed phase's output to one remedy."""

from __future__ import annotations

from dataclasses import dataclass

from config.rules import FIX_RULES
from core.state import FixAction

NO_MATCH = "none"


@dataclass(frozen=True)
class FixRule:
    category: str
    patterns: tuple[str, ...]
    remedy: tuple[str, ...] | None = None
    fatal: bool = False
    phases: tuple[str, ...] | None = None

    @classmethod
    def from_entry(cls, entry):
        category, patterns, remedy, fatal, phases = entry
        return cls(
            category=category,
            patterns=tuple(p.lower() for p in patterns),
            remedy=tuple(remedy) if remedy else None,
            fatal=fatal,
            phases=tuple(phases) if phases else None,
        )

    def applies_to(self, phase) -> bool:
        if self.phases is None or phase is None:
            return True
        return getattr(phase, "value", phase) in self.phases

    def matches(self, output: str) -> bool:
        text = output.lower()
        return any(p in text for p in self.patterns)


class ErrorClassifier:
    """Consults rules in order and returns the first match's remedy.

    "No rule matched" is an ordinary FixAction whose category is "none";
    it never raises and has no side effects.
    """

    def __init__(self, rules=None):
        entries = FIX_RULES if rules is None else rules
        self.rules = [r if isinstance(r, FixRule) else FixRule.from_entry(r) for r in entries]

    def classify(self, output, phase=None) -> FixAction:
        for rule in self.rules:
            if rule.applies_to(phase) and rule.matches(output or ""):
                return FixAction(
                    category=rule.category,
                    remedy=list(rule.remedy) if rule.remedy else None,
                    fatal=rule.fatal,
                )
        return FixAction(category=NO_MATCH)
