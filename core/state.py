"""Agent state models shared across the orchestrator, pipeline and backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class PhaseName(str, Enum):
    """Pipeline phases, declared in execution order."""

    BUILD = "build"
    SYNTH = "synth"
    LINT = "lint"
    DEPLOY = "deploy"

    @classmethod
    def ordered(cls) -> list[PhaseName]:
        return list(cls)

    @property
    def label(self) -> str:
        return self.value.capitalize()


class CycleOutcome(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class ExecutionResult:
    success: bool
    output: str          # stdout + stderr
    exit_code: int


@dataclass
class FixAction:
    category: str                   # "none" when no rule matched
    remedy: list[str] | None = None
    remedy_outcome: ExecutionResult | None = None
    fatal: bool = False

    @property
    def has_remedy(self) -> bool:
        return self.remedy is not None


@dataclass
class PhaseOutcome:
    phase: PhaseName
    attempt: int
    success: bool
    output: str
    exit_code: int
    applied_fix: FixAction | None = None


@dataclass
class PipelineResult:
    success: bool
    outcomes: list[PhaseOutcome] = field(default_factory=list)   # last pass only
    history: list[PhaseOutcome] = field(default_factory=list)    # every pass
    failed_phase: PhaseName | None = None
    attempts: int = 0

    def failed_outcomes(self) -> list[PhaseOutcome]:
        """Failed runs of the last pass, in the order they happened."""
        return [o for o in self.outcomes if not o.success]

    def phase_failures(self) -> list[PhaseOutcome]:
        """Phases whose latest run in any pass failed, in phase order."""
        latest = {}
        for outcome in self.history:
            latest[outcome.phase] = outcome
        return [latest[p] for p in PhaseName.ordered() if p in latest and not latest[p].success]

    @property
    def deployed(self) -> bool:
        return any(o.phase == PhaseName.DEPLOY and o.success for o in self.outcomes)


@dataclass(frozen=True)
class CycleRecord:
    index: int
    outcome: CycleOutcome = CycleOutcome.PENDING
    generated_files: dict[str, str] = field(default_factory=dict)
    pipeline_result: PipelineResult | None = None
    deployment_outputs: dict = field(default_factory=dict)
    error_summary: str = ""
    error_kind: str = ""            # generation|validation|phase|connectivity|unknown|expectation
    deployed: bool = False

    @property
    def succeeded(self) -> bool:
        return self.outcome == CycleOutcome.SUCCEEDED


@dataclass
class AgentState:
    """Mutable state for a single Orchestrator.run call."""

    original_prompt: str
    prompt: str
    max_cycles: int
    cycle: int = 0
    records: list[CycleRecord] = field(default_factory=list)


@dataclass
class RunSummary:
    status: str                     # succeeded|partial|failed
    records: list[CycleRecord]
    deployment_outputs: dict = field(default_factory=dict)

    @property
    def exit_code(self) -> int:
        return {"succeeded": 0, "partial": 2}.get(self.status, 1)
