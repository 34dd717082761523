"""Agent orchestrator: the outer cycle state machine.

Each cycle: generate → validate → deliver → build pipeline → expectation
check. A failing cycle feeds its errors into the next cycle's prompt; the
run stops at the first cycle whose deployment meets the request, or when
the cycle budget is spent.
"""

import dataclasses
import logging

from config.defaults import DEFAULTS
from core import expectations
from core.errors import ConnectivityFailure, GenerationFailure, PhaseFailure, ValidationFailure
from core.pipeline import BuildPipeline
from core.prompts import cycle_context, next_prompt
from core.state import AgentState, CycleOutcome, CycleRecord, RunSummary
from core.validation import validate_file_set

logger = logging.getLogger(__name__)


class Orchestrator:
    """Runs generate → build → synth → lint → deploy → verify cycles.

    The backend is chosen once at construction; nothing below branches on
    local versus remote execution.
    """

    def __init__(self, generator, backend, pipeline=None, checker=None,
                 max_attempts_per_pass=None):
        self.generator = generator
        self.backend = backend
        self.pipeline = pipeline or BuildPipeline()
        self.checker = checker or expectations.meets
        self.max_attempts_per_pass = max_attempts_per_pass or DEFAULTS["max_attempts_per_pass"]

    def run(self, prompt, max_cycles=None, context=None) -> list:
        """Run up to max_cycles cycles and return one CycleRecord per cycle."""
        max_cycles = DEFAULTS["max_cycles"] if max_cycles is None else max_cycles
        if max_cycles < 1:
            raise ValueError("max_cycles must be at least 1")
        max_cycles = min(max_cycles, DEFAULTS["hard_max_cycles"])

        # Only a missing generation credential is fatal to the whole run
        self.generator.ensure_ready()

        state = AgentState(original_prompt=prompt, prompt=prompt, max_cycles=max_cycles)
        logger.info("Starting IaC agent execution cycle")
        logger.info("Initial prompt: %s", prompt[:100])
        logger.info("Execution mode: %s, max cycles: %d", self.backend.name, max_cycles)

        with self.backend.session():
            while state.cycle < max_cycles:
                state.cycle += 1
                logger.info("=== CYCLE %d/%d ===", state.cycle, max_cycles)

                record = self.run_cycle(state.cycle, state.prompt, context)
                state.records.append(record)
                self._log_record(record)

                if record.succeeded:
                    logger.info("All expectations met. Agent cycle completed successfully.")
                    break
                if state.cycle < max_cycles:
                    state.prompt = next_prompt(state.original_prompt, record)

        summary = summarize(state.records)
        logger.info("Agent execution completed: %s after %d cycle(s)",
                    summary.status, len(state.records))
        return state.records

    def run_cycle(self, index, prompt, context=None) -> CycleRecord:
        """One full cycle. Never raises for failures inside the cycle."""
        record = CycleRecord(index=index)
        try:
            return self._run_cycle(record, prompt, context)
        except ConnectivityFailure as e:
            logger.error("Cycle %d lost connectivity: %s", index, e)
            return _finish(record, error_kind=e.kind, error_summary=str(e))
        except Exception as e:
            logger.exception("Cycle %d failed with an unexpected error", index)
            return _finish(record, error_kind="unknown", error_summary=str(e) or type(e).__name__)

    def _run_cycle(self, record, prompt, context):
        # Generating
        try:
            files = self.generator.generate(prompt, cycle_context(record.index, context))
        except GenerationFailure as e:
            logger.error("Code generation failed: %s", e)
            return _finish(record, error_kind=e.kind, error_summary=str(e))
        record = dataclasses.replace(record, generated_files=files)

        try:
            validate_file_set(files)
        except ValidationFailure as e:
            logger.error("%s", e)
            return _finish(record, error_kind=e.kind, error_summary=str(e))

        # Delivering
        self.backend.deliver_files(files)

        # Building
        logger.info("Executing build cycle (Build → Synth → Lint → Deploy)")
        result = self.pipeline.run(self.backend, self.max_attempts_per_pass)
        record = dataclasses.replace(record, pipeline_result=result)
        if not result.success:
            failure = PhaseFailure(result.failed_phase, _last_failure_output(result))
            return _finish(record, error_kind=failure.kind, error_summary=str(failure))

        # Checking expectations
        outputs = self.backend.collect_outputs()
        record = dataclasses.replace(record, deployment_outputs=outputs, deployed=True)
        if self.checker(prompt, outputs):
            return _finish(record, outcome=CycleOutcome.SUCCEEDED)
        return _finish(
            record,
            error_kind="expectation",
            error_summary="Deployment succeeded but outputs do not meet expectations",
        )

    @staticmethod
    def _log_record(record):
        if record.succeeded:
            logger.info("Cycle %d completed successfully", record.index)
        elif record.deployed:
            logger.warning("Cycle %d deployed but expectations not met", record.index)
        else:
            logger.warning("Cycle %d failed (%s): %s",
                           record.index, record.error_kind, record.error_summary)


def _finish(record, outcome=CycleOutcome.FAILED, **changes):
    return dataclasses.replace(record, outcome=outcome, **changes)


def _last_failure_output(result):
    failed = result.failed_outcomes()
    return failed[-1].output if failed else ""


def summarize(records) -> RunSummary:
    """Classify a finished run as succeeded, partial or failed."""
    if any(r.succeeded for r in records):
        status = "succeeded"
    elif any(r.deployed for r in records):
        status = "partial"
    else:
        status = "failed"

    outputs = {}
    for r in reversed(records):
        if r.deployed:
            outputs = r.deployment_outputs
            break
    return RunSummary(status=status, records=list(records), deployment_outputs=outputs)
