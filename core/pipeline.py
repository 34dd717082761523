"""Build pipeline: Build → Synth → Lint → Deploy with remedies and retries."""

import logging

from config.defaults import DEFAULTS
from core.classifier import ErrorClassifier
from core.state import PhaseName, PhaseOutcome, PipelineResult

logger = logging.getLogger(__name__)


class BuildPipeline:
    """Runs the four phases in order against an execution backend.

    A failed phase gets one classifier-proposed remedy and, if the remedy
    succeeds, one re-run. A phase that still fails abandons the pass; the
    next pass restarts from Build so later phases never see stale artifacts.
    Deploy failures and fatal classifications end the pipeline at once.
    """

    def __init__(self, classifier=None, phase_commands=None):
        self.classifier = classifier or ErrorClassifier()
        self.phase_commands = phase_commands or DEFAULTS["phase_commands"]

    def command_for(self, phase: PhaseName):
        return list(self.phase_commands[phase.value])

    def run(self, backend, max_attempts=None) -> PipelineResult:
        if max_attempts is None:
            max_attempts = DEFAULTS["max_attempts_per_pass"]
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        history = []
        for attempt in range(1, max_attempts + 1):
            logger.info("Starting build cycle attempt %d/%d", attempt, max_attempts)
            outcomes = []
            failed = None

            for phase in PhaseName.ordered():
                logger.info("=== %s ===", phase.label)
                outcome, runs = self._run_phase(backend, phase, attempt)
                history.extend(runs)
                outcomes.append(outcome)
                if not outcome.success:
                    failed = outcome
                    break

            if failed is None:
                logger.info("Build cycle completed successfully")
                return PipelineResult(
                    success=True, outcomes=outcomes, history=history, attempts=attempt
                )

            fix = failed.applied_fix
            if failed.phase == PhaseName.DEPLOY:
                logger.warning("Deploy failed after remedies; reporting failure")
            elif fix is not None and fix.fatal:
                logger.error("%s failed with non-recoverable %s error",
                             failed.phase.label, fix.category)
            elif attempt < max_attempts:
                logger.warning("%s failed, restarting from Build", failed.phase.label)
                continue
            else:
                logger.error("%s phase failed after all attempts", failed.phase.label)

            return PipelineResult(
                success=False,
                outcomes=outcomes,
                history=history,
                failed_phase=failed.phase,
                attempts=attempt,
            )

    def _run_phase(self, backend, phase, attempt):
        """Run one phase with at most one remedy and re-run.

        Returns (final_outcome, runs) where runs lists every execution of
        the phase command in order.
        """
        command = self.command_for(phase)
        first = self._execute(backend, phase, attempt, command)
        if first.success:
            return first, [first]

        fix = self.classifier.classify(first.output, phase)
        first.applied_fix = fix
        if not fix.has_remedy:
            logger.info("No automatic fix available for %s (%s)", phase.label, fix.category)
            return first, [first]

        logger.info("Attempting %s fix: %s", fix.category, " ".join(fix.remedy))
        fix.remedy_outcome = backend.execute(fix.remedy)
        if not fix.remedy_outcome.success:
            logger.warning("Remedy for %s failed", phase.label)
            return first, [first]

        rerun = self._execute(backend, phase, attempt, command)
        rerun.applied_fix = fix
        return rerun, [first, rerun]

    @staticmethod
    def _execute(backend, phase, attempt, command):
        result = backend.execute(command)
        return PhaseOutcome(
            phase=phase,
            attempt=attempt,
            success=result.success,
            output=result.output,
            exit_code=result.exit_code,
        )
