"""Prompt construction between cycles.

Every function here is pure: the next prompt depends only on the original
request and the record of the cycle that just ended.
"""

import json

from core.state import CycleOutcome


def cycle_context(cycle, default=None):
    """Context string handed to the generator alongside the prompt."""
    if cycle <= 1:
        return default
    return (
        f"This is cycle {cycle}. Previous attempts may have failed. "
        "Please address any issues and ensure the code works correctly."
    )


def fix_prompt(original_prompt, pipeline_result):
    """Original prompt plus the verbatim output of every phase whose latest run failed."""
    fix_context = ""
    for outcome in pipeline_result.phase_failures():
        fix_context += f"{outcome.phase.label} error: {outcome.output}\n"

    return (
        f"{original_prompt}\n\n"
        "IMPORTANT: The previous attempt failed with the following errors:\n"
        f"{fix_context}\n"
        "Please fix these issues and generate corrected code that will build, "
        "synth, lint, and deploy successfully."
    )


def improvement_prompt(original_prompt, deployment_outputs):
    return (
        f"{original_prompt}\n\n"
        "The previous deployment was successful but may not fully meet all requirements.\n"
        f"Current deployment outputs: {json.dumps(deployment_outputs, indent=2, default=str)}\n\n"
        "Please review and improve the infrastructure to better meet the requirements."
    )


def rejection_prompt(original_prompt, error_summary):
    """Feedback for a cycle whose generated code never reached the pipeline."""
    return (
        f"{original_prompt}\n\n"
        "IMPORTANT: The previously generated code was rejected before building:\n"
        f"{error_summary}\n\n"
        "Please return the complete file set as a JSON object of file paths to "
        "file contents, including every required file."
    )


def recovery_prompt(original_prompt, error_summary):
    return (
        f"{original_prompt}\n\n"
        f"CRITICAL: The previous attempt failed with an unexpected error: {error_summary}\n\n"
        "Please generate robust code with proper error handling and validation."
    )


def next_prompt(original_prompt, record):
    """Prompt for the cycle after ``record``."""
    if record.outcome == CycleOutcome.SUCCEEDED:
        return original_prompt
    if record.error_kind == "expectation":
        return improvement_prompt(original_prompt, record.deployment_outputs)
    if record.error_kind == "phase" and record.pipeline_result is not None:
        return fix_prompt(original_prompt, record.pipeline_result)
    if record.error_kind in ("generation", "validation"):
        return rejection_prompt(original_prompt, record.error_summary)
    return recovery_prompt(original_prompt, record.error_summary)
