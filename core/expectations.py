"""Deployment expectation check.

Outputs meet the request when any top-level key looks like a deployed
artifact, such as a stack, an output or a resource identifier. The prompt
is accepted so a stronger check can replace this one without changing callers.
"""

from config.defaults import DEFAULTS


def meets(original_prompt, deployment_outputs, markers=None) -> bool:
    if not deployment_outputs:
        return False
    markers = DEFAULTS["output_key_markers"] if markers is None else markers
    return any(
        marker in str(key).lower()
        for key in deployment_outputs
        for marker in markers
    )
