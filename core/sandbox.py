"""Subprocess runner with command allowlist and optional timeout."""

import logging
import os
import subprocess

from config.defaults import DEFAULTS

logger = logging.getLogger(__name__)

_UNSET = object()


def run_in_sandbox(command, cwd, timeout=_UNSET):
    """Run a command in a local subprocess.

    Args:
        command: Command as a list of strings, e.g. ["npm", "run", "build"]
        cwd: Working directory (must exist)
        timeout: Seconds before killing the process. Defaults to
                 DEFAULTS["command_timeout"]; None waits indefinitely.

    Returns:
        (stdout, stderr, returncode) tuple

    Raises:
        ValueError: If command is not in the allowlist or cwd is invalid.
    """
    if timeout is _UNSET:
        timeout = DEFAULTS["command_timeout"]

    if not command or not isinstance(command, list):
        raise ValueError("Command must be a non-empty list of strings")

    executable = command[0]
    allowed = DEFAULTS["allowed_commands"]
    if executable not in allowed:
        raise ValueError(
            f"Command '{executable}' not in allowlist: {allowed}"
        )

    cwd = os.path.realpath(cwd)
    if not os.path.isdir(cwd):
        raise ValueError(f"Working directory does not exist: {cwd}")

    logger.debug("Executing %s in %s", " ".join(command), cwd)
    try:
        result = subprocess.run(
            command,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        return result.stdout, result.stderr, result.returncode
    except subprocess.TimeoutExpired:
        return "", f"Command timed out after {timeout}s", -1
    except FileNotFoundError:
        return "", f"Command not found: {executable}", -1
