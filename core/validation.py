"""Structural checks on a generated file set before it is delivered."""

import json
import posixpath
import re

from config.defaults import DEFAULTS
from core.errors import ValidationFailure

_PACKAGE_RE = re.compile(r"^\s*package\s+\w+", re.MULTILINE)


def check_file_set(files, required=None) -> list[str]:
    """Return a list of problems with the file set; empty means valid."""
    required = DEFAULTS["required_files"] if required is None else required
    errors = []

    if not isinstance(files, dict) or not files:
        return ["Generated file set is empty"]

    for path in required:
        if not files.get(path):
            errors.append(f"Missing required file: {path}")

    for path, content in files.items():
        normalized = posixpath.normpath(path.replace("\\", "/"))
        if posixpath.isabs(normalized) or normalized == ".." or normalized.startswith("../"):
            errors.append(f"{path}: Path escapes working directory")
            continue
        if path.endswith(".go") and not _PACKAGE_RE.search(content):
            errors.append(f"{path}: Missing package declaration")
        if path.endswith(".json"):
            try:
                json.loads(content)
            except json.JSONDecodeError:
                errors.append(f"{path}: Invalid JSON format")

    return errors


def validate_file_set(files, required=None):
    """Raise ValidationFailure unless the file set can be delivered whole."""
    errors = check_file_set(files, required)
    if errors:
        raise ValidationFailure(errors)
    return files
