"""Error-output patterns and the remedy each one triggers.

Rules are checked top to bottom, most specific first. Each entry:
(category, substrings, remedy_command, fatal, phases)

substrings are matched case-insensitively against a phase's combined output.
remedy_command is a single command list, or None when nothing can be run.
fatal marks failures that no remedy or retry will clear.
phases limits a rule to those phase names; None means any phase.
"""

from config.defaults import DEFAULTS

FIX_RULES = [
    (
        "credentials",
        ["credentials", "access denied", "accessdenied", "unauthorized", "not authorized"],
        None,
        True,
        None,
    ),
    (
        "provider-bindings",
        ["cdktf get", ".gen/", ".gen'"],
        ["npx", "cdktf", "get"],
        False,
        None,
    ),
    (
        "missing-module",
        ["cannot find module", "module not found", "no required module provides"],
        ["npm", "install"],
        False,
        None,
    ),
    (
        "lockfile",
        ["go.sum", "go.mod", "package-lock.json", "lockfile"],
        ["go", "mod", "tidy"],
        False,
        None,
    ),
    (
        "resource-conflict",
        ["already exists", "conflict"],
        DEFAULTS["teardown_command"],
        False,
        ["deploy"],
    ),
    (
        "formatting",
        ["gofmt", "format"],
        ["gofmt", "-w", "."],
        False,
        ["lint"],
    ),
]
