"""Shared fakes for pipeline and orchestrator tests."""

from contextlib import contextmanager

import pytest

from core.backends import ExecutionBackend
from core.state import ExecutionResult

VALID_FILES = {
    "bin/tap.go": "package main\n\nfunc main() {}\n",
    "lib/tap_stack.go": "package lib\n\n// TapStack\n",
    "cdk.json": '{\n  "app": "go run bin/tap.go"\n}',
}


def ok(output=""):
    return ExecutionResult(success=True, output=output, exit_code=0)


def fail(output="", code=1):
    return ExecutionResult(success=False, output=output, exit_code=code)


class FakeBackend(ExecutionBackend):
    """Scripted backend: each command string maps to a queue of results.

    The last queued result repeats; unscripted commands succeed.
    """

    name = "fake"

    def __init__(self, script=None, outputs=None):
        super().__init__("/fake/workdir")
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.outputs = outputs if outputs is not None else {}
        self.calls = []
        self.delivered = []
        self.opened = 0
        self.closed = 0

    def execute(self, command, cwd=None):
        key = " ".join(command)
        self.calls.append(key)
        queue = self.script.get(key)
        if not queue:
            return ok(f"{key} ok")
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def deliver_files(self, files):
        self.delivered.append(dict(files))
        return list(files)

    def collect_outputs(self):
        if isinstance(self.outputs, list):
            return self.outputs.pop(0) if len(self.outputs) > 1 else self.outputs[0]
        return dict(self.outputs)

    @contextmanager
    def session(self):
        self.opened += 1
        try:
            yield self
        finally:
            self.closed += 1


@pytest.fixture
def valid_files():
    return dict(VALID_FILES)


@pytest.fixture
def make_backend():
    return FakeBackend
