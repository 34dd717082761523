"""Execution backends: where phase commands run and generated files land.

LocalBackend runs commands as local subprocesses in a working directory.
RemoteBackend runs them over a persistent ssh session on a jump host.
Both expose the same capability set, so the pipeline never branches on mode.
"""

import json
import logging
import os
import posixpath
import shlex
from abc import ABC, abstractmethod
from contextlib import contextmanager

from config.defaults import DEFAULTS
from core.errors import AgentError
from core.sandbox import run_in_sandbox
from core.ssh import SSHSession
from core.state import ExecutionResult

logger = logging.getLogger(__name__)


def _decode_output(text):
    """Return parsed JSON when the artifact is JSON, else the raw text."""
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return text


class ExecutionBackend(ABC):
    """Capability set the pipeline and orchestrator rely on."""

    name = "base"

    def __init__(self, working_directory, timeout=None):
        self.working_directory = working_directory
        self.timeout = timeout

    @abstractmethod
    def execute(self, command, cwd=None) -> ExecutionResult:
        """Run a command list and return its combined outcome."""

    @abstractmethod
    def deliver_files(self, files) -> list:
        """Write every file of a validated file set. Returns written paths."""

    @abstractmethod
    def collect_outputs(self) -> dict:
        """Read whichever well-known deployment output locations exist."""

    @contextmanager
    def session(self):
        """Scope in which the backend is usable. Released on every exit path."""
        yield self

    def _log_result(self, command, result):
        label = " ".join(command)
        if result.success:
            logger.info("Command succeeded: %s", label)
        else:
            logger.warning("Command failed: %s (exit code: %s)", label, result.exit_code)


class LocalBackend(ExecutionBackend):
    name = "local"

    def execute(self, command, cwd=None):
        logger.info("Executing: %s", " ".join(command))
        stdout, stderr, rc = run_in_sandbox(
            list(command), cwd or self.working_directory, timeout=self.timeout
        )
        result = ExecutionResult(success=rc == 0, output=stdout + stderr, exit_code=rc)
        self._log_result(command, result)
        return result

    def deliver_files(self, files):
        logger.info("Writing %d generated file(s) to %s", len(files), self.working_directory)
        os.makedirs(self.working_directory, exist_ok=True)
        root = os.path.realpath(self.working_directory)
        written = []
        for path, content in files.items():
            resolved = os.path.realpath(os.path.join(root, path))
            if not resolved.startswith(root + os.sep):
                raise ValueError(f"Path escapes working directory: {path}")
            os.makedirs(os.path.dirname(resolved), exist_ok=True)
            with open(resolved, "w", encoding="utf-8") as fp:
                fp.write(content)
            logger.debug("Written: %s", path)
            written.append(path)
        return written

    def collect_outputs(self):
        outputs = {}
        for location in DEFAULTS["output_locations"]:
            full_path = os.path.join(self.working_directory, location)
            if location.endswith("/"):
                if os.path.isdir(full_path):
                    outputs[location] = "\n".join(sorted(os.listdir(full_path)))
            elif os.path.isfile(full_path):
                with open(full_path, encoding="utf-8") as fp:
                    outputs[location] = _decode_output(fp.read())
        return outputs

    @contextmanager
    def session(self):
        os.makedirs(self.working_directory, exist_ok=True)
        yield self


class RemoteBackend(ExecutionBackend):
    name = "remote"

    def __init__(self, ssh, working_directory, repo_url="", environment=None, timeout=None):
        super().__init__(working_directory, timeout=timeout)
        self.ssh = ssh
        self.repo_url = repo_url
        self.environment = dict(environment or {})

    def _run(self, script, input=None, timeout=None):
        return self.ssh.run(script, input=input, timeout=timeout)

    def _check(self, script):
        """True when a shell test on the remote host exits zero."""
        _, _, rc = self._run(script)
        return rc == 0

    def execute(self, command, cwd=None):
        workdir = cwd or self.working_directory
        script = f"cd {shlex.quote(workdir)} && {shlex.join(command)}"
        logger.info("Executing remote command: %s", " ".join(command))
        stdout, stderr, rc = self._run(script, timeout=self.timeout)
        result = ExecutionResult(success=rc == 0, output=stdout + stderr, exit_code=rc)
        self._log_result(command, result)
        return result

    def deliver_files(self, files):
        logger.info("Uploading %d generated file(s) to %s:%s",
                    len(files), self.ssh.host, self.working_directory)
        written = []
        for path, content in files.items():
            remote_path = posixpath.normpath(posixpath.join(self.working_directory, path))
            if not remote_path.startswith(self.working_directory.rstrip("/") + "/"):
                raise ValueError(f"Path escapes working directory: {path}")
            remote_dir = posixpath.dirname(remote_path)
            script = f"mkdir -p {shlex.quote(remote_dir)} && cat > {shlex.quote(remote_path)}"
            _, stderr, rc = self._run(script, input=content)
            if rc != 0:
                raise AgentError(f"Failed to upload {path}: {stderr.strip() or f'exit {rc}'}")
            logger.debug("Uploaded: %s", path)
            written.append(path)
        return written

    def collect_outputs(self):
        logger.info("Downloading deployment outputs")
        outputs = {}
        for location in DEFAULTS["output_locations"]:
            remote_path = shlex.quote(posixpath.join(self.working_directory, location))
            if not self._check(f"test -e {remote_path}"):
                continue
            if location.endswith("/"):
                stdout, _, _ = self._run(f"ls -la {remote_path}")
                outputs[location] = stdout
            else:
                stdout, _, rc = self._run(f"cat {remote_path}")
                if rc == 0:
                    outputs[location] = _decode_output(stdout)
        return outputs

    @contextmanager
    def session(self):
        self.ssh.open()
        try:
            self.bootstrap()
            yield self
        finally:
            self.ssh.close()

    def bootstrap(self):
        """Prepare the remote working directory once per run."""
        logger.info("Setting up remote environment")
        self._clone_or_update()
        self._install_dependencies()
        self._export_environment()
        logger.info("Remote environment setup complete")

    def _bootstrap_step(self, script, description):
        stdout, stderr, rc = self._run(script)
        if rc != 0:
            detail = (stderr or stdout or "no output").strip()
            logger.warning("%s failed (exit %s): %s", description, rc, detail)
        return rc == 0

    def _clone_or_update(self):
        workdir = shlex.quote(self.working_directory)
        if self._check(f"test -d {workdir}/.git"):
            logger.info("Repository exists, pulling latest changes")
            self._bootstrap_step(f"cd {workdir} && git pull --ff-only", "git pull")
        elif self.repo_url:
            logger.info("Cloning repository %s", self.repo_url)
            parent = shlex.quote(posixpath.dirname(self.working_directory.rstrip("/")))
            self._bootstrap_step(
                f"mkdir -p {parent} && git clone {shlex.quote(self.repo_url)} {workdir}",
                "git clone",
            )
        else:
            self._bootstrap_step(f"mkdir -p {workdir}", "mkdir")

    def _install_dependencies(self):
        workdir = shlex.quote(self.working_directory)
        for manifest, commands in DEFAULTS["bootstrap"].items():
            if not self._check(f"test -f {workdir}/{shlex.quote(manifest)}"):
                continue
            for command in commands:
                logger.info("Installing dependencies: %s", " ".join(command))
                self._bootstrap_step(f"cd {workdir} && {shlex.join(command)}", " ".join(command))

    def _export_environment(self):
        if not self.environment:
            return
        logger.info("Exporting %d environment variable(s)", len(self.environment))
        for name, value in self.environment.items():
            line = shlex.quote(f"export {name}={shlex.quote(str(value))}")
            self._bootstrap_step(
                f"grep -qxF {line} ~/.bashrc 2>/dev/null || echo {line} >> ~/.bashrc",
                f"export {name}",
            )


def create_backend(settings):
    """Build the backend selected by settings.execution_mode."""
    if settings.execution_mode == "local":
        return LocalBackend(settings.output_path, timeout=settings.command_timeout)
    if settings.execution_mode == "remote":
        ssh = SSHSession(
            host=settings.ssh.host,
            username=settings.ssh.username,
            private_key_path=settings.ssh.private_key_path,
            port=settings.ssh.port,
        )
        return RemoteBackend(
            ssh,
            settings.remote.working_directory,
            repo_url=settings.remote.github_repo_url,
            environment=settings.remote.environment_variables,
            timeout=settings.command_timeout,
        )
    raise ValueError(f"Unknown execution mode '{settings.execution_mode}'")
