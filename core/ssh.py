"""OpenSSH control-master session used by the remote backend.

One master connection is opened per agent run; every command and upload
goes through its control socket, so commands run strictly one at a time
over the same authenticated session.
"""

import logging
import os
import shutil
import subprocess
import tempfile

from core.errors import ConnectivityFailure

logger = logging.getLogger(__name__)

# ssh reserves exit status 255 for its own (transport) errors
SSH_TRANSPORT_ERROR = 255
CONNECT_TIMEOUT = 30


class SSHSession:
    """A persistent ssh connection to ``username@host``."""

    def __init__(self, host, username, private_key_path, port=22):
        self.host = host
        self.username = username
        self.private_key_path = os.path.expanduser(private_key_path)
        self.port = port
        self._control_dir = None

    @property
    def destination(self):
        return f"{self.username}@{self.host}"

    @property
    def control_path(self):
        if not self._control_dir:
            return None
        return os.path.join(self._control_dir, "ctl")

    @property
    def is_open(self):
        return self._control_dir is not None

    def _ssh_args(self):
        return [
            "ssh",
            "-S", self.control_path,
            "-p", str(self.port),
            "-i", self.private_key_path,
            "-o", "BatchMode=yes",
            "-o", "StrictHostKeyChecking=accept-new",
            "-o", f"ConnectTimeout={CONNECT_TIMEOUT}",
        ]

    def open(self):
        """Start the control master. Raises ConnectivityFailure on any error."""
        if self.is_open:
            return
        logger.info("Connecting to SSH server: %s", self.host)
        self._control_dir = tempfile.mkdtemp(prefix="iac_agent_ssh_")
        cmd = self._ssh_args() + ["-M", "-o", "ControlPersist=yes", "-f", "-N", self.destination]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError:
            self._discard_control_dir()
            raise ConnectivityFailure("ssh not found; OpenSSH client must be installed")

        if result.returncode != 0:
            self._discard_control_dir()
            detail = (result.stderr or result.stdout or "no output").strip()
            raise ConnectivityFailure(
                f"SSH connection to {self.host} failed (exit {result.returncode}): {detail}"
            )
        logger.info("SSH connection established")

    def run(self, command, input=None, timeout=None):
        """Run a shell command string on the remote host.

        Returns (stdout, stderr, returncode). A transport failure raises
        ConnectivityFailure instead of returning.
        """
        if not self.is_open:
            raise ConnectivityFailure("SSH not connected")

        logger.debug("Remote command: %s", command)
        try:
            result = subprocess.run(
                self._ssh_args() + [self.destination, command],
                input=input,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return "", f"Remote command timed out after {timeout}s", -1
        except FileNotFoundError:
            raise ConnectivityFailure("ssh not found; OpenSSH client must be installed")

        if result.returncode == SSH_TRANSPORT_ERROR:
            detail = (result.stderr or "no output").strip()
            raise ConnectivityFailure(f"Lost connection to {self.host}: {detail}")
        return result.stdout, result.stderr, result.returncode

    def close(self):
        """Stop the control master. Safe to call more than once."""
        if not self.is_open:
            return
        try:
            subprocess.run(
                self._ssh_args() + ["-O", "exit", self.destination],
                capture_output=True,
                text=True,
            )
            logger.info("SSH connection closed")
        except FileNotFoundError:
            logger.warning("ssh not found while closing session to %s", self.host)
        finally:
            self._discard_control_dir()

    def _discard_control_dir(self):
        if self._control_dir:
            shutil.rmtree(self._control_dir, ignore_errors=True)
        self._control_dir = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
