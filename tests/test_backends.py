"""Tests for core.backends: local filesystem via tmp_path, remote via a fake session."""

import json
from unittest.mock import patch

import pytest

from config.settings import AgentSettings
from core.backends import LocalBackend, RemoteBackend, create_backend
from core.errors import AgentError, ConnectivityFailure
from core.ssh import SSHSession


# ---------------------------------------------------------------------------
# LocalBackend
# ---------------------------------------------------------------------------

class TestLocalBackend:
    @patch("core.backends.run_in_sandbox", return_value=("out\n", "warn\n", 0))
    def test_execute_combines_output(self, mock_run, tmp_path):
        result = LocalBackend(str(tmp_path)).execute(["npm", "run", "build"])
        assert result.success is True
        assert result.output == "out\nwarn\n"
        assert result.exit_code == 0
        mock_run.assert_called_once_with(["npm", "run", "build"], str(tmp_path), timeout=None)

    @patch("core.backends.run_in_sandbox", return_value=("", "boom", 1))
    def test_execute_failure(self, mock_run, tmp_path):
        result = LocalBackend(str(tmp_path), timeout=60).execute(["npm", "run", "lint"])
        assert result.success is False
        assert result.exit_code == 1
        assert mock_run.call_args.kwargs["timeout"] == 60

    def test_deliver_files_creates_parents(self, tmp_path, valid_files):
        workdir = tmp_path / "generated"
        written = LocalBackend(str(workdir)).deliver_files(valid_files)
        assert sorted(written) == sorted(valid_files)
        assert (workdir / "lib" / "tap_stack.go").read_text() == valid_files["lib/tap_stack.go"]

    def test_deliver_files_rejects_escape(self, tmp_path):
        with pytest.raises(ValueError, match="escapes"):
            LocalBackend(str(tmp_path)).deliver_files({"../evil.go": "package evil"})

    def test_collect_outputs(self, tmp_path):
        (tmp_path / "cfn-outputs").mkdir()
        (tmp_path / "cfn-outputs" / "flat-outputs.json").write_text(json.dumps({"BucketName": "b"}))
        (tmp_path / "terraform.tfstate").write_text("not json")

        outputs = LocalBackend(str(tmp_path)).collect_outputs()

        assert outputs["cfn-outputs/"] == "flat-outputs.json"
        assert outputs["cfn-outputs/flat-outputs.json"] == {"BucketName": "b"}
        assert outputs["terraform.tfstate"] == "not json"
        assert "cdk-stacks.json" not in outputs

    def test_collect_outputs_empty(self, tmp_path):
        assert LocalBackend(str(tmp_path)).collect_outputs() == {}

    def test_session_creates_working_directory(self, tmp_path):
        workdir = tmp_path / "a" / "b"
        backend = LocalBackend(str(workdir))
        with backend.session() as active:
            assert active is backend
            assert workdir.is_dir()


# ---------------------------------------------------------------------------
# RemoteBackend
# ---------------------------------------------------------------------------

class FakeSSH:
    """Records scripts; responds from a list of (substring, result) rules."""

    host = "jump.example.com"

    def __init__(self, responses=None):
        self.responses = responses or []
        self.scripts = []
        self.inputs = []
        self.opened = False
        self.closed = False

    def open(self):
        self.opened = True

    def close(self):
        self.closed = True

    def run(self, script, input=None, timeout=None):
        self.scripts.append(script)
        self.inputs.append(input)
        for needle, result in self.responses:
            if needle in script:
                if isinstance(result, Exception):
                    raise result
                return result
        return ("", "", 0)


def _remote(ssh, **kwargs):
    return RemoteBackend(ssh, "/home/ec2-user/iac-workspace", **kwargs)


class TestRemoteBackend:
    def test_execute_composes_directory_command(self):
        ssh = FakeSSH([("npm run synth", ("synth out", "", 0))])
        result = _remote(ssh).execute(["npm", "run", "synth"])
        assert ssh.scripts == ["cd /home/ec2-user/iac-workspace && npm run synth"]
        assert result.success is True
        assert result.output == "synth out"

    def test_execute_nonzero_is_not_connectivity(self):
        ssh = FakeSSH([("npm run build", ("", "Cannot find module", 1))])
        result = _remote(ssh).execute(["npm", "run", "build"])
        assert result.success is False
        assert result.output == "Cannot find module"

    def test_execute_transport_failure_propagates(self):
        ssh = FakeSSH([("npm", ConnectivityFailure("Lost connection"))])
        with pytest.raises(ConnectivityFailure):
            _remote(ssh).execute(["npm", "run", "deploy"])

    def test_deliver_files_streams_content(self, valid_files):
        ssh = FakeSSH()
        written = _remote(ssh).deliver_files(valid_files)
        assert sorted(written) == sorted(valid_files)
        idx = next(i for i, s in enumerate(ssh.scripts) if "lib/tap_stack.go" in s)
        assert ssh.scripts[idx] == (
            "mkdir -p /home/ec2-user/iac-workspace/lib && "
            "cat > /home/ec2-user/iac-workspace/lib/tap_stack.go"
        )
        assert ssh.inputs[idx] == valid_files["lib/tap_stack.go"]

    def test_deliver_files_upload_error(self):
        ssh = FakeSSH([("cat >", ("", "Permission denied", 1))])
        with pytest.raises(AgentError, match="Permission denied"):
            _remote(ssh).deliver_files({"cdk.json": "{}"})

    def test_collect_outputs(self):
        ssh = FakeSSH([
            ("test -e /home/ec2-user/iac-workspace/cdk-stacks.json", ("", "", 0)),
            ("cat /home/ec2-user/iac-workspace/cdk-stacks.json", ('{"TapStack": {"bucket": "b"}}', "", 0)),
            ("test -e", ("", "", 1)),
        ])
        outputs = _remote(ssh).collect_outputs()
        assert outputs == {"cdk-stacks.json": {"TapStack": {"bucket": "b"}}}

    def test_collect_outputs_directory_listing(self):
        ssh = FakeSSH([
            ("flat-outputs.json", ("", "", 1)),
            ("test -e /home/ec2-user/iac-workspace/cfn-outputs/", ("", "", 0)),
            ("ls -la", ("total 8\nflat-outputs.json\n", "", 0)),
            ("test -e", ("", "", 1)),
        ])
        outputs = _remote(ssh).collect_outputs()
        assert outputs == {"cfn-outputs/": "total 8\nflat-outputs.json\n"}

    def test_bootstrap_clones_when_missing(self):
        ssh = FakeSSH([
            ("test -d", ("", "", 1)),
            ("test -f /home/ec2-user/iac-workspace/package.json", ("", "", 0)),
            ("test -f", ("", "", 1)),
        ])
        backend = _remote(ssh, repo_url="https://github.com/acme/iac.git",
                          environment={"AWS_REGION": "us-east-1"})
        backend.bootstrap()

        assert any("git clone https://github.com/acme/iac.git /home/ec2-user/iac-workspace" in s
                   for s in ssh.scripts)
        assert "cd /home/ec2-user/iac-workspace && npm install" in ssh.scripts
        assert not any("go mod" in s for s in ssh.scripts)
        exports = [s for s in ssh.scripts if "bashrc" in s]
        assert len(exports) == 1
        assert "export AWS_REGION=us-east-1" in exports[0]

    def test_bootstrap_pulls_existing_repo_and_installs_go(self):
        ssh = FakeSSH([("test -d", ("", "", 0)), ("test -f", ("", "", 0))])
        _remote(ssh, repo_url="https://github.com/acme/iac.git").bootstrap()

        assert "cd /home/ec2-user/iac-workspace && git pull --ff-only" in ssh.scripts
        assert not any("git clone" in s for s in ssh.scripts)
        assert "cd /home/ec2-user/iac-workspace && go mod tidy" in ssh.scripts
        assert "cd /home/ec2-user/iac-workspace && go mod download" in ssh.scripts

    def test_bootstrap_step_failure_does_not_raise(self):
        ssh = FakeSSH([("test -d", ("", "", 1)), ("git clone", ("", "fatal: repo", 128))])
        _remote(ssh, repo_url="https://github.com/acme/iac.git").bootstrap()

    def test_session_opens_bootstraps_and_closes(self):
        ssh = FakeSSH()
        backend = _remote(ssh)
        with backend.session():
            assert ssh.opened
            assert ssh.scripts
        assert ssh.closed

    def test_session_closes_when_bootstrap_fails(self):
        ssh = FakeSSH([("test -d", ConnectivityFailure("dropped"))])
        with pytest.raises(ConnectivityFailure):
            with _remote(ssh).session():
                pass
        assert ssh.closed


# ---------------------------------------------------------------------------
# create_backend
# ---------------------------------------------------------------------------

def test_create_local_backend(tmp_path):
    settings = AgentSettings(output_path=str(tmp_path), command_timeout=30)
    backend = create_backend(settings)
    assert isinstance(backend, LocalBackend)
    assert backend.working_directory == str(tmp_path)
    assert backend.timeout == 30


def test_create_remote_backend():
    settings = AgentSettings(execution_mode="remote")
    settings.ssh.host = "10.0.0.5"
    settings.remote.github_repo_url = "https://github.com/acme/iac.git"
    backend = create_backend(settings)
    assert isinstance(backend, RemoteBackend)
    assert backend.ssh.host == "10.0.0.5"
    assert backend.repo_url == "https://github.com/acme/iac.git"
    assert backend.environment == settings.remote.environment_variables


def test_create_backend_unknown_mode():
    with pytest.raises(ValueError, match="Unknown execution mode"):
        create_backend(AgentSettings(execution_mode="cloud"))


def test_remote_backend_builds_ssh_session():
    settings = AgentSettings(execution_mode="remote")
    backend = create_backend(settings)
    assert isinstance(backend.ssh, SSHSession)
    assert backend.ssh.destination == "ec2-user@your-jump-box-host.com"
