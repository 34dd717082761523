"""Agent settings loaded from iac-gen-config.json and the environment."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field

from config.defaults import DEFAULTS

EXECUTION_MODES = ("local", "remote")


@dataclass
class SSHSettings:
    host: str = "your-jump-box-host.com"
    username: str = "ec2-user"
    private_key_path: str = "~/.ssh/id_rsa"
    port: int = 22


@dataclass
class RemoteSettings:
    working_directory: str = "/home/ec2-user/iac-workspace"
    github_repo_url: str = ""
    environment_variables: dict[str, str] = field(
        default_factory=lambda: {"AWS_REGION": "us-east-1", "NODE_ENV": "production"}
    )


@dataclass
class AgentSettings:
    anthropic_api_key: str = ""
    template_path: str = "templates/cdk-go"
    output_path: str = field(default_factory=lambda: os.path.join(os.getcwd(), DEFAULTS["output_path"]))
    repository_name: str = "iac-gen-go"
    execution_mode: str = "local"
    max_cycles: int = DEFAULTS["max_cycles"]
    max_attempts_per_pass: int = DEFAULTS["max_attempts_per_pass"]
    command_timeout: int | None = DEFAULTS["command_timeout"]
    ssh: SSHSettings = field(default_factory=SSHSettings)
    remote: RemoteSettings = field(default_factory=RemoteSettings)

    def validate(self):
        """Raise ValueError for settings the agent cannot run with."""
        if self.execution_mode not in EXECUTION_MODES:
            raise ValueError(
                f"Unknown execution mode '{self.execution_mode}'. Valid options: {', '.join(EXECUTION_MODES)}"
            )
        if self.max_cycles < 1:
            raise ValueError("max_cycles must be at least 1")
        if self.max_attempts_per_pass < 1:
            raise ValueError("max_attempts_per_pass must be at least 1")
        if self.execution_mode == "remote" and not self.ssh.host:
            raise ValueError("Remote mode requires ssh.host")
        return self


def default_config_path():
    return os.path.join(os.getcwd(), DEFAULTS["config_filename"])


def _as_int(key, value, optional=False):
    if value is None and optional:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be an integer, got {value!r}") from None


def settings_from_dict(data: dict) -> AgentSettings:
    """Build settings from the JSON shape written by save_settings.

    Keys use the camelCase names of the config file; unknown keys are ignored.
    """
    settings = AgentSettings()
    scalar_keys = {
        "anthropicApiKey": "anthropic_api_key",
        "templatePath": "template_path",
        "outputPath": "output_path",
        "repositoryName": "repository_name",
        "executionMode": "execution_mode",
    }
    for key, attr in scalar_keys.items():
        if key in data:
            setattr(settings, attr, data[key])

    int_keys = {
        "maxCycles": "max_cycles",
        "maxAttemptsPerPass": "max_attempts_per_pass",
        "commandTimeout": "command_timeout",
    }
    for key, attr in int_keys.items():
        if key in data:
            setattr(settings, attr, _as_int(key, data[key], optional=attr == "command_timeout"))

    ssh = data.get("sshConfig") or {}
    settings.ssh = SSHSettings(
        host=ssh.get("host", settings.ssh.host),
        username=ssh.get("username", settings.ssh.username),
        private_key_path=ssh.get("privateKeyPath", settings.ssh.private_key_path),
        port=_as_int("sshConfig.port", ssh.get("port", settings.ssh.port)),
    )

    remote = data.get("remoteConfig") or {}
    settings.remote = RemoteSettings(
        working_directory=remote.get("workingDirectory", settings.remote.working_directory),
        github_repo_url=remote.get("githubRepoUrl", settings.remote.github_repo_url),
        environment_variables=dict(
            remote.get("environmentVariables", settings.remote.environment_variables)
        ),
    )
    return settings


def settings_to_dict(settings: AgentSettings, mask_secrets=False) -> dict:
    """Inverse of settings_from_dict."""
    key = settings.anthropic_api_key
    if mask_secrets and key:
        key = key[:7] + "..." if len(key) > 10 else "***"
    return {
        "anthropicApiKey": key,
        "templatePath": settings.template_path,
        "outputPath": settings.output_path,
        "repositoryName": settings.repository_name,
        "executionMode": settings.execution_mode,
        "maxCycles": settings.max_cycles,
        "maxAttemptsPerPass": settings.max_attempts_per_pass,
        "commandTimeout": settings.command_timeout,
        "sshConfig": {
            "host": settings.ssh.host,
            "port": settings.ssh.port,
            "username": settings.ssh.username,
            "privateKeyPath": settings.ssh.private_key_path,
        },
        "remoteConfig": {
            "workingDirectory": settings.remote.working_directory,
            "githubRepoUrl": settings.remote.github_repo_url,
            "environmentVariables": dict(settings.remote.environment_variables),
        },
    }


def load_settings(path=None, env=None) -> AgentSettings:
    """Load settings from the config file if present, else defaults.

    The Anthropic key falls back to ANTHROPIC_API_KEY when the file has none.
    """
    env = os.environ if env is None else env
    path = path or default_config_path()

    if os.path.isfile(path):
        with open(path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON in {path}: {e}") from e
        settings = settings_from_dict(data)
    else:
        settings = AgentSettings()

    if not settings.anthropic_api_key:
        settings.anthropic_api_key = env.get("ANTHROPIC_API_KEY", "")
    return settings


def save_settings(settings: AgentSettings, path=None) -> str:
    path = path or default_config_path()
    with open(path, "w") as f:
        json.dump(settings_to_dict(settings), f, indent=2)
        f.write("\n")
    return path
