"""Failure types raised across the agent."""


class AgentError(Exception):
    """Base class for agent failures."""

    kind = "unknown"


class GenerationFailure(AgentError):
    """The generation service failed or returned an unusable reply."""

    kind = "generation"


class ValidationFailure(AgentError):
    """A generated file set is missing required files or is malformed."""

    kind = "validation"

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("Generated code validation failed: " + ", ".join(self.errors))


class PhaseFailure(AgentError):
    """A pipeline phase still failed after remedies and retries."""

    kind = "phase"

    def __init__(self, phase, output=""):
        self.phase = phase
        self.output = output
        super().__init__(f"{phase.label} phase failed after all attempts")


class ConnectivityFailure(AgentError):
    """Transport-level failure talking to the remote host."""

    kind = "connectivity"


class MissingCredentialError(AgentError, RuntimeError):
    """A required credential for the generation service is not configured."""

    kind = "credential"
