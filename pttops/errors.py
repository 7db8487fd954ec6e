"""Error kinds raised by stack, remote-exec and pipeline code."""


class OpsError(RuntimeError):
    """Base class for all pttops errors."""


class ConfigError(OpsError, ValueError):
    """Configuration is missing, malformed, or points somewhere unsupported."""


class StackExistsError(OpsError):
    """A stack with the requested name is already present."""


class StackNotFoundError(OpsError):
    """The provider reports that the stack does not exist."""


class AmbiguousStackError(OpsError):
    """Describe returned zero or more than one record for a single stack name."""


class StackCreateError(OpsError):
    """Stack creation ended in a failed terminal state."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class StackRolledBackError(StackCreateError):
    """Stack creation rolled back and the stack was torn down."""


class PollTimeoutError(OpsError, TimeoutError):
    """A polling loop ran out of time before the operation succeeded."""

    def __init__(self, message, elapsed=0.0):
        super().__init__(message)
        self.elapsed = elapsed


class TransportError(OpsError):
    """SSH connection, session setup, or I/O failed."""


class RemoteCommandError(OpsError):
    """A remote command exited with a non-zero status."""

    def __init__(self, command, exit_status, stderr=""):
        super().__init__(f"command {command!r} exited with status {exit_status}")
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr


class LookupFailedError(OpsError):
    """An AMI, hosted zone, or network lookup matched nothing."""
