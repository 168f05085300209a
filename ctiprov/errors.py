"""
Error taxonomy for provisioning and teardown.
"""

from typing import Optional


class ProvisionError(Exception):
    """Base class for every fatal, anticipated provisioning condition."""

    kind = "provision_error"
    exit_code = 1

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint

    def to_dict(self):
        return {"kind": self.kind, "message": self.message, "hint": self.hint}


class ConfigError(ProvisionError):
    kind = "config_error"


class CommandError(ProvisionError):
    """An external command exited non-zero."""

    kind = "command_failed"

    def __init__(self, argv, returncode: int, stderr: str = "", hint: Optional[str] = None):
        tail = "\n".join((stderr or "").strip().splitlines()[-20:])
        message = f"Command failed ({returncode}): {' '.join(argv)}"
        if tail:
            message = f"{message}\n{tail}"
        super().__init__(message, hint)
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr


class DependencyError(ProvisionError):
    kind = "dependency_missing"


class PermissionDeniedError(ProvisionError):
    kind = "permission_denied"


class WorkspaceConflictError(ProvisionError):
    kind = "workspace_conflict"


class RuntimeUnreachableError(ProvisionError):
    kind = "runtime_unreachable"


class HealthCheckTimeoutError(ProvisionError):
    kind = "health_check_timeout"


class ManifestError(ProvisionError):
    kind = "manifest_invalid"


class LockHeldError(ProvisionError):
    kind = "lock_held"


class TeardownError(ProvisionError):
    kind = "teardown_failed"


class HostFilesystemError(ProvisionError):
    """A step could not read or write a file on the host."""

    kind = "filesystem_error"
