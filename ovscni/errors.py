"""Error types raised by the attachment manager.

Every error carries a CNI error code so the entry point can report it
using the CNI error result convention without inspecting the type.
"""
from __future__ import annotations


# CNI well-known error codes
CNI_ERR_UNKNOWN_CONTAINER = 3
CNI_ERR_INVALID_ENV = 4
CNI_ERR_IO_FAILURE = 5
CNI_ERR_DECODE = 6
CNI_ERR_INVALID_NETCONF = 7
CNI_ERR_TRY_AGAIN = 11
# Plugin-specific codes start at 100
CNI_ERR_VSWITCH = 100
CNI_ERR_INTERNAL = 999


class CniOvsError(Exception):
    """Base class for attachment manager errors."""

    code: int = CNI_ERR_VSWITCH

    def __init__(self, message: str, details: str = ""):
        self.message = message
        self.details = details
        super().__init__(message)


class UnsupportedInterfaceType(CniOvsError):
    """Raised when the requested interface technology is not implemented."""

    code = CNI_ERR_INVALID_NETCONF

    def __init__(self, if_type: str):
        self.if_type = if_type
        super().__init__(f"Unsupported interface type: {if_type!r}")


class ConfigNotFound(CniOvsError):
    """Raised when no saved record exists for an attachment."""

    code = CNI_ERR_UNKNOWN_CONTAINER

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"No saved config for attachment {key}")


class VswitchOperationFailed(CniOvsError):
    """Raised when an ovs-vsctl invocation fails."""

    code = CNI_ERR_VSWITCH

    def __init__(self, cmd: list[str], returncode: int, stderr: str):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr.strip()
        super().__init__(
            f"{' '.join(cmd)} failed with exit code {returncode}",
            details=self.stderr,
        )


class FilesystemError(CniOvsError):
    """Raised when a socket or data directory operation fails."""

    code = CNI_ERR_IO_FAILURE

    def __init__(self, operation: str, path: str, error: OSError):
        self.operation = operation
        self.path = path
        self.error = error
        super().__init__(f"Failed to {operation} {path}: {error.strerror or error}")


class LockAcquisitionTimeout(CniOvsError):
    """Raised when an attachment lock cannot be acquired within timeout."""

    code = CNI_ERR_TRY_AGAIN

    def __init__(self, key: str, timeout: float):
        self.key = key
        self.timeout = timeout
        super().__init__(f"Could not acquire lock for attachment {key} within {timeout}s")


class InvalidConfiguration(CniOvsError):
    """Raised when the CNI environment or network config cannot be used."""

    code = CNI_ERR_INVALID_NETCONF

    def __init__(self, message: str, code: int = CNI_ERR_INVALID_NETCONF, details: str = ""):
        self.code = code
        super().__init__(message, details=details)


class InternalError(CniOvsError):
    """Wraps an unexpected exception so it is still reported as a CNI error."""

    code = CNI_ERR_INTERNAL

    def __init__(self, error: Exception):
        self.error = error
        super().__init__("Internal plugin error", details=f"{type(error).__name__}: {error}")
