"""Fatal error types and process exit codes."""

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit status, one per distinct failure cause."""

    OK = 0
    KERNEL_UNSUPPORTED = 1
    PRESSURE_OPEN = 2
    PRESSURE_WRITE = 3
    POLL_FAILED = 4
    FILE_GONE = 5
    EVENT_UNKNOWN = 6
    CONFIG_INVALID = 7
    CONFIG_EXISTS = 8


class PsiError(Exception):
    """Base class for fatal monitor errors.

    Subclasses set exit_code so the driver can map any failure to a process
    exit status in one place.
    """

    exit_code: ExitCode = ExitCode.OK

    def __init__(self, message: str, domain: str | None = None) -> None:
        super().__init__(message)
        self.domain = domain


class KernelUnsupportedError(PsiError):
    """The kernel does not expose /proc/pressure (needs Linux 5.2+)."""

    exit_code = ExitCode.KERNEL_UNSUPPORTED


class PressureOpenError(PsiError):
    """A pressure file could not be opened for read/write."""

    exit_code = ExitCode.PRESSURE_OPEN


class PressureWriteError(PsiError):
    """Writing a trigger descriptor failed or was short."""

    exit_code = ExitCode.PRESSURE_WRITE


class PollError(PsiError):
    """The multiplexed wait itself failed."""

    exit_code = ExitCode.POLL_FAILED


class SourceGoneError(PsiError):
    """A pressure handle signalled that its file is gone."""

    exit_code = ExitCode.FILE_GONE


class UnrecognizedEventError(PsiError):
    """A pressure handle signalled a readiness condition we never asked for."""

    exit_code = ExitCode.EVENT_UNKNOWN

    def __init__(self, message: str, domain: str | None = None, revents: int = 0) -> None:
        super().__init__(message, domain)
        self.revents = revents
