"""Transfer status classification and the exceptions raised to callers"""
import enum
import errno


class Disposition(enum.Enum):
    SUCCESS = "success"
    IGNORE = "ignore"  # transient timeout: drop the result, retry the same step
    SHUTDOWN = "shutdown"  # owner is going away: stop silently
    STALL = "stall"  # endpoint stalled: skip this step, keep cycling
    UNEXPECTED = "unexpected"  # log and keep cycling


_IGNORE = frozenset({errno.ETIME, errno.ETIMEDOUT})
_SHUTDOWN = frozenset({errno.ECONNRESET, errno.ENOENT, errno.ESHUTDOWN, errno.ENODEV})
_STALL = frozenset({errno.EPIPE})

# Submission failures that only mean the session is already being torn down
QUIET_SUBMIT_ERRORS = frozenset({errno.EPERM, errno.ENODEV, errno.ESHUTDOWN})


def classify(status: int) -> Disposition:
    """Map a completion status (0 or an errno value) to a disposition."""
    if status == 0:
        return Disposition.SUCCESS
    status = abs(status)
    if status in _IGNORE:
        return Disposition.IGNORE
    if status in _SHUTDOWN:
        return Disposition.SHUTDOWN
    if status in _STALL:
        return Disposition.STALL
    return Disposition.UNEXPECTED


def should_resubmit(disposition: Disposition) -> bool:
    return disposition is not Disposition.SHUTDOWN


def advances(disposition: Disposition) -> bool:
    """Whether a vendor poll moves on to the other record after this status."""
    return disposition in (Disposition.SUCCESS, Disposition.STALL, Disposition.UNEXPECTED)


def errno_name(code) -> str:
    if code is None:
        return "Unknown"
    return errno.errorcode.get(abs(code), "Unknown")


class SubmitError(OSError):
    """A transfer could not be queued."""


class HoriIOError(OSError):
    """A lifecycle entry point could not start its streams."""

    def __init__(self, message):
        super().__init__(errno.EIO, message)


class DeviceNotFound(LookupError):
    pass


class ConfigError(ValueError):
    pass


class OutputUnavailable(RuntimeError):
    """The configured output backend cannot be opened on this host."""
