class DTFError(Exception):
    """Base class for errors raised while reading or writing DTF files"""


class FormatViolation(DTFError):
    """Raised when bytes on disk (or bytes we are about to write) do not follow
    the DTF layout: bad magic value, truncated batch, malformed field"""


class OrderingViolation(DTFError):
    """Raised when updates are not in the order the format requires. Nothing
    is written when this is raised"""


class IOFailure(DTFError):
    """Raised when a file can't be opened, written, flushed or renamed.
    The original OSError is kept as the __cause__"""
