"""
Error taxonomy for the contribution engine.

Callers at the request boundary only need to tell MissingParameter (client error)
apart from everything else (server error). The engine itself recovers from
InvalidAttribute and per-issue NotFound locally.
"""


class ContribError(Exception):
    """Base class for every error raised by the engine and its collaborators."""

    retryable = False


class MissingParameter(ContribError):
    """A required identifier was not supplied."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"{name} required")


class NotFound(ContribError):
    """A referenced copany or issue does not exist."""

    def __init__(self, kind: str, ident):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} not found: {ident}")


class InvalidAttribute(ContribError):
    """An ordinal, timestamp or activity type could not be interpreted."""

    def __init__(self, field: str, value, reason: str = ''):
        self.field = field
        self.value = value
        msg = f"invalid {field}: {value!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class ComputationTimeout(ContribError):
    """A collaborator read or the overall computation exceeded its deadline."""

    retryable = True


class ProviderError(ContribError):
    """The persistence collaborator failed for a reason other than a timeout."""

    def __init__(self, message: str, status: int = 0):
        self.status = status
        super().__init__(message)
