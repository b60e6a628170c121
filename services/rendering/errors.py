"""Error taxonomy for render submission and status checks."""

from typing import Optional


class RenderError(Exception):
    """Base class for all render workflow errors."""

    transient = False

    def __init__(self, message: str, provider: Optional[str] = None):
        self.message = message
        self.provider = provider
        super().__init__(message)


class InvalidInput(RenderError, ValueError):
    """Caller error: missing composition, empty handle, unbounded track."""


class SubmissionFailed(RenderError):
    """The submission request never got an answer (network, timeout, breaker)."""


class SubmissionRejected(RenderError):
    """The provider answered the submission with a non-success response."""

    def __init__(self, status_code: int, message: str, provider: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message, provider)

    def __str__(self) -> str:
        return f"{self.message} (HTTP {self.status_code})"


class StatusCheckFailed(RenderError):
    """A status check could not be completed. Retry on the next poll."""

    transient = True

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.status_code = status_code
        super().__init__(message, provider)


class StatusCheckRejected(RenderError):
    """The provider refused the status check (unknown handle, bad credential)."""

    def __init__(self, status_code: int, message: str, provider: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message, provider)

    def __str__(self) -> str:
        return f"{self.message} (HTTP {self.status_code})"


class StatusParseError(RenderError):
    """The status response could not be understood."""


class ProviderNotConfigured(RenderError):
    """The provider credential is missing; nothing was sent."""
