"""
Error taxonomy shared by the backend clients, the executor and the parser.
"""

from typing import List, Optional


class ProfileGenError(Exception):
    """Base class for every failure raised by the pipeline."""


class ConfigurationError(ProfileGenError):
    """Fatal: the request itself is wrong (HTTP 400, missing key, unknown backend)."""


class UpstreamError(ProfileGenError):
    """A backend answered with a non-2xx status or could not be reached."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        backend: Optional[str] = None,
        body: str = "",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.backend = backend
        self.body = body[:500]


class AuthenticationError(UpstreamError):
    """401/403 while a credential was attached; the executor moves to the next strategy."""


class TransientUpstreamError(UpstreamError):
    """Timeouts, network errors, 502/503 and empty generations."""


class ExhaustedRetriesError(UpstreamError):
    """Every strategy and attempt failed without a fatal error."""

    def __init__(self, message: str, last_error: Optional[Exception] = None, backend: Optional[str] = None):
        status_code = getattr(last_error, "status_code", None)
        super().__init__(message, status_code=status_code, backend=backend)
        self.last_error = last_error


class MalformedResponseError(ProfileGenError):
    """The model answered, but not with a usable ProfileData document."""

    def __init__(self, message: str, snippet: str = "", problems: Optional[List[str]] = None):
        super().__init__(message)
        self.snippet = snippet
        self.problems = problems or []


class ExtractionError(ProfileGenError):
    """The uploaded document could not be read or produced no text."""
