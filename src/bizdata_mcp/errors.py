"""
Exception hierarchy for the tool-routing pipeline.

Every error carries a human-readable message, optional details, and can be
serialised with ``to_dict()`` for HTTP error bodies.

- InvalidInputError: bad or missing caller-supplied argument (never retried)
- ConfigurationError: missing credential, model or endpoint (never retried)
- TransientUpstreamError: network / rate-limit failure (retried with backoff)
- UpstreamError: retries exhausted or a non-retryable upstream failure
- ParseError: model output was not the structured data we asked for
"""

from typing import Any, Dict, Optional


class BizDataError(Exception):
    """Base class for all errors raised by this package."""

    kind: str = "internal"

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a JSON-serialisable dictionary."""
        return {
            "type": "error",
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }


class InvalidInputError(BizDataError):
    kind = "invalid_input"


class ConfigurationError(BizDataError):
    kind = "configuration"


class TransientUpstreamError(BizDataError):
    """A failure that is worth retrying (connection reset, timeout, HTTP 429)."""

    kind = "transient_upstream"


class UpstreamError(BizDataError):
    """
    An upstream call failed for good.

    Raised either when the retry budget is exhausted (the last transient
    failure is chained as ``__cause__``) or when the backend returned an error
    that retrying cannot fix.
    """

    kind = "upstream"


class ParseError(BizDataError):
    kind = "parse"
