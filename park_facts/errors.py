"""
Error taxonomy for the extraction pipeline.

Every stage fails closed: errors propagate to the orchestrator and then to
the caller as a single failure. No stage substitutes a default on error.
"""


class ParkExtractionError(Exception):
    """Base class for all pipeline errors."""


class InputValidationError(ParkExtractionError):
    """A required input (park name, reference URL, field key) is missing or invalid.

    Raised before any model call is issued.
    """


class MissingModelOutput(ParkExtractionError):
    """A free-text model call returned empty text."""


class SchemaValidationError(ParkExtractionError):
    """A structured model call returned output that does not match the schema."""

    def __init__(self, message: str, errors: list | None = None):
        super().__init__(message)
        self.errors = errors or []


class UpstreamProviderError(ParkExtractionError):
    """Network or provider-side failure (rate limit, timeout, 5xx)."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.provider = provider


class ConfigurationError(ParkExtractionError):
    """Invalid or missing configuration (API keys, uniqueness policy, numeric settings)."""


def require_text(value: object, name: str) -> str:
    """Trim a required string input, raising InputValidationError if it is empty."""
    if not isinstance(value, str) or not value.strip():
        raise InputValidationError(f"Missing {name}.")
    return value.strip()
