"""Custom exception classes for FinSight."""


class FinSightError(Exception):
    """Base exception for FinSight."""
    pass


class ConfigError(FinSightError):
    """Configuration-related errors."""
    pass


class LLMError(FinSightError):
    """LLM processing errors."""
    pass


class PromptError(FinSightError):
    """Prompt rendering errors."""
    pass


class ValidationError(FinSightError):
    """Data validation errors."""
    pass


class GuardError(FinSightError):
    """Model output rejected by the response guard."""
    pass


class EmptyResponseError(GuardError):
    """Model returned nothing to guard."""
    pass


class SuspiciousContentError(GuardError):
    """Model output contains sensitive-looking content."""

    def __init__(self, pattern_name: str):
        super().__init__(f"Response contains suspicious pattern: {pattern_name}")
        self.pattern_name = pattern_name


class MonetaryValueError(GuardError):
    """Monetary value outside the accepted bounds."""

    def __init__(self, path: str, value: float):
        super().__init__(f"Suspicious monetary value at {path}: {value}")
        self.path = path
        self.value = value


# Retryable errors
class RetryableError(FinSightError):
    """Base class for errors that should trigger retry."""
    pass


class RetryableLLMError(RetryableError, LLMError):
    """LLM errors that can be retried."""
    pass
