"""Utility modules."""
from .logger import get_logger, set_user_context, configure_logging
from .exceptions import (
    FinSightError,
    ConfigError,
    LLMError,
    PromptError,
    ValidationError,
    GuardError,
    EmptyResponseError,
    SuspiciousContentError,
    MonetaryValueError,
    RetryableError,
    RetryableLLMError
)
from .retry import retry_with_backoff

__all__ = [
    "get_logger",
    "set_user_context",
    "configure_logging",
    "FinSightError",
    "ConfigError",
    "LLMError",
    "PromptError",
    "ValidationError",
    "GuardError",
    "EmptyResponseError",
    "SuspiciousContentError",
    "MonetaryValueError",
    "RetryableError",
    "RetryableLLMError",
    "retry_with_backoff"
]
