"""Trust boundaries around the model: input sanitization and output guarding."""
from .sanitizer import DataSanitizer, SanitizationCheck, REDACTION_TOKEN
from .guard import ResponseGuard

__all__ = ["DataSanitizer", "SanitizationCheck", "REDACTION_TOKEN", "ResponseGuard"]
