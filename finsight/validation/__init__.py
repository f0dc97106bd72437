"""Model response validation."""
from .schemas import InsightResponse, IntegratedAnalysisResponse, RESPONSE_MODELS
from .validator import NumericRangeReport, SchemaValidator, ValidationResult

__all__ = [
    "InsightResponse",
    "IntegratedAnalysisResponse",
    "RESPONSE_MODELS",
    "NumericRangeReport",
    "SchemaValidator",
    "ValidationResult",
]
