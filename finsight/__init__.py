"""FinSight: guarded AI insights over personal finance data."""
from .orchestrator import AnalysisResult, InsightAnalyzer
from .security import DataSanitizer, ResponseGuard
from .validation import SchemaValidator

__version__ = "1.0.0"

__all__ = [
    "AnalysisResult",
    "InsightAnalyzer",
    "DataSanitizer",
    "ResponseGuard",
    "SchemaValidator",
]
