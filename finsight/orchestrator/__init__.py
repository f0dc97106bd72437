"""Analysis orchestration."""
from .analyzer import AnalysisResult, InsightAnalyzer, UNAVAILABLE_MESSAGE

__all__ = ["AnalysisResult", "InsightAnalyzer", "UNAVAILABLE_MESSAGE"]
