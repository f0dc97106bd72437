"""LLM prompt rendering and model client."""
from .client import InsightClient
from .prompts import ANALYSIS_TYPES, PromptBuilder

__all__ = ["InsightClient", "PromptBuilder", "ANALYSIS_TYPES"]
