"""Declarative schemas for model responses.

Field names are snake_case and exposed under their camelCase JSON names. Top
level models are closed; validation runs in strict JSON mode so numbers stay
numbers and strings stay strings.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Priority = Literal["high", "medium", "low"]
HealthLevel = Literal["excellent", "good", "fair", "poor"]

INSIGHT_TYPES = (
    "spending_pattern",
    "budget_recommendation",
    "savings_opportunity",
    "risk_alert",
    "income_insight",
    "subscription_optimization",
    "goal_progress",
    "financial_health",
)

ACTION_TYPES = (
    "review",
    "adjust_budget",
    "cancel_subscription",
    "increase_savings",
    "create_goal",
    "track_category",
    "alert",
    "mitigate",
)


class _Schema(BaseModel):
    model_config = ConfigDict(strict=True, alias_generator=to_camel)


class _ClosedSchema(_Schema):
    model_config = ConfigDict(strict=True, alias_generator=to_camel, extra="forbid")


class DataReference(_Schema):
    """A number from the user's data that an insight is based on."""
    type: Literal["category", "budget", "goal", "signal", "risk", "count"]
    name: str
    value: float


class ActionItem(_Schema):
    """A concrete step the user can take."""
    description: str = Field(min_length=10, max_length=200)
    type: Literal[ACTION_TYPES]
    priority: Priority
    parameters: Optional[Dict[str, Any]] = None


class Impact(_Schema):
    type: Literal["positive", "negative", "neutral"]
    amount: Optional[float] = None
    percentage: Optional[float] = None
    timeframe: Optional[Literal["immediate", "short_term", "long_term", "this_month", "by_target"]] = None
    probability: Optional[float] = Field(default=None, ge=0, le=100)


class Insight(_ClosedSchema):
    title: str = Field(min_length=5, max_length=100)
    description: str = Field(min_length=20, max_length=500)
    type: Literal[INSIGHT_TYPES]
    confidence: float = Field(ge=0, le=100)
    priority: Priority
    data_references: List[DataReference] = Field(min_length=1, max_length=5)
    action_items: List[ActionItem] = Field(min_length=1, max_length=3)
    impact: Optional[Impact] = None


class Summary(_Schema):
    """Analysis summary. Open: analysis types add their own figures."""
    model_config = ConfigDict(strict=True, alias_generator=to_camel, extra="allow")

    message: Optional[str] = None
    required_data: Optional[List[str]] = None
    total_spent: Optional[float] = None
    average_daily: Optional[float] = None
    top_category: Optional[str] = None
    significant_changes: Optional[float] = None
    risk_level: Optional[Priority] = None
    total_budgeted: Optional[float] = None
    budgets_on_track: Optional[float] = None
    budgets_at_risk: Optional[float] = None
    recommended_adjustments: Optional[float] = None
    overall_health: Optional[HealthLevel] = None
    total_goals: Optional[float] = None
    goals_on_track: Optional[float] = None
    goals_at_risk: Optional[float] = None
    monthly_shortfall: Optional[float] = None
    projected_savings_rate: Optional[float] = None
    top_priority: Optional[str] = None
    overall_risk: Optional[float] = None
    critical_count: Optional[float] = None
    high_count: Optional[float] = None
    medium_count: Optional[float] = None
    low_count: Optional[float] = None
    top_risk: Optional[str] = None
    trend: Optional[Literal["improving", "worsening", "stable"]] = None


class InsightResponse(_ClosedSchema):
    """Single-analysis response."""
    insights: List[Insight] = Field(max_length=10)
    summary: Summary


class IntegratedInsight(_Schema):
    title: str
    description: str
    related_types: List[Literal["spending", "budget", "savings", "risk"]]
    confidence: float = Field(ge=0, le=100)
    priority: Priority


class Conflict(_Schema):
    between: List[str] = Field(min_length=2)
    description: str
    resolution: str


class ActionStep(_Schema):
    step: float
    action: str
    type: str
    timeframe: Literal["immediate", "this_week", "this_month"]


class OverallHealth(_Schema):
    score: float = Field(ge=0, le=100)
    level: HealthLevel
    summary: str


class IntegratedAnalysisResponse(_ClosedSchema):
    """Integrated (cross-analysis) response."""
    integrated_insights: List[IntegratedInsight]
    conflicts: Optional[List[Conflict]] = None
    action_plan: Optional[List[ActionStep]] = None
    overall_health: OverallHealth


RESPONSE_MODELS = {
    "single": InsightResponse,
    "integrated": IntegratedAnalysisResponse,
}

# Key holding the insight list for each response kind
INSIGHT_LIST_KEYS = {
    "single": "insights",
    "integrated": "integratedInsights",
}
