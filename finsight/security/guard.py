"""Post-validation guard for model output.

Nothing produced by the model reaches persistence or a client without passing
through ResponseGuard.guard_response.
"""
import json
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

from finsight.config import get_settings
from finsight.utils.exceptions import EmptyResponseError, MonetaryValueError, SuspiciousContentError
from finsight.utils.json_tree import JsonVisitor, copy_tree, is_number, walk
from finsight.utils.logger import get_logger

logger = get_logger()

GUARD_VERSION = "1.0"
INSIGHT_KEYS = ("insights", "integratedInsights")
PRIORITIES = ("high", "medium", "low")
MONETARY_FIELDS = frozenset({"amount", "value", "total"})

SUSPICIOUS_PATTERNS = {
    "sensitive_term": re.compile(r"\b(?:credit card|ccv|pin|password)\b", re.IGNORECASE),
    "credit_card": re.compile(r"\b\d{16}\b"),
    "ssn": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
}

_MARKUP = re.compile(r"[<>]")
_SHELL_CHARS = re.compile(r"[\\$;|&]")
_WHITESPACE = re.compile(r"\s+")


def _confidence(insight: Any) -> float:
    value = insight.get("confidence") if isinstance(insight, Mapping) else None
    if is_number(value) and math.isfinite(value):
        return value
    return 0


class _TextSanitizer(JsonVisitor):
    def visit_string(self, value, path):
        value = _MARKUP.sub("", value)
        value = _SHELL_CHARS.sub("", value)
        return _WHITESPACE.sub(" ", value).strip()


class ResponseGuard:
    """Constrains and scrubs validated model responses."""

    def __init__(
        self,
        max_insights: int = 10,
        max_action_items: int = 3,
        min_action_description: int = 5,
        max_monetary_value: float = 1_000_000,
        disclaimer_threshold: float = 70,
    ):
        self.max_insights = max_insights
        self.max_action_items = max_action_items
        self.min_action_description = min_action_description
        self.max_monetary_value = max_monetary_value
        self.disclaimer_threshold = disclaimer_threshold

    @classmethod
    def from_settings(cls, settings=None) -> "ResponseGuard":
        settings = settings or get_settings()
        return cls(
            max_insights=settings.guard_max_insights,
            max_action_items=settings.guard_max_action_items,
            min_action_description=settings.guard_min_action_description,
            max_monetary_value=settings.guard_max_monetary_value,
            disclaimer_threshold=settings.guard_disclaimer_threshold,
        )

    def guard_response(self, response: Any) -> Dict[str, Any]:
        """
        Guard AI response before it is persisted or returned to a client.

        Args:
            response: Schema-validated model response

        Returns:
            New guarded response with _guarded metadata

        Raises:
            EmptyResponseError: response is missing or empty
            SuspiciousContentError: response contains sensitive-looking data
        """
        if not response or not isinstance(response, Mapping):
            raise EmptyResponseError("Empty response from AI")

        guarded = copy_tree(response)
        guarded = self.limit_insights(guarded)
        guarded = self.clamp_confidence(guarded)
        # Insights cut by the limit still count as leaked content
        self.check_suspicious_content(self.clamp_confidence(response))
        guarded = self.ensure_actionable(guarded)
        guarded = self.sanitize_text(guarded)
        # Stripping characters can join digit runs into a new match
        self.check_suspicious_content(guarded)
        return self.add_guard_metadata(guarded)

    def limit_insights(self, response: Mapping) -> Dict[str, Any]:
        """Keep the highest-confidence insights; ties keep original order."""
        result = dict(response)
        for key in INSIGHT_KEYS:
            insights = result.get(key)
            if isinstance(insights, list) and len(insights) > self.max_insights:
                ranked = sorted(insights, key=lambda insight: -_confidence(insight))
                result[key] = ranked[:self.max_insights]
        return result

    def clamp_confidence(self, response: Mapping) -> Dict[str, Any]:
        """Clamp confidence to [0, 100] and round half-up to an integer."""
        result = dict(response)
        for key in INSIGHT_KEYS:
            insights = result.get(key)
            if not isinstance(insights, list):
                continue
            clamped = []
            for insight in insights:
                if isinstance(insight, Mapping):
                    value = max(0, min(100, _confidence(insight)))
                    insight = {**insight, "confidence": int(math.floor(value + 0.5))}
                clamped.append(insight)
            result[key] = clamped
        return result

    def check_suspicious_content(self, response: Any) -> None:
        """Raise if the serialized response looks like it carries sensitive data."""
        text = json.dumps(response, ensure_ascii=False, default=str)
        for name, pattern in SUSPICIOUS_PATTERNS.items():
            if pattern.search(text):
                logger.error(f"Security: model response rejected, matched '{name}' pattern")
                raise SuspiciousContentError(name)

    def ensure_actionable(self, response: Mapping) -> Dict[str, Any]:
        """Drop insights without usable action items and cap the rest."""
        insights = response.get("insights")
        if not isinstance(insights, list):
            return dict(response)

        kept = []
        for insight in insights:
            if not isinstance(insight, Mapping):
                continue
            actions = insight.get("actionItems")
            if not isinstance(actions, list) or not actions:
                continue
            if not all(self._is_usable_action(action) for action in actions):
                continue
            kept.append({**insight, "actionItems": actions[:self.max_action_items]})

        dropped = len(insights) - len(kept)
        if dropped:
            logger.info(f"Dropped {dropped} non-actionable insight(s)")

        return {**response, "insights": kept}

    def _is_usable_action(self, action: Any) -> bool:
        if not isinstance(action, Mapping):
            return False
        description = action.get("description")
        return isinstance(description, str) and len(description) >= self.min_action_description

    def sanitize_text(self, response: Any) -> Any:
        """Strip markup and shell metacharacters, normalize whitespace."""
        return _TextSanitizer().visit(response)

    def add_guard_metadata(self, response: Mapping) -> Dict[str, Any]:
        return {
            **response,
            "_guarded": {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "version": GUARD_VERSION,
                "stats": self.generate_stats(response),
            },
        }

    def generate_stats(self, response: Mapping) -> Dict[str, Any]:
        """Insight count, mean confidence and per-priority counts."""
        stats = {
            "totalInsights": 0,
            "avgConfidence": 0,
            "byPriority": {priority: 0 for priority in PRIORITIES},
        }

        insights = response.get("insights")
        if not isinstance(insights, list):
            insights = response.get("integratedInsights")
        if not isinstance(insights, list) or not insights:
            return stats

        stats["totalInsights"] = len(insights)
        stats["avgConfidence"] = round(sum(_confidence(i) for i in insights) / len(insights), 2)
        for insight in insights:
            priority = insight.get("priority") if isinstance(insight, Mapping) else None
            if priority in stats["byPriority"]:
                stats["byPriority"][priority] += 1

        return stats

    def validate_data_references(self, response: Mapping) -> bool:
        """
        Check references carry values and budget/savings actions carry amounts.

        Returns:
            False if any reference or parameterized action is incomplete
        """
        for insight in response.get("insights") or []:
            for ref in insight.get("dataReferences") or []:
                if not ref.get("name") or ref.get("value") is None:
                    return False

            for action in insight.get("actionItems") or []:
                if action.get("type") in ("adjust_budget", "increase_savings"):
                    parameters = action.get("parameters") or {}
                    if not parameters.get("suggestedAmount"):
                        return False

        return True

    def add_confidence_disclaimer(self, response: Mapping) -> Dict[str, Any]:
        """Copy of response with a user-facing note when confidence is low."""
        result = copy_tree(response)
        low_confidence = [
            i for i in result.get("insights") or []
            if _confidence(i) < self.disclaimer_threshold
        ]
        if low_confidence:
            result["_disclaimer"] = (
                f"Some insights have lower confidence ({len(low_confidence)} below "
                f"{self.disclaimer_threshold}%). Please review before taking action."
            )
        return result

    def validate_monetary_values(self, response: Any) -> None:
        """Raise MonetaryValueError for any amount/value/total beyond the cap."""
        for path, key, value in walk(response):
            if key in MONETARY_FIELDS and is_number(value) and abs(value) > self.max_monetary_value:
                raise MonetaryValueError(path, value)
