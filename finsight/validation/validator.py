"""Schema and quality validation of model responses."""
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from finsight.utils.json_tree import copy_tree, is_number
from finsight.utils.logger import get_logger
from .schemas import INSIGHT_LIST_KEYS, RESPONSE_MODELS

logger = get_logger()

MAX_IMPACT_AMOUNT = 1_000_000


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a model response."""
    is_valid: bool
    data: Optional[Any] = None
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class NumericRangeReport:
    is_valid: bool
    issues: List[str] = field(default_factory=list)


def _references(insight: Mapping) -> list:
    refs = insight.get("dataReferences")
    return refs if isinstance(refs, list) else []


def _action_items(insight: Mapping) -> list:
    items = insight.get("actionItems")
    return items if isinstance(items, list) else []


def check_reference_values(index: int, insight: Mapping) -> Iterable[str]:
    for ref_index, ref in enumerate(_references(insight)):
        value = ref.get("value") if isinstance(ref, Mapping) else None
        if value is None:
            yield f"Insight {index}: Data reference {ref_index} missing value"
        elif value == 0 and ref.get("type") != "count":
            # Zero is accepted, but usually means the model lost the figure
            logger.warning(f"Zero value in data reference: {ref.get('type')}.{ref.get('name')}")


def check_confidence_evidence(index: int, insight: Mapping) -> Iterable[str]:
    confidence = insight.get("confidence")
    if is_number(confidence) and confidence > 90 and len(_references(insight)) < 2:
        yield f"Insight {index}: High confidence ({confidence}) with minimal data references"


def check_action_descriptions(index: int, insight: Mapping) -> Iterable[str]:
    for action_index, action in enumerate(_action_items(insight)):
        description = action.get("description") if isinstance(action, Mapping) else None
        if not isinstance(description, str) or len(description) < 10:
            yield f"Insight {index}: Action item {action_index} description too short"


SemanticRule = Callable[[int, Mapping], Iterable[str]]

# Integrated insights carry no references or action items of their own
SEMANTIC_RULES: Dict[str, tuple] = {
    "single": (check_reference_values, check_confidence_evidence, check_action_descriptions),
    "integrated": (),
}


class SchemaValidator:
    """Validates parsed model output against the response schemas."""

    def validate(self, response: Any, kind: str = "single") -> ValidationResult:
        """
        Validate a parsed model response.

        Structural errors are reported first; semantic rules only run on a
        structurally valid response and every violation is collected.

        Args:
            response: Parsed JSON value from the model
            kind: "single" or "integrated"

        Returns:
            ValidationResult with data on success or the list of errors
        """
        model = self._model_for(kind)

        try:
            payload = json.dumps(response, allow_nan=False)
        except (TypeError, ValueError) as e:
            return ValidationResult(is_valid=False, errors=[f"root: response is not JSON-compatible ({e})"])

        try:
            model.model_validate_json(payload)
        except ValidationError as e:
            errors = [self._format_error(error) for error in e.errors()]
            logger.warning(f"{kind} response failed schema validation with {len(errors)} error(s)")
            return ValidationResult(is_valid=False, errors=errors)

        errors = self._semantic_errors(response, kind)
        if errors:
            logger.warning(f"{kind} response failed {len(errors)} quality rule(s)")
            return ValidationResult(is_valid=False, errors=errors)

        return ValidationResult(is_valid=True, data=response)

    def _semantic_errors(self, response: Mapping, kind: str) -> List[str]:
        errors: List[str] = []
        insights = response.get(INSIGHT_LIST_KEYS[kind]) or []
        for index, insight in enumerate(insights):
            for rule in SEMANTIC_RULES[kind]:
                errors.extend(rule(index, insight))
        return errors

    def _format_error(self, error: Mapping) -> str:
        path = "/".join(str(part) for part in error["loc"])
        return f"/{path}: {error['msg']}" if path else f"root: {error['msg']}"

    def _model_for(self, kind: str):
        try:
            return RESPONSE_MODELS[kind]
        except KeyError:
            raise ValueError(f"Unknown response kind: {kind}") from None

    def response_schema(self, kind: str = "single") -> Dict[str, Any]:
        """JSON Schema for a response kind, for embedding in prompts."""
        return self._model_for(kind).model_json_schema(by_alias=True)

    def sanitize_to_schema(self, response: Mapping, kind: str = "single") -> Dict[str, Any]:
        """Keep only the top-level keys the schema declares."""
        declared = self.response_schema(kind)["properties"]
        return {key: response[key] for key in declared if key in response}

    def meets_quality_standards(self, response: Mapping) -> bool:
        """Check if response meets minimum quality standards."""
        insights = [i for i in response.get("insights") or [] if isinstance(i, Mapping)]
        if not insights:
            return False

        if not any(is_number(i.get("confidence")) and i["confidence"] >= 70 for i in insights):
            return False

        if not all(_action_items(i) for i in insights):
            return False

        return all(_references(i) for i in insights)

    def filter_by_confidence(self, response: Mapping, threshold: float = 70) -> Dict[str, Any]:
        """Copy of the response keeping insights at or above threshold."""
        filtered = copy_tree(response)
        filtered["insights"] = [
            insight for insight in filtered.get("insights") or []
            if isinstance(insight, Mapping)
            and is_number(insight.get("confidence")) and insight["confidence"] >= threshold
        ]
        return filtered

    def validate_numeric_ranges(self, response: Mapping) -> NumericRangeReport:
        """Bounds-check confidence and impact figures for monitoring."""
        issues: List[str] = []

        def check_range(value, low, high, name):
            if is_number(value) and (value < low or value > high):
                issues.append(f"{name}: {value} outside range [{low}, {high}]")

        for i, insight in enumerate(response.get("insights") or []):
            if not isinstance(insight, Mapping):
                continue
            check_range(insight.get("confidence"), 0, 100, f"insight[{i}].confidence")

            impact = insight.get("impact")
            if not isinstance(impact, Mapping):
                continue
            if impact.get("amount"):
                check_range(impact["amount"], 0, MAX_IMPACT_AMOUNT, f"insight[{i}].impact.amount")
            if impact.get("percentage"):
                check_range(impact["percentage"], -1000, 1000, f"insight[{i}].impact.percentage")

        return NumericRangeReport(is_valid=not issues, issues=issues)
