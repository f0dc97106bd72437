"""Prompt rendering from sanitized financial bundles."""
import json
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional

from finsight.utils.exceptions import PromptError
from finsight.utils.json_tree import is_number
from finsight.validation.validator import SchemaValidator

ANALYSIS_TYPES = ("spending", "budget", "savings", "risk")

DEFAULT_INSIGHT_TYPE = {
    "spending": "spending_pattern",
    "budget": "budget_recommendation",
    "savings": "savings_opportunity",
    "risk": "risk_alert",
}

REQUIRED_DATA = {
    "spending": ["At least 10 transactions", "Categorized expenses", "30+ days of data"],
    "budget": ["Active budgets", "Budget categories", "30+ days of spending history"],
    "savings": ["Savings goals", "Contribution history", "Target dates"],
    "risk": ["Transaction history", "Budget data", "Goal data"],
    "composite": ["Transaction history (30+ days)", "Active budgets", "Savings goals"],
}

REQUIRED_SECTIONS = ("ANALYSIS TASK", "RESPONSE FORMAT")

SYSTEM_INSTRUCTIONS = """## SYSTEM INSTRUCTIONS
You are a conservative financial analyst. Your insights must be:
- Data-driven (only from provided numbers)
- Actionable (clear next steps)
- Conservative (avoid speculation)
- Clear (no jargon)
- Structured (follow response format exactly)

Remember: Quality over quantity. Fewer high-confidence insights are better than many low-confidence ones.
"""


def _money(value: Any) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"${value:,.2f}"
    return "N/A"


def _bullet_fields(record: Mapping) -> str:
    parts = [f"{key}: {value}" for key, value in record.items() if not isinstance(value, (dict, list))]
    return ", ".join(parts)


def _records(data: Mapping, key: str) -> List[Mapping]:
    value = data.get(key)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, Mapping)]


def _category_weight(item) -> float:
    total = item[1].get("total") if isinstance(item[1], Mapping) else None
    return -abs(total) if is_number(total) else 0


class PromptBuilder:
    """Renders sanitized data into prompts for each analysis type."""

    def __init__(self, risk_tolerance: str = "medium", max_data_size: int = 10000, min_data_points: int = 3):
        self.risk_tolerance = risk_tolerance
        self.max_data_size = max_data_size
        self.min_data_points = min_data_points
        self.validator = SchemaValidator()
        self.templates = {
            "spending": self._spending_section,
            "budget": self._budget_section,
            "savings": self._savings_section,
            "risk": self._risk_section,
        }

    def build_prompt(self, analysis_type: str, data: Mapping, options: Optional[Mapping] = None) -> str:
        """
        Build prompt for a single analysis type.

        Args:
            analysis_type: One of spending, budget, savings, risk
            data: Sanitized bundle (output of prepare_for_analysis)
            options: Optional overrides, e.g. {"risk_tolerance": "low"}

        Returns:
            Prompt text
        """
        template = self.templates.get(analysis_type)
        if template is None:
            raise PromptError(f"Unknown analysis type: {analysis_type}")

        if not self.has_sufficient_data(data, analysis_type):
            return self.build_insufficient_data_prompt(analysis_type)

        data = self.truncate_data(data, analysis_type)

        prompt = "\n".join([
            "You are a financial analyst assistant. Analyze the following data and provide structured insights.",
            "",
            self._context_section(data),
            "## FINANCIAL DATA (Aggregated Only - No Raw Transactions)",
            template(data),
            self._task_section(analysis_type),
            self._response_format_section(analysis_type),
        ])

        prompt = self.add_global_constraints(prompt, options or {})
        return self.add_system_instructions(prompt)

    def build_composite_prompt(self, types: Iterable[str], sections: Mapping[str, Any]) -> str:
        """
        Build the integrated prompt from per-type analysis results.

        Args:
            types: Analysis types to include, in order
            sections: analysis type -> summary and insights of that analysis
        """
        rendered = [
            f"### {analysis_type.upper()} ANALYSIS\n{json.dumps(sections[analysis_type], indent=2, sort_keys=True)}"
            for analysis_type in types
            if sections.get(analysis_type)
        ]
        if not rendered:
            return self.build_insufficient_data_prompt("composite")

        schema = self.validator.response_schema("integrated")
        prompt = f"""
You are a comprehensive financial analyst. Analyze the following multiple aspects of this user's finances.

{chr(10).join(rendered)}

## ANALYSIS TASK
Synthesize insights across all provided data sections. Identify:

1. Cross-cutting patterns
2. Conflicts between recommendations
3. Prioritized action plan
4. Overall financial health assessment

## RESPONSE FORMAT
Respond with a JSON object matching this JSON Schema:
{json.dumps(schema, indent=2)}
"""
        return self.add_system_instructions(prompt)

    def build_insufficient_data_prompt(self, analysis_type: str) -> str:
        payload = {
            "insights": [],
            "summary": {
                "message": "Insufficient data for meaningful analysis. Please add more transactions and set up budgets/goals to receive insights.",
                "requiredData": self.required_data_for(analysis_type),
            },
        }
        return f"""
You are a financial analyst. The user does not have sufficient data for {analysis_type} analysis.

## ANALYSIS TASK
Explain which data the user should add to start receiving insights.

## RESPONSE FORMAT
Respond with:
{json.dumps(payload, indent=2)}
"""

    def build_corrective_prompt(self, prompt: str, errors: Iterable[str]) -> str:
        """Re-prompt listing every reason the previous answer was rejected."""
        issues = "\n".join(f"- {error}" for error in errors)
        return f"""{prompt}

## CORRECTIONS REQUIRED
Your previous response was rejected for these reasons:
{issues}

Return a corrected JSON object that fixes every issue above. Respond with ONLY the JSON object.
"""

    def required_data_for(self, analysis_type: str) -> List[str]:
        return REQUIRED_DATA.get(analysis_type, ["More financial data"])

    def has_sufficient_data(self, data: Any, analysis_type: str) -> bool:
        if not isinstance(data, Mapping) or not data:
            return False

        summary = data.get("transactionSummary") or {}
        transaction_count = summary.get("totalCount", 0) if isinstance(summary, Mapping) else 0

        if analysis_type == "spending":
            return transaction_count >= self.min_data_points
        if analysis_type == "budget":
            return bool(_records(data, "budgets"))
        if analysis_type == "savings":
            return bool(_records(data, "goals"))
        if analysis_type == "risk":
            return transaction_count >= self.min_data_points and bool(_records(data, "budgets") or _records(data, "goals"))
        return True

    def truncate_data(self, data: Mapping, analysis_type: str) -> Dict[str, Any]:
        """Cut list sections when the serialized data is too large."""
        data = dict(data)
        if len(json.dumps(data, default=str)) <= self.max_data_size:
            return data

        if analysis_type in ("spending", "risk"):
            summary = dict(data.get("transactionSummary") or {})
            by_category = summary.get("byCategory") or {}
            top = sorted(by_category.items(), key=_category_weight)[:10]
            summary["byCategory"] = dict(top)
            by_month = summary.get("byMonth") or {}
            summary["byMonth"] = dict(sorted(by_month.items())[-12:])
            data["transactionSummary"] = summary

        limits = {"budget": (10, 5), "savings": (5, 5), "risk": (5, 5), "spending": (5, 5)}
        budget_limit, goal_limit = limits[analysis_type]
        for key, limit in (("budgets", budget_limit), ("goals", goal_limit)):
            if isinstance(data.get(key), list):
                data[key] = data[key][:limit]
        return data

    def add_global_constraints(self, prompt: str, options: Mapping) -> str:
        risk_tolerance = options.get("risk_tolerance") or self.risk_tolerance
        constraints = f"""
## GLOBAL CONSTRAINTS
- Never mention specific transaction details (dates, merchants, descriptions)
- Only use aggregated category data
- If confidence < 70%, don't generate insight
- Be conservative - don't over-interpret
- Each insight must reference specific data
- Suggest actionable steps only
- Consider user's risk tolerance: {risk_tolerance}
- Keep language clear and non-technical
"""
        return prompt + constraints

    def add_system_instructions(self, prompt: str) -> str:
        return SYSTEM_INSTRUCTIONS + prompt

    def estimate_tokens(self, prompt: str) -> int:
        # ~4 characters per token for English
        return math.ceil(len(prompt) / 4)

    def validate_prompt(self, prompt: str) -> bool:
        """Validate prompt before sending."""
        if not prompt or len(prompt) < 100:
            raise PromptError("Prompt too short")

        if len(prompt) > 30000:
            raise PromptError("Prompt too long (exceeds 30k characters)")

        for section in REQUIRED_SECTIONS:
            if section not in prompt:
                raise PromptError(f"Prompt missing required section: {section}")

        return True

    def _context_section(self, data: Mapping) -> str:
        summary = data.get("transactionSummary") or {}
        date_range = summary.get("dateRange") or {}
        quality = (data.get("_metadata") or {}).get("dataQuality") or {}
        return f"""## CONTEXT
- User ID: {data.get("userId", "anonymous")}
- Analysis Period: {date_range.get("earliest") or "N/A"} to {date_range.get("latest") or "N/A"}
- Total Transactions Analyzed: {summary.get("totalCount", "N/A")}
- Data Quality Score: {quality.get("score", "N/A")}/100
"""

    def _spending_section(self, data: Mapping) -> str:
        summary = data.get("transactionSummary") or {}
        lines = [
            "### Overall",
            f"- Total Amount: {_money(summary.get('totalAmount'))}",
            f"- Average Transaction: {_money(summary.get('averageAmount'))}",
            "",
            "### Spending by Category",
        ]
        total = summary.get("totalAmount") or 0
        for name, bucket in (summary.get("byCategory") or {}).items():
            if not isinstance(bucket, Mapping):
                continue
            share = "N/A"
            if is_number(total) and total and is_number(bucket.get("total")):
                share = f"{bucket['total'] / total * 100:.1f}%"
            lines.append(
                f"- Category: {name}\n  Total: {_money(bucket.get('total'))}\n"
                f"  Percentage of Total: {share}\n  Transaction Count: {bucket.get('count', 0)}"
            )
        lines.extend(["", "### Spending by Month"])
        for month, amount in sorted((summary.get("byMonth") or {}).items()):
            lines.append(f"- {month}: {_money(amount)}")
        return "\n".join(lines) + "\n"

    def _budget_section(self, data: Mapping) -> str:
        return self._records_section("Budgets", _records(data, "budgets")) + self._spending_section(data)

    def _savings_section(self, data: Mapping) -> str:
        return self._records_section("Savings Goals", _records(data, "goals"))

    def _risk_section(self, data: Mapping) -> str:
        return (
            self._spending_section(data)
            + self._records_section("Budgets", _records(data, "budgets"))
            + self._records_section("Savings Goals", _records(data, "goals"))
        )

    def _records_section(self, heading: str, records: List[Mapping]) -> str:
        if not records:
            return ""
        lines = [f"### {heading}"]
        lines.extend(f"- {_bullet_fields(record)}" for record in records)
        return "\n".join(lines) + "\n"

    def _task_section(self, analysis_type: str) -> str:
        return f"""## ANALYSIS TASK
Provide 3-5 actionable insights about this user's {analysis_type}. Each insight must:

1. Be based ONLY on the provided data
2. Reference specific categories and amounts
3. Include a confidence score (0-100)
4. Suggest concrete action items
5. Prioritize as high/medium/low
"""

    def _response_format_section(self, analysis_type: str) -> str:
        schema = self.validator.response_schema("single")
        return f"""## RESPONSE FORMAT
Respond with a JSON object matching this JSON Schema:
{json.dumps(schema, indent=2)}

Prefer insight type "{DEFAULT_INSIGHT_TYPE[analysis_type]}" for this analysis.
"""
