"""PII stripping and aggregation of financial data before it reaches the model."""
import hashlib
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from finsight.config import get_settings
from finsight.utils.exceptions import ConfigError
from finsight.utils.json_tree import JsonVisitor, is_number, walk
from finsight.utils.logger import get_logger

logger = get_logger()

SCHEMA_VERSION = "1.0"
REDACTION_TOKEN = "[REDACTED]"

# Compared against keys lowercased with separators stripped
PII_FIELDS = frozenset({
    "email", "phone", "address", "city", "state", "zip",
    "ssn", "taxid", "accountnumber", "routingnumber",
    "password", "token", "secret", "apikey",
    "firstname", "lastname", "fullname", "birthdate",
    "ipaddress", "useragent",
})

# Every pattern needs a digit or "@" to match, and the redaction token has neither.
SENSITIVE_PATTERNS = {
    "ssn": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    "credit_card": re.compile(r"\b\d{16}\b"),
    "credit_card_dashed": re.compile(r"\b\d{4}-\d{4}-\d{4}-\d{4}\b"),
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    "phone": re.compile(r"\b\d{10}\b"),
    "account_number": re.compile(r"\baccount[\s_-]?number\b.*?\d+", re.IGNORECASE),
    "ssn_reference": re.compile(r"\bssn\b.*?\d+", re.IGNORECASE),
}

_KEY_SEPARATORS = re.compile(r"[\s_-]")


def normalize_field_name(key: str) -> str:
    return _KEY_SEPARATORS.sub("", key.lower())


def is_pii_field(key: str) -> bool:
    return normalize_field_name(key) in PII_FIELDS


def find_sensitive_pattern(text: str) -> Optional[str]:
    """Name of the first sensitive pattern found in text, if any."""
    for name, pattern in SENSITIVE_PATTERNS.items():
        if pattern.search(text):
            return name
    return None


def scrub_string(text: str) -> str:
    """Replace every sensitive substring with the redaction token."""
    previous = None
    while previous != text:
        previous = text
        for pattern in SENSITIVE_PATTERNS.values():
            text = pattern.sub(REDACTION_TOKEN, text)
    return text


def number_text(value) -> str:
    """Decimal text of a number as it would appear in serialized JSON."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return repr(value)


def round_half_up(value, places: int = 2):
    if isinstance(value, int) or not math.isfinite(value):
        return value
    # Floats this large have no fractional digits, and scaling them can overflow
    if abs(value) >= 2 ** 52:
        return value
    factor = 10 ** places
    return math.floor(value * factor + 0.5) / factor


class _PIIFieldRemover(JsonVisitor):
    def visit_key(self, key, path):
        return None if is_pii_field(key) else key


class _PatternScrubber(JsonVisitor):
    def visit_key(self, key, path):
        return scrub_string(key)

    def visit_string(self, value, path):
        return scrub_string(value)

    def visit_number(self, value, path):
        # Rounding runs later; check both texts so it cannot expose a match
        if find_sensitive_pattern(number_text(value)) or find_sensitive_pattern(number_text(round_half_up(value))):
            return REDACTION_TOKEN
        return value


class _NumberRounder(JsonVisitor):
    def visit_number(self, value, path):
        return round_half_up(value)


@dataclass(frozen=True)
class SanitizationCheck:
    """Outcome of the final pre-transmission check."""
    is_valid: bool
    pattern: Optional[str] = None
    field: Optional[str] = None


def _parse_date(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _list_length(data: Any, key: str) -> int:
    if not isinstance(data, Mapping):
        return 0
    value = data.get(key)
    return len(value) if isinstance(value, (list, tuple)) else 0


class DataSanitizer:
    """Strips PII and aggregates raw financial data for model consumption."""

    def __init__(self, salt: str):
        """
        Initialize sanitizer.

        Args:
            salt: Secret salt for user id anonymization. Must be stable across
                restarts for anonymized ids to stay consistent.
        """
        if not salt:
            raise ConfigError("Anonymization salt is required")
        self._salt = salt

    @classmethod
    def from_settings(cls, settings=None) -> "DataSanitizer":
        settings = settings or get_settings()
        return cls(settings.anonymization_salt)

    def sanitize_for_ai(self, data: Any) -> Any:
        """
        Sanitize data for AI consumption.

        Removes PII fields, replaces raw transactions with a summary, scrubs
        sensitive patterns and rounds numbers. The input is left untouched.

        Args:
            data: Raw financial bundle (JSON-compatible)

        Returns:
            New sanitized structure
        """
        if data is None:
            return {}

        sanitized = self.remove_pii_fields(data)

        if isinstance(sanitized, dict) and "transactions" in sanitized:
            transactions = sanitized.pop("transactions")
            sanitized["transactionSummary"] = self.aggregate_transactions(transactions)
            logger.debug(
                f"Aggregated {sanitized['transactionSummary']['totalCount']} transactions into summary"
            )

        sanitized = self.scrub_sensitive_patterns(sanitized)
        return self.round_numbers(sanitized)

    def remove_pii_fields(self, data: Any) -> Any:
        """Drop denylisted keys at any depth."""
        return _PIIFieldRemover().visit(data)

    def aggregate_transactions(self, transactions: Any) -> Dict[str, Any]:
        """
        Aggregate transactions to summary level.

        Date range is a lexicographic min/max of the raw date strings, which is
        only chronological for ISO-8601 dates.

        Args:
            transactions: List of transaction mappings

        Returns:
            Transaction summary mapping
        """
        summary = {
            "totalCount": 0,
            "totalAmount": 0,
            "byCategory": {},
            "byMonth": {},
            "averageAmount": 0,
            "dateRange": {"earliest": None, "latest": None},
        }
        if not isinstance(transactions, (list, tuple)):
            return summary

        summary["totalCount"] = len(transactions)
        date_range = summary["dateRange"]

        for txn in transactions:
            if not isinstance(txn, Mapping):
                continue

            amount = txn.get("amount")
            if not is_number(amount):
                amount = 0
            summary["totalAmount"] += amount

            category = txn.get("category") or "uncategorized"
            bucket = summary["byCategory"].setdefault(str(category), {"count": 0, "total": 0})
            bucket["count"] += 1
            bucket["total"] += amount

            date = txn.get("date")
            if isinstance(date, str) and date:
                month = date[:7]
                summary["byMonth"][month] = summary["byMonth"].get(month, 0) + amount

                if date_range["earliest"] is None or date < date_range["earliest"]:
                    date_range["earliest"] = date
                if date_range["latest"] is None or date > date_range["latest"]:
                    date_range["latest"] = date

        if summary["totalCount"] > 0:
            summary["averageAmount"] = summary["totalAmount"] / summary["totalCount"]

        return summary

    def scrub_sensitive_patterns(self, data: Any) -> Any:
        """Redact sensitive substrings in keys, strings and number text."""
        return _PatternScrubber().visit(data)

    def round_numbers(self, data: Any) -> Any:
        """Round every numeric leaf to 2 decimal places."""
        return _NumberRounder().visit(data)

    def validate_sanitized(self, data: Any) -> SanitizationCheck:
        """
        Validate no sensitive data remains.

        Checks every key, string and number, so it can gate transmission.
        """
        nodes = [("", None, data)]
        nodes.extend(walk(data))

        for path, key, value in nodes:
            if key is not None:
                if is_pii_field(key):
                    return SanitizationCheck(is_valid=False, field=key)
                pattern = find_sensitive_pattern(key)
                if pattern:
                    return SanitizationCheck(is_valid=False, pattern=pattern)

            if isinstance(value, str):
                text = value
            elif is_number(value):
                text = number_text(value)
            else:
                continue

            pattern = find_sensitive_pattern(text)
            if pattern:
                logger.warning(f"Sensitive pattern '{pattern}' survived sanitization at {path or 'root'}")
                return SanitizationCheck(is_valid=False, pattern=pattern)

        return SanitizationCheck(is_valid=True)

    def anonymize_user_id(self, user_id: str) -> str:
        """Deterministic, non-reversible user id."""
        digest = hashlib.sha256(f"{user_id}{self._salt}".encode("utf-8")).hexdigest()
        return f"user_{digest[:16]}"

    def prepare_for_analysis(self, data: Any, user_id: str) -> Dict[str, Any]:
        """
        Prepare data for AI analysis.

        Args:
            data: Raw financial bundle
            user_id: Real user identifier

        Returns:
            Sanitized bundle with anonymized userId and _metadata
        """
        sanitized = self.sanitize_for_ai(data)
        if not isinstance(sanitized, dict):
            sanitized = {"data": sanitized}

        sanitized["userId"] = self.anonymize_user_id(user_id)
        sanitized["_metadata"] = {
            "sanitizedAt": datetime.now(timezone.utc).isoformat(),
            "version": SCHEMA_VERSION,
            "dataQuality": self.assess_data_quality(data),
        }
        return sanitized

    def assess_data_quality(self, data: Any) -> Dict[str, Any]:
        """
        Assess data quality for AI analysis.

        Returns:
            Mapping with a 0-100 score and the metrics it was derived from
        """
        transaction_count = _list_length(data, "transactions")
        transactions = data.get("transactions") if transaction_count else []

        metrics = {
            "hasTransactions": transaction_count > 0,
            "transactionCount": transaction_count,
            "hasCategories": _list_length(data, "categories") > 0,
            "hasBudgets": _list_length(data, "budgets") > 0,
            "hasGoals": _list_length(data, "goals") > 0,
            "dateRange": self.calculate_date_range(transactions),
        }

        score = 0
        if metrics["hasTransactions"]:
            score += 40
        if metrics["hasCategories"]:
            score += 20
        if metrics["hasBudgets"]:
            score += 20
        if metrics["hasGoals"]:
            score += 20

        # Bonus for sufficient data
        if transaction_count >= 50:
            score += 20
        if transaction_count >= 20:
            score += 10

        # Date range bonus
        days = metrics["dateRange"]["days"]
        if days >= 90:
            score += 20
        if days >= 30:
            score += 10

        return {"score": min(100, score), "metrics": metrics}

    def calculate_date_range(self, transactions: Any) -> Dict[str, Any]:
        """Calendar span of parseable transaction dates."""
        empty = {"days": 0, "earliest": None, "latest": None}
        if not isinstance(transactions, (list, tuple)) or not transactions:
            return empty

        dates = [
            parsed for parsed in (
                _parse_date(txn.get("date")) for txn in transactions if isinstance(txn, Mapping)
            )
            if parsed is not None
        ]
        if not dates:
            return empty

        earliest, latest = min(dates), max(dates)
        days = math.ceil((latest - earliest).total_seconds() / 86400)
        return {"days": days, "earliest": earliest.isoformat(), "latest": latest.isoformat()}
