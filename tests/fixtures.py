"""Shared test data and fakes."""
import dataclasses
import json
from datetime import date, timedelta

from finsight.config import AppSettings


def make_settings(**overrides) -> AppSettings:
    """Packaged settings with a test salt and no retry delay."""
    defaults = {
        "anonymization_salt": "test-salt",
        "gemini_api_key": "test-key",
        "llm_initial_delay_seconds": 0,
    }
    defaults.update(overrides)
    return dataclasses.replace(AppSettings.load(), **defaults)


def make_insight(**overrides) -> dict:
    insight = {
        "title": "Dining spend is rising",
        "description": "Dining out grew 20% month over month across the last quarter.",
        "type": "spending_pattern",
        "confidence": 85,
        "priority": "medium",
        "dataReferences": [
            {"type": "category", "name": "dining", "value": 420.5},
            {"type": "count", "name": "dining_transactions", "value": 18},
        ],
        "actionItems": [
            {
                "description": "Set a monthly dining budget of 300",
                "type": "adjust_budget",
                "priority": "medium",
                "parameters": {"suggestedAmount": 300},
            },
        ],
    }
    insight.update(overrides)
    return insight


def make_response(insights=None) -> dict:
    return {
        "insights": [make_insight()] if insights is None else insights,
        "summary": {"message": "Spending overview for the period", "totalSpent": 1520.75},
    }


def make_integrated_response() -> dict:
    return {
        "integratedInsights": [
            {
                "title": "Dining is crowding out savings",
                "description": "Dining spend above budget delays the emergency fund goal.",
                "relatedTypes": ["spending", "budget", "savings"],
                "confidence": 80,
                "priority": "high",
            },
        ],
        "actionPlan": [
            {"step": 1, "action": "Cap dining at the budgeted amount", "type": "adjust_budget", "timeframe": "this_month"},
        ],
        "overallHealth": {"score": 72, "level": "good", "summary": "Stable with room to save more"},
    }


def make_bundle(transaction_count=60, span_days=95) -> dict:
    """Raw bundle with PII, categories, one budget and no goals."""
    start = date(2024, 1, 1)
    categories = ["groceries", "dining", "transport"]
    step = span_days / (transaction_count - 1) if transaction_count > 1 else 0
    transactions = [
        {
            "id": f"txn-{i}",
            "amount": -(10 + i % 7 * 2.5),
            "category": categories[i % 3],
            "date": (start + timedelta(days=round(i * step))).isoformat(),
            "description": f"Card purchase {i}",
        }
        for i in range(transaction_count)
    ]
    return {
        "email": "a@b.com",
        "firstName": "Dana",
        "notes": "Call me on 5551234567",
        "transactions": transactions,
        "categories": categories,
        "budgets": [{"category": "dining", "limit": 300, "spent": 254.5}],
        "goals": [],
    }


class FakeMessage:
    def __init__(self, content, response_metadata=None):
        self.content = content
        self.response_metadata = response_metadata or {"finish_reason": "STOP"}


class FakeChatModel:
    """Stand-in for a chat model: replays queued replies, repeating the last one.

    A queued exception is raised instead of returned; dicts are sent as JSON
    text and anything else is used as message content.
    """

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    def invoke(self, prompt):
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            reply = json.dumps(reply)
        return FakeMessage(reply)
