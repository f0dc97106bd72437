"""Tests for the response guard."""
import copy
import unittest

from finsight.security import ResponseGuard
from finsight.utils.exceptions import EmptyResponseError, MonetaryValueError, SuspiciousContentError
from tests.fixtures import make_insight, make_integrated_response, make_response, make_settings


def _actions(count):
    return [
        {"description": f"Review spending line {i}", "type": "review", "priority": "low"}
        for i in range(count)
    ]


def _without_timestamp(response):
    response = copy.deepcopy(response)
    del response["_guarded"]["timestamp"]
    return response


class TestResponseGuard(unittest.TestCase):
    """Test ResponseGuard functionality."""

    def setUp(self):
        """Set up test fixtures."""
        self.guard = ResponseGuard()

    def test_monotonicity(self):
        """Test limits on insights, action items and confidence hold."""
        insights = [
            make_insight(title=f"Insight number {i}", confidence=-20 + i * 15, actionItems=_actions(5))
            for i in range(15)
        ]

        guarded = self.guard.guard_response(make_response(insights))

        self.assertLessEqual(len(guarded["insights"]), 10)
        for insight in guarded["insights"]:
            self.assertLessEqual(len(insight["actionItems"]), 3)
            self.assertGreaterEqual(insight["confidence"], 0)
            self.assertLessEqual(insight["confidence"], 100)

    def test_limit_keeps_highest_confidence_stable(self):
        """Test truncation keeps the top insights and ties keep input order."""
        insights = [make_insight(title=f"Insight {i}", confidence=c) for i, c in enumerate([50, 90, 90, 10] + [60] * 8)]

        guarded = self.guard.guard_response(make_response(insights))

        titles = [i["title"] for i in guarded["insights"]]
        self.assertEqual(titles[:4], ["Insight 1", "Insight 2", "Insight 4", "Insight 5"])
        self.assertEqual(len(titles), 10)
        self.assertNotIn("Insight 3", titles)

    def test_confidence_clamped_and_rounded(self):
        """Test out-of-range and fractional confidence."""
        insights = [
            make_insight(confidence=150),
            make_insight(confidence=-5),
            make_insight(confidence=79.5),
            make_insight(confidence="high"),
        ]

        guarded = self.guard.guard_response(make_response(insights))

        confidences = sorted(i["confidence"] for i in guarded["insights"])
        self.assertEqual(confidences, [0, 0, 80, 100])
        self.assertTrue(all(isinstance(c, int) for c in confidences))

    def test_fails_closed_on_card_number(self):
        """Test a 16-digit number anywhere raises."""
        locations = [
            make_response([make_insight(description="Your card 4111111111111111 was charged twice this month.")]),
            {**make_response(), "summary": {"message": "ref 4111111111111111"}},
            make_response([make_insight(dataReferences=[
                {"type": "category", "name": "x", "value": 4111111111111111},
                {"type": "count", "name": "y", "value": 1},
            ])]),
        ]
        for response in locations:
            with self.subTest(response=response):
                with self.assertRaises(SuspiciousContentError) as ctx:
                    self.guard.guard_response(response)
                self.assertEqual(ctx.exception.pattern_name, "credit_card")

    def test_fails_closed_on_dropped_insight(self):
        """Test content in an insight cut by the limit still raises."""
        insights = [make_insight(confidence=90) for _ in range(10)]
        insights.append(make_insight(confidence=5, description="Leaked card 4111111111111111 in a weak insight."))

        with self.assertRaises(SuspiciousContentError):
            self.guard.guard_response(make_response(insights))

    def test_fails_closed_on_sensitive_terms(self):
        """Test sensitive words and SSNs raise."""
        for text in ("Change your password soon please.", "SSN 123-45-6789 appears in the data."):
            with self.subTest(text=text):
                with self.assertRaises(SuspiciousContentError):
                    self.guard.guard_response(make_response([make_insight(description=text)]))

    def test_fails_closed_on_number_joined_by_stripping(self):
        """Test a card number formed by removing markup still raises."""
        insight = make_insight(description="Reference 41111111<11111111 appears in your dining spend.")

        with self.assertRaises(SuspiciousContentError) as ctx:
            self.guard.guard_response(make_response([insight]))
        self.assertEqual(ctx.exception.pattern_name, "credit_card")

    def test_empty_response(self):
        """Test empty responses raise."""
        for response in (None, {}, [], ""):
            with self.subTest(response=response):
                with self.assertRaises(EmptyResponseError):
                    self.guard.guard_response(response)

    def test_non_actionable_insights_dropped(self):
        """Test insights without usable actions are removed."""
        insights = [
            make_insight(title="No actions here", actionItems=[]),
            make_insight(title="Tiny action here", actionItems=[{"description": "Go", "type": "review", "priority": "low"}]),
            make_insight(title="Good insight"),
        ]

        guarded = self.guard.guard_response(make_response(insights))

        self.assertEqual([i["title"] for i in guarded["insights"]], ["Good insight"])

    def test_text_sanitized(self):
        """Test markup and shell characters are stripped from strings."""
        insight = make_insight(description="<b>Save $50;  now</b>   |  then rest & relax")

        guarded = self.guard.guard_response(make_response([insight]))

        self.assertEqual(guarded["insights"][0]["description"], "bSave 50 now/b then rest relax")

    def test_input_not_mutated(self):
        """Test the guard leaves its input untouched."""
        response = make_response([make_insight(confidence=150, actionItems=_actions(5))])
        original = copy.deepcopy(response)

        self.guard.guard_response(response)

        self.assertEqual(response, original)

    def test_metadata(self):
        """Test guard metadata and stats."""
        insights = [
            make_insight(confidence=80, priority="high"),
            make_insight(confidence=91, priority="low", dataReferences=make_insight()["dataReferences"]),
        ]

        guarded = self.guard.guard_response(make_response(insights))

        self.assertEqual(guarded["_guarded"]["version"], "1.0")
        self.assertIn("timestamp", guarded["_guarded"])
        self.assertEqual(guarded["_guarded"]["stats"], {
            "totalInsights": 2,
            "avgConfidence": 85.5,
            "byPriority": {"high": 1, "medium": 0, "low": 1},
        })

    def test_idempotent(self):
        """Test guarding twice equals guarding once, apart from the timestamp."""
        insights = [make_insight(confidence=c, actionItems=_actions(4)) for c in (33.3, 66.6, 99.9)]

        once = self.guard.guard_response(make_response(insights))
        twice = self.guard.guard_response(once)

        self.assertEqual(_without_timestamp(twice), _without_timestamp(once))

    def test_integrated_response(self):
        """Test integrated insights are limited and clamped."""
        response = make_integrated_response()
        response["integratedInsights"] = response["integratedInsights"] * 12
        response["integratedInsights"][0] = {**response["integratedInsights"][0], "confidence": 120}

        guarded = self.guard.guard_response(response)

        self.assertEqual(len(guarded["integratedInsights"]), 10)
        self.assertEqual(guarded["integratedInsights"][0]["confidence"], 100)
        self.assertEqual(guarded["_guarded"]["stats"]["totalInsights"], 10)

    def test_from_settings(self):
        """Test limits come from settings."""
        guard = ResponseGuard.from_settings(make_settings(guard_max_insights=2))
        guarded = guard.guard_response(make_response([make_insight() for _ in range(5)]))
        self.assertEqual(len(guarded["insights"]), 2)

    def test_validate_data_references(self):
        """Test reference and action parameter completeness."""
        self.assertTrue(self.guard.validate_data_references(make_response()))

        missing_amount = make_insight(actionItems=[
            {"description": "Increase monthly savings", "type": "increase_savings", "priority": "high"},
        ])
        self.assertFalse(self.guard.validate_data_references(make_response([missing_amount])))

        unnamed = make_insight(dataReferences=[{"type": "category", "name": "", "value": 3}])
        self.assertFalse(self.guard.validate_data_references(make_response([unnamed])))

    def test_add_confidence_disclaimer(self):
        """Test disclaimer for low-confidence insights."""
        self.assertNotIn("_disclaimer", self.guard.add_confidence_disclaimer(make_response()))

        response = make_response([make_insight(confidence=65)])
        result = self.guard.add_confidence_disclaimer(response)

        self.assertIn("1 below 70%", result["_disclaimer"])
        self.assertNotIn("_disclaimer", response)

    def test_validate_monetary_values(self):
        """Test oversized amounts raise with their path."""
        self.guard.validate_monetary_values(make_response())

        insight = make_insight(impact={"type": "positive", "amount": 2_500_000})
        with self.assertRaises(MonetaryValueError) as ctx:
            self.guard.validate_monetary_values(make_response([insight]))

        self.assertEqual(ctx.exception.path, "insights[0].impact.amount")
        self.assertEqual(ctx.exception.value, 2_500_000)


if __name__ == "__main__":
    unittest.main()
