"""Tests for the insight analyzer pipeline."""
import unittest

from finsight.llm import InsightClient
from finsight.orchestrator import InsightAnalyzer, UNAVAILABLE_MESSAGE
from finsight.security import DataSanitizer
from finsight.utils.exceptions import ConfigError, PromptError
from tests.fixtures import (
    FakeChatModel,
    make_bundle,
    make_insight,
    make_integrated_response,
    make_response,
    make_settings,
)


class TestInsightAnalyzer(unittest.TestCase):
    """Test InsightAnalyzer end to end with a fake model."""

    def make_analyzer(self, *replies, **settings):
        self.settings = make_settings(**settings)
        self.model = FakeChatModel(*replies)
        client = InsightClient(model=self.model, settings=self.settings)
        return InsightAnalyzer.from_settings(self.settings, client=client)

    def test_successful_analysis(self):
        """Test a valid model response is filtered and guarded."""
        reply = make_response([make_insight(confidence=85), make_insight(title="Weak signal here", confidence=40)])
        analyzer = self.make_analyzer(reply)

        result = analyzer.analyze(make_bundle(), "user-42")

        self.assertTrue(result.ok)
        self.assertEqual(result.status, "ok")
        self.assertEqual([i["confidence"] for i in result.response["insights"]], [85])
        self.assertIn("_guarded", result.response)
        self.assertEqual(result.metadata["attempts"], 1)
        self.assertEqual(result.metadata["dataQuality"], 100)

    def test_model_never_sees_pii(self):
        """Test the prompt sent to the model holds no raw identifiers."""
        analyzer = self.make_analyzer(make_response())

        analyzer.analyze(make_bundle(), "user-42")

        prompt = self.model.prompts[0]
        for secret in ("a@b.com", "Dana", "5551234567", "user-42", "txn-1"):
            self.assertNotIn(secret, prompt)

    def test_insufficient_data_skips_model(self):
        """Test low data quality returns early without a model call."""
        analyzer = self.make_analyzer(make_response())

        result = analyzer.analyze({"notes": "nothing yet"}, "user-42")

        self.assertEqual(result.status, "insufficient_data")
        self.assertEqual(result.response["insights"], [])
        self.assertIn("requiredData", result.response["summary"])
        self.assertEqual(self.model.prompts, [])

    def test_corrective_reprompt(self):
        """Test an invalid response is retried with the validation errors."""
        weak = make_insight(confidence=95, dataReferences=[{"type": "category", "name": "dining", "value": 420.5}])
        analyzer = self.make_analyzer(make_response([weak]), make_response())

        result = analyzer.analyze(make_bundle(), "user-42")

        self.assertTrue(result.ok)
        self.assertEqual(result.metadata["attempts"], 2)
        self.assertIn("CORRECTIONS REQUIRED", self.model.prompts[1])
        self.assertIn("Insight 0: High confidence (95) with minimal data references", self.model.prompts[1])

    def test_validation_attempts_exhausted(self):
        """Test persistent invalid output maps to unavailable."""
        analyzer = self.make_analyzer({"insights": "nope"})

        result = analyzer.analyze(make_bundle(), "user-42")

        self.assertEqual(result.status, "unavailable")
        self.assertEqual(result.response["summary"]["message"], UNAVAILABLE_MESSAGE)
        self.assertEqual(len(self.model.prompts), 2)

    def test_suspicious_output_unavailable(self):
        """Test guard rejection hides the raw model text and pattern."""
        leaked = make_insight(description="Card 4111111111111111 shows repeated dining charges.")
        analyzer = self.make_analyzer(make_response([leaked]))

        result = analyzer.analyze(make_bundle(), "user-42")

        self.assertEqual(result.status, "unavailable")
        self.assertNotIn("4111111111111111", str(result.response))
        self.assertNotIn("credit_card", str(result.response))

    def test_model_failure_unavailable(self):
        """Test model errors map to unavailable."""
        analyzer = self.make_analyzer(RuntimeError("service down"), llm_max_retries=1)

        result = analyzer.analyze(make_bundle(), "user-42")

        self.assertEqual(result.status, "unavailable")
        self.assertEqual(len(self.model.prompts), 2)

    def test_unknown_analysis_type(self):
        """Test unknown analysis type raises."""
        analyzer = self.make_analyzer(make_response())

        with self.assertRaises(PromptError):
            analyzer.analyze(make_bundle(), "user-42", "taxes")

    def test_invalid_settings(self):
        """Test configuration errors propagate."""
        with self.assertRaises(ConfigError):
            InsightAnalyzer.from_settings(make_settings(anonymization_salt=None))

    def test_integrated_analysis(self):
        """Test per-type results are synthesized into one guarded response."""
        analyzer = self.make_analyzer(make_response(), make_response(), make_integrated_response())

        result = analyzer.analyze_integrated(make_bundle(), "user-42", ["spending", "budget"])

        self.assertTrue(result.ok)
        self.assertEqual(result.metadata["components"], {"spending": "ok", "budget": "ok"})
        self.assertEqual(len(result.response["integratedInsights"]), 1)
        self.assertIn("_guarded", result.response)
        self.assertIn("### SPENDING ANALYSIS", self.model.prompts[2])
        self.assertIn("### BUDGET ANALYSIS", self.model.prompts[2])

    def test_integrated_insufficient_data(self):
        """Test integrated analysis with no usable data."""
        analyzer = self.make_analyzer(make_response())

        result = analyzer.analyze_integrated({}, "user-42")

        self.assertEqual(result.status, "insufficient_data")
        self.assertEqual(self.model.prompts, [])

    def test_direct_construction(self):
        """Test analyzer wiring without settings helpers."""
        model = FakeChatModel(make_response())
        analyzer = InsightAnalyzer(
            sanitizer=DataSanitizer("another-salt"),
            client=InsightClient(model=model, settings=make_settings()),
            min_data_quality=0,
        )

        result = analyzer.analyze({"transactions": [{"amount": -20, "category": "food", "date": "2024-01-01"}] * 3}, "u")

        self.assertTrue(result.ok)


if __name__ == "__main__":
    unittest.main()
