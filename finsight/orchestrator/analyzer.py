"""Insight analysis orchestrator: sanitize, prompt, validate, guard."""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional

from finsight.config import get_settings
from finsight.llm.client import InsightClient
from finsight.llm.prompts import ANALYSIS_TYPES, PromptBuilder
from finsight.security.guard import ResponseGuard
from finsight.security.sanitizer import DataSanitizer
from finsight.utils.exceptions import (
    ConfigError,
    GuardError,
    LLMError,
    PromptError,
    ValidationError,
)
from finsight.utils.logger import configure_logging, get_logger, set_user_context
from finsight.validation.validator import SchemaValidator

logger = get_logger()

STATUS_OK = "ok"
STATUS_INSUFFICIENT_DATA = "insufficient_data"
STATUS_UNAVAILABLE = "unavailable"

UNAVAILABLE_MESSAGE = "Analysis is unavailable at this time."


@dataclass
class AnalysisResult:
    """Result of one analysis run."""
    status: str
    response: Dict[str, Any]
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


class InsightAnalyzer:
    """Runs financial data through the model behind the trust boundary."""

    def __init__(
        self,
        sanitizer: DataSanitizer,
        client: InsightClient,
        prompt_builder: Optional[PromptBuilder] = None,
        validator: Optional[SchemaValidator] = None,
        guard: Optional[ResponseGuard] = None,
        min_data_quality: int = 50,
        confidence_threshold: float = 70,
        max_validation_attempts: int = 2,
    ):
        """
        Initialize analyzer.

        Args:
            sanitizer: Input sanitizer holding the anonymization salt
            client: Model client
            prompt_builder: Prompt renderer
            validator: Response schema validator
            guard: Response guard
            min_data_quality: Data quality score below which the model is not called
            confidence_threshold: Insights below this confidence are dropped
            max_validation_attempts: Model calls allowed per analysis before giving up
        """
        self.sanitizer = sanitizer
        self.client = client
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.validator = validator or SchemaValidator()
        self.guard = guard or ResponseGuard()
        self.min_data_quality = min_data_quality
        self.confidence_threshold = confidence_threshold
        self.max_validation_attempts = max_validation_attempts

    @classmethod
    def from_settings(cls, settings=None, client: Optional[InsightClient] = None) -> "InsightAnalyzer":
        """Build a fully wired analyzer from application settings."""
        settings = settings or get_settings()

        is_valid, message = settings.validate()
        if not is_valid:
            raise ConfigError(message)

        configure_logging(settings)

        return cls(
            sanitizer=DataSanitizer.from_settings(settings),
            client=client or InsightClient(settings=settings),
            prompt_builder=PromptBuilder(risk_tolerance=settings.risk_tolerance),
            guard=ResponseGuard.from_settings(settings),
            min_data_quality=settings.min_data_quality,
            confidence_threshold=settings.confidence_threshold,
            max_validation_attempts=settings.max_validation_attempts,
        )

    def analyze(
        self,
        data: Any,
        user_id: str,
        analysis_type: str = "spending",
        options: Optional[Mapping] = None,
    ) -> AnalysisResult:
        """
        Run a single analysis.

        Args:
            data: Raw financial bundle
            user_id: Real user identifier (only its anonymized form is sent or logged)
            analysis_type: One of spending, budget, savings, risk
            options: Prompt options, e.g. {"risk_tolerance": "low"}

        Returns:
            AnalysisResult; model and guard failures become "unavailable"
        """
        if analysis_type not in ANALYSIS_TYPES:
            raise PromptError(f"Unknown analysis type: {analysis_type}")

        prepared = self.sanitizer.prepare_for_analysis(data, user_id)
        set_user_context(prepared["userId"])
        try:
            return self._analyze_prepared(prepared, analysis_type, options)
        finally:
            set_user_context(None)

    def _analyze_prepared(self, prepared: Dict[str, Any], analysis_type: str, options: Optional[Mapping]) -> AnalysisResult:
        score = prepared["_metadata"]["dataQuality"]["score"]
        metadata: Dict[str, Any] = {"analysisType": analysis_type, "dataQuality": score, "attempts": 0}

        if score < self.min_data_quality:
            logger.info(f"Skipping {analysis_type} analysis: data quality {score} below {self.min_data_quality}")
            return AnalysisResult(
                status=STATUS_INSUFFICIENT_DATA,
                response=self._insufficient_data_response(analysis_type),
                metadata=metadata,
            )

        check = self.sanitizer.validate_sanitized(prepared)
        if not check.is_valid:
            logger.error(f"Refusing to send {analysis_type} data: sanitization check failed")
            return self._unavailable(metadata)

        try:
            prompt = self.prompt_builder.build_prompt(analysis_type, prepared, options)
            self.prompt_builder.validate_prompt(prompt)
            logger.debug(f"{analysis_type} prompt is ~{self.prompt_builder.estimate_tokens(prompt)} tokens")

            response = self._generate_validated(prompt, "single", metadata)
            response = self.validator.filter_by_confidence(response, self.confidence_threshold)
            guarded = self.guard.guard_response(response)
        except (LLMError, GuardError, PromptError, ValidationError) as e:
            logger.error(f"{analysis_type} analysis failed: {type(e).__name__}")
            return self._unavailable(metadata)

        logger.info(
            f"{analysis_type} analysis complete: {guarded['_guarded']['stats']['totalInsights']} insight(s) "
            f"after {metadata['attempts']} attempt(s)"
        )
        return AnalysisResult(status=STATUS_OK, response=guarded, metadata=metadata)

    def analyze_integrated(
        self,
        data: Any,
        user_id: str,
        types: Iterable[str] = ANALYSIS_TYPES,
        options: Optional[Mapping] = None,
    ) -> AnalysisResult:
        """
        Run each analysis type, then synthesize them into one integrated view.

        Returns:
            AnalysisResult whose response holds integratedInsights; per-type
            statuses are in metadata["components"]
        """
        types = list(types)
        results = {analysis_type: self.analyze(data, user_id, analysis_type, options) for analysis_type in types}
        metadata: Dict[str, Any] = {
            "analysisType": "integrated",
            "components": {analysis_type: result.status for analysis_type, result in results.items()},
            "attempts": 0,
        }

        sections = {
            analysis_type: self._composite_section(result.response)
            for analysis_type, result in results.items()
            if result.ok
        }
        if not sections:
            if all(result.status == STATUS_INSUFFICIENT_DATA for result in results.values()):
                return AnalysisResult(
                    status=STATUS_INSUFFICIENT_DATA,
                    response=self._insufficient_data_response("composite"),
                    metadata=metadata,
                )
            return self._unavailable(metadata)

        set_user_context(self.sanitizer.anonymize_user_id(user_id))
        try:
            prompt = self.prompt_builder.build_composite_prompt(types, sections)
            self.prompt_builder.validate_prompt(prompt)
            response = self._generate_validated(prompt, "integrated", metadata)
            guarded = self.guard.guard_response(response)
        except (LLMError, GuardError, PromptError, ValidationError) as e:
            logger.error(f"Integrated analysis failed: {type(e).__name__}")
            return self._unavailable(metadata)
        finally:
            set_user_context(None)

        return AnalysisResult(status=STATUS_OK, response=guarded, metadata=metadata)

    def _generate_validated(self, prompt: str, kind: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        """Call the model, re-prompting with the validation errors until a response passes."""
        current = prompt
        for attempt in range(1, self.max_validation_attempts + 1):
            metadata["attempts"] = attempt
            data, call_metadata = self.client.generate_structured(current, kind)
            metadata["model"] = call_metadata

            result = self.validator.validate(data, kind)
            if result.is_valid:
                return result.data

            logger.warning(f"Attempt {attempt}: {kind} response rejected with {len(result.errors)} error(s)")
            current = self.prompt_builder.build_corrective_prompt(prompt, result.errors)

        raise ValidationError(f"No valid {kind} response after {self.max_validation_attempts} attempt(s)")

    def _composite_section(self, response: Mapping) -> Dict[str, Any]:
        insights = [
            {key: insight.get(key) for key in ("title", "description", "type", "confidence", "priority")}
            for insight in response.get("insights") or []
        ]
        return {"summary": response.get("summary"), "insights": insights}

    def _insufficient_data_response(self, analysis_type: str) -> Dict[str, Any]:
        return {
            "insights": [],
            "summary": {
                "message": "Insufficient data for meaningful analysis. Please add more transactions "
                           "and set up budgets/goals to receive insights.",
                "requiredData": self.prompt_builder.required_data_for(analysis_type),
            },
        }

    def _unavailable(self, metadata: Dict[str, Any]) -> AnalysisResult:
        return AnalysisResult(
            status=STATUS_UNAVAILABLE,
            response={"insights": [], "summary": {"message": UNAVAILABLE_MESSAGE}},
            metadata=metadata,
        )
