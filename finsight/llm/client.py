"""Chat model client for insight generation."""
import json
import math
import re
import time
from typing import Any, Dict, Optional, Tuple

from langchain.chat_models import init_chat_model
from langchain_core.language_models import BaseChatModel

from finsight.config import get_settings
from finsight.utils.exceptions import ConfigError, LLMError, RetryableLLMError
from finsight.utils.logger import get_logger
from finsight.utils.retry import retry_with_backoff
from finsight.validation.validator import SchemaValidator

logger = get_logger()

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_BARE_OBJECT = re.compile(r"\{[\s\S]*\}")


def _message_text(content: Any) -> str:
    """Flatten message content, which may be a list of parts."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type", "text") == "text":
                parts.append(part.get("text", ""))
        return "".join(parts)
    return ""


class InsightClient:
    """Generates insight text and JSON with a LangChain chat model."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[BaseChatModel] = None,
        structured_model: Optional[BaseChatModel] = None,
        settings=None,
    ):
        """
        Initialize insight client.

        Args:
            api_key: Gemini API key (defaults to settings)
            model: Pre-built chat model, skips provider setup
            structured_model: Pre-built model for JSON output (defaults to model)
            settings: AppSettings (defaults to global settings)
        """
        settings = settings or get_settings()
        self.model_name = settings.llm_model_name
        self.temperature = settings.llm_temperature
        self.structured_temperature = settings.llm_structured_temperature
        self.max_retries = settings.llm_max_retries
        self.initial_delay = settings.llm_initial_delay_seconds
        self.backoff_factor = settings.llm_backoff_factor
        self.validator = SchemaValidator()

        if model is None:
            api_key = api_key or settings.gemini_api_key
            if not api_key:
                raise ConfigError("Gemini API key is required (set GEMINI_API_KEY)")
            model = self._init_model(settings, api_key, self.temperature)
            structured_model = structured_model or self._init_model(settings, api_key, self.structured_temperature)

        self.model: BaseChatModel = model
        self.structured_model: BaseChatModel = structured_model or model

        logger.info(f"Insight client initialized with {self.model_name}")

    def _init_model(self, settings, api_key: str, temperature: float) -> BaseChatModel:
        return init_chat_model(
            model=settings.llm_model_name,
            model_provider=settings.llm_model_provider,
            api_key=api_key,
            temperature=temperature,
            max_tokens=settings.llm_max_output_tokens,
            timeout=settings.llm_timeout_seconds,
        )

    def generate(self, prompt: str) -> Tuple[str, Dict[str, Any]]:
        """
        Generate free text for a prompt.

        Returns:
            Tuple of (text, metadata)

        Raises:
            LLMError: model failed after retries or returned no text
        """
        return self._generate(self.model, prompt, self.temperature)

    def generate_structured(self, prompt: str, kind: str = "single") -> Tuple[Any, Dict[str, Any]]:
        """
        Generate a JSON response conforming to a response schema.

        Args:
            prompt: Prompt text
            kind: Response kind whose schema is appended ("single" or "integrated")

        Returns:
            Tuple of (parsed JSON, metadata)
        """
        schema = self.validator.response_schema(kind)
        schema_prompt = (
            f"{prompt}\n\nIMPORTANT: Your response MUST be valid JSON that conforms to this schema:\n"
            f"{json.dumps(schema, indent=2)}\n\nRespond with ONLY the JSON object, no additional text."
        )

        text, metadata = self._generate(self.structured_model, schema_prompt, self.structured_temperature)

        try:
            return json.loads(self.extract_json(text)), metadata
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse structured response: {e}")
            logger.debug(f"Response text: {text[:500]}")
            raise LLMError(f"Invalid JSON response from LLM: {e}")

    def _generate(self, model: BaseChatModel, prompt: str, temperature: float) -> Tuple[str, Dict[str, Any]]:
        start = time.monotonic()
        response = self._invoke(model, prompt)
        text = _message_text(getattr(response, "content", None))

        if not text.strip():
            raise LLMError("Empty response from AI")

        response_metadata = getattr(response, "response_metadata", None) or {}
        metadata = {
            "model": self.model_name,
            "processingTime": int((time.monotonic() - start) * 1000),
            "promptTokens": self.count_tokens(prompt),
            "responseTokens": self.count_tokens(text),
            "temperature": temperature,
            "finishReason": response_metadata.get("finish_reason", "unknown"),
        }
        return text, metadata

    @retry_with_backoff(
        max_retries=lambda self: self.max_retries,
        initial_delay=lambda self: self.initial_delay,
        backoff_factor=lambda self: self.backoff_factor,
    )
    def _invoke(self, model: BaseChatModel, prompt: str):
        try:
            return model.invoke(prompt)
        except Exception as e:
            logger.error(f"LLM call failed: {e}")
            raise RetryableLLMError(f"AI generation failed: {e}") from e

    def extract_json(self, text: str) -> str:
        """Pull the JSON payload out of a fenced block or surrounding prose."""
        match = _FENCED_JSON.search(text)
        if match:
            return match.group(1)
        match = _BARE_OBJECT.search(text)
        if match:
            return match.group(0)
        return text

    def count_tokens(self, text: str) -> int:
        # ~1.3 tokens per word
        return math.ceil(len(text.split()) * 1.3)
