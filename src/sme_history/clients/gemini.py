"""Google Gemini client with JSON response mode.

Uses the google-genai SDK (v1.0+). JSON-schema dicts from the prompt layer
are converted to Gemini's OpenAPI-subset schema before the request.
"""

from typing import Any

import structlog
from google import genai
from google.genai import types

from sme_history.clients.base import GenerationConfig, LLMResponse
from sme_history.config import get_settings
from sme_history.errors import MissingCredentialError

logger = structlog.get_logger(__name__)


class GeminiClient:
    """Client for Google's Gemini API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        configured_key = (
            settings.google_api_key.get_secret_value() if settings.google_api_key else None
        )
        self._api_key = api_key or configured_key
        if not self._api_key:
            raise MissingCredentialError(
                "Gemini API key is missing. Set GEMINI_API_KEY, GOOGLE_API_KEY or API_KEY."
            )
        self._model_name = model or settings.gemini_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature or settings.llm_temperature

        self._client = genai.Client(api_key=self._api_key)
        self._logger = logger.bind(client="gemini", model=self._model_name)

    @property
    def model(self) -> str:
        return self._model_name

    def _convert_json_schema_to_gemini(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Convert JSON Schema to Gemini's schema format.

        Gemini uses a subset of OpenAPI schema format.
        """
        gemini_schema: dict[str, Any] = {}

        if "type" in schema:
            schema_type = schema["type"]
            nullable = False
            if isinstance(schema_type, list):
                nullable = "null" in schema_type
                schema_type = next((t for t in schema_type if t != "null"), "string")
            type_map = {
                "string": "STRING",
                "integer": "INTEGER",
                "number": "NUMBER",
                "boolean": "BOOLEAN",
                "array": "ARRAY",
                "object": "OBJECT",
            }
            gemini_schema["type"] = type_map.get(schema_type, "STRING")
            if nullable:
                gemini_schema["nullable"] = True

        if "description" in schema:
            gemini_schema["description"] = schema["description"]

        if "enum" in schema:
            gemini_schema["enum"] = schema["enum"]

        if "properties" in schema:
            gemini_schema["properties"] = {
                k: self._convert_json_schema_to_gemini(v)
                for k, v in schema["properties"].items()
            }

        if "required" in schema:
            gemini_schema["required"] = schema["required"]

        if "items" in schema:
            gemini_schema["items"] = self._convert_json_schema_to_gemini(schema["items"])

        return gemini_schema

    def _build_config(self, config: GenerationConfig | None) -> types.GenerateContentConfig:
        config = config or GenerationConfig()
        gemini_config = types.GenerateContentConfig(
            max_output_tokens=config.max_output_tokens or self._max_tokens,
            temperature=config.temperature if config.temperature is not None else self._temperature,
        )
        if config.system_instruction:
            gemini_config.system_instruction = config.system_instruction
        if config.response_mime_type:
            gemini_config.response_mime_type = config.response_mime_type
        if config.response_schema:
            gemini_config.response_schema = types.Schema.model_validate(
                self._convert_json_schema_to_gemini(config.response_schema)
            )
        return gemini_config

    def _parse_response(self, response: Any) -> LLMResponse:
        """Parse Gemini response into our format."""
        text = ""
        if response.candidates:
            candidate = response.candidates[0]
            parts = candidate.content.parts if candidate.content and candidate.content.parts else []
            text = "".join(part.text for part in parts if getattr(part, "text", None))

        usage = {"input_tokens": 0, "output_tokens": 0}
        if hasattr(response, "usage_metadata") and response.usage_metadata:
            usage["input_tokens"] = (
                getattr(response.usage_metadata, "prompt_token_count", 0) or 0
            )
            usage["output_tokens"] = (
                getattr(response.usage_metadata, "candidates_token_count", 0) or 0
            )

        return LLMResponse(text=text, usage=usage, model=self._model_name)

    async def generate_content(
        self,
        contents: str,
        model: str | None = None,
        config: GenerationConfig | None = None,
    ) -> LLMResponse:
        """Generate a response from Gemini.

        Args:
            contents: The prompt text.
            model: Model override for this request.
            config: JSON mode, schema and sampling options.

        Returns:
            LLMResponse with the raw text and usage info.
        """
        model_name = model or self._model_name
        self._logger.debug("generating_response", prompt_chars=len(contents), model=model_name)

        try:
            response = await self._client.aio.models.generate_content(
                model=model_name,
                contents=contents,
                config=self._build_config(config),
            )
            parsed = self._parse_response(response)
            parsed.model = model_name

            self._logger.info(
                "response_generated",
                input_tokens=parsed.usage["input_tokens"],
                output_tokens=parsed.usage["output_tokens"],
                response_chars=len(parsed.text),
            )
            return parsed

        except Exception as e:
            self._logger.error("api_error", error=str(e))
            raise
