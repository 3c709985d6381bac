"""OpenAI GPT client with JSON object response mode."""

import json
from typing import Any

import openai
import structlog

from sme_history.clients.base import GenerationConfig, LLMResponse
from sme_history.config import get_settings
from sme_history.errors import MissingCredentialError

logger = structlog.get_logger(__name__)


class OpenAIClient:
    """Client for OpenAI's GPT API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        configured_key = (
            settings.openai_api_key.get_secret_value() if settings.openai_api_key else None
        )
        self._api_key = api_key or configured_key
        if not self._api_key:
            raise MissingCredentialError("OpenAI API key is missing. Set OPENAI_API_KEY.")
        self._model = model or settings.gpt_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature or settings.llm_temperature

        self._client = openai.AsyncOpenAI(api_key=self._api_key)
        self._logger = logger.bind(client="openai", model=self._model)

    @property
    def model(self) -> str:
        return self._model

    def _build_messages(self, contents: str, config: GenerationConfig) -> list[dict[str, Any]]:
        system_parts = []
        if config.system_instruction:
            system_parts.append(config.system_instruction)
        if config.wants_json and config.response_schema:
            # json_object mode requires the word JSON somewhere in the prompt
            schema = json.dumps(config.response_schema, ensure_ascii=False)
            system_parts.append(f"Respond in JSON matching this schema: {schema}")
        elif config.wants_json:
            system_parts.append("Respond in JSON.")

        messages: list[dict[str, Any]] = []
        if system_parts:
            messages.append({"role": "system", "content": "\n\n".join(system_parts)})
        messages.append({"role": "user", "content": contents})
        return messages

    def _parse_response(self, response: openai.types.chat.ChatCompletion) -> LLMResponse:
        """Parse OpenAI response into our format."""
        text = (response.choices[0].message.content or "") if response.choices else ""
        return LLMResponse(
            text=text,
            usage={
                "input_tokens": response.usage.prompt_tokens if response.usage else 0,
                "output_tokens": response.usage.completion_tokens if response.usage else 0,
            },
            model=self._model,
        )

    async def generate_content(
        self,
        contents: str,
        model: str | None = None,
        config: GenerationConfig | None = None,
    ) -> LLMResponse:
        """Generate a response from GPT."""
        config = config or GenerationConfig()
        model_name = model or self._model

        # Note: GPT-5+ models use max_completion_tokens instead of max_tokens
        # and gpt-5-nano only supports default temperature (1)
        is_gpt5_plus = model_name.startswith("gpt-5") or model_name.startswith("o3")
        is_nano = "nano" in model_name
        kwargs: dict[str, Any] = {
            "model": model_name,
            "messages": self._build_messages(contents, config),
        }
        if not is_nano:
            kwargs["temperature"] = (
                config.temperature if config.temperature is not None else self._temperature
            )
        max_tokens = config.max_output_tokens or self._max_tokens
        if is_gpt5_plus:
            kwargs["max_completion_tokens"] = max_tokens
        else:
            kwargs["max_tokens"] = max_tokens
        if config.wants_json:
            kwargs["response_format"] = {"type": "json_object"}

        self._logger.debug("generating_response", prompt_chars=len(contents))
        try:
            response = await self._client.chat.completions.create(**kwargs)
            parsed = self._parse_response(response)
            parsed.model = model_name

            self._logger.info(
                "response_generated",
                input_tokens=parsed.usage["input_tokens"],
                output_tokens=parsed.usage["output_tokens"],
            )
            return parsed

        except openai.APIError as e:
            self._logger.error("api_error", error=str(e))
            raise
