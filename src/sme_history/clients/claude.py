"""Claude (Anthropic) client.

Anthropic has no JSON response mode, so JSON requests carry the schema in
the system prompt; the extractor copes with whatever comes back.
"""

import json
from typing import Any

import anthropic
import structlog

from sme_history.clients.base import GenerationConfig, LLMResponse
from sme_history.config import get_settings
from sme_history.errors import MissingCredentialError

logger = structlog.get_logger(__name__)

JSON_INSTRUCTION = "Respond with a single JSON value only, without prose or code fences."


class ClaudeClient:
    """Client for Anthropic's Claude API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        configured_key = (
            settings.anthropic_api_key.get_secret_value() if settings.anthropic_api_key else None
        )
        self._api_key = api_key or configured_key
        if not self._api_key:
            raise MissingCredentialError("Anthropic API key is missing. Set ANTHROPIC_API_KEY.")
        self._model = model or settings.claude_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature or settings.llm_temperature

        self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        self._logger = logger.bind(client="claude", model=self._model)

    @property
    def model(self) -> str:
        return self._model

    def _system_prompt(self, config: GenerationConfig) -> str:
        parts = []
        if config.system_instruction:
            parts.append(config.system_instruction)
        if config.wants_json:
            parts.append(JSON_INSTRUCTION)
            if config.response_schema:
                schema = json.dumps(config.response_schema, ensure_ascii=False)
                parts.append(f"JSON schema: {schema}")
        return "\n\n".join(parts)

    def _parse_response(self, response: anthropic.types.Message) -> LLMResponse:
        """Parse Anthropic response into our format."""
        text = "".join(block.text for block in response.content if block.type == "text")
        return LLMResponse(
            text=text,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
            model=self._model,
        )

    async def generate_content(
        self,
        contents: str,
        model: str | None = None,
        config: GenerationConfig | None = None,
    ) -> LLMResponse:
        """Generate a response from Claude."""
        config = config or GenerationConfig()
        kwargs: dict[str, Any] = {
            "model": model or self._model,
            "max_tokens": config.max_output_tokens or self._max_tokens,
            "messages": [{"role": "user", "content": contents}],
            "temperature": (
                config.temperature if config.temperature is not None else self._temperature
            ),
        }
        system = self._system_prompt(config)
        if system:
            kwargs["system"] = system

        self._logger.debug("generating_response", prompt_chars=len(contents))
        try:
            response = await self._client.messages.create(**kwargs)
            parsed = self._parse_response(response)
            parsed.model = kwargs["model"]

            self._logger.info(
                "response_generated",
                stop_reason=response.stop_reason,
                input_tokens=parsed.usage["input_tokens"],
                output_tokens=parsed.usage["output_tokens"],
            )
            return parsed

        except anthropic.APIError as e:
            self._logger.error("api_error", error=str(e))
            raise
