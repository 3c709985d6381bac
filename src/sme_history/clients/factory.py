"""Provider selection for the LLM boundary."""

from typing import Literal

from sme_history.clients.base import LLMClient
from sme_history.clients.claude import ClaudeClient
from sme_history.clients.gemini import GeminiClient
from sme_history.clients.openai_client import OpenAIClient
from sme_history.config import get_settings

Provider = Literal["gemini", "claude", "openai"]


def create_client(
    provider: Provider | None = None,
    api_key: str | None = None,
    model: str | None = None,
) -> LLMClient:
    """Build the client for ``provider`` (defaults to LLM_PROVIDER).

    Raises:
        MissingCredentialError: No API key is configured for the provider.
        ValueError: Unknown provider name.
    """
    name = provider or get_settings().llm_provider
    if name == "gemini":
        return GeminiClient(api_key=api_key, model=model)
    if name == "claude":
        return ClaudeClient(api_key=api_key, model=model)
    if name == "openai":
        return OpenAIClient(api_key=api_key, model=model)
    raise ValueError(f"Unknown LLM provider {name!r}")
