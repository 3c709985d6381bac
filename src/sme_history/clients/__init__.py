"""LLM client implementations for the SME history synthesizer."""

from sme_history.clients.base import GenerationConfig, LLMClient, LLMResponse
from sme_history.clients.claude import ClaudeClient
from sme_history.clients.factory import create_client
from sme_history.clients.gemini import GeminiClient
from sme_history.clients.openai_client import OpenAIClient

__all__ = [
    "GenerationConfig",
    "LLMClient",
    "LLMResponse",
    "ClaudeClient",
    "GeminiClient",
    "OpenAIClient",
    "create_client",
]
