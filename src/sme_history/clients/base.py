"""The LLM request boundary shared by every provider client."""

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass
class GenerationConfig:
    """Request options; ``response_schema`` is a plain JSON-schema dict."""

    response_mime_type: str | None = None
    response_schema: dict[str, Any] | None = None
    temperature: float | None = None
    max_output_tokens: int | None = None
    system_instruction: str | None = None

    @classmethod
    def json(cls, schema: dict[str, Any] | None = None, **kwargs: Any) -> "GenerationConfig":
        """Config asking for a JSON response, optionally matching ``schema``."""
        return cls(response_mime_type="application/json", response_schema=schema, **kwargs)

    @property
    def wants_json(self) -> bool:
        return self.response_mime_type == "application/json"


@dataclass
class LLMResponse:
    """Raw text returned by a model; never assumed to be valid JSON."""

    text: str
    usage: dict[str, int] = field(
        default_factory=lambda: {"input_tokens": 0, "output_tokens": 0}
    )
    model: str = ""


class LLMClient(Protocol):
    """Anything that can turn a prompt into text."""

    async def generate_content(
        self,
        contents: str,
        model: str | None = None,
        config: GenerationConfig | None = None,
    ) -> LLMResponse: ...
