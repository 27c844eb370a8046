from typing import Any

from pydantic import BaseModel

from .base import ChatCompletionsProvider, ChatMessage, GenerationOptions
from .normalizer import NormalizedReply, normalize_openai


class OpenAIChatRequest(BaseModel):
    model: str
    messages: list[dict[str, str]]
    temperature: float | None = None
    max_tokens: int | None = None
    stream: bool = False


class OpenAIProvider(ChatCompletionsProvider):
    label = "OpenAI"
    path = "/v1/chat/completions"

    def build_payload(self, messages: list[ChatMessage], options: GenerationOptions) -> OpenAIChatRequest:
        return OpenAIChatRequest(
            model=self.config.model_name,
            messages=messages,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
        )

    def normalize(self, body: Any) -> NormalizedReply:
        return normalize_openai(body)
