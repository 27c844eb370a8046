from typing import Any

from pydantic import BaseModel

from .base import ChatCompletionsProvider, ChatMessage, GenerationOptions
from .normalizer import NormalizedReply, normalize_deepseek


class DeepSeekChatRequest(BaseModel):
    model: str
    messages: list[dict[str, str]]
    max_tokens: int | None = None
    stream: bool = False


class DeepSeekProvider(ChatCompletionsProvider):
    label = "DeepSeek"
    path = "/chat/completions"

    def build_payload(self, messages: list[ChatMessage], options: GenerationOptions) -> DeepSeekChatRequest:
        # the reasoner model does not accept sampling parameters, so temperature is dropped
        return DeepSeekChatRequest(
            model=self.config.model_name,
            messages=messages,
            max_tokens=options.max_tokens,
        )

    def normalize(self, body: Any) -> NormalizedReply:
        return normalize_deepseek(body)
