from typing import Literal

from pydantic import AliasChoices, BaseModel, Field

from .providers.base import GenerationOptions, ProviderId


class ChatSettings(BaseModel):
    provider: ProviderId = Field(default=ProviderId.DEEPSEEK, validation_alias=AliasChoices("provider", "model"))
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    max_tokens: int = Field(default=2000, gt=0, validation_alias=AliasChoices("maxTokens", "max_tokens"))
    enable_thinking: bool = Field(default=False, validation_alias=AliasChoices("enableThinking", "enable_thinking"))
    enable_search: bool = Field(default=False, validation_alias=AliasChoices("enableSearch", "enable_search"))

    def to_options(self, default_provider: ProviderId = ProviderId.DEEPSEEK) -> GenerationOptions:
        flags = set()
        if self.enable_thinking:
            flags.add("thinking")
        if self.enable_search:
            flags.add("search")
        provider = self.provider if "provider" in self.model_fields_set else default_provider
        return GenerationOptions(
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            provider=provider,
            extra_flags=frozenset(flags),
        )


class HistoryTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    message: str = ""
    settings: ChatSettings = Field(default_factory=ChatSettings)
    history: list[HistoryTurn] = Field(default_factory=list)
