import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Protocol, Union

import httpx
from pydantic import BaseModel

from ..errors import ProviderError
from .normalizer import NormalizedReply

logger = logging.getLogger(__name__)

PLACEHOLDER_REPLY = "عذراً، لم أتمكن من إنتاج رد مناسب."

ChatMessage = dict[str, str]
Prompt = Union[str, list[ChatMessage]]


class ProviderId(str, Enum):
    DEEPSEEK = "deepseek"
    OPENAI = "openai"

    @property
    def alternate(self) -> "ProviderId":
        return ProviderId.OPENAI if self is ProviderId.DEEPSEEK else ProviderId.DEEPSEEK


@dataclass(frozen=True)
class ProviderConfig:
    provider_id: ProviderId
    model_name: str
    auth_token: str
    base_url: str

    @property
    def configured(self) -> bool:
        return bool(self.auth_token)


@dataclass(frozen=True)
class GenerationOptions:
    temperature: float = 0.7
    max_tokens: int = 2000
    provider: ProviderId = ProviderId.DEEPSEEK
    extra_flags: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not 0.0 <= self.temperature <= 1.0:
            raise ValueError(f"temperature must be within [0, 1], got {self.temperature}")
        if self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {self.max_tokens}")

    def with_provider(self, provider: ProviderId) -> "GenerationOptions":
        return replace(self, provider=provider)

    def as_settings(self) -> dict[str, Any]:
        return {
            "provider": self.provider.value,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "flags": sorted(self.extra_flags),
        }


@dataclass(frozen=True)
class UsageMetadata:
    provider: ProviderId
    model: str
    processing_time_ms: int = 0
    tokens_used: int = 0
    fallback: bool = False


@dataclass(frozen=True)
class GenerationResult:
    success: bool
    text: str | None = None
    error_message: str | None = None
    metadata: UsageMetadata | None = None

    @classmethod
    def ok(cls, text: str, metadata: UsageMetadata | None = None) -> "GenerationResult":
        return cls(success=True, text=text or PLACEHOLDER_REPLY, metadata=metadata)

    @classmethod
    def failed(cls, error_message: str, metadata: UsageMetadata | None = None) -> "GenerationResult":
        return cls(success=False, error_message=error_message or "unknown error", metadata=metadata)


class Provider(Protocol):
    config: ProviderConfig
    async def generate(self, prompt: Prompt, options: GenerationOptions) -> GenerationResult: ...


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


def as_messages(prompt: Prompt) -> list[ChatMessage]:
    if isinstance(prompt, str):
        return [{"role": "user", "content": prompt}]
    return [{"role": m["role"], "content": m["content"]} for m in prompt]


def elapsed_ms(started: float) -> int:
    return max(0, int((time.perf_counter() - started) * 1000))


class ChatCompletionsProvider(ABC):
    """
    One chat-completions endpoint reached with a bearer token.

    Subclasses supply the label, the path, the request record and the
    normalizer. ``generate`` performs exactly one POST and never raises.
    """

    label = ""
    path = "/chat/completions"

    def __init__(self, config: ProviderConfig, timeout: float = 60.0) -> None:
        self.config = config
        self.timeout = timeout

    @property
    def provider_id(self) -> ProviderId:
        return self.config.provider_id

    @abstractmethod
    def build_payload(self, messages: list[ChatMessage], options: GenerationOptions) -> BaseModel:
        ...

    @abstractmethod
    def normalize(self, body: Any) -> NormalizedReply:
        ...

    async def generate(self, prompt: Prompt, options: GenerationOptions) -> GenerationResult:
        started = time.perf_counter()
        try:
            body = await self._post(self.build_payload(as_messages(prompt), options))
        except ProviderError as e:
            error = str(e)
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
        else:
            reply = self.normalize(body)
            text = reply.text or PLACEHOLDER_REPLY
            tokens = reply.tokens_used if reply.tokens_used is not None else estimate_tokens(text)
            return GenerationResult.ok(text, self._metadata(started, tokens))

        logger.error("%s call failed: %s", self.label, error)
        return GenerationResult.failed(error, self._metadata(started, 0))

    def _metadata(self, started: float, tokens: int) -> UsageMetadata:
        return UsageMetadata(
            provider=self.provider_id,
            model=self.config.model_name,
            processing_time_ms=elapsed_ms(started),
            tokens_used=tokens,
        )

    async def _post(self, payload: BaseModel) -> Any:
        url = f"{self.config.base_url}{self.path}"
        headers = {
            "Authorization": f"Bearer {self.config.auth_token}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            r = await client.post(url, headers=headers, json=payload.model_dump(exclude_none=True))
        if not r.is_success:
            raise ProviderError(self.label, r.status_code, r.text)
        return r.json()
