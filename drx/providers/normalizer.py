"""
Extraction of one answer string from a chat-completions response body.

Every level of the body is optional: a body that does not fit the expected
shape yields an empty reply instead of an exception. The caller decides what
to show for an empty reply.
"""
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, NonNegativeInt, ValidationError

ReplySource = Literal["content", "reasoning", "empty"]


@dataclass(frozen=True)
class NormalizedReply:
    text: str
    tokens_used: int | None = None
    source: ReplySource = "empty"


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _Envelope(_Lenient):
    choices: list[Any] | None = None
    usage: Any = None


class _Choice(_Lenient):
    message: Any = None


class _Message(_Lenient):
    content: str | None = None
    reasoning_content: str | None = None


class _Usage(_Lenient):
    total_tokens: NonNegativeInt | None = None


def _decode(model: type[_Lenient], raw: Any) -> Any:
    try:
        return model.model_validate(raw)
    except ValidationError:
        return None


def _envelope_parts(body: Any) -> tuple[_Message | None, int | None]:
    envelope = _decode(_Envelope, body)
    if envelope is None:
        return None, None

    usage = _decode(_Usage, envelope.usage)
    tokens = usage.total_tokens if usage else None

    if not envelope.choices:
        return None, tokens
    choice = _decode(_Choice, envelope.choices[0])
    if choice is None:
        return None, tokens
    return _decode(_Message, choice.message), tokens


def normalize_deepseek(body: Any) -> NormalizedReply:
    """The reasoner model may send both a final answer and its reasoning trace; the answer wins."""
    message, tokens = _envelope_parts(body)
    if message and message.content:
        return NormalizedReply(text=message.content, tokens_used=tokens, source="content")
    if message and message.reasoning_content:
        return NormalizedReply(text=message.reasoning_content, tokens_used=tokens, source="reasoning")
    return NormalizedReply(text="", tokens_used=tokens, source="empty")


def normalize_openai(body: Any) -> NormalizedReply:
    message, tokens = _envelope_parts(body)
    if message and message.content:
        return NormalizedReply(text=message.content, tokens_used=tokens, source="content")
    return NormalizedReply(text="", tokens_used=tokens, source="empty")
