import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

from sqlalchemy.orm import Session, sessionmaker

from .providers.base import GenerationResult
from .repositories import log_usage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageRecord:
    provider: str
    model: str
    processing_time_ms: int
    tokens_used: int
    success: bool
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_result(cls, result: GenerationResult, message_length: int, settings: dict[str, Any]) -> "UsageRecord":
        meta = result.metadata
        return cls(
            provider=meta.provider.value if meta else "",
            model=meta.model if meta else "",
            processing_time_ms=meta.processing_time_ms if meta else 0,
            tokens_used=meta.tokens_used if meta else 0,
            success=result.success,
            error_message=result.error_message,
            metadata={
                "message_length": message_length,
                "settings": settings,
                "fallback": meta.fallback if meta else False,
            },
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class UsageRecorder(Protocol):
    async def record(self, record: UsageRecord) -> None: ...


class LoggingUsageRecorder:
    """Used when no database is configured."""

    async def record(self, record: UsageRecord) -> None:
        logger.debug("usage (not persisted): %s", record.to_dict())


class SqlUsageRecorder:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    async def record(self, record: UsageRecord) -> None:
        await asyncio.to_thread(self._write, record)

    def _write(self, record: UsageRecord) -> None:
        db = self.session_factory()
        try:
            log_usage(db, record)
        finally:
            db.close()
