import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Mapping

from . import prompts
from ..providers.base import (
    GenerationOptions,
    GenerationResult,
    Prompt,
    Provider,
    ProviderId,
    UsageMetadata,
    elapsed_ms,
)
from ..providers.deepseek_provider import DeepSeekProvider
from ..providers.openai_provider import OpenAIProvider
from ..settings import Settings, build_provider_configs
from ..usage import LoggingUsageRecorder, UsageRecord, UsageRecorder

logger = logging.getLogger(__name__)


def _message_length(prompt: Prompt) -> int:
    if isinstance(prompt, str):
        return len(prompt)
    for m in reversed(prompt):
        if m.get("role") == "user":
            return len(m.get("content") or "")
    return 0


class Orchestrator:
    """
    Routes one prompt to a provider, with a single fallback to the other one.

    Holds only immutable provider configuration plus the set of in-flight usage
    writes, so one instance can serve any number of concurrent requests.
    ``facets`` maps extra health components (storage, cache) to their
    configuration value; presence alone marks them online.
    """

    def __init__(
        self,
        providers: Mapping[ProviderId, Provider],
        recorder: UsageRecorder | None = None,
        facets: Mapping[str, str | None] | None = None,
    ) -> None:
        self.providers = dict(providers)
        self.recorder = recorder or LoggingUsageRecorder()
        self.facets = {"storage": None, "cache": None, **(facets or {})}
        self._pending: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Settings, recorder: UsageRecorder | None = None) -> "Orchestrator":
        configs = build_provider_configs(settings)
        timeout = settings.provider_timeout_sec
        return cls(
            providers={
                ProviderId.DEEPSEEK: DeepSeekProvider(configs[ProviderId.DEEPSEEK], timeout=timeout),
                ProviderId.OPENAI: OpenAIProvider(configs[ProviderId.OPENAI], timeout=timeout),
            },
            recorder=recorder,
            facets={"storage": settings.database_url, "cache": settings.kv_rest_api_url},
        )

    def is_configured(self, provider_id: ProviderId) -> bool:
        provider = self.providers.get(provider_id)
        return bool(provider and provider.config.configured)

    def available_providers(self) -> list[ProviderId]:
        return [p for p in ProviderId if self.is_configured(p)]

    # ── generation ───────────────────────────────────────────────────────────

    async def generate_response(self, prompt: Prompt, options: GenerationOptions | None = None) -> GenerationResult:
        options = options or GenerationOptions()
        try:
            return await self._generate(prompt, options)
        except Exception as e:
            logger.exception("orchestrator error")
            return GenerationResult.failed(f"{type(e).__name__}: {e}")

    async def _generate(self, prompt: Prompt, options: GenerationOptions) -> GenerationResult:
        primary = options.provider
        if not self.is_configured(primary):
            if not self.is_configured(primary.alternate):
                logger.error("no provider credentials configured")
                return GenerationResult.failed(prompts.NO_PROVIDER_MESSAGE)
            logger.info("%s has no credential, using %s", primary.value, primary.alternate.value)
            primary = primary.alternate

        attempts = [await self._attempt(primary, prompt, options, fallback=False)]
        result = attempts[0]

        alternate = primary.alternate
        if not result.success and self.is_configured(alternate):
            logger.warning("%s failed, falling back to %s: %s", primary.value, alternate.value, result.error_message)
            result = await self._attempt(alternate, prompt, options, fallback=True)
            attempts.append(result)

        if not result.success:
            logger.error("all providers failed, last error: %s", result.error_message)

        self._emit_usage(attempts, prompt, options)
        return result

    async def _attempt(
        self,
        provider_id: ProviderId,
        prompt: Prompt,
        options: GenerationOptions,
        fallback: bool,
    ) -> GenerationResult:
        provider = self.providers[provider_id]
        started = time.perf_counter()
        try:
            result = await provider.generate(prompt, options.with_provider(provider_id))
        except Exception as e:
            logger.exception("%s client raised", provider_id.value)
            result = GenerationResult.failed(f"{type(e).__name__}: {e}")

        meta = result.metadata or UsageMetadata(
            provider=provider_id,
            model=provider.config.model_name,
            processing_time_ms=elapsed_ms(started),
        )
        if result.success:
            logger.info(
                "%s answered in %sms (%s tokens, fallback=%s)",
                provider_id.value, meta.processing_time_ms, meta.tokens_used, fallback,
            )
        return replace(result, metadata=replace(meta, fallback=fallback))

    # ── usage ────────────────────────────────────────────────────────────────

    def _emit_usage(self, attempts: list[GenerationResult], prompt: Prompt, options: GenerationOptions) -> None:
        message_length = _message_length(prompt)
        settings = options.as_settings()
        for attempt in attempts:
            record = UsageRecord.from_result(attempt, message_length, settings)
            task = asyncio.create_task(self._record(record))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _record(self, record: UsageRecord) -> None:
        try:
            await self.recorder.record(record)
        except Exception as e:
            logger.warning("Failed to log usage (storage may not be available): %s", e)

    async def drain(self) -> None:
        """Wait for usage writes that are still in flight."""
        pending = list(self._pending)
        if pending:
            await asyncio.gather(*pending)

    # ── health ───────────────────────────────────────────────────────────────

    async def _probe(self, provider_id: ProviderId) -> bool:
        options = GenerationOptions(max_tokens=prompts.HEALTH_PROBE_MAX_TOKENS, provider=provider_id)
        try:
            result = await self.providers[provider_id].generate(prompts.HEALTH_PROBE_PROMPT, options)
        except Exception:
            logger.exception("%s health probe raised", provider_id.value)
            return False
        return result.success

    async def test_providers(self) -> dict[str, bool]:
        configured = self.available_providers()
        outcomes = await asyncio.gather(*(self._probe(p) for p in configured))
        return {p.value: ok for p, ok in zip(configured, outcomes)}

    async def get_system_health(self) -> dict[str, Any]:
        tests = await self.test_providers()
        health: dict[str, Any] = {p.value: "online" if tests.get(p.value) else "offline" for p in ProviderId}
        for name, value in self.facets.items():
            health[name] = "online" if value else "offline"
        health["timestamp"] = datetime.now(timezone.utc).isoformat()
        return health
