"""
HTTP surface tests for drx.main (FastAPI TestClient, fake providers injected)
"""
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import respx
from fastapi.testclient import TestClient
from sqlalchemy import select

from drx.db import make_engine, make_session_factory
from drx.main import create_app
from drx.models import UsageAnalytics
from drx.orchestrator import prompts
from drx.orchestrator.runner import Orchestrator
from drx.providers.base import GenerationResult, ProviderConfig, ProviderId, UsageMetadata
from drx.settings import Settings

DS = ProviderId.DEEPSEEK
OA = ProviderId.OPENAI


def fake_provider(pid, token="sk-test", fail=False, text="ok"):
    prov = MagicMock()
    prov.config = ProviderConfig(provider_id=pid, model_name=f"{pid.value}-model", auth_token=token, base_url="http://x")
    meta = UsageMetadata(provider=pid, model=prov.config.model_name, processing_time_ms=3, tokens_used=9)
    if fail:
        prov.generate = AsyncMock(return_value=GenerationResult.failed(f"{pid.value} down", meta))
    else:
        prov.generate = AsyncMock(return_value=GenerationResult.ok(text, meta))
    return prov


class ListRecorder:
    def __init__(self):
        self.records = []

    async def record(self, record):
        self.records.append(record)


def client_for(ds, oa, **settings_kwargs):
    settings = Settings(_env_file=None, database_url=None, kv_rest_api_url=None, **settings_kwargs)
    orch = Orchestrator(providers={DS: ds, OA: oa}, recorder=ListRecorder(), facets={"storage": None, "cache": None})
    return TestClient(create_app(settings=settings, orchestrator=orch))


def chat_body(message="hello", **settings):
    return {"message": message, "settings": settings, "history": []}


class TestChatEndpoint:
    def test_success(self):
        ds, oa = fake_provider(DS, text="answer"), fake_provider(OA)
        with client_for(ds, oa) as client:
            r = client.post("/api/ai/chat", json=chat_body(provider="deepseek", maxTokens=500))
        assert r.status_code == 200
        data = r.json()
        assert data["success"] is True
        assert data["content"] == "answer"
        assert data["provider"] == "deepseek"
        assert data["model"] == "deepseek-model"
        assert data["fallback"] is False
        assert data["tokens"] == 9
        assert data["processingTime"] >= 0

        messages, options = ds.generate.call_args.args
        assert messages[0]["role"] == "system"
        assert messages[-1] == {"role": "user", "content": "hello"}
        assert options.max_tokens == 500

    def test_model_alias_selects_provider(self):
        ds, oa = fake_provider(DS), fake_provider(OA)
        with client_for(ds, oa) as client:
            r = client.post("/api/ai/chat", json=chat_body(model="openai", temperature=0.2))
        assert r.json()["provider"] == "openai"
        assert oa.generate.call_args.args[1].temperature == 0.2
        assert ds.generate.call_count == 0

    def test_default_provider_from_settings(self):
        ds, oa = fake_provider(DS), fake_provider(OA)
        with client_for(ds, oa, default_provider="openai") as client:
            r = client.post("/api/ai/chat", json={"message": "hi"})
        assert r.json()["provider"] == "openai"

    def test_fallback_reported(self):
        ds, oa = fake_provider(DS, fail=True), fake_provider(OA, text="rescued")
        with client_for(ds, oa) as client:
            r = client.post("/api/ai/chat", json=chat_body())
        data = r.json()
        assert data["content"] == "rescued"
        assert data["fallback"] is True

    def test_history_truncated(self):
        ds, oa = fake_provider(DS), fake_provider(OA)
        history = [{"role": "user" if i % 2 == 0 else "assistant", "content": f"t{i}"} for i in range(10)]
        with client_for(ds, oa) as client:
            client.post("/api/ai/chat", json={"message": "now", "history": history})
        messages = ds.generate.call_args.args[0]
        assert [m["content"] for m in messages[1:-1]] == [f"t{i}" for i in range(4, 10)]

    def test_flags_reach_system_prompt(self):
        ds, oa = fake_provider(DS), fake_provider(OA)
        with client_for(ds, oa) as client:
            client.post("/api/ai/chat", json=chat_body(enableThinking=True, enableSearch=True))
        messages, options = ds.generate.call_args.args
        assert prompts.THINKING_HINT in messages[0]["content"]
        assert prompts.SEARCH_HINT in messages[0]["content"]
        assert options.extra_flags == frozenset({"thinking", "search"})

    @pytest.mark.parametrize("message", ["", "   "])
    def test_blank_message(self, message):
        ds, oa = fake_provider(DS), fake_provider(OA)
        with client_for(ds, oa) as client:
            r = client.post("/api/ai/chat", json=chat_body(message))
        assert r.status_code == 400
        assert r.json() == {"success": False, "error": prompts.EMPTY_MESSAGE}
        assert ds.generate.call_count == 0

    def test_both_fail(self):
        ds, oa = fake_provider(DS, fail=True), fake_provider(OA, fail=True)
        with client_for(ds, oa) as client:
            r = client.post("/api/ai/chat", json=chat_body())
        assert r.status_code == 500
        data = r.json()
        assert data["success"] is False
        assert data["error"] == prompts.TEMPORARY_FAILURE_MESSAGE
        assert data["details"] == "openai down"

    def test_no_credentials(self):
        ds, oa = fake_provider(DS, token=""), fake_provider(OA, token="")
        with client_for(ds, oa) as client:
            r = client.post("/api/ai/chat", json=chat_body())
        assert r.status_code == 503
        assert r.json()["error"] == prompts.NO_PROVIDER_MESSAGE

    def test_invalid_temperature_rejected(self):
        ds, oa = fake_provider(DS), fake_provider(OA)
        with client_for(ds, oa) as client:
            r = client.post("/api/ai/chat", json=chat_body(temperature=3))
        assert r.status_code == 422


class TestStatusEndpoints:
    def test_chat_status(self):
        ds, oa = fake_provider(DS), fake_provider(OA, token="")
        with client_for(ds, oa) as client:
            data = client.get("/api/ai/chat").json()
        assert data["status"] == "healthy"
        assert data["models"] == {"deepseek": True, "openai": False}

    def test_system_health(self):
        ds, oa = fake_provider(DS), fake_provider(OA, fail=True)
        with client_for(ds, oa) as client:
            data = client.get("/api/ai/health").json()
        assert data["deepseek"] == "online"
        assert data["openai"] == "offline"
        assert data["storage"] == "offline"
        assert data["cache"] == "offline"
        assert "timestamp" in data

    def test_plain_health(self):
        with client_for(fake_provider(DS), fake_provider(OA)) as client:
            r = client.get("/health")
        assert r.text == "ok"


class TestUsagePersistence:
    def test_fallback_writes_two_rows(self, tmp_path):
        database_url = f"sqlite:///{tmp_path / 'usage.db'}"
        settings = Settings(
            _env_file=None,
            deepseek_api_key="ds-key",
            openai_api_key="oa-key",
            database_url=database_url,
            kv_rest_api_url=None,
        )
        app = create_app(settings=settings)

        with respx.mock:
            respx.post("https://api.deepseek.com/chat/completions").mock(
                return_value=httpx.Response(500, text="upstream broke")
            )
            respx.post("https://api.openai.com/v1/chat/completions").mock(
                return_value=httpx.Response(200, json={
                    "choices": [{"message": {"content": "ok"}}],
                    "usage": {"total_tokens": 12},
                })
            )
            with TestClient(app) as client:
                r = client.post("/api/ai/chat", json=chat_body(provider="deepseek"))

        assert r.status_code == 200
        assert r.json()["provider"] == "openai"
        assert r.json()["fallback"] is True

        engine = make_engine(database_url)
        db = make_session_factory(engine)()
        try:
            rows = db.scalars(select(UsageAnalytics).order_by(UsageAnalytics.id)).all()
        finally:
            db.close()
            engine.dispose()

        assert [(row.provider, row.success, row.tokens_used) for row in rows] == [
            ("deepseek", False, 0),
            ("openai", True, 12),
        ]
        assert [row.extra["fallback"] for row in rows] == [False, True]
        assert "500" in rows[0].error_message
