"""Tests for the ask HTTP endpoints."""

import json

from fastapi import FastAPI
from fastapi.testclient import TestClient

from askrelay.ask.sessions import SessionManager
from askrelay.core.config import RelayConfig
from askrelay.http.ask import create_router
from askrelay.llm.sse import encode_done, encode_token

from conftest import FakeFactory, FakeHistory, FakeLLM, FakePrompts, FakeRepository, FakeScreenshots


def _client(adapter=None, repository=None):
    manager = SessionManager(
        FakeFactory(adapter or FakeLLM()),
        FakeHistory(),
        FakeScreenshots(),
        FakePrompts(),
        repository or FakeRepository(),
        user_id="user-1",
        config=RelayConfig(),
    )
    app = FastAPI()
    app.include_router(create_router(manager))
    return TestClient(app), manager


def test_ask_returns_result():
    repository = FakeRepository()
    client, _ = _client(repository=repository)

    response = client.post("/v1/ask", json={"text": "What's the weather?", "session_id": "s1"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "response": "Hello world"}
    assert [role for _, role, _ in repository.messages] == ["user", "assistant"]


def test_ask_empty_text():
    client, _ = _client()
    response = client.post("/v1/ask", json={"text": "  "})
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Empty message"}


def test_ask_rejects_non_object_body():
    client, _ = _client()
    response = client.post("/v1/ask", content=b"[1, 2]", headers={"content-type": "application/json"})
    assert response.status_code == 400


def test_ask_rejects_non_string_text():
    client, manager = _client()
    for path in ("/v1/ask", "/v1/ask/stream"):
        response = client.post(path, json={"text": 123})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "text must be a string"}
    assert manager.active_sessions() == []


def test_ask_provider_failure_is_502():
    client, _ = _client(FakeLLM(chunks=[], fail_with="upstream closed"))
    response = client.post("/v1/ask", json={"text": "hi"})
    assert response.status_code == 502
    assert response.json() == {"success": False, "error": "upstream closed"}


def test_ask_stream_wire_format():
    client, manager = _client()

    response = client.post("/v1/ask/stream", json={"text": "hi", "session_id": "s1"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["x-session-id"] == "s1"
    assert response.text == encode_token("Hello") + encode_token(" world") + encode_done()
    assert "s1" in manager.active_sessions()


def test_ask_stream_error_event():
    client, _ = _client(FakeLLM(chunks=["partial"], fail_with="upstream closed"))

    response = client.post("/v1/ask/stream", json={"text": "hi"})

    frames = [f for f in response.text.split("\n\n") if f]
    assert frames[0] == encode_token("partial").strip()
    assert json.loads(frames[-1][len("data: "):]) == {"error": "upstream closed"}
    assert "[DONE]" not in response.text


def test_ask_stream_empty_text():
    client, _ = _client()
    response = client.post("/v1/ask/stream", json={"text": ""})
    assert response.status_code == 400


def test_providers():
    client, _ = _client()
    response = client.get("/v1/providers")
    assert response.json() == {"stt": ["openai"], "llm": ["openai", "bedrock", "gemini"]}
