"""
Core pytest configuration and fixtures for chatrelay testing.

This module provides shared test fixtures, fake adapters and HTTP helpers
that support the pillar-based testing architecture.
"""

import asyncio
import json
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
from chatrelay.llm import LLM
from chatrelay.models import (
    ASSISTANT_ROLE,
    USER_ROLE,
    Attachment,
    ChatMessage,
    Conversation,
    Pricing,
)
from chatrelay.streaming import StreamCallbacks

# ===== TEST DATA FIXTURES =====


@pytest.fixture
def sample_messages() -> List[ChatMessage]:
    """Sample chat messages for testing."""
    return [
        ChatMessage(role=USER_ROLE, content="Hello, how are you?"),
        ChatMessage(
            role=ASSISTANT_ROLE,
            content="I'm doing well, thank you! How can I help you today?",
        ),
        ChatMessage(role=USER_ROLE, content="Can you explain quantum computing?"),
        ChatMessage(
            role=ASSISTANT_ROLE,
            content="Quantum computing uses quantum mechanics principles...",
        ),
    ]


@pytest.fixture
def sample_conversation(sample_messages) -> Conversation:
    """Sample conversation for testing."""
    return Conversation(
        id="001", messages=sample_messages, provider_id="scripted", model_id="scripted-1"
    )


@pytest.fixture
def image_attachment() -> Attachment:
    return Attachment(
        type="image",
        name="cat.png",
        mime_type="image/png",
        size=4,
        data="data:image/png;base64,iVBORw==",
    )


@pytest.fixture
def pdf_attachment() -> Attachment:
    return Attachment(
        type="file",
        name="paper.pdf",
        mime_type="application/pdf",
        size=8,
        data="data:application/pdf;base64,JVBERi0x",
    )


# ===== DIRECTORY FIXTURES =====


@pytest.fixture
def temp_dir():
    """Temporary directory for file-based tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ===== ASYNC / HTTP UTILITIES =====


def run(coro):
    """Runs a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def sse(*events: Any, done: bool = False) -> bytes:
    """Encodes events as a server-sent-event body of ``data:`` lines."""
    lines = [f"data: {e if isinstance(e, str) else json.dumps(e, ensure_ascii=False)}" for e in events]
    if done:
        lines.append("data: [DONE]")
    return ("\n\n".join(lines) + "\n\n").encode("utf-8")


def openai_delta(text: str) -> Dict[str, Any]:
    return {"choices": [{"delta": {"content": text}}]}


def anthropic_delta(text: str) -> Dict[str, Any]:
    return {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}}


def gemini_delta(text: str) -> Dict[str, Any]:
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


class RecordingTransport:
    """Wraps a handler in an ``httpx.MockTransport`` and records the requests."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    @property
    def last_json(self) -> Dict[str, Any]:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def http():
    """Factory building a recording mock transport from a handler."""
    return RecordingTransport


class Collector:
    """Records every callback an adapter makes."""

    def __init__(self):
        self.events: List[tuple] = []

    @property
    def callbacks(self) -> StreamCallbacks:
        return StreamCallbacks(
            on_token=lambda t: self.events.append(("token", t)),
            on_complete=lambda t: self.events.append(("complete", t)),
            on_error=lambda e: self.events.append(("error", e)),
        )

    @property
    def tokens(self) -> List[str]:
        return [value for kind, value in self.events if kind == "token"]

    @property
    def terminal(self) -> List[tuple]:
        return [e for e in self.events if e[0] in ("complete", "error")]


@pytest.fixture
def collector() -> Collector:
    return Collector()


# ===== FAKE ADAPTER =====


class ScriptedLLM(LLM):
    """An adapter that streams a fixed token script instead of calling a vendor.

    ``errors`` holds one entry per call: an exception to report through
    ``on_error`` or None to stream the tokens normally.
    """

    provider_id = "scripted"
    name = "Scripted"
    default_pricing = Pricing(input=1.0, output=2.0)

    def __init__(self, tokens=("Hel", "lo"), errors=None):
        super().__init__()
        self.tokens = list(tokens)
        self.errors = list(errors or [])
        self.calls: List[Dict[str, Any]] = []
        self.before_stream: Optional[Callable[[List[ChatMessage]], None]] = None
        self.after_token: Optional[Callable[[str], None]] = None

    async def fetch_models(self, api_key):
        return []

    def build_request(self, messages, config, api_key):
        raise NotImplementedError

    def extract_text(self, event):
        return None

    async def stream_chat(self, messages, config, api_key, callbacks, cancel_token=None):
        self.calls.append(
            {
                "messages": [m.model_copy(deep=True) for m in messages],
                "config": config,
                "api_key": api_key,
                "cancel_token": cancel_token,
            }
        )
        if self.before_stream is not None:
            self.before_stream(messages)
        error = self.errors.pop(0) if self.errors else None
        text = ""
        for token in self.tokens:
            if cancel_token is not None and cancel_token.cancelled:
                break
            text += token
            callbacks.on_token(token)
            if self.after_token is not None:
                self.after_token(token)
            await asyncio.sleep(0)
        if error is not None:
            callbacks.on_error(error)
            return
        callbacks.on_complete(text)


@pytest.fixture
def scripted_llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def engine_factory():
    """Builds an Engine over in-memory pillars and a scripted adapter."""
    from chatrelay import keys, store
    from chatrelay.engine import Engine
    from chatrelay.registry import Registry

    def factory(llm=None, api_keys=None, **kwargs):
        llm = llm or ScriptedLLM()
        api_keys = {"scripted": "test-key"} if api_keys is None else api_keys
        return Engine(
            store.InMemory(),
            keys.InMemory(api_keys),
            registry=Registry({"scripted": llm}),
            **kwargs,
        )

    return factory


# ===== CONFIGURATION =====


def pytest_configure(config):
    """Pytest configuration."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
