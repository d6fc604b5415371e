from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Callable, List, Union

import pytest

# voiceshop.app builds a module-level app on import; keep its data out of the package.
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="voiceshop-tests-"))

from fastapi.testclient import TestClient  # noqa: E402

from voiceshop.app import create_app  # noqa: E402
from voiceshop.catalog import ProductCatalog  # noqa: E402
from voiceshop.config import BASE_DIR, Settings  # noqa: E402
from voiceshop.document_store import JsonDocumentStore  # noqa: E402
from voiceshop.models import IntentRecord  # noqa: E402
from voiceshop.session_store import SessionState  # noqa: E402

SEED_PATH = BASE_DIR / "data" / "products.json"
PROMPTS_DIR = BASE_DIR / "prompts"

Reply = Union[str, dict, Exception, Callable[[str, str], str]]


class FakeLLM:
    """Scripted stand-in for GeminiClient; replies are consumed in order."""

    def __init__(self, replies: List[Reply] = None) -> None:
        self.replies: List[Reply] = list(replies or [])
        self.calls: List[tuple] = []

    def script(self, *replies: Reply) -> "FakeLLM":
        self.replies.extend(replies)
        return self

    def complete(self, prompt: str, message: str) -> str:
        self.calls.append((prompt, message))
        if not self.replies:
            return ""
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(prompt, message)
        if isinstance(reply, dict):
            return json.dumps(reply)
        return reply


def intent(name: str, action: str = "none", response: str = "", missing=None, **entities) -> dict:
    """Build a model reply the way the prompt asks for it."""
    payload = {
        "intent": name,
        "entities": entities,
        "action": {"type": action},
        "response": response,
        "followUpQuestions": [],
    }
    if missing is not None:
        payload["action"]["missing"] = missing
    return payload


def record(name: str, action: str = "none", response: str = "", missing=None, **entities) -> IntentRecord:
    return IntentRecord.model_validate(intent(name, action, response, missing, **entities))


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        gemini_api_key="test-key",
        gemini_model="gemini-2.5-flash",
        data_dir=tmp_path,
        products_seed_path=SEED_PATH,
        prompts_dir=PROMPTS_DIR,
        llm_timeout_sec=2.0,
        session_ttl_sec=1800,
        max_sessions=100,
        history_window=10,
        prompt_history_turns=4,
        cors_origins=("http://localhost:5000",),
    )


@pytest.fixture
def store(tmp_path: Path) -> JsonDocumentStore:
    return JsonDocumentStore(tmp_path / "documents.json")


@pytest.fixture
def catalog(store: JsonDocumentStore) -> ProductCatalog:
    catalog = ProductCatalog(store, SEED_PATH)
    catalog.load()
    return catalog


@pytest.fixture
def session() -> SessionState:
    return SessionState(session_id="session:u1", user_id="u1")


@pytest.fixture
def anonymous_session() -> SessionState:
    return SessionState(session_id="abc123")


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def client(settings: Settings, store: JsonDocumentStore, fake_llm: FakeLLM):
    app = create_app(settings, llm=fake_llm, store=store)
    with TestClient(app) as test_client:
        yield test_client
