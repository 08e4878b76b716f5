import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["OPENAI_API_KEY"] = "sk-test"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["VAPI_SERVER_SECRET"] = "vapi-test-secret"

import httpx
import pytest
from fastapi.testclient import TestClient

from app.core.security import create_user_token
from app.database import db_manager, user_repository
from app.schemas.user import UserCreate
from app.services.openai_service import openai_service


class FakeOpenAI:
    """Records prompts and returns canned responses instead of calling OpenAI."""

    def __init__(self):
        self.text = "Generated text"
        self.json = {}
        self.stream_chunks = ["Hello", " world"]
        self.chat_turns = []
        self.prompts = []

    async def generate_text(self, prompt, system=None, model=None, temperature=0.7):
        self.prompts.append(prompt)
        return self.text

    async def generate_json(self, prompt, system=None, model=None):
        self.prompts.append(prompt)
        return self.json

    async def stream_text(self, prompt, system=None, model=None):
        self.prompts.append(prompt)
        for chunk in self.stream_chunks:
            yield chunk

    async def stream_chat(self, messages, tools=None, model=None):
        self.prompts.append(messages)
        turn = self.chat_turns.pop(0) if self.chat_turns else [{"type": "text", "content": "Done"}]
        for chunk in turn:
            yield chunk

    async def create_embeddings(self, texts):
        return [embed(t) for t in texts]

    async def create_embedding(self, text):
        return embed(text)

    async def generate_image(self, prompt):
        return "aW1hZ2U="


def embed(text):
    """Deterministic bag-of-letters vector."""
    vector = [0.0] * 26
    for char in text.lower():
        if "a" <= char <= "z":
            vector[ord(char) - ord("a")] += 1.0
    return vector


@pytest.fixture(autouse=True)
def db():
    db_manager.reset()
    yield db_manager


@pytest.fixture
def fake_openai(monkeypatch):
    fake = FakeOpenAI()
    for name in (
        "generate_text",
        "generate_json",
        "stream_text",
        "stream_chat",
        "create_embeddings",
        "create_embedding",
        "generate_image",
    ):
        monkeypatch.setattr(openai_service, name, getattr(fake, name))
    return fake


@pytest.fixture
def user():
    return user_repository.create_user(UserCreate(email="alice@acme.io", first_name="Alice", last_name="Smith"))


@pytest.fixture
def other_user():
    return user_repository.create_user(UserCreate(email="bob@acme.io", first_name="Bob"))


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {create_user_token(user)}"}


@pytest.fixture
def other_headers(other_user):
    return {"Authorization": f"Bearer {create_user_token(other_user)}"}


@pytest.fixture
def client():
    from main import app

    return TestClient(app)


@pytest.fixture
def mock_http(monkeypatch):
    """
    Route every httpx.AsyncClient created by the code under test through
    ``handler``. Returns the list of requests that were sent.
    """
    sent = []
    real_client = httpx.AsyncClient

    def install(handler):
        def recording(request):
            sent.append(request)
            return handler(request)

        transport = httpx.MockTransport(recording)

        def client_factory(*args, **kwargs):
            kwargs["transport"] = transport
            return real_client(*args, **kwargs)

        monkeypatch.setattr(httpx, "AsyncClient", client_factory)
        return sent

    return install
