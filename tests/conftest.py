import dataclasses
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

import main
import utils.openai_agent as oa
from config import Settings
from utils.limiter import limiter


@pytest.fixture(autouse=True)
def no_rate_limit():
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest.fixture
def settings(tmp_path):
    return Settings(local_store_path=str(tmp_path / "storage.json"), openai_api_key="test-key")


@pytest.fixture
def fake_model(monkeypatch):
    """Replaces the agent call; queue raw model replies (or exceptions) in `replies`."""
    state = SimpleNamespace(replies=[], calls=[])

    async def fake_run(agent, prompt):
        state.calls.append((agent.name, prompt))
        reply = state.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    monkeypatch.setattr(oa, "_run_agent", fake_run)
    return state


@pytest.fixture
def make_client(settings):
    clients = []

    def _make(**overrides):
        app = main.create_app(dataclasses.replace(settings, **overrides))
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    return make_client()
