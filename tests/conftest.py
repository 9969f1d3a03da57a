from unittest.mock import Mock

import pytest

from zaprelay.services.evolution_service import EvolutionClient
from zaprelay.services.llm.base import LLMProvider, LLMResponse
from zaprelay.services.reply_service import ReplyOrchestrator
from zaprelay.services.session_store import SessionStore


class FakeRedis:
    """Just enough of redis.Redis for the session store."""

    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.close_calls = 0

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = value
        self.ttls[key] = ex
        return True

    def ping(self):
        return True

    def close(self):
        self.close_calls += 1


@pytest.fixture
def mock_env(monkeypatch):
    """Set test environment variables."""
    monkeypatch.setenv("EVOLUTION_API_URL", "http://evolution.test/")
    monkeypatch.setenv("EVOLUTION_API_KEY", "evo-key")
    monkeypatch.setenv("EVOLUTION_INSTANCE", "relay")
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis):
    return SessionStore(fake_redis)


@pytest.fixture
def provider():
    provider = Mock(spec=LLMProvider)
    provider.generate.return_value = LLMResponse(content="Olá! Como posso ajudar?", model="gpt-4o-mini")
    provider.transcribe_audio.return_value = "qual o horário de vocês?"
    provider.synthesize_speech.return_value = b"ID3-fake-mp3"
    return provider


@pytest.fixture
def gateway():
    gateway = Mock(spec=EvolutionClient)
    gateway.send_audio.return_value = "whatsapp_audio"
    gateway.get_connection_state.return_value = "open"
    return gateway


@pytest.fixture
def orchestrator(provider, gateway, store):
    return ReplyOrchestrator(provider, gateway, store, system_prompt="Seja breve.", voice="nova")
