from zaprelay.services.llm.base import LLMProvider, LLMResponse, ProviderError
from zaprelay.services.llm.openai_provider import SPEECH_VOICES, OpenAIProvider, resolve_voice

__all__ = ["LLMProvider", "LLMResponse", "OpenAIProvider", "ProviderError", "SPEECH_VOICES", "resolve_voice"]
