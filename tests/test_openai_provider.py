from unittest.mock import MagicMock, Mock, patch

import pytest

from zaprelay.services.llm import OpenAIProvider, ProviderError, resolve_voice


def _client(mock_client_class, response):
    mock_client = MagicMock()
    mock_client_class.return_value.__enter__.return_value = mock_client
    mock_client.post.return_value = response
    return mock_client


class TestResolveVoice:
    @pytest.mark.parametrize("voice", ["alloy", "echo", "fable", "onyx", "nova", "shimmer"])
    def test_known_voices(self, voice):
        assert resolve_voice(voice) == voice

    def test_case_insensitive(self):
        assert resolve_voice(" Nova ") == "nova"

    @pytest.mark.parametrize("voice", ["", None, "robot", "ash"])
    def test_unknown_falls_back_to_alloy(self, voice):
        assert resolve_voice(voice) == "alloy"


class TestGenerate:
    @patch("zaprelay.services.llm.openai_provider.httpx.Client")
    def test_returns_first_choice(self, mock_client_class):
        response = Mock(status_code=200)
        response.json.return_value = {
            "model": "gpt-4o-mini",
            "choices": [{"message": {"content": "Olá!"}}, {"message": {"content": "Oi!"}}],
            "usage": {"total_tokens": 12},
        }
        mock_client = _client(mock_client_class, response)
        provider = OpenAIProvider(api_key="sk-test", base_url="https://llm.test/v1/")

        result = provider.generate([{"role": "user", "content": "oi"}])

        assert result.content == "Olá!"
        assert result.usage == {"total_tokens": 12}
        args, kwargs = mock_client.post.call_args
        assert args[0] == "https://llm.test/v1/chat/completions"
        assert kwargs["json"]["model"] == "gpt-4o-mini"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"

    @patch("zaprelay.services.llm.openai_provider.httpx.Client")
    def test_no_choices_is_empty_content(self, mock_client_class):
        response = Mock(status_code=200)
        response.json.return_value = {"choices": []}
        _client(mock_client_class, response)

        result = OpenAIProvider(api_key="sk-test").generate([{"role": "user", "content": "oi"}])

        assert result.content == ""

    @patch("zaprelay.services.llm.openai_provider.httpx.Client")
    def test_error_status_raises(self, mock_client_class):
        _client(mock_client_class, Mock(status_code=429, text="rate limited"))

        with pytest.raises(ProviderError) as exc_info:
            OpenAIProvider(api_key="sk-test").generate([{"role": "user", "content": "oi"}])

        assert exc_info.value.status_code == 429


class TestTranscribeAudio:
    @patch("zaprelay.services.llm.openai_provider.httpx.Client")
    def test_returns_trimmed_text(self, mock_client_class):
        mock_client = _client(mock_client_class, Mock(status_code=200, text=" bom dia \n"))

        text = OpenAIProvider(api_key="sk-test").transcribe_audio(audio_bytes=b"ogg", filename="voice.ogg")

        assert text == "bom dia"
        kwargs = mock_client.post.call_args.kwargs
        assert kwargs["data"]["model"] == "whisper-1"
        assert kwargs["files"]["file"][0] == "voice.ogg"

    def test_rejects_empty_audio(self):
        with pytest.raises(ValueError):
            OpenAIProvider(api_key="sk-test").transcribe_audio(audio_bytes=b"", filename="voice.ogg")

    @patch("zaprelay.services.llm.openai_provider.httpx.Client")
    def test_error_status_raises(self, mock_client_class):
        _client(mock_client_class, Mock(status_code=400, text="bad audio"))

        with pytest.raises(ProviderError):
            OpenAIProvider(api_key="sk-test").transcribe_audio(audio_bytes=b"ogg", filename="voice.ogg")


class TestSynthesizeSpeech:
    @patch("zaprelay.services.llm.openai_provider.httpx.Client")
    def test_returns_audio_bytes(self, mock_client_class):
        mock_client = _client(mock_client_class, Mock(status_code=200, content=b"ID3audio", text=""))
        provider = OpenAIProvider(api_key="sk-test", default_voice="echo")

        audio = provider.synthesize_speech("Olá!")

        assert audio == b"ID3audio"
        args, kwargs = mock_client.post.call_args
        assert args[0] == "https://api.openai.com/v1/audio/speech"
        assert kwargs["json"]["voice"] == "echo"
        assert kwargs["json"]["input"] == "Olá!"
        assert kwargs["json"]["response_format"] == "mp3"

    @patch("zaprelay.services.llm.openai_provider.httpx.Client")
    def test_unknown_voice_uses_default(self, mock_client_class):
        mock_client = _client(mock_client_class, Mock(status_code=200, content=b"ID3audio", text=""))

        OpenAIProvider(api_key="sk-test").synthesize_speech("Olá!", voice="robot")

        assert mock_client.post.call_args.kwargs["json"]["voice"] == "alloy"

    @patch("zaprelay.services.llm.openai_provider.httpx.Client")
    def test_error_status_raises(self, mock_client_class):
        _client(mock_client_class, Mock(status_code=500, text="server error", content=b""))

        with pytest.raises(ProviderError):
            OpenAIProvider(api_key="sk-test").synthesize_speech("Olá!")

    def test_rejects_blank_text(self):
        with pytest.raises(ValueError):
            OpenAIProvider(api_key="sk-test").synthesize_speech("  ")
