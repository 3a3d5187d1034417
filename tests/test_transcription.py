"""Test suite for transcription services."""
import asyncio
from unittest.mock import MagicMock, Mock

import pytest

from stream_app.clients.deepgram import DeepgramSpeechClient, extract_transcript
from stream_app.services.transcription import SPEECH_INPUT_NAME, Transcriber
from utils.config import DeepgramSettings
from utils.exceptions import ConfigurationError, TranscriptionError


def deepgram_response(transcript="plain text", paragraphs=None):
    alternative = {"transcript": transcript, "confidence": 0.97}
    if paragraphs is not None:
        alternative["paragraphs"] = {"transcript": paragraphs}
    return {"results": {"channels": [{"alternatives": [alternative]}]}}


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / "audio.mp3"
    path.write_bytes(b"ID3-encoded-audio")
    return path


class TestTranscriber:

    def test_returns_transcript_and_removes_intermediate(self, engine, provider, audio_file, tmp_path):
        transcriber = Transcriber(provider, engine, language="de", model="nova-2")

        text = asyncio.run(transcriber.transcribe(audio_file, tmp_path))

        assert text == "hello world"
        assert provider.calls == [{
            "size": len(b"ID3-encoded-audio"),
            "mimetype": "audio/wav",
            "language": "de",
            "model": "nova-2",
            "smart_format": True,
        }]
        assert engine.speech_calls == [(audio_file, 16000)]
        assert not (tmp_path / SPEECH_INPUT_NAME).exists()

    def test_language_override(self, engine, provider, audio_file, tmp_path):
        asyncio.run(Transcriber(provider, engine).transcribe(audio_file, tmp_path, language="es"))
        assert provider.calls[0]["language"] == "es"

    def test_provider_error_removes_intermediate(self, engine, provider, audio_file, tmp_path):
        provider.error = TranscriptionError("Deepgram error 400: bad audio")

        with pytest.raises(TranscriptionError, match="bad audio"):
            asyncio.run(Transcriber(provider, engine).transcribe(audio_file, tmp_path))
        assert not (tmp_path / SPEECH_INPUT_NAME).exists()

    def test_unexpected_provider_failure_is_wrapped(self, engine, provider, audio_file, tmp_path):
        provider.error = ConnectionError("reset by peer")

        with pytest.raises(TranscriptionError, match="Transcription failed: reset by peer"):
            asyncio.run(Transcriber(provider, engine).transcribe(audio_file, tmp_path))

    def test_empty_audio(self, engine, provider, tmp_path):
        empty = tmp_path / "audio.mp3"
        empty.write_bytes(b"")

        with pytest.raises(TranscriptionError, match="Audio file is empty"):
            asyncio.run(Transcriber(provider, engine).transcribe(empty, tmp_path))
        assert provider.calls == []

    def test_reformat_failure(self, provider, audio_file, tmp_path):
        engine = Mock()
        engine.to_speech_wav.side_effect = RuntimeError("decoder missing")

        with pytest.raises(TranscriptionError, match="Could not prepare audio"):
            asyncio.run(Transcriber(provider, engine).transcribe(audio_file, tmp_path))


class TestExtractTranscript:

    def test_prefers_paragraph_transcript(self):
        response = deepgram_response("plain", paragraphs="\nFirst paragraph.\n\nSecond.\n")
        assert extract_transcript(response) == "First paragraph.\n\nSecond."

    def test_falls_back_to_plain_transcript(self):
        assert extract_transcript(deepgram_response("  just words  ")) == "just words"

    def test_error_object_body(self):
        with pytest.raises(TranscriptionError, match="Deepgram error INVALID_AUTH"):
            extract_transcript({"err_code": "INVALID_AUTH", "err_msg": "Invalid credentials."})

    def test_missing_results(self):
        with pytest.raises(TranscriptionError, match="missing the transcript"):
            extract_transcript({"metadata": {}})


class TestDeepgramSpeechClient:

    def test_requires_api_key(self):
        with pytest.raises(ConfigurationError, match="API key"):
            DeepgramSpeechClient(DeepgramSettings(api_key=None))

    def test_transcribe_sends_buffer(self):
        sdk = MagicMock()
        response = Mock()
        response.to_dict.return_value = deepgram_response("ok", paragraphs="Okay.")
        sdk.listen.rest.v.return_value.transcribe_file.return_value = response

        client = DeepgramSpeechClient(DeepgramSettings(api_key="key", model="nova-2"), client=sdk)
        text = client.transcribe(b"RIFF", "audio/wav", language="fr")

        assert text == "Okay."
        payload, options = sdk.listen.rest.v.return_value.transcribe_file.call_args[0]
        assert payload == {"buffer": b"RIFF", "mimetype": "audio/wav"}
        assert options.language == "fr"
        assert options.model == "nova-2"

    def test_transport_failure_is_transcription_error(self):
        sdk = MagicMock()
        sdk.listen.rest.v.return_value.transcribe_file.side_effect = TimeoutError("read timeout")

        client = DeepgramSpeechClient(DeepgramSettings(api_key="key"), client=sdk)
        with pytest.raises(TranscriptionError, match="Deepgram request failed"):
            client.transcribe(b"RIFF", "audio/wav")
