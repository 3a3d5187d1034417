"""Transcription of encoded audio through the speech provider."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from utils.exceptions import TranscriptionError

logger = logging.getLogger(__name__)

SPEECH_INPUT_NAME = "transcript_input.wav"
SPEECH_SAMPLE_RATE = 16000
TRANSCRIPT_NAME = "transcript.txt"


class Transcriber:
    """Prepares audio for the speech provider and returns its transcript."""

    def __init__(self, provider, engine, language: str = "en", model: str = "nova-2",
                 smart_format: bool = True):
        """Initialize the transcriber.

        Args:
            provider: Object with ``transcribe(audio, mimetype, *, language, model, smart_format)``
            engine: Media engine providing ``to_speech_wav``
        """
        self._provider = provider
        self._engine = engine
        self.language = language
        self.model = model
        self.smart_format = smart_format

    async def transcribe(self, audio_path: Path, workspace: Path,
                         language: Optional[str] = None) -> str:
        """Transcribe ``audio_path`` and return the formatted transcript.

        The mono 16 kHz WAV made for the provider lives only for the
        duration of the request and is removed whatever the outcome.
        """
        if not audio_path.exists() or audio_path.stat().st_size == 0:
            raise TranscriptionError("Audio file is empty")

        speech_input = workspace / SPEECH_INPUT_NAME
        try:
            try:
                await asyncio.to_thread(
                    self._engine.to_speech_wav, audio_path, speech_input, SPEECH_SAMPLE_RATE
                )
                audio = await asyncio.to_thread(speech_input.read_bytes)
            except Exception as exc:
                logger.error(f"Audio reformat for transcription failed: {exc}")
                raise TranscriptionError(f"Could not prepare audio for transcription: {exc}") from exc

            if not audio:
                raise TranscriptionError("Reformatted audio is empty")

            logger.info(f"Requesting transcription ({len(audio)} bytes, language={language or self.language})")
            try:
                transcript = await asyncio.to_thread(
                    self._provider.transcribe,
                    audio,
                    "audio/wav",
                    language=language or self.language,
                    model=self.model,
                    smart_format=self.smart_format,
                )
            except TranscriptionError:
                raise
            except Exception as exc:
                logger.error(f"Speech provider failed: {exc}")
                raise TranscriptionError(f"Transcription failed: {exc}") from exc

            if transcript is None:
                raise TranscriptionError("Speech provider returned no transcript")
            return transcript
        finally:
            try:
                speech_input.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning(f"Failed to cleanup file {speech_input}: {exc}")
