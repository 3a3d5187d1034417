"""Deepgram API client implementing the speech provider contract."""
import json
import logging
from typing import Any, Dict, Optional

import httpx
from deepgram import (
    DeepgramApiError,
    DeepgramClient as DGClient,
    PrerecordedOptions,
)

from utils.config import DeepgramSettings
from utils.exceptions import ConfigurationError, TranscriptionError


logger = logging.getLogger(__name__)


class DeepgramSpeechClient:
    """Client for Deepgram pre-recorded transcription."""

    def __init__(self, settings: DeepgramSettings, client: Optional[Any] = None):
        if client is None and not settings.api_key:
            raise ConfigurationError("Deepgram API key not configured")

        self._settings = settings
        try:
            self._client = client if client is not None else DGClient(settings.api_key)
            logger.info("Deepgram client initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize Deepgram client: {e}")
            raise ConfigurationError(f"Deepgram client initialization failed: {str(e)}")

    def transcribe(self, audio: bytes, mimetype: str, *, language: Optional[str] = None,
                   model: Optional[str] = None, smart_format: Optional[bool] = None) -> str:
        """Transcribe an audio buffer and return the transcript text.

        Args:
            audio: Raw audio file bytes
            mimetype: MIME type of ``audio``
            language: Language code, defaults to the configured language
            model: Deepgram model, defaults to the configured model
            smart_format: Deepgram smart formatting flag

        Returns:
            Paragraph-formatted transcript when available, else the plain transcript

        Raises:
            TranscriptionError: provider error object, transport failure or a
                response without a transcript
        """
        options = PrerecordedOptions(
            model=model or self._settings.model,
            language=language or self._settings.language,
            smart_format=self._settings.smart_format if smart_format is None else smart_format,
            punctuate=True,
            paragraphs=True,
        )
        payload = {"buffer": audio, "mimetype": mimetype}
        timeout = httpx.Timeout(connect=60.0, read=1800.0, write=600.0, pool=60.0)

        logger.info(f"Starting Deepgram transcription: model={options.model}, "
                    f"language={options.language}, bytes={len(audio)}")
        try:
            response = self._client.listen.rest.v("1").transcribe_file(
                payload, options, timeout=timeout
            )
        except DeepgramApiError as exc:
            logger.error(f"Deepgram API returned an error: {exc}")
            raise TranscriptionError(f"Deepgram API error: {exc}") from exc
        except Exception as exc:
            logger.error(f"Deepgram request failed: {exc}")
            raise TranscriptionError(f"Deepgram request failed: {exc}") from exc

        if not response:
            raise TranscriptionError("Empty response from Deepgram API")

        transcript = extract_transcript(_as_dict(response))
        logger.info(f"Deepgram transcription completed: {len(transcript)} characters")
        return transcript


def _as_dict(response: Any) -> Dict[str, Any]:
    if isinstance(response, dict):
        return response
    if hasattr(response, 'to_dict'):
        return response.to_dict()
    if hasattr(response, 'to_json'):
        return json.loads(response.to_json())
    raise TranscriptionError(f"Invalid response format from Deepgram: {type(response).__name__}")


def extract_transcript(response: Dict[str, Any]) -> str:
    """Pull transcript text out of a Deepgram response payload."""
    # Deepgram reports request problems as a body, not only as an HTTP error
    if response.get('err_code') or response.get('err_msg'):
        raise TranscriptionError(
            f"Deepgram error {response.get('err_code', 'unknown')}: {response.get('err_msg', '')}".strip()
        )

    try:
        alternative = response['results']['channels'][0]['alternatives'][0]
    except (KeyError, IndexError, TypeError):
        raise TranscriptionError("Deepgram response is missing the transcript field")

    paragraphs = alternative.get('paragraphs') or {}
    formatted = paragraphs.get('transcript') if isinstance(paragraphs, dict) else None
    if formatted:
        return formatted.strip()

    transcript = alternative.get('transcript')
    if transcript is None:
        raise TranscriptionError("Deepgram response is missing the transcript field")
    return transcript.strip()
