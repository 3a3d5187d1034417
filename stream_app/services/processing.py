"""Entry point used by the web layer: validate a reference, look it up, run the pipeline."""

import asyncio
import logging
import re
import threading
from datetime import timedelta
from typing import List, Optional

import httpx

from models.job import Job
from stream_app.clients.deepgram import DeepgramSpeechClient
from stream_app.clients.lookup import RecordingLookupClient
from stream_app.clients.media_engine import FFmpegEngine, TranscodeProfile
from stream_app.clients.segments import RetryPolicy
from stream_app.services.assembly import Assembler
from stream_app.services.pipeline import MediaPipeline
from stream_app.services.transcoding import Transcoder
from stream_app.services.transcription import Transcriber
from stream_app.services.workspace import JobStore, WorkspaceSweeper
from utils.cancellation import CancellationToken
from utils.config import AppConfig
from utils.exceptions import InputValidationError

logger = logging.getLogger(__name__)

SESSION_URL_PATTERN = re.compile(r"class/(\d+)/session")
REFERENCE_PATTERN = re.compile(r"^\d+$")


def parse_reference(video_input: Optional[str], reference: Optional[str] = None) -> str:
    """Work out the recording reference from user input.

    Accepts an explicit numeric reference, a class session URL containing
    ``class/<id>/session``, or a bare numeric id.

    Raises:
        InputValidationError: nothing usable was supplied
    """
    if reference and reference.strip():
        reference = reference.strip()
        if not REFERENCE_PATTERN.match(reference):
            raise InputValidationError(f"Invalid recording reference: {reference}")
        return reference

    if not video_input or not video_input.strip():
        raise InputValidationError("Please provide a session URL or recording ID")

    video_input = video_input.strip()
    match = SESSION_URL_PATTERN.search(video_input)
    if match:
        return match.group(1)
    if REFERENCE_PATTERN.match(video_input):
        return video_input

    raise InputValidationError("Could not extract valid recording ID from input")


def validate_manifest_urls(urls) -> List[str]:
    if not isinstance(urls, list) or not urls:
        raise InputValidationError("manifest_urls must be a non-empty list")
    cleaned = []
    for url in urls:
        if not isinstance(url, str) or not url.strip().lower().startswith(("http://", "https://")):
            raise InputValidationError(f"Invalid manifest URL: {url!r}")
        cleaned.append(url.strip())
    return cleaned


class ProcessingService:
    """Synchronous facade over the async pipeline, one event loop per job."""

    def __init__(self, pipeline: MediaPipeline, lookup: Optional[RecordingLookupClient] = None,
                 http_client_factory=None, sweeper: Optional[WorkspaceSweeper] = None):
        self.pipeline = pipeline
        self.lookup = lookup
        self.sweeper = sweeper
        self._client_factory = http_client_factory or httpx.AsyncClient
        self._active: set = set()
        self._active_lock = threading.Lock()

    @property
    def store(self) -> JobStore:
        return self.pipeline.store

    def submit(self, video_input: Optional[str] = None, reference: Optional[str] = None,
               manifest_urls: Optional[List[str]] = None, transcribe: bool = False) -> Job:
        """Validate the request and run the job to completion.

        Returns:
            The READY job

        Raises:
            InputValidationError: bad input; no job is created
            ProcessingError: a pipeline stage failed
        """
        if manifest_urls is not None:
            urls = validate_manifest_urls(manifest_urls)
            reference = reference or (video_input or "").strip() or "direct"
        else:
            reference = parse_reference(video_input, reference)
            urls = None

        token = CancellationToken()
        with self._active_lock:
            self._active.add(token)
        try:
            return asyncio.run(self._run(reference, urls, transcribe, token))
        finally:
            with self._active_lock:
                self._active.discard(token)

    async def _run(self, reference: str, urls: Optional[List[str]], transcribe: bool,
                   token: CancellationToken) -> Job:
        if urls is None:
            if self.lookup is None:
                raise InputValidationError("Reference lookup is not available; pass manifest_urls")
            async with self._client_factory() as client:
                urls = await self.lookup.manifest_urls(client, reference)

        logger.info(f"Processing recording {reference} ({len(urls)} manifests)")
        return await self.pipeline.run(urls, reference, transcribe=transcribe, cancel_token=token)

    def cancel_all(self, reason: str = "cancelled on shutdown") -> int:
        """Abandon every job currently running."""
        with self._active_lock:
            tokens = list(self._active)
        for token in tokens:
            token.cancel(reason)
        return len(tokens)

    def shutdown(self) -> None:
        self.cancel_all()
        if self.sweeper is not None:
            self.sweeper.stop(timeout=5)


def build_processing_service(config: AppConfig) -> ProcessingService:
    """Wire the pipeline from configuration."""
    def client_factory() -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(config.downloads.timeout_seconds))

    store = JobStore(
        root=config.workspace.root,
        ttl=timedelta(minutes=config.workspace.ttl_minutes),
    )
    engine = FFmpegEngine()

    transcriber = None
    if config.deepgram.api_key:
        transcriber = Transcriber(
            provider=DeepgramSpeechClient(config.deepgram),
            engine=engine,
            language=config.deepgram.language,
            model=config.deepgram.model,
            smart_format=config.deepgram.smart_format,
        )
    else:
        logger.warning("DEEPGRAM_API_KEY not set, transcription disabled")

    pipeline = MediaPipeline(
        store=store,
        assembler=Assembler(engine),
        transcoder=Transcoder(engine, TranscodeProfile.from_settings(config.audio)),
        http_client_factory=client_factory,
        max_concurrent=config.downloads.max_concurrent,
        retry=RetryPolicy(
            attempts=config.downloads.retry_attempts,
            backoff_seconds=config.downloads.retry_backoff_seconds,
        ),
        transcriber=transcriber,
    )

    lookup = RecordingLookupClient(config.lookup) if config.lookup.url else None
    sweeper = WorkspaceSweeper(store, timedelta(minutes=config.workspace.sweep_interval_minutes))
    return ProcessingService(pipeline, lookup=lookup, http_client_factory=client_factory,
                             sweeper=sweeper)
