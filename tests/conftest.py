"""Pytest configuration and fixtures."""
import asyncio
import os
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

from stream_app.clients.media_engine import TranscodeProfile
from stream_app.services.assembly import Assembler
from stream_app.services.pipeline import MediaPipeline
from stream_app.services.transcoding import Transcoder
from stream_app.services.transcription import Transcriber
from stream_app.services.workspace import JobStore


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Set up test environment variables for all tests."""
    test_env_vars = {
        "DEEPGRAM_API_KEY": "test-deepgram-key",
        "FLASK_ENV": "testing",
        "LOG_LEVEL": "DEBUG",
    }

    for key, value in test_env_vars.items():
        os.environ[key] = value

    yield

    # Clean up environment variables after tests
    for key in test_env_vars:
        os.environ.pop(key, None)


class FakeClock:
    """Clock whose time only moves when a test says so."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeEngine:
    """Media engine that mimics ffmpeg with plain file operations."""

    def __init__(self):
        self.concat_calls = []
        self.transcode_calls = []
        self.speech_calls = []

    def concat(self, filelist: Path, output: Path) -> None:
        self.concat_calls.append(filelist.read_text(encoding="utf-8"))
        with open(output, "wb") as merged:
            for line in filelist.read_text(encoding="utf-8").splitlines():
                path = line[len("file '"):-1].replace("'\\''", "'")
                merged.write(Path(path).read_bytes())

    def transcode(self, source: Path, output: Path, profile, on_progress=None) -> None:
        self.transcode_calls.append(profile)
        output.write_bytes(b"AUDIO:" + source.read_bytes())
        if on_progress:
            on_progress(50.0)
            on_progress(100.0)

    def to_speech_wav(self, source: Path, output: Path, sample_rate: int = 16000) -> Path:
        self.speech_calls.append((source, sample_rate))
        shutil.copyfile(source, output)
        return output


class FakeProvider:
    """Speech provider returning a canned transcript."""

    def __init__(self, transcript="hello world", error=None):
        self.transcript = transcript
        self.error = error
        self.calls = []

    def transcribe(self, audio, mimetype, *, language=None, model=None, smart_format=None):
        self.calls.append({
            "size": len(audio),
            "mimetype": mimetype,
            "language": language,
            "model": model,
            "smart_format": smart_format,
        })
        if self.error is not None:
            raise self.error
        return self.transcript


class FakeCdn:
    """In-memory origin serving playlists and segments through httpx.MockTransport."""

    BASE = "https://cdn.example.com"

    def __init__(self):
        self.routes = {}
        self.delays = {}
        self.failures = {}
        self.requests = []
        self.in_flight = 0
        self.max_in_flight = 0

    def add(self, path, body, status=200, delay=0.0):
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.routes[path] = (status, body)
        self.delays[path] = delay
        return f"{self.BASE}{path}"

    def fail_times(self, path, times, status=503):
        self.failures[path] = [status] * times

    def add_media_playlist(self, path, segment_names, body_for=None):
        lines = ["#EXTM3U", "#EXT-X-TARGETDURATION:6"]
        directory = path.rsplit("/", 1)[0]
        for name in segment_names:
            lines.append("#EXTINF:6.0,")
            lines.append(name)
            content = body_for(name) if body_for else f"<{name}>".encode()
            self.add(f"{directory}/{name}", content)
        lines.append("#EXT-X-ENDLIST")
        return self.add(path, "\n".join(lines) + "\n")

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append(path)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(path, 0.0))
            pending = self.failures.get(path)
            if pending:
                return httpx.Response(pending.pop(0), request=request)
            if path not in self.routes:
                return httpx.Response(404, request=request)
            status, body = self.routes[path]
            return httpx.Response(status, content=body, request=request)
        finally:
            self.in_flight -= 1

    def client_factory(self):
        return lambda: httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def cdn():
    return FakeCdn()


@pytest.fixture
def store(tmp_path, clock):
    return JobStore(root=tmp_path / "jobs", ttl=timedelta(minutes=30), clock=clock)


@pytest.fixture
def speech_profile():
    return TranscodeProfile(channels=1, sample_rate=16000, bitrate="64k")


@pytest.fixture
def pipeline(store, engine, provider, cdn, speech_profile):
    return MediaPipeline(
        store=store,
        assembler=Assembler(engine),
        transcoder=Transcoder(engine, speech_profile),
        http_client_factory=cdn.client_factory(),
        max_concurrent=3,
        transcriber=Transcriber(provider, engine),
    )
