"""ffmpeg-backed conversion engine for concatenation, transcoding and speech prep."""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional

import ffmpeg
from pydub import AudioSegment

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


@dataclass(frozen=True)
class TranscodeProfile:
    """Target audio format for the transcode stage."""

    channels: int = 2
    sample_rate: int = 44100
    bitrate: str = "192k"
    codec: str = "libmp3lame"
    format: str = "mp3"
    strip_metadata: bool = False

    @property
    def extension(self) -> str:
        return self.format

    @property
    def content_type(self) -> str:
        return AUDIO_CONTENT_TYPES.get(self.format, "application/octet-stream")

    @classmethod
    def from_settings(cls, settings) -> "TranscodeProfile":
        return cls(
            channels=settings.channels,
            sample_rate=settings.sample_rate,
            bitrate=settings.bitrate,
            codec=settings.codec,
            format=settings.format,
            strip_metadata=settings.strip_metadata,
        )


AUDIO_CONTENT_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "opus": "audio/ogg",
    "flac": "audio/flac",
    "m4a": "audio/mp4",
    "ipod": "audio/mp4",
    "adts": "audio/aac",
}


class FFmpegEngine:
    """Runs ffmpeg through ffmpeg-python. All methods block; call them from a worker thread."""

    def __init__(self, cmd: str = "ffmpeg"):
        self._cmd = cmd

    def build_concat(self, filelist: Path, output: Path):
        """Concat demuxer over an ordered file list, stream copy only."""
        stream = ffmpeg.input(str(filelist), f="concat", safe=0)
        return ffmpeg.output(stream, str(output), c="copy").global_args("-loglevel", "error")

    def build_transcode(self, source: Path, output: Path, profile: TranscodeProfile):
        options = {
            "format": profile.format,
            "acodec": profile.codec,
            "ac": profile.channels,
            "ar": profile.sample_rate,
            "audio_bitrate": profile.bitrate,
        }
        if profile.strip_metadata:
            options["map_metadata"] = -1
            if profile.format == "mp3":
                # no ID3 tag or Xing/LAME header, some decoders choke on them
                options["id3v2_version"] = 0
                options["write_xing"] = 0
        stream = ffmpeg.input(str(source))
        return (
            ffmpeg.output(stream.audio, str(output), vn=None, **options)
            .global_args("-loglevel", "error", "-progress", "pipe:1", "-nostats")
        )

    def concat(self, filelist: Path, output: Path) -> None:
        logger.info(f"Starting segment merge into {output.name}")
        ffmpeg.run(
            self.build_concat(filelist, output),
            cmd=self._cmd,
            capture_stdout=True,
            capture_stderr=True,
            overwrite_output=True,
        )

    def transcode(self, source: Path, output: Path, profile: TranscodeProfile,
                  on_progress: Optional[ProgressCallback] = None) -> None:
        logger.info(f"Starting audio conversion: {source.name} -> {output.name} "
                    f"({profile.codec}, {profile.channels}ch, {profile.sample_rate}Hz, {profile.bitrate})")
        duration = self.probe_duration(source) if on_progress else None

        process = ffmpeg.run_async(
            self.build_transcode(source, output, profile),
            cmd=self._cmd,
            pipe_stdout=True,
            pipe_stderr=True,
            overwrite_output=True,
        )
        # stderr is drained on its own thread so a chatty ffmpeg never blocks on a full pipe
        stderr_chunks: List[bytes] = []
        drain = threading.Thread(target=_drain, args=(process.stderr, stderr_chunks),
                                 name="ffmpeg-stderr", daemon=True)
        drain.start()
        try:
            for raw_line in process.stdout:
                if on_progress and duration:
                    percent = _progress_percent(raw_line.decode("utf-8", "replace"), duration)
                    if percent is not None:
                        on_progress(percent)
            returncode = process.wait()
        finally:
            if process.poll() is None:
                logger.warning(f"Stopping ffmpeg conversion of {source.name}")
                process.kill()
                process.wait()
            drain.join()
            process.stdout.close()
            process.stderr.close()

        if returncode != 0:
            raise ffmpeg.Error(self._cmd, None, b"".join(stderr_chunks))
        if on_progress:
            on_progress(100.0)

    def probe_duration(self, path: Path) -> Optional[float]:
        try:
            info = ffmpeg.probe(str(path))
            return float(info["format"]["duration"])
        except (ffmpeg.Error, OSError, KeyError, ValueError) as exc:
            logger.warning(f"Could not probe duration of {path.name}: {exc}")
            return None

    def to_speech_wav(self, source: Path, output: Path, sample_rate: int = 16000) -> Path:
        """Re-encode to mono 16-bit PCM WAV, the format speech providers take best."""
        audio = AudioSegment.from_file(str(source))
        audio = audio.set_channels(1).set_frame_rate(sample_rate).set_sample_width(2)
        audio.export(str(output), format="wav")
        return output


def _progress_percent(line: str, duration: float) -> Optional[float]:
    """Read an ``out_time_us``/``out_time_ms`` line of ``-progress`` output as a percentage."""
    key, _, value = line.strip().partition("=")
    # both keys carry microseconds in current ffmpeg builds
    if key not in ("out_time_us", "out_time_ms"):
        return None
    try:
        seconds = int(value) / 1_000_000
    except ValueError:
        return None
    return max(0.0, min(100.0, seconds / duration * 100))


def describe_ffmpeg_error(exc: Exception) -> str:
    stderr = getattr(exc, "stderr", None)
    if stderr:
        text = stderr.decode("utf-8", errors="replace").strip()
        if text:
            return text.splitlines()[-1]
    return str(exc)


def _drain(stream: BinaryIO, chunks: List[bytes]) -> None:
    for chunk in iter(lambda: stream.read(65536), b""):
        chunks.append(chunk)
