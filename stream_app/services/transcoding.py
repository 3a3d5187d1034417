"""Audio transcoding of the assembled container."""
import asyncio
import logging
from pathlib import Path
from typing import Optional

import ffmpeg

from stream_app.clients.media_engine import ProgressCallback, TranscodeProfile, describe_ffmpeg_error
from utils.exceptions import TranscodeError

logger = logging.getLogger(__name__)

AUDIO_STEM = "audio"


class Transcoder:
    """Re-encodes a container into the configured audio profile."""

    def __init__(self, engine, profile: TranscodeProfile):
        self._engine = engine
        self.profile = profile

    async def transcode(self, source: Path, workspace: Path,
                        on_progress: Optional[ProgressCallback] = None) -> Path:
        """Convert ``source`` into ``audio.<format>`` inside ``workspace``.

        The output is checked independently of what ffmpeg reports: a
        missing or zero-byte file is a failure even after a clean exit.
        """
        output = workspace / f"{AUDIO_STEM}.{self.profile.extension}"

        try:
            await asyncio.to_thread(self._engine.transcode, source, output, self.profile, on_progress)
        except ffmpeg.Error as exc:
            raise TranscodeError(f"Audio conversion failed: {describe_ffmpeg_error(exc)}") from exc
        except OSError as exc:
            raise TranscodeError(f"Audio conversion failed: {exc}") from exc

        if not output.exists():
            raise TranscodeError(f"Failed to verify audio file: {output.name} was not created")
        size = output.stat().st_size
        if size == 0:
            raise TranscodeError(f"Failed to verify audio file: {output.name} is empty")

        logger.info(f"Audio conversion completed successfully (size: {size} bytes)")
        return output
