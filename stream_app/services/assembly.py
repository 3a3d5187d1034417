"""Lossless concatenation of downloaded segments."""
import asyncio
import logging
from pathlib import Path
from typing import List

import ffmpeg

from stream_app.clients.media_engine import describe_ffmpeg_error
from utils.exceptions import AssemblyError

logger = logging.getLogger(__name__)

FILELIST_NAME = "filelist.txt"
MERGED_STEM = "merged"


def write_filelist(segment_paths: List[Path], filelist: Path) -> Path:
    """Write the ordered concat list. Single quotes are escaped the way the concat demuxer expects."""
    lines = []
    for path in segment_paths:
        escaped = str(Path(path).resolve()).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    filelist.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return filelist


class Assembler:
    """Joins segment files, in the order given, into one container using stream copy."""

    def __init__(self, engine):
        self._engine = engine

    async def assemble(self, segment_paths: List[Path], workspace: Path) -> Path:
        if not segment_paths:
            raise AssemblyError("No segments to assemble")

        extension = Path(segment_paths[0]).suffix or ".ts"
        filelist = workspace / FILELIST_NAME
        output = workspace / f"{MERGED_STEM}{extension}"

        write_filelist(segment_paths, filelist)
        logger.info(f"Merging {len(segment_paths)} segments into {output.name}")

        try:
            await asyncio.to_thread(self._engine.concat, filelist, output)
        except ffmpeg.Error as exc:
            raise AssemblyError(f"Segment merge failed: {describe_ffmpeg_error(exc)}") from exc
        except OSError as exc:
            raise AssemblyError(f"Segment merge failed: {exc}") from exc

        if not output.exists() or output.stat().st_size == 0:
            raise AssemblyError("Segment merge produced no output")

        logger.info(f"Segments merged successfully ({output.stat().st_size} bytes)")
        return output
