"""Tests for segment merging and audio conversion stages."""
import asyncio
from unittest.mock import Mock

import ffmpeg
import pytest

from stream_app.clients.media_engine import TranscodeProfile
from stream_app.services.assembly import Assembler, write_filelist
from stream_app.services.transcoding import Transcoder
from utils.exceptions import AssemblyError, TranscodeError


@pytest.fixture
def segment_files(tmp_path):
    paths = []
    for index in range(3):
        path = tmp_path / f"segment_0_{index}.ts"
        path.write_bytes(f"[{index}]".encode())
        paths.append(path)
    return paths


def test_filelist_preserves_order_and_escapes_quotes(tmp_path):
    odd = tmp_path / "it's.ts"
    plain = tmp_path / "b.ts"
    filelist = write_filelist([plain, odd], tmp_path / "filelist.txt")

    lines = filelist.read_text(encoding="utf-8").splitlines()
    assert lines[0] == f"file '{plain.resolve()}'"
    assert lines[1].endswith("it'\\''s.ts'")


class TestAssembler:

    def test_concatenates_in_given_order(self, engine, segment_files, tmp_path):
        merged = asyncio.run(Assembler(engine).assemble(list(reversed(segment_files)), tmp_path))

        assert merged.name == "merged.ts"
        assert merged.read_bytes() == b"[2][1][0]"
        assert (tmp_path / "filelist.txt").exists()

    def test_no_segments(self, engine, tmp_path):
        with pytest.raises(AssemblyError, match="No segments"):
            asyncio.run(Assembler(engine).assemble([], tmp_path))

    def test_ffmpeg_failure(self, segment_files, tmp_path):
        failing = Mock()
        failing.concat.side_effect = ffmpeg.Error("ffmpeg", b"", b"concat: Invalid data\n")

        with pytest.raises(AssemblyError, match="Segment merge failed: concat: Invalid data"):
            asyncio.run(Assembler(failing).assemble(segment_files, tmp_path))

    def test_empty_output(self, segment_files, tmp_path):
        silent = Mock()
        silent.concat.side_effect = lambda filelist, output: output.write_bytes(b"")

        with pytest.raises(AssemblyError, match="no output"):
            asyncio.run(Assembler(silent).assemble(segment_files, tmp_path))


class TestTranscoder:

    def test_writes_audio_file(self, engine, tmp_path):
        source = tmp_path / "merged.ts"
        source.write_bytes(b"container")
        profile = TranscodeProfile(channels=1, sample_rate=16000, bitrate="64k")
        progress = []

        audio = asyncio.run(Transcoder(engine, profile).transcode(source, tmp_path, progress.append))

        assert audio == tmp_path / "audio.mp3"
        assert audio.read_bytes() == b"AUDIO:container"
        assert engine.transcode_calls == [profile]
        assert progress[-1] == 100.0

    def test_zero_byte_output_is_failure(self, tmp_path):
        source = tmp_path / "merged.ts"
        source.write_bytes(b"container")
        engine = Mock()
        engine.transcode.side_effect = lambda src, out, profile, cb: out.write_bytes(b"")

        with pytest.raises(TranscodeError, match="is empty"):
            asyncio.run(Transcoder(engine, TranscodeProfile()).transcode(source, tmp_path))

    def test_missing_output_is_failure(self, tmp_path):
        source = tmp_path / "merged.ts"
        source.write_bytes(b"container")

        with pytest.raises(TranscodeError, match="was not created"):
            asyncio.run(Transcoder(Mock(), TranscodeProfile()).transcode(source, tmp_path))

    def test_ffmpeg_failure(self, tmp_path):
        engine = Mock()
        engine.transcode.side_effect = ffmpeg.Error("ffmpeg", None, b"Unknown encoder\n")

        with pytest.raises(TranscodeError, match="Audio conversion failed: Unknown encoder"):
            asyncio.run(Transcoder(engine, TranscodeProfile()).transcode(tmp_path / "x.ts", tmp_path))
