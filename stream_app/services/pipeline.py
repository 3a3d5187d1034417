"""Media assembly pipeline: resolve, fetch, assemble, transcode, transcribe."""
import logging
import mimetypes
from typing import Callable, List, Optional

import httpx

from models.artifact import Artifact, ArtifactKind
from models.job import Job, JobState
from stream_app.clients.manifest import ManifestResolver, build_segments
from stream_app.clients.media_engine import ProgressCallback
from stream_app.clients.segments import RetryPolicy, SegmentFetcher
from stream_app.services.assembly import Assembler
from stream_app.services.transcoding import Transcoder
from stream_app.services.transcription import TRANSCRIPT_NAME, Transcriber
from stream_app.services.workspace import JobStore
from utils.cancellation import CancellationToken
from utils.exceptions import ResolutionError, TranscriptionError

logger = logging.getLogger(__name__)

HttpClientFactory = Callable[[], httpx.AsyncClient]

VIDEO_CONTENT_TYPES = {
    ".ts": "video/mp2t",
    ".mp4": "video/mp4",
    ".m4s": "video/iso.segment",
    ".aac": "audio/aac",
}


def _video_content_type(path) -> str:
    return (VIDEO_CONTENT_TYPES.get(path.suffix.lower())
            or mimetypes.guess_type(path.name)[0]
            or "application/octet-stream")


def _logging_progress(job_id: str) -> ProgressCallback:
    last_logged = -10

    def report(percent: float) -> None:
        nonlocal last_logged
        step = int(percent) // 10 * 10
        if step > last_logged:
            last_logged = step
            logger.info(f"Job {job_id} converting: {int(percent)}% done")

    return report


class MediaPipeline:
    """Runs one job through every stage, strictly one stage after another.

    Dependencies are injected so each can be swapped independently: the
    HTTP client factory (one client per run, bound to that run's event
    loop), the stage objects, and the job store with its clock.
    """

    def __init__(self, store: JobStore, assembler: Assembler, transcoder: Transcoder,
                 http_client_factory: HttpClientFactory, max_concurrent: int = 5,
                 retry: Optional[RetryPolicy] = None, transcriber: Optional[Transcriber] = None):
        self.store = store
        self.assembler = assembler
        self.transcoder = transcoder
        self.transcriber = transcriber
        self._client_factory = http_client_factory
        self._max_concurrent = max_concurrent
        self._retry = retry or RetryPolicy()

    async def run(self, manifest_urls: List[str], reference: str, transcribe: bool = False,
                  cancel_token: Optional[CancellationToken] = None,
                  on_progress: Optional[ProgressCallback] = None) -> Job:
        """Process one job end to end.

        Args:
            manifest_urls: Playlist URLs of the recording, in playback order
            reference: External reference the URLs belong to
            transcribe: Also produce a transcript artifact
            cancel_token: Abandons the job when cancelled
            on_progress: Receives transcode progress (0-100)

        Returns:
            The READY job with its artifacts registered

        Raises:
            ProcessingError: whichever stage failed; the job's workspace is
                already deleted when this propagates
        """
        if transcribe and self.transcriber is None:
            raise TranscriptionError("Transcription is not configured")

        token = cancel_token or CancellationToken()
        job = self.store.create_job(reference)
        try:
            segment_paths = await self._download(job, manifest_urls, token)

            token.raise_if_cancelled()
            job.transition(JobState.ASSEMBLING)
            merged = await self.assembler.assemble(segment_paths, job.workspace)
            job.artifacts[ArtifactKind.VIDEO] = Artifact(
                job_id=job.id, kind=ArtifactKind.VIDEO, path=merged,
                content_type=_video_content_type(merged),
            )

            token.raise_if_cancelled()
            job.transition(JobState.TRANSCODING)
            audio = await self.transcoder.transcode(
                merged, job.workspace, on_progress or _logging_progress(job.id)
            )
            job.artifacts[ArtifactKind.AUDIO] = Artifact(
                job_id=job.id, kind=ArtifactKind.AUDIO, path=audio,
                content_type=self.transcoder.profile.content_type,
            )

            if transcribe:
                token.raise_if_cancelled()
                job.transition(JobState.TRANSCRIBING)
                text = await self.transcriber.transcribe(audio, job.workspace)
                transcript_path = job.workspace / TRANSCRIPT_NAME
                transcript_path.write_text(text, encoding="utf-8")
                job.artifacts[ArtifactKind.TRANSCRIPT] = Artifact(
                    job_id=job.id, kind=ArtifactKind.TRANSCRIPT, path=transcript_path,
                    text=text, content_type="text/plain; charset=utf-8",
                )

            token.raise_if_cancelled()
            return self.store.mark_ready(job)

        except BaseException as exc:
            logger.error(f"Job {job.id} failed during {job.state.value}: {exc}")
            self.store.fail(job, exc)
            raise

    async def _download(self, job: Job, manifest_urls: List[str],
                        token: CancellationToken) -> List:
        """Resolve all manifests and download their segments in manifest-then-index order."""
        async with self._client_factory() as client:
            token.raise_if_cancelled()
            job.transition(JobState.RESOLVING)
            manifests = await ManifestResolver(client).resolve_all(manifest_urls)

            segment_sets = [build_segments(manifest, position)
                            for position, manifest in enumerate(manifests)]
            total = sum(len(segments) for segments in segment_sets)
            if total == 0:
                raise ResolutionError("No segments found in any manifest")
            logger.info(f"Job {job.id}: {total} segments across {len(segment_sets)} manifests")

            token.raise_if_cancelled()
            job.transition(JobState.FETCHING)
            fetcher = SegmentFetcher(client, self._max_concurrent, self._retry)
            segment_paths = []
            for position, segments in enumerate(segment_sets):
                if not segments:
                    logger.warning(f"Manifest {position} of job {job.id} has no segments. Skipping.")
                    continue
                downloaded = await fetcher.fetch_all(segments, job.workspace, token)
                segment_paths.extend(segment.path for segment in downloaded)

        logger.info(f"All segments downloaded successfully for job {job.id}")
        return segment_paths
