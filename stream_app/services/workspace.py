"""Job store and workspace lifecycle management.

Every job owns one directory under the workspace root for its whole life.
Finished jobs stay retrievable until their TTL runs out; a background
sweeper then deletes the directory and forgets the job. Failed jobs are
deleted straight away.

The store is in-memory (suitable for a single-process deployment). All
access to the id -> job mapping goes through one lock so request threads
and the sweeper can run concurrently.
"""
import logging
import shutil
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from models.artifact import Artifact, ArtifactKind
from models.job import Job, JobState
from utils.exceptions import NotFoundError, WorkspaceExpiredError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def remove_workspace(path: Path) -> bool:
    """Delete a workspace directory recursively.

    Returns:
        True if the directory was removed, False if it was already gone

    Raises:
        OSError: if the directory exists but could not be removed
    """
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return False
    logger.info(f"Cleaned up directory: {path}")
    return True


class JobStore:
    """Owns live jobs, their workspaces and their expiry."""

    def __init__(self, root: Path, ttl: timedelta, clock: Clock = utc_now):
        """Initialize the store.

        Args:
            root: Directory under which per-job workspaces are created
            ttl: How long artifacts stay retrievable after completion
            clock: Returns the current time (timezone-aware)
        """
        self.root = Path(root)
        self.ttl = ttl
        self._clock = clock
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create_job(self, reference: str) -> Job:
        """Allocate a job id and an empty workspace directory for it."""
        self.root.mkdir(parents=True, exist_ok=True)
        job_id = uuid.uuid4().hex
        workspace = self.root / job_id
        workspace.mkdir()

        job = Job(id=job_id, reference=reference, workspace=workspace, created_at=self._clock())
        with self._lock:
            self._jobs[job_id] = job

        logger.info(f"Created job {job_id} for reference {reference} in {workspace}")
        return job

    def mark_ready(self, job: Job) -> Job:
        """Move a job to READY and start its TTL."""
        now = self._clock()
        with self._lock:
            job.transition(JobState.READY)
            job.completed_at = now
            job.expires_at = now + self.ttl
        logger.info(f"Job {job.id} ready, artifacts available until {job.expires_at.isoformat()}")
        return job

    def fail(self, job: Job, error: BaseException) -> None:
        """Mark a job failed, forget it and delete its workspace.

        Cleanup problems are logged and never raised, so the caller can
        re-raise the original error.
        """
        with self._lock:
            if job.can_transition(JobState.FAILED):
                job.transition(JobState.FAILED)
            job.error_message = str(error)
            self._jobs.pop(job.id, None)

        try:
            remove_workspace(job.workspace)
        except OSError as cleanup_error:
            logger.error(f"Error cleaning up directory {job.workspace}: {cleanup_error}")

    def get(self, job_id: str) -> Job:
        """Look up a live job.

        Raises:
            NotFoundError: unknown id (or already swept)
            WorkspaceExpiredError: the job's TTL has passed
        """
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        if job.is_expired(self._clock()):
            raise WorkspaceExpiredError(f"Job {job_id} has expired")
        return job

    def get_artifact(self, job_id: str, kind: ArtifactKind) -> Artifact:
        job = self.get(job_id)
        if job.state is not JobState.READY:
            raise NotFoundError(f"Job {job_id} is not ready (state: {job.state.value})")
        artifact = job.artifacts.get(kind)
        if artifact is None:
            raise NotFoundError(f"Job {job_id} has no {kind.value} artifact")
        return artifact

    def sweep(self) -> List[str]:
        """Remove every job past its expiry. Returns the removed job ids.

        Entries are popped under the lock before any file is touched, so a
        job is only ever deleted by one sweep even if sweeps overlap.
        """
        now = self._clock()
        with self._lock:
            expired = [job for job in self._jobs.values() if job.is_expired(now)]
            for job in expired:
                del self._jobs[job.id]

        for job in expired:
            job.transition(JobState.EXPIRED)
            try:
                remove_workspace(job.workspace)
            except OSError as exc:
                logger.error(f"Error cleaning up expired job {job.id}: {exc}")

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired jobs")
        return [job.id for job in expired]

    def purge_orphans(self) -> int:
        """Delete workspace directories no live job owns and that are older than the TTL.

        These are left behind when the process dies mid-job.
        """
        if not self.root.exists():
            return 0

        cutoff = (self._clock() - self.ttl).timestamp()
        with self._lock:
            owned = set(self._jobs)

        removed = 0
        for candidate in self.root.iterdir():
            if not candidate.is_dir() or candidate.name in owned:
                continue
            try:
                if candidate.stat().st_mtime < cutoff and remove_workspace(candidate):
                    removed += 1
            except OSError as exc:
                logger.error(f"Error cleaning up orphaned directory {candidate}: {exc}")

        if removed:
            logger.info(f"Removed {removed} orphaned workspaces")
        return removed

    def job_count(self) -> int:
        with self._lock:
            return len(self._jobs)


class WorkspaceSweeper:
    """Background thread that evicts expired jobs at a fixed interval."""

    def __init__(self, store: JobStore, interval: timedelta):
        self._store = store
        self._interval = interval.total_seconds()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> List[str]:
        removed = self._store.sweep()
        self._store.purge_orphans()
        return removed

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="workspace-sweeper", daemon=True)
        self._thread.start()
        logger.info(f"Workspace sweeper started (interval: {self._interval:.0f}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self.run_once()
            except Exception:
                # keep the sweeper alive; the next cycle retries
                logger.exception("Workspace sweep failed")
