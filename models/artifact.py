"""Artifact model for job outputs."""
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class ArtifactKind(str, Enum):
    VIDEO = "video"            # assembled container
    AUDIO = "audio"            # encoded audio track
    TRANSCRIPT = "transcript"  # transcript text


@dataclass(frozen=True)
class Artifact:
    """Reference to a finished output of a job. Never mutated once created."""

    job_id: str
    kind: ArtifactKind
    path: Optional[Path] = None
    text: Optional[str] = None
    content_type: str = "application/octet-stream"

    @property
    def filename(self) -> str:
        """Download name suggested to clients."""
        if self.path is not None:
            return f"{self.job_id}-{self.path.name}"
        return f"{self.job_id}-{self.kind.value}.txt"

    @property
    def size(self) -> int:
        if self.path is not None and self.path.exists():
            return self.path.stat().st_size
        return len(self.text.encode("utf-8")) if self.text else 0

    def to_dict(self):
        """Convert artifact to dictionary representation."""
        return {
            'job_id': self.job_id,
            'kind': self.kind.value,
            'filename': self.filename,
            'content_type': self.content_type,
            'size': self.size,
        }

    def __repr__(self):
        return f'<Artifact job={self.job_id} kind={self.kind.value}>'
