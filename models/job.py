"""Job model for tracking stream conversion requests."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from models.artifact import Artifact, ArtifactKind


class JobState(str, Enum):
    PENDING = "pending"
    RESOLVING = "resolving"
    FETCHING = "fetching"
    ASSEMBLING = "assembling"
    TRANSCODING = "transcoding"
    TRANSCRIBING = "transcribing"
    READY = "ready"
    EXPIRED = "expired"
    FAILED = "failed"


# Allowed forward moves; FAILED is reachable from every non-terminal state.
_TRANSITIONS = {
    JobState.PENDING: {JobState.RESOLVING},
    JobState.RESOLVING: {JobState.FETCHING},
    JobState.FETCHING: {JobState.ASSEMBLING},
    JobState.ASSEMBLING: {JobState.TRANSCODING},
    JobState.TRANSCODING: {JobState.TRANSCRIBING, JobState.READY},
    JobState.TRANSCRIBING: {JobState.READY},
    JobState.READY: {JobState.EXPIRED},
    JobState.EXPIRED: set(),
    JobState.FAILED: set(),
}

TERMINAL_STATES = frozenset({JobState.EXPIRED, JobState.FAILED})


@dataclass
class Job:
    """A single conversion request and everything it produced."""

    id: str
    reference: str
    workspace: Path
    created_at: datetime
    state: JobState = JobState.PENDING
    completed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    error_message: Optional[str] = None
    artifacts: Dict[ArtifactKind, Artifact] = field(default_factory=dict)

    def can_transition(self, target: JobState) -> bool:
        if target is JobState.FAILED:
            return self.state not in TERMINAL_STATES and self.state is not JobState.READY
        return target in _TRANSITIONS[self.state]

    def transition(self, target: JobState) -> None:
        if not self.can_transition(target):
            raise ValueError(f"Job {self.id}: illegal transition {self.state.value} -> {target.value}")
        self.state = target

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    @property
    def transcript(self) -> Optional[str]:
        artifact = self.artifacts.get(ArtifactKind.TRANSCRIPT)
        return artifact.text if artifact else None

    def to_dict(self):
        """Convert job to dictionary representation."""
        return {
            'id': self.id,
            'reference': self.reference,
            'state': self.state.value,
            'error_message': self.error_message,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'artifacts': [artifact.to_dict() for artifact in list(self.artifacts.values())],
        }

    def __repr__(self):
        return f'<Job {self.id} reference={self.reference} state={self.state.value}>'
