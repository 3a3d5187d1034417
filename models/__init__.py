"""Domain models for jobs, manifests and artifacts."""

from models.artifact import Artifact, ArtifactKind
from models.job import Job, JobState
from models.manifest import Manifest, Segment, SegmentReference, VariantReference

__all__ = [
    "Artifact",
    "ArtifactKind",
    "Job",
    "JobState",
    "Manifest",
    "Segment",
    "SegmentReference",
    "VariantReference",
]
