"""Playlist and segment models."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union


@dataclass(frozen=True)
class SegmentReference:
    uri: str
    duration: Optional[float] = None


@dataclass(frozen=True)
class VariantReference:
    uri: str
    bandwidth: Optional[int] = None
    resolution: Optional[str] = None


ManifestEntry = Union[SegmentReference, VariantReference]


@dataclass
class Manifest:
    """Parsed playlist. Entry order is media order."""

    url: str
    entries: List[ManifestEntry] = field(default_factory=list)

    @property
    def segments(self) -> List[SegmentReference]:
        return [e for e in self.entries if isinstance(e, SegmentReference)]

    @property
    def variants(self) -> List[VariantReference]:
        return [e for e in self.entries if isinstance(e, VariantReference)]

    @property
    def is_master(self) -> bool:
        return bool(self.entries) and not self.segments


@dataclass
class Segment:
    """One downloadable media unit; ``index`` is its ordering key within a manifest."""

    manifest_index: int
    index: int
    uri: str
    resolved_uri: str
    path: Optional[Path] = None
    size: int = 0

    @property
    def extension(self) -> str:
        name = self.resolved_uri.split("?", 1)[0].split("#", 1)[0].rsplit("/", 1)[-1]
        if "." in name:
            ext = name.rsplit(".", 1)[1].lower()
            if ext.isalnum() and len(ext) <= 5:
                return ext
        return "ts"

    @property
    def filename(self) -> str:
        return f"segment_{self.manifest_index}_{self.index}.{self.extension}"
