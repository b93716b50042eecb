"""Data types shared by the catalog, matcher and reconciler."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, Optional, Set, Tuple


_WHITESPACE = re.compile(r'\s+')


def clean_text(value: Optional[str]) -> str:
    """Trim and collapse internal whitespace, keeping the original casing."""
    if not value:
        return ""
    return _WHITESPACE.sub(" ", str(value)).strip()


def normalize(value: Optional[str]) -> str:
    """Normalize a string for identity comparison."""
    return clean_text(value).lower()


class Confidence(Enum):
    """How certain a match is."""
    EXACT = "exact"
    FUZZY = "fuzzy"
    NONE = "none"


@dataclass(frozen=True)
class LocalTrack:
    """A song described by tags read from a local file."""
    title: str
    artist: str
    album: Optional[str] = None

    @property
    def identity(self) -> Tuple[str, str]:
        return normalize(self.title), normalize(self.artist)

    def to_dict(self) -> Dict:
        return {'title': self.title, 'artist': self.artist, 'album': self.album}


@dataclass(frozen=True)
class LocalCatalog:
    """
    Ordered set of unique local tracks.

    Tracks are kept in first-occurrence order; no two tracks share the same
    normalized (title, artist) identity.
    """
    tracks: Tuple[LocalTrack, ...] = ()
    skipped: int = 0
    duplicates: int = 0

    def __len__(self) -> int:
        return len(self.tracks)

    def __iter__(self) -> Iterator[LocalTrack]:
        return iter(self.tracks)

    def __contains__(self, track: object) -> bool:
        if not isinstance(track, LocalTrack):
            return False
        return any(t.identity == track.identity for t in self.tracks)


@dataclass(frozen=True)
class RemoteCandidate:
    """A track returned by the remote search."""
    id: str
    title: str
    artist: str
    album: Optional[str] = None
    duration_ms: Optional[int] = None


@dataclass(frozen=True)
class MatchResult:
    """Outcome of resolving one local track against the remote search."""
    local: LocalTrack
    remote_id: Optional[str]
    confidence: Confidence
    score: float = 0.0
    error: Optional[str] = None

    @property
    def is_matched(self) -> bool:
        return self.remote_id is not None and self.confidence != Confidence.NONE

    @property
    def search_failed(self) -> bool:
        return self.error is not None

    def __repr__(self) -> str:
        return (
            f"MatchResult(type={self.confidence.value}, score={self.score:.2f}, "
            f"remote_id={self.remote_id})"
        )


@dataclass
class PlaylistState:
    """Remote IDs known to be in the playlist during a single run."""
    playlist_id: str
    existing_remote_ids: Set[str] = field(default_factory=set)

    def record_added(self, remote_ids) -> None:
        self.existing_remote_ids.update(remote_ids)


@dataclass
class ReconcileReport:
    """Counts produced by a reconciliation run."""
    added: int = 0
    already_present: int = 0
    unmatched: int = 0
    failed: int = 0
    duplicates: int = 0
    pending: int = 0
    aborted: bool = False
    fatal_cause: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'added': self.added,
            'already_present': self.already_present,
            'unmatched': self.unmatched,
            'failed': self.failed,
            'duplicates': self.duplicates,
            'pending': self.pending,
            'aborted': self.aborted,
            'fatal_cause': self.fatal_cause,
        }
