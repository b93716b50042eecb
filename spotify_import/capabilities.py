"""Contracts for the collaborators the import pipeline depends on."""

from typing import Optional, Protocol, Sequence, Set, Tuple

from spotify_import.models import RemoteCandidate


# (title, artist, album) as produced by a library scan; any element may be missing
TagTuple = Tuple[Optional[str], Optional[str], Optional[str]]


class SearchCapability(Protocol):
    """Remote track search. Raises SearchFailed on network or HTTP errors."""

    def query(self, q: str) -> Sequence[RemoteCandidate]:
        ...


class PlaylistCapability(Protocol):
    """
    A single remote playlist.

    Raises TransientError for retryable failures and FatalError for
    everything that must abort the run.
    """

    def list_tracks(self) -> Set[str]:
        ...

    def add_tracks(self, ids: Sequence[str]) -> None:
        ...
