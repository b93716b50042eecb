"""Track matching logic using exact tag comparison and token overlap scoring."""

from typing import FrozenSet, Optional, Sequence, Tuple
from rapidfuzz.utils import default_process
from spotify_import.capabilities import SearchCapability
from spotify_import.exceptions import SearchFailed
from spotify_import.models import (
    Confidence,
    LocalTrack,
    MatchResult,
    RemoteCandidate,
    normalize,
)
from spotify_import.utils.logger import get_logger


logger = get_logger()


def build_query(track: LocalTrack) -> str:
    """Build a field-filtered search query for a local track."""
    title = track.title.replace('"', '')
    artist = track.artist.replace('"', '')
    return f'track:"{title}" artist:"{artist}"'


def tokenize(s: Optional[str]) -> FrozenSet[str]:
    """Lowercase, strip punctuation and split into a set of tokens."""
    if not s:
        return frozenset()
    return frozenset(default_process(s).split())


def token_overlap(a: Optional[str], b: Optional[str]) -> float:
    """
    Jaccard overlap between the token sets of two strings.

    Returns:
        |A & B| / |A | B|, or 0.0 if both are empty
    """
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)


class TrackMatcher:
    """Matcher for finding the remote track that corresponds to a local track."""

    TITLE_WEIGHT = 0.6
    ARTIST_WEIGHT = 0.4
    MIN_FUZZY_SCORE = 0.5

    def __init__(
        self,
        search: SearchCapability,
        title_weight: float = TITLE_WEIGHT,
        artist_weight: float = ARTIST_WEIGHT,
        threshold: float = MIN_FUZZY_SCORE
    ):
        """
        Initialize track matcher.

        Args:
            search: Object exposing query(q) -> sequence of RemoteCandidate
            title_weight: Weight of the title overlap in the fuzzy score
            artist_weight: Weight of the artist overlap in the fuzzy score
            threshold: Minimum fuzzy score for a candidate to be accepted
        """
        self.search = search
        self.title_weight = title_weight
        self.artist_weight = artist_weight
        self.threshold = threshold

    def resolve(self, track: LocalTrack) -> MatchResult:
        """
        Match a local track to a remote track.

        Strategy:
        1. First candidate whose normalized title and artist equal the local ones
        2. Otherwise the best token-overlap score at or above the threshold
        3. Otherwise no match

        Args:
            track: Local track to resolve

        Returns:
            MatchResult for the track

        Raises:
            SearchFailed: If the search call fails
        """
        candidates = self.search.query(build_query(track))

        result = self._match_exact(track, candidates)
        if result:
            return result

        return self._match_fuzzy(track, candidates)

    def resolve_safe(self, track: LocalTrack) -> MatchResult:
        """
        Like resolve(), but a failed search yields an unmatched result
        carrying the error instead of raising.
        """
        try:
            return self.resolve(track)
        except SearchFailed as e:
            logger.warning(f"Search failed for: {track.title} by {track.artist} ({e.cause})")
            return MatchResult(
                local=track,
                remote_id=None,
                confidence=Confidence.NONE,
                error=e.cause
            )

    def score(self, track: LocalTrack, candidate: RemoteCandidate) -> float:
        """Weighted title/artist token overlap between a local track and a candidate."""
        return (
            self.title_weight * token_overlap(track.title, candidate.title)
            + self.artist_weight * token_overlap(track.artist, candidate.artist)
        )

    def _match_exact(
        self,
        track: LocalTrack,
        candidates: Sequence[RemoteCandidate]
    ) -> Optional[MatchResult]:
        title, artist = track.identity
        for candidate in candidates:
            if normalize(candidate.title) == title and normalize(candidate.artist) == artist:
                logger.debug(
                    f"Exact match: {track.title} by {track.artist} -> {candidate.id}"
                )
                return MatchResult(
                    local=track,
                    remote_id=candidate.id,
                    confidence=Confidence.EXACT,
                    score=1.0
                )
        return None

    def _match_fuzzy(
        self,
        track: LocalTrack,
        candidates: Sequence[RemoteCandidate]
    ) -> MatchResult:
        best: Optional[Tuple[float, RemoteCandidate]] = None
        for candidate in candidates:
            score = self.score(track, candidate)
            # Strict comparison keeps the earliest candidate on ties
            if best is None or score > best[0]:
                best = (score, candidate)

        if best is not None and best[0] >= self.threshold:
            score, candidate = best
            logger.debug(
                f"Fuzzy match (score={score:.2f}): {track.title} by {track.artist} "
                f"-> {candidate.title} by {candidate.artist}"
            )
            return MatchResult(
                local=track,
                remote_id=candidate.id,
                confidence=Confidence.FUZZY,
                score=score
            )

        logger.debug(
            f"No match (best score={best[0] if best else 0.0:.2f}, "
            f"{len(candidates)} candidates): {track.title} by {track.artist}"
        )
        return MatchResult(local=track, remote_id=None, confidence=Confidence.NONE)
