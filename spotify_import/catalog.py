"""Builds the canonical set of local tracks from scanned tag tuples."""

from typing import Dict, Iterable, List, Tuple

from spotify_import.capabilities import TagTuple
from spotify_import.models import LocalCatalog, LocalTrack, clean_text
from spotify_import.utils.logger import get_logger


logger = get_logger()


def build_catalog(track_tuples: Iterable[TagTuple]) -> LocalCatalog:
    """
    Normalize and deduplicate scanned tags into a LocalCatalog.
    
    Tuples with an empty title or artist are skipped. When two tuples share
    the same normalized (title, artist), the first one wins.
    
    Args:
        track_tuples: Lazy sequence of (title, artist, album) tuples
    
    Returns:
        LocalCatalog in first-occurrence order
    """
    seen: Dict[Tuple[str, str], LocalTrack] = {}
    tracks: List[LocalTrack] = []
    skipped = 0
    duplicates = 0
    
    for title, artist, album in track_tuples:
        title = clean_text(title)
        artist = clean_text(artist)
        
        if not title or not artist:
            skipped += 1
            logger.debug(f"Skipping track with missing tags: title={title!r}, artist={artist!r}")
            continue
        
        track = LocalTrack(title=title, artist=artist, album=clean_text(album) or None)
        if track.identity in seen:
            duplicates += 1
            continue
        
        seen[track.identity] = track
        tracks.append(track)
    
    logger.info(
        f"Found {len(tracks)} local tracks "
        f"({skipped} without tags, {duplicates} duplicates)"
    )
    return LocalCatalog(tracks=tuple(tracks), skipped=skipped, duplicates=duplicates)
