"""Walks a music directory and reads title/artist/album tags with mutagen."""

import os
from typing import Iterator, Optional

from mutagen import File as MutagenFile
from mutagen import MutagenError

from spotify_import.capabilities import TagTuple
from spotify_import.exceptions import ScanSkipped
from spotify_import.utils.logger import get_logger


logger = get_logger()

AUDIO_EXTS = {".mp3", ".m4a", ".mp4", ".flac", ".ogg", ".opus", ".wav", ".aiff", ".wma"}

# Easy key first, then the raw key used by containers mutagen has no easy
# wrapper for: ID3 frames (WAV, AIFF) and ASF attributes (WMA)
TAG_KEYS = {
    "title": ("title", "TIT2", "Title"),
    "artist": ("artist", "TPE1", "Author"),
    "album": ("album", "TALB", "WM/AlbumTitle"),
}


def iter_audio_paths(root: str) -> Iterator[str]:
    """Yield audio file paths under root in a stable order."""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for fn in sorted(filenames):
            if os.path.splitext(fn)[1].lower() in AUDIO_EXTS:
                yield os.path.join(dirpath, fn)


def _first(tags, field: str) -> Optional[str]:
    for key in TAG_KEYS[field]:
        value = tags.get(key)
        if value is None:
            continue
        # ID3 text frames keep their values in .text
        value = getattr(value, "text", value)
        if isinstance(value, list):
            value = value[0] if value else None
        s = str(value).strip() if value is not None else ""
        if s:
            return s
    return None


def read_tags(path: str) -> TagTuple:
    """
    Read (title, artist, album) from an audio file.

    Raises:
        ScanSkipped: If the file cannot be parsed, has no tags, or has
            neither a title nor an artist
    """
    try:
        audio = MutagenFile(path, easy=True)
    except (MutagenError, OSError) as e:
        raise ScanSkipped(path, str(e))

    if audio is None:
        raise ScanSkipped(path, "unsupported format")
    if not audio.tags:
        raise ScanSkipped(path, "no tags")

    title = _first(audio.tags, "title")
    artist = _first(audio.tags, "artist")
    if title is None and artist is None:
        raise ScanSkipped(path, "no title or artist")

    return (title, artist, _first(audio.tags, "album"))


def scan_library(root: str) -> Iterator[TagTuple]:
    """
    Lazily yield tag tuples for every readable audio file under root.

    Files that cannot be read are logged and skipped.
    """
    if not os.path.isdir(root):
        raise NotADirectoryError(f"Music directory not found: {root}")

    count = 0
    for path in iter_audio_paths(root):
        try:
            tags = read_tags(path)
        except ScanSkipped as e:
            logger.warning(f"⚠️  {e}")
            continue
        count += 1
        yield tags

    logger.debug(f"Read tags from {count} files under {root}")

