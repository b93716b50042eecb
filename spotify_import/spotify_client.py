"""Spotify API client for searching tracks and editing a playlist."""

from typing import Dict, List, Optional, Sequence, Set
import requests
import spotipy
from spotipy.exceptions import SpotifyBaseException, SpotifyException
from spotipy.oauth2 import SpotifyOAuth
from spotify_import.exceptions import FatalError, SearchFailed, TransientError
from spotify_import.models import RemoteCandidate
from spotify_import.utils.credentials import Credentials
from spotify_import.utils.logger import get_logger


logger = get_logger()

SCOPE = "playlist-modify-private playlist-read-private"

# HTTP statuses worth retrying
TRANSIENT_STATUSES = {429, 500, 502, 503, 504}


def classify_error(e: Exception) -> Exception:
    """
    Translate a spotipy/requests error into TransientError or FatalError.

    Rate limits, server errors and network errors are transient; everything
    else (401, 403, 404, other 4xx, OAuth token errors) is fatal.
    """
    if isinstance(e, SpotifyException):
        if e.http_status in TRANSIENT_STATUSES:
            retry_after = None
            headers = e.headers or {}
            if headers.get('Retry-After'):
                try:
                    retry_after = float(headers['Retry-After'])
                except (TypeError, ValueError):
                    retry_after = None
            return TransientError(f"HTTP {e.http_status}: {e.msg}", retry_after=retry_after)
        return FatalError(f"HTTP {e.http_status}: {e.msg}")
    if isinstance(e, SpotifyBaseException):
        # SpotifyOauthError: the token could not be obtained or refreshed
        return FatalError(f"authorization error: {e}")
    if isinstance(e, requests.exceptions.RequestException):
        return TransientError(f"network error: {e}")
    return FatalError(str(e))


def parse_track(item: Dict) -> Optional[RemoteCandidate]:
    """Validate a raw track object into a RemoteCandidate, or None if unusable."""
    if not item or not item.get('id') or not item.get('name'):
        return None
    artists = item.get('artists') or []
    artist = artists[0].get('name', '') if artists else ''
    album = (item.get('album') or {}).get('name')
    return RemoteCandidate(
        id=item['id'],
        title=item['name'],
        artist=artist,
        album=album,
        duration_ms=item.get('duration_ms')
    )


class SpotifyClient:
    """Client for interacting with Spotify Web API."""

    SEARCH_LIMIT = 10
    PAGE_LIMIT = 50
    MAX_ADD_BATCH = 100

    def __init__(self, credentials: Credentials, cache_path: Optional[str] = None,
                 open_browser: bool = True):
        """
        Initialize Spotify client.

        Args:
            credentials: Spotify application credentials
            cache_path: Where spotipy stores the OAuth token (spotipy default if None)
            open_browser: Open the authorization page automatically
        """
        self.credentials = credentials
        self.cache_path = cache_path
        self.open_browser = open_browser
        self.sp: Optional[spotipy.Spotify] = None
        self.user_id: Optional[str] = None

    def authenticate_user(self) -> None:
        """
        Authenticate user with Spotify using OAuth.

        Raises:
            FatalError: If authentication fails
        """
        try:
            auth_manager = SpotifyOAuth(
                client_id=self.credentials.client_id,
                client_secret=self.credentials.client_secret,
                redirect_uri=self.credentials.redirect_uri,
                scope=SCOPE,
                cache_path=self.cache_path,
                open_browser=self.open_browser
            )
            # Retries are handled by the reconciler, not by the HTTP adapter
            self.sp = spotipy.Spotify(
                auth_manager=auth_manager,
                retries=0,
                status_retries=0,
                requests_timeout=10
            )

            logger.info("Obtaining the access token")
            user = self.sp.current_user()
            self.user_id = user['id']
            logger.info(f"Authenticated as Spotify user: {user.get('display_name') or self.user_id}")

        except (SpotifyBaseException, requests.exceptions.RequestException) as e:
            logger.error(f"Spotify authentication failed: {e}")
            raise FatalError(f"Spotify authentication failed: {e}")

    def _require_auth(self) -> spotipy.Spotify:
        if not self.sp:
            raise FatalError("Not authenticated. Call authenticate_user() first.")
        return self.sp

    def query(self, q: str) -> List[RemoteCandidate]:
        """
        Search tracks.

        Args:
            q: Search query

        Returns:
            Candidates in the order returned by Spotify

        Raises:
            SearchFailed: On network, HTTP or authentication errors
        """
        if not self.sp:
            raise SearchFailed("Not authenticated. Call authenticate_user() first.")

        try:
            results = self.sp.search(q, limit=self.SEARCH_LIMIT, type='track')
        except SpotifyException as e:
            raise SearchFailed(f"HTTP {e.http_status}: {e.msg}")
        except SpotifyBaseException as e:
            raise SearchFailed(f"authorization error: {e}")
        except requests.exceptions.RequestException as e:
            raise SearchFailed(f"network error: {e}")

        candidates = []
        for item in (results.get('tracks') or {}).get('items') or []:
            candidate = parse_track(item)
            if candidate:
                candidates.append(candidate)

        logger.debug(f"Search '{q}' returned {len(candidates)} candidates")
        return candidates

    def find_playlist_by_name(self, name: str) -> Optional[Dict]:
        """
        Find one of the user's playlists by exact name.

        Returns:
            Playlist dict with keys: id, name, tracks_count, or None if not found
        """
        sp = self._require_auth()
        offset = 0

        while True:
            try:
                results = sp.current_user_playlists(limit=self.PAGE_LIMIT, offset=offset)
            except (SpotifyBaseException, requests.exceptions.RequestException) as e:
                raise classify_error(e)

            for item in results['items']:
                owner = (item.get('owner') or {}).get('id')
                if item['name'] == name and (self.user_id is None or owner == self.user_id):
                    playlist = {
                        'id': item['id'],
                        'name': item['name'],
                        'tracks_count': (item.get('tracks') or {}).get('total', 0)
                    }
                    logger.debug(f"Found existing playlist: {name} (ID: {playlist['id']})")
                    return playlist

            if not results['next']:
                return None

            offset += self.PAGE_LIMIT

    def create_playlist(self, name: str, description: str = "") -> str:
        """
        Create a new private playlist.

        Returns:
            Playlist ID
        """
        sp = self._require_auth()
        try:
            result = sp.user_playlist_create(
                self.user_id,
                name,
                public=False,
                collaborative=False,
                description=description
            )
        except (SpotifyBaseException, requests.exceptions.RequestException) as e:
            raise classify_error(e)

        logger.info(f"Created Spotify playlist: {name} (ID: {result['id']})")
        return result['id']

    def get_playlist_tracks(self, playlist_id: str) -> Set[str]:
        """
        Get all track IDs in a playlist.

        Raises:
            TransientError, FatalError: If the API call fails
        """
        sp = self._require_auth()
        track_ids: Set[str] = set()
        offset = 0
        limit = 100

        while True:
            try:
                results = sp.playlist_items(
                    playlist_id,
                    fields='items(track(id)),next',
                    limit=limit,
                    offset=offset,
                    additional_types=('track',)
                )
            except (SpotifyBaseException, requests.exceptions.RequestException) as e:
                raise classify_error(e)

            for item in results['items']:
                track = item.get('track')
                # Local files and removed tracks have no id
                if track and track.get('id'):
                    track_ids.add(track['id'])

            if not results['next']:
                break

            offset += limit

        logger.debug(f"Found {len(track_ids)} tracks in playlist {playlist_id}")
        return track_ids

    def add_tracks(self, playlist_id: str, track_ids: Sequence[str]) -> None:
        """
        Add up to MAX_ADD_BATCH tracks to a playlist in one request.

        Raises:
            TransientError, FatalError: If the API call fails
        """
        if len(track_ids) > self.MAX_ADD_BATCH:
            raise ValueError(f"At most {self.MAX_ADD_BATCH} tracks can be added per request")
        sp = self._require_auth()
        try:
            sp.playlist_add_items(playlist_id, list(track_ids))
        except (SpotifyBaseException, requests.exceptions.RequestException) as e:
            raise classify_error(e)

        logger.debug(f"Added {len(track_ids)} tracks to playlist {playlist_id}")


class SpotifyPlaylist:
    """A single Spotify playlist, bound to a client."""

    def __init__(self, client: SpotifyClient, playlist_id: str):
        self.client = client
        self.playlist_id = playlist_id

    def list_tracks(self) -> Set[str]:
        return self.client.get_playlist_tracks(self.playlist_id)

    def add_tracks(self, ids: Sequence[str]) -> None:
        self.client.add_tracks(self.playlist_id, ids)
