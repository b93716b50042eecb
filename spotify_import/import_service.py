"""Import service for adding a local music library to a Spotify playlist."""

import argparse
import json
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional
from spotify_import.capabilities import PlaylistCapability, TagTuple
from spotify_import.catalog import build_catalog
from spotify_import.exceptions import FatalError, TransientError
from spotify_import.matcher import TrackMatcher
from spotify_import.models import Confidence, LocalCatalog, MatchResult, ReconcileReport
from spotify_import.reconciler import PlaylistReconciler
from spotify_import.scanner import scan_library
from spotify_import.spotify_client import SpotifyClient, SpotifyPlaylist
from spotify_import.utils.credentials import DEFAULT_REDIRECT_URI, load_credentials
from spotify_import.utils.logger import setup_logger


DEFAULT_PLAYLIST_NAME = "Imported"
DEFAULT_CONCURRENCY = 5


class RunState(Enum):
    """Lifecycle of a single import run."""
    SCANNING = "scanning"
    RESOLVING = "resolving"
    RECONCILING = "reconciling"
    DONE = "done"
    ABORTED = "aborted"


class ImportReport:
    """Report of import results."""

    def __init__(self):
        """Initialize empty import report."""
        self.start_time = datetime.now()
        self.end_time = None
        self.state = RunState.SCANNING
        self.playlist_name: Optional[str] = None
        self.dry_run = False
        self.local_tracks = 0
        self.skipped_files = 0
        self.duplicate_tags = 0
        self.exact_matches = 0
        self.fuzzy_matches = 0
        self.reconcile: Optional[ReconcileReport] = None
        self.missing_tracks = []
        self.errors = []

    def add_catalog(self, catalog: LocalCatalog):
        """Record the result of the scanning stage."""
        self.local_tracks = len(catalog)
        self.skipped_files = catalog.skipped
        self.duplicate_tags = catalog.duplicates

    def add_match(self, match: MatchResult):
        """Record the outcome of resolving one track."""
        if match.confidence == Confidence.EXACT:
            self.exact_matches += 1
        elif match.confidence == Confidence.FUZZY:
            self.fuzzy_matches += 1
        elif match.search_failed:
            self.add_error(f"Search failed for {match.local.title} by {match.local.artist}: {match.error}")
        else:
            self.missing_tracks.append(match.local.to_dict())

    def add_error(self, error: str):
        """Record an error."""
        self.errors.append(error)

    @property
    def tracks_matched(self) -> int:
        return self.exact_matches + self.fuzzy_matches

    def finalize(self, state: RunState):
        """Mark the run as finished."""
        self.state = state
        self.end_time = datetime.now()

    def to_dict(self) -> Dict:
        """Convert report to dictionary."""
        duration = None
        if self.end_time:
            duration = (self.end_time - self.start_time).total_seconds()

        return {
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'duration_seconds': duration,
            'state': self.state.value,
            'playlist': self.playlist_name,
            'dry_run': self.dry_run,
            'local_tracks': self.local_tracks,
            'skipped_files': self.skipped_files,
            'duplicate_tags': self.duplicate_tags,
            'tracks_matched': self.tracks_matched,
            'match_rate': f"{(self.tracks_matched / self.local_tracks * 100):.2f}%"
                          if self.local_tracks > 0 else "0%",
            'exact_matches': self.exact_matches,
            'fuzzy_matches': self.fuzzy_matches,
            'playlist_changes': self.reconcile.to_dict() if self.reconcile else None,
            'missing_tracks': self.missing_tracks,
            'errors': self.errors
        }

    def save_to_file(self, filepath: str):
        """Save report to JSON file."""
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)


class ImportService:
    """Service for importing a local library into a Spotify playlist."""

    def __init__(
        self,
        concurrency: int = DEFAULT_CONCURRENCY,
        log_file: str = None,
        verbose: bool = False,
        reconciler: Optional[PlaylistReconciler] = None
    ):
        """
        Initialize import service.

        Args:
            concurrency: Number of concurrent search requests
            log_file: Optional path to log file
            verbose: Show debug output on the console
            reconciler: Reconciler to use (a default one if None)
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self.logger = setup_logger(log_file=log_file, verbose=verbose)
        if log_file:
            self.logger.info(f"📝 Import log file: {log_file}")

        self.spotify_client: SpotifyClient = None
        self.matcher: TrackMatcher = None
        self.reconciler = reconciler or PlaylistReconciler()
        self.report = ImportReport()

    @property
    def state(self) -> RunState:
        return self.report.state

    def authenticate_client(self, client: SpotifyClient):
        """
        Authenticate the Spotify client and set up the matcher.

        Raises:
            FatalError: If authentication fails
        """
        try:
            self.logger.info("Authenticating with Spotify...")
            client.authenticate_user()
            self.spotify_client = client
            self.matcher = TrackMatcher(client)
            self.logger.info("Authentication successful")
        except FatalError as e:
            self.report.add_error(f"Authentication failed: {e.cause}")
            raise

    def resolve_matches(self, catalog: LocalCatalog) -> List[MatchResult]:
        """
        Resolve every catalog track concurrently.

        Returns:
            Match results in catalog order
        """
        tracks = list(catalog)
        results: Dict[int, MatchResult] = {}

        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            futures = {
                executor.submit(self.matcher.resolve_safe, track): index
                for index, track in enumerate(tracks)
            }
            for done, future in enumerate(as_completed(futures), 1):
                results[futures[future]] = future.result()
                if done % 50 == 0:
                    self.logger.info(f"Searched {done}/{len(tracks)} tracks")

        return [results[index] for index in range(len(tracks))]

    def resolve_playlist(self, name: str) -> SpotifyPlaylist:
        """
        Find the target playlist by name, creating it if it does not exist.

        Raises:
            TransientError, FatalError: If the playlist cannot be looked up or created
        """
        existing = self.spotify_client.find_playlist_by_name(name)
        if existing:
            self.logger.info(
                f"Found existing playlist with {existing['tracks_count']} tracks, "
                f"will add missing tracks only"
            )
            return SpotifyPlaylist(self.spotify_client, existing['id'])

        playlist_id = self.spotify_client.create_playlist(
            name,
            description=f"Imported from local library on {datetime.now().strftime('%Y-%m-%d')}"
        )
        return SpotifyPlaylist(self.spotify_client, playlist_id)

    def run(
        self,
        track_tuples: Iterable[TagTuple],
        playlist_name: str = DEFAULT_PLAYLIST_NAME,
        dry_run: bool = False,
        timeout: Optional[float] = None,
        playlist: Optional[PlaylistCapability] = None
    ) -> ImportReport:
        """
        Run one import: scan, resolve, reconcile.

        Args:
            track_tuples: Lazy sequence of (title, artist, album) tuples
            playlist_name: Name of the target playlist
            dry_run: If True, match tracks but do not touch the playlist
            timeout: Seconds after which no further add batch is issued
            playlist: Target playlist; looked up by name if None

        Returns:
            ImportReport for the run
        """
        if self.matcher is None:
            raise FatalError("Not authenticated. Call authenticate_client() first.")

        deadline = time.monotonic() + timeout if timeout is not None else None
        self.report = ImportReport()
        self.report.playlist_name = playlist_name
        self.report.dry_run = dry_run

        self.report.state = RunState.SCANNING
        self.logger.info("Scanning local library...")
        catalog = build_catalog(track_tuples)
        self.report.add_catalog(catalog)

        self.report.state = RunState.RESOLVING
        self.logger.info(f"Searching Spotify for {len(catalog)} tracks...")
        matches = self.resolve_matches(catalog)
        for match in matches:
            if not match.is_matched and not match.search_failed:
                self.logger.warning(
                    f"'{match.local.title} - {match.local.artist}' not found in the Spotify library"
                )
            self.report.add_match(match)
        self.logger.info(f"Found {self.report.tracks_matched} tracks in the Spotify library")

        if dry_run:
            self.logger.info("DRY RUN MODE - No changes will be made")
            self.report.finalize(RunState.DONE)
            return self.report

        self.report.state = RunState.RECONCILING
        if playlist is None:
            try:
                playlist = self.resolve_playlist(playlist_name)
            except (TransientError, FatalError) as e:
                self.logger.error(f"Failed to open playlist {playlist_name}: {e.cause}")
                self.report.add_error(f"Failed to open playlist {playlist_name}: {e.cause}")
                self.report.finalize(RunState.ABORTED)
                return self.report

        reconcile_report = self.reconciler.reconcile(matches, playlist, deadline=deadline)
        self.report.reconcile = reconcile_report

        if reconcile_report.aborted:
            self.report.add_error(f"Import aborted: {reconcile_report.fatal_cause}")
            self.report.finalize(RunState.ABORTED)
        else:
            self.report.finalize(RunState.DONE)

        return self.report

    def log_summary(self):
        """Log a summary of the finished run."""
        report = self.report
        self.logger.info("\n" + "=" * 60)
        self.logger.info("IMPORT ABORTED" if report.state == RunState.ABORTED else "IMPORT COMPLETE")
        self.logger.info("=" * 60)
        self.logger.info(f"Local tracks: {report.local_tracks}")
        self.logger.info(f"Exact matches: {report.exact_matches}")
        self.logger.info(f"Fuzzy matches: {report.fuzzy_matches}")

        changes = report.reconcile
        if changes:
            self.logger.info(f"Added: {changes.added}")
            self.logger.info(f"Already in playlist: {changes.already_present}")
            self.logger.info(f"Not matched: {changes.unmatched}")
            self.logger.info(f"Search failures: {changes.failed}")
            if changes.aborted:
                self.logger.error(f"Fatal: {changes.fatal_cause} ({changes.pending} tracks not added)")

        for error in report.errors:
            self.logger.debug(f"Error: {error}")


def build_parser() -> argparse.ArgumentParser:
    """Command-line arguments for the import tool."""
    parser = argparse.ArgumentParser(
        description="Import your local music library to Spotify"
    )
    parser.add_argument(
        '-p', '--path',
        type=str,
        required=True,
        help='Path to the directory with music'
    )
    parser.add_argument(
        '-c', '--client-id',
        type=str,
        default=None,
        help='Spotify Client ID (overrides the credentials file)'
    )
    parser.add_argument(
        '-s', '--secret',
        type=str,
        default=None,
        help='Spotify Client Secret (overrides the credentials file)'
    )
    parser.add_argument(
        '--redirect-uri',
        type=str,
        default=None,
        help=f'OAuth redirect URI (default: {DEFAULT_REDIRECT_URI})'
    )
    parser.add_argument(
        '--credentials',
        type=str,
        default='credentials.md',
        help='Path to credentials file (default: credentials.md)'
    )
    parser.add_argument(
        '--playlist',
        type=str,
        default=DEFAULT_PLAYLIST_NAME,
        help=f'Name of the target playlist (default: {DEFAULT_PLAYLIST_NAME})'
    )
    parser.add_argument(
        '--concurrency',
        type=int,
        default=DEFAULT_CONCURRENCY,
        help=f'Number of concurrent searches (default: {DEFAULT_CONCURRENCY})'
    )
    parser.add_argument(
        '--timeout',
        type=float,
        default=None,
        help='Stop sending new batches after this many seconds'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Match tracks without changing the playlist'
    )
    parser.add_argument(
        '--log-file',
        type=str,
        default=None,
        help='Path to log file (optional)'
    )
    parser.add_argument(
        '--report',
        type=str,
        default=None,
        help='Write a JSON report to this path (optional)'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Show debug output'
    )
    return parser


def main(argv=None):
    """Main entry point for CLI."""
    args = build_parser().parse_args(argv)

    try:
        service = ImportService(
            concurrency=args.concurrency,
            log_file=args.log_file,
            verbose=args.verbose
        )

        credentials = load_credentials(
            credentials_path=args.credentials,
            client_id=args.client_id,
            client_secret=args.secret,
            redirect_uri=args.redirect_uri
        )
        service.authenticate_client(SpotifyClient(credentials))

        report = service.run(
            scan_library(args.path),
            playlist_name=args.playlist,
            dry_run=args.dry_run,
            timeout=args.timeout
        )
        service.log_summary()

        if args.report:
            report.save_to_file(args.report)
            service.logger.info(f"Report saved to: {args.report}")

        if report.state == RunState.ABORTED:
            print("\nImport aborted")
            sys.exit(1)

        print("\nImport completed successfully!")
        sys.exit(0)

    except KeyboardInterrupt:
        print("\n\nImport interrupted by user")
        sys.exit(1)
    except Exception as e:
        print(f"\nImport failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
