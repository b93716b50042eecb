"""Unit tests for import service."""

import pytest
import json
import threading
import time
from unittest.mock import Mock, patch
from spotify_import.catalog import build_catalog
from spotify_import.exceptions import FatalError, SearchFailed
from spotify_import.import_service import ImportReport, ImportService, RunState, main
from spotify_import.models import Confidence, LocalCatalog, LocalTrack, MatchResult, RemoteCandidate
from spotify_import.reconciler import PlaylistReconciler
from spotipy.exceptions import SpotifyOauthError
from spotify_import.spotify_client import SpotifyClient, SpotifyPlaylist
from spotify_import.utils.credentials import Credentials


TAGS = [
    ("Yesterday", "The Beatles", "Help!"),
    ("Paranoid Android", "Radiohead", "OK Computer"),
    ("Unknown Song", "Unknown Band", None),
    ("yesterday", "the beatles", "1"),
    ("", "No Title", None),
]

CATALOG_RESULTS = {
    'track:"Yesterday" artist:"The Beatles"': [
        RemoteCandidate("a1", "Yesterday", "The Beatles"),
    ],
    'track:"Paranoid Android" artist:"Radiohead"': [
        RemoteCandidate("r1", "Paranoid Android - Remastered", "Radiohead"),
    ],
    'track:"Unknown Song" artist:"Unknown Band"': [],
}


class FakePlaylist:
    """In-memory playlist."""

    def __init__(self, existing=()):
        self.playlist_id = "p1"
        self.tracks = set(existing)
        self.add_calls = []

    def list_tracks(self):
        return set(self.tracks)

    def add_tracks(self, ids):
        self.add_calls.append(list(ids))
        self.tracks.update(ids)


@pytest.fixture
def mock_spotify_client():
    """Create a mock Spotify client answering searches from a table."""
    client = Mock(spec=SpotifyClient)
    client.query.side_effect = lambda q: CATALOG_RESULTS.get(q, [])
    return client


@pytest.fixture
def import_service(mock_spotify_client):
    """Create an authenticated ImportService instance."""
    service = ImportService(reconciler=PlaylistReconciler(sleep=Mock()))
    service.authenticate_client(mock_spotify_client)
    return service


def match(title, remote_id, confidence, error=None):
    return MatchResult(
        local=LocalTrack(title, "Artist"),
        remote_id=remote_id,
        confidence=confidence,
        error=error
    )


class TestImportReport:
    """Test cases for ImportReport."""
    
    def test_init(self):
        """Test ImportReport initialization."""
        report = ImportReport()
        
        assert report.state == RunState.SCANNING
        assert report.tracks_matched == 0
        assert report.reconcile is None
        assert report.start_time is not None
        assert report.end_time is None
    
    def test_add_match(self):
        """Test recording match outcomes."""
        report = ImportReport()
        
        report.add_match(match("a", "1", Confidence.EXACT))
        report.add_match(match("b", "2", Confidence.FUZZY))
        report.add_match(match("c", None, Confidence.NONE))
        report.add_match(match("d", None, Confidence.NONE, error="HTTP 500"))
        
        assert report.exact_matches == 1
        assert report.fuzzy_matches == 1
        assert report.tracks_matched == 2
        assert report.missing_tracks == [{'title': 'c', 'artist': 'Artist', 'album': None}]
        assert len(report.errors) == 1
    
    def test_add_catalog(self):
        """Test recording catalog counts."""
        report = ImportReport()
        catalog = LocalCatalog(tracks=(LocalTrack("a", "b"),), skipped=2, duplicates=3)
        
        report.add_catalog(catalog)
        
        assert report.local_tracks == 1
        assert report.skipped_files == 2
        assert report.duplicate_tags == 3
    
    def test_to_dict_and_save(self, tmp_path):
        """Test serializing the report."""
        report = ImportReport()
        report.local_tracks = 4
        report.add_match(match("a", "1", Confidence.EXACT))
        report.finalize(RunState.DONE)
        
        filepath = tmp_path / "report.json"
        report.save_to_file(str(filepath))
        
        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)
        
        assert data['state'] == 'done'
        assert data['tracks_matched'] == 1
        assert data['match_rate'] == "25.00%"
        assert data['playlist_changes'] is None
        assert data['duration_seconds'] is not None


class TestImportService:
    """Test cases for ImportService."""
    
    def test_init(self):
        """Test ImportService initialization."""
        service = ImportService()
        
        assert service.concurrency == 5
        assert service.spotify_client is None
        assert service.matcher is None
        assert service.reconciler.batch_size == 100
        assert service.state == RunState.SCANNING
    
    def test_invalid_concurrency(self):
        """Test validation of the worker count."""
        with pytest.raises(ValueError):
            ImportService(concurrency=0)
    
    def test_authenticate_client_failure(self):
        """Test authentication failure is recorded and re-raised."""
        client = Mock(spec=SpotifyClient)
        client.authenticate_user.side_effect = FatalError("bad credentials")
        service = ImportService()
        
        with pytest.raises(FatalError):
            service.authenticate_client(client)
        
        assert service.matcher is None
        assert len(service.report.errors) == 1
    
    def test_run_requires_authentication(self):
        """Test running before authentication."""
        with pytest.raises(FatalError, match="Not authenticated"):
            ImportService().run(TAGS)
    
    def test_run_end_to_end(self, import_service):
        """Test a full run against an existing playlist."""
        playlist = FakePlaylist(existing={"r1"})
        
        report = import_service.run(TAGS, playlist=playlist)
        
        assert report.state == RunState.DONE
        assert report.local_tracks == 3
        assert report.skipped_files == 1
        assert report.duplicate_tags == 1
        assert report.exact_matches == 1
        assert report.fuzzy_matches == 1
        assert report.reconcile.added == 1
        assert report.reconcile.already_present == 1
        assert report.reconcile.unmatched == 1
        assert playlist.add_calls == [["a1"]]
    
    def test_run_twice_is_idempotent(self, mock_spotify_client):
        """Test that a second run adds nothing."""
        playlist = FakePlaylist()
        service1 = ImportService()
        service1.authenticate_client(mock_spotify_client)
        service2 = ImportService()
        service2.authenticate_client(mock_spotify_client)
        
        first = service1.run(TAGS, playlist=playlist)
        second = service2.run(TAGS, playlist=playlist)
        
        assert first.reconcile.added == 2
        assert second.reconcile.added == 0
        assert second.reconcile.already_present == 2
    
    def test_search_failures_are_counted(self, import_service, mock_spotify_client):
        """Test that a failing search doesn't stop the run."""
        def query(q):
            if "Radiohead" in q:
                raise SearchFailed("HTTP 503: unavailable")
            return CATALOG_RESULTS.get(q, [])
        mock_spotify_client.query.side_effect = query
        playlist = FakePlaylist()
        
        report = import_service.run(TAGS, playlist=playlist)
        
        assert report.state == RunState.DONE
        assert report.reconcile.failed == 1
        assert report.reconcile.added == 1
        assert any("Paranoid Android" in e for e in report.errors)
    
    def test_results_keep_catalog_order(self, mock_spotify_client):
        """Test that concurrent searches are re-sorted into catalog order."""
        tags = [(f"Song {i}", "Band", None) for i in range(20)]
        
        def query(q):
            # Earlier tracks finish later
            index = int(q.split('"')[1].split()[1])
            time.sleep((20 - index) * 0.001)
            return [RemoteCandidate(f"id{index}", f"Song {index}", "Band")]
        mock_spotify_client.query.side_effect = query
        service = ImportService(concurrency=5)
        service.authenticate_client(mock_spotify_client)
        
        matches = service.resolve_matches(build_catalog(tags))
        
        assert [m.remote_id for m in matches] == [f"id{i}" for i in range(20)]
    
    def test_concurrency_is_bounded(self, mock_spotify_client):
        """Test that no more than `concurrency` searches run at once."""
        lock = threading.Lock()
        active = {'now': 0, 'max': 0}
        
        def query(q):
            with lock:
                active['now'] += 1
                active['max'] = max(active['max'], active['now'])
            time.sleep(0.01)
            with lock:
                active['now'] -= 1
            return []
        mock_spotify_client.query.side_effect = query
        service = ImportService(concurrency=2)
        service.authenticate_client(mock_spotify_client)
        
        service.run([(f"Song {i}", "Band", None) for i in range(10)], dry_run=True)
        
        assert active['max'] <= 2
    
    def test_dry_run_does_not_touch_playlist(self, import_service, mock_spotify_client):
        """Test that dry runs never look up or change the playlist."""
        report = import_service.run(TAGS, dry_run=True)
        
        assert report.state == RunState.DONE
        assert report.dry_run
        assert report.reconcile is None
        assert report.tracks_matched == 2
        mock_spotify_client.find_playlist_by_name.assert_not_called()
        mock_spotify_client.create_playlist.assert_not_called()
        mock_spotify_client.add_tracks.assert_not_called()
    
    def test_creates_playlist_when_missing(self, import_service, mock_spotify_client):
        """Test that the target playlist is created if it does not exist."""
        mock_spotify_client.find_playlist_by_name.return_value = None
        mock_spotify_client.create_playlist.return_value = "new_playlist"
        mock_spotify_client.get_playlist_tracks.return_value = set()
        
        report = import_service.run(TAGS)
        
        assert report.state == RunState.DONE
        mock_spotify_client.find_playlist_by_name.assert_called_once_with("Imported")
        assert mock_spotify_client.create_playlist.call_args.args[0] == "Imported"
        mock_spotify_client.add_tracks.assert_called_once_with("new_playlist", ["a1", "r1"])
    
    def test_uses_existing_playlist(self, import_service, mock_spotify_client):
        """Test that an existing playlist is reused."""
        mock_spotify_client.find_playlist_by_name.return_value = {
            'id': 'existing', 'name': 'Mine', 'tracks_count': 1
        }
        mock_spotify_client.get_playlist_tracks.return_value = {"a1"}
        
        report = import_service.run(TAGS, playlist_name="Mine")
        
        mock_spotify_client.create_playlist.assert_not_called()
        mock_spotify_client.add_tracks.assert_called_once_with("existing", ["r1"])
        assert report.reconcile.already_present == 1
    
    def test_playlist_lookup_failure_aborts(self, import_service, mock_spotify_client):
        """Test that a fatal error opening the playlist aborts the run."""
        mock_spotify_client.find_playlist_by_name.side_effect = FatalError("HTTP 401: expired")
        
        report = import_service.run(TAGS)
        
        assert report.state == RunState.ABORTED
        assert report.reconcile is None
        assert any("expired" in e for e in report.errors)
    
    def test_fatal_batch_failure_aborts(self, import_service):
        """Test that a fatal reconcile failure marks the run aborted."""
        playlist = Mock()
        playlist.list_tracks.return_value = set()
        playlist.add_tracks.side_effect = FatalError("HTTP 403: forbidden")
        
        report = import_service.run(TAGS, playlist=playlist)
        
        assert report.state == RunState.ABORTED
        assert report.reconcile.aborted
        assert report.reconcile.fatal_cause == "HTTP 403: forbidden"
        assert "Import aborted: HTTP 403: forbidden" in report.errors
    
    def test_oauth_errors_do_not_crash_the_run(self):
        """Test that token failures count as search failures and abort reconciliation cleanly."""
        def search(q, limit, type):
            if "Radiohead" in q:
                raise SpotifyOauthError("error: invalid_grant")
            return {'tracks': {'items': [
                {'id': 'a1', 'name': 'Yesterday', 'artists': [{'name': 'The Beatles'}]}
            ]}}
        
        client = SpotifyClient(Credentials("id", "secret", "http://localhost:8888/callback"))
        client.sp = Mock()
        client.sp.search.side_effect = search
        client.sp.playlist_items.return_value = {'items': [], 'next': None}
        client.sp.playlist_add_items.side_effect = SpotifyOauthError("error: invalid_grant")
        service = ImportService(reconciler=PlaylistReconciler(sleep=Mock()))
        with patch.object(SpotifyClient, 'authenticate_user'):
            service.authenticate_client(client)
        
        report = service.run(
            [("Paranoid Android", "Radiohead", None), ("Yesterday", "The Beatles", None)],
            playlist=SpotifyPlaylist(client, "p1")
        )
        
        assert report.reconcile.failed == 1
        assert report.state == RunState.ABORTED
        assert "authorization error" in report.reconcile.fatal_cause
        assert client.sp.playlist_add_items.call_count == 1
    
    def test_log_summary(self, import_service):
        """Test that the summary can be logged after a run."""
        import_service.run(TAGS, playlist=FakePlaylist())
        
        with patch.object(import_service.logger, 'info') as mock_info:
            import_service.log_summary()
        
        messages = [c.args[0] for c in mock_info.call_args_list]
        assert "IMPORT COMPLETE" in messages
        assert "Added: 2" in messages


class TestMain:
    """Test cases for the command-line entry point."""
    
    @patch('spotify_import.import_service.scan_library')
    @patch('spotify_import.import_service.SpotifyClient')
    def test_main_success(self, mock_client_class, mock_scan, mock_spotify_client, tmp_path):
        """Test a successful run exits with 0 and writes the report."""
        mock_client_class.return_value = mock_spotify_client
        mock_spotify_client.find_playlist_by_name.return_value = None
        mock_spotify_client.create_playlist.return_value = "p1"
        mock_spotify_client.get_playlist_tracks.return_value = set()
        mock_scan.return_value = iter(TAGS)
        report_path = tmp_path / "report.json"
        
        with pytest.raises(SystemExit) as exc_info:
            main([
                '--path', str(tmp_path),
                '--client-id', 'id',
                '--secret', 'secret',
                '--playlist', 'My Import',
                '--report', str(report_path),
            ])
        
        assert exc_info.value.code == 0
        mock_scan.assert_called_once_with(str(tmp_path))
        credentials = mock_client_class.call_args.args[0]
        assert credentials.client_id == 'id'
        assert json.loads(report_path.read_text(encoding='utf-8'))['playlist'] == 'My Import'
    
    @patch('spotify_import.import_service.scan_library')
    @patch('spotify_import.import_service.SpotifyClient')
    def test_main_fatal_abort_exit_code(self, mock_client_class, mock_scan, mock_spotify_client, tmp_path):
        """Test a fatal abort exits non-zero."""
        mock_client_class.return_value = mock_spotify_client
        mock_spotify_client.find_playlist_by_name.side_effect = FatalError("HTTP 403: forbidden")
        mock_scan.return_value = iter(TAGS)
        
        with pytest.raises(SystemExit) as exc_info:
            main(['--path', str(tmp_path), '--client-id', 'id', '--secret', 'secret'])
        
        assert exc_info.value.code == 1
    
    @patch('spotify_import.import_service.scan_library')
    @patch('spotify_import.import_service.SpotifyClient')
    def test_main_unwritable_report_exit_code(self, mock_client_class, mock_scan, mock_spotify_client, tmp_path, capsys):
        """Test that an error saving the report exits non-zero without a traceback."""
        mock_client_class.return_value = mock_spotify_client
        mock_spotify_client.find_playlist_by_name.return_value = {'id': 'p1', 'name': 'Imported', 'tracks_count': 0}
        mock_spotify_client.get_playlist_tracks.return_value = set()
        mock_scan.return_value = iter(TAGS)
        
        with patch.object(ImportReport, 'save_to_file', side_effect=PermissionError("read-only file system")):
            with pytest.raises(SystemExit) as exc_info:
                main([
                    '--path', str(tmp_path),
                    '--client-id', 'id',
                    '--secret', 'secret',
                    '--report', str(tmp_path / 'report.json'),
                ])
        
        assert exc_info.value.code == 1
        assert "Import failed: read-only file system" in capsys.readouterr().out
    
    def test_main_missing_credentials(self, tmp_path):
        """Test missing credentials exit non-zero."""
        with pytest.raises(SystemExit) as exc_info:
            main([
                '--path', str(tmp_path),
                '--credentials', str(tmp_path / 'missing.md'),
            ])
        
        assert exc_info.value.code == 1
