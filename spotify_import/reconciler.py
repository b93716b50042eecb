"""Adds matched tracks to a playlist, skipping what is already there."""

import time
from typing import List, Optional, Sequence, Set
from spotify_import.capabilities import PlaylistCapability
from spotify_import.models import MatchResult, PlaylistState, ReconcileReport
from spotify_import.retry import RetryOutcome, RetryStatus, retry_call
from spotify_import.utils.logger import get_logger


logger = get_logger()


class PlaylistReconciler:
    """
    Computes the difference between matched tracks and a playlist's current
    contents and applies it in sequential batches.
    """

    # A maximum of 100 items can be added in one request
    BATCH_SIZE = 100
    MAX_RETRIES = 3  # after the first attempt
    BASE_DELAY = 0.5  # seconds, doubled on every retry

    def __init__(
        self,
        batch_size: int = BATCH_SIZE,
        max_retries: int = MAX_RETRIES,
        base_delay: float = BASE_DELAY,
        sleep=time.sleep,
        clock=time.monotonic
    ):
        """
        Initialize reconciler.

        Args:
            batch_size: Maximum number of IDs per add request
            max_retries: Retries per batch after a transient failure
            base_delay: Backoff delay after the first failed attempt
            sleep: Sleep function used between retries
            clock: Monotonic clock used for the deadline check
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.batch_size = batch_size
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep
        self._clock = clock
        self.state: Optional[PlaylistState] = None

    def reconcile(
        self,
        matches: Sequence[MatchResult],
        playlist: PlaylistCapability,
        deadline: Optional[float] = None
    ) -> ReconcileReport:
        """
        Add every matched remote ID that is not yet in the playlist.

        Args:
            matches: Match results in catalog order
            playlist: Target playlist
            deadline: Optional clock value after which no new batch is issued

        Returns:
            ReconcileReport with the run's counts
        """
        report = ReconcileReport()

        matched: List[MatchResult] = []
        for match in matches:
            if match.search_failed:
                report.failed += 1
            elif not match.is_matched:
                report.unmatched += 1
            else:
                matched.append(match)

        listing = retry_call(
            playlist.list_tracks,
            max_attempts=self.max_retries + 1,
            base_delay=self.base_delay,
            sleep=self._sleep
        )
        if not listing.ok:
            cause = self._failure_cause(listing)
            logger.error(f"Could not read playlist contents: {cause}")
            report.aborted = True
            report.fatal_cause = cause
            report.pending = len({m.remote_id for m in matched})
            return report

        self.state = PlaylistState(
            playlist_id=getattr(playlist, 'playlist_id', ''),
            existing_remote_ids=set(listing.value)
        )
        to_add = self._plan(matched, report)

        logger.info(
            f"{len(to_add)} tracks to add, {report.already_present} already in playlist"
        )

        for start in range(0, len(to_add), self.batch_size):
            batch = to_add[start:start + self.batch_size]

            if deadline is not None and self._clock() >= deadline:
                logger.error("Timed out, no further batches will be sent")
                report.aborted = True
                report.fatal_cause = "timeout"
                report.pending = len(to_add) - start
                break

            outcome = retry_call(
                lambda: playlist.add_tracks(batch),
                max_attempts=self.max_retries + 1,
                base_delay=self.base_delay,
                sleep=self._sleep
            )

            if not outcome.ok:
                cause = self._failure_cause(outcome)
                logger.error(f"Aborting after batch failure: {cause}")
                report.aborted = True
                report.fatal_cause = cause
                report.pending = len(to_add) - start
                break

            self.state.record_added(batch)
            report.added += len(batch)
            logger.debug(f"Added {len(batch)} tracks ({report.added}/{len(to_add)})")

        return report

    @staticmethod
    def _failure_cause(outcome: RetryOutcome) -> str:
        cause = outcome.error.cause
        if outcome.status == RetryStatus.TRANSIENT_EXHAUSTED:
            # Exhausted retries are escalated to a fatal failure
            return f"retries exhausted: {cause}"
        return cause

    def _plan(self, matched: Sequence[MatchResult], report: ReconcileReport) -> List[str]:
        """Remote IDs to add, in match order, each at most once."""
        queued: Set[str] = set()
        to_add: List[str] = []
        for match in matched:
            remote_id = match.remote_id
            if remote_id in self.state.existing_remote_ids:
                report.already_present += 1
            elif remote_id in queued:
                report.duplicates += 1
            else:
                queued.add(remote_id)
                to_add.append(remote_id)
        return to_add
