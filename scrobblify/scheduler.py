import logging
import threading
from datetime import datetime, timedelta
from typing import Callable

from scrobblify.ingest import IngestionError, IngestionPipeline
from scrobblify.models import ScrobbleEvent, Snapshot, utcnow
from scrobblify.repository import Repository, RepositoryError
from scrobblify.scrobble_queue import ScrobbleQueue
from scrobblify.scrobbler import AlreadyScrobbled, Cache, NotPlaying, NotReady, Scrobble, Verdict, decide
from scrobblify.settings import FailurePolicy
from scrobblify.spotify import SourceFetchError, TrackResolutionError

log = logging.getLogger("scheduler")

DEFAULT_POLL_INTERVAL = 60
# slack allowed between a live scrobble's window and its echo in the history feed
HISTORY_ECHO_GRACE_SECS = 120

# scrobble record origins
ORIGIN_LIVE = "live"
ORIGIN_HISTORY = "history"


def _no_alert(level: str, title: str, message: str, extra: dict | None = None) -> None:
    pass


class Scheduler:
    """Drives the scrobble decision on a fixed cadence.

    Owns the single cached snapshot. One lock covers the cache and every
    fetch → decide → ingest sequence, and backfill runs under the same lock,
    so at most one decision is ever in flight.
    """

    def __init__(self, source, pipeline: IngestionPipeline, repository: Repository, *,
                 interval: float = DEFAULT_POLL_INTERVAL,
                 failure_policy: FailurePolicy = FailurePolicy.DROP,
                 queue: ScrobbleQueue | None = None,
                 alert: Callable[..., None] | None = None,
                 backfill_on_scrobble: bool = False,
                 clock: Callable[[], datetime] = utcnow):
        if failure_policy is FailurePolicy.QUEUE and queue is None:
            raise ValueError("the queue failure policy needs a ScrobbleQueue")
        self.source = source
        self.pipeline = pipeline
        self.repository = repository
        self.interval = interval
        self.failure_policy = failure_policy
        self.queue = queue
        self.alert = alert or _no_alert
        self.backfill_on_scrobble = backfill_on_scrobble
        self.clock = clock

        self._lock = threading.Lock()
        self._cached: Snapshot | None = None

    def status(self) -> Snapshot | None:
        with self._lock:
            return self._cached

    # -------- live polling --------
    def poll_once(self) -> Verdict | None:
        """Run one poll cycle. Returns the verdict, or None when the fetch failed."""
        with self._lock:
            try:
                current = self.source.currently_playing()
            except TrackResolutionError as e:
                log.debug("Nothing usable playing: %s", e)
                current = None
            except SourceFetchError as e:
                log.warning("Spotify fetch failed: %s", e)
                return None

            verdict = decide(current, self._cached, self.clock())

            if isinstance(verdict, Scrobble):
                self._scrobble_locked(verdict.event, current)
            elif isinstance(verdict, Cache):
                self._cached = current
                log.debug("Caching %s — %s", current.track.artist_names, current.track.title)
            elif isinstance(verdict, NotPlaying):
                self._cached = None
                log.debug("Nothing is playing")
            elif isinstance(verdict, AlreadyScrobbled):
                log.debug("Already scrobbled %s", current.track.title)
            elif isinstance(verdict, NotReady):
                log.debug("Not ready yet: %s", current.track.title)
            return verdict

    def _scrobble_locked(self, event: ScrobbleEvent, current: Snapshot) -> None:
        # advance even on failure so a failing track is not retried every cycle
        self._cached = current.mark_scrobbled()
        if self._ingest_locked(event, ORIGIN_LIVE):
            self._drain_queue_locked()
            if self.backfill_on_scrobble:
                self._backfill_locked()

    def _ingest_locked(self, event: ScrobbleEvent, origin: str) -> bool:
        try:
            self.pipeline.ingest(event, origin)
        except IngestionError as e:
            self._handle_failure(event, e)
            return False
        log.info("Scrobbled (%s): %s — %s @ %s", origin, event.track.artist_names,
                 event.track.title, event.timestamp.isoformat())
        return True

    def _handle_failure(self, event: ScrobbleEvent, err: IngestionError) -> None:
        extra = {"track_id": event.track.id, "timestamp": event.timestamp.isoformat()}
        if self.failure_policy is FailurePolicy.QUEUE:
            try:
                self.queue.enqueue(event)
            except OSError as e:
                log.error("Could not queue scrobble of %s (%s); dropping it: %s", event.track.title, e, err)
                self.alert("ERROR", "Scrobble dropped", f"{err}; queue write failed: {e}", extra)
                return
            log.warning("Ingestion failed; queued scrobble. queue=%s err=%s", self.queue.size(), err)
            self.alert("WARNING", "Scrobble queued", str(err), extra)
        else:
            log.error("Ingestion failed; dropping scrobble of %s: %s", event.track.title, err)
            self.alert("ERROR", "Scrobble dropped", str(err), extra)

    # -------- retry queue --------
    def drain_queue(self) -> int:
        with self._lock:
            return self._drain_queue_locked()

    def _drain_queue_locked(self) -> int:
        if self.queue is None:
            return 0
        drained = 0
        try:
            for pending in self.queue.drain_iter():
                try:
                    self.pipeline.ingest(pending)
                except IngestionError as e:
                    # Put it back and stop draining; try later
                    self.queue.requeue_front(pending)
                    log.info("Draining paused due to error: %s; queue size=%s", e, self.queue.size())
                    break
                drained += 1
        except OSError as e:
            log.error("Retry queue write failed while draining: %s", e)
        if drained:
            log.info("Drained %s queued scrobbles. Queue size now %s", drained, self.queue.size())
        return drained

    # -------- history backfill --------
    def backfill(self) -> int:
        with self._lock:
            return self._backfill_locked()

    def _backfill_locked(self) -> int:
        try:
            last = self.repository.last_scrobble()
        except RepositoryError as e:
            log.warning("Backfill skipped; cannot read last scrobble: %s", e)
            return 0
        if last is None:
            log.info("Backfill skipped; no scrobbles stored yet")
            return 0

        try:
            history = self.source.recently_played(last.timestamp)
        except SourceFetchError as e:
            log.warning("Backfill fetch failed: %s", e)
            return 0

        echo_until = last.timestamp + timedelta(seconds=last.duration_secs + HISTORY_ECHO_GRACE_SECS)
        # only a live scrobble has an echo; it is stamped at session start, the feed at play end
        echo_pending = last.origin == ORIGIN_LIVE
        ingested = 0
        for entry in sorted(history, key=lambda h: h.played_at):
            if entry.played_at <= last.timestamp:
                continue
            if echo_pending and entry.track.id == last.track_id and entry.played_at <= echo_until:
                echo_pending = False
                log.debug("Skipping history echo of %s @ %s", entry.track.title, entry.played_at.isoformat())
                continue
            if self._ingest_locked(entry.to_event(), ORIGIN_HISTORY):
                ingested += 1
        log.info("Backfill ingested %s of %s history entries", ingested, len(history))
        return ingested

    # -------- loop --------
    def run(self, stop_event: threading.Event | None = None) -> None:
        """Backfill, then poll until ``stop_event`` is set (checked at the sleep boundary)."""
        stop_event = stop_event or threading.Event()
        log.info("Starting scrobbler. Poll interval: %ss, failure policy: %s",
                 self.interval, self.failure_policy.value)
        try:
            self.backfill()
        except Exception:
            log.exception("Unexpected error during startup backfill")
        while not stop_event.is_set():
            try:
                self.poll_once()
            except Exception:
                log.exception("Unexpected error during poll cycle")
            stop_event.wait(self.interval)
        log.info("Scrobbler stopped")
