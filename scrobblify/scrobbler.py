import logging
from dataclasses import dataclass
from datetime import datetime

from scrobblify.models import ScrobbleEvent, Snapshot, utcnow

log = logging.getLogger("scrobbler")

SCROBBLE_LISTENING_MIN_SECS = 180


# -------------------------
# Verdicts
# -------------------------
@dataclass(frozen=True)
class Scrobble:
    event: ScrobbleEvent


@dataclass(frozen=True)
class Cache:
    pass


@dataclass(frozen=True)
class NotPlaying:
    pass


@dataclass(frozen=True)
class AlreadyScrobbled:
    pass


@dataclass(frozen=True)
class NotReady:
    pass


Verdict = Scrobble | Cache | NotPlaying | AlreadyScrobbled | NotReady


def threshold(duration_secs: float) -> float:
    """Seconds of listening after which a session counts: half the track or 180s, whichever comes first."""
    return min(duration_secs / 2, SCROBBLE_LISTENING_MIN_SECS)


def decide(current: Snapshot | None, cached: Snapshot | None, now: datetime | None = None) -> Verdict:
    """Decide what to do with a freshly polled snapshot given the cached one.

    Pure apart from reading the clock; pass ``now`` to pin it.
    """
    if current is None or current.track is None:
        return NotPlaying()

    if cached is None or cached.track is None:
        return Cache()

    same_session = current.same_session(cached)
    if same_session and cached.scrobbled:
        return AlreadyScrobbled()
    if not same_session:
        # the previous session never qualified and is dropped
        return Cache()

    started_at = cached.timestamp or current.timestamp
    if started_at is None:
        return NotReady()

    now = now or utcnow()
    elapsed = (now - started_at).total_seconds()
    if elapsed < 0:
        log.warning("Clock skew: session started at %s but now is %s; treating as not ready",
                    started_at.isoformat(), now.isoformat())
        return NotReady()

    duration = current.track.duration_secs
    if elapsed >= threshold(duration):
        return Scrobble(ScrobbleEvent(timestamp=started_at, duration_secs=duration, track=current.track))
    return NotReady()
