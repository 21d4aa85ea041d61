import argparse
import logging
import signal
import threading

from scrobblify.auth import AuthError, SpotifyAuth
from scrobblify.ingest import IngestionPipeline
from scrobblify.notifier import from_settings as alerter_from_settings
from scrobblify.repository import RepositoryError, SqliteRepository
from scrobblify.scheduler import Scheduler
from scrobblify.scrobble_queue import ScrobbleQueue
from scrobblify.settings import FailurePolicy, Settings
from scrobblify.spotify import SpotifyClient

log = logging.getLogger("scrobblify")


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,  # ensure our config is used even if libs pre-configure logging
    )


def build_auth(settings: Settings) -> SpotifyAuth:
    return SpotifyAuth(
        client_id=settings.spotify_client_id,
        client_secret=settings.spotify_client_secret,
        redirect_uri=settings.spotify_redirect_uri,
        cache_path=settings.token_cache_path,
        timeout=settings.source_timeout,
    )


def build_scheduler(settings: Settings, auth: SpotifyAuth) -> Scheduler:
    repository = SqliteRepository(settings.database_path)
    spotify = SpotifyClient(auth, timeout=settings.source_timeout)
    queue = None
    if settings.failure_policy is FailurePolicy.QUEUE:
        queue = ScrobbleQueue(settings.scrobble_cache_path, settings.scrobble_cache_limit)
    return Scheduler(
        spotify,
        IngestionPipeline(repository, spotify),
        repository,
        interval=settings.poll_interval,
        failure_policy=settings.failure_policy,
        queue=queue,
        alert=alerter_from_settings(settings),
        backfill_on_scrobble=settings.backfill_on_scrobble,
    )


def parse_args(argv=None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        prog="scrobblify",
        description="Record verified Spotify plays into a local SQLite store.",
    )
    sub = ap.add_subparsers(dest="command")
    sub.add_parser("run", help="Backfill from history, then poll forever (default)")
    sub.add_parser("backfill", help="Ingest recently played history once and exit")
    sub.add_parser("auth-url", help="Print the Spotify authorization URL")
    code = sub.add_parser("auth-code", help="Exchange an authorization code for a cached token")
    code.add_argument("code", help="The ?code= value Spotify redirected to the callback URI")
    args = ap.parse_args(argv)
    args.command = args.command or "run"
    return args


def main(argv=None) -> int:
    args = parse_args(argv)
    settings = Settings.from_environment()
    setup_logging(settings.log_level)
    settings.validate(log)

    auth = build_auth(settings)

    if args.command == "auth-url":
        print(auth.authorize_url())
        return 0

    if args.command == "auth-code":
        try:
            auth.exchange_code(args.code)
        except AuthError as e:
            raise SystemExit(f"Authorization failed: {e}")
        return 0

    if not auth.has_valid_auth():
        raise SystemExit("Spotify is not authorized yet. Run `scrobblify auth-url`, then `scrobblify auth-code CODE`.")

    try:
        scheduler = build_scheduler(settings, auth)
    except RepositoryError as e:
        raise SystemExit(f"Cannot open database: {e}")

    if args.command == "backfill":
        scheduler.backfill()
        return 0

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    log.info("Database: %s | Failure policy: %s", settings.database_path, settings.failure_policy.value)
    scheduler.alert("INFO", "Scrobbler started", f"Polling Spotify every {settings.poll_interval}s.")
    try:
        scheduler.run(stop)
    except KeyboardInterrupt:
        log.info("Shutting down…")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
