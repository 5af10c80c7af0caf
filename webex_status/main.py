"""
Main entry point for Webex Status Watcher.

Verifies the Webex and Jira credentials, starts one watcher per feed and
runs until interrupted.
"""

import argparse
import asyncio
import logging
import signal
import sys
from datetime import timedelta
from pathlib import Path
from urllib.parse import urlparse

import coloredlogs

from webex_status.classifier import Classifier, ClusterFilter
from webex_status.config import AppConfig, FeedConfig, FeedKind, load_config
from webex_status.dispatcher import Dispatcher, SerializedDispatcher
from webex_status.errors import (
    AuthError,
    RoomMembershipError,
    WatcherError,
)
from webex_status.jira import JiraClient, TicketLinker
from webex_status.models import FeedEntry
from webex_status.notifier import ChatClient
from webex_status.pipeline import EventPipeline, rooms_by_kind
from webex_status.rss_parser import FeedFetcher
from webex_status.watcher import FeedWatcher
from webex_status.webex import WebexClient

logger = logging.getLogger(__name__)

REQUIRED_ROOMS = ("incident", "maintenance", "announcement")
OPTIONAL_ROOMS = ("api", "device")

# Feeds that can only run when their optional room is available
FEED_ROOMS = {FeedKind.API: "api", FeedKind.DEVICE: "device"}


def redact_proxy_url(proxy_url: str) -> str:
    """
    Redact credentials from a proxy URL for safe logging.

    Parameters
    ----------
    proxy_url : str
        The proxy URL potentially containing credentials.

    Returns
    -------
    str
        The proxy URL with password redacted.
    """
    try:
        parsed = urlparse(proxy_url)
        if parsed.password:
            # Reconstruct URL with redacted password
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            if parsed.username:
                netloc = f"{parsed.username}:****@{netloc}"
            return f"{parsed.scheme}://{netloc}{parsed.path}"
        return proxy_url
    except ValueError:
        return "<proxy url>"


class StatusWatcherApp:
    """
    Main application.

    Coordinates the feed watchers, the processing pipeline and the
    external clients. Collaborators can be injected for testing.
    """

    def __init__(
        self,
        config: AppConfig,
        fetcher: FeedFetcher | None = None,
        chat: ChatClient | None = None,
        jira: JiraClient | None = None,
    ):
        """
        Initialize the application.

        Parameters
        ----------
        config : AppConfig
            Validated configuration.
        fetcher : FeedFetcher | None
            Feed fetcher, built from the configuration when None.
        chat : ChatClient | None
            Chat client, a WebexClient when None.
        jira : JiraClient | None
            Jira client, built when Jira is configured and None is given.
        """
        self.config = config
        defaults = config.defaults

        if defaults.proxy:
            logger.info("Using proxy: %s", redact_proxy_url(defaults.proxy))

        self.fetcher = fetcher or FeedFetcher(
            timeout=defaults.request_timeout,
            user_agent=defaults.user_agent,
            proxy_url=defaults.proxy,
        )
        self.chat = chat or WebexClient(
            config.webex, timeout=defaults.request_timeout, proxy_url=defaults.proxy
        )
        self.jira = jira
        if self.jira is None and config.jira is not None:
            self.jira = JiraClient(
                config.jira, timeout=defaults.request_timeout, proxy_url=defaults.proxy
            )

        self.enabled_rooms: dict[str, str] = {}
        self.pipeline: EventPipeline | None = None
        self.watchers: list[FeedWatcher] = []
        self._stop_event = asyncio.Event()
        self._stopped = False

    async def verify(self) -> TicketLinker | None:
        """
        Run the startup checks.

        Returns
        -------
        TicketLinker | None
            The Jira linker, or None when Jira is off or unreachable.

        Raises
        ------
        AuthError
            If the Webex token is not usable.
        RoomMembershipError
            If the bot cannot see a required room.
        """
        try:
            bot = await self.chat.get_self()
        except WatcherError as e:
            raise AuthError(f"Unable to load Webex bot, check token: {e}") from e
        emails = bot.get("emails") or ["?"]
        logger.info("Bot loaded: %s (%s)", bot.get("displayName", "?"), emails[0])

        linker = None
        if self.jira is not None and self.config.jira is not None:
            try:
                project = await self.jira.get_project(self.config.jira.project)
                logger.info("Jira project: %s", project.get("name", self.config.jira.project))
                linker = TicketLinker(self.jira, self.config.jira)
            except WatcherError as e:
                logger.warning("Unable to verify Jira project, ticketing disabled: %s", e)

        rooms = self.config.webex.rooms
        for name in REQUIRED_ROOMS:
            room_id = getattr(rooms, name)
            try:
                room = await self.chat.get_room(room_id)
            except WatcherError as e:
                raise RoomMembershipError(name, room_id) from e
            logger.info("%s room: %s", name.capitalize(), room.get("title", room_id))
            self.enabled_rooms[name] = room_id

        for name in OPTIONAL_ROOMS:
            room_id = getattr(rooms, name)
            if room_id is None:
                logger.debug("No %s room configured", name)
                continue
            try:
                room = await self.chat.get_room(room_id)
            except WatcherError as e:
                logger.warning("Bot is not a member of the %s room, disabled: %s", name, e)
                continue
            logger.info("%s room: %s", name.capitalize(), room.get("title", room_id))
            self.enabled_rooms[name] = room_id

        return linker

    def _feed_enabled(self, feed: FeedConfig) -> bool:
        if not feed.enabled:
            return False
        room_name = FEED_ROOMS.get(feed.kind)
        if room_name is not None and room_name not in self.enabled_rooms:
            logger.warning("Feed '%s' disabled, its %s room is unavailable", feed.name, room_name)
            return False
        return True

    def _build_watcher(self, feed: FeedConfig) -> FeedWatcher:
        defaults = self.config.defaults
        max_age = None
        if defaults.max_entry_age_days:
            max_age = timedelta(days=defaults.max_entry_age_days)

        watcher = FeedWatcher(
            name=feed.name,
            url=feed.url,
            fetcher=self.fetcher,
            interval=feed.check_interval or defaults.check_interval,
            startup_policy=defaults.startup_policy,
            fetch_timeout=defaults.request_timeout,
            max_entry_age=max_age,
        )

        async def handle_entries(entries: list[FeedEntry]) -> None:
            if self.pipeline is None:
                raise RuntimeError("Pipeline not initialized")
            await self.pipeline.process_batch(entries, feed.kind)

        def handle_error(error: Exception) -> None:
            logger.error("Error watching feed '%s': %s", feed.name, error)

        watcher.on_entries(handle_entries)
        watcher.on_error(handle_error)
        return watcher

    async def start(self) -> None:
        """
        Verify collaborators and start all feed watchers.

        Raises
        ------
        WatcherError
            On a fatal startup failure, including a failed baseline fetch.
        """
        logger.info("Starting Webex Status Watcher")

        linker = await self.verify()

        enabled = set(self.enabled_rooms.values())
        rooms = {
            kind: room if room in enabled else None
            for kind, room in rooms_by_kind(self.config.webex.rooms).items()
        }

        cluster_filter = ClusterFilter(self.config.cluster_filter)
        if self.config.cluster_filter:
            logger.info("Loaded cluster filter: %s", ", ".join(self.config.cluster_filter))

        defaults = self.config.defaults
        self.pipeline = EventPipeline(
            sender=SerializedDispatcher(
                Dispatcher(
                    self.chat,
                    retry_count=defaults.retry_count,
                    retry_interval=defaults.retry_interval,
                )
            ),
            rooms=rooms,
            classifier=Classifier(),
            cluster_filter=cluster_filter,
            linker=linker,
        )

        for feed in self.config.feeds:
            if not self._feed_enabled(feed):
                continue
            watcher = self._build_watcher(feed)
            self.watchers.append(watcher)
            await watcher.start()
            logger.info("Started watching feed: %s", feed.name)

        logger.info("Startup complete, %d active feed(s)", len(self.watchers))

    async def run(self) -> None:
        """Start and block until :meth:`request_stop` is called."""
        await self.start()
        await self._stop_event.wait()

    def request_stop(self) -> None:
        """Ask :meth:`run` to return."""
        self._stop_event.set()

    async def stop(self) -> None:
        """Stop all watchers and close clients. Safe to call repeatedly."""
        if self._stopped:
            return
        self._stopped = True
        logger.info("Stopping Webex Status Watcher")
        self._stop_event.set()

        for watcher in self.watchers:
            watcher.stop()
        for watcher in self.watchers:
            await watcher.wait_idle()
        logger.debug("Feeds stopped")

        await self.fetcher.close()
        await self.chat.close()
        if self.jira is not None:
            await self.jira.close()

        logger.info("Webex Status Watcher stopped")


def setup_logging(verbose: bool = False) -> None:
    """
    Configure application logging.

    Parameters
    ----------
    verbose : bool
        If True, set log level to DEBUG.
    """
    level = logging.DEBUG if verbose else logging.INFO

    coloredlogs.install(
        level=level,
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Relay Webex status feeds to Webex rooms",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "-c",
        "--config",
        default="config.yaml",
        help="Path to configuration file",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args()

    setup_logging(args.verbose)

    try:
        config = load_config(Path(args.config))
    except WatcherError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(e.exit_code)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    app = StatusWatcherApp(config)

    def signal_handler():
        logger.info("Received shutdown signal")
        app.request_stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    exit_code = 0
    try:
        loop.run_until_complete(app.run())
    except WatcherError as e:
        logger.error("Startup failed: %s", e)
        exit_code = e.exit_code
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        loop.run_until_complete(app.stop())
        loop.close()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
