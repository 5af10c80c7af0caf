"""
Feed change detection.

A FeedWatcher polls one feed on a fixed interval, remembers the newest
publication time it has seen and hands every batch of newer entries to its
listeners, newest first. At most one fetch per watcher is ever in flight.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Protocol

from webex_status.config import StartupPolicy
from webex_status.errors import NetworkError
from webex_status.models import FeedEntry

logger = logging.getLogger(__name__)

EntriesCallback = Callable[[list[FeedEntry]], Awaitable[None] | None]
ErrorCallback = Callable[[Exception], Awaitable[None] | None]


class Fetcher(Protocol):
    """Anything able to fetch a feed, newest entries first."""

    async def fetch(self, url: str, feed_name: str = "") -> list[FeedEntry]:
        ...


class WatcherStatus(str, Enum):
    """Lifecycle state of a FeedWatcher."""

    STOPPED = "stopped"
    POLLING_IDLE = "polling_idle"
    POLLING_INFLIGHT = "polling_inflight"


@dataclass
class WatcherState:
    """
    Change detection state of one watcher.

    Attributes
    ----------
    last_seen_timestamp : datetime | None
        Newest publication time seen so far. Never moves backwards.
    last_seen_title : str | None
        Title of the entry that set ``last_seen_timestamp``.
    """

    last_seen_timestamp: datetime | None = None
    last_seen_title: str | None = None

    def advance(self, entry: FeedEntry) -> None:
        """Move the baseline forward to ``entry`` if it is newer."""
        if self.last_seen_timestamp is None or entry.published_at > self.last_seen_timestamp:
            self.last_seen_timestamp = entry.published_at
            self.last_seen_title = entry.title

    def is_new(self, entry: FeedEntry) -> bool:
        """Entries exactly at the baseline count as already seen."""
        return self.last_seen_timestamp is None or entry.published_at > self.last_seen_timestamp


class FeedWatcher:
    """
    Polling state machine for a single feed.

    Listeners registered with :meth:`on_entries` receive each batch of new
    entries; listeners registered with :meth:`on_error` receive fetch
    failures. Listeners may be plain functions or coroutine functions and
    are awaited before the next poll can start, so batches from one feed are
    always handled in order.
    """

    def __init__(
        self,
        name: str,
        url: str,
        fetcher: Fetcher,
        interval: float = 300,
        startup_policy: StartupPolicy = StartupPolicy.SUPPRESS,
        fetch_timeout: float | None = None,
        max_entry_age: timedelta | None = None,
    ):
        """
        Initialize the watcher.

        Parameters
        ----------
        name : str
            Feed name, used in logs and passed to the fetcher.
        url : str
            Feed URL.
        fetcher : Fetcher
            Collaborator performing the HTTP request and parsing.
        interval : float
            Seconds between polls.
        startup_policy : StartupPolicy
            Whether entries present at startup are emitted.
        fetch_timeout : float | None
            Upper bound for one fetch; defaults to the poll interval.
        max_entry_age : timedelta | None
            New entries older than this are recorded as seen but not emitted.
        """
        if not url:
            raise ValueError("Feed URL is not defined")
        if interval <= 0:
            raise ValueError("Poll interval must be positive")

        self.name = name
        self.url = url
        self.fetcher = fetcher
        self.interval = interval
        self.startup_policy = startup_policy
        self.fetch_timeout = fetch_timeout or interval
        self.max_entry_age = max_entry_age

        self.state = WatcherState()
        self.status = WatcherStatus.STOPPED
        self._entry_listeners: list[EntriesCallback] = []
        self._error_listeners: list[ErrorCallback] = []
        self._ticker: asyncio.Task | None = None
        self._current_poll: asyncio.Task | None = None
        # Generation currently holding the fetch slot
        self._inflight: int | None = None
        self._generation = 0

    def on_entries(self, callback: EntriesCallback) -> None:
        """Register a listener for batches of new entries."""
        self._entry_listeners.append(callback)

    def on_error(self, callback: ErrorCallback) -> None:
        """Register a listener for poll failures."""
        self._error_listeners.append(callback)

    @property
    def running(self) -> bool:
        return self.status is not WatcherStatus.STOPPED

    async def start(self) -> None:
        """
        Establish the baseline and begin polling.

        Raises
        ------
        RuntimeError
            If the watcher is already running.
        FetchError
            If the baseline fetch fails. The watcher stays stopped.
        """
        if self.running:
            raise RuntimeError(f"Watcher '{self.name}' is already running")

        self.state = WatcherState()
        self._generation += 1
        generation = self._generation
        self.status = WatcherStatus.POLLING_INFLIGHT
        self._inflight = generation

        try:
            entries = await self._fetch()
        except BaseException:
            self._release(generation)
            if generation == self._generation:
                self.status = WatcherStatus.STOPPED
            raise

        if generation != self._generation:
            # stop() was called while the baseline was being fetched
            self._release(generation)
            return

        try:
            if self.startup_policy is StartupPolicy.EMIT:
                logger.info(
                    "Watcher '%s' started, forwarding %d existing entr%s",
                    self.name,
                    len(entries),
                    "y" if len(entries) == 1 else "ies",
                )
                await self._process(entries, generation)
            else:
                for entry in entries:
                    self.state.advance(entry)
                logger.info(
                    "Watcher '%s' started, baseline %s (%d existing entr%s)",
                    self.name,
                    self.state.last_seen_timestamp,
                    len(entries),
                    "y" if len(entries) == 1 else "ies",
                )
        finally:
            self._release(generation)

        if generation != self._generation:
            return
        self.status = WatcherStatus.POLLING_IDLE
        self._ticker = asyncio.create_task(self._tick_loop(), name=f"watch:{self.name}")

    def stop(self) -> None:
        """
        Stop polling. Safe to call repeatedly or before :meth:`start`.

        A fetch already in flight is allowed to finish but its result is
        discarded.
        """
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
        if self.status is not WatcherStatus.STOPPED:
            logger.info("Watcher '%s' stopped", self.name)
        self.status = WatcherStatus.STOPPED
        self._generation += 1

    async def poll(self) -> list[FeedEntry] | None:
        """
        Run one poll.

        Returns
        -------
        list[FeedEntry] | None
            The emitted batch (possibly empty), or None when the poll was
            skipped, failed or its result was discarded.
        """
        if self._inflight is not None:
            logger.debug("Poll of '%s' still in flight, skipping tick", self.name)
            return None
        if self.status is WatcherStatus.STOPPED:
            return None

        generation = self._generation
        self._inflight = generation
        self.status = WatcherStatus.POLLING_INFLIGHT
        try:
            try:
                entries = await self._fetch()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if generation != self._generation:
                    logger.debug("Discarding failed poll of stopped watcher '%s'", self.name)
                    return None
                logger.warning("Failed to poll feed '%s': %s", self.name, e)
                await self._notify(self._error_listeners, e)
                return None

            if generation != self._generation:
                logger.debug("Discarding poll result of stopped watcher '%s'", self.name)
                return None

            return await self._process(entries, generation)
        finally:
            self._release(generation)
            if generation == self._generation:
                self.status = WatcherStatus.POLLING_IDLE

    def _release(self, generation: int) -> None:
        # A poll outliving stop() must not free the slot of a restarted watcher
        if self._inflight == generation:
            self._inflight = None

    async def _fetch(self) -> list[FeedEntry]:
        try:
            return await asyncio.wait_for(
                self.fetcher.fetch(self.url, self.name), timeout=self.fetch_timeout
            )
        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"Fetching '{self.name}' exceeded {self.fetch_timeout}s"
            ) from e

    async def _process(self, entries: list[FeedEntry], generation: int) -> list[FeedEntry]:
        new_entries = [e for e in entries if self.state.is_new(e)]
        if not new_entries:
            logger.debug("No new entries in '%s'", self.name)
            return []

        # Feed order is not trusted, always hand out newest first
        new_entries.sort(key=lambda e: e.published_at, reverse=True)
        self.state.advance(new_entries[0])

        if self.max_entry_age is not None:
            cutoff = datetime.now(timezone.utc) - self.max_entry_age
            stale = [e for e in new_entries if e.published_at < cutoff]
            if stale:
                logger.info(
                    "Ignoring %d entr%s older than %s in '%s'",
                    len(stale),
                    "y" if len(stale) == 1 else "ies",
                    self.max_entry_age,
                    self.name,
                )
                new_entries = [e for e in new_entries if e.published_at >= cutoff]
            if not new_entries:
                return []

        logger.info(
            "Found %d new entr%s in '%s'",
            len(new_entries),
            "y" if len(new_entries) == 1 else "ies",
            self.name,
        )
        if generation == self._generation:
            await self._notify(self._entry_listeners, new_entries)
        return new_entries

    async def _notify(self, listeners: list, payload: object) -> None:
        for listener in listeners:
            try:
                result = listener(payload)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Listener for '%s' failed", self.name)

    async def wait_idle(self) -> None:
        """Wait for a poll started by the ticker to finish."""
        if self._current_poll is not None and not self._current_poll.done():
            await asyncio.gather(self._current_poll, return_exceptions=True)

    async def _tick_loop(self) -> None:
        """Fire a poll every interval; ticks landing on a running poll are skipped."""
        while True:
            await asyncio.sleep(self.interval)
            if self._current_poll is not None and not self._current_poll.done():
                logger.debug("Poll of '%s' overran the interval, skipping tick", self.name)
                continue
            self._current_poll = asyncio.create_task(self.poll(), name=f"poll:{self.name}")
