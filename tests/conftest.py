"""
Shared fixtures for Webex Status Watcher tests.

Provides common test fixtures for use across all test modules.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from webex_status.config import (
    AppConfig,
    FeedConfig,
    FeedKind,
    JiraConfig,
    RoomsConfig,
    WebexConfig,
)
from webex_status.models import FeedEntry


# Path to test fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"

BASE_TIME = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)

INCIDENT_BODY = (
    "<strong >investigating</strong > - Users may fail to join meetings.\r\n"
    "Engineers are engaged.<br />"
    '<font size="2"><strong>Locations:</strong> San Jose, Dallas </font><br /><br />'
    "<small>Posted Mar 10, 2024 - 14:23 UTC</small>"
)

MAINTENANCE_BODY = (
    "<strong >scheduled</strong > - Planned upgrade of meeting infrastructure."
    "\r\n\r\n<strong>-- Scheduled Maintenance Window --</strong>"
    "\r\nStart: Mar 12, 2024 02:00 UTC"
    "\r\nComplete: Mar 12, 2024 06:00 UTC"
    "\r\n<small>Posted Mar 11, 2024 - 09:00 UTC</small>"
)


class FakeFetcher:
    """
    In-memory fetcher returning queued results.

    Each call to ``fetch`` pops the next queued result; an exception in the
    queue is raised instead. The last result is repeated once the queue
    runs dry.
    """

    def __init__(self, *results: list[FeedEntry] | Exception):
        self.results = list(results)
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.gate: asyncio.Event | None = None

    async def fetch(self, url: str, feed_name: str = "") -> list[FeedEntry]:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
            if isinstance(result, Exception):
                raise result
            return list(result)
        finally:
            self.in_flight -= 1

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def status_feed_content(fixtures_dir: Path) -> str:
    """Return contents of the sample status feed."""
    return (fixtures_dir / "status_feed.xml").read_text()


@pytest.fixture
def sample_config_path(fixtures_dir: Path) -> Path:
    """Return path to sample config file."""
    return fixtures_dir / "sample_config.yaml"


@pytest.fixture
def make_entry() -> Callable[..., FeedEntry]:
    """
    Factory for feed entries.

    Returns
    -------
    Callable[..., FeedEntry]
        Builds an entry published ``offset`` minutes after BASE_TIME.
    """

    def factory(offset: int = 0, title: str | None = None, **kwargs: Any) -> FeedEntry:
        values: dict[str, Any] = {
            "title": title if title is not None else f"Entry {offset}",
            "body": INCIDENT_BODY,
            "published_at": BASE_TIME + timedelta(minutes=offset),
            "guid": f"https://status.webex.com/incidents/{offset}",
            "link": f"https://status.webex.com/incidents/{offset}",
            "feed_name": "Webex Status",
        }
        values.update(kwargs)
        return FeedEntry(**values)

    return factory


@pytest.fixture
def rooms_config() -> RoomsConfig:
    """Create a rooms configuration with every optional room set."""
    return RoomsConfig(
        incident="room-incident",
        maintenance="room-maint",
        announcement="room-announce",
        api="room-api",
    )


@pytest.fixture
def webex_config(rooms_config: RoomsConfig) -> WebexConfig:
    """Create a Webex configuration pointing at the public API."""
    return WebexConfig(token="test-token", rooms=rooms_config)


@pytest.fixture
def jira_config() -> JiraConfig:
    """Create a Jira configuration."""
    return JiraConfig(
        site="jira.example.com",
        username="bot",
        password="secret",
        project="OPS",
        issue_type="task",
        identifier_name="Feed Identifier",
        identifier_field="customfield_10100",
    )


@pytest.fixture
def minimal_config_dict() -> dict[str, Any]:
    """
    Create a minimal valid configuration dictionary.

    Returns
    -------
    dict
        Configuration dictionary that can be used to create AppConfig.
    """
    return {
        "webex": {
            "token": "test-token",
            "rooms": {
                "incident": "room-incident",
                "maintenance": "room-maint",
                "announcement": "room-announce",
            },
        },
    }


@pytest.fixture
def app_config(webex_config: WebexConfig) -> AppConfig:
    """Create an app configuration with a single status feed."""
    return AppConfig(
        webex=webex_config,
        feeds=[
            FeedConfig(
                name="Webex Status",
                url="https://status.webex.com/history.rss",
                kind=FeedKind.STATUS,
            ),
        ],
    )


@pytest.fixture
def mock_chat() -> AsyncMock:
    """
    Create a mock chat client that accepts everything.

    Returns
    -------
    AsyncMock
        Chat client with identity, room and message calls mocked.
    """
    chat = AsyncMock()
    chat.get_self.return_value = {"displayName": "Status Bot", "emails": ["bot@webex.bot"]}
    chat.get_room.side_effect = lambda room_id: {"id": room_id, "title": f"Room {room_id}"}
    chat.create_message.return_value = {"id": "msg-1"}
    return chat
