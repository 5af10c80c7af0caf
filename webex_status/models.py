"""
Value types shared by the fetcher, watcher and pipeline.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class EventKind(str, Enum):
    """Type of a classified feed entry."""

    INCIDENT = "incident"
    MAINTENANCE = "maintenance"
    ANNOUNCEMENT = "announcement"
    API_CHANGE = "api-change"
    DEVICE = "device"


@dataclass(frozen=True)
class FeedEntry:
    """
    Normalized feed entry.

    Attributes
    ----------
    title : str
        Entry title.
    body : str
        Raw entry markup (description or content).
    published_at : datetime
        Publication time, timezone-aware UTC.
    guid : str
        Unique identifier, stable across redeliveries of the same item.
    link : str
        Entry URL.
    category : str
        Changelog type (``New``, ``Warning``, ``Breaking Change``) if present.
    feed_name : str
        Name of the source feed.
    """

    title: str
    body: str
    published_at: datetime
    guid: str
    link: str = ""
    category: str = ""
    feed_name: str = ""

    @classmethod
    def from_feedparser(cls, entry: Any, feed_name: str = "") -> "FeedEntry":
        """
        Create a FeedEntry from a feedparser entry.

        Parameters
        ----------
        entry : Any
            A feedparser entry object.
        feed_name : str
            Name of the source feed.

        Returns
        -------
        FeedEntry
            Normalized entry instance.

        Raises
        ------
        ValueError
            If the entry has no parseable publication time.
        """
        parsed_time = entry.get("published_parsed") or entry.get("updated_parsed")
        if not parsed_time:
            raise ValueError("entry has no publication time")
        published_at = datetime(*parsed_time[:6], tzinfo=timezone.utc)

        # Prefer description over full content, status page markup lives there
        body = entry.get("summary") or ""
        if not body and entry.get("content"):
            body = entry.content[0].get("value", "")

        category = entry.get("rss_type") or ""
        if not category and entry.get("tags"):
            category = entry.tags[0].get("term", "") or ""

        # Some feeds wrap identifiers across lines
        guid = (entry.get("id") or entry.get("link") or "").replace("\r\n", "").strip()

        return cls(
            title=(entry.get("title") or "").strip(),
            body=body,
            published_at=published_at,
            guid=guid,
            link=entry.get("link", "") or "",
            category=category.strip(),
            feed_name=feed_name,
        )


@dataclass(frozen=True)
class ClassifiedEvent:
    """A feed entry with its type, lifecycle status and extracted facets."""

    kind: EventKind
    status: str
    entry: FeedEntry
    clusters: list[str] = field(default_factory=list)
    locations: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class TicketRef:
    """Reference to the ticket linked with an entry."""

    key: str
    url: str
    issue_type: str = "Task"


@dataclass(frozen=True)
class OutboundMessage:
    """A formatted message ready for delivery to a room."""

    room_target: str
    body_html: str
    ticket_ref: str | None = None
