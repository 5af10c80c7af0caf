"""
Per-batch processing of new feed entries.
"""

import asyncio
import logging

from webex_status.classifier import Classifier, ClusterFilter
from webex_status.config import FeedKind, RoomsConfig
from webex_status.errors import AmbiguousTicketMatchError, WatcherError
from webex_status.formatter import format_event
from webex_status.jira import TicketLinker
from webex_status.models import ClassifiedEvent, EventKind, FeedEntry, TicketRef
from webex_status.notifier import MessageSender

logger = logging.getLogger(__name__)

# Announcements, changelog and device notices are forwarded regardless of clusters
FILTERED_KINDS = frozenset({EventKind.INCIDENT, EventKind.MAINTENANCE})


def rooms_by_kind(rooms: RoomsConfig) -> dict[EventKind, str | None]:
    """Map every event kind to its configured room."""
    return {
        EventKind.INCIDENT: rooms.incident,
        EventKind.MAINTENANCE: rooms.maintenance,
        EventKind.ANNOUNCEMENT: rooms.announcement,
        EventKind.API_CHANGE: rooms.api,
        EventKind.DEVICE: rooms.device,
    }


class EventPipeline:
    """
    Classifies, filters, tickets, formats and dispatches feed entries.

    Every entry is processed in isolation: a failure on one entry is logged
    and the rest of the batch carries on.
    """

    def __init__(
        self,
        sender: MessageSender,
        rooms: dict[EventKind, str | None],
        classifier: Classifier | None = None,
        cluster_filter: ClusterFilter | None = None,
        linker: TicketLinker | None = None,
    ):
        """
        Initialize the pipeline.

        Parameters
        ----------
        sender : MessageSender
            Delivers formatted messages.
        rooms : dict[EventKind, str | None]
            Target room per event kind; None disables that kind.
        classifier : Classifier | None
            Entry classifier.
        cluster_filter : ClusterFilter | None
            Cluster allow-list for incidents and maintenance, everything
            passes when None.
        linker : TicketLinker | None
            Jira linker, ticketing is disabled when None.
        """
        self.sender = sender
        self.rooms = rooms
        self.classifier = classifier or Classifier()
        self.cluster_filter = cluster_filter or ClusterFilter()
        self.linker = linker

    async def process_batch(self, entries: list[FeedEntry], feed_kind: FeedKind) -> int:
        """
        Process a batch of new entries from one feed.

        Parameters
        ----------
        entries : list[FeedEntry]
            New entries, in the order they were emitted.
        feed_kind : FeedKind
            Kind of the source feed.

        Returns
        -------
        int
            Number of messages delivered.
        """
        delivered = 0
        for entry in entries:
            try:
                if await self.process_entry(entry, feed_kind):
                    delivered += 1
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Failed to process entry '%s'", entry.title[:50])
        return delivered

    async def process_entry(self, entry: FeedEntry, feed_kind: FeedKind) -> bool:
        """Process a single entry. Returns True if a message was delivered."""
        event = self.classifier.classify(entry, feed_kind)
        if event is None:
            return False

        if event.kind in FILTERED_KINDS and not self.cluster_filter.allows(event):
            return False

        room = self.rooms.get(event.kind)
        if not room:
            logger.debug(
                "No room configured for %s events, dropping '%s'",
                event.kind.value,
                entry.title[:50],
            )
            return False

        logger.debug(
            "Processing %s event '%s' (%s)", event.kind.value, entry.title[:50], event.status
        )

        ticket = await self._link_ticket(event)
        message = format_event(event, room, ticket)
        return await self.sender.send(room, message)

    async def _link_ticket(self, event: ClassifiedEvent) -> TicketRef | None:
        if self.linker is None or not self.linker.applies_to(event):
            return None
        try:
            return await self.linker.link(event)
        except AmbiguousTicketMatchError as e:
            logger.warning("Not linking '%s' to Jira: %s", event.entry.title[:50], e)
        except WatcherError as e:
            logger.warning("Jira update failed for '%s': %s", event.entry.title[:50], e)
        return None
