"""
Classification of status page entries.

Extracts the lifecycle tag embedded in entry markup, the cluster and
location facets, and applies the configured cluster allow-list.
"""

import logging
import re

from webex_status.config import FeedKind
from webex_status.models import ClassifiedEvent, EventKind, FeedEntry

logger = logging.getLogger(__name__)

UNKNOWN_STATUS = "unknown"

INCIDENT_STATUSES = ("investigating", "identified", "monitoring", "resolved")
MAINTENANCE_STATUSES = ("scheduled", "in progress", "completed")

DEFAULT_API_CATEGORY = "New"

# Status page entries start with the lifecycle tag in bold, e.g.
# "<small>...</small><br><strong >investigating</strong > - Our engineers..."
STATUS_OPEN = re.compile(r"<strong\s*>", re.IGNORECASE)
STATUS_CLOSE = re.compile(r"</strong\s*>", re.IGNORECASE)

LOCATIONS_START = "Locations:</strong>"
LOCATIONS_END = "</font>"

# Keyword -> cluster codes. Region names expand to every cluster hosted there.
CLUSTER_KEYWORDS: dict[str, tuple[str, ...]] = {
    "San Jose": ("AC", "AW", "B", "E", "F", "IB", "IE", "IJ", "S", "U"),
    "London": ("AI", "BI", "I", "W"),
    "Virginia": ("AA", "AB"),
    "Singapore": ("AS",),
    "FedRAMP": ("F",),
    "Sydney": ("AP",),
    "Australia": ("AP",),
    "APAC": ("AS", "AP", "BY"),
    "AA": ("AA",),
    "AB": ("AB",),
    "AC": ("AC",),
    "AO": ("AO",),
    "AP": ("AP",),
    "AS": ("AS",),
    "AW": ("AW",),
    "B": ("B",),
    "BI": ("BI",),
    "BY": ("BY",),
    "I": ("I",),
    "IB": ("IB",),
    "IC": ("IC",),
    "IE": ("IE",),
    "IJ": ("IJ",),
    "IK": ("IK",),
    "E": ("E",),
    "F": ("F",),
    "J": ("J",),
    "L": ("L",),
    "M": ("M",),
    "R": ("R",),
    "S": ("S",),
    "U": ("U",),
    "W": ("W",),
}


def _keyword_pattern(keyword: str) -> re.Pattern:
    # A keyword only counts as a whole word followed by a separator,
    # so "S" never matches inside "Singapore" or "AS"
    return re.compile(rf"(?<![\w-]){re.escape(keyword)}(?=[,\s]|$)")


_CLUSTER_PATTERNS = [
    (_keyword_pattern(keyword), tags) for keyword, tags in CLUSTER_KEYWORDS.items()
]


def find_between(
    text: str, start: str | re.Pattern, end: str | re.Pattern, from_index: int = 0
) -> tuple[str, int, int] | None:
    """
    Find the text enclosed by a start and end marker.

    Parameters
    ----------
    text : str
        Text to search.
    start : str | re.Pattern
        Start marker, literal or compiled pattern.
    end : str | re.Pattern
        End marker, searched after the start marker.
    from_index : int
        Position to start searching from.

    Returns
    -------
    tuple[str, int, int] | None
        The enclosed text, the index where it begins and the index just
        past the end marker. None if either marker is missing.
    """
    if isinstance(start, str):
        start_index = text.find(start, from_index)
        if start_index == -1:
            return None
        inner_start = start_index + len(start)
    else:
        match = start.search(text, from_index)
        if match is None:
            return None
        inner_start = match.end()

    if isinstance(end, str):
        end_index = text.find(end, inner_start)
        if end_index == -1:
            return None
        return text[inner_start:end_index], inner_start, end_index + len(end)

    match = end.search(text, inner_start)
    if match is None:
        return None
    return text[inner_start : match.start()], inner_start, match.end()


def extract_status_marker(body: str) -> tuple[str, int] | None:
    """
    Return the raw bold tag at the top of an entry and the index after it.

    None when the marker is absent or unterminated.
    """
    found = find_between(body, STATUS_OPEN, STATUS_CLOSE)
    if found is None:
        return None
    text, _, after = found
    return text.strip(), after


def extract_status(body: str) -> str:
    """
    Extract the lifecycle tag from an entry body.

    Parameters
    ----------
    body : str
        Raw entry markup.

    Returns
    -------
    str
        One of the incident or maintenance statuses, or ``UNKNOWN_STATUS``.
    """
    marker = extract_status_marker(body or "")
    if marker is None:
        return UNKNOWN_STATUS
    status = marker[0].lower()
    if status in INCIDENT_STATUSES or status in MAINTENANCE_STATUSES:
        return status
    return UNKNOWN_STATUS


def extract_clusters(text: str) -> list[str]:
    """
    Find the cluster codes mentioned in a piece of text.

    Parameters
    ----------
    text : str
        Usually the entry title.

    Returns
    -------
    list[str]
        Cluster codes in table order, without duplicates.
    """
    clusters: list[str] = []
    for pattern, tags in _CLUSTER_PATTERNS:
        if pattern.search(text):
            clusters.extend(tag for tag in tags if tag not in clusters)
    return clusters


def extract_locations(body: str) -> list[str]:
    """Return the comma separated ``Locations:`` list of an entry, if any."""
    found = find_between(body or "", LOCATIONS_START, LOCATIONS_END)
    if found is None:
        return []
    return [loc.strip() for loc in found[0].split(",") if loc.strip()]


class ClusterFilter:
    """
    Allow-list over extracted cluster codes.

    Entries that mention no cluster at all are global and always pass.
    """

    def __init__(self, allow_list: list[str] | None = None):
        self.allow_list = {c.strip() for c in allow_list or [] if c.strip()}

    def allows(self, event: ClassifiedEvent) -> bool:
        if not self.allow_list or not event.clusters:
            return True
        if self.allow_list.intersection(event.clusters):
            return True
        logger.info(
            "Skipping '%s', clusters %s not in filter %s",
            event.entry.title[:50],
            ", ".join(event.clusters),
            ", ".join(sorted(self.allow_list)),
        )
        return False


class Classifier:
    """Turns feed entries into classified events."""

    def classify(self, entry: FeedEntry, feed_kind: FeedKind) -> ClassifiedEvent | None:
        """
        Classify an entry from a feed of the given kind.

        Parameters
        ----------
        entry : FeedEntry
            The entry to classify.
        feed_kind : FeedKind
            Kind of the feed the entry came from.

        Returns
        -------
        ClassifiedEvent | None
            The classified event, or None if the entry is of unknown type
            and must be dropped.
        """
        if feed_kind is FeedKind.STATUS:
            status = extract_status(entry.body)
            if status in INCIDENT_STATUSES:
                kind = EventKind.INCIDENT
            elif status in MAINTENANCE_STATUSES:
                kind = EventKind.MAINTENANCE
            else:
                logger.warning(
                    "Dropping entry of unknown type: '%s' (%s)",
                    entry.title[:50],
                    entry.guid,
                )
                return None
            return ClassifiedEvent(
                kind=kind,
                status=status,
                entry=entry,
                clusters=extract_clusters(entry.title),
                locations=extract_locations(entry.body),
            )

        if feed_kind is FeedKind.API:
            return ClassifiedEvent(
                kind=EventKind.API_CHANGE,
                status=entry.category or DEFAULT_API_CATEGORY,
                entry=entry,
            )

        kind = EventKind.DEVICE if feed_kind is FeedKind.DEVICE else EventKind.ANNOUNCEMENT
        return ClassifiedEvent(
            kind=kind,
            status="",
            entry=entry,
            clusters=extract_clusters(entry.title),
        )
