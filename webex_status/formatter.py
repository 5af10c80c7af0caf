"""
Formatting of classified events into Webex HTML messages.

Everything here is a pure function of its arguments.
"""

import html
import re
from dataclasses import dataclass

from webex_status.classifier import extract_status_marker, find_between
from webex_status.models import ClassifiedEvent, EventKind, OutboundMessage, TicketRef

DESCRIPTION_END = "</small>"
SCHEDULE_BLOCK_START = "<strong>-- Scheduled Maintenance Window"
SCHEDULE_START = "Start: "
SCHEDULE_END = "Complete: "
LINE_END = re.compile(r"\r|\n|<br\s*/?>|$", re.IGNORECASE)
STATUS_SEPARATOR = re.compile(r"^\s*-\s*")

SEVERITY_BY_STATUS: dict[str, str] = {
    "investigating": "danger",
    "identified": "danger",
    "monitoring": "warning",
    "in progress": "warning",
    "Warning": "warning",
    "resolved": "success",
    "completed": "success",
    "New": "success",
    "None": "success",
    "scheduled": "info",
}
DEFAULT_SEVERITY = "danger"


@dataclass(frozen=True)
class Schedule:
    """Maintenance window announced in an entry."""

    start: str
    end: str


def severity_for(status: str) -> str:
    """
    Map a lifecycle status to a blockquote class.

    Unrecognised statuses (e.g. ``Breaking Change``) map to ``danger``.
    """
    return SEVERITY_BY_STATUS.get(status, DEFAULT_SEVERITY)


def title_case(text: str) -> str:
    """Capitalise the first letter of every word, lower-case the rest."""
    return re.sub(r"\w\S*", lambda m: m.group(0)[0].upper() + m.group(0)[1:].lower(), text)


def normalize_line_breaks(text: str) -> str:
    """Convert raw line breaks to ``<br />`` and drop ``--`` heading decorations."""
    text = re.sub(r"\r?\n|\r", "<br />", text)
    text = text.replace("<strong>-- ", "<strong>")
    text = text.replace(" --</strong>", "</strong>")
    return text


def extract_description(body: str, with_status: bool = True) -> str:
    """
    Strip the status tag and the trailing boilerplate from an entry body.

    The description runs from just after the bold status tag (and its
    `` - `` separator) through the closing ``</small>``. When the closing
    marker is missing the body is passed through untouched.

    Parameters
    ----------
    body : str
        Raw entry markup.
    with_status : bool
        Whether the body starts with a status tag that should be removed.

    Returns
    -------
    str
        Description markup with normalised line breaks.
    """
    end_index = body.find(DESCRIPTION_END)
    if end_index == -1:
        return normalize_line_breaks(body)

    start_index = 0
    if with_status:
        marker = extract_status_marker(body)
        if marker is not None and marker[1] <= end_index:
            start_index = marker[1]

    description = body[start_index : end_index + len(DESCRIPTION_END)]
    description = STATUS_SEPARATOR.sub("", description, count=1)
    return normalize_line_breaks(description)


def extract_schedule(body: str) -> tuple[Schedule | None, str]:
    """
    Pull the maintenance window out of an entry body.

    Returns
    -------
    tuple[Schedule | None, str]
        The window (None when either time is missing) and the body with the
        scheduled window block removed.
    """
    start = find_between(body, SCHEDULE_START, LINE_END)
    end = find_between(body, SCHEDULE_END, LINE_END)
    if start is None or end is None:
        return None, body

    schedule = Schedule(start=start[0].strip(), end=end[0].strip())

    block_index = body.find(SCHEDULE_BLOCK_START)
    if block_index != -1 and block_index < end[2]:
        # Keep the line break that ended the Complete line
        cut_end = end[2] - 1 if body[end[2] - 1] in "\r\n" else end[2]
        body = body[:block_index].rstrip("\r\n") + body[cut_end:]

    return schedule, body


def _label(singular: str, values: list[str]) -> str:
    name = singular if len(values) == 1 else f"{singular}s"
    return f"<br><strong>{name}: </strong>{html.escape(', '.join(values))}"


def _ticket_line(ticket: TicketRef | None) -> str:
    if ticket is None:
        return ""
    return (
        f"<br><strong>JIRA {html.escape(title_case(ticket.issue_type))}: </strong>"
        f'<a href="{html.escape(ticket.url)}">{html.escape(ticket.key)}</a>'
    )


def _title_link(event: ClassifiedEvent) -> str:
    entry = event.entry
    href = entry.link or entry.guid
    title = html.escape(entry.title) if entry.title else "No title"
    if not href:
        return f"<strong>{title}</strong>"
    return f'<strong><a href="{html.escape(href)}">{title}</a></strong>'


def _format_status_event(event: ClassifiedEvent, ticket: TicketRef | None) -> str:
    body = event.entry.body
    schedule = None
    if event.kind is EventKind.MAINTENANCE:
        schedule, body = extract_schedule(body)

    parts = [
        _title_link(event),
        f'<blockquote class="{severity_for(event.status)}">',
        f"<strong>Status: </strong>{html.escape(title_case(event.status))}",
    ]
    if event.clusters:
        parts.append(_label("Cluster", event.clusters))
    if event.locations:
        parts.append(_label("Location", event.locations))
    if schedule is not None:
        parts.append(
            f"<br><strong>Start: </strong>{html.escape(schedule.start)}"
            f"<br><strong>End: </strong>{html.escape(schedule.end)}"
        )
    parts.append(_ticket_line(ticket))
    parts.append(f"<br><br>{extract_description(body)}</blockquote>")
    return "".join(parts)


def _format_announcement(event: ClassifiedEvent, ticket: TicketRef | None) -> str:
    entry = event.entry
    parts = [
        f"<strong>{html.escape(entry.title)}</strong>",
        '<blockquote class="info">',
    ]
    if event.clusters:
        parts.append(_label("Cluster", event.clusters))
    if entry.link:
        parts.append(f"<br><strong>Maintenance Calendar: </strong>{html.escape(entry.link)}")
    parts.append(_ticket_line(ticket))
    parts.append(f"<br><br>{extract_description(entry.body, with_status=False)}</blockquote>")
    return "".join(parts)


def _format_api_change(event: ClassifiedEvent, ticket: TicketRef | None) -> str:
    parts = [
        _title_link(event),
        f'<blockquote class="{severity_for(event.status)}">',
        f"<strong>Category: </strong>{html.escape(title_case(event.status))}",
        _ticket_line(ticket),
        f"<br>{normalize_line_breaks(event.entry.body)}</blockquote>",
    ]
    return "".join(parts)


def _format_device(event: ClassifiedEvent, ticket: TicketRef | None) -> str:
    parts = [_title_link(event), '<blockquote class="info">']
    if event.clusters:
        parts.append(_label("Cluster", event.clusters))
    parts.append(_ticket_line(ticket))
    parts.append(f"<br><br>{extract_description(event.entry.body, with_status=False)}</blockquote>")
    return "".join(parts)


_LAYOUTS = {
    EventKind.INCIDENT: _format_status_event,
    EventKind.MAINTENANCE: _format_status_event,
    EventKind.ANNOUNCEMENT: _format_announcement,
    EventKind.API_CHANGE: _format_api_change,
    EventKind.DEVICE: _format_device,
}


def format_event(
    event: ClassifiedEvent, room_id: str, ticket: TicketRef | None = None
) -> OutboundMessage:
    """
    Render a classified event as a Webex HTML message.

    Parameters
    ----------
    event : ClassifiedEvent
        The event to render.
    room_id : str
        Room the message is addressed to.
    ticket : TicketRef | None
        Linked ticket, rendered as a link line when present.

    Returns
    -------
    OutboundMessage
        The message ready for dispatch.
    """
    body_html = _LAYOUTS[event.kind](event, ticket)
    return OutboundMessage(
        room_target=room_id,
        body_html=body_html,
        ticket_ref=ticket.key if ticket else None,
    )
