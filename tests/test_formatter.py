"""
Unit tests for the formatter module.

Tests cover description extraction, maintenance windows,
severity mapping and the per-kind message layouts.
"""

import pytest
from conftest import INCIDENT_BODY, MAINTENANCE_BODY

from webex_status.formatter import (
    DEFAULT_SEVERITY,
    extract_description,
    extract_schedule,
    format_event,
    normalize_line_breaks,
    severity_for,
    title_case,
)
from webex_status.models import ClassifiedEvent, EventKind, TicketRef


class TestSeverity:
    """Tests for the status to severity mapping."""

    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            ("investigating", "danger"),
            ("identified", "danger"),
            ("monitoring", "warning"),
            ("in progress", "warning"),
            ("Warning", "warning"),
            ("resolved", "success"),
            ("completed", "success"),
            ("New", "success"),
            ("scheduled", "info"),
        ],
    )
    def test_known_statuses(self, status: str, expected: str) -> None:
        """Test each known status maps to its severity."""
        assert severity_for(status) == expected

    def test_unknown_status_is_danger(self) -> None:
        """Test unrecognised statuses look urgent."""
        assert severity_for("Breaking Change") == DEFAULT_SEVERITY == "danger"
        assert severity_for("something else") == "danger"


class TestHelpers:
    """Tests for small text helpers."""

    def test_title_case(self) -> None:
        """Test every word is capitalised."""
        assert title_case("in progress") == "In Progress"
        assert title_case("BREAKING change") == "Breaking Change"

    def test_normalize_line_breaks(self) -> None:
        """Test raw newlines become br tags and heading decorations go away."""
        text = "a\r\nb\nc\rd <strong>-- Heading --</strong>"

        assert normalize_line_breaks(text) == "a<br />b<br />c<br />d <strong>Heading</strong>"


class TestExtractDescription:
    """Tests for boilerplate stripping."""

    def test_strips_status_and_keeps_small(self) -> None:
        """Test the status tag is removed and the text runs through </small>."""
        description = extract_description(INCIDENT_BODY)

        assert description.startswith("Users may fail to join meetings.<br />")
        assert description.endswith("<small>Posted Mar 10, 2024 - 14:23 UTC</small>")
        assert "investigating" not in description

    def test_trailing_markup_dropped(self) -> None:
        """Test anything after </small> is dropped."""
        body = "<strong >resolved</strong > - Fixed.<small>Date</small><p>footer</p>"

        assert extract_description(body) == "Fixed.<small>Date</small>"

    def test_missing_end_marker_passes_through(self) -> None:
        """Test a body without </small> is returned unmodified."""
        body = "<strong >resolved</strong > - Fixed without a date."

        assert extract_description(body) == body

    def test_missing_status_marker_starts_at_beginning(self) -> None:
        """Test a body without a status tag keeps its head."""
        body = "Plain announcement text.<small>Date</small>"

        assert extract_description(body) == body

    def test_without_status(self) -> None:
        """Test with_status=False keeps a leading bold tag."""
        body = "<strong>Heads up</strong> text<small>Date</small>"

        assert extract_description(body, with_status=False) == body


class TestExtractSchedule:
    """Tests for maintenance window extraction."""

    def test_schedule_extracted_and_removed(self) -> None:
        """Test start and end times are found and the block is removed."""
        schedule, body = extract_schedule(MAINTENANCE_BODY)

        assert schedule is not None
        assert schedule.start == "Mar 12, 2024 02:00 UTC"
        assert schedule.end == "Mar 12, 2024 06:00 UTC"
        assert "Scheduled Maintenance Window" not in body
        assert "Start:" not in body
        assert body.startswith("<strong >scheduled</strong > - Planned upgrade")
        assert body.endswith("<small>Posted Mar 11, 2024 - 09:00 UTC</small>")

    def test_no_schedule(self) -> None:
        """Test a body without times is returned untouched."""
        schedule, body = extract_schedule(INCIDENT_BODY)

        assert schedule is None
        assert body == INCIDENT_BODY

    def test_schedule_at_end_of_body(self) -> None:
        """Test the Complete line may end the body."""
        schedule, _ = extract_schedule("Start: 01:00\nComplete: 02:00")

        assert schedule.start == "01:00"
        assert schedule.end == "02:00"


class TestFormatEvent:
    """Tests for the per-kind layouts."""

    def test_incident_layout(self, make_entry) -> None:
        """Test the incident message content."""
        entry = make_entry(0, title="Incident in San Jose", body=INCIDENT_BODY)
        event = ClassifiedEvent(
            kind=EventKind.INCIDENT,
            status="investigating",
            entry=entry,
            clusters=["AC", "AW"],
            locations=["San Jose"],
        )

        message = format_event(event, "room-incident")

        assert message.room_target == "room-incident"
        assert message.ticket_ref is None
        html = message.body_html
        assert html.startswith(f'<strong><a href="{entry.link}">Incident in San Jose</a></strong>')
        assert '<blockquote class="danger">' in html
        assert "<strong>Status: </strong>Investigating" in html
        assert "<strong>Clusters: </strong>AC, AW" in html
        assert "<strong>Location: </strong>San Jose" in html
        assert "<br><br>Users may fail to join meetings." in html
        assert html.endswith("</blockquote>")

    def test_single_cluster_label(self, make_entry) -> None:
        """Test a single cluster uses the singular label."""
        event = ClassifiedEvent(
            kind=EventKind.INCIDENT,
            status="resolved",
            entry=make_entry(0, body="<strong >resolved</strong > - ok"),
            clusters=["AP"],
        )

        html = format_event(event, "room").body_html

        assert "<strong>Cluster: </strong>AP" in html
        assert '<blockquote class="success">' in html

    def test_maintenance_layout(self, make_entry) -> None:
        """Test maintenance messages carry the window."""
        event = ClassifiedEvent(
            kind=EventKind.MAINTENANCE,
            status="scheduled",
            entry=make_entry(0, body=MAINTENANCE_BODY),
        )

        html = format_event(event, "room-maint").body_html

        assert '<blockquote class="info">' in html
        assert "<strong>Start: </strong>Mar 12, 2024 02:00 UTC" in html
        assert "<strong>End: </strong>Mar 12, 2024 06:00 UTC" in html
        assert "Scheduled Maintenance Window" not in html

    def test_ticket_line(self, make_entry) -> None:
        """Test a linked ticket is rendered and referenced."""
        event = ClassifiedEvent(
            kind=EventKind.INCIDENT, status="identified", entry=make_entry(0)
        )
        ticket = TicketRef(key="OPS-7", url="https://jira.example.com/browse/OPS-7", issue_type="task")

        message = format_event(event, "room", ticket)

        assert message.ticket_ref == "OPS-7"
        assert (
            '<strong>JIRA Task: </strong><a href="https://jira.example.com/browse/OPS-7">OPS-7</a>'
            in message.body_html
        )

    def test_title_escaped(self, make_entry) -> None:
        """Test titles are HTML escaped."""
        event = ClassifiedEvent(
            kind=EventKind.INCIDENT,
            status="investigating",
            entry=make_entry(0, title="<script>x</script> & more"),
        )

        html = format_event(event, "room").body_html

        assert "&lt;script&gt;x&lt;/script&gt; &amp; more" in html
        assert "<script>" not in html

    def test_announcement_layout(self, make_entry) -> None:
        """Test announcements show the calendar link."""
        entry = make_entry(
            0,
            title="Upcoming maintenance",
            body="Details.<small>Posted</small>",
            link="https://status.webex.com/maintenance",
        )
        event = ClassifiedEvent(kind=EventKind.ANNOUNCEMENT, status="", entry=entry)

        html = format_event(event, "room-announce").body_html

        assert html.startswith("<strong>Upcoming maintenance</strong>")
        assert '<blockquote class="info">' in html
        assert "<strong>Maintenance Calendar: </strong>https://status.webex.com/maintenance" in html
        assert "<br><br>Details.<small>Posted</small>" in html

    def test_api_change_layout(self, make_entry) -> None:
        """Test changelog entries show their category with its severity."""
        entry = make_entry(0, title="Rooms API", body="<p>Field removed.</p>")
        event = ClassifiedEvent(kind=EventKind.API_CHANGE, status="Breaking Change", entry=entry)

        html = format_event(event, "room-api").body_html

        assert '<blockquote class="danger">' in html
        assert "<strong>Category: </strong>Breaking Change" in html
        assert "<p>Field removed.</p>" in html

    def test_device_layout(self, make_entry) -> None:
        """Test device events render with the info style."""
        event = ClassifiedEvent(
            kind=EventKind.DEVICE, status="", entry=make_entry(0, body="Firmware 1.2 released")
        )

        html = format_event(event, "room-device").body_html

        assert '<blockquote class="info">' in html
        assert "Firmware 1.2 released" in html
