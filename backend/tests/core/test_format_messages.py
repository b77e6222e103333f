"""Message formatting - attendance card, participant list, admin notice, audit lines.

Tests:
    - Capacity line shows taken/limit when limited, plain count otherwise
    - +1 entries carry a badge; display names replace ids when supplied
    - Admin notice differs between auto-announced and manual instances
    - Every audit action renders to one line
    - Titles, descriptions and display names cannot break Telegram Markdown
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID, uuid4

from rollcall.core.domain_types import ActorId, AuditAction, ParticipationAction
from rollcall.core.format_messages import (
    bold, escape_markdown, format_admin_notice, format_audit_action, format_groups_message,
    format_local_time, format_participant_list, render_attendance,
)
from rollcall.core.ledger import Participant


@dataclass
class Series:
    id: UUID
    title: str
    description: str | None
    timezone: str
    capacity_limit: int | None
    duration_minutes: int = 120


@dataclass
class Instance:
    id: UUID
    start_time: datetime


START = datetime(2026, 10, 19, 15, 0, tzinfo=timezone.utc)


def _series(limit=12, description="Bring your own ball"):
    return Series(uuid4(), "Volleyball", description, "Europe/Helsinki", limit)


def _participants():
    return [
        Participant(ActorId("1"), ParticipationAction.JOIN),
        Participant(ActorId("2"), ParticipationAction.PLUS_ONE),
    ]


def test_local_time_uses_series_timezone():
    assert format_local_time(START, "Europe/Helsinki") == "Mon 19 Oct 2026, 18:00"


def test_render_attendance_with_limit():
    text = render_attendance(_series(), Instance(uuid4(), START), _participants())
    assert "📅 *Volleyball*" in text
    assert "`Mon 19 Oct 2026, 18:00`" in text
    assert "Bring your own ball" in text
    assert "👥 3/12 spots taken" in text
    assert "• User 2 (+1)" in text


def test_render_attendance_unlimited_with_annotation():
    text = render_attendance(
        _series(limit=None, description=None), Instance(uuid4(), START), [],
        "registration closed",
    )
    assert "👥 0 attending" in text
    assert "None yet" in text
    assert text.endswith("_Registration closed_")


def test_participant_list_uses_display_names():
    text = format_participant_list(_participants(), {"1": "alice"})
    assert text.startswith("✅ Participants (2 people):")
    assert "• @alice" in text
    assert "• User 2 (+1)" in text


def test_participant_list_single_person():
    text = format_participant_list(_participants()[:1])
    assert "(1 person)" in text


def test_admin_notice_auto_announced():
    text = format_admin_notice(_series(), Instance(uuid4(), START), announced=True)
    assert "announced to the group automatically" in text
    assert "/announce" not in text


def test_admin_notice_manual():
    series = _series()
    text = format_admin_notice(series, Instance(uuid4(), START), announced=False)
    assert f"/announce {series.id}" in text


def test_audit_action_lines():
    detail = {"actor_id": "42", "admin": "boss", "instance_id": "x"}
    assert format_audit_action(AuditAction.PARTICIPANT_ADDED, detail) == "✅ User 42 added by @boss"
    assert format_audit_action("PARTICIPANT_REMOVED", detail) == "❌ User 42 removed by @boss"
    assert format_audit_action(AuditAction.REGISTRATION_CLOSED, detail) == "🔒 Registration closed by @boss"
    assert format_audit_action(AuditAction.REGISTRATION_EXTENDED, {}) == "🔓 Registration extended"
    assert format_audit_action("SOMETHING_ELSE", detail) == "📝 Unknown action"


def test_groups_message():
    assert "No groups yet" in format_groups_message([])
    text = format_groups_message([("-100", 3), ("-200", 1)])
    assert "• Group `-100` (3 events)" in text
    assert "• Group `-200` (1 event)" in text


def test_user_text_is_escaped_for_markdown():
    series = Series(uuid4(), "Beach_volley *pro*", "Court [B] `north`", "Europe/Helsinki", 12)
    text = render_attendance(series, Instance(uuid4(), START), [])
    assert "📅 *Beach*\\_*volley *\\**pro*\\*" in text
    assert "Court \\[B] \\`north\\`" in text


def test_display_names_are_escaped():
    text = format_participant_list(_participants(), {"1": "snake_case"})
    assert "• @snake\\_case" in text


def test_bold_and_escape():
    assert bold("Volleyball") == "*Volleyball*"
    assert bold("a_b") == "*a*\\_*b*"
    assert escape_markdown("1*2_3") == "1\\*2\\_3"
