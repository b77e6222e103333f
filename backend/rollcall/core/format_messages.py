"""Message Formatting - pure renderers for announcements, admin notices and audit lines.

Invariants:
    - All functions are pure (no IO, no async, no DB)
    - Times are rendered in the series timezone
    - render_attendance matches the MessageFormatter protocol and is the default formatter
    - Output is Telegram Markdown (v1): only * and ` are used for emphasis
    - User-supplied text (titles, descriptions, display names) never opens an entity:
      _ * ` [ are backslash-escaped, and bold titles close around them

Design Decisions:
    - Participant names are not stored in the ledger; actors render as `User <id>`
      unless the caller supplies a display-name mapping
"""

import re
from datetime import datetime
from zoneinfo import ZoneInfo

from rollcall.core.domain_types import AuditAction, ParticipationAction
from rollcall.core.ledger import Participant, headcount
from rollcall.core.repository_protocols import InstanceLike, SeriesLike


_TIME_FORMAT = "%a %d %b %Y, %H:%M"
_MARKDOWN_SPECIAL = re.compile(r"([_*`\[])")


def escape_markdown(text: str) -> str:
    return _MARKDOWN_SPECIAL.sub(r"\\\1", text)


def bold(text: str) -> str:
    """*text*, with special characters escaped between separate bold runs."""
    # v1 cannot escape inside an entity: "snake_case" -> *snake*\_*case*
    return "".join(
        "\\" + part if _MARKDOWN_SPECIAL.fullmatch(part) else f"*{part}*"
        for part in _MARKDOWN_SPECIAL.split(text)
        if part
    )


def format_local_time(moment: datetime, timezone: str) -> str:
    return moment.astimezone(ZoneInfo(timezone)).strftime(_TIME_FORMAT)


def format_participant_list(
    participants: list[Participant],
    display_names: dict[str, str] | None = None,
) -> str:
    """Bulleted attendee list with +1 badges."""
    if not participants:
        return "✅ Participants (0): None yet"

    names = display_names or {}
    count = len(participants)
    count_text = "1 person" if count == 1 else f"{count} people"
    lines = []
    for p in participants:
        badge = " (+1)" if p.action == ParticipationAction.PLUS_ONE else ""
        if p.actor_id in names:
            name = f"@{escape_markdown(names[p.actor_id])}"
        else:
            name = f"User {escape_markdown(p.actor_id)}"
        lines.append(f"• {name}{badge}")
    return f"✅ Participants ({count_text}):\n" + "\n".join(lines)


def render_attendance(
    series: SeriesLike,
    instance: InstanceLike,
    participants: list[Participant],
    annotation: str = "",
) -> str:
    """Announcement body posted to the group and re-rendered on every vote."""
    taken = headcount(participants)
    if series.capacity_limit:
        capacity_line = f"👥 {taken}/{series.capacity_limit} spots taken"
    else:
        capacity_line = f"👥 {taken} attending"

    sections = [
        f"📅 {bold(series.title)}",
        f"🕒 `{format_local_time(instance.start_time, series.timezone)}`",
    ]
    if series.description:
        sections.append(escape_markdown(series.description))
    sections.append(capacity_line)
    sections.append(format_participant_list(participants))
    if annotation:
        sections.append(f"_{annotation.capitalize()}_")
    return "\n\n".join(sections)


def format_admin_notice(
    series: SeriesLike, instance: InstanceLike, announced: bool,
) -> str:
    """Direct message to tenant admins after an instance is materialized."""
    when = format_local_time(instance.start_time, series.timezone)
    header = (
        "🔔 *New Instance Materialized*\n\n"
        f"Series: {bold(series.title)}\n"
        f"Time: `{when}`\n\n"
    )
    if announced:
        return header + "It has been announced to the group automatically."
    return header + f"You can now announce this using:\n`/announce {series.id}`"


def format_audit_action(action: AuditAction | str, detail: dict) -> str:
    """One-line description of an audit record."""
    user = f"User {detail['actor_id']}" if detail.get("actor_id") else ""
    admin = f"by @{detail['admin']}" if detail.get("admin") else ""
    try:
        action = AuditAction(action)
    except ValueError:
        return "📝 Unknown action"

    if action == AuditAction.PARTICIPANT_ADDED:
        text = f"✅ {user} added {admin}"
    elif action == AuditAction.PARTICIPANT_REMOVED:
        text = f"❌ {user} removed {admin}"
    elif action == AuditAction.REGISTRATION_CLOSED:
        text = f"🔒 Registration closed {admin}"
    else:
        text = f"🔓 Registration extended {admin}"
    return " ".join(text.split())


def format_groups_message(groups: list[tuple[str, int]]) -> str:
    """Groups linked to a tenant as (chat_id, event_count), most events first."""
    if not groups:
        return (
            "📍 *Groups linked to your account:*\n\n"
            "No groups yet. Add me to a Telegram group and create an event there!"
        )
    lines = [
        f"• Group `{chat_id}` ({count} event{'' if count == 1 else 's'})"
        for chat_id, count in groups
    ]
    return "📍 *Groups linked to your account:*\n\n" + "\n".join(lines)
