"""Recurrence Expansion - canonical recurrence type and pure occurrence expansion.

Invariants:
    - RecurrenceRule is the ONLY recurrence representation past the boundary;
      raw rule strings and structured mappings are both parsed by parse_recurrence()
    - Supported subset: DTSTART, FREQ, BYDAY, INTERVAL, COUNT; anything else is rejected
    - expand_occurrences is PURE: no IO, no clock reads, same input -> same output
    - Window is half-open [start, end) unless inclusive_end=True, in which case [start, end]
    - start >= end always yields an empty list
    - Returned timestamps are UTC, sorted, deduplicated

Design Decisions:
    - dateutil.rrule does the calendar arithmetic; our own strict parser in front of it
      (rrulestr accepts the whole RFC, we must reject what we do not support)
    - Occurrences generated in the series timezone so the anchor's wall-clock time
      survives DST changes, then normalized to UTC for storage
    - Floating DTSTART (no TZID, no Z) is read in the series timezone
"""

from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import rrule as du_rrule

from rollcall.core.domain_types import Frequency, Weekday
from rollcall.core.errors import RecurrenceValidationError


_DATETIME_FORMAT = "%Y%m%dT%H%M%S"
_DATE_FORMAT = "%Y%m%d"

_DATEUTIL_FREQ = {
    Frequency.DAILY: du_rrule.DAILY,
    Frequency.WEEKLY: du_rrule.WEEKLY,
    Frequency.MONTHLY: du_rrule.MONTHLY,
    Frequency.YEARLY: du_rrule.YEARLY,
}

_DATEUTIL_WEEKDAYS = (
    du_rrule.MO, du_rrule.TU, du_rrule.WE, du_rrule.TH,
    du_rrule.FR, du_rrule.SA, du_rrule.SU,
)

_RULE_KEYS = frozenset({"FREQ", "BYDAY", "INTERVAL", "COUNT"})
_MAPPING_KEYS = frozenset({
    "freq", "frequency", "byday", "by_day", "interval", "count", "dtstart",
})


@dataclass(frozen=True)
class RecurrenceRule:
    """Validated recurrence definition anchored in a series timezone."""
    dtstart: datetime
    frequency: Frequency
    timezone: str
    by_day: tuple[Weekday, ...] = ()
    interval: int = 1
    count: int | None = None

    def to_rule_string(self) -> str:
        """Canonical two-line form: DTSTART with TZID, then RRULE."""
        parts = [f"FREQ={self.frequency.value}"]
        if self.interval != 1:
            parts.append(f"INTERVAL={self.interval}")
        if self.by_day:
            parts.append("BYDAY=" + ",".join(d.value for d in self.by_day))
        if self.count is not None:
            parts.append(f"COUNT={self.count}")
        local = self.dtstart.astimezone(ZoneInfo(self.timezone))
        return (
            f"DTSTART;TZID={self.timezone}:{local.strftime(_DATETIME_FORMAT)}\n"
            f"RRULE:{';'.join(parts)}"
        )

    def to_dateutil(self) -> du_rrule.rrule:
        byweekday = (
            [_DATEUTIL_WEEKDAYS[d.index] for d in self.by_day]
            if self.by_day else None
        )
        return du_rrule.rrule(
            _DATEUTIL_FREQ[self.frequency],
            dtstart=self.dtstart,
            interval=self.interval,
            count=self.count,
            byweekday=byweekday,
        )


# ─── Parsing ─────────────────────────────────────────────────────

def load_timezone(name: str) -> ZoneInfo:
    """Resolve an IANA zone name or raise RecurrenceValidationError."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise RecurrenceValidationError(f"Unknown timezone '{name}'") from e


def parse_recurrence(
    raw: str | Mapping[str, Any],
    *,
    timezone: str,
    default_dtstart: datetime | None = None,
) -> RecurrenceRule:
    """Parse a rule string or structured mapping into a RecurrenceRule."""
    tz = load_timezone(timezone)
    if isinstance(raw, str):
        dtstart, fields = _parse_rule_string(raw, tz)
    elif isinstance(raw, Mapping):
        dtstart, fields = _parse_mapping(raw, tz)
    else:
        raise RecurrenceValidationError(
            f"Recurrence must be a string or mapping, got {type(raw).__name__}",
        )

    if dtstart is None:
        if default_dtstart is None:
            raise RecurrenceValidationError("Recurrence has no DTSTART anchor")
        dtstart = _as_aware(default_dtstart, dt_timezone.utc)
    dtstart = dtstart.astimezone(tz)

    return _build_rule(fields, dtstart, timezone)


def _parse_rule_string(raw: str, tz: ZoneInfo) -> tuple[datetime | None, dict[str, str]]:
    dtstart: datetime | None = None
    fields: dict[str, str] = {}
    lines = [ln.strip() for ln in raw.strip().splitlines() if ln.strip()]
    if not lines:
        raise RecurrenceValidationError("Recurrence rule is empty")

    for line in lines:
        upper = line.upper()
        if upper.startswith("DTSTART"):
            if dtstart is not None:
                raise RecurrenceValidationError("Duplicate DTSTART")
            dtstart = _parse_dtstart_line(line, tz)
            continue
        if upper.startswith("RRULE:"):
            line = line[len("RRULE:"):]
        for part in line.split(";"):
            if not part:
                continue
            key, sep, value = part.partition("=")
            key = key.strip().upper()
            if not sep or not value.strip():
                raise RecurrenceValidationError(f"Malformed rule part '{part}'")
            if key not in _RULE_KEYS:
                raise RecurrenceValidationError(f"Unsupported rule part '{key}'")
            if key in fields:
                raise RecurrenceValidationError(f"Duplicate rule part '{key}'")
            fields[key] = value.strip()
    return dtstart, fields


def _parse_dtstart_line(line: str, tz: ZoneInfo) -> datetime:
    head, sep, value = line.partition(":")
    if not sep:
        raise RecurrenceValidationError(f"Malformed DTSTART '{line}'")
    line_tz: Any = tz
    for param in head.split(";")[1:]:
        name, _, param_value = param.partition("=")
        if name.strip().upper() != "TZID":
            raise RecurrenceValidationError(f"Unsupported DTSTART parameter '{name}'")
        line_tz = load_timezone(param_value.strip())

    value = value.strip()
    if value.upper().endswith("Z"):
        return _parse_basic_datetime(value[:-1]).replace(tzinfo=dt_timezone.utc)
    return _parse_basic_datetime(value).replace(tzinfo=line_tz)


def _parse_basic_datetime(value: str) -> datetime:
    for fmt in (_DATETIME_FORMAT, _DATE_FORMAT):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise RecurrenceValidationError(f"Malformed DTSTART value '{value}'")


def _parse_mapping(
    raw: Mapping[str, Any], tz: ZoneInfo,
) -> tuple[datetime | None, dict[str, str]]:
    unknown = set(raw) - _MAPPING_KEYS
    if unknown:
        raise RecurrenceValidationError(
            f"Unsupported recurrence fields: {', '.join(sorted(unknown))}",
        )
    fields: dict[str, str] = {}
    freq = raw.get("freq", raw.get("frequency"))
    if freq is not None:
        fields["FREQ"] = str(getattr(freq, "value", freq))
    by_day = raw.get("byday", raw.get("by_day"))
    if by_day:
        if isinstance(by_day, str):
            fields["BYDAY"] = by_day
        else:
            fields["BYDAY"] = ",".join(str(getattr(d, "value", d)) for d in by_day)
    for key in ("interval", "count"):
        if raw.get(key) is not None:
            fields[key.upper()] = str(raw[key])

    dtstart = raw.get("dtstart")
    if dtstart is None:
        return None, fields
    if isinstance(dtstart, str):
        try:
            dtstart = datetime.fromisoformat(dtstart)
        except ValueError as e:
            raise RecurrenceValidationError(f"Malformed dtstart '{dtstart}'") from e
    if not isinstance(dtstart, datetime):
        raise RecurrenceValidationError("dtstart must be a datetime or ISO string")
    return _as_aware(dtstart, tz), fields


def _build_rule(fields: dict[str, str], dtstart: datetime, timezone: str) -> RecurrenceRule:
    if "FREQ" not in fields:
        raise RecurrenceValidationError("Recurrence requires FREQ")
    try:
        frequency = Frequency(fields["FREQ"].upper())
    except ValueError as e:
        raise RecurrenceValidationError(f"Unsupported FREQ '{fields['FREQ']}'") from e

    by_day: tuple[Weekday, ...] = ()
    if "BYDAY" in fields:
        try:
            days = [Weekday(code.strip().upper()) for code in fields["BYDAY"].split(",")]
        except ValueError as e:
            raise RecurrenceValidationError(f"Invalid BYDAY '{fields['BYDAY']}'") from e
        by_day = tuple(sorted(set(days), key=lambda d: d.index))

    interval = _positive_int(fields.get("INTERVAL", "1"), "INTERVAL")
    count = _positive_int(fields["COUNT"], "COUNT") if "COUNT" in fields else None

    return RecurrenceRule(
        dtstart=dtstart,
        frequency=frequency,
        timezone=timezone,
        by_day=by_day,
        interval=interval,
        count=count,
    )


def _positive_int(value: str, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise RecurrenceValidationError(f"{name} must be an integer, got '{value}'") from e
    if number < 1:
        raise RecurrenceValidationError(f"{name} must be >= 1, got {number}")
    return number


def _as_aware(value: datetime, tz: Any) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=tz)


# ─── Expansion ───────────────────────────────────────────────────

def expand_occurrences(
    rule: RecurrenceRule,
    window_start: datetime,
    window_end: datetime,
    *,
    inclusive_end: bool = False,
) -> list[datetime]:
    """Occurrences of rule inside [window_start, window_end) as sorted UTC datetimes.

    inclusive_end=True closes the upper bound; the materializer uses it so an
    occurrence exactly at the horizon instant is not deferred to the next run.
    """
    if window_start.tzinfo is None or window_end.tzinfo is None:
        raise RecurrenceValidationError("Expansion window bounds must be timezone-aware")
    if window_start >= window_end:
        return []

    hits = rule.to_dateutil().between(window_start, window_end, inc=True)
    in_window = {
        hit.astimezone(dt_timezone.utc)
        for hit in hits
        if hit >= window_start and (hit <= window_end if inclusive_end else hit < window_end)
    }
    return sorted(in_window)
