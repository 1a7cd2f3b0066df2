"""Cycle time and schedule adherence reporting for the event."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from .states import MatchInfo, MatchState

EARLY_LATE_THRESHOLD_MIN = 2.5
MAX_MATCH_GAP_MIN = 20


def format_cycle_time(seconds: int) -> str:
    """Format a cycle time as M:SS, or H:MM:SS when it exceeds an hour."""
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def describe_lateness(minutes_late: float) -> str:
    """Return the message describing how early or late the event is running."""
    if minutes_late > EARLY_LATE_THRESHOLD_MIN:
        return f"Event is running {int(minutes_late)} minutes late"
    if minutes_late < -EARLY_LATE_THRESHOLD_MIN:
        return f"Event is running {int(-minutes_late)} minutes early"
    return "Event is running on schedule"


def _minutes_between(later: datetime | None, earlier: datetime | None) -> float:
    """Minutes from earlier to later; an unset time counts as the earliest possible moment."""
    reference = later or earlier
    tzinfo = reference.tzinfo if reference is not None else None
    zero = datetime(1, 1, 1, tzinfo=tzinfo)
    return ((later or zero) - (earlier or zero)).total_seconds() / 60


def early_late_message(
    current_match: MatchInfo,
    matches: Sequence[MatchInfo],
    match_state: MatchState,
    now: datetime | None = None,
) -> str:
    """Work out how early or late the schedule is running around the current match.

    ``matches`` holds the scheduled matches of the current match's type, in order.
    """
    if current_match.type not in ("practice", "qualification"):
        return ""
    if current_match.is_complete():
        return ""
    now = now or datetime.now()

    minutes_late = 0.0
    if MatchState.PRE_MATCH < match_state < MatchState.POST_MATCH:
        minutes_late = _minutes_between(current_match.started_at, current_match.time)
    else:
        index = next(
            (i for i, match in enumerate(matches) if match.id == current_match.id), None
        )
        previous_index = index - 1 if index is not None else -1
        next_index = index + 1 if index is not None else len(matches)

        if match_state == MatchState.PRE_MATCH:
            current_late = _minutes_between(now, current_match.time)
            previous = matches[previous_index] if previous_index >= 0 else None
            if (
                previous is not None
                and _minutes_between(current_match.time, previous.time) <= MAX_MATCH_GAP_MIN
            ):
                previous_late = _minutes_between(previous.started_at, previous.time)
                minutes_late = max(previous_late, current_late)
            else:
                minutes_late = max(current_late, 0.0)
        elif match_state == MatchState.POST_MATCH:
            current_late = _minutes_between(current_match.started_at, current_match.time)
            if next_index < len(matches):
                next_late = _minutes_between(now, matches[next_index].time)
                minutes_late = max(current_late, next_late)
            else:
                minutes_late = current_late

    return describe_lateness(minutes_late)


@dataclass
class EventStatus:
    """Cycle time and early/late message shown on the displays."""

    cycle_time: str = ""
    early_late_message: str = ""
    _last_match_start_time: datetime | None = field(default=None, repr=False, compare=False)

    def update_cycle_time(self, match_start_time: datetime | None) -> None:
        """Record a match start, computing the time since the previous one."""
        if self._last_match_start_time is None or match_start_time is None:
            self.cycle_time = ""
        else:
            elapsed = match_start_time - self._last_match_start_time
            self.cycle_time = format_cycle_time(int(elapsed.total_seconds()))
        self._last_match_start_time = match_start_time