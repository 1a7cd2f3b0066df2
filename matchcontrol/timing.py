"""Match period timing and the sounds tied to it."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass
class MatchTiming:
    """Durations in whole seconds of each period of a match and of a timeout."""

    warmup_duration_sec: int = 0
    auto_duration_sec: int = 15
    pause_duration_sec: int = 2
    teleop_duration_sec: int = 135
    warning_remaining_duration_sec: int = 30
    timeout_duration_sec: int = 0
    timeout_warning_remaining_duration_sec: int = 60

    def duration_to_auto_end(self) -> timedelta:
        """Time from the match start to the end of the autonomous period."""
        return timedelta(seconds=self.warmup_duration_sec + self.auto_duration_sec)

    def duration_to_teleop_start(self) -> timedelta:
        """Time from the match start to the start of the teleoperated period."""
        return timedelta(
            seconds=self.warmup_duration_sec + self.auto_duration_sec + self.pause_duration_sec
        )

    def duration_to_teleop_end(self) -> timedelta:
        """Time from the match start to the end of the teleoperated period."""
        return timedelta(
            seconds=self.warmup_duration_sec
            + self.auto_duration_sec
            + self.pause_duration_sec
            + self.teleop_duration_sec
        )


@dataclass(frozen=True)
class MatchSound:
    """A sound played at a given match time; a negative time means it is only triggered explicitly."""

    name: str
    file_extension: str
    match_time_sec: float
    timeout: bool


def match_sounds(timing: MatchTiming) -> list[MatchSound]:
    """Return the sounds and the match times at which they play for the given timing."""
    match_end = timing.auto_duration_sec + timing.pause_duration_sec + timing.teleop_duration_sec
    return [
        MatchSound("start", "wav", 0.0, False),
        MatchSound("end", "wav", float(timing.auto_duration_sec), False),
        MatchSound(
            "resume", "wav", float(timing.auto_duration_sec + timing.pause_duration_sec), False
        ),
        MatchSound(
            "warning", "wav", float(match_end - timing.warning_remaining_duration_sec), False
        ),
        MatchSound("end", "wav", float(match_end), False),
        MatchSound(
            "timeout_warning",
            "wav",
            float(timing.timeout_duration_sec - timing.timeout_warning_remaining_duration_sec),
            True,
        ),
        MatchSound("end", "wav", float(timing.timeout_duration_sec), True),
        MatchSound("abort", "wav", -1.0, False),
        MatchSound("match_result", "wav", -1.0, False),
    ]