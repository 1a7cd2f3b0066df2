"""Match states and the match record used by the arena."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum

from .score import MatchStatus


class MatchState(IntEnum):
    """Progression of match states, in order."""

    PRE_MATCH = 0
    START_MATCH = 1
    WARMUP_PERIOD = 2
    AUTO_PERIOD = 3
    PAUSE_PERIOD = 4
    TELEOP_PERIOD = 5
    POST_MATCH = 6
    TIMEOUT_ACTIVE = 7
    POST_TIMEOUT = 8


@dataclass
class MatchInfo:
    """A scheduled or ad-hoc match and the teams in its alliance stations."""

    id: int = 0
    type: str = ""
    display_name: str = ""
    time: datetime | None = None
    started_at: datetime | None = None
    red1: int = 0
    red2: int = 0
    red3: int = 0
    blue1: int = 0
    blue2: int = 0
    blue3: int = 0
    elim_round: int = 0
    elim_group: int = 0
    elim_instance: int = 0
    status: MatchStatus = MatchStatus.NOT_PLAYED

    def allows_substitution(self) -> bool:
        """Whether teams may be swapped in; qualification matches forbid it."""
        return self.type != "qualification"

    def capitalized_type(self) -> str:
        """The match type with its first letter in upper case."""
        return self.type[:1].upper() + self.type[1:]

    def is_complete(self) -> bool:
        """Whether the match has a recorded outcome."""
        return self.status != MatchStatus.NOT_PLAYED