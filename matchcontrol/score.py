"""Match scores, their summaries and the match outcome."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass
class ScoreSummary:
    """Calculated totals of an alliance's score."""

    auto_points: int = 0
    teleop_points: int = 0
    endgame_points: int = 0
    score: int = 0


@dataclass
class Score:
    """The instantaneous score of one alliance."""

    auto_points: int = 0
    teleop_points: int = 0
    endgame_points: int = 0

    def summarize(self) -> ScoreSummary:
        """Return the summary fields used for ranking and display."""
        return ScoreSummary(
            auto_points=self.auto_points,
            teleop_points=self.teleop_points,
            endgame_points=self.endgame_points,
            score=self.auto_points + self.teleop_points + self.endgame_points,
        )


class MatchStatus(str, Enum):
    """Outcome of a match."""

    RED_WON = "R"
    BLUE_WON = "B"
    TIE = "T"
    NOT_PLAYED = ""


def determine_match_status(red_summary: ScoreSummary, blue_summary: ScoreSummary) -> MatchStatus:
    """Determine the winner of a match from both alliances' score summaries."""
    if red_summary.score > blue_summary.score:
        return MatchStatus.RED_WON
    if red_summary.score < blue_summary.score:
        return MatchStatus.BLUE_WON
    return MatchStatus.TIE