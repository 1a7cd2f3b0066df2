"""Fields by which teams are ranked and the ordering of rankings."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Iterable

from .score import ScoreSummary

_TIEBREAK_FIELDS = ("ranking_points", "auto_points", "endgame_points", "teleop_points")


@dataclass
class RankingFields:
    """Accumulated per-team ranking statistics."""

    ranking_points: int = 0
    auto_points: int = 0
    endgame_points: int = 0
    teleop_points: int = 0
    random: float = 0.0
    wins: int = 0
    losses: int = 0
    ties: int = 0
    played: int = 0

    def add_score_summary(self, own_score: ScoreSummary, opponent_score: ScoreSummary) -> None:
        """Account for one played match given both alliances' summaries."""
        self.played += 1
        # A random value serves as the last tiebreaker.
        self.random = random.random()

        if own_score.score > opponent_score.score:
            self.ranking_points += 2
            self.wins += 1
        elif own_score.score == opponent_score.score:
            self.ranking_points += 1
            self.ties += 1
        else:
            self.losses += 1

        self.auto_points += own_score.auto_points
        self.endgame_points += own_score.endgame_points
        self.teleop_points += own_score.teleop_points


@dataclass
class Ranking:
    """A team's place in the rankings together with its statistics."""

    team_id: int
    rank: int = 0
    previous_rank: int = 0
    fields: RankingFields = field(default_factory=RankingFields)


def compare_rankings(a: Ranking, b: Ranking) -> int:
    """Return a negative number if a ranks above b, positive if below, zero if tied.

    Averages are compared by cross-multiplication with the number of matches played.
    """
    fa, fb = a.fields, b.fields
    for name in _TIEBREAK_FIELDS:
        lhs = getattr(fa, name) * fb.played
        rhs = getattr(fb, name) * fa.played
        if lhs != rhs:
            return -1 if lhs > rhs else 1
    if fa.random > fb.random:
        return -1
    if fa.random < fb.random:
        return 1
    return 0


def sort_rankings(rankings: Iterable[Ranking]) -> list[Ranking]:
    """Return the rankings ordered from first place to last."""
    return sorted(rankings, key=cmp_to_key(compare_rankings))