# trick_tally/ranking.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from .catalog import RuleSet
from .scoring import score_completed_round
from .state import RoundData


@dataclass(frozen=True)
class RankingEntry:
    player_id: str
    total_score: int
    rank: int


def compute_cumulative_scores(
    rule_set: RuleSet,
    rounds: Iterable[RoundData],
    player_ids: Optional[Sequence[str]] = None,
) -> Dict[str, int]:
    """
    Sum round totals over completed rounds, keyed by player id.

    If `player_ids` is given, every listed player appears (0 when they have no
    completed round) and keys follow that order. Otherwise keys follow the
    order in which players first appear in the rounds, which is registration
    order for engine-built rounds.
    """
    rounds = list(rounds)
    totals: Dict[str, int] = {}
    if player_ids is not None:
        totals = {pid: 0 for pid in player_ids}
    else:
        for round_data in rounds:
            for pid in round_data.player_data:
                totals.setdefault(pid, 0)

    for round_data in rounds:
        for pid, score in score_completed_round(rule_set, round_data).items():
            if pid not in totals:
                # Only a corrupted state can get here.
                raise RuntimeError(
                    f"Round {round_data.round_number} scores unknown player {pid!r}"
                )
            totals[pid] += score.total_round_score
    return totals


def assign_competition_ranks(totals: Dict[str, int]) -> List[RankingEntry]:
    """
    Rank (player_id, score) pairs, best first, using competition ("1224")
    ranking. Ties keep the mapping's order since sorted() is stable.
    """
    ordered = sorted(totals.items(), key=lambda item: -item[1])
    entries: List[RankingEntry] = []
    for position, (pid, score) in enumerate(ordered, start=1):
        if entries and entries[-1].total_score == score:
            rank = entries[-1].rank
        else:
            rank = position
        entries.append(RankingEntry(player_id=pid, total_score=score, rank=rank))
    return entries


def get_ranking(
    rule_set: RuleSet,
    rounds: Iterable[RoundData],
    player_ids: Optional[Sequence[str]] = None,
) -> List[RankingEntry]:
    """Leaderboard over completed rounds; see compute_cumulative_scores."""
    return assign_competition_ranks(
        compute_cumulative_scores(rule_set, rounds, player_ids)
    )
