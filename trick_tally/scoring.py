# trick_tally/scoring.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence

from .catalog import BONUS_CATALOG, RuleSet
from .state import RoundData, RoundPlayerData


@dataclass(frozen=True)
class RoundScore:
    player_id: str
    base_score: int
    bonus_score: int
    loot_score: int
    total_round_score: int


def base_score_for_bid(
    rule_set: RuleSet,
    round_number: int,
    bid: int,
    tricks: int,
) -> int:
    """
    Bid/tricks base score:

    - Bid met, bid > 0: per_bid_points * bid
    - Bid met, bid = 0: zero_bid_points * round_number
    - Bid missed, bid > 0: -miss_penalty * |tricks - bid|
    - Bid missed, bid = 0: -miss_penalty * round_number (flat, however many
      tricks were taken)
    """
    if tricks == bid:
        if bid > 0:
            return rule_set.per_bid_points * bid
        return rule_set.zero_bid_points * round_number
    if bid == 0:
        return -rule_set.miss_penalty * round_number
    return -rule_set.miss_penalty * abs(tricks - bid)


def _bonus_score(rule_set: RuleSet, data: RoundPlayerData, bid_met: bool) -> int:
    total = 0
    for kind in rule_set.ordered_bonus_kinds():
        if not bid_met and not rule_set.is_always_counted(kind):
            continue
        recorded = data.bonus(kind)
        if BONUS_CATALOG[kind].is_flag:
            total += rule_set.bonus_value(kind) if recorded else 0
        else:
            total += recorded * rule_set.bonus_value(kind)
    return total


def score_round(
    rule_set: RuleSet,
    round_number: int,
    data: RoundPlayerData,
    *,
    double_stakes: bool = False,
) -> RoundScore:
    """
    Score one player's round.

    Simple counter rules add the running score, the selected bonus/malus
    chips and the freeform bonus into the base score; nothing is forfeited.

    Bid/tricks rules compute the base from bid vs. tricks (doubled when the
    round is played for double stakes), then add the enabled bonuses.
    Forfeitable bonuses only count when the bid was met; always-counted ones
    and operator adjustments (chips, freeform bonus) count regardless.
    Loot is always counted and kept separate.
    """
    chips = sum(data.bonus_malus_chips)

    if rule_set.is_simple:
        base = data.score + data.freeform_bonus + chips
        return RoundScore(
            player_id=data.player_id,
            base_score=base,
            bonus_score=0,
            loot_score=0,
            total_round_score=base,
        )

    bid_met = data.tricks == data.bid
    base = base_score_for_bid(rule_set, round_number, data.bid, data.tricks)
    if double_stakes and rule_set.allow_double_stakes:
        base *= 2

    bonus = _bonus_score(rule_set, data, bid_met) + chips + data.freeform_bonus
    loot = data.loot_points

    return RoundScore(
        player_id=data.player_id,
        base_score=base,
        bonus_score=bonus,
        loot_score=loot,
        total_round_score=base + bonus + loot,
    )


def calculate_all_round_scores(
    rule_set: RuleSet,
    round_number: int,
    player_data: Sequence[RoundPlayerData],
    *,
    double_stakes: bool = False,
) -> List[RoundScore]:
    """Score every player of a round, preserving input order."""
    return [
        score_round(rule_set, round_number, d, double_stakes=double_stakes)
        for d in player_data
    ]


def score_completed_round(rule_set: RuleSet, round_data: RoundData) -> Dict[str, RoundScore]:
    """
    Per-player scores of a round keyed by player id.

    Uncompleted rounds (in progress, abandoned or skipped) score nothing and
    yield an empty mapping.
    """
    if not round_data.completed:
        return {}
    scores = calculate_all_round_scores(
        rule_set,
        round_data.round_number,
        list(round_data.player_data.values()),
        double_stakes=round_data.double_stakes,
    )
    return {s.player_id: s for s in scores}
