# trick_tally/game_log.py
from __future__ import annotations

import csv
from typing import Any, Dict, List, Optional

from .scoring import score_completed_round
from .state import GameState

FIELDNAMES = [
    "game_id",
    "round_number",
    "player_id",
    "player_name",
    "bid",
    "tricks",
    "base_score",
    "bonus_score",
    "loot_score",
    "round_score",
    "total_score",
]


def build_round_score_rows(
    game_state: GameState,
    game_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Build a list of rows summarizing per-round scores for CSV export.

    Each row corresponds to (round, player) and has keys in FIELDNAMES. Rounds
    that were never completed (abandoned or skipped) are left out, so their
    players' running totals simply carry over.
    """
    players = game_state.players
    rule_set = game_state.rule_set
    running_scores: Dict[str, int] = {p.id: 0 for p in players}
    rows: List[Dict[str, Any]] = []
    game_id = game_id if game_id is not None else game_state.id

    for round_data in game_state.rounds:
        scores = score_completed_round(rule_set, round_data)
        if not scores:
            continue

        for p in players:
            score = scores.get(p.id)
            if score is None:
                continue
            data = round_data.player_data[p.id]
            running_scores[p.id] += score.total_round_score

            rows.append(
                {
                    "game_id": game_id,
                    "round_number": round_data.round_number,
                    "player_id": p.id,
                    "player_name": p.display_name,
                    "bid": None if rule_set.is_simple else data.bid,
                    "tricks": None if rule_set.is_simple else data.tricks,
                    "base_score": score.base_score,
                    "bonus_score": score.bonus_score,
                    "loot_score": score.loot_score,
                    "round_score": score.total_round_score,
                    "total_score": running_scores[p.id],
                }
            )

    return rows


def write_round_scores_csv(
    game_state: GameState,
    path,
    game_id: Optional[str] = None,
) -> int:
    """
    Write per-round scores to a CSV file and return the number of data rows.

    `path` can be a string or any path-like object accepted by `open`.
    """
    rows = build_round_score_rows(game_state, game_id=game_id)

    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
        writer.writeheader()
        for row in rows:
            writer.writerow({field: row.get(field) for field in FIELDNAMES})
    return len(rows)
