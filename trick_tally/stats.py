# trick_tally/stats.py
"""Tabular views of a game's completed rounds, built with pandas."""
from __future__ import annotations

import pandas as pd

from .game_log import FIELDNAMES, build_round_score_rows
from .state import GameState


def score_frame(game_state: GameState) -> pd.DataFrame:
    """One row per (completed round, player); columns are FIELDNAMES."""
    rows = build_round_score_rows(game_state)
    return pd.DataFrame(rows, columns=FIELDNAMES)


def score_sheet(game_state: GameState) -> pd.DataFrame:
    """
    Cumulative totals after each completed round.

    Index is the round number, columns are player names in registration
    order. Skipped or abandoned rounds do not get a row.
    """
    df = score_frame(game_state)
    names = [p.display_name for p in game_state.players]
    if df.empty:
        return pd.DataFrame(columns=names, dtype="int64").rename_axis("round_number")
    sheet = df.pivot(index="round_number", columns="player_name", values="total_score")
    return sheet.reindex(columns=names).sort_index()


def bid_accuracy(game_state: GameState) -> pd.DataFrame:
    """
    Per-player bidding summary for bid/tricks games.

    - rounds: completed rounds played
    - bids_met: rounds where tricks == bid
    - hit_rate: bids_met / rounds
    - mean_miss: mean of (tricks - bid); negative = underperformed the bid
    """
    columns = ["player_name", "rounds", "bids_met", "hit_rate", "mean_miss"]
    if game_state.rule_set.is_simple:
        return pd.DataFrame(columns=columns)
    df = score_frame(game_state)
    if df.empty:
        return pd.DataFrame(columns=columns)

    df = df.astype({"bid": "int64", "tricks": "int64"})
    df["miss"] = df["tricks"] - df["bid"]
    df["met"] = df["miss"] == 0
    summary = (
        df.groupby("player_name", sort=False)
          .agg(rounds=("round_number", "count"), bids_met=("met", "sum"), mean_miss=("miss", "mean"))
          .reset_index()
    )
    summary["bids_met"] = summary["bids_met"].astype("int64")
    summary["hit_rate"] = summary["bids_met"] / summary["rounds"]
    return summary[columns]


def round_over_under(game_state: GameState) -> pd.DataFrame:
    """
    Table-level over/under bidding per completed round: the sum of all bids
    minus the tricks available (the round number). Positive = overbid.
    """
    columns = ["round_number", "total_bid", "round_miss"]
    if game_state.rule_set.is_simple:
        return pd.DataFrame(columns=columns)
    df = score_frame(game_state)
    if df.empty:
        return pd.DataFrame(columns=columns)
    per_round = (
        df.astype({"bid": "int64"})
          .groupby("round_number")
          .agg(total_bid=("bid", "sum"))
          .reset_index()
    )
    per_round["round_miss"] = per_round["total_bid"] - per_round["round_number"]
    return per_round[columns]
