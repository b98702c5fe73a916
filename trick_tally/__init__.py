# trick_tally/__init__.py
from .catalog import (
    BONUS_CATALOG,
    BonusKind,
    BonusSpec,
    GamePhase,
    RuleSet,
    ScoringFormula,
    simple_rules,
    skull_king_rules,
)
from .engine import GameEngine
from .errors import NotFoundError, ScorekeeperError, StateError, StorageError, ValidationError
from .ranking import RankingEntry, compute_cumulative_scores, get_ranking
from .scoring import RoundScore, calculate_all_round_scores, score_round
from .state import GameState, Player, RoundData, RoundPlayerData, RoundPlayerPatch

__all__ = [
    "BONUS_CATALOG",
    "BonusKind",
    "BonusSpec",
    "GamePhase",
    "RuleSet",
    "ScoringFormula",
    "simple_rules",
    "skull_king_rules",
    "GameEngine",
    "ScorekeeperError",
    "StateError",
    "StorageError",
    "ValidationError",
    "NotFoundError",
    "RankingEntry",
    "compute_cumulative_scores",
    "get_ranking",
    "RoundScore",
    "calculate_all_round_scores",
    "score_round",
    "GameState",
    "Player",
    "RoundData",
    "RoundPlayerData",
    "RoundPlayerPatch",
]
