# trick_tally/state.py
from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional

from .catalog import BONUS_CATALOG, BonusKind, GamePhase, RuleSet, parse_bonus_kind
from .errors import ValidationError

__all__ = [
    "GamePhase",
    "Player",
    "RoundPlayerData",
    "RoundPlayerPatch",
    "RoundData",
    "GameState",
    "new_round",
    "validate_patch",
    "validate_game_state",
]


@dataclass
class Player:
    id: str
    display_name: str
    avatar_ref: Optional[str] = None


@dataclass
class RoundPlayerData:
    player_id: str
    bid: int = 0
    tricks: int = 0
    # BonusKind -> counter (int) or flag (bool), enabled kinds only
    bonuses: Dict[BonusKind, int] = field(default_factory=dict)
    freeform_bonus: int = 0
    loot_points: int = 0
    # simple counter mode
    score: int = 0
    bonus_malus_chips: List[int] = field(default_factory=list)

    def bonus(self, kind: BonusKind) -> int:
        return int(self.bonuses.get(kind, 0))


@dataclass
class RoundPlayerPatch:
    """
    Partial update for one player's round data. None means "leave as is";
    every other value replaces the stored one (no increments), so applying
    the same patch twice is the same as applying it once.
    """
    bid: Optional[int] = None
    tricks: Optional[int] = None
    bonuses: Optional[Dict[BonusKind, int]] = None
    freeform_bonus: Optional[int] = None
    loot_points: Optional[int] = None
    score: Optional[int] = None
    bonus_malus_chips: Optional[List[int]] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RoundPlayerPatch":
        if not isinstance(data, Mapping):
            raise ValidationError(f"Round data patch must be a mapping, got {data!r}")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValidationError(f"Unknown round data field(s): {', '.join(unknown)}")
        values = dict(data)
        if values.get("bonuses") is not None:
            if not isinstance(values["bonuses"], Mapping):
                raise ValidationError("bonuses must map bonus kinds to values")
            values["bonuses"] = {
                k if isinstance(k, BonusKind) else parse_bonus_kind(k): v
                for k, v in values["bonuses"].items()
            }
        return cls(**values)

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


@dataclass
class RoundData:
    round_number: int
    # player id -> data, in player registration order
    player_data: Dict[str, RoundPlayerData] = field(default_factory=dict)
    completed: bool = False
    double_stakes: bool = False


@dataclass
class GameState:
    id: str
    rule_set: RuleSet
    players: List[Player] = field(default_factory=list)
    rounds: List[RoundData] = field(default_factory=list)
    current_round_number: int = 1
    phase: GamePhase = GamePhase.SETUP

    @property
    def num_players(self) -> int:
        return len(self.players)

    @property
    def player_ids(self) -> List[str]:
        return [p.id for p in self.players]

    def find_player(self, player_id: str) -> Optional[Player]:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def find_round(self, round_number: int) -> Optional[RoundData]:
        for r in self.rounds:
            if r.round_number == round_number:
                return r
        return None

    @property
    def completed_rounds(self) -> List[RoundData]:
        return [r for r in self.rounds if r.completed]


def new_round(players: List[Player], round_number: int) -> RoundData:
    """A round with every per-player field zeroed."""
    return RoundData(
        round_number=round_number,
        player_data={p.id: RoundPlayerData(player_id=p.id) for p in players},
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _require_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    return value


def validate_patch(
    rule_set: RuleSet,
    round_number: int,
    patch: RoundPlayerPatch,
) -> None:
    """
    Check every field of `patch` against the active rule set.

    Raises ValidationError on the first violation; nothing is merged by this
    function.
    """
    simple = rule_set.is_simple

    if patch.bid is not None:
        if simple:
            raise ValidationError("bid is not used by simple counter rules")
        bid = _require_int("bid", patch.bid)
        if not 0 <= bid <= round_number:
            raise ValidationError(
                f"bid must be between 0 and {round_number} in round {round_number}, got {bid}"
            )

    if patch.tricks is not None:
        if simple:
            raise ValidationError("tricks is not used by simple counter rules")
        if _require_int("tricks", patch.tricks) < 0:
            raise ValidationError(f"tricks must be non-negative, got {patch.tricks}")

    if patch.score is not None:
        if not simple:
            raise ValidationError("score is only used by simple counter rules")
        _require_int("score", patch.score)

    if patch.bonuses is not None:
        if not isinstance(patch.bonuses, Mapping):
            raise ValidationError("bonuses must map bonus kinds to values")
        for kind, value in patch.bonuses.items():
            if not isinstance(kind, BonusKind):
                raise ValidationError(f"bonus keys must be BonusKind, got {kind!r}")
            if kind not in rule_set.enabled_bonus_kinds:
                raise ValidationError(f"bonus kind '{kind.value}' is not enabled for this game")
            if BONUS_CATALOG[kind].is_flag:
                if not isinstance(value, bool):
                    raise ValidationError(f"bonus '{kind.value}' is a flag and takes True/False")
            elif _require_int(kind.value, value) < 0:
                raise ValidationError(f"bonus '{kind.value}' must be non-negative, got {value}")

    if patch.freeform_bonus is not None:
        _require_int("freeform_bonus", patch.freeform_bonus)
        if patch.freeform_bonus != 0 and not rule_set.allow_freeform_bonus:
            raise ValidationError("freeform bonus entry is not allowed for this game")

    if patch.loot_points is not None:
        _require_int("loot_points", patch.loot_points)
        if patch.loot_points != 0 and not rule_set.loot_enabled:
            raise ValidationError("loot is not enabled for this game")

    if patch.bonus_malus_chips is not None:
        if not isinstance(patch.bonus_malus_chips, (list, tuple)):
            raise ValidationError(
                f"bonus_malus_chips must be a list of integers, got {patch.bonus_malus_chips!r}"
            )
        for chip in patch.bonus_malus_chips:
            _require_int("bonus/malus chip", chip)
            if chip not in rule_set.bonus_values_menu:
                raise ValidationError(
                    f"bonus/malus chip {chip} is not on this game's menu "
                    f"{list(rule_set.bonus_values_menu)}"
                )


def apply_patch(data: RoundPlayerData, patch: RoundPlayerPatch) -> None:
    """Merge an already validated patch into `data`."""
    if patch.bid is not None:
        data.bid = patch.bid
    if patch.tricks is not None:
        data.tricks = patch.tricks
    if patch.score is not None:
        data.score = patch.score
    if patch.bonuses is not None:
        for kind, value in patch.bonuses.items():
            data.bonuses[kind] = value
    if patch.freeform_bonus is not None:
        data.freeform_bonus = patch.freeform_bonus
    if patch.loot_points is not None:
        data.loot_points = patch.loot_points
    if patch.bonus_malus_chips is not None:
        data.bonus_malus_chips = list(patch.bonus_malus_chips)


def validate_game_state(state: GameState) -> None:
    """
    Check the structural invariants of a GameState (typically one that was
    just rehydrated from a snapshot). Raises ValidationError on violation.
    """
    player_ids = state.player_ids
    if len(set(player_ids)) != len(player_ids):
        raise ValidationError("duplicate player ids")

    for expected, round_data in enumerate(state.rounds, start=1):
        if round_data.round_number != expected:
            raise ValidationError(
                f"rounds must be numbered 1..n without gaps; found {round_data.round_number} "
                f"at position {expected}"
            )
        stray = set(round_data.player_data) - set(player_ids)
        if stray:
            raise ValidationError(
                f"round {round_data.round_number} references unknown player(s): "
                f"{', '.join(sorted(stray))}"
            )
        missing = [pid for pid in player_ids if pid not in round_data.player_data]
        if missing:
            raise ValidationError(
                f"round {round_data.round_number} has no data for player(s): "
                f"{', '.join(missing)}"
            )

    if state.phase == GamePhase.SETUP:
        if state.rounds:
            raise ValidationError("a game in setup must not have rounds")
        return

    if state.rounds and state.num_players < 2:
        raise ValidationError("a started game needs at least 2 players")

    if state.phase != GamePhase.FINISHED:
        matching = [r for r in state.rounds if r.round_number == state.current_round_number]
        if len(matching) != 1:
            raise ValidationError(
                f"current round {state.current_round_number} has no round data"
            )
        if state.phase in (GamePhase.BIDDING, GamePhase.SCORING) and matching[0].completed:
            raise ValidationError(
                f"current round {state.current_round_number} is already completed "
                f"but the game is in '{state.phase.value}'"
            )
