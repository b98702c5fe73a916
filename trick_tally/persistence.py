# trick_tally/persistence.py
"""
Game state serialization and snapshot stores.

Converts GameState to and from JSON-compatible dicts so a game can be saved
after every transition and rehydrated verbatim, and provides the stores the
engine publishes snapshots to (in-memory and a JSON file).
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from .catalog import BonusKind, GamePhase, RuleSet, ScoringFormula
from .errors import ValidationError
from .state import GameState, Player, RoundData, RoundPlayerData

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


# ---------------------------------------------------------------------------
# Rule sets
# ---------------------------------------------------------------------------


def rule_set_to_dict(rule_set: RuleSet) -> Dict[str, Any]:
    return {
        "slug": rule_set.slug,
        "name": rule_set.name,
        "base_formula": rule_set.base_formula.value,
        "rounds_total": rule_set.rounds_total,
        "enabled_bonus_kinds": sorted(k.value for k in rule_set.enabled_bonus_kinds),
        "bonus_values": {k.value: v for k, v in sorted(
            rule_set.bonus_values.items(), key=lambda item: item[0].value
        )},
        "always_counted": sorted(k.value for k in rule_set.always_counted),
        "bonus_values_menu": list(rule_set.bonus_values_menu),
        "allow_freeform_bonus": rule_set.allow_freeform_bonus,
        "min_players": rule_set.min_players,
        "max_players": rule_set.max_players,
        "loot_enabled": rule_set.loot_enabled,
        "loot_values": list(rule_set.loot_values),
        "allow_double_stakes": rule_set.allow_double_stakes,
        "per_bid_points": rule_set.per_bid_points,
        "zero_bid_points": rule_set.zero_bid_points,
        "miss_penalty": rule_set.miss_penalty,
    }


def rule_set_from_dict(d: Dict[str, Any]) -> RuleSet:
    return RuleSet(
        base_formula=ScoringFormula(d["base_formula"]),
        rounds_total=int(d["rounds_total"]),
        enabled_bonus_kinds=frozenset(BonusKind(k) for k in d.get("enabled_bonus_kinds", [])),
        bonus_values={BonusKind(k): int(v) for k, v in d.get("bonus_values", {}).items()},
        always_counted=frozenset(BonusKind(k) for k in d.get("always_counted", [])),
        bonus_values_menu=tuple(int(v) for v in d.get("bonus_values_menu", [])),
        allow_freeform_bonus=bool(d.get("allow_freeform_bonus", False)),
        min_players=int(d.get("min_players", 2)),
        max_players=int(d.get("max_players", 12)),
        loot_enabled=bool(d.get("loot_enabled", False)),
        loot_values=tuple(int(v) for v in d.get("loot_values", [])),
        allow_double_stakes=bool(d.get("allow_double_stakes", False)),
        per_bid_points=int(d.get("per_bid_points", 20)),
        zero_bid_points=int(d.get("zero_bid_points", 10)),
        miss_penalty=int(d.get("miss_penalty", 10)),
        slug=d.get("slug", "custom"),
        name=d.get("name", "Custom game"),
    )


# ---------------------------------------------------------------------------
# Game state
# ---------------------------------------------------------------------------


def _player_data_to_dict(data: RoundPlayerData) -> Dict[str, Any]:
    return {
        "player_id": data.player_id,
        "bid": data.bid,
        "tricks": data.tricks,
        "bonuses": {k.value: v for k, v in data.bonuses.items()},
        "freeform_bonus": data.freeform_bonus,
        "loot_points": data.loot_points,
        "score": data.score,
        "bonus_malus_chips": list(data.bonus_malus_chips),
    }


def _player_data_from_dict(d: Dict[str, Any]) -> RoundPlayerData:
    return RoundPlayerData(
        player_id=d["player_id"],
        bid=int(d.get("bid", 0)),
        tricks=int(d.get("tricks", 0)),
        # JSON keeps bools and ints apart, so flags survive as flags.
        bonuses={BonusKind(k): v for k, v in d.get("bonuses", {}).items()},
        freeform_bonus=int(d.get("freeform_bonus", 0)),
        loot_points=int(d.get("loot_points", 0)),
        score=int(d.get("score", 0)),
        bonus_malus_chips=[int(v) for v in d.get("bonus_malus_chips", [])],
    )


def _round_to_dict(round_data: RoundData) -> Dict[str, Any]:
    return {
        "round_number": round_data.round_number,
        "completed": round_data.completed,
        "double_stakes": round_data.double_stakes,
        # list keeps registration order explicit in the snapshot
        "player_data": [_player_data_to_dict(d) for d in round_data.player_data.values()],
    }


def _round_from_dict(d: Dict[str, Any]) -> RoundData:
    player_data = [_player_data_from_dict(pd) for pd in d.get("player_data", [])]
    return RoundData(
        round_number=int(d["round_number"]),
        player_data={pd.player_id: pd for pd in player_data},
        completed=bool(d.get("completed", False)),
        double_stakes=bool(d.get("double_stakes", False)),
    )


def game_state_to_dict(state: GameState) -> Dict[str, Any]:
    """Serialize a GameState to a JSON-compatible dict."""
    return {
        "schema_version": SCHEMA_VERSION,
        "id": state.id,
        "phase": state.phase.value,
        "current_round_number": state.current_round_number,
        "rule_set": rule_set_to_dict(state.rule_set),
        "players": [
            {"id": p.id, "display_name": p.display_name, "avatar_ref": p.avatar_ref}
            for p in state.players
        ],
        "rounds": [_round_to_dict(r) for r in state.rounds],
    }


def game_state_from_dict(d: Dict[str, Any]) -> GameState:
    """
    Deserialize a GameState produced by game_state_to_dict.

    Raises ValidationError for unsupported schema versions or malformed data.
    """
    version = d.get("schema_version", SCHEMA_VERSION)
    if version != SCHEMA_VERSION:
        raise ValidationError(f"Unsupported game snapshot schema version: {version}")
    try:
        return GameState(
            id=d["id"],
            rule_set=rule_set_from_dict(d["rule_set"]),
            players=[
                Player(id=p["id"], display_name=p["display_name"], avatar_ref=p.get("avatar_ref"))
                for p in d.get("players", [])
            ],
            rounds=[_round_from_dict(r) for r in d.get("rounds", [])],
            current_round_number=int(d.get("current_round_number", 1)),
            phase=GamePhase(d.get("phase", GamePhase.SETUP.value)),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError(f"Malformed game snapshot: {exc}") from exc


def game_state_to_json(state: GameState, indent: Optional[int] = 2) -> str:
    return json.dumps(game_state_to_dict(state), indent=indent)


def game_state_from_json(text: str) -> GameState:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Game snapshot is not valid JSON: {exc}") from exc
    return game_state_from_dict(data)


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@runtime_checkable
class GameStore(Protocol):
    """Persistence collaborator: synchronous, all-or-nothing snapshot I/O."""

    def load_game_state(self) -> Optional[GameState]:
        raise NotImplementedError

    def save_game_state(self, state: GameState) -> None:
        raise NotImplementedError


class MemoryGameStore:
    """Keeps the latest snapshot as serialized JSON, like a browser local store."""

    def __init__(self) -> None:
        self._payload: Optional[str] = None

    def load_game_state(self) -> Optional[GameState]:
        if self._payload is None:
            return None
        return game_state_from_json(self._payload)

    def save_game_state(self, state: GameState) -> None:
        self._payload = game_state_to_json(state, indent=None)

    def clear(self) -> None:
        self._payload = None


class JsonFileStore:
    """
    Stores the snapshot in a JSON file.

    Writes go to a temporary file in the same directory which then replaces
    the target, so a reader polling the file sees either the previous or the
    new snapshot, never a partial one. Concurrent writers are not detected:
    the last write wins.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load_game_state(self) -> Optional[GameState]:
        if not self.path.exists():
            return None
        return game_state_from_json(self.path.read_text(encoding="utf-8"))

    def save_game_state(self, state: GameState) -> None:
        payload = game_state_to_json(state)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug("Saved game %s to %s", state.id, self.path)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


def attach_store(engine, store: GameStore) -> None:
    """Save a snapshot to `store` after every successful engine transition."""
    engine.add_observer(store.save_game_state)
