# trick_tally/engine.py
from __future__ import annotations

import copy
import logging
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .catalog import GamePhase, RuleSet
from .errors import NotFoundError, StateError, StorageError, ValidationError
from .ranking import RankingEntry, compute_cumulative_scores, get_ranking
from .scoring import RoundScore, score_completed_round
from .state import (
    GameState,
    Player,
    RoundData,
    RoundPlayerPatch,
    apply_patch,
    new_round,
    validate_game_state,
    validate_patch,
)

logger = logging.getLogger(__name__)

Observer = Callable[[GameState], None]
PatchLike = Union[RoundPlayerPatch, Mapping[str, Any]]

_IN_ROUND_PHASES = (GamePhase.BIDDING, GamePhase.SCORING)


def _new_id() -> str:
    return uuid.uuid4().hex


class GameEngine:
    """
    Owns the single current GameState and its legal phase transitions.

    setup -> bidding -> scoring -> review -> (bidding | finished)

    Simple counter games skip bidding. Every transition either succeeds
    completely or raises (StateError / ValidationError / NotFoundError)
    without touching the state. Scores are never stored: they are derived
    from the frozen round inputs whenever they are queried.

    Observers (e.g. a persistence store) receive a deep-copied snapshot after
    every successful mutation. If an observer raises, the state is restored
    to what it was before the transition and StorageError is raised;
    observers earlier in the list may already have seen the discarded
    snapshot.
    """

    def __init__(
        self,
        rule_set: RuleSet,
        *,
        state: Optional[GameState] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self._id_factory = id_factory or _new_id
        self._observers: List[Observer] = []
        if state is None:
            state = GameState(id=self._id_factory(), rule_set=rule_set)
        elif state.rule_set != rule_set:
            raise ValidationError("state.rule_set does not match the engine rule set")
        self.state: GameState = state
        self._committed: GameState = copy.deepcopy(state)

    @classmethod
    def from_state(
        cls,
        state: GameState,
        *,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> "GameEngine":
        """Rehydrate an engine from a persisted snapshot."""
        validate_game_state(state)
        return cls(state.rule_set, state=state, id_factory=id_factory)

    # -------------------------------------------------------------------------
    # Observers / snapshots
    # -------------------------------------------------------------------------

    @property
    def rule_set(self) -> RuleSet:
        return self.state.rule_set

    @property
    def phase(self) -> GamePhase:
        return self.state.phase

    def add_observer(self, observer: Observer) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: Observer) -> None:
        self._observers.remove(observer)

    def snapshot(self) -> GameState:
        """A deep copy of the current state, safe to hand to collaborators."""
        return copy.deepcopy(self.state)

    def _notify(self) -> None:
        snap = self.snapshot()
        for observer in self._observers:
            try:
                observer(snap)
            except Exception as exc:
                self.state = copy.deepcopy(self._committed)
                logger.error(
                    "Observer %r failed, rolled back game %s: %s", observer, self.state.id, exc
                )
                raise StorageError(f"Could not record the change: {exc}") from exc
        self._committed = snap if not self._observers else self.snapshot()

    def _require_phase(self, action: str, *allowed: GamePhase) -> None:
        if self.state.phase not in allowed:
            expected = " or ".join(p.value for p in allowed)
            raise StateError(
                f"Cannot {action} during '{self.state.phase.value}' (allowed: {expected})"
            )

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    def _check_name_available(self, name: str, ignore_id: Optional[str] = None) -> str:
        cleaned = name.strip()
        if not cleaned:
            raise ValidationError("Player name must not be empty")
        folded = cleaned.casefold()
        for p in self.state.players:
            if p.id != ignore_id and p.display_name.casefold() == folded:
                raise StateError(f"A player named '{p.display_name}' already exists")
        return cleaned

    def add_player(self, name: str, avatar_ref: Optional[str] = None) -> Player:
        self._require_phase("add a player", GamePhase.SETUP)
        cleaned = self._check_name_available(name)
        max_players = self.rule_set.max_players
        if self.state.num_players >= max_players:
            raise StateError(f"{self.rule_set.name} supports at most {max_players} players")

        player = Player(id=self._id_factory(), display_name=cleaned, avatar_ref=avatar_ref)
        self.state.players.append(player)
        logger.debug("Added player %s (%s)", player.display_name, player.id)
        self._notify()
        return player

    def remove_player(self, player_id: str) -> None:
        self._require_phase("remove a player", GamePhase.SETUP)
        player = self.get_player(player_id)
        self.state.players = [p for p in self.state.players if p.id != player.id]
        logger.debug("Removed player %s (%s)", player.display_name, player.id)
        self._notify()

    def update_player(
        self,
        player_id: str,
        display_name: Optional[str] = None,
        avatar_ref: Optional[str] = None,
    ) -> Player:
        """Edit a player's name and/or avatar; the id never changes."""
        if self.state.phase == GamePhase.FINISHED:
            raise StateError("Cannot edit players of a finished game")
        player = self.get_player(player_id)
        cleaned = None
        if display_name is not None:
            cleaned = self._check_name_available(display_name, ignore_id=player.id)

        if cleaned is not None:
            player.display_name = cleaned
        if avatar_ref is not None:
            player.avatar_ref = avatar_ref
        self._notify()
        return copy.deepcopy(player)

    def start_game(self) -> None:
        self._require_phase("start the game", GamePhase.SETUP)
        needed = max(2, self.rule_set.min_players)
        if self.state.num_players < needed:
            raise StateError(
                f"Need at least {needed} players to start, have {self.state.num_players}"
            )

        self.state.rounds = [new_round(self.state.players, 1)]
        self.state.current_round_number = 1
        self.state.phase = self.rule_set.first_round_phase
        logger.info(
            "Started game %s with %d players (%s, %d rounds)",
            self.state.id,
            self.state.num_players,
            self.rule_set.name,
            self.rule_set.rounds_total,
        )
        self._notify()

    # -------------------------------------------------------------------------
    # Round lifecycle
    # -------------------------------------------------------------------------

    def _current_round(self) -> RoundData:
        round_data = self.state.find_round(self.state.current_round_number)
        if round_data is None:
            raise RuntimeError(
                f"No round data for current round {self.state.current_round_number}"
            )
        return round_data

    def submit_bids(self) -> None:
        self._require_phase("submit bids", GamePhase.BIDDING)
        self.state.phase = GamePhase.SCORING
        self._notify()

    def update_round_player_data(self, player_id: str, patch: PatchLike) -> None:
        """
        Merge `patch` into the player's data for the current round.

        The patch is validated field by field first; on any violation the
        stored data is left untouched.
        """
        self._require_phase("update round data", *_IN_ROUND_PHASES)
        if not isinstance(patch, RoundPlayerPatch):
            patch = RoundPlayerPatch.from_dict(patch)

        round_data = self._current_round()
        data = round_data.player_data.get(player_id)
        if data is None:
            raise NotFoundError(
                f"Player {player_id!r} is not part of round {round_data.round_number}"
            )
        validate_patch(self.rule_set, round_data.round_number, patch)
        apply_patch(data, patch)
        logger.debug(
            "Round %d: updated %s with %s", round_data.round_number, player_id, patch
        )
        self._notify()

    def set_double_stakes(self, enabled: bool) -> None:
        self._require_phase("change the stakes", *_IN_ROUND_PHASES)
        if enabled and not self.rule_set.allow_double_stakes:
            raise ValidationError(f"{self.rule_set.name} does not allow double stakes")
        self._current_round().double_stakes = bool(enabled)
        self._notify()

    def finalize_round(self) -> None:
        """Freeze the current round and move to review."""
        self._require_phase("finalize the round", GamePhase.SCORING)
        round_data = self._current_round()
        round_data.completed = True
        self.state.phase = GamePhase.REVIEW
        logger.info(
            "Finished round %d/%d for game %s",
            round_data.round_number,
            self.rule_set.rounds_total,
            self.state.id,
        )
        self._notify()

    def advance_round(self) -> None:
        self._require_phase("advance to the next round", GamePhase.REVIEW)
        next_number = self.state.current_round_number + 1
        if next_number > self.rule_set.rounds_total:
            self.state.phase = GamePhase.FINISHED
            logger.info("Finished game %s", self.state.id)
        else:
            self.state.rounds = self.state.rounds + [new_round(self.state.players, next_number)]
            self.state.current_round_number = next_number
            self.state.phase = self.rule_set.first_round_phase
        self._notify()

    def skip_to_round(self, target: int) -> None:
        """
        Jump ahead to round `target` so the app matches a table that has
        moved on. Every round in between is created empty and uncompleted,
        so it never scores. A target past the last round ends the game.
        """
        self._require_phase(
            "skip rounds", GamePhase.BIDDING, GamePhase.SCORING, GamePhase.REVIEW
        )
        if isinstance(target, bool) or not isinstance(target, int):
            raise ValidationError(f"Round number must be an integer, got {target!r}")
        current = self.state.current_round_number
        if target <= current:
            raise ValidationError(f"Can only skip forward from round {current}, got {target}")

        if target > self.rule_set.rounds_total:
            self.state.phase = GamePhase.FINISHED
            logger.warning(
                "Skipping past round %d ends game %s", self.rule_set.rounds_total, self.state.id
            )
            self._notify()
            return

        skipped = [
            new_round(self.state.players, number) for number in range(current + 1, target + 1)
        ]
        self.state.rounds = self.state.rounds + skipped
        self.state.current_round_number = target
        self.state.phase = self.rule_set.first_round_phase
        logger.warning(
            "Game %s skipped from round %d to round %d", self.state.id, current, target
        )
        self._notify()

    def end_game_early(self) -> None:
        """Finish now; an in-progress round stays uncompleted and never scores."""
        if self.state.phase == GamePhase.FINISHED:
            raise StateError("The game is already finished")
        self.state.phase = GamePhase.FINISHED
        logger.warning(
            "Game %s ended early in round %d", self.state.id, self.state.current_round_number
        )
        self._notify()

    def new_game(self, rule_set: Optional[RuleSet] = None) -> GameState:
        """Discard the current game and start a fresh setup."""
        self.state = GameState(id=self._id_factory(), rule_set=rule_set or self.rule_set)
        logger.info("New game %s (%s)", self.state.id, self.rule_set.name)
        self._notify()
        return self.snapshot()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_player(self, player_id: str) -> Player:
        player = self.state.find_player(player_id)
        if player is None:
            raise NotFoundError(f"Unknown player {player_id!r}")
        return player

    def get_current_round(self) -> Optional[RoundData]:
        round_data = self.state.find_round(self.state.current_round_number)
        return copy.deepcopy(round_data) if round_data is not None else None

    def get_cumulative_scores(self) -> Dict[str, int]:
        return compute_cumulative_scores(
            self.rule_set, self.state.rounds, self.state.player_ids
        )

    def get_ranking(self) -> List[RankingEntry]:
        return get_ranking(self.rule_set, self.state.rounds, self.state.player_ids)

    def get_round_score(self, round_number: int, player_id: str) -> Optional[RoundScore]:
        """Score of one player in one round, or None if the round never completed."""
        round_data = self.state.find_round(round_number)
        if round_data is None:
            raise NotFoundError(f"Round {round_number} does not exist")
        if player_id not in round_data.player_data:
            raise NotFoundError(f"Player {player_id!r} is not part of round {round_number}")
        return score_completed_round(self.rule_set, round_data).get(player_id)
