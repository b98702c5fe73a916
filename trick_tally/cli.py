# trick_tally/cli.py
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .catalog import BONUS_CATALOG, GamePhase, RuleSet, parse_bonus_kind, simple_rules, skull_king_rules
from .config import Settings, load_settings
from .definitions import resolve_rule_set
from .engine import GameEngine
from .errors import NotFoundError, ScorekeeperError, ValidationError
from .game_log import write_round_scores_csv
from .paths import resolve_data_path
from .persistence import JsonFileStore, attach_store
from .state import Player
from .stats import bid_accuracy, score_sheet

logger = logging.getLogger(__name__)


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Keep score for a trick-bidding card game (Skull King or a simple "
            "counter game). The game is saved after every command."
        )
    )
    parser.add_argument(
        "--state",
        type=str,
        default=None,
        help="Path to the saved game JSON (default: $TRICK_TALLY_STATE_PATH).",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (DEBUG, INFO, WARNING, ...). Default: INFO.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    new = sub.add_parser("new", help="Discard the saved game and set up a new one.")
    new.add_argument(
        "--rules",
        choices=["skull-king", "simple"],
        default="skull-king",
        help="Built-in rule set (default: skull-king).",
    )
    new.add_argument("--rounds", type=int, default=None, help="Number of rounds.")
    new.add_argument(
        "--extension",
        action="store_true",
        help="Skull King: enable the expansion bonus cards.",
    )
    new.add_argument("--loot", action="store_true", help="Skull King: enable loot points.")
    new.add_argument(
        "--menu",
        type=int,
        nargs="*",
        default=[],
        help="Simple rules: bonus/malus chip values, e.g. --menu 5 10 -5.",
    )
    new.add_argument(
        "--freeform",
        action="store_true",
        help="Simple rules: allow freeform bonus entry.",
    )
    new.add_argument(
        "--definition",
        type=str,
        default=None,
        help="JSON file with an admin game definition (overrides --rules).",
    )

    add = sub.add_parser("add-player", help="Register a player (setup only).")
    add.add_argument("name")
    add.add_argument("--avatar", default=None)

    remove = sub.add_parser("remove-player", help="Remove a player (setup only).")
    remove.add_argument("player", help="Player id or name.")

    rename = sub.add_parser("rename-player", help="Change a player's name or avatar.")
    rename.add_argument("player", help="Player id or name.")
    rename.add_argument("--name", default=None)
    rename.add_argument("--avatar", default=None)

    sub.add_parser("start", help="Start round 1.")

    set_ = sub.add_parser("set", help="Update a player's data for the current round.")
    set_.add_argument("player", help="Player id or name.")
    set_.add_argument("--bid", type=int, default=None)
    set_.add_argument("--tricks", type=int, default=None)
    set_.add_argument("--score", type=int, default=None, help="Simple rules score.")
    set_.add_argument("--loot", type=int, default=None, help="Loot points.")
    set_.add_argument("--freeform", type=int, default=None, help="Freeform bonus.")
    set_.add_argument(
        "--chip",
        type=int,
        action="append",
        default=[],
        help="Add a bonus/malus chip value (repeatable).",
    )
    set_.add_argument("--clear-chips", action="store_true")
    set_.add_argument(
        "--bonus",
        action="append",
        default=[],
        metavar="KIND=VALUE",
        help="Set a bonus counter or flag, e.g. pirates_captured=2 (repeatable).",
    )

    sub.add_parser("double", help="Toggle double stakes for the current round.")
    sub.add_parser("submit-bids", help="Close bidding and start scoring.")
    sub.add_parser("finalize", help="Freeze the current round and review it.")
    sub.add_parser("next", help="Advance to the next round (or finish).")

    skip = sub.add_parser("skip", help="Jump ahead to a later round.")
    skip.add_argument("target", type=int)

    sub.add_parser("end", help="End the game now.")
    sub.add_parser("status", help="Show the current game.")
    sub.add_parser("ranking", help="Show the leaderboard.")

    export = sub.add_parser("export", help="Write the per-round score sheet to CSV.")
    export.add_argument("csv", help="Output path (relative paths go to the data dir).")

    sub.add_parser("stats", help="Show the score sheet and bidding statistics.")

    return parser.parse_args(argv)


# --------------------------------------------------------------------------- #
# Helpers                                                                     #
# --------------------------------------------------------------------------- #


def _resolve_player(engine: GameEngine, ref: str) -> Player:
    for p in engine.state.players:
        if p.id == ref:
            return p
    folded = ref.strip().casefold()
    for p in engine.state.players:
        if p.display_name.casefold() == folded:
            return p
    raise NotFoundError(f"No player with id or name '{ref}'")


def _parse_flag(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in {"1", "true", "yes", "y", "on"}:
        return True
    if lowered in {"0", "false", "no", "n", "off"}:
        return False
    raise ValidationError(f"Expected a yes/no value, got '{raw}'")


def _build_patch(engine: GameEngine, player: Player, args: argparse.Namespace) -> Dict[str, Any]:
    patch: Dict[str, Any] = {}
    for name in ("bid", "tricks", "score"):
        value = getattr(args, name)
        if value is not None:
            patch[name] = value
    if args.loot is not None:
        patch["loot_points"] = args.loot
    if args.freeform is not None:
        patch["freeform_bonus"] = args.freeform

    if args.clear_chips or args.chip:
        current = engine.get_current_round()
        existing = [] if args.clear_chips or current is None else (
            current.player_data[player.id].bonus_malus_chips
        )
        patch["bonus_malus_chips"] = list(existing) + list(args.chip)

    bonuses = {}
    for item in args.bonus:
        if "=" not in item:
            raise ValidationError(f"Bonus must look like KIND=VALUE, got '{item}'")
        raw_kind, raw_value = item.split("=", 1)
        kind = parse_bonus_kind(raw_kind)
        if BONUS_CATALOG[kind].is_flag:
            bonuses[kind] = _parse_flag(raw_value)
        else:
            try:
                bonuses[kind] = int(raw_value)
            except ValueError:
                raise ValidationError(f"Bonus '{kind.value}' needs an integer, got '{raw_value}'") from None
    if bonuses:
        patch["bonuses"] = bonuses
    return patch


def _rule_set_from_args(args: argparse.Namespace, settings: Settings) -> RuleSet:
    rounds = args.rounds if args.rounds is not None else settings.rounds
    if args.definition:
        try:
            record = json.loads(Path(args.definition).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ValidationError(f"Cannot read game definition {args.definition}: {exc}") from exc
        return resolve_rule_set(record, rounds_total=rounds, loot_enabled=args.loot or None)
    if rounds is None:
        rounds = settings.preset_rounds
    if args.rules == "simple":
        return simple_rules(
            rounds,
            bonus_values_menu=args.menu,
            allow_freeform_bonus=args.freeform,
        )
    loot_enabled = args.loot or settings.loot_enabled
    return skull_king_rules(
        rounds,
        extension=args.extension,
        loot_enabled=loot_enabled,
        loot_values=settings.loot_values,
    )


def format_ranking(engine: GameEngine) -> str:
    names = {p.id: p.display_name for p in engine.state.players}
    lines = []
    for entry in engine.get_ranking():
        lines.append(f"{entry.rank:>3}. {names[entry.player_id]:<20} {entry.total_score:>6}")
    return "\n".join(lines) if lines else "(no players)"


def format_status(engine: GameEngine) -> str:
    state = engine.state
    rule_set = engine.rule_set
    lines = [
        f"Game {state.id} | {rule_set.name} | phase: {state.phase.value}",
    ]
    if state.phase == GamePhase.SETUP:
        lines.append(f"Players ({state.num_players}/{rule_set.max_players}):")
        lines.extend(f"  {p.display_name} [{p.id}]" for p in state.players)
        return "\n".join(lines)

    lines.append(f"Round {state.current_round_number}/{rule_set.rounds_total}")
    current = engine.get_current_round()
    if current is not None and state.phase != GamePhase.FINISHED:
        if current.double_stakes:
            lines.append("Double stakes!")
        for p in state.players:
            data = current.player_data.get(p.id)
            if data is None:
                continue
            if rule_set.is_simple:
                detail = f"score {data.score:+d}"
                if data.bonus_malus_chips:
                    detail += f", chips {data.bonus_malus_chips}"
            else:
                detail = f"bid {data.bid}, tricks {data.tricks}"
                extras = [f"{k.value}={v}" for k, v in data.bonuses.items() if v]
                if extras:
                    detail += ", " + ", ".join(extras)
                if data.loot_points:
                    detail += f", loot {data.loot_points:+d}"
            if data.freeform_bonus:
                detail += f", freeform {data.freeform_bonus:+d}"
            lines.append(f"  {p.display_name:<20} {detail}")
    lines.append("Ranking:")
    lines.append(format_ranking(engine))
    return "\n".join(lines)


def _load_engine(store: JsonFileStore, settings: Settings) -> GameEngine:
    state = store.load_game_state()
    if state is None:
        return GameEngine(skull_king_rules(settings.preset_rounds))
    return GameEngine.from_state(state)


# --------------------------------------------------------------------------- #
# Commands                                                                    #
# --------------------------------------------------------------------------- #


def _run_command(
    engine: GameEngine,
    args: argparse.Namespace,
    settings: Settings,
    out: Callable[[str], None],
) -> None:
    command = args.command

    if command == "new":
        engine.new_game(_rule_set_from_args(args, settings))
        out(format_status(engine))
    elif command == "add-player":
        player = engine.add_player(args.name, avatar_ref=args.avatar)
        out(f"Added {player.display_name} [{player.id}]")
    elif command == "remove-player":
        player = _resolve_player(engine, args.player)
        engine.remove_player(player.id)
        out(f"Removed {player.display_name}")
    elif command == "rename-player":
        player = _resolve_player(engine, args.player)
        updated = engine.update_player(player.id, display_name=args.name, avatar_ref=args.avatar)
        out(f"Player [{updated.id}] is now {updated.display_name}")
    elif command == "start":
        engine.start_game()
        out(format_status(engine))
    elif command == "set":
        player = _resolve_player(engine, args.player)
        patch = _build_patch(engine, player, args)
        if not patch:
            raise ValidationError("Nothing to update; pass at least one field option")
        engine.update_round_player_data(player.id, patch)
        out(format_status(engine))
    elif command == "double":
        current = engine.get_current_round()
        engine.set_double_stakes(not (current is not None and current.double_stakes))
        out(format_status(engine))
    elif command == "submit-bids":
        engine.submit_bids()
        out(format_status(engine))
    elif command == "finalize":
        engine.finalize_round()
        round_number = engine.state.current_round_number
        for p in engine.state.players:
            score = engine.get_round_score(round_number, p.id)
            if score is not None:
                out(f"  {p.display_name:<20} {score.total_round_score:+d}")
        out(format_status(engine))
    elif command == "next":
        engine.advance_round()
        out(format_status(engine))
    elif command == "skip":
        engine.skip_to_round(args.target)
        out(format_status(engine))
    elif command == "end":
        engine.end_game_early()
        out(format_status(engine))
    elif command == "status":
        out(format_status(engine))
    elif command == "ranking":
        out(format_ranking(engine))
    elif command == "export":
        path = resolve_data_path(args.csv, base=settings.export_dir)
        count = write_round_scores_csv(engine.state, path)
        out(f"Wrote {count} rows to {path}")
    elif command == "stats":
        out("Score sheet:")
        out(score_sheet(engine.state).to_string())
        if not engine.rule_set.is_simple:
            out("")
            out("Bid accuracy:")
            out(bid_accuracy(engine.state).to_string(index=False))
    else:
        raise ValueError(f"Unknown command {command!r}")


def main(argv: List[str] | None = None, out: Optional[Callable[[str], None]] = None) -> int:
    args = parse_args(argv)
    out = out or print

    try:
        settings = load_settings()
    except ScorekeeperError as exc:
        out(f"error: {exc}")
        return 1

    logging.basicConfig(
        level=getattr(logging, (args.log_level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    state_path = Path(args.state).expanduser() if args.state else settings.state_path
    store = JsonFileStore(state_path)

    try:
        engine = _load_engine(store, settings)
        attach_store(engine, store)
        _run_command(engine, args, settings, out)
    except (ScorekeeperError, OSError) as exc:
        logger.error("%s", exc)
        out(f"error: {exc}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
