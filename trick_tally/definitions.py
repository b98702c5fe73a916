# trick_tally/definitions.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .catalog import (
    BonusKind,
    DEFAULT_LOOT_VALUES,
    RuleSet,
    ScoringFormula,
    SKULL_KING_BASE_BONUSES,
    parse_bonus_kind,
)
from .errors import NotFoundError, ValidationError


@dataclass
class GameDefinition:
    """
    A game catalog entry as maintained by the admin side.

    `bonus_values` is the simple-mode quick chip menu; `bonus_overrides`
    replaces catalog point values for enabled bonus kinds.
    """
    slug: str
    name: str
    scoring_type: ScoringFormula = ScoringFormula.SIMPLE
    min_players: int = 2
    max_players: int = 12
    default_rounds: int = 10
    bonus_values: Tuple[int, ...] = ()
    allow_custom_bonus: bool = False
    enabled_bonus_kinds: Tuple[BonusKind, ...] = ()
    bonus_overrides: Dict[BonusKind, int] = field(default_factory=dict)
    always_counted: Tuple[BonusKind, ...] = ()
    loot_enabled: bool = False
    loot_values: Tuple[int, ...] = ()
    allow_double_stakes: bool = False
    enabled: bool = True

    @classmethod
    def from_dict(cls, record: Mapping[str, Any]) -> "GameDefinition":
        """Build a definition from an admin record (JSON/API shape)."""
        try:
            scoring_type = ScoringFormula(record.get("scoring_type", ScoringFormula.SIMPLE.value))
        except ValueError:
            raise ValidationError(
                f"Unknown scoring_type {record.get('scoring_type')!r}"
            ) from None
        try:
            return cls(
                slug=str(record["slug"]),
                name=str(record.get("name", record["slug"])),
                scoring_type=scoring_type,
                min_players=int(record.get("min_players", 2)),
                max_players=int(record.get("max_players", 12)),
                default_rounds=int(record.get("default_rounds", 10)),
                bonus_values=tuple(int(v) for v in record.get("bonus_values") or ()),
                allow_custom_bonus=bool(record.get("allow_custom_bonus", False)),
                enabled_bonus_kinds=tuple(
                    parse_bonus_kind(k) for k in record.get("enabled_bonus_kinds") or ()
                ),
                bonus_overrides={
                    parse_bonus_kind(k): int(v)
                    for k, v in (record.get("bonus_overrides") or {}).items()
                },
                always_counted=tuple(
                    parse_bonus_kind(k) for k in record.get("always_counted") or ()
                ),
                loot_enabled=bool(record.get("loot_enabled", False)),
                loot_values=tuple(int(v) for v in record.get("loot_values") or ()),
                allow_double_stakes=bool(record.get("allow_double_stakes", False)),
                enabled=bool(record.get("enabled", True)),
            )
        except KeyError as exc:
            raise ValidationError(f"Game definition is missing {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Malformed game definition: {exc}") from exc


BUILTIN_DEFINITIONS: Dict[str, GameDefinition] = {
    "skull-king": GameDefinition(
        slug="skull-king",
        name="Skull King",
        scoring_type=ScoringFormula.BID_TRICKS,
        min_players=2,
        max_players=12,
        default_rounds=10,
        enabled_bonus_kinds=tuple(sorted(SKULL_KING_BASE_BONUSES, key=lambda k: k.value)),
        loot_values=DEFAULT_LOOT_VALUES,
        allow_double_stakes=True,
    ),
}


def rule_set_from_definition(
    definition: GameDefinition,
    rounds_total: Optional[int] = None,
    *,
    loot_enabled: Optional[bool] = None,
) -> RuleSet:
    """Resolve the immutable RuleSet a new game of `definition` is played with."""
    if not definition.enabled:
        raise ValidationError(f"Game '{definition.slug}' is disabled")
    loot = definition.loot_enabled if loot_enabled is None else loot_enabled
    simple = definition.scoring_type == ScoringFormula.SIMPLE
    return RuleSet(
        base_formula=definition.scoring_type,
        rounds_total=rounds_total if rounds_total is not None else definition.default_rounds,
        enabled_bonus_kinds=frozenset(definition.enabled_bonus_kinds),
        bonus_values=dict(definition.bonus_overrides),
        always_counted=frozenset(definition.always_counted),
        bonus_values_menu=definition.bonus_values,
        allow_freeform_bonus=definition.allow_custom_bonus,
        min_players=definition.min_players,
        max_players=definition.max_players,
        loot_enabled=loot and not simple,
        loot_values=definition.loot_values if loot and not simple else (),
        allow_double_stakes=definition.allow_double_stakes,
        slug=definition.slug,
        name=definition.name,
    )


def list_definitions(extra: Optional[List[GameDefinition]] = None) -> List[GameDefinition]:
    """Built-in definitions followed by enabled extra ones with new slugs."""
    result = list(BUILTIN_DEFINITIONS.values())
    for definition in extra or []:
        if definition.enabled and definition.slug not in BUILTIN_DEFINITIONS:
            result.append(definition)
    return result


def resolve_rule_set(
    source: Union[str, Mapping[str, Any], GameDefinition],
    rounds_total: Optional[int] = None,
    *,
    loot_enabled: Optional[bool] = None,
) -> RuleSet:
    """Accept a built-in slug, an admin record dict, or a GameDefinition."""
    if isinstance(source, GameDefinition):
        definition = source
    elif isinstance(source, str):
        definition = BUILTIN_DEFINITIONS.get(source)
        if definition is None:
            raise NotFoundError(f"No built-in game definition '{source}'")
    else:
        definition = GameDefinition.from_dict(source)
    return rule_set_from_definition(definition, rounds_total, loot_enabled=loot_enabled)
