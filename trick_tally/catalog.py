# trick_tally/catalog.py
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple
import enum

from .errors import ValidationError


class ScoringFormula(enum.Enum):
    SIMPLE = "simple"
    BID_TRICKS = "bid_tricks"


class GamePhase(enum.Enum):
    SETUP = "setup"
    BIDDING = "bidding"
    SCORING = "scoring"
    REVIEW = "review"
    FINISHED = "finished"


class BonusKind(enum.Enum):
    COLOR_14 = "color_14"
    JOLLY_ROGER_14 = "jolly_roger_14"
    PIRATES_CAPTURED = "pirates_captured"
    MERMAID_DEFEATS_SKULL_KING = "mermaid_defeats_skull_king"
    SECOND_CAPTURED = "second_captured"
    MERMAIDS_CAPTURED = "mermaids_captured"
    MANTA_RAY = "manta_ray"
    LOOT_ALLIANCE = "loot_alliance"
    SEVEN_STAR = "seven_star"
    EIGHT_STAR = "eight_star"
    DAVY_JONES_CREATURES = "davy_jones_creatures"


@dataclass(frozen=True)
class BonusSpec:
    """
    Catalog entry for one bonus kind.

    - Counters (is_flag=False) score `count * value`.
    - Flags (is_flag=True) score `value` when set.
    - Forfeitable bonuses only count when the bid was met exactly;
      always-counted ones count regardless of the bid outcome.
    """
    kind: BonusKind
    label: str
    value: int
    is_flag: bool = False
    always_counted: bool = False


BONUS_CATALOG: Dict[BonusKind, BonusSpec] = {
    spec.kind: spec
    for spec in (
        BonusSpec(BonusKind.COLOR_14, "Standard 14 captured", 10),
        BonusSpec(BonusKind.JOLLY_ROGER_14, "Jolly Roger 14 captured", 20, is_flag=True),
        BonusSpec(BonusKind.PIRATES_CAPTURED, "Pirates captured by the Skull King", 30),
        BonusSpec(
            BonusKind.MERMAID_DEFEATS_SKULL_KING,
            "Mermaid captured the Skull King",
            50,
            is_flag=True,
        ),
        BonusSpec(BonusKind.SECOND_CAPTURED, "Second captured", 30, is_flag=True),
        BonusSpec(BonusKind.MERMAIDS_CAPTURED, "Mermaids captured", 20),
        BonusSpec(BonusKind.MANTA_RAY, "Manta ray captured", 20, is_flag=True),
        BonusSpec(BonusKind.LOOT_ALLIANCE, "Successful loot alliances", 20),
        BonusSpec(BonusKind.SEVEN_STAR, "7-star cards captured", -5),
        BonusSpec(BonusKind.EIGHT_STAR, "8-star cards captured", 5),
        BonusSpec(
            BonusKind.DAVY_JONES_CREATURES,
            "Creatures destroyed by Davy Jones",
            20,
            always_counted=True,
        ),
    )
}

SKULL_KING_BASE_BONUSES: FrozenSet[BonusKind] = frozenset(
    {
        BonusKind.COLOR_14,
        BonusKind.JOLLY_ROGER_14,
        BonusKind.PIRATES_CAPTURED,
        BonusKind.MERMAID_DEFEATS_SKULL_KING,
        BonusKind.LOOT_ALLIANCE,
    }
)

SKULL_KING_EXTENSION_BONUSES: FrozenSet[BonusKind] = frozenset(
    {
        BonusKind.SECOND_CAPTURED,
        BonusKind.MERMAIDS_CAPTURED,
        BonusKind.MANTA_RAY,
        BonusKind.DAVY_JONES_CREATURES,
        BonusKind.SEVEN_STAR,
        BonusKind.EIGHT_STAR,
    }
)

DEFAULT_MAX_PLAYERS = 12
DEFAULT_LOOT_VALUES: Tuple[int, ...] = (20, 30, -10)


@dataclass(frozen=True)
class RuleSet:
    """
    Immutable scoring configuration chosen when a game is created.

    Only structural invariants are checked here; whether a catalog entry
    makes sense as a game is the admin's business.
    """
    base_formula: ScoringFormula
    rounds_total: int
    enabled_bonus_kinds: FrozenSet[BonusKind] = frozenset()
    # read-only view; left out of the hash, equality still compares it
    bonus_values: Mapping[BonusKind, int] = field(default_factory=dict, hash=False)
    always_counted: FrozenSet[BonusKind] = frozenset()
    bonus_values_menu: Tuple[int, ...] = ()
    allow_freeform_bonus: bool = False
    min_players: int = 2
    max_players: int = DEFAULT_MAX_PLAYERS
    loot_enabled: bool = False
    loot_values: Tuple[int, ...] = ()
    allow_double_stakes: bool = False
    per_bid_points: int = 20
    zero_bid_points: int = 10
    miss_penalty: int = 10
    slug: str = "custom"
    name: str = "Custom game"

    def __post_init__(self) -> None:
        # list/set inputs -> tuple/frozenset
        object.__setattr__(self, "enabled_bonus_kinds", frozenset(self.enabled_bonus_kinds))
        object.__setattr__(self, "always_counted", frozenset(self.always_counted))
        object.__setattr__(self, "bonus_values", MappingProxyType(dict(self.bonus_values)))
        object.__setattr__(self, "bonus_values_menu", tuple(self.bonus_values_menu))
        object.__setattr__(self, "loot_values", tuple(self.loot_values))

        if self.rounds_total < 1:
            raise ValidationError("rounds_total must be a positive integer")
        if self.min_players < 2:
            raise ValidationError("min_players must be at least 2")
        if self.max_players < self.min_players:
            raise ValidationError("max_players must be >= min_players")
        if self.base_formula == ScoringFormula.SIMPLE:
            if self.enabled_bonus_kinds:
                raise ValidationError("simple counter rules do not take bonus kinds")
            if self.loot_enabled:
                raise ValidationError("simple counter rules do not take loot")
        unknown = (set(self.bonus_values) | set(self.always_counted)) - set(
            self.enabled_bonus_kinds
        )
        if unknown:
            names = ", ".join(sorted(k.value for k in unknown))
            raise ValidationError(f"Values given for bonus kinds that are not enabled: {names}")

    def __copy__(self) -> "RuleSet":
        return self

    def __deepcopy__(self, memo: Dict[int, Any]) -> "RuleSet":
        return self

    @property
    def is_simple(self) -> bool:
        return self.base_formula == ScoringFormula.SIMPLE

    @property
    def first_round_phase(self) -> GamePhase:
        """Simple counter games have no bidding step."""
        return GamePhase.SCORING if self.is_simple else GamePhase.BIDDING

    def bonus_value(self, kind: BonusKind) -> int:
        return self.bonus_values.get(kind, BONUS_CATALOG[kind].value)

    def is_always_counted(self, kind: BonusKind) -> bool:
        return kind in self.always_counted or BONUS_CATALOG[kind].always_counted

    def ordered_bonus_kinds(self) -> Tuple[BonusKind, ...]:
        """Enabled bonus kinds in catalog order."""
        return tuple(k for k in BONUS_CATALOG if k in self.enabled_bonus_kinds)


def parse_bonus_kind(raw: str) -> BonusKind:
    """Accept either the enum value ('pirates_captured') or name ('PIRATES_CAPTURED')."""
    if not isinstance(raw, str):
        raise ValidationError(f"Unknown bonus kind {raw!r}")
    key = raw.strip()
    try:
        return BonusKind(key.lower())
    except ValueError:
        pass
    try:
        return BonusKind[key.upper()]
    except KeyError:
        raise ValidationError(f"Unknown bonus kind '{raw}'") from None


def skull_king_rules(
    rounds_total: int = 10,
    *,
    extension: bool = False,
    loot_enabled: bool = False,
    loot_values: Iterable[int] = DEFAULT_LOOT_VALUES,
    bonus_values: Optional[Mapping[BonusKind, int]] = None,
) -> RuleSet:
    """Skull King scoring; `extension` adds the expansion's bonus cards."""
    kinds = set(SKULL_KING_BASE_BONUSES)
    if extension:
        kinds |= SKULL_KING_EXTENSION_BONUSES
    return RuleSet(
        base_formula=ScoringFormula.BID_TRICKS,
        rounds_total=rounds_total,
        enabled_bonus_kinds=frozenset(kinds),
        bonus_values=dict(bonus_values or {}),
        loot_enabled=loot_enabled,
        loot_values=tuple(loot_values) if loot_enabled else (),
        allow_double_stakes=True,
        slug="skull-king",
        name="Skull King",
    )


def simple_rules(
    rounds_total: int = 10,
    *,
    bonus_values_menu: Iterable[int] = (),
    allow_freeform_bonus: bool = False,
    slug: str = "simple",
    name: str = "Simple counter",
    min_players: int = 2,
    max_players: int = DEFAULT_MAX_PLAYERS,
) -> RuleSet:
    return RuleSet(
        base_formula=ScoringFormula.SIMPLE,
        rounds_total=rounds_total,
        bonus_values_menu=tuple(bonus_values_menu),
        allow_freeform_bonus=allow_freeform_bonus,
        min_players=min_players,
        max_players=max_players,
        slug=slug,
        name=name,
    )
