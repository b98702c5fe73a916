# trick_tally/config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv

from .catalog import DEFAULT_LOOT_VALUES
from .errors import ValidationError
from .paths import DATA_DIR

logger = logging.getLogger(__name__)

# Load environment variables from a .env file if present.
load_dotenv()

ENV_PREFIX = "TRICK_TALLY_"
DEFAULT_ROUNDS = 10


@dataclass(frozen=True)
class Settings:
    """Scorer settings; every field can be set through TRICK_TALLY_* variables."""
    state_path: Path
    export_dir: Path
    # None: not configured, game definitions keep their own default_rounds
    rounds: Optional[int] = None
    loot_enabled: bool = False
    loot_values: Tuple[int, ...] = DEFAULT_LOOT_VALUES
    log_level: str = "INFO"

    @property
    def preset_rounds(self) -> int:
        return self.rounds if self.rounds is not None else DEFAULT_ROUNDS


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _parse_int_list(name: str, raw: str) -> Tuple[int, ...]:
    try:
        return tuple(int(part) for part in raw.split(",") if part.strip())
    except ValueError:
        raise ValidationError(f"{name} must be a comma-separated list of integers") from None


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Read settings from `env` (defaults to os.environ)."""
    env = os.environ if env is None else env

    def get(key: str) -> Optional[str]:
        value = env.get(ENV_PREFIX + key)
        return value if value not in (None, "") else None

    export_dir = Path(get("EXPORT_DIR") or DATA_DIR).expanduser()
    state_path = Path(get("STATE_PATH") or export_dir / "current_game.json").expanduser()

    rounds_raw = get("ROUNDS")
    try:
        rounds = int(rounds_raw) if rounds_raw else None
    except ValueError:
        raise ValidationError(f"{ENV_PREFIX}ROUNDS must be an integer, got {rounds_raw!r}") from None
    if rounds is not None and rounds < 1:
        raise ValidationError(f"{ENV_PREFIX}ROUNDS must be positive, got {rounds}")

    loot_raw = get("LOOT_VALUES")
    settings = Settings(
        state_path=state_path,
        export_dir=export_dir,
        rounds=rounds,
        loot_enabled=_parse_bool(get("LOOT_ENABLED") or "false"),
        loot_values=(
            _parse_int_list(ENV_PREFIX + "LOOT_VALUES", loot_raw)
            if loot_raw
            else DEFAULT_LOOT_VALUES
        ),
        log_level=(get("LOG_LEVEL") or "INFO").upper(),
    )
    logger.debug("Loaded settings: %s", settings)
    return settings
