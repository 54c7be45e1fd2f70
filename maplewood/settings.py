"""Settings persistence for Maplewood Lane."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Tuple

_BASE_DIR = Path(__file__).resolve().parent.parent
SETTINGS_PATH = _BASE_DIR / "settings.json"

GAME_VERSION = "1.0.0"
DEFAULT_TRUST_THRESHOLDS: Tuple[int, int, int, int] = (0, 11, 31, 61)
DEFAULT_ACT_THRESHOLDS: Dict[int, int] = {2: 20, 3: 40, 4: 60}
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}

logger = logging.getLogger(__name__)


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


@dataclass
class Settings:
    """Tunable rules and runtime options for a playthrough."""

    game_version: str = GAME_VERSION
    trust_thresholds: Tuple[int, int, int, int] = DEFAULT_TRUST_THRESHOLDS
    act_thresholds: Dict[int, int] = field(default_factory=lambda: dict(DEFAULT_ACT_THRESHOLDS))
    reaction_threshold: int = 5
    notify_trust_threshold: int = 5
    minutes_per_tick: int = 1
    tick_interval: float = 1.0
    start_time: int = 360
    clue_display_limit: int = 50
    clue_display_recent: int = 30
    rng_seed: int | None = None
    log_level: str = "WARNING"
    save_key_prefix: str = "maplewood_save"

    def clamp(self) -> "Settings":
        thresholds = parse_thresholds(self.trust_thresholds)
        self.trust_thresholds = thresholds if thresholds else DEFAULT_TRUST_THRESHOLDS

        acts: Dict[int, int] = {}
        if isinstance(self.act_thresholds, dict):
            for key, value in self.act_thresholds.items():
                try:
                    act, trust = int(key), int(value)
                except (TypeError, ValueError):
                    continue
                if 2 <= act <= 4:
                    acts[act] = trust
        self.act_thresholds = acts or dict(DEFAULT_ACT_THRESHOLDS)

        self.reaction_threshold = max(int(self.reaction_threshold), 0)
        self.notify_trust_threshold = max(int(self.notify_trust_threshold), 0)
        self.minutes_per_tick = max(int(self.minutes_per_tick), 1)
        self.tick_interval = _clamp(float(self.tick_interval), 0.01, 60.0)
        self.start_time = int(self.start_time) % 1440
        self.clue_display_limit = max(int(self.clue_display_limit), 1)
        self.clue_display_recent = int(
            _clamp(int(self.clue_display_recent), 0, self.clue_display_limit)
        )
        if self.rng_seed is not None:
            try:
                self.rng_seed = int(self.rng_seed)
            except (TypeError, ValueError):
                self.rng_seed = None

        level = str(self.log_level).upper()
        self.log_level = level if level in _LOG_LEVELS else "WARNING"
        self.game_version = str(self.game_version or GAME_VERSION)
        self.save_key_prefix = str(self.save_key_prefix or "maplewood_save")
        return self

    def copy(self) -> "Settings":
        return Settings.from_dict(self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["trust_thresholds"] = list(self.trust_thresholds)
        data["act_thresholds"] = {str(k): v for k, v in self.act_thresholds.items()}
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "Settings":
        if not isinstance(data, dict):
            return cls()

        def _as_int(key: str, default: int) -> int:
            try:
                return int(data.get(key, default))
            except (TypeError, ValueError):
                return default

        def _as_float(key: str, default: float) -> float:
            try:
                return float(data.get(key, default))
            except (TypeError, ValueError):
                return default

        settings = cls(
            game_version=str(data.get("game_version", GAME_VERSION)),
            trust_thresholds=parse_thresholds(data.get("trust_thresholds"))
            or DEFAULT_TRUST_THRESHOLDS,
            act_thresholds=data.get("act_thresholds") or dict(DEFAULT_ACT_THRESHOLDS),
            reaction_threshold=_as_int("reaction_threshold", 5),
            notify_trust_threshold=_as_int("notify_trust_threshold", 5),
            minutes_per_tick=_as_int("minutes_per_tick", 1),
            tick_interval=_as_float("tick_interval", 1.0),
            start_time=_as_int("start_time", 360),
            clue_display_limit=_as_int("clue_display_limit", 50),
            clue_display_recent=_as_int("clue_display_recent", 30),
            rng_seed=data.get("rng_seed"),
            log_level=str(data.get("log_level", "WARNING")),
            save_key_prefix=str(data.get("save_key_prefix", "maplewood_save")),
        )
        return settings.clamp()


def parse_thresholds(value: Any) -> Tuple[int, int, int, int] | None:
    if not isinstance(value, (list, tuple)) or len(value) != 4:
        return None
    try:
        thresholds = tuple(int(v) for v in value)
    except (TypeError, ValueError):
        return None
    if any(b < a for a, b in zip(thresholds, thresholds[1:])):
        return None
    return thresholds  # type: ignore[return-value]


def configure_logging(settings: Settings) -> logging.Logger:
    """Attach a console handler to the ``maplewood`` logger at the configured level."""
    root = logging.getLogger("maplewood")
    root.setLevel(getattr(logging, settings.log_level, logging.WARNING))
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        root.addHandler(handler)
    return root


def load_settings(path: Path | str = SETTINGS_PATH) -> Settings:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError:
        return Settings()
    except (OSError, json.JSONDecodeError, TypeError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
        return Settings()
    return Settings.from_dict(data)


def save_settings(settings: Settings, path: Path | str = SETTINGS_PATH) -> Settings:
    path = Path(path)
    sanitized = settings.copy().clamp()
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w", delete=False, dir=path.parent, prefix=path.name, suffix=".tmp", encoding="utf-8"
        ) as tmp_file:
            json.dump(sanitized.to_dict(), tmp_file, indent=2)
            tmp_file.write("\n")
            tmp_path = Path(tmp_file.name)
        os.replace(str(tmp_path), str(path))
    except OSError as exc:
        logger.error("Failed to save settings: %s", exc)
        if tmp_path is not None:
            try:
                tmp_path.unlink()
            except OSError:
                pass
    return sanitized
