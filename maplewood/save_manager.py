"""Save management for Maplewood Lane.

Saves are JSON blobs written to a key-value store. Each slot keeps the
previous payload under a ``.bak`` key so a corrupt write can be recovered.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import string
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

from .save_migrations import SaveMigrationError, migrate_save_payload

logger = logging.getLogger(__name__)

VERSION_MISMATCH_WARNING = "Warning: This save is from a different game version."


class SaveError(Exception):
    """Base class for save related failures."""


class SaveCorruptError(SaveError):
    """Raised when a save blob cannot be parsed or validated."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryStore:
    """In-process store, handy for tests and embedding."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None) -> None:
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class JsonFileStore:
    """Keep every key in one JSON object on disk, replaced atomically on write."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _read_all(self) -> Dict[str, str]:
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            raise SaveCorruptError(f"Store file {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise SaveCorruptError(f"Store file {self.path} does not hold an object.")
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                delete=False,
                dir=self.path.parent,
                prefix=self.path.name,
                suffix=".tmp",
                encoding="utf-8",
            ) as tmp_file:
                json.dump(data, tmp_file, indent=2)
                tmp_file.write("\n")
                tmp_path = Path(tmp_file.name)
            os.replace(str(tmp_path), str(self.path))
        except OSError as exc:
            if tmp_path is not None:
                try:
                    tmp_path.unlink()
                except OSError:
                    pass
            raise SaveError(f"Failed to write {self.path}: {exc}") from exc


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class SaveManager:
    """Export, import and persist a :class:`~maplewood.state.GameState`."""

    SCHEMA_VERSION = 1
    AUTOSAVE_SLOT = "autosave"
    QUICK_SLOT = "quick"
    _VALID_SLOT_CHARS = set(string.ascii_lowercase + string.digits + "-_")

    def __init__(
        self,
        state,
        store: KeyValueStore,
        *,
        confirm_restore: Callable[[str], bool] = lambda slot: True,
    ) -> None:
        self.state = state
        self.store = store
        self.confirm_restore = confirm_restore
        self.key_prefix = state.settings.save_key_prefix

    # ---------- blob ----------
    def export_blob(self) -> Dict[str, Any]:
        state = self.state
        return {
            "version": self.SCHEMA_VERSION,
            "gameVersion": state.settings.game_version,
            "trust": state.trust.levels(),
            "foundClues": state.clues.found(),
            "clueAnnotations": state.clues.annotations(),
            "puzzleState": state.puzzles.export_state(),
            "photos": state.photos.to_list(),
            "flags": copy.deepcopy(state.flags),
            "time": state.clock.minutes,
            "day": state.clock.day,
            "timeOfDay": state.clock.time_of_day,
            "act": state.acts.act,
            "queuedReactions": dict(state.dialogue.queued_reactions),
            "savedAt": datetime.now(timezone.utc).isoformat(),
        }

    def import_blob(self, blob: Any) -> None:
        """Replace the game state from a blob; missing fields fall back to empty defaults."""
        try:
            payload = migrate_save_payload(blob, self.SCHEMA_VERSION)
        except SaveMigrationError as exc:
            raise SaveCorruptError(str(exc)) from exc
        self._validate_payload(payload)

        state = self.state
        saved_version = payload.get("gameVersion")
        if saved_version != state.settings.game_version:
            logger.warning(
                "Save game version %r differs from %r.", saved_version, state.settings.game_version
            )
            state.events.notify(VERSION_MISMATCH_WARNING)

        trust = payload.get("trust")
        state.trust.restore(trust if isinstance(trust, dict) else {})

        found = payload.get("foundClues")
        annotations = payload.get("clueAnnotations")
        state.clues.restore(
            found if isinstance(found, list) else [],
            annotations if isinstance(annotations, dict) else None,
        )

        state.puzzles.import_state(payload.get("puzzleState"))

        photos = payload.get("photos")
        state.photos.restore(photos if isinstance(photos, list) else [])

        flags = payload.get("flags")
        state.flags = dict(flags) if isinstance(flags, dict) else {}

        state.clock.set_time(
            _as_int(payload.get("time"), state.settings.start_time),
            _as_int(payload.get("day"), 1),
        )
        saved_block = payload.get("timeOfDay")
        if saved_block and saved_block != state.clock.time_of_day:
            logger.debug(
                "Saved timeOfDay %r disagrees with time %d; using %r.",
                saved_block,
                state.clock.minutes,
                state.clock.time_of_day,
            )

        state.acts.restore(payload.get("act", 1))
        reactions = payload.get("queuedReactions")
        state.dialogue.restore_reactions(reactions if isinstance(reactions, dict) else {})
        state.dialogue.end()
        state.previous_node = None

    # ---------- slots ----------
    def save(self, slot: str = QUICK_SLOT, *, quiet: bool = False) -> str:
        normalized = self._normalize_slot(slot)
        key = self._slot_key(normalized)
        payload = self.export_blob()
        self._write_payload(key, payload, make_backup=True)
        logger.info("Saved slot %r to %s.", normalized, key)
        if not quiet:
            self.state.events.notify("Game saved!")
        return key

    def load(self, slot: str = QUICK_SLOT, *, prefer_backup: bool = False) -> bool:
        normalized = self._normalize_slot(slot)
        key = self._slot_key(normalized)
        backup_key = f"{key}.bak"

        target = backup_key if prefer_backup and self.store.get(backup_key) is not None else key
        if self.store.get(target) is None:
            logger.info("No save found for slot %r.", normalized)
            self.state.events.notify("No saved game found!")
            return False

        try:
            payload = self._read_payload(target)
        except (SaveCorruptError, SaveMigrationError) as err:
            if target == backup_key or self.store.get(backup_key) is None:
                logger.error("Failed to load slot %r: %s. No backup available.", normalized, err)
                return False
            logger.warning("Save slot %r is unreadable: %s", normalized, err)
            if not self.confirm_restore(normalized):
                logger.info("Backup restore declined for slot %r.", normalized)
                return False
            try:
                payload = self._read_payload(backup_key)
            except (SaveError, SaveMigrationError) as backup_err:
                logger.error("Backup for slot %r also failed: %s", normalized, backup_err)
                return False
            self._write_payload(key, payload, make_backup=False)
            logger.info("Backup save applied for slot %r.", normalized)

        self.import_blob(payload)
        self.state.events.notify("Game loaded!")
        return True

    def autosave(self) -> str:
        return self.save(self.AUTOSAVE_SLOT, quiet=True)

    # ---------- internal helpers ----------
    def _normalize_slot(self, slot: str) -> str:
        slot = (slot or "").strip().lower()
        cleaned = "".join(ch for ch in slot if ch in self._VALID_SLOT_CHARS)
        if not cleaned:
            raise SaveError("Slot names must contain letters or numbers.")
        return cleaned

    def _slot_key(self, slot: str) -> str:
        return f"{self.key_prefix}:{slot}"

    def _write_payload(self, key: str, payload: Dict[str, Any], *, make_backup: bool) -> None:
        if make_backup:
            existing = self.store.get(key)
            if existing is not None:
                self.store.set(f"{key}.bak", existing)
        self.store.set(key, json.dumps(payload, indent=2))

    def _read_payload(self, key: str) -> Dict[str, Any]:
        raw = self.store.get(key)
        if raw is None:
            raise SaveError("Save data missing.")
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise SaveCorruptError(f"Invalid JSON: {exc}") from exc
        payload = migrate_save_payload(payload, self.SCHEMA_VERSION)
        self._validate_payload(payload)
        return payload

    def _validate_payload(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            raise SaveCorruptError("Payload was not an object.")
        version = payload.get("version")
        if version != self.SCHEMA_VERSION:
            raise SaveCorruptError(f"Unsupported schema version: {version!r}")
