"""
Strategy Store

JSON persistence for strategy records. The file is a small document:

    {
      "version": "1.0.0",
      "last_updated": "2026-01-01T12:00:00",
      "strategies": [ {id, name, states, emotions, ...}, ... ],
      "metadata": {"total_strategies": 10, "enabled_strategies": 10, ...}
    }

Imports also accept a bare list of records. Anything read from disk is
validated in full before it reaches a catalog; a bad file raises
StrategyImportError and leaves the catalog exactly as it was.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from config import settings
from behavior.catalog import StrategyCatalog
from behavior.defaults import get_default_strategy_records
from behavior.errors import StrategyImportError, ValidationError
from behavior.models import EmotionType, PetState, Strategy
from behavior.schema import parse_strategy, parse_strategy_records

from .file_io import atomic_json_write, read_json

logger = logging.getLogger("companion.store")

SCHEMA_VERSION = "1.0.0"

Listener = Callable[[list[dict]], None]


def build_document(records: list[dict]) -> dict:
    """Wrap records with version and summary metadata."""
    return {
        "version": SCHEMA_VERSION,
        "last_updated": datetime.now().isoformat(),
        "strategies": records,
        "metadata": {
            "total_strategies": len(records),
            "enabled_strategies": sum(1 for r in records if r.get("enabled", True)),
            "supported_states": [s.value for s in PetState],
            "supported_emotions": [e.value for e in EmotionType],
        },
    }


def extract_records(data: Any) -> list:
    """Pull the record list out of a document or a bare list."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("strategies"), list):
        return data["strategies"]
    raise StrategyImportError("Expected a list of strategy records or a document with a 'strategies' list")


class StrategyStore:
    """
    Owns the strategy file: load, save, import/export, backups.

    Listeners registered with add_listener() are called with the new record
    list after every successful write.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        backup_dir: Optional[Path] = None,
        seed_defaults: bool = True,
    ):
        self.path = Path(path or settings.strategy_file)
        self.backup_dir = Path(backup_dir or settings.backup_dir)
        self.seed_defaults = seed_defaults
        self._listeners: list[Listener] = []

    def initialize(self) -> None:
        """Create the strategy file (seeded with the built-in records) if missing."""
        if self.path.exists():
            return
        records = get_default_strategy_records() if self.seed_defaults else []
        atomic_json_write(self.path, build_document(records))
        logger.info(f"Created strategy file {self.path} with {len(records)} strategies")

    # -- reading --------------------------------------------------------

    def _read_file(self, path: Path) -> list:
        try:
            data = read_json(path)
        except FileNotFoundError as e:
            raise StrategyImportError(f"Strategy source not found: {path}") from e
        except json.JSONDecodeError as e:
            raise StrategyImportError(f"Malformed JSON in {path}: {e}") from e
        except OSError as e:
            raise StrategyImportError(f"Cannot read {path}: {e}") from e
        return extract_records(data)

    def _validate(self, records: list, source: Any) -> list[Strategy]:
        try:
            return parse_strategy_records(records)
        except ValidationError as e:
            raise StrategyImportError(f"Invalid strategies in {source}: {e}") from e

    def load_strategies(self) -> list[Strategy]:
        """Read and validate the store file.

        Raises:
            StrategyImportError: unreadable file, malformed JSON or invalid records
        """
        return self._validate(self._read_file(self.path), self.path)

    def load_records(self) -> list[dict]:
        """Validated records in normalized persisted form."""
        return [s.to_record() for s in self.load_strategies()]

    def load_into(self, catalog: StrategyCatalog, merge: bool = False) -> list[Strategy]:
        """Validate the store file, then apply it to catalog in one step."""
        return self._apply(catalog, self.load_records(), merge, self.path)

    # -- writing --------------------------------------------------------

    def save_records(self, records: list) -> list[dict]:
        """Validate and atomically write records, then notify listeners."""
        normalized = [s.to_record() for s in self._validate(records, "save")]
        atomic_json_write(self.path, build_document(normalized))
        logger.info(f"Saved {len(normalized)} strategies to {self.path}")
        self._notify(normalized)
        return normalized

    def save_catalog(self, catalog: StrategyCatalog) -> list[dict]:
        return self.save_records(catalog.export_strategies())

    def upsert_strategy(self, strategy: Any) -> Strategy:
        """Insert or replace one strategy in the file."""
        parsed = parse_strategy(strategy)
        records = self.load_records()
        for i, record in enumerate(records):
            if record["id"] == parsed.id:
                records[i] = parsed.to_record()
                break
        else:
            records.append(parsed.to_record())
        self.save_records(records)
        return parsed

    def delete_strategy(self, strategy_id: str) -> bool:
        records = self.load_records()
        remaining = [r for r in records if r["id"] != strategy_id]
        if len(remaining) == len(records):
            return False
        self.save_records(remaining)
        return True

    # -- import / export ------------------------------------------------

    def _apply(self, catalog: StrategyCatalog, records: list, merge: bool, source: Any) -> list[Strategy]:
        try:
            return catalog.import_strategies(records, merge=merge)
        except ValidationError as e:
            raise StrategyImportError(f"Invalid strategies in {source}: {e}") from e

    def import_file(self, path: Path, catalog: StrategyCatalog, merge: bool = False, persist: bool = True) -> list[Strategy]:
        """Import records from path into catalog (replace or merge).

        Nothing changes, in the catalog or on disk, unless every record is valid.

        Raises:
            StrategyImportError
        """
        path = Path(path)
        records = self._read_file(path)
        self._validate(records, path)

        if persist and self.path.exists():
            self.create_backup()
        strategies = self._apply(catalog, records, merge, path)
        if persist:
            self.save_catalog(catalog)
        logger.info(f"Imported {len(strategies)} strategies from {path} ({'merge' if merge else 'replace'})")
        return strategies

    def export_file(self, path: Path, catalog: StrategyCatalog) -> dict:
        """Write the catalog's strategies, with metadata, to path."""
        document = build_document(catalog.export_strategies())
        document["metadata"]["exported_at"] = document["last_updated"]
        atomic_json_write(Path(path), document)
        logger.info(f"Exported {len(document['strategies'])} strategies to {path}")
        return document

    # -- backups --------------------------------------------------------

    def create_backup(self) -> Optional[Path]:
        """Copy the current store file into the backup dir. None if there is nothing to back up."""
        if not self.path.exists():
            return None
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
        backup_path = self.backup_dir / f"backup_{stamp}.json"
        atomic_json_write(backup_path, read_json(self.path))
        logger.info(f"Created strategy backup {backup_path}")
        return backup_path

    def list_backups(self) -> list[Path]:
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob("backup_*.json"))

    def restore_backup(self, backup_path: Path) -> list[dict]:
        """Replace the store file with a backup (after backing up the current one)."""
        records = self._read_file(Path(backup_path))
        self._validate(records, backup_path)
        self.create_backup()
        return self.save_records(records)

    # -- listeners ------------------------------------------------------

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, records: list[dict]) -> None:
        for listener in list(self._listeners):
            try:
                listener(records)
            except Exception as e:
                logger.error(f"Strategy store listener failed: {e}")
