from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml
from pydantic import ValidationError

from debriefer.config import settings
from debriefer.data.storage import Database
from debriefer.domain.models import KillCategory, UnitCategory, UnitSource, UnitType
from debriefer.exceptions import ConfigError, PersistenceError, ReferentialError

logger = logging.getLogger(__name__)

_COLUMNS = "id, type_name, display_name, category, sub_category, kill_category, source, is_active"


class UnitCatalog:
    """
    Read-mostly access to the reference unit types.
    Rows are inserted by seeding or lazy generic creation and never deleted here.
    """

    def __init__(self, db: Database):
        self.db = db

    def add(self, unit: UnitType) -> UnitType:
        """Insert a catalog row; an existing row with the same type name wins."""
        self._insert(unit)
        return self.find_by_type_name(unit.type_name) or self.get(unit.id)

    def seed(self, units: Iterable[UnitType]) -> int:
        added = sum(1 for unit in units if self._insert(unit))
        logger.info("catalog seeded", extra={"added": added})
        return added

    def _insert(self, unit: UnitType) -> bool:
        with self.db._connect() as conn:
            try:
                cur = conn.execute(
                    f"INSERT OR IGNORE INTO unit_types ({_COLUMNS}, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        unit.id,
                        unit.type_name,
                        unit.display_name,
                        unit.category.value,
                        unit.sub_category,
                        unit.kill_category.value,
                        unit.source.value,
                        int(unit.is_active),
                        datetime.now(UTC).isoformat(),
                    ),
                )
                conn.commit()
            except sqlite3.Error as exc:
                raise PersistenceError(
                    f"Failed to add unit type: {exc}", operation="add_unit_type", ids={"type_name": unit.type_name}
                ) from exc
        return cur.rowcount > 0

    def find_by_id(self, unit_type_id: str) -> Optional[UnitType]:
        with self.db._connect() as conn:
            row = conn.execute(f"SELECT {_COLUMNS} FROM unit_types WHERE id = ?", (unit_type_id,)).fetchone()
        return self._to_unit(row) if row else None

    def get(self, unit_type_id: str) -> UnitType:
        unit = self.find_by_id(unit_type_id)
        if unit is None:
            raise ReferentialError(
                f"Unknown unit type '{unit_type_id}'", operation="find_unit_type", ids={"unit_type_id": unit_type_id}
            )
        return unit

    def find_many(self, unit_type_ids: Iterable[str]) -> dict[str, UnitType]:
        ids = list(dict.fromkeys(unit_type_ids))
        if not ids:
            return {}
        placeholders = ",".join("?" for _ in ids)
        with self.db._connect() as conn:
            rows = conn.execute(f"SELECT {_COLUMNS} FROM unit_types WHERE id IN ({placeholders})", ids).fetchall()
        return {row["id"]: self._to_unit(row) for row in rows}

    def find_by_type_name(self, type_name: str) -> Optional[UnitType]:
        with self.db._connect() as conn:
            row = conn.execute(f"SELECT {_COLUMNS} FROM unit_types WHERE type_name = ?", (type_name,)).fetchone()
        return self._to_unit(row) if row else None

    def find_active_by_type_names(self, type_names: Iterable[str]) -> list[UnitType]:
        names = list(dict.fromkeys(type_names))
        if not names:
            return []
        placeholders = ",".join("?" for _ in names)
        with self.db._connect() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM unit_types WHERE is_active = 1 AND type_name IN ({placeholders}) "
                "ORDER BY display_name COLLATE NOCASE, id",
                names,
            ).fetchall()
        return [self._to_unit(row) for row in rows]

    def find_by_kill_category(self, kill_category: KillCategory | str, active_only: bool = True) -> list[UnitType]:
        category = KillCategory(kill_category)
        query = f"SELECT {_COLUMNS} FROM unit_types WHERE kill_category = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY display_name COLLATE NOCASE, id"
        with self.db._connect() as conn:
            rows = conn.execute(query, (category.value,)).fetchall()
        return [self._to_unit(row) for row in rows]

    @staticmethod
    def generic_type_name(kill_category: KillCategory | str) -> str:
        return f"{settings.debrief.generic_unit_prefix}{KillCategory(kill_category).value}"

    def parse_generic_selection(self, selection_id: str) -> Optional[KillCategory]:
        """Map a `GENERIC_<CAT>` selection id to its kill category."""
        prefix = settings.debrief.generic_unit_prefix
        if not selection_id.startswith(prefix):
            return None
        try:
            return KillCategory(selection_id[len(prefix):])
        except ValueError:
            return None

    def resolve_or_create_generic(self, kill_category: KillCategory | str) -> UnitType:
        """
        Get-or-create the "Generic <CAT>" unit. Uniqueness of type_name makes
        concurrent calls converge on a single row.
        """
        category = KillCategory(kill_category)
        type_name = self.generic_type_name(category)
        existing = self.find_by_type_name(type_name)
        if existing:
            return existing

        candidate = UnitType(
            id=str(uuid.uuid4()),
            type_name=type_name,
            display_name=f"Generic {category.value}",
            category=UnitCategory.UNKNOWN,
            kill_category=category,
            source=UnitSource.MANUAL,
            is_active=True,
        )
        unit = self.add(candidate)
        if unit.id == candidate.id:
            logger.info("generic unit created", extra={"type_name": type_name, "unit_type_id": unit.id})
        return unit

    @staticmethod
    def _to_unit(row) -> UnitType:
        return UnitType(
            id=row["id"],
            type_name=row["type_name"],
            display_name=row["display_name"],
            category=UnitCategory(row["category"]) if row["category"] in UnitCategory._value2member_map_ else UnitCategory.UNKNOWN,
            sub_category=row["sub_category"],
            kill_category=KillCategory(row["kill_category"]),
            source=UnitSource(row["source"]) if row["source"] in UnitSource._value2member_map_ else UnitSource.CATALOG,
            is_active=bool(row["is_active"]),
        )


def load_catalog_file(path: Path) -> list[UnitType]:
    """
    Read unit types from a YAML or JSON file: either a list of units or a
    mapping with a `units` list. Entries without an id get a fresh one.
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data: Any = json.load(f) if path.suffix.lower() == ".json" else yaml.safe_load(f)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read catalog file {path}: {exc}", operation="load_catalog_file") from exc

    if isinstance(data, dict):
        data = data.get("units")
    if not isinstance(data, list):
        raise ConfigError(f"Catalog file {path} holds no unit list", operation="load_catalog_file")

    units: list[UnitType] = []
    for idx, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise ConfigError(f"Catalog entry {idx} in {path} is not a mapping", operation="load_catalog_file")
        try:
            units.append(UnitType.model_validate({"id": str(uuid.uuid4()), **entry}))
        except ValidationError as exc:
            raise ConfigError(
                f"Invalid catalog entry {idx} in {path}: {exc}",
                operation="load_catalog_file",
                ids={"type_name": entry.get("type_name")},
            ) from exc
    return units
