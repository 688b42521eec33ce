from __future__ import annotations

import logging
import sqlite3
from datetime import UTC, datetime
from typing import Any, Iterable, Optional

from debriefer.data.storage import Database
from debriefer.domain.models import KillCategory, UnitPoolEntry, UnitType
from debriefer.exceptions import PersistenceError, ReferentialError
from debriefer.ledger.catalog import UnitCatalog
from debriefer.ledger.extract import extract_red_coalition_unit_types

logger = logging.getLogger(__name__)


class UnitPoolManager:
    """
    Per-mission working set of unit types offered for kill attribution.
    Membership is unique per (mission debrief, unit type) and entries are never mutated.
    """

    def __init__(self, db: Database, catalog: UnitCatalog):
        self.db = db
        self.catalog = catalog

    def list_entries(self, mission_debriefing_id: str, kill_category: Optional[KillCategory | str] = None) -> list[UnitPoolEntry]:
        query = (
            "SELECT mission_debriefing_id, unit_type_id, kill_category, added_at "
            "FROM mission_unit_pool WHERE mission_debriefing_id = ?"
        )
        params: list[Any] = [mission_debriefing_id]
        if kill_category:
            query += " AND kill_category = ?"
            params.append(KillCategory(kill_category).value)
        query += " ORDER BY id"
        with self.db._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            UnitPoolEntry(
                mission_debriefing_id=row["mission_debriefing_id"],
                unit_type_id=row["unit_type_id"],
                kill_category=KillCategory(row["kill_category"]),
                added_at=row["added_at"],
            )
            for row in rows
        ]

    def list_units(self, mission_debriefing_id: str, kill_category: Optional[KillCategory | str] = None) -> list[UnitType]:
        entries = self.list_entries(mission_debriefing_id, kill_category)
        units = self.catalog.find_many(e.unit_type_id for e in entries)
        pooled = [units[e.unit_type_id] for e in entries if e.unit_type_id in units]
        pooled.sort(key=lambda u: (u.display_name.lower(), u.id))
        return pooled

    def partitioned(self, mission_debriefing_id: str) -> dict[KillCategory, list[UnitType]]:
        units = self.list_units(mission_debriefing_id)
        result: dict[KillCategory, list[UnitType]] = {category: [] for category in KillCategory}
        for unit in units:
            result[unit.kill_category].append(unit)
        return result

    def contains(self, mission_debriefing_id: str, unit_type_id: str) -> bool:
        with self.db._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM mission_unit_pool WHERE mission_debriefing_id = ? AND unit_type_id = ?",
                (mission_debriefing_id, unit_type_id),
            ).fetchone()
        return row is not None

    def add_units(self, mission_debriefing_id: str, unit_type_ids: Iterable[str]) -> int:
        """Add unit types to the pool; ones already present are skipped. Returns rows added."""
        ids = list(dict.fromkeys(unit_type_ids))
        units = self.catalog.find_many(ids)
        missing = [uid for uid in ids if uid not in units]
        if missing:
            raise ReferentialError(
                f"Unknown unit types: {', '.join(missing)}",
                operation="add_units_to_pool",
                ids={"mission_debriefing_id": mission_debriefing_id, "unit_type_ids": missing},
            )

        now = datetime.now(UTC).isoformat()
        rows = [(mission_debriefing_id, uid, units[uid].kill_category.value, now) for uid in ids]
        if not rows:
            return 0
        try:
            with self.db._connect() as conn:
                cur = conn.cursor()
                before = conn.total_changes
                cur.executemany(
                    """
                    INSERT OR IGNORE INTO mission_unit_pool (mission_debriefing_id, unit_type_id, kill_category, added_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    rows,
                )
                conn.commit()
                added = conn.total_changes - before
        except sqlite3.Error as exc:
            raise PersistenceError(
                f"Failed to add units to pool: {exc}",
                operation="add_units_to_pool",
                ids={"mission_debriefing_id": mission_debriefing_id},
            ) from exc
        return added

    def remove_unit(self, mission_debriefing_id: str, unit_type_id: str) -> bool:
        with self.db._connect() as conn:
            cur = conn.execute(
                "DELETE FROM mission_unit_pool WHERE mission_debriefing_id = ? AND unit_type_id = ?",
                (mission_debriefing_id, unit_type_id),
            )
            conn.commit()
        return cur.rowcount > 0

    def initialize_from_mission(self, mission_debriefing_id: str, mission_data: Optional[dict[str, Any]]) -> list[UnitType]:
        """
        Seed the pool with the active catalog units matching the red coalition
        unit types found in the parsed mission file.
        """
        type_names = extract_red_coalition_unit_types(mission_data)
        if not type_names:
            return []
        units = self.catalog.find_active_by_type_names(type_names)
        if units:
            self.add_units(mission_debriefing_id, [u.id for u in units])
        logger.info(
            "unit pool initialized from mission",
            extra={
                "mission_debriefing_id": mission_debriefing_id,
                "red_types": len(type_names),
                "matched": len(units),
            },
        )
        return units

    def load_pool(self, mission_debriefing_id: str, mission_data: Optional[dict[str, Any]] = None) -> list[UnitType]:
        """Current pool; an empty pool is seeded from mission data when available."""
        units = self.list_units(mission_debriefing_id)
        if units or mission_data is None:
            return units
        self.initialize_from_mission(mission_debriefing_id, mission_data)
        return self.list_units(mission_debriefing_id)
