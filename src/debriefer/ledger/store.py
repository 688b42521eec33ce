from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import UTC, datetime
from typing import Any, Callable, Iterable, Optional

import pandas as pd

from debriefer.data.repositories import PilotDirectory
from debriefer.data.storage import Database
from debriefer.domain.models import (
    AircraftStatus,
    ExpandedKillLine,
    KillCategory,
    KillLedgerRecord,
    KillLineKey,
    PilotStatus,
    PilotStatusRow,
)
from debriefer.exceptions import PersistenceError, ReferentialError, StaleStateError
from debriefer.ledger.catalog import UnitCatalog

logger = logging.getLogger(__name__)

_RECORD_COLUMNS = (
    "id, flight_debrief_id, pilot_id, mission_id, kills_detail_json, "
    "pilot_status, aircraft_status, created_at, updated_at"
)


class KillLedgerStore:
    """
    Persistence boundary for pilot kill ledgers.
    One record per (flight debrief, pilot, mission), holding an ordered
    unit -> count ledger plus pilot and aircraft status.
    """

    def __init__(self, db: Database, catalog: UnitCatalog, pilots: PilotDirectory):
        self.db = db
        self.catalog = catalog
        self.pilots = pilots

    # ----- reads -----

    def get_record(self, record_id: str) -> Optional[KillLedgerRecord]:
        with self.db._connect() as conn:
            row = conn.execute(f"SELECT {_RECORD_COLUMNS} FROM pilot_kills WHERE id = ?", (record_id,)).fetchone()
        return self._to_record(row) if row else None

    def get_by_pilot(self, flight_debrief_id: str, pilot_id: str, mission_id: Optional[str] = None) -> Optional[KillLedgerRecord]:
        query = f"SELECT {_RECORD_COLUMNS} FROM pilot_kills WHERE flight_debrief_id = ? AND pilot_id = ?"
        params: list[Any] = [flight_debrief_id, pilot_id]
        if mission_id:
            query += " AND mission_id = ?"
            params.append(mission_id)
        query += " ORDER BY created_at, id"
        with self.db._connect() as conn:
            row = conn.execute(query, params).fetchone()
        return self._to_record(row) if row else None

    def list_by_flights(self, flight_debrief_ids: Iterable[str]) -> list[KillLedgerRecord]:
        ids = list(dict.fromkeys(flight_debrief_ids))
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        query = (
            f"SELECT {_RECORD_COLUMNS} FROM pilot_kills "
            f"WHERE flight_debrief_id IN ({placeholders}) ORDER BY created_at, id"
        )
        with self.db._connect() as conn:
            df = pd.read_sql_query(query, conn, params=ids)

        if df.empty:
            return []
        return [self._to_record(row) for row in df.to_dict("records")]

    def get_by_flight(self, flight_debrief_id: str) -> list[ExpandedKillLine]:
        """
        One row per unit entry, ordered by record creation then ledger order,
        joined with catalog display data.
        """
        records = self.list_by_flights([flight_debrief_id])
        units = self.catalog.find_many(uid for record in records for uid in record.kills)

        lines: list[ExpandedKillLine] = []
        for record in records:
            for unit_type_id, count in record.kills.items():
                unit = units.get(unit_type_id)
                if unit is None:
                    logger.warning(
                        "ledger references unknown unit type",
                        extra={"record_id": record.id, "unit_type_id": unit_type_id},
                    )
                lines.append(
                    ExpandedKillLine(
                        key=KillLineKey(record_id=record.id, unit_type_id=unit_type_id),
                        flight_debrief_id=record.flight_debrief_id,
                        pilot_id=record.pilot_id,
                        mission_id=record.mission_id,
                        unit_type_id=unit_type_id,
                        kill_count=count,
                        display_name=unit.display_name if unit else "Unknown",
                        type_name=unit.type_name if unit else "Unknown",
                        kill_category=unit.kill_category if unit else KillCategory.A2A,
                        pilot_status=record.pilot_status,
                        aircraft_status=record.aircraft_status,
                        created_at=record.created_at,
                    )
                )
        return lines

    def get_statuses_by_flight(self, flight_debrief_id: str) -> list[PilotStatusRow]:
        return [
            PilotStatusRow(
                record_id=record.id,
                pilot_id=record.pilot_id,
                pilot_status=record.pilot_status,
                aircraft_status=record.aircraft_status,
                has_kills=not record.is_empty,
            )
            for record in self.list_by_flights([flight_debrief_id])
        ]

    def mission_kill_stats(self, mission_debriefing_id: str) -> dict[str, int]:
        query = (
            "SELECT pk.kills_detail_json FROM pilot_kills pk "
            "JOIN flight_debriefs fd ON fd.id = pk.flight_debrief_id "
            "WHERE fd.mission_debriefing_id = ?"
        )
        with self.db._connect() as conn:
            rows = conn.execute(query, (mission_debriefing_id,)).fetchall()

        ledgers = [KillLedgerRecord.kills_from_detail(self._safe_json(row[0], [])) for row in rows]
        units = self.catalog.find_many(uid for kills in ledgers for uid in kills)
        totals = {category.value: 0 for category in KillCategory}
        for kills in ledgers:
            for unit_type_id, count in kills.items():
                unit = units.get(unit_type_id)
                if unit:
                    totals[unit.kill_category.value] += count
        return {
            "total_a2a": totals["A2A"],
            "total_a2g": totals["A2G"],
            "total_a2s": totals["A2S"],
            "total_kills": sum(totals.values()),
            "record_count": len(rows),
        }

    # ----- writes -----

    def record_unit_kill(
        self,
        flight_debrief_id: str,
        pilot_id: str,
        mission_id: str,
        unit_type_id: str,
        count: int,
        pilot_status: PilotStatus | str = PilotStatus.ALIVE,
        aircraft_status: AircraftStatus | str = AircraftStatus.RECOVERED,
    ) -> KillLedgerRecord:
        """
        Merge one unit's count into the pilot's ledger, replacing any existing
        entry for that unit, or create the record. Idempotent on
        (flight debrief, pilot, unit).
        """
        if count < 1:
            raise ValueError(f"kill count must be positive, got {count}")
        ids = {
            "flight_debrief_id": flight_debrief_id,
            "pilot_id": pilot_id,
            "mission_id": mission_id,
            "unit_type_id": unit_type_id,
        }
        self._require_pilot(pilot_id, "record_unit_kill", ids)
        if self.catalog.find_by_id(unit_type_id) is None:
            raise ReferentialError(f"Unknown unit type '{unit_type_id}'", operation="record_unit_kill", ids=ids)

        pilot_status = PilotStatus(pilot_status)
        aircraft_status = AircraftStatus(aircraft_status).for_persistence()

        def apply(record: KillLedgerRecord) -> None:
            record.merge_kill(unit_type_id, count)
            record.pilot_status = pilot_status
            record.aircraft_status = aircraft_status

        return self._merge_or_create(flight_debrief_id, pilot_id, mission_id, apply, "record_unit_kill", ids)

    def save_pilot_status_only(
        self,
        flight_debrief_id: str,
        pilot_id: str,
        mission_id: str,
        pilot_status: PilotStatus | str,
        aircraft_status: AircraftStatus | str,
    ) -> KillLedgerRecord:
        """
        Create-or-update the pilot's statuses. A new record starts with an empty
        ledger; an existing ledger is left as it is.
        """
        ids = {"flight_debrief_id": flight_debrief_id, "pilot_id": pilot_id, "mission_id": mission_id}
        self._require_pilot(pilot_id, "save_pilot_status_only", ids)

        pilot_status = PilotStatus(pilot_status)
        aircraft_status = AircraftStatus(aircraft_status).for_persistence()

        def apply(record: KillLedgerRecord) -> None:
            record.pilot_status = pilot_status
            record.aircraft_status = aircraft_status

        return self._merge_or_create(flight_debrief_id, pilot_id, mission_id, apply, "save_pilot_status_only", ids)

    def reset_pilot_status(self, flight_debrief_id: str, pilot_id: str, mission_id: str) -> Optional[KillLedgerRecord]:
        """Clear a pilot's assessment; a record with an empty ledger goes away with it."""
        record = self.get_by_pilot(flight_debrief_id, pilot_id, mission_id)
        if record is None:
            return None
        if record.is_empty:
            self.delete_record(record.id)
            return None
        return self.save_pilot_status_only(
            flight_debrief_id, pilot_id, mission_id, PilotStatus.ALIVE, AircraftStatus.RECOVERED
        )

    def delete_unit_kill(
        self,
        key: KillLineKey | str,
        unit_type_id: Optional[str] = None,
        missing_ok: bool = True,
    ) -> Optional[KillLedgerRecord]:
        """
        Remove one unit entry from its record. The record itself is deleted
        when its ledger empties and its statuses carry no assessment.

        Returns the surviving record, or None when the record is gone.
        A key that no longer resolves is logged and ignored unless
        `missing_ok` is False.
        """
        if not isinstance(key, KillLineKey):
            if not unit_type_id:
                raise ValueError("unit_type_id is required when deleting by record id")
            key = KillLineKey(record_id=key, unit_type_id=unit_type_id)
        ids = {"record_id": key.record_id, "unit_type_id": key.unit_type_id}

        try:
            with self.db._connect() as conn:
                row = conn.execute(
                    f"SELECT {_RECORD_COLUMNS} FROM pilot_kills WHERE id = ?", (key.record_id,)
                ).fetchone()
                record = self._to_record(row) if row else None
                if record is None or not record.remove_kill(key.unit_type_id):
                    logger.warning("stale kill line on delete", extra=ids)
                    if not missing_ok:
                        raise StaleStateError(
                            "Kill line no longer exists", operation="delete_unit_kill", ids=ids
                        )
                    return record

                if record.is_empty and record.has_default_status:
                    conn.execute("DELETE FROM pilot_kills WHERE id = ?", (record.id,))
                    conn.commit()
                    logger.debug("ledger record removed", extra=ids)
                    return None

                record.updated_at = datetime.now(UTC)
                conn.execute(
                    "UPDATE pilot_kills SET kills_detail_json = ?, updated_at = ? WHERE id = ?",
                    (self._detail_json(record), record.updated_at.isoformat(), record.id),
                )
                conn.commit()
                return record
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to delete unit kill: {exc}", operation="delete_unit_kill", ids=ids) from exc

    def delete_record(self, record_id: str) -> bool:
        try:
            with self.db._connect() as conn:
                cur = conn.execute("DELETE FROM pilot_kills WHERE id = ?", (record_id,))
                conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(
                f"Failed to delete ledger record: {exc}", operation="delete_record", ids={"record_id": record_id}
            ) from exc
        return cur.rowcount > 0

    # ----- helpers -----

    def _require_pilot(self, pilot_id: str, operation: str, ids: dict[str, Any]) -> None:
        if not self.pilots.pilot_exists(pilot_id):
            raise ReferentialError(f"Unknown pilot '{pilot_id}'", operation=operation, ids=ids)

    def _merge_or_create(
        self,
        flight_debrief_id: str,
        pilot_id: str,
        mission_id: str,
        apply: Callable[[KillLedgerRecord], None],
        operation: str,
        ids: dict[str, Any],
    ) -> KillLedgerRecord:
        # A concurrent insert for the same key trips the UNIQUE constraint; the
        # second attempt then finds the row and merges into it.
        for attempt in range(2):
            try:
                return self._merge_or_create_once(flight_debrief_id, pilot_id, mission_id, apply)
            except sqlite3.IntegrityError as exc:
                if attempt == 0:
                    logger.debug("ledger insert raced, retrying as update", extra=ids)
                    continue
                raise PersistenceError(f"Failed to {operation}: {exc}", operation=operation, ids=ids) from exc
            except sqlite3.Error as exc:
                raise PersistenceError(f"Failed to {operation}: {exc}", operation=operation, ids=ids) from exc
        raise PersistenceError(f"Failed to {operation}", operation=operation, ids=ids)

    def _merge_or_create_once(
        self,
        flight_debrief_id: str,
        pilot_id: str,
        mission_id: str,
        apply: Callable[[KillLedgerRecord], None],
    ) -> KillLedgerRecord:
        now = datetime.now(UTC)
        with self.db._connect() as conn:
            row = conn.execute(
                f"""
                SELECT {_RECORD_COLUMNS} FROM pilot_kills
                WHERE flight_debrief_id = ? AND pilot_id = ? AND mission_id = ?
                """,
                (flight_debrief_id, pilot_id, mission_id),
            ).fetchone()

            if row:
                record = self._to_record(row)
                apply(record)
                record.updated_at = now
                conn.execute(
                    """
                    UPDATE pilot_kills
                    SET kills_detail_json = ?, pilot_status = ?, aircraft_status = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        self._detail_json(record),
                        record.pilot_status.value,
                        record.aircraft_status.value,
                        now.isoformat(),
                        record.id,
                    ),
                )
            else:
                record = KillLedgerRecord(
                    id=str(uuid.uuid4()),
                    flight_debrief_id=flight_debrief_id,
                    pilot_id=pilot_id,
                    mission_id=mission_id,
                    created_at=now,
                    updated_at=now,
                )
                apply(record)
                conn.execute(
                    f"INSERT INTO pilot_kills ({_RECORD_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.id,
                        record.flight_debrief_id,
                        record.pilot_id,
                        record.mission_id,
                        self._detail_json(record),
                        record.pilot_status.value,
                        record.aircraft_status.value,
                        record.created_at.isoformat(),
                        record.updated_at.isoformat(),
                    ),
                )
            conn.commit()
        return record

    @classmethod
    def _to_record(cls, row) -> KillLedgerRecord:
        pilot_status = row["pilot_status"]
        aircraft_status = row["aircraft_status"]
        return KillLedgerRecord(
            id=row["id"],
            flight_debrief_id=row["flight_debrief_id"],
            pilot_id=row["pilot_id"],
            mission_id=row["mission_id"],
            kills=KillLedgerRecord.kills_from_detail(cls._safe_json(row["kills_detail_json"], [])),
            pilot_status=pilot_status if pilot_status in PilotStatus._value2member_map_ else PilotStatus.UNACCOUNTED,
            aircraft_status=(
                aircraft_status if aircraft_status in AircraftStatus._value2member_map_ else AircraftStatus.UNACCOUNTED
            ),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _detail_json(record: KillLedgerRecord) -> str:
        return json.dumps(record.kills_detail, ensure_ascii=False)

    @staticmethod
    def _safe_json(raw: Optional[str], fallback: Any) -> Any:
        try:
            return json.loads(raw) if raw is not None else fallback
        except (TypeError, ValueError):
            return fallback
