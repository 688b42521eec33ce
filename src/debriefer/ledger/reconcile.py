from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel, Field

from debriefer.domain.models import KillLine, KillLineKey
from debriefer.exceptions import DebrieferError
from debriefer.ledger.buffer import KillEditBuffer
from debriefer.ledger.store import KillLedgerStore

logger = logging.getLogger(__name__)


class SaveReport(BaseModel):
    flight_debrief_id: str
    deleted: list[KillLineKey] = Field(default_factory=list)
    upserted: int = 0
    status_only: list[str] = Field(default_factory=list)
    reset: list[str] = Field(default_factory=list)


class KillLedgerReconciler:
    """
    Turns an edit buffer into the minimal set of ledger writes.

    Order is delete, then upsert, then status-only writes, so a unit moved
    between pilots never collides on the per-pilot uniqueness constraint.
    The buffer is updated only after every store call has succeeded; a
    failure leaves it untouched for a retry. Writes made before the failure
    are not rolled back.
    """

    def __init__(self, store: KillLedgerStore):
        self.store = store

    def save_kills(self, buffer: KillEditBuffer, flight_debrief_id: Optional[str] = None) -> SaveReport:
        target = flight_debrief_id or buffer.flight_debrief_id
        mission_id = buffer.mission_id
        report = SaveReport(flight_debrief_id=target)

        try:
            self._resolve_owners(buffer)
            for key in buffer.deleted_keys():
                self.store.delete_unit_kill(key)
                report.deleted.append(key)

            saved_lines: list[KillLine] = []
            pilots_with_kills: set[str] = set()
            for line in buffer.lines:
                pilots_with_kills.add(line.pilot_id)
                pilot_status, aircraft_status = buffer.status_for(line.pilot_id).for_persistence()
                record = self.store.record_unit_kill(
                    target,
                    line.pilot_id,
                    mission_id,
                    line.unit_type_id,
                    line.kill_count,
                    pilot_status,
                    aircraft_status,
                )
                saved_lines.append(
                    line.model_copy(
                        update={
                            "key": KillLineKey(record_id=record.id, unit_type_id=line.unit_type_id),
                            "temp_id": None,
                        }
                    )
                )
            report.upserted = len(saved_lines)

            assessed: set[str] = set()
            for pilot_id, entry in buffer.statuses.items():
                if not entry.is_unassessed:
                    assessed.add(pilot_id)
                if pilot_id in pilots_with_kills:
                    continue
                if entry.is_unassessed:
                    if pilot_id in buffer.assessed_on_load:
                        self.store.reset_pilot_status(target, pilot_id, mission_id)
                        report.reset.append(pilot_id)
                    continue
                pilot_status, aircraft_status = entry.for_persistence()
                self.store.save_pilot_status_only(target, pilot_id, mission_id, pilot_status, aircraft_status)
                report.status_only.append(pilot_id)
        except DebrieferError as exc:
            logger.error(
                "kill save aborted",
                extra={
                    "flight_debrief_id": target,
                    "operation": exc.operation,
                    "ids": exc.ids,
                    "deleted": len(report.deleted),
                },
            )
            raise

        buffer.mark_saved(target, saved_lines, assessed)
        logger.info(
            "kills saved",
            extra={
                "flight_debrief_id": target,
                "deleted": len(report.deleted),
                "upserted": report.upserted,
                "status_only": len(report.status_only),
                "reset": len(report.reset),
            },
        )
        return report

    def _resolve_owners(self, buffer: KillEditBuffer) -> None:
        """Look up the owning pilot of original keys the buffer was not loaded with."""
        for key in buffer.original_keys:
            if key in buffer.original_owners:
                continue
            record = self.store.get_record(key.record_id)
            if record is not None:
                buffer.original_owners[key] = record.pilot_id
