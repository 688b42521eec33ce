from __future__ import annotations

import logging
import threading
from typing import Optional

from debriefer.data.repositories import MissionRepository, PilotRepository
from debriefer.domain.models import KillLine, PilotInfo, UnitType
from debriefer.exceptions import ReferentialError, SaveInProgressError
from debriefer.ledger.buffer import KillEditBuffer
from debriefer.ledger.catalog import UnitCatalog
from debriefer.ledger.pool import UnitPoolManager
from debriefer.ledger.reconcile import KillLedgerReconciler, SaveReport
from debriefer.ledger.store import KillLedgerStore

logger = logging.getLogger(__name__)


class KillTrackingService:
    """
    Entry point for the kill-tracking card: opens a buffer for a flight,
    resolves unit selections, and saves through the reconciler with at most
    one save in flight per flight debrief.
    """

    def __init__(
        self,
        store: KillLedgerStore,
        catalog: UnitCatalog,
        pool: UnitPoolManager,
        missions: MissionRepository,
        pilots: PilotRepository,
    ):
        self.store = store
        self.catalog = catalog
        self.pool = pool
        self.missions = missions
        self.pilots = pilots
        self.reconciler = KillLedgerReconciler(store)
        self._in_flight: set[str] = set()
        self._guard = threading.Lock()

    def open_buffer(self, flight_debrief_id: str, mission_id: str) -> KillEditBuffer:
        return KillEditBuffer.from_snapshot(
            flight_debrief_id,
            mission_id,
            self.store.get_by_flight(flight_debrief_id),
            self.store.get_statuses_by_flight(flight_debrief_id),
        )

    def flight_roster(self, flight_debrief_id: str) -> list[PilotInfo]:
        flight = self.missions.get_flight_debrief(flight_debrief_id)
        if flight is None:
            raise ReferentialError(
                f"Unknown flight debrief '{flight_debrief_id}'",
                operation="flight_roster",
                ids={"flight_debrief_id": flight_debrief_id},
            )
        mission_id = self.missions.get_mission_id(flight.mission_debriefing_id)
        assignments = self.missions.pilot_assignments(mission_id) if mission_id else {}
        return self.pilots.flight_roster(assignments.get(flight.flight_id, []))

    def resolve_selection(self, selection_id: str) -> UnitType:
        """A catalog id, or `GENERIC_<CAT>` for the lazily created generic unit."""
        generic_category = self.catalog.parse_generic_selection(selection_id)
        if generic_category is not None:
            return self.catalog.resolve_or_create_generic(generic_category)
        return self.catalog.get(selection_id)

    def select_unit(
        self,
        buffer: KillEditBuffer,
        pilot_id: str,
        selection_id: str,
        mission_debriefing_id: Optional[str] = None,
    ) -> KillLine:
        unit = self.resolve_selection(selection_id)
        if mission_debriefing_id and not self.pool.contains(mission_debriefing_id, unit.id):
            self.pool.add_units(mission_debriefing_id, [unit.id])
        return buffer.add(pilot_id, unit)

    def save_kills(self, buffer: KillEditBuffer, flight_debrief_id: Optional[str] = None) -> SaveReport:
        target = flight_debrief_id or buffer.flight_debrief_id
        with self._guard:
            if target in self._in_flight:
                raise SaveInProgressError(
                    "A save is already running for this flight debrief",
                    operation="save_kills",
                    ids={"flight_debrief_id": target},
                )
            self._in_flight.add(target)
        try:
            return self.reconciler.save_kills(buffer, target)
        finally:
            with self._guard:
                self._in_flight.discard(target)
