from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Optional

from debriefer.config import settings
from debriefer.data.repositories import MissionDirectory
from debriefer.domain.models import (
    AircraftStatusCounts,
    FlightDebrief,
    KillCategory,
    KillLedgerRecord,
    KillTotals,
    MissionSummary,
    PerformanceCoverage,
    PilotStatusCounts,
)
from debriefer.ledger.catalog import UnitCatalog
from debriefer.ledger.store import KillLedgerStore

logger = logging.getLogger(__name__)


def assigned_slots(pilot_assignments: dict[str, list[dict[str, Any]]]) -> list[tuple[str, str]]:
    """(flight id, pilot id) for every assigned aircraft slot."""
    slots: list[tuple[str, str]] = []
    for flight_id, flight_slots in pilot_assignments.items():
        for slot in flight_slots or []:
            if isinstance(slot, dict) and slot.get("pilot_id"):
                slots.append((str(flight_id), str(slot["pilot_id"])))
    return slots


def claim_slots(
    records: list[KillLedgerRecord],
    flights: list[FlightDebrief],
    slots: list[tuple[str, str]],
) -> tuple[list[KillLedgerRecord], list[tuple[str, str]]]:
    """
    Match ledger records to assigned slots, at most one record per slot.
    Returns the claiming records and the slots left open. Records for pilots
    with no open slot are left out of the status buckets.
    """
    flight_by_debrief = {flight.id: flight.flight_id for flight in flights}
    open_slots = Counter(slots)
    open_by_pilot = Counter(pilot_id for _, pilot_id in slots)

    claimed: list[KillLedgerRecord] = []
    for record in records:
        exact = (flight_by_debrief.get(record.flight_debrief_id, ""), record.pilot_id)
        if open_slots[exact] > 0:
            open_slots[exact] -= 1
            open_by_pilot[record.pilot_id] -= 1
            claimed.append(record)
            continue
        if open_by_pilot[record.pilot_id] > 0:
            fallback = next(s for s, n in open_slots.items() if n > 0 and s[1] == record.pilot_id)
            open_slots[fallback] -= 1
            open_by_pilot[record.pilot_id] -= 1
            claimed.append(record)
            continue
        logger.debug(
            "ledger record has no assigned slot",
            extra={"record_id": record.id, "pilot_id": record.pilot_id},
        )

    unclaimed: list[tuple[str, str]] = []
    for slot in slots:
        if open_slots[slot] > 0:
            open_slots[slot] -= 1
            unclaimed.append(slot)
    return claimed, unclaimed


class MissionSummaryAggregator:
    """
    Recomputes a mission debrief's summary from every ledger record and
    performance rating on each call. Missing data counts as zero; this never
    raises for partial or absent submissions.
    """

    def __init__(
        self,
        missions: MissionDirectory,
        store: KillLedgerStore,
        catalog: UnitCatalog,
        default_category_count: Optional[int] = None,
        infer_category_count: Optional[bool] = None,
    ):
        self.missions = missions
        self.store = store
        self.catalog = catalog
        self.default_category_count = (
            default_category_count
            if default_category_count is not None
            else settings.debrief.performance_category_count
        )
        self.infer_category_count = (
            infer_category_count if infer_category_count is not None else settings.debrief.infer_category_count
        )

    def get_mission_summary(self, mission_debriefing_id: str) -> MissionSummary:
        mission_id = self.missions.get_mission_id(mission_debriefing_id)
        assignments = self.missions.pilot_assignments(mission_id) if mission_id else {}
        slots = assigned_slots(assignments)
        total_flights = len(assignments)

        flights = self.missions.list_flight_debriefs(mission_debriefing_id)
        records = self.store.list_by_flights(flight.id for flight in flights)

        claimed, _ = claim_slots(records, flights, slots)
        pilot_counts, aircraft_counts = self._status_counts(claimed, len(slots))
        summary = MissionSummary(
            mission_debriefing_id=mission_debriefing_id,
            mission_id=mission_id,
            total_slots=len(slots),
            total_flights=total_flights,
            pilot_status=pilot_counts,
            aircraft_status=aircraft_counts,
            kills=self._kill_totals(records),
            performance=self._performance(flights, total_flights),
        )
        logger.debug(
            "mission summary computed",
            extra={"mission_debriefing_id": mission_debriefing_id, "records": len(records), "flights": len(flights)},
        )
        return summary

    @staticmethod
    def _status_counts(records: list[KillLedgerRecord], total_slots: int) -> tuple[PilotStatusCounts, AircraftStatusCounts]:
        pilot = PilotStatusCounts(unaccounted=total_slots)
        aircraft = AircraftStatusCounts(unaccounted=total_slots)
        for record in records:
            if record.pilot_status.is_assessed:
                name = record.pilot_status.value
                setattr(pilot, name, getattr(pilot, name) + 1)
                pilot.unaccounted -= 1
            if record.aircraft_status.is_assessed:
                name = record.aircraft_status.value
                setattr(aircraft, name, getattr(aircraft, name) + 1)
                aircraft.unaccounted -= 1
        return pilot, aircraft

    def _kill_totals(self, records: list[KillLedgerRecord]) -> KillTotals:
        units = self.catalog.find_many(uid for record in records for uid in record.kills)
        totals = KillTotals()
        for record in records:
            for unit_type_id, count in record.kills.items():
                unit = units.get(unit_type_id)
                if unit is None:
                    logger.warning(
                        "kill references unknown unit type",
                        extra={"record_id": record.id, "unit_type_id": unit_type_id},
                    )
                    continue
                if unit.kill_category is KillCategory.A2A:
                    totals.a2a += count
                elif unit.kill_category is KillCategory.A2G:
                    totals.a2g += count
                else:
                    totals.a2s += count
        return totals

    def category_count(self, flights: list[FlightDebrief]) -> int:
        if self.infer_category_count:
            for flight in flights:
                if flight.performance_ratings:
                    return len(flight.performance_ratings)
        return self.default_category_count

    def _performance(self, flights: list[FlightDebrief], total_flights: int) -> PerformanceCoverage:
        sats = 0
        unsats = 0
        for flight in flights:
            for rating in flight.performance_ratings.values():
                if rating.rating == "SAT":
                    sats += 1
                elif rating.rating == "UNSAT":
                    unsats += 1
        total_possible = total_flights * self.category_count(flights)
        return PerformanceCoverage(
            sats=sats,
            unsats=unsats,
            total=sats + unsats,
            total_possible=total_possible,
            unassessed=max(total_possible - (sats + unsats), 0),
        )
