from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from debriefer.api.deps import get_kill_tracking_service, get_missions, get_pool, get_store, require_auth
from debriefer.data.repositories import MissionRepository
from debriefer.domain.models import AircraftStatus, KillCategory, KillLine, KillLineKey, PilotStatus
from debriefer.exceptions import ReferentialError
from debriefer.ledger import KillEditBuffer, KillLedgerStore, KillTrackingService, PilotStatusEntry, UnitPoolManager

router = APIRouter(prefix="/v1", tags=["ledger"])


class StatusPayload(BaseModel):
    pilot_status: PilotStatus = PilotStatus.UNACCOUNTED
    aircraft_status: AircraftStatus = AircraftStatus.UNACCOUNTED


class SaveKillsRequest(BaseModel):
    """Client-side edit buffer as it stands at save time."""

    mission_id: str
    original_keys: list[KillLineKey] = Field(default_factory=list)
    lines: list[KillLine] = Field(default_factory=list)
    statuses: dict[str, StatusPayload] = Field(default_factory=dict)
    assessed_on_load: list[str] = Field(default_factory=list)

    def to_buffer(self, flight_debrief_id: str) -> KillEditBuffer:
        return KillEditBuffer(
            flight_debrief_id=flight_debrief_id,
            mission_id=self.mission_id,
            lines=self.lines,
            statuses={
                pilot_id: PilotStatusEntry(status.pilot_status, status.aircraft_status)
                for pilot_id, status in self.statuses.items()
            },
            original_keys=self.original_keys,
            assessed_on_load=self.assessed_on_load,
        )


class PoolAddRequest(BaseModel):
    unit_type_ids: list[str] = Field(default_factory=list)


@router.get("/flights/{flight_debrief_id}/kills")
def flight_kills(flight_debrief_id: str, store: KillLedgerStore = Depends(get_store)):
    return [line.model_dump(mode="json") for line in store.get_by_flight(flight_debrief_id)]


@router.get("/flights/{flight_debrief_id}/statuses")
def flight_statuses(flight_debrief_id: str, store: KillLedgerStore = Depends(get_store)):
    return [row.model_dump(mode="json") for row in store.get_statuses_by_flight(flight_debrief_id)]


@router.get("/flights/{flight_debrief_id}/roster")
def flight_roster(flight_debrief_id: str, svc: KillTrackingService = Depends(get_kill_tracking_service)):
    return [
        {**pilot.model_dump(mode="json"), "is_flight_lead": pilot.is_flight_lead}
        for pilot in svc.flight_roster(flight_debrief_id)
    ]


@router.post("/flights/{flight_debrief_id}/kills/save")
def save_flight_kills(
    flight_debrief_id: str,
    payload: SaveKillsRequest,
    svc: KillTrackingService = Depends(get_kill_tracking_service),
    _auth=Depends(require_auth),
):
    buffer = payload.to_buffer(flight_debrief_id)
    report = svc.save_kills(buffer, flight_debrief_id)
    return {
        "report": report.model_dump(mode="json"),
        "lines": [line.model_dump(mode="json") for line in buffer.lines],
        "original_keys": [key.model_dump() for key in sorted(buffer.original_keys, key=lambda k: (k.record_id, k.unit_type_id))],
        "assessed_on_load": sorted(buffer.assessed_on_load),
    }


@router.get("/missions/{mission_debriefing_id}/pool")
def mission_pool(
    mission_debriefing_id: str,
    kill_category: Optional[KillCategory] = Query(None),
    seed: bool = Query(True, description="Seed an empty pool from the mission file"),
    pool: UnitPoolManager = Depends(get_pool),
    missions: MissionRepository = Depends(get_missions),
):
    if seed:
        mission_id = missions.get_mission_id(mission_debriefing_id)
        mission_data = missions.mission_data(mission_id) if mission_id else None
        pool.load_pool(mission_debriefing_id, mission_data)
    units = pool.list_units(mission_debriefing_id, kill_category)
    return [unit.model_dump(mode="json") for unit in units]


@router.post("/missions/{mission_debriefing_id}/pool")
def add_to_pool(
    mission_debriefing_id: str,
    payload: PoolAddRequest,
    pool: UnitPoolManager = Depends(get_pool),
    missions: MissionRepository = Depends(get_missions),
    _auth=Depends(require_auth),
):
    if missions.get_mission_id(mission_debriefing_id) is None:
        raise ReferentialError(
            f"Unknown mission debrief '{mission_debriefing_id}'",
            operation="add_units_to_pool",
            ids={"mission_debriefing_id": mission_debriefing_id},
        )
    added = pool.add_units(mission_debriefing_id, payload.unit_type_ids)
    return {"added": added, "units": [u.model_dump(mode="json") for u in pool.list_units(mission_debriefing_id)]}
