from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class KillCategory(str, Enum):
    A2A = "A2A"
    A2G = "A2G"
    A2S = "A2S"


class UnitCategory(str, Enum):
    AIRPLANE = "AIRPLANE"
    HELICOPTER = "HELICOPTER"
    GROUND_UNIT = "GROUND_UNIT"
    SHIP = "SHIP"
    STRUCTURE = "STRUCTURE"
    HELIPORT = "HELIPORT"
    CARGO = "CARGO"
    UNKNOWN = "UNKNOWN"


class UnitSource(str, Enum):
    CATALOG = "DCS"
    MANUAL = "Manual"


class PilotStatus(str, Enum):
    """
    Pilot outcome. UNACCOUNTED means "not yet assessed", never an in-game state.
    """

    ALIVE = "alive"
    MIA = "mia"
    KIA = "kia"
    UNACCOUNTED = "unaccounted"

    @property
    def is_assessed(self) -> bool:
        return self is not PilotStatus.UNACCOUNTED


class AircraftStatus(str, Enum):
    """
    Airframe outcome. DOWN is display-only and is stored as DAMAGED.
    """

    RECOVERED = "recovered"
    DAMAGED = "damaged"
    DESTROYED = "destroyed"
    DOWN = "down"
    UNACCOUNTED = "unaccounted"

    @property
    def is_assessed(self) -> bool:
        return self is not AircraftStatus.UNACCOUNTED

    def for_persistence(self) -> "AircraftStatus":
        return AircraftStatus.DAMAGED if self is AircraftStatus.DOWN else self


# Statuses a ledger record may hold without carrying any information of its own.
DEFAULT_PILOT_STATUSES = frozenset({PilotStatus.ALIVE, PilotStatus.UNACCOUNTED})
DEFAULT_AIRCRAFT_STATUSES = frozenset({AircraftStatus.RECOVERED, AircraftStatus.UNACCOUNTED})


def _utcnow() -> datetime:
    return datetime.now(UTC)


class UnitType(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type_name: str
    display_name: str
    category: UnitCategory = UnitCategory.UNKNOWN
    sub_category: Optional[str] = None
    kill_category: KillCategory
    source: UnitSource = UnitSource.CATALOG
    is_active: bool = True


class UnitPoolEntry(BaseModel):
    mission_debriefing_id: str
    unit_type_id: str
    kill_category: KillCategory
    added_at: datetime = Field(default_factory=_utcnow)


class KillLedgerRecord(BaseModel):
    """
    One pilot's kills and statuses within one flight debrief.

    `kills` maps unit type id -> count in insertion order. Unit ids are unique by
    construction and a count of zero is never held.
    """

    id: str
    flight_debrief_id: str
    pilot_id: str
    mission_id: str
    kills: dict[str, int] = Field(default_factory=dict)
    pilot_status: PilotStatus = PilotStatus.UNACCOUNTED
    aircraft_status: AircraftStatus = AircraftStatus.UNACCOUNTED
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("kills")
    @classmethod
    def _drop_zero_counts(cls, value: dict[str, int]) -> dict[str, int]:
        cleaned: dict[str, int] = {}
        for unit_type_id, count in value.items():
            if count < 0:
                raise ValueError(f"kill count for unit '{unit_type_id}' cannot be negative")
            if count:
                cleaned[unit_type_id] = count
        return cleaned

    def merge_kill(self, unit_type_id: str, count: int) -> None:
        """Replace the entry for a unit type; a zero count removes it."""
        if count < 0:
            raise ValueError(f"kill count for unit '{unit_type_id}' cannot be negative")
        if count == 0:
            self.kills.pop(unit_type_id, None)
        else:
            self.kills[unit_type_id] = count

    def remove_kill(self, unit_type_id: str) -> bool:
        return self.kills.pop(unit_type_id, None) is not None

    @property
    def is_empty(self) -> bool:
        return not self.kills

    @property
    def has_default_status(self) -> bool:
        return self.pilot_status in DEFAULT_PILOT_STATUSES and self.aircraft_status in DEFAULT_AIRCRAFT_STATUSES

    @property
    def kills_detail(self) -> list[dict[str, Any]]:
        return [{"unit_type_id": uid, "kill_count": count} for uid, count in self.kills.items()]

    @staticmethod
    def kills_from_detail(detail: Any) -> dict[str, int]:
        kills: dict[str, int] = {}
        if not isinstance(detail, list):
            return kills
        for entry in detail:
            if not isinstance(entry, dict) or not entry.get("unit_type_id"):
                continue
            try:
                count = int(entry.get("kill_count") or 0)
            except (TypeError, ValueError):
                continue
            if count > 0:
                kills[str(entry["unit_type_id"])] = count
        return kills


class KillLineKey(BaseModel):
    """Address of a single persisted unit-kill entry."""

    model_config = ConfigDict(frozen=True)

    record_id: str
    unit_type_id: str


class KillLine(BaseModel):
    """
    Editable row in the kill buffer. Persisted rows carry a `key`; rows added
    locally carry a `temp_id` until the next save.
    """

    key: Optional[KillLineKey] = None
    temp_id: Optional[str] = None
    pilot_id: str
    unit_type_id: str
    display_name: str = "Unknown"
    type_name: str = "Unknown"
    kill_count: int = Field(default=1, ge=1)
    kill_category: KillCategory = KillCategory.A2A

    @property
    def is_temporary(self) -> bool:
        return self.key is None

    @property
    def handle(self) -> KillLineKey | str:
        return self.key if self.key is not None else str(self.temp_id)


class ExpandedKillLine(BaseModel):
    key: KillLineKey
    flight_debrief_id: str
    pilot_id: str
    mission_id: str
    unit_type_id: str
    kill_count: int
    display_name: str
    type_name: str
    kill_category: KillCategory
    pilot_status: PilotStatus
    aircraft_status: AircraftStatus
    created_at: datetime


class PilotStatusRow(BaseModel):
    record_id: str
    pilot_id: str
    pilot_status: PilotStatus
    aircraft_status: AircraftStatus
    has_kills: bool = False


class Squadron(BaseModel):
    id: str
    designation: str = ""
    name: str = ""
    tail_code: Optional[str] = None
    insignia_url: Optional[str] = None


class PilotInfo(BaseModel):
    id: str
    callsign: str
    board_number: str = ""
    dash_number: Optional[str] = None

    @property
    def is_flight_lead(self) -> bool:
        return self.dash_number == "1"


class PerformanceRating(BaseModel):
    rating: Literal["SAT", "UNSAT"]
    comments: Optional[str] = None

    @field_validator("rating", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return str(value).strip().upper() if value is not None else value


class FlightDebrief(BaseModel):
    id: str
    mission_debriefing_id: str
    flight_id: str
    callsign: str = ""
    squadron_id: Optional[str] = None
    performance_ratings: dict[str, PerformanceRating] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)


# ----- mission summary -----


class PilotStatusCounts(BaseModel):
    alive: int = 0
    mia: int = 0
    kia: int = 0
    unaccounted: int = 0

    @property
    def total(self) -> int:
        return self.alive + self.mia + self.kia + self.unaccounted


class AircraftStatusCounts(BaseModel):
    recovered: int = 0
    damaged: int = 0
    destroyed: int = 0
    down: int = 0
    unaccounted: int = 0

    @property
    def total(self) -> int:
        return self.recovered + self.damaged + self.destroyed + self.down + self.unaccounted


class KillTotals(BaseModel):
    a2a: int = 0
    a2g: int = 0
    a2s: int = 0

    @property
    def total(self) -> int:
        return self.a2a + self.a2g + self.a2s


class PerformanceCoverage(BaseModel):
    sats: int = 0
    unsats: int = 0
    total: int = 0
    total_possible: int = 0
    unassessed: int = 0


class MissionSummary(BaseModel):
    """Derived view; safe to discard and recompute."""

    mission_debriefing_id: str
    mission_id: Optional[str] = None
    total_slots: int = 0
    total_flights: int = 0
    pilot_status: PilotStatusCounts = Field(default_factory=PilotStatusCounts)
    aircraft_status: AircraftStatusCounts = Field(default_factory=AircraftStatusCounts)
    kills: KillTotals = Field(default_factory=KillTotals)
    performance: PerformanceCoverage = Field(default_factory=PerformanceCoverage)
    computed_at: datetime = Field(default_factory=_utcnow)


# ----- summary drill-down -----


class SummaryBucket(BaseModel):
    """
    Selected aggregate, written as `kind:value[:category]`, e.g. `pilot:kia`,
    `aircraft:down`, `kills:A2G`, `performance:UNSAT:weapons_employment`.
    """

    kind: Literal["pilot", "aircraft", "kills", "performance"]
    value: str
    category: Optional[str] = None

    @property
    def label(self) -> str:
        parts = [self.kind, self.value]
        if self.category:
            parts.append(self.category)
        return ":".join(parts)


class PilotDetail(BaseModel):
    id: str
    callsign: str = ""
    board_number: str = ""
    squadron: Optional[Squadron] = None


class SquadronGroup(BaseModel):
    key: str
    squadron: Optional[Squadron] = None
    pilots: list[PilotDetail] = Field(default_factory=list)


class UnitKillDetail(BaseModel):
    unit_type_id: str
    type_name: str
    display_name: str
    count: int


class PerformanceCategoryDetail(BaseModel):
    name: str
    display_name: str
    sats: int = 0
    unsats: int = 0
    unassessed: int = 0


class FlightRatingDetail(BaseModel):
    flight_debrief_id: str
    callsign: str = ""
    squadron_id: Optional[str] = None
    category: str
    rating: Optional[str] = None
    comments: Optional[str] = None


class BucketExpansion(BaseModel):
    mission_debriefing_id: str
    bucket: str
    count: int = 0
    groups: list[SquadronGroup] = Field(default_factory=list)
    units: list[UnitKillDetail] = Field(default_factory=list)
    ratings: list[FlightRatingDetail] = Field(default_factory=list)


class MissionSummaryDetails(BaseModel):
    mission_debriefing_id: str
    pilot_status: dict[str, list[PilotDetail]] = Field(default_factory=dict)
    aircraft_status: dict[str, list[PilotDetail]] = Field(default_factory=dict)
    kills: dict[str, list[UnitKillDetail]] = Field(default_factory=dict)
    performance: list[PerformanceCategoryDetail] = Field(default_factory=list)
