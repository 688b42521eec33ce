from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

from debriefer.config import settings
from debriefer.domain.models import (
    DEFAULT_AIRCRAFT_STATUSES,
    DEFAULT_PILOT_STATUSES,
    AircraftStatus,
    ExpandedKillLine,
    KillCategory,
    KillLine,
    KillLineKey,
    PilotStatus,
    PilotStatusRow,
    UnitType,
)

LineHandle = KillLineKey | str


@dataclass
class PilotStatusEntry:
    pilot_status: PilotStatus = PilotStatus.UNACCOUNTED
    aircraft_status: AircraftStatus = AircraftStatus.UNACCOUNTED

    @property
    def is_unassessed(self) -> bool:
        return not self.pilot_status.is_assessed and not self.aircraft_status.is_assessed

    def for_persistence(self) -> tuple[PilotStatus, AircraftStatus]:
        """Working statuses to store; unaccounted is never persisted as a working status."""
        pilot = self.pilot_status if self.pilot_status.is_assessed else PilotStatus.ALIVE
        aircraft = self.aircraft_status if self.aircraft_status.is_assessed else AircraftStatus.RECOVERED
        return pilot, aircraft.for_persistence()


class KillEditBuffer:
    """
    In-memory working copy of one flight debrief's kill lines and pilot statuses.

    Every mutation is synchronous and touches only this object; nothing is
    persisted until the buffer is handed to the reconciler.
    """

    def __init__(
        self,
        flight_debrief_id: str,
        mission_id: str,
        lines: Optional[Iterable[KillLine]] = None,
        statuses: Optional[dict[str, PilotStatusEntry]] = None,
        original_keys: Optional[Iterable[KillLineKey]] = None,
        assessed_on_load: Optional[Iterable[str]] = None,
        original_owners: Optional[dict[KillLineKey, str]] = None,
    ):
        self.flight_debrief_id = flight_debrief_id
        self.mission_id = mission_id
        self.lines: list[KillLine] = list(lines or [])
        self.statuses: dict[str, PilotStatusEntry] = dict(statuses or {})
        self.original_keys: set[KillLineKey] = set(original_keys or [])
        # Pilot each original key was persisted for; filled lazily for client-built buffers.
        self.original_owners: dict[KillLineKey, str] = dict(original_owners or {})
        # Pilots whose stored record carried an assessed status when last loaded/saved.
        self.assessed_on_load: set[str] = set(assessed_on_load or [])
        self.dirty = False

    @classmethod
    def from_snapshot(
        cls,
        flight_debrief_id: str,
        mission_id: str,
        kill_lines: Iterable[ExpandedKillLine],
        status_rows: Iterable[PilotStatusRow],
    ) -> "KillEditBuffer":
        lines = [
            KillLine(
                key=line.key,
                pilot_id=line.pilot_id,
                unit_type_id=line.unit_type_id,
                display_name=line.display_name,
                type_name=line.type_name,
                kill_count=line.kill_count,
                kill_category=line.kill_category,
            )
            for line in kill_lines
        ]
        statuses: dict[str, PilotStatusEntry] = {}
        for row in status_rows:
            # Stored alive/recovered is indistinguishable from the save-time fallback.
            if row.pilot_status in DEFAULT_PILOT_STATUSES and row.aircraft_status in DEFAULT_AIRCRAFT_STATUSES:
                continue
            statuses[row.pilot_id] = PilotStatusEntry(row.pilot_status, row.aircraft_status)
        return cls(
            flight_debrief_id=flight_debrief_id,
            mission_id=mission_id,
            lines=lines,
            statuses=statuses,
            original_keys=[line.key for line in lines if line.key is not None],
            assessed_on_load=statuses.keys(),
            original_owners={line.key: line.pilot_id for line in lines if line.key is not None},
        )

    # ----- lookups -----

    def find(self, handle: LineHandle) -> Optional[KillLine]:
        for line in self.lines:
            if isinstance(handle, KillLineKey):
                if line.key == handle:
                    return line
            elif line.temp_id == handle:
                return line
        return None

    def find_for(self, pilot_id: str, unit_type_id: str) -> Optional[KillLine]:
        for line in self.lines:
            if line.pilot_id == pilot_id and line.unit_type_id == unit_type_id:
                return line
        return None

    def lines_for(self, pilot_id: str, kill_category: Optional[KillCategory] = None) -> list[KillLine]:
        return [
            line
            for line in self.lines
            if line.pilot_id == pilot_id and (kill_category is None or line.kill_category == kill_category)
        ]

    def status_for(self, pilot_id: str) -> PilotStatusEntry:
        return self.statuses.get(pilot_id) or PilotStatusEntry()

    def _index(self, handle: LineHandle) -> int:
        for idx, line in enumerate(self.lines):
            if (line.key == handle) if isinstance(handle, KillLineKey) else (line.temp_id == handle):
                return idx
        raise KeyError(f"No kill line {handle!r} in buffer")

    # ----- mutations -----

    def add(self, pilot_id: str, unit: UnitType) -> KillLine:
        """
        Count one more kill of `unit` for the pilot: bump the existing line or
        append a new one with a temporary id.
        """
        existing = self.find_for(pilot_id, unit.id)
        if existing is not None:
            return self.increment(existing.handle)

        line = KillLine(
            temp_id=f"{settings.debrief.temp_id_prefix}{uuid.uuid4().hex}",
            pilot_id=pilot_id,
            unit_type_id=unit.id,
            display_name=unit.display_name,
            type_name=unit.type_name,
            kill_count=1,
            kill_category=unit.kill_category,
        )
        self.lines.append(line)
        self.dirty = True
        return line

    def increment(self, handle: LineHandle) -> KillLine:
        idx = self._index(handle)
        line = self.lines[idx].model_copy(update={"kill_count": self.lines[idx].kill_count + 1})
        self.lines[idx] = line
        self.dirty = True
        return line

    def decrement(self, handle: LineHandle) -> Optional[KillLine]:
        """Decrease by one; a line at 1 is removed rather than held at zero."""
        idx = self._index(handle)
        line = self.lines[idx]
        self.dirty = True
        if line.kill_count <= 1:
            del self.lines[idx]
            return None
        line = line.model_copy(update={"kill_count": line.kill_count - 1})
        self.lines[idx] = line
        return line

    def remove(self, handle: LineHandle) -> KillLine:
        idx = self._index(handle)
        self.dirty = True
        return self.lines.pop(idx)

    def set_pilot_status(self, pilot_id: str, status: PilotStatus | str) -> None:
        entry = self.statuses.setdefault(pilot_id, PilotStatusEntry())
        entry.pilot_status = PilotStatus(status)
        self.dirty = True

    def set_aircraft_status(self, pilot_id: str, status: AircraftStatus | str) -> None:
        entry = self.statuses.setdefault(pilot_id, PilotStatusEntry())
        entry.aircraft_status = AircraftStatus(status)
        self.dirty = True

    # ----- save bookkeeping -----

    def current_keys(self) -> set[KillLineKey]:
        """Original keys still held by the pilot and unit they were persisted for."""
        return {
            line.key
            for line in self.lines
            if line.key is not None
            and line.key.unit_type_id == line.unit_type_id
            and self.original_owners.get(line.key, line.pilot_id) == line.pilot_id
        }

    def deleted_keys(self) -> list[KillLineKey]:
        current = self.current_keys()
        return sorted(
            (key for key in self.original_keys if key not in current),
            key=lambda k: (k.record_id, k.unit_type_id),
        )

    def mark_saved(self, flight_debrief_id: str, saved_lines: list[KillLine], assessed: Iterable[str]) -> None:
        self.flight_debrief_id = flight_debrief_id
        self.lines = saved_lines
        self.original_keys = {line.key for line in saved_lines if line.key is not None}
        self.original_owners = {line.key: line.pilot_id for line in saved_lines if line.key is not None}
        self.assessed_on_load = set(assessed)
        self.dirty = False
