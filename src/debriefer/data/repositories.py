from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime
from typing import Any, Iterable, Optional, Protocol

from debriefer.config import settings
from debriefer.data.storage import Database
from debriefer.domain.models import FlightDebrief, PerformanceRating, PilotInfo, Squadron


class PilotDirectory(Protocol):
    def pilot_exists(self, pilot_id: str) -> bool:
        ...

    def get_pilots(self, pilot_ids: Iterable[str]) -> dict[str, PilotInfo]:
        ...

    def squadrons_for_pilots(self, pilot_ids: Iterable[str]) -> dict[str, Squadron]:
        """Current squadron affiliation; pilots without one are absent from the result."""
        ...


class MissionDirectory(Protocol):
    def get_mission_id(self, mission_debriefing_id: str) -> Optional[str]:
        ...

    def pilot_assignments(self, mission_id: str) -> dict[str, list[dict[str, Any]]]:
        ...

    def list_flight_debriefs(self, mission_debriefing_id: str) -> list[FlightDebrief]:
        ...

    def get_flight_debrief(self, flight_debrief_id: str) -> Optional[FlightDebrief]:
        ...


class BaseRepository:
    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now() -> str:
        return datetime.now(UTC).isoformat()

    @staticmethod
    def _safe_json(raw: Optional[str], fallback: Any) -> Any:
        if raw is None:
            return fallback
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return fallback

    @staticmethod
    def _placeholders(values: list[Any]) -> str:
        return ",".join("?" for _ in values)


class PilotRepository(BaseRepository):
    """
    Pilots, squadrons and squadron affiliation.
    Tables: 'pilots', 'squadrons', 'pilot_squadrons'
    """

    def add_pilot(self, callsign: str, board_number: str = "", pilot_id: Optional[str] = None) -> PilotInfo:
        pilot = PilotInfo(id=pilot_id or self._new_id(), callsign=callsign, board_number=str(board_number))
        with self.db._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO pilots (id, callsign, board_number) VALUES (?, ?, ?)",
                (pilot.id, pilot.callsign, pilot.board_number),
            )
            conn.commit()
        return pilot

    def add_squadron(self, squadron: Squadron) -> Squadron:
        with self.db._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO squadrons (id, designation, name, tail_code, insignia_url)
                VALUES (?, ?, ?, ?, ?)
                """,
                (squadron.id, squadron.designation, squadron.name, squadron.tail_code, squadron.insignia_url),
            )
            conn.commit()
        return squadron

    def assign_squadron(self, pilot_id: str, squadron_id: str) -> None:
        with self.db._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO pilot_squadrons (pilot_id, squadron_id) VALUES (?, ?)",
                (pilot_id, squadron_id),
            )
            conn.commit()

    def pilot_exists(self, pilot_id: str) -> bool:
        with self.db._connect() as conn:
            row = conn.execute("SELECT 1 FROM pilots WHERE id = ?", (pilot_id,)).fetchone()
        return row is not None

    def get_pilots(self, pilot_ids: Iterable[str]) -> dict[str, PilotInfo]:
        ids = list(dict.fromkeys(pilot_ids))
        if not ids:
            return {}
        with self.db._connect() as conn:
            rows = conn.execute(
                f"SELECT id, callsign, board_number FROM pilots WHERE id IN ({self._placeholders(ids)})",
                ids,
            ).fetchall()
        return {
            row["id"]: PilotInfo(id=row["id"], callsign=row["callsign"], board_number=str(row["board_number"] or ""))
            for row in rows
        }

    def squadrons_for_pilots(self, pilot_ids: Iterable[str]) -> dict[str, Squadron]:
        ids = list(dict.fromkeys(pilot_ids))
        if not ids:
            return {}
        with self.db._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT ps.pilot_id, s.id, s.designation, s.name, s.tail_code, s.insignia_url
                FROM pilot_squadrons ps
                JOIN squadrons s ON s.id = ps.squadron_id
                WHERE ps.pilot_id IN ({self._placeholders(ids)})
                """,
                ids,
            ).fetchall()
        return {
            row["pilot_id"]: Squadron(
                id=row["id"],
                designation=row["designation"] or "",
                name=row["name"] or "",
                tail_code=row["tail_code"],
                insignia_url=row["insignia_url"],
            )
            for row in rows
        }

    def flight_roster(self, assignments: list[dict[str, Any]]) -> list[PilotInfo]:
        """
        Resolve one flight's assigned slots into pilots, in tile display order
        (-2, -1, -3, -4, then anything else).
        """
        dash_by_pilot = {
            str(slot["pilot_id"]): str(slot.get("dash_number") or "1")
            for slot in assignments
            if isinstance(slot, dict) and slot.get("pilot_id")
        }
        pilots = self.get_pilots(dash_by_pilot.keys())
        roster = [
            pilot.model_copy(update={"dash_number": dash_by_pilot[pilot_id]})
            for pilot_id, pilot in pilots.items()
        ]
        order = settings.debrief.dash_display_order
        roster.sort(key=lambda p: (order.index(p.dash_number) if p.dash_number in order else len(order), p.dash_number or ""))
        return roster


class MissionRepository(BaseRepository):
    """
    Missions, mission debriefs and flight debriefs.
    Tables: 'missions', 'mission_debriefings', 'flight_debriefs'
    """

    def create_mission(
        self,
        name: str,
        pilot_assignments: dict[str, list[dict[str, Any]]],
        mission_data: Optional[dict[str, Any]] = None,
        mission_id: Optional[str] = None,
    ) -> str:
        mission_id = mission_id or self._new_id()
        with self.db._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO missions (id, name, pilot_assignments_json, miz_data_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    mission_id,
                    name,
                    json.dumps(pilot_assignments, ensure_ascii=False),
                    json.dumps(mission_data, ensure_ascii=False) if mission_data is not None else None,
                    self._now(),
                ),
            )
            conn.commit()
        return mission_id

    def create_mission_debrief(self, mission_id: str, debrief_id: Optional[str] = None) -> str:
        debrief_id = debrief_id or self._new_id()
        with self.db._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO mission_debriefings (id, mission_id, created_at) VALUES (?, ?, ?)",
                (debrief_id, mission_id, self._now()),
            )
            conn.commit()
        return debrief_id

    def create_flight_debrief(
        self,
        mission_debriefing_id: str,
        flight_id: str,
        callsign: str = "",
        squadron_id: Optional[str] = None,
        performance_ratings: Optional[dict[str, dict[str, Any]]] = None,
        flight_debrief_id: Optional[str] = None,
    ) -> FlightDebrief:
        flight = FlightDebrief(
            id=flight_debrief_id or self._new_id(),
            mission_debriefing_id=mission_debriefing_id,
            flight_id=flight_id,
            callsign=callsign,
            squadron_id=squadron_id,
            performance_ratings=performance_ratings or {},
        )
        with self.db._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO flight_debriefs
                    (id, mission_debriefing_id, flight_id, callsign, squadron_id, performance_ratings_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    flight.id,
                    flight.mission_debriefing_id,
                    flight.flight_id,
                    flight.callsign,
                    flight.squadron_id,
                    self._ratings_json(flight.performance_ratings),
                    flight.created_at.isoformat(),
                ),
            )
            conn.commit()
        return flight

    def set_performance_ratings(self, flight_debrief_id: str, ratings: dict[str, dict[str, Any]]) -> None:
        parsed = {key: PerformanceRating.model_validate(value) for key, value in ratings.items()}
        with self.db._connect() as conn:
            conn.execute(
                "UPDATE flight_debriefs SET performance_ratings_json = ? WHERE id = ?",
                (self._ratings_json(parsed), flight_debrief_id),
            )
            conn.commit()

    def get_mission_id(self, mission_debriefing_id: str) -> Optional[str]:
        with self.db._connect() as conn:
            row = conn.execute(
                "SELECT mission_id FROM mission_debriefings WHERE id = ?",
                (mission_debriefing_id,),
            ).fetchone()
        return row["mission_id"] if row else None

    def pilot_assignments(self, mission_id: str) -> dict[str, list[dict[str, Any]]]:
        with self.db._connect() as conn:
            row = conn.execute("SELECT pilot_assignments_json FROM missions WHERE id = ?", (mission_id,)).fetchone()
        if not row:
            return {}
        data = self._safe_json(row["pilot_assignments_json"], {})
        if not isinstance(data, dict):
            return {}
        return {str(flight_id): slots for flight_id, slots in data.items() if isinstance(slots, list)}

    def mission_data(self, mission_id: str) -> Optional[dict[str, Any]]:
        with self.db._connect() as conn:
            row = conn.execute("SELECT miz_data_json FROM missions WHERE id = ?", (mission_id,)).fetchone()
        if not row:
            return None
        data = self._safe_json(row["miz_data_json"], None)
        return data if isinstance(data, dict) else None

    def list_flight_debriefs(self, mission_debriefing_id: str) -> list[FlightDebrief]:
        with self.db._connect() as conn:
            rows = conn.execute(
                """
                SELECT id, mission_debriefing_id, flight_id, callsign, squadron_id, performance_ratings_json, created_at
                FROM flight_debriefs
                WHERE mission_debriefing_id = ?
                ORDER BY created_at, id
                """,
                (mission_debriefing_id,),
            ).fetchall()
        return [self._to_flight(row) for row in rows]

    def get_flight_debrief(self, flight_debrief_id: str) -> Optional[FlightDebrief]:
        with self.db._connect() as conn:
            row = conn.execute(
                """
                SELECT id, mission_debriefing_id, flight_id, callsign, squadron_id, performance_ratings_json, created_at
                FROM flight_debriefs WHERE id = ?
                """,
                (flight_debrief_id,),
            ).fetchone()
        return self._to_flight(row) if row else None

    def _to_flight(self, row) -> FlightDebrief:
        raw = self._safe_json(row["performance_ratings_json"], {})
        ratings: dict[str, PerformanceRating] = {}
        if isinstance(raw, dict):
            for key, value in raw.items():
                if isinstance(value, dict) and value.get("rating"):
                    try:
                        ratings[key] = PerformanceRating.model_validate(value)
                    except ValueError:
                        continue
        return FlightDebrief(
            id=row["id"],
            mission_debriefing_id=row["mission_debriefing_id"],
            flight_id=row["flight_id"],
            callsign=row["callsign"] or "",
            squadron_id=row["squadron_id"],
            performance_ratings=ratings,
            created_at=row["created_at"],
        )

    @staticmethod
    def _ratings_json(ratings: dict[str, PerformanceRating]) -> str:
        return json.dumps(
            {key: rating.model_dump(exclude_none=True) for key, rating in ratings.items()},
            ensure_ascii=False,
        )
