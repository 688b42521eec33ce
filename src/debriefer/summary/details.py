from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Optional

from debriefer.config import settings
from debriefer.data.repositories import MissionDirectory, PilotDirectory
from debriefer.domain.models import (
    AircraftStatus,
    BucketExpansion,
    FlightDebrief,
    FlightRatingDetail,
    KillCategory,
    KillLedgerRecord,
    MissionSummaryDetails,
    PerformanceCategoryDetail,
    PilotDetail,
    PilotStatus,
    SquadronGroup,
    SummaryBucket,
    UnitKillDetail,
)
from debriefer.exceptions import UnknownBucketError
from debriefer.ledger.catalog import UnitCatalog
from debriefer.ledger.store import KillLedgerStore
from debriefer.summary.aggregator import assigned_slots, claim_slots

logger = logging.getLogger(__name__)

UNASSIGNED_GROUP = "unassigned"
PERFORMANCE_VALUES = ("SAT", "UNSAT", "UNASSESSED")


def parse_bucket(raw: str | SummaryBucket, categories: Optional[Iterable[str]] = None) -> SummaryBucket:
    """
    Parse `kind:value[:category]`. Pilot and aircraft values are status names,
    kill values are kill categories, performance values are SAT, UNSAT or
    UNASSESSED with an optional rating category.
    """
    if isinstance(raw, SummaryBucket):
        raw = raw.label
    parts = [p.strip() for p in str(raw).split(":")]
    if len(parts) < 2 or not parts[1]:
        raise UnknownBucketError(f"Malformed bucket '{raw}'", operation="parse_bucket", ids={"bucket": str(raw)})

    kind = parts[0].lower()
    value = parts[1]
    category = parts[2] if len(parts) > 2 and parts[2] else None

    def fail() -> UnknownBucketError:
        return UnknownBucketError(f"Unknown bucket '{raw}'", operation="parse_bucket", ids={"bucket": str(raw)})

    if len(parts) > 3 or (category and kind != "performance"):
        raise fail()
    if kind == "pilot":
        if value.lower() not in {s.value for s in PilotStatus}:
            raise fail()
        return SummaryBucket(kind="pilot", value=value.lower())
    if kind == "aircraft":
        if value.lower() not in {s.value for s in AircraftStatus}:
            raise fail()
        return SummaryBucket(kind="aircraft", value=value.lower())
    if kind == "kills":
        if value.upper() not in {c.value for c in KillCategory}:
            raise fail()
        return SummaryBucket(kind="kills", value=value.upper())
    if kind == "performance":
        known = set(categories if categories is not None else settings.debrief.performance_categories)
        if value.upper() not in PERFORMANCE_VALUES or (category and category not in known):
            raise fail()
        return SummaryBucket(kind="performance", value=value.upper(), category=category)
    raise fail()


def group_by_squadron(pilots: Iterable[PilotDetail]) -> list[SquadronGroup]:
    """Squadron groups ordered by designation; pilots without one go last under 'unassigned'."""
    groups: dict[str, SquadronGroup] = {}
    for pilot in pilots:
        key = pilot.squadron.id if pilot.squadron else UNASSIGNED_GROUP
        group = groups.get(key)
        if group is None:
            group = groups[key] = SquadronGroup(key=key, squadron=pilot.squadron)
        group.pilots.append(pilot)

    ordered = sorted(
        (g for g in groups.values() if g.key != UNASSIGNED_GROUP),
        key=lambda g: ((g.squadron.designation or g.squadron.name).casefold() if g.squadron else "", g.key),
    )
    if UNASSIGNED_GROUP in groups:
        ordered.append(groups[UNASSIGNED_GROUP])
    return ordered


class MissionSummaryDetailService:
    """
    Drill-down for the mission summary: re-reads the ledger and the flight
    debriefs and returns the pilots, units or ratings behind a bucket.
    """

    def __init__(
        self,
        missions: MissionDirectory,
        pilots: PilotDirectory,
        store: KillLedgerStore,
        catalog: UnitCatalog,
        performance_categories: Optional[dict[str, str]] = None,
    ):
        self.missions = missions
        self.pilots = pilots
        self.store = store
        self.catalog = catalog
        self.performance_categories = dict(performance_categories or settings.debrief.performance_categories)

    def get_details(self, mission_debriefing_id: str) -> MissionSummaryDetails:
        snapshot = self._load(mission_debriefing_id)
        pilot_ids, aircraft_ids = self._status_members(snapshot)
        directory = self._pilot_details(pid for _, pid in snapshot.slots)

        units = self._unit_kills(snapshot.records)
        return MissionSummaryDetails(
            mission_debriefing_id=mission_debriefing_id,
            pilot_status={status: [directory[pid] for pid in ids] for status, ids in pilot_ids.items()},
            aircraft_status={status: [directory[pid] for pid in ids] for status, ids in aircraft_ids.items()},
            kills={category.value: units.get(category, []) for category in KillCategory},
            performance=self._performance(snapshot.flights, snapshot.total_flights),
        )

    def expand(self, mission_debriefing_id: str, bucket: str | SummaryBucket) -> BucketExpansion:
        parsed = parse_bucket(bucket, self.performance_categories)
        snapshot = self._load(mission_debriefing_id)
        expansion = BucketExpansion(mission_debriefing_id=mission_debriefing_id, bucket=parsed.label)

        if parsed.kind in ("pilot", "aircraft"):
            pilot_ids, aircraft_ids = self._status_members(snapshot)
            members = (pilot_ids if parsed.kind == "pilot" else aircraft_ids).get(parsed.value, [])
            directory = self._pilot_details(members)
            expansion.groups = group_by_squadron(directory[pid] for pid in members)
            expansion.count = len(members)

        elif parsed.kind == "kills":
            category = KillCategory(parsed.value)
            units = self._unit_kills(snapshot.records).get(category, [])
            unit_ids = {u.unit_type_id for u in units}
            scorers = list(
                dict.fromkeys(r.pilot_id for r in snapshot.records if unit_ids.intersection(r.kills))
            )
            directory = self._pilot_details(scorers)
            expansion.units = units
            expansion.groups = group_by_squadron(directory[pid] for pid in scorers)
            expansion.count = sum(u.count for u in units)

        else:
            expansion.ratings = self._ratings(snapshot.flights, parsed.value, parsed.category)
            if parsed.value == "UNASSESSED":
                stats = self._performance(snapshot.flights, snapshot.total_flights)
                expansion.count = sum(
                    c.unassessed for c in stats if parsed.category is None or c.name == parsed.category
                )
            else:
                expansion.count = len(expansion.ratings)

        logger.debug(
            "summary bucket expanded",
            extra={"mission_debriefing_id": mission_debriefing_id, "bucket": parsed.label, "count": expansion.count},
        )
        return expansion

    # ----- helpers -----

    def _load(self, mission_debriefing_id: str) -> "_Snapshot":
        mission_id = self.missions.get_mission_id(mission_debriefing_id)
        assignments = self.missions.pilot_assignments(mission_id) if mission_id else {}
        flights = self.missions.list_flight_debriefs(mission_debriefing_id)
        return _Snapshot(
            flights=flights,
            records=self.store.list_by_flights(f.id for f in flights),
            slots=assigned_slots(assignments),
            total_flights=len(assignments),
        )

    @staticmethod
    def _status_members(snapshot: "_Snapshot") -> tuple[dict[str, list[str]], dict[str, list[str]]]:
        """
        Pilot ids per status, one entry per assigned slot as the summary counts
        them. Slots no record claimed are unaccounted.
        """
        pilot_ids: dict[str, list[str]] = {s.value: [] for s in PilotStatus}
        aircraft_ids: dict[str, list[str]] = {s.value: [] for s in AircraftStatus}
        claimed, unclaimed = claim_slots(snapshot.records, snapshot.flights, snapshot.slots)
        for record in claimed:
            pilot_ids[record.pilot_status.value].append(record.pilot_id)
            aircraft_ids[record.aircraft_status.value].append(record.pilot_id)
        for _, pilot_id in unclaimed:
            pilot_ids[PilotStatus.UNACCOUNTED.value].append(pilot_id)
            aircraft_ids[AircraftStatus.UNACCOUNTED.value].append(pilot_id)
        return pilot_ids, aircraft_ids

    def _pilot_details(self, pilot_ids: Iterable[str]) -> dict[str, PilotDetail]:
        ids = list(dict.fromkeys(pilot_ids))
        infos = self.pilots.get_pilots(ids)
        squadrons = self.pilots.squadrons_for_pilots(ids)
        details: dict[str, PilotDetail] = {}
        for pilot_id in ids:
            info = infos.get(pilot_id)
            if info is None:
                logger.warning("pilot not found in roster", extra={"pilot_id": pilot_id})
            details[pilot_id] = PilotDetail(
                id=pilot_id,
                callsign=info.callsign if info else "",
                board_number=info.board_number if info else "",
                squadron=squadrons.get(pilot_id),
            )
        return details

    def _unit_kills(self, records: list[KillLedgerRecord]) -> dict[KillCategory, list[UnitKillDetail]]:
        counts: dict[str, int] = defaultdict(int)
        for record in records:
            for unit_type_id, count in record.kills.items():
                counts[unit_type_id] += count

        units = self.catalog.find_many(counts)
        by_category: dict[KillCategory, list[UnitKillDetail]] = defaultdict(list)
        for unit_type_id, count in counts.items():
            unit = units.get(unit_type_id)
            if unit is None:
                logger.warning("kill references unknown unit type", extra={"unit_type_id": unit_type_id})
                continue
            by_category[unit.kill_category].append(
                UnitKillDetail(
                    unit_type_id=unit.id,
                    type_name=unit.type_name,
                    display_name=unit.display_name,
                    count=count,
                )
            )
        for details in by_category.values():
            details.sort(key=lambda d: (-d.count, d.display_name.casefold()))
        return dict(by_category)

    def _performance(self, flights: list[FlightDebrief], total_flights: int) -> list[PerformanceCategoryDetail]:
        stats = {
            key: PerformanceCategoryDetail(name=key, display_name=label)
            for key, label in self.performance_categories.items()
        }
        for flight in flights:
            for key, rating in flight.performance_ratings.items():
                entry = stats.get(key)
                if entry is None:
                    continue
                if rating.rating == "SAT":
                    entry.sats += 1
                else:
                    entry.unsats += 1
        for entry in stats.values():
            entry.unassessed = max(total_flights - (entry.sats + entry.unsats), 0)
        return list(stats.values())

    def _ratings(self, flights: list[FlightDebrief], value: str, category: Optional[str]) -> list[FlightRatingDetail]:
        keys = [category] if category else list(self.performance_categories)
        ratings: list[FlightRatingDetail] = []
        for flight in flights:
            for key in keys:
                rating = flight.performance_ratings.get(key)
                if value == "UNASSESSED":
                    if rating is not None:
                        continue
                elif rating is None or rating.rating != value:
                    continue
                ratings.append(
                    FlightRatingDetail(
                        flight_debrief_id=flight.id,
                        callsign=flight.callsign,
                        squadron_id=flight.squadron_id,
                        category=key,
                        rating=rating.rating if rating else None,
                        comments=rating.comments if rating else None,
                    )
                )
        return ratings


@dataclass
class _Snapshot:
    flights: list[FlightDebrief]
    records: list[KillLedgerRecord]
    slots: list[tuple[str, str]]
    total_flights: int
