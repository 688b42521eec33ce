import pytest

from debriefer.domain.models import (
    AircraftStatus,
    ExpandedKillLine,
    KillCategory,
    KillLineKey,
    PilotStatus,
    PilotStatusRow,
)
from debriefer.ledger import KillEditBuffer, PilotStatusEntry


def _persisted(record_id, pilot_id, unit_type_id, count, pilot_status="alive", aircraft_status="recovered"):
    return ExpandedKillLine(
        key=KillLineKey(record_id=record_id, unit_type_id=unit_type_id),
        flight_debrief_id="fd-a",
        pilot_id=pilot_id,
        mission_id="m-1",
        unit_type_id=unit_type_id,
        kill_count=count,
        display_name=unit_type_id.upper(),
        type_name=unit_type_id,
        kill_category=KillCategory.A2A,
        pilot_status=pilot_status,
        aircraft_status=aircraft_status,
        created_at="2026-01-01T00:00:00+00:00",
    )


def test_add_twice_increments_single_line(catalog):
    buffer = KillEditBuffer("fd-a", "m-1")
    unit = catalog.get("u-mig29")

    first = buffer.add("p1", unit)
    second = buffer.add("p1", unit)

    assert len(buffer.lines) == 1
    assert first.temp_id.startswith("temp-")
    assert second.temp_id == first.temp_id
    assert second.kill_count == 2
    assert second.display_name == "MiG-29S Fulcrum"
    assert buffer.dirty


def test_same_unit_for_other_pilot_is_separate_line(catalog):
    buffer = KillEditBuffer("fd-a", "m-1")
    buffer.add("p1", catalog.get("u-mig29"))
    buffer.add("p2", catalog.get("u-mig29"))

    assert [(l.pilot_id, l.kill_count) for l in buffer.lines] == [("p1", 1), ("p2", 1)]


def test_decrement_at_one_removes_line(catalog):
    buffer = KillEditBuffer("fd-a", "m-1")
    line = buffer.add("p1", catalog.get("u-mig29"))
    buffer.increment(line.handle)

    assert buffer.decrement(line.handle).kill_count == 1
    assert buffer.decrement(line.handle) is None
    assert buffer.lines == []
    with pytest.raises(KeyError):
        buffer.decrement(line.handle)


def test_statuses_are_independent_of_lines():
    buffer = KillEditBuffer("fd-a", "m-1")
    buffer.set_pilot_status("p2", "kia")
    buffer.set_aircraft_status("p2", AircraftStatus.DESTROYED)

    assert buffer.lines_for("p2") == []
    entry = buffer.status_for("p2")
    assert (entry.pilot_status, entry.aircraft_status) == (PilotStatus.KIA, AircraftStatus.DESTROYED)
    assert buffer.status_for("p1").is_unassessed


def test_from_snapshot_tracks_keys_and_assessed_pilots():
    lines = [_persisted("r1", "p1", "u-mig29", 2), _persisted("r2", "p2", "u-t72", 1, "kia", "destroyed")]
    rows = [
        PilotStatusRow(record_id="r1", pilot_id="p1", pilot_status="alive", aircraft_status="recovered", has_kills=True),
        PilotStatusRow(record_id="r2", pilot_id="p2", pilot_status="kia", aircraft_status="destroyed", has_kills=True),
        PilotStatusRow(record_id="r3", pilot_id="p3", pilot_status="mia", aircraft_status="recovered"),
    ]

    buffer = KillEditBuffer.from_snapshot("fd-a", "m-1", lines, rows)

    assert buffer.original_keys == {
        KillLineKey(record_id="r1", unit_type_id="u-mig29"),
        KillLineKey(record_id="r2", unit_type_id="u-t72"),
    }
    assert set(buffer.statuses) == {"p2", "p3"}
    assert buffer.assessed_on_load == {"p2", "p3"}
    assert not buffer.dirty


def test_deleted_keys_are_original_minus_current(catalog):
    lines = [_persisted("r1", "p1", "u-mig29", 1), _persisted("r1", "p1", "u-su27", 1), _persisted("r2", "p2", "u-t72", 1)]
    buffer = KillEditBuffer.from_snapshot("fd-a", "m-1", lines, [])

    buffer.remove(KillLineKey(record_id="r1", unit_type_id="u-mig29"))
    buffer.decrement(KillLineKey(record_id="r2", unit_type_id="u-t72"))
    added = buffer.add("p3", catalog.get("u-ship"))

    assert buffer.find(added.temp_id) is added
    assert buffer.find(KillLineKey(record_id="r1", unit_type_id="u-su27")).kill_count == 1
    assert buffer.find(KillLineKey(record_id="r1", unit_type_id="u-mig29")) is None
    assert buffer.deleted_keys() == [
        KillLineKey(record_id="r1", unit_type_id="u-mig29"),
        KillLineKey(record_id="r2", unit_type_id="u-t72"),
    ]


def test_status_entry_for_persistence():
    assert PilotStatusEntry().for_persistence() == (PilotStatus.ALIVE, AircraftStatus.RECOVERED)
    assert PilotStatusEntry(PilotStatus.KIA, AircraftStatus.DOWN).for_persistence() == (
        PilotStatus.KIA,
        AircraftStatus.DAMAGED,
    )
    assert PilotStatusEntry(PilotStatus.UNACCOUNTED, AircraftStatus.DESTROYED).for_persistence() == (
        PilotStatus.ALIVE,
        AircraftStatus.DESTROYED,
    )


def test_add_carries_unit_category(catalog):
    buffer = KillEditBuffer("fd-a", "m-1")
    buffer.add("p1", catalog.get("u-mig29"))
    buffer.add("p1", catalog.get("u-ship"))

    assert [l.unit_type_id for l in buffer.lines_for("p1", KillCategory.A2S)] == ["u-ship"]
    assert buffer.find_for("p1", "u-ship").display_name == "Molniya Corvette"


def test_line_moved_to_other_pilot_drops_its_key():
    buffer = KillEditBuffer.from_snapshot("fd-a", "m-1", [_persisted("r1", "p1", "u-mig29", 1)], [])
    key = KillLineKey(record_id="r1", unit_type_id="u-mig29")
    buffer.lines[0] = buffer.lines[0].model_copy(update={"pilot_id": "p2"})

    assert buffer.original_owners == {key: "p1"}
    assert buffer.current_keys() == set()
    assert buffer.deleted_keys() == [key]
