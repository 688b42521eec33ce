import pytest

from debriefer.domain.models import AircraftStatus, PilotDetail, PilotStatus, Squadron, SummaryBucket
from debriefer.exceptions import UnknownBucketError
from debriefer.summary import MissionSummaryAggregator, MissionSummaryDetailService, group_by_squadron, parse_bucket


@pytest.fixture
def details(missions, pilots, store, catalog):
    return MissionSummaryDetailService(missions, pilots, store, catalog)


@pytest.fixture
def debriefed(store, missions, mission):
    mid = mission.mission_id
    store.record_unit_kill("fd-a", "p1", mid, "u-mig29", 2)
    store.record_unit_kill("fd-a", "p1", mid, "u-t72", 1)
    store.record_unit_kill("fd-a", "p2", mid, "u-t72", 3, "kia", "destroyed")
    store.save_pilot_status_only("fd-a", "p4", mid, "kia", "destroyed")
    store.record_unit_kill("fd-b", "p5", mid, "u-sa11", 1)
    store.save_pilot_status_only("fd-b", "p6", mid, "kia", "damaged")
    missions.set_performance_ratings(
        "fd-a",
        {"weapons_employment": {"rating": "UNSAT", "comments": "late release"}, "mission_planning": {"rating": "SAT"}},
    )
    missions.set_performance_ratings("fd-b", {"weapons_employment": {"rating": "SAT"}})
    return mission


def test_parse_bucket():
    assert parse_bucket("pilot:KIA") == SummaryBucket(kind="pilot", value="kia")
    assert parse_bucket("aircraft:down").value == "down"
    assert parse_bucket("kills:a2g").value == "A2G"
    bucket = parse_bucket("performance:unsat:weapons_employment")
    assert (bucket.value, bucket.category) == ("UNSAT", "weapons_employment")
    assert bucket.label == "performance:UNSAT:weapons_employment"


@pytest.mark.parametrize(
    "raw",
    ["pilot", "pilot:zombie", "kills:A2X", "performance:MEH", "performance:SAT:nope", "pilot:kia:extra", "fuel:low"],
)
def test_parse_bucket_rejects_unknown(raw):
    with pytest.raises(UnknownBucketError):
        parse_bucket(raw)


def test_group_by_squadron_puts_unassigned_last():
    sq_b = Squadron(id="sq-b", designation="VF-31")
    sq_a = Squadron(id="sq-a", designation="VF-11")
    groups = group_by_squadron(
        [
            PilotDetail(id="p9"),
            PilotDetail(id="p5", squadron=sq_b),
            PilotDetail(id="p1", squadron=sq_a),
            PilotDetail(id="p2", squadron=sq_a),
        ]
    )

    assert [g.key for g in groups] == ["sq-a", "sq-b", "unassigned"]
    assert [p.id for p in groups[0].pilots] == ["p1", "p2"]
    assert groups[2].squadron is None


def test_expand_kia_groups_by_squadron(details, debriefed):
    expansion = details.expand(debriefed.debrief_id, "pilot:kia")

    assert expansion.count == 3
    assert [(g.key, [p.id for p in g.pilots]) for g in expansion.groups] == [
        ("sq-a", ["p2"]),
        ("sq-b", ["p6"]),
        ("unassigned", ["p4"]),
    ]
    assert expansion.groups[0].pilots[0].callsign == "Goose"


def test_expand_unaccounted_includes_pilots_without_records(details, debriefed):
    expansion = details.expand(debriefed.debrief_id, "pilot:unaccounted")

    ids = sorted(p.id for g in expansion.groups for p in g.pilots)
    assert ids == ["p3", "p7", "p8"]
    assert expansion.count == 3


def test_expand_aircraft_bucket(details, debriefed):
    expansion = details.expand(debriefed.debrief_id, SummaryBucket(kind="aircraft", value="destroyed"))

    assert sorted(p.id for g in expansion.groups for p in g.pilots) == ["p2", "p4"]


def test_expand_kills_lists_units_by_count(details, debriefed):
    expansion = details.expand(debriefed.debrief_id, "kills:A2G")

    assert [(u.unit_type_id, u.count) for u in expansion.units] == [("u-t72", 4), ("u-sa11", 1)]
    assert expansion.count == 5
    assert sorted(p.id for g in expansion.groups for p in g.pilots) == ["p1", "p2", "p5"]


def test_expand_performance_ratings(details, debriefed):
    unsat = details.expand(debriefed.debrief_id, "performance:UNSAT:weapons_employment")
    assert unsat.count == 1
    assert unsat.ratings[0].flight_debrief_id == "fd-a"
    assert unsat.ratings[0].comments == "late release"

    sat = details.expand(debriefed.debrief_id, "performance:SAT")
    assert sorted((r.flight_debrief_id, r.category) for r in sat.ratings) == [
        ("fd-a", "mission_planning"),
        ("fd-b", "weapons_employment"),
    ]

    unassessed = details.expand(debriefed.debrief_id, "performance:UNASSESSED:mission_planning")
    assert unassessed.count == 1
    assert [r.flight_debrief_id for r in unassessed.ratings] == ["fd-b"]
    assert unassessed.ratings[0].rating is None


def test_get_details(details, debriefed):
    result = details.get_details(debriefed.debrief_id)

    assert sorted(p.id for p in result.pilot_status["alive"]) == ["p1", "p5"]
    assert sorted(p.id for p in result.pilot_status["kia"]) == ["p2", "p4", "p6"]
    assert sorted(p.id for p in result.pilot_status["unaccounted"]) == ["p3", "p7", "p8"]
    assert sorted(p.id for p in result.aircraft_status["damaged"]) == ["p6"]
    assert [u.unit_type_id for u in result.kills["A2A"]] == ["u-mig29"]
    assert result.kills["A2S"] == []

    assert len(result.performance) == 8
    by_name = {c.name: c for c in result.performance}
    weapons = by_name["weapons_employment"]
    assert (weapons.sats, weapons.unsats, weapons.unassessed) == (1, 1, 0)
    assert weapons.display_name == "Weapons Employment"
    assert by_name["mission_planning"].unassessed == 1
    assert by_name["debrief_participation"].unassessed == 2


def test_unknown_bucket_is_rejected(details, debriefed):
    with pytest.raises(UnknownBucketError):
        details.expand(debriefed.debrief_id, "pilot:ejected")


def test_status_buckets_match_summary_counts(details, debriefed, missions, store, catalog):
    # p9 is not assigned to any flight; the summary leaves it out of the slots.
    store.record_unit_kill("fd-a", "p9", debriefed.mission_id, "u-mig29", 1, "kia", "destroyed")
    summary = MissionSummaryAggregator(missions, store, catalog).get_mission_summary(debriefed.debrief_id)

    for status in PilotStatus:
        expansion = details.expand(debriefed.debrief_id, f"pilot:{status.value}")
        assert expansion.count == getattr(summary.pilot_status, status.value)
    for status in AircraftStatus:
        expansion = details.expand(debriefed.debrief_id, f"aircraft:{status.value}")
        assert expansion.count == getattr(summary.aircraft_status, status.value)

    kia = details.expand(debriefed.debrief_id, "pilot:kia")
    assert "p9" not in {p.id for g in kia.groups for p in g.pilots}
