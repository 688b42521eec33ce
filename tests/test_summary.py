from debriefer.summary import MissionSummaryAggregator


def _aggregator(missions, store, catalog, **kwargs):
    return MissionSummaryAggregator(missions, store, catalog, **kwargs)


def _assert_conserved(summary):
    assert summary.pilot_status.total == summary.total_slots
    assert summary.aircraft_status.total == summary.total_slots


def test_empty_debrief_is_all_unaccounted(missions, store, catalog, mission):
    summary = _aggregator(missions, store, catalog).get_mission_summary(mission.debrief_id)

    assert summary.mission_id == mission.mission_id
    assert summary.total_slots == 8
    assert summary.total_flights == 2
    assert summary.pilot_status.unaccounted == 8
    assert summary.aircraft_status.unaccounted == 8
    assert summary.kills.total == 0
    assert summary.performance.total_possible == 16
    assert summary.performance.unassessed == 16
    _assert_conserved(summary)


def test_explicit_statuses_move_out_of_unaccounted(missions, store, catalog, mission):
    mid = mission.mission_id
    store.save_pilot_status_only("fd-a", "p1", mid, "alive", "recovered")
    store.save_pilot_status_only("fd-a", "p2", mid, "alive", "recovered")
    store.save_pilot_status_only("fd-b", "p5", mid, "kia", "destroyed")

    summary = _aggregator(missions, store, catalog).get_mission_summary(mission.debrief_id)

    assert (summary.pilot_status.alive, summary.pilot_status.kia, summary.pilot_status.unaccounted) == (2, 1, 5)
    assert summary.pilot_status.mia == 0
    assert (summary.aircraft_status.recovered, summary.aircraft_status.destroyed) == (2, 1)
    assert summary.aircraft_status.unaccounted == 5
    _assert_conserved(summary)


def test_kill_totals_by_category(missions, store, catalog, mission):
    mid = mission.mission_id
    store.record_unit_kill("fd-a", "p1", mid, "u-mig29", 2)
    store.record_unit_kill("fd-a", "p1", mid, "u-t72", 1)
    store.record_unit_kill("fd-a", "p2", mid, "u-sa11", 4, "mia", "down")
    store.record_unit_kill("fd-b", "p6", mid, "u-ship", 1)

    summary = _aggregator(missions, store, catalog).get_mission_summary(mission.debrief_id)

    assert (summary.kills.a2a, summary.kills.a2g, summary.kills.a2s) == (2, 5, 1)
    assert summary.kills.total == 8
    assert summary.pilot_status.mia == 1
    assert summary.aircraft_status.damaged == 1
    assert summary.aircraft_status.down == 0
    _assert_conserved(summary)


def test_unassigned_pilot_counts_kills_but_not_slots(missions, store, catalog, mission):
    store.record_unit_kill("fd-a", "p9", mission.mission_id, "u-mig29", 1, "kia", "destroyed")

    summary = _aggregator(missions, store, catalog).get_mission_summary(mission.debrief_id)

    assert summary.kills.a2a == 1
    assert summary.pilot_status.kia == 0
    assert summary.pilot_status.unaccounted == 8
    _assert_conserved(summary)


def test_pilot_in_wrong_flight_still_claims_own_slot(missions, store, catalog, mission):
    # p5 flies in flight-b but was recorded under flight-a's debrief.
    store.save_pilot_status_only("fd-a", "p5", mission.mission_id, "mia", "destroyed")

    summary = _aggregator(missions, store, catalog).get_mission_summary(mission.debrief_id)

    assert summary.pilot_status.mia == 1
    assert summary.pilot_status.unaccounted == 7
    _assert_conserved(summary)


def test_performance_uses_first_rated_flight_category_count(missions, store, catalog, mission):
    missions.set_performance_ratings(
        "fd-a",
        {
            "mission_planning": {"rating": "SAT"},
            "tactical_execution": {"rating": "sat", "comments": "clean intercept"},
            "weapons_employment": {"rating": "unsat"},
        },
    )

    inferred = _aggregator(missions, store, catalog).get_mission_summary(mission.debrief_id)
    assert (inferred.performance.sats, inferred.performance.unsats) == (2, 1)
    assert inferred.performance.total == 3
    assert inferred.performance.total_possible == 6
    assert inferred.performance.unassessed == 3

    configured = _aggregator(missions, store, catalog, infer_category_count=False).get_mission_summary(mission.debrief_id)
    assert configured.performance.total_possible == 16
    assert configured.performance.unassessed == 13


def test_unrated_debrief_uses_configured_category_count(missions, store, catalog, mission):
    summary = _aggregator(missions, store, catalog, default_category_count=5).get_mission_summary(mission.debrief_id)

    assert summary.performance.total_possible == 10
    assert summary.performance.unassessed == 10


def test_unknown_debrief_renders_defaults(missions, store, catalog):
    summary = _aggregator(missions, store, catalog).get_mission_summary("md-unknown")

    assert summary.mission_id is None
    assert summary.total_slots == 0
    assert summary.pilot_status.total == 0
    assert summary.kills.total == 0
