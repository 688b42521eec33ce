from types import SimpleNamespace

import pytest

from debriefer.data.repositories import MissionRepository, PilotRepository
from debriefer.data.storage import Database
from debriefer.domain.models import KillCategory, Squadron, UnitCategory, UnitType
from debriefer.ledger import KillLedgerStore, KillTrackingService, UnitCatalog, UnitPoolManager

UNITS = [
    UnitType(id="u-mig29", type_name="MiG-29S", display_name="MiG-29S Fulcrum", category=UnitCategory.AIRPLANE, kill_category=KillCategory.A2A),
    UnitType(id="u-su27", type_name="Su-27", display_name="Su-27 Flanker", category=UnitCategory.AIRPLANE, kill_category=KillCategory.A2A),
    UnitType(id="u-t72", type_name="T-72B", display_name="T-72B", category=UnitCategory.GROUND_UNIT, sub_category="Tank", kill_category=KillCategory.A2G),
    UnitType(id="u-sa11", type_name="SA-11 Buk LN 9A310M1", display_name="SA-11 Launcher", category=UnitCategory.GROUND_UNIT, kill_category=KillCategory.A2G),
    UnitType(id="u-ship", type_name="MOLNIYA", display_name="Molniya Corvette", category=UnitCategory.SHIP, kill_category=KillCategory.A2S),
    UnitType(id="u-zsu", type_name="ZSU-23-4 Shilka", display_name="ZSU-23-4", category=UnitCategory.GROUND_UNIT, kill_category=KillCategory.A2G, is_active=False),
]

# Two four-ship flights; p9 exists but flies in neither.
ASSIGNMENTS = {
    "flight-a": [
        {"pilot_id": "p1", "dash_number": "1"},
        {"pilot_id": "p2", "dash_number": "2"},
        {"pilot_id": "p3", "dash_number": "3"},
        {"pilot_id": "p4", "dash_number": "4"},
    ],
    "flight-b": [
        {"pilot_id": "p5", "dash_number": "1"},
        {"pilot_id": "p6", "dash_number": "2"},
        {"pilot_id": "p7", "dash_number": "3"},
        {"pilot_id": "p8", "dash_number": "4"},
    ],
}

MISSION_DATA = {
    "coalition": {
        "red": {
            "country": {
                "1": {
                    "name": "Russia",
                    "plane": {"group": [{"units": [{"type": "MiG-29S"}, {"type": "MiG-29S"}]}]},
                    "vehicle": {"group": {"1": {"units": {"1": {"type": "T-72B"}, "2": {"type": "ZSU-23-4 Shilka"}}}}},
                },
                "2": {
                    "name": "Iran",
                    "ship": {"group": [{"units": [{"type": "MOLNIYA"}]}]},
                    "static": {"group": [{"units": [{"type": "Not In Catalog"}]}]},
                },
            }
        },
        "blue": {
            "country": [{"plane": {"group": [{"units": [{"type": "FA-18C_hornet"}]}]}}],
        },
    }
}


@pytest.fixture
def db(tmp_path):
    return Database(tmp_path / "debriefer.db")


@pytest.fixture
def catalog(db):
    catalog = UnitCatalog(db)
    catalog.seed(UNITS)
    return catalog


@pytest.fixture
def pilots(db):
    repo = PilotRepository(db)
    callsigns = ["Maverick", "Goose", "Iceman", "Slider", "Viper", "Jester", "Hollywood", "Wolfman", "Merlin"]
    for idx, callsign in enumerate(callsigns, start=1):
        repo.add_pilot(callsign, board_number=str(100 + idx), pilot_id=f"p{idx}")
    repo.add_squadron(Squadron(id="sq-b", designation="VF-31", name="Tomcatters"))
    repo.add_squadron(Squadron(id="sq-a", designation="VF-11", name="Red Rippers"))
    for pilot_id in ("p1", "p2", "p3"):
        repo.assign_squadron(pilot_id, "sq-a")
    for pilot_id in ("p5", "p6"):
        repo.assign_squadron(pilot_id, "sq-b")
    return repo


@pytest.fixture
def missions(db):
    return MissionRepository(db)


@pytest.fixture
def mission(missions, pilots):
    mission_id = missions.create_mission("Operation Sandstorm", ASSIGNMENTS, MISSION_DATA, mission_id="m-1")
    debrief_id = missions.create_mission_debrief(mission_id, debrief_id="md-1")
    flight_a = missions.create_flight_debrief(debrief_id, "flight-a", callsign="Viper 1", squadron_id="sq-a", flight_debrief_id="fd-a")
    flight_b = missions.create_flight_debrief(debrief_id, "flight-b", callsign="Hawk 1", squadron_id="sq-b", flight_debrief_id="fd-b")
    return SimpleNamespace(mission_id=mission_id, debrief_id=debrief_id, flight_a=flight_a, flight_b=flight_b)


@pytest.fixture
def store(db, catalog, pilots):
    return KillLedgerStore(db, catalog, pilots)


@pytest.fixture
def pool(db, catalog):
    return UnitPoolManager(db, catalog)


@pytest.fixture
def tracking(store, catalog, pool, missions, pilots):
    return KillTrackingService(store=store, catalog=catalog, pool=pool, missions=missions, pilots=pilots)
