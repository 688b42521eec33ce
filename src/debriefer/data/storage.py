import sqlite3
from pathlib import Path


class Database:
    """
    Thin wrapper over sqlite3 for debrief persistence.
    Keeps schema creation in one place; stores and repositories share it.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self):
        conn = sqlite3.connect(self.db_path, detect_types=sqlite3.PARSE_DECLTYPES, timeout=10)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self):
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS unit_types (
                    id TEXT PRIMARY KEY,
                    type_name TEXT NOT NULL UNIQUE,
                    display_name TEXT NOT NULL,
                    category TEXT NOT NULL,
                    sub_category TEXT,
                    kill_category TEXT NOT NULL,
                    source TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS mission_unit_pool (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    mission_debriefing_id TEXT NOT NULL,
                    unit_type_id TEXT NOT NULL,
                    kill_category TEXT NOT NULL,
                    added_at TEXT NOT NULL,
                    UNIQUE(mission_debriefing_id, unit_type_id)
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS pilot_kills (
                    id TEXT PRIMARY KEY,
                    flight_debrief_id TEXT NOT NULL,
                    pilot_id TEXT NOT NULL,
                    mission_id TEXT NOT NULL,
                    kills_detail_json TEXT NOT NULL,
                    pilot_status TEXT NOT NULL,
                    aircraft_status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(flight_debrief_id, pilot_id, mission_id)
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS missions (
                    id TEXT PRIMARY KEY,
                    name TEXT,
                    pilot_assignments_json TEXT NOT NULL DEFAULT '{}',
                    miz_data_json TEXT,
                    created_at TEXT NOT NULL
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS mission_debriefings (
                    id TEXT PRIMARY KEY,
                    mission_id TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS flight_debriefs (
                    id TEXT PRIMARY KEY,
                    mission_debriefing_id TEXT NOT NULL,
                    flight_id TEXT NOT NULL,
                    callsign TEXT,
                    squadron_id TEXT,
                    performance_ratings_json TEXT NOT NULL DEFAULT '{}',
                    created_at TEXT NOT NULL
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS pilots (
                    id TEXT PRIMARY KEY,
                    callsign TEXT NOT NULL,
                    board_number TEXT
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS squadrons (
                    id TEXT PRIMARY KEY,
                    designation TEXT,
                    name TEXT,
                    tail_code TEXT,
                    insignia_url TEXT
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS pilot_squadrons (
                    pilot_id TEXT PRIMARY KEY,
                    squadron_id TEXT NOT NULL
                );
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_kills_flight ON pilot_kills (flight_debrief_id);")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_flights_mission ON flight_debriefs (mission_debriefing_id);")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_units_kill_category ON unit_types (kill_category);")
            conn.commit()
