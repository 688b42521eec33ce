from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
import yaml

class AppSettings(BaseSettings):
    name: str = "Debriefer"
    version: str = "1.0.0"

class PathSettings(BaseSettings):
    db_path: Path = Path("./data/debriefer.db")

class SecuritySettings(BaseSettings):
    """
    Optional guard for mutating endpoints.
    """
    api_token: Optional[str] = None  # Bearer token or X-API-Key
    max_request_mb: int = 2

class LoggingSettings(BaseSettings):
    log_requests: bool = True
    level: str = "INFO"

class DebriefSettings(BaseSettings):
    """
    Debrief semantics that are configuration, not domain constants.
    """
    performance_categories: dict[str, str] = {
        "mission_planning": "Mission Planning & Brief Execution",
        "flight_discipline": "Flight Discipline & Communication",
        "formation_navigation": "Formation & Navigation",
        "tactical_execution": "Tactical Execution",
        "situational_awareness": "Situational Awareness",
        "weapons_employment": "Weapons Employment",
        "survivability_safety": "Survivability & Safety",
        "debrief_participation": "Debrief Participation",
    }
    # Denominator used until some flight debrief has ratings recorded.
    performance_category_count: int = 8
    # When false the configured count is always the denominator.
    infer_category_count: bool = True
    generic_unit_prefix: str = "GENERIC_"
    temp_id_prefix: str = "temp-"
    dash_display_order: list[str] = ["2", "1", "3", "4"]

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_nested_delimiter="__", env_file=".env", extra="ignore")
    app: AppSettings = AppSettings()
    paths: PathSettings = PathSettings()
    security: SecuritySettings = SecuritySettings()
    logging: LoggingSettings = LoggingSettings()
    debrief: DebriefSettings = DebriefSettings()

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        default_path = Path("config/settings.yaml")
        path = config_path or (default_path if default_path.exists() else None)

        if not path:
            return cls()

        with open(path, "r") as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

settings = Settings.load()
