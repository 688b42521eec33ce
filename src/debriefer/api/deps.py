from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException

from debriefer.config import settings
from debriefer.data.repositories import MissionRepository, PilotRepository
from debriefer.data.storage import Database
from debriefer.ledger import KillLedgerStore, KillTrackingService, UnitCatalog, UnitPoolManager
from debriefer.summary import MissionSummaryAggregator, MissionSummaryDetailService

# Global/Cached instances
_db_instance: Optional[Database] = None
_tracking_instance: Optional[KillTrackingService] = None


def reset() -> None:
    global _db_instance, _tracking_instance
    _db_instance = None
    _tracking_instance = None


def get_db() -> Database:
    global _db_instance
    if _db_instance is None:
        _db_instance = Database(settings.paths.db_path)
    return _db_instance


def get_catalog() -> UnitCatalog:
    return UnitCatalog(db=get_db())


def get_pool() -> UnitPoolManager:
    return UnitPoolManager(db=get_db(), catalog=get_catalog())


def get_missions() -> MissionRepository:
    return MissionRepository(db=get_db())


def get_pilots() -> PilotRepository:
    return PilotRepository(db=get_db())


def get_store() -> KillLedgerStore:
    return KillLedgerStore(db=get_db(), catalog=get_catalog(), pilots=get_pilots())


def get_kill_tracking_service() -> KillTrackingService:
    # Shared so the per-flight save guard holds across requests.
    global _tracking_instance
    if _tracking_instance is None:
        _tracking_instance = KillTrackingService(
            store=get_store(),
            catalog=get_catalog(),
            pool=get_pool(),
            missions=get_missions(),
            pilots=get_pilots(),
        )
    return _tracking_instance


def get_summary_aggregator() -> MissionSummaryAggregator:
    return MissionSummaryAggregator(missions=get_missions(), store=get_store(), catalog=get_catalog())


def get_detail_service() -> MissionSummaryDetailService:
    return MissionSummaryDetailService(
        missions=get_missions(),
        pilots=get_pilots(),
        store=get_store(),
        catalog=get_catalog(),
    )


def require_auth(
    authorization: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
):
    token = settings.security.api_token
    if not token:
        return

    if authorization == f"Bearer {token}" or authorization == f"Token {token}" or x_api_key == token:
        return

    raise HTTPException(status_code=401, detail="Unauthorized", headers={"WWW-Authenticate": "Bearer"})
