from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from debriefer.api.deps import get_catalog, require_auth
from debriefer.domain.models import KillCategory
from debriefer.ledger import UnitCatalog

router = APIRouter(prefix="/v1/units", tags=["units"])


@router.get("")
def list_units(
    kill_category: KillCategory = Query(..., alias="kill_category"),
    include_inactive: bool = Query(False),
    catalog: UnitCatalog = Depends(get_catalog),
):
    units = catalog.find_by_kill_category(kill_category, active_only=not include_inactive)
    return [unit.model_dump(mode="json") for unit in units]


@router.get("/{unit_type_id}")
def get_unit(unit_type_id: str, catalog: UnitCatalog = Depends(get_catalog)):
    return catalog.get(unit_type_id).model_dump(mode="json")


@router.post("/generic/{kill_category}")
def resolve_generic_unit(
    kill_category: KillCategory,
    catalog: UnitCatalog = Depends(get_catalog),
    _auth=Depends(require_auth),
):
    return catalog.resolve_or_create_generic(kill_category).model_dump(mode="json")
