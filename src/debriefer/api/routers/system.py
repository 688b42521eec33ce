import logging

from fastapi import APIRouter

from debriefer.config import settings

logger = logging.getLogger("debriefer.api.system")
router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok", "name": settings.app.name, "version": settings.app.version}
