from __future__ import annotations

from fastapi import APIRouter, Depends

from debriefer.api.deps import get_detail_service, get_summary_aggregator
from debriefer.summary import MissionSummaryAggregator, MissionSummaryDetailService

router = APIRouter(prefix="/v1/missions", tags=["summary"])


@router.get("/{mission_debriefing_id}/summary")
def mission_summary(
    mission_debriefing_id: str,
    svc: MissionSummaryAggregator = Depends(get_summary_aggregator),
):
    summary = svc.get_mission_summary(mission_debriefing_id)
    payload = summary.model_dump(mode="json")
    payload["pilot_status"]["total"] = summary.pilot_status.total
    payload["aircraft_status"]["total"] = summary.aircraft_status.total
    payload["kills"]["total"] = summary.kills.total
    return payload


@router.get("/{mission_debriefing_id}/summary/details")
def mission_summary_details(
    mission_debriefing_id: str,
    svc: MissionSummaryDetailService = Depends(get_detail_service),
):
    return svc.get_details(mission_debriefing_id).model_dump(mode="json")


@router.get("/{mission_debriefing_id}/summary/buckets/{bucket}")
def expand_summary_bucket(
    mission_debriefing_id: str,
    bucket: str,
    svc: MissionSummaryDetailService = Depends(get_detail_service),
):
    return svc.expand(mission_debriefing_id, bucket).model_dump(mode="json")
