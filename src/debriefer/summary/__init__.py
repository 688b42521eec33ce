from debriefer.summary.aggregator import MissionSummaryAggregator
from debriefer.summary.details import MissionSummaryDetailService, group_by_squadron, parse_bucket

__all__ = [
    "MissionSummaryAggregator",
    "MissionSummaryDetailService",
    "group_by_squadron",
    "parse_bucket",
]
