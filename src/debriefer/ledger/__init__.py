from debriefer.ledger.buffer import KillEditBuffer, PilotStatusEntry
from debriefer.ledger.catalog import UnitCatalog
from debriefer.ledger.extract import extract_red_coalition_unit_counts, extract_red_coalition_unit_types
from debriefer.ledger.pool import UnitPoolManager
from debriefer.ledger.reconcile import KillLedgerReconciler, SaveReport
from debriefer.ledger.service import KillTrackingService
from debriefer.ledger.store import KillLedgerStore

__all__ = [
    "KillEditBuffer",
    "KillLedgerReconciler",
    "KillLedgerStore",
    "KillTrackingService",
    "PilotStatusEntry",
    "SaveReport",
    "UnitCatalog",
    "UnitPoolManager",
    "extract_red_coalition_unit_counts",
    "extract_red_coalition_unit_types",
]
