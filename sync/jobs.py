from __future__ import annotations

from typing import Dict, Optional

from config.settings import settings
from ledger.publisher import PublishPipeline
from repos.token_store import TokenStore
from sync.ledger_sync import LedgerSyncWorker
from sync.reconciler import ExternalReconciler
from sync.scheduler import PeriodicJob

RECONCILE_JOB = "reconcile"
LEDGER_SYNC_JOB = "ledger_sync"


def build_jobs(
    store: Optional[TokenStore] = None,
    reconciler: Optional[ExternalReconciler] = None,
    ledger_sync: Optional[LedgerSyncWorker] = None,
) -> Dict[str, PeriodicJob]:
    store = store or TokenStore()
    publisher = PublishPipeline()
    reconciler = reconciler or ExternalReconciler(store=store, publisher=publisher)
    ledger_sync = ledger_sync or LedgerSyncWorker(store=store, publisher=publisher)
    return {
        RECONCILE_JOB: PeriodicJob(RECONCILE_JOB, settings.RECONCILE_INTERVAL_SECONDS, reconciler.run),
        LEDGER_SYNC_JOB: PeriodicJob(LEDGER_SYNC_JOB, settings.LEDGER_SYNC_INTERVAL_SECONDS, ledger_sync.run),
    }


_jobs: Optional[Dict[str, PeriodicJob]] = None


def get_jobs() -> Dict[str, PeriodicJob]:
    """Process-wide jobs, shared by the scheduler and the manual trigger endpoints."""
    global _jobs
    if _jobs is None:
        _jobs = build_jobs()
    return _jobs
