from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request

from repos.token_store import TokenStore
from security.operator_auth import verify_operator_request
from sync.jobs import LEDGER_SYNC_JOB, RECONCILE_JOB, get_jobs
from sync.scheduler import PeriodicJob

router = APIRouter()
log = logging.getLogger("megadata.routers.admin")


def _trigger(job: PeriodicJob) -> Dict[str, Any]:
    # Shares the scheduler's guard, so a manual run never overlaps a timed one.
    with job.guard.try_acquire() as acquired:
        if not acquired:
            raise HTTPException(status_code=409, detail="job_in_flight")
        try:
            result = job.fn()
        except Exception as e:
            log.error(
                "manual_run_error",
                extra={"extra": {"job": job.name, "error_type": type(e).__name__, "message": str(e)}},
                exc_info=True,
            )
            raise
    return {"ok": True, "job": job.name, "result": result}


@router.get("/whoami")
def whoami(request: Request):
    claims = verify_operator_request(request)
    return {"ok": True, "claims": {"sub": claims.get("sub"), "email": claims.get("email"), "aud": claims.get("aud")}}


@router.post("/reconcile_run")
def reconcile_run(request: Request, jobs: Dict[str, PeriodicJob] = Depends(get_jobs)):
    verify_operator_request(request)
    return _trigger(jobs[RECONCILE_JOB])


@router.post("/ledger_sync_run")
def ledger_sync_run(request: Request, jobs: Dict[str, PeriodicJob] = Depends(get_jobs)):
    verify_operator_request(request)
    return _trigger(jobs[LEDGER_SYNC_JOB])


@router.post("/seed_modules")
def seed_modules(request: Request):
    verify_operator_request(request)
    seeded = TokenStore().seed_modules()
    log.info("modules_seeded", extra={"extra": {"count": seeded}})
    return {"ok": True, "seeded": seeded}
