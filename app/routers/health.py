from __future__ import annotations

import os
import time
from typing import Any, Dict

from fastapi import APIRouter

from config.rpc import configured_networks
from config.settings import settings
from models.schema import COL_SYSTEM

router = APIRouter()


def _firestore_probe(timeout_s: float = 0.20) -> Dict[str, Any]:
    """
    Read-only, bounded-time Firestore connectivity probe.
    - No writes
    - Uses a fixed doc path.
    """
    try:
        from google.cloud import firestore  # type: ignore
    except Exception as e:
        return {"ok": False, "error_type": type(e).__name__, "message": str(e)}

    try:
        t0 = time.time()
        db = firestore.Client(project=settings.FIRESTORE_PROJECT_ID or None)
        db.collection(COL_SYSTEM).document("healthz").get(timeout=timeout_s)
        dt_ms = int((time.time() - t0) * 1000)
        return {"ok": True, "latency_ms": dt_ms}
    except Exception as e:
        return {"ok": False, "error_type": type(e).__name__, "message": str(e)}


@router.get("/healthz")
def healthz():
    return {"ok": True, "service": os.getenv("K_SERVICE") or "megadata"}


@router.get("/health")
def health():
    fs = _firestore_probe()
    return {
        "ok": bool(fs.get("ok", False)),
        "service": os.getenv("K_SERVICE") or "megadata",
        "revision": os.getenv("K_REVISION") or "",
        "environment": settings.ENVIRONMENT,
        "rpc_networks": configured_networks(),
        "ledger_configured": bool(settings.LEDGER_URL and settings.LEDGER_BLOCKCHAIN_RID),
        "firestore_ok": bool(fs.get("ok", False)),
        "firestore": fs,
        "time_unix": time.time(),
    }
