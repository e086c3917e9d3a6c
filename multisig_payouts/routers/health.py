from __future__ import annotations

import os
import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request, Response, status

from ..adapters.chain import ChainError
from ..logging import get_logger
from ..version import __version__, version as full_version

log = get_logger(__name__)
router = APIRouter(tags=["health"])

_PROCESS_START = time.time()


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _uptime_seconds() -> float:
    return max(0.0, time.time() - _PROCESS_START)


def _version_blob() -> Dict[str, Any]:
    return {
        "service": "multisig-payouts",
        "version": __version__,
        "build": full_version(),
        "python": {
            "version": "{}.{}.{}".format(*os.sys.version_info[:3]),
            "impl": os.sys.implementation.name,
        },
        "started_at": datetime.fromtimestamp(_PROCESS_START, tz=timezone.utc).isoformat(),
        "now": _utcnow_iso(),
        "uptime_seconds": round(_uptime_seconds(), 3),
    }


@router.get("/healthz", summary="Liveness probe", response_model=None)
def healthz() -> Dict[str, Any]:
    """
    Simple liveness probe: always returns 200 if the process is serving requests.
    """
    return {"status": "ok", **_version_blob()}


@router.get("/version", summary="Service version", response_model=None)
def version(request: Request) -> Dict[str, Any]:
    meta = _version_blob()
    settings = request.app.state.settings
    meta["network"] = settings.chain.network
    return meta


@router.get("/readyz", summary="Readiness probe", response_model=None)
async def readyz(request: Request, response: Response) -> Dict[str, Any]:
    """
    Readiness probe: verifies the approval database and one chain read.
    Returns 200 when all checks pass; 503 otherwise.
    """
    engine = request.app.state.engine
    checks: Dict[str, Dict[str, Any]] = {}

    db = engine.store.db
    checks["storage"] = {"ok": db.ping(), "path": str(db.path)}

    try:
        next_id = await engine.chain.get_next_child_bounty_id(0)
        checks["chain"] = {"ok": True, "next_child_bounty_id": next_id}
    except ChainError as e:
        log.warning("readiness_chain_failed", error=e.message)
        checks["chain"] = {"ok": False, "error": e.message}

    ok_all = all(c["ok"] for c in checks.values())
    response.status_code = status.HTTP_200_OK if ok_all else status.HTTP_503_SERVICE_UNAVAILABLE
    return {
        "status": "ok" if ok_all else "degraded",
        "now": _utcnow_iso(),
        "uptime_seconds": round(_uptime_seconds(), 3),
        "checks": checks,
    }


def get_router() -> APIRouter:
    return router
