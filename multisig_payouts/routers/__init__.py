"""
Routers package: aggregates all HTTP routes into a single APIRouter.

Usage (from app factory):
    from multisig_payouts.routers import build_router
    app.include_router(build_router())
"""

from __future__ import annotations

import importlib
from typing import List, Sequence, Tuple

from fastapi import APIRouter

from ..logging import get_logger

log = get_logger(__name__)

# Order controls route declaration order and OpenAPI grouping.
ROUTER_MODULES: Tuple[str, ...] = (
    "multisig_payouts.routers.health",
    "multisig_payouts.routers.committees",
    "multisig_payouts.routers.approvals",
    "multisig_payouts.routers.bounties",
)


def collect_routers(candidates: Sequence[str] = ROUTER_MODULES) -> List[APIRouter]:
    """Load every router module in order; each exposes `router: APIRouter`."""
    routers: List[APIRouter] = []
    for mod_path in candidates:
        router = getattr(importlib.import_module(mod_path), "router")
        routers.append(router)
        log.debug("router_mounted", module=mod_path, prefix=router.prefix, tags=router.tags)
    return routers


def build_router() -> APIRouter:
    root = APIRouter()
    for r in collect_routers():
        root.include_router(r)
    return root


__all__ = ["ROUTER_MODULES", "build_router", "collect_routers"]
