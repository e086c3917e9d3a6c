"""
Bounty endpoints:

- GET /bounties/{bounty_id}/multisig -> curator and controlling multisig of a parent bounty

Read-only; used when onboarding a committee to find the multisig that must
be configured for it.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..models.approvals import MultisigStructure
from ..services.engine import MultisigEngine
from .deps import get_engine, require_api_key

router = APIRouter(prefix="/bounties", tags=["bounties"], dependencies=[Depends(require_api_key)])


@router.get("/{bounty_id}/multisig", response_model=MultisigStructure, summary="Discover a bounty's multisig")
async def discover_multisig(
    bounty_id: int,
    network: Optional[str] = Query(None, pattern="^(paseo|polkadot|kusama)$"),
    engine: MultisigEngine = Depends(get_engine),
) -> MultisigStructure:
    return await engine.discover(bounty_id, network)


def get_router() -> APIRouter:
    return router
