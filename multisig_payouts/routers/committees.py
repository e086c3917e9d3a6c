"""
Committee endpoints:

- PUT /committees/{committee_id}/multisig           -> store the committee's multisig config
- GET /committees/{committee_id}/multisig           -> read it back (with the derived address check)
- GET /committees/{committee_id}/approvals/pending  -> live approvals in the store
                                                      (?signatory= keeps those awaiting that vote)
- GET /committees/{committee_id}/approvals/on-chain -> pending Multisig entries on chain
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from ..models.approvals import Approval, MultisigConfig, MultisigConfigIn
from ..services.engine import MultisigEngine
from .deps import get_engine, require_api_key

router = APIRouter(prefix="/committees", tags=["committees"], dependencies=[Depends(require_api_key)])


@router.put("/{committee_id}/multisig", response_model=MultisigConfig, summary="Configure committee multisig")
def put_multisig(
    committee_id: int,
    body: MultisigConfigIn,
    engine: MultisigEngine = Depends(get_engine),
) -> MultisigConfig:
    return engine.committees.upsert_config(committee_id, body)


@router.get("/{committee_id}/multisig", response_model=MultisigConfig, summary="Committee multisig")
def get_multisig(committee_id: int, engine: MultisigEngine = Depends(get_engine)) -> MultisigConfig:
    return engine.config_for(committee_id)


@router.get("/{committee_id}/approvals/pending", response_model=List[Approval], summary="Live approvals")
def list_pending(
    committee_id: int,
    signatory: Optional[str] = Query(None, description="Only approvals still awaiting this signatory's vote"),
    engine: MultisigEngine = Depends(get_engine),
) -> List[Approval]:
    if signatory:
        return engine.list_awaiting(committee_id, signatory.strip())
    return engine.list_pending(committee_id)


@router.get("/{committee_id}/approvals/on-chain", summary="Pending multisig operations on chain")
async def list_on_chain(committee_id: int, engine: MultisigEngine = Depends(get_engine)) -> Dict[str, Any]:
    entries = await engine.pending_on_chain(committee_id)
    return {"committee_id": committee_id, "count": len(entries), "pending": entries}


def get_router() -> APIRouter:
    return router
