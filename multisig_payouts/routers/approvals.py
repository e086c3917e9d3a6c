"""
Approval endpoints:

- POST /approvals                    -> initiate a milestone payout (first as_multi)
- GET  /approvals/{id}               -> approval with its votes
- GET  /approvals/{id}/progress      -> vote tallies, voted and pending signatories
- POST /approvals/{id}/votes         -> approve (hash-only or executing as_multi)
- POST /approvals/{id}/execute       -> re-submit the executing as_multi
- POST /approvals/{id}/reconcile     -> settle votes left open by timed-out submissions
- POST /approvals/{id}/cancel        -> close without chain interaction

Signing uses the hot signers configured through SIGNER_SURIS (dev/test).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..adapters.signer import SignerRegistry
from ..logging import bind_request_context
from ..models.approvals import (
    Approval,
    ApprovalProgress,
    EngineOutcome,
    InitiateRequest,
    ReconcileResult,
    SignatoryRequest,
)
from ..services.engine import MilestoneRef, MultisigEngine
from .deps import get_engine, get_signers, require_api_key, resolve_signer

router = APIRouter(prefix="/approvals", tags=["approvals"], dependencies=[Depends(require_api_key)])


@router.post(
    "",
    response_model=EngineOutcome,
    status_code=status.HTTP_201_CREATED,
    summary="Initiate a milestone payout approval",
)
async def initiate(
    body: InitiateRequest,
    engine: MultisigEngine = Depends(get_engine),
    signers: SignerRegistry = Depends(get_signers),
) -> EngineOutcome:
    bind_request_context(milestone_id=body.milestone_id, committee_id=body.committee_id)
    signer = resolve_signer(signers, body.initiator)
    return await engine.initiate(
        MilestoneRef(body.milestone_id, body.committee_id, body.milestone_title),
        body.amount,
        body.recipient,
        body.initiator,
        signer,
    )


@router.get("/{approval_id}", response_model=Approval, summary="Get an approval")
def get_approval(approval_id: int, engine: MultisigEngine = Depends(get_engine)) -> Approval:
    return engine.get_approval(approval_id)


@router.get("/{approval_id}/progress", response_model=ApprovalProgress, summary="Approval progress")
def get_progress(approval_id: int, engine: MultisigEngine = Depends(get_engine)) -> ApprovalProgress:
    return engine.approval_progress(approval_id)


@router.post("/{approval_id}/votes", response_model=EngineOutcome, summary="Approve a payout")
async def vote(
    approval_id: int,
    body: SignatoryRequest,
    engine: MultisigEngine = Depends(get_engine),
    signers: SignerRegistry = Depends(get_signers),
) -> EngineOutcome:
    bind_request_context(approval_id=approval_id)
    return await engine.vote(approval_id, body.signatory, resolve_signer(signers, body.signatory))


@router.post("/{approval_id}/execute", response_model=EngineOutcome, summary="Execute a payout at threshold")
async def execute(
    approval_id: int,
    body: SignatoryRequest,
    engine: MultisigEngine = Depends(get_engine),
    signers: SignerRegistry = Depends(get_signers),
) -> EngineOutcome:
    bind_request_context(approval_id=approval_id)
    return await engine.execute(approval_id, body.signatory, resolve_signer(signers, body.signatory))


@router.post("/{approval_id}/reconcile", response_model=ReconcileResult, summary="Reconcile votes with the chain")
async def reconcile(approval_id: int, engine: MultisigEngine = Depends(get_engine)) -> ReconcileResult:
    bind_request_context(approval_id=approval_id)
    return await engine.reconcile(approval_id)


@router.post("/{approval_id}/cancel", response_model=Approval, summary="Cancel an approval")
def cancel(approval_id: int, engine: MultisigEngine = Depends(get_engine)) -> Approval:
    return engine.cancel(approval_id)


def get_router() -> APIRouter:
    return router
