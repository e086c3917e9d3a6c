from __future__ import annotations

"""
Approval, vote and committee-multisig models.

- MultisigConfig:       a committee's multisig account, signatories, threshold,
                        approval pattern and funding source (parent bounty).
- Approval / Vote:      rows of the approval store, as returned to callers.
- *Request models:      bodies of the HTTP API (initiate, vote, execute).
- ApprovalProgress:     vote tallies and who is still to sign.

Statuses
--------
pending -> threshold_met -> executed      (terminal)
pending | threshold_met  -> cancelled     (terminal)
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .common import Address, Hash, Hex, Planck

ApprovalStatus = Literal["pending", "threshold_met", "executed", "cancelled"]
ApprovalPattern = Literal["merged", "separated"]
Network = Literal["paseo", "polkadot", "kusama"]
VoteValue = Literal["approve", "reject"]

ACTIVE_STATUSES = ("pending", "threshold_met")
TERMINAL_STATUSES = ("executed", "cancelled")


# ---------------------------------------------------------------------------
# Committee multisig configuration
# ---------------------------------------------------------------------------


class MultisigConfigIn(BaseModel):
    """
    Admin update of a committee's multisig.

    Fields
    ------
    multisig_address: Address
        The committee's multisig account; must equal the account derived from
        (signatories, threshold).
    signatories: List[Address]
        Every signatory, including the multisig's members who never initiate.
    threshold: int
        Approvals required; 1 <= threshold <= len(signatories).
    approval_pattern: "merged" | "separated"
        merged: a vote is a signature and the last one executes.
        separated: off-chain votes first, on-chain signing later; the
        funding check is deferred to the signing phase.
    parent_bounty_id: int
        Funding source the child bounties are carved from.
    curator_address: Address
        Curator of the parent bounty and of every child bounty.
    use_proxy: bool
        Wrap payouts in Proxy.proxy(real=curator) when the curator is not
        the multisig itself.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    multisig_address: Address
    signatories: List[Address] = Field(..., min_length=1)
    threshold: int = Field(..., ge=1)
    approval_pattern: ApprovalPattern = "merged"
    network: Network = "paseo"
    parent_bounty_id: int = Field(..., ge=0)
    curator_address: Address
    use_proxy: bool = True

    @model_validator(mode="after")
    def _threshold_in_range(self) -> "MultisigConfigIn":
        from ..adapters.ss58 import decode_address

        unique = {decode_address(s) for s in self.signatories}
        if len(unique) != len(self.signatories):
            raise ValueError("signatories contain the same account more than once")
        if self.threshold > len(self.signatories):
            raise ValueError(f"threshold {self.threshold} exceeds signatory count {len(self.signatories)}")
        return self


class MultisigConfig(MultisigConfigIn):
    committee_id: int
    updated_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Approvals & votes
# ---------------------------------------------------------------------------


class Timepoint(BaseModel):
    height: int = Field(..., ge=0)
    index: int = Field(..., ge=0)


class Vote(BaseModel):
    id: int
    approval_id: int
    signatory_address: str
    vote: VoteValue
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    on_chain: bool = False
    is_initiator: bool = False
    is_final_approval: bool = False
    voted_at: datetime


class ApprovalCreate(BaseModel):
    """Everything the store needs to open an approval; written together with the initiator's vote."""

    milestone_id: int
    milestone_title: Optional[str] = None
    committee_id: int
    call_hash: Hash
    call_data: Hex
    timepoint: Optional[Timepoint] = None
    status: ApprovalStatus = "pending"
    initiator_address: str
    approval_pattern: ApprovalPattern = "merged"
    network: Network = "paseo"
    payment_amount: Planck
    recipient_address: str
    parent_bounty_id: int
    curator_address: str
    proxy_real: Optional[str] = None
    predicted_child_bounty_id: int
    layout_version: int = 1
    threshold: int
    execution_tx_hash: Optional[str] = None
    execution_block_number: Optional[int] = None
    child_bounty_id: Optional[int] = None


class VoteCreate(BaseModel):
    signatory_address: str
    vote: VoteValue = "approve"
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    is_initiator: bool = False
    is_final_approval: bool = False


class Approval(ApprovalCreate):
    id: int
    execution_error: Optional[str] = None
    executed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    votes: List[Vote] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def approve_count(self) -> int:
        return sum(1 for v in self.votes if v.vote == "approve")


class VoteCounts(BaseModel):
    approve_votes: int
    reject_votes: int
    total_votes: int
    threshold: int
    threshold_met: bool
    votes_needed: int


class ApprovalProgress(VoteCounts):
    approval_id: int
    status: ApprovalStatus
    voted_signatories: List[str]
    pending_signatories: List[str]
    percent: int
    can_execute: bool


# ---------------------------------------------------------------------------
# Engine outcomes & HTTP requests
# ---------------------------------------------------------------------------


class SubmissionInfo(BaseModel):
    tx_hash: str
    block_hash: Optional[str] = None
    block_number: Optional[int] = None
    kind: Literal["as_multi", "approve_as_multi"]


class EngineOutcome(BaseModel):
    approval: Approval
    submission: Optional[SubmissionInfo] = None
    executed: bool = False
    preflight: Optional[Dict[str, Any]] = None


class ReconcileResult(BaseModel):
    """Store votes settled against the chain's approval list for one approval."""

    approval: Approval
    on_chain: bool
    chain_approvals: List[str] = Field(default_factory=list)
    settled: List[str] = Field(default_factory=list)
    withdrawn: List[str] = Field(default_factory=list)


class MultisigStructure(BaseModel):
    """How a bounty is controlled: curator, and the multisig behind the curator's proxy."""

    bounty_id: int
    description: Optional[str] = None
    status: str
    value: Planck
    curator: str
    controlling_multisig: Optional[str] = None
    proxy_type: Optional[str] = None
    curator_is_multisig: bool = True
    effective_multisig: str
    known_signatories: List[str] = Field(default_factory=list)
    pending_operations: int = 0
    network: str


class InitiateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    committee_id: int
    milestone_id: int
    milestone_title: Optional[str] = Field(default=None, max_length=256)
    amount: Planck = Field(gt=0)
    recipient: Address
    initiator: Address


class SignatoryRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    signatory: Address


__all__ = [
    "ApprovalStatus",
    "ApprovalPattern",
    "VoteValue",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "MultisigConfigIn",
    "MultisigConfig",
    "Timepoint",
    "Vote",
    "ApprovalCreate",
    "VoteCreate",
    "Approval",
    "VoteCounts",
    "ApprovalProgress",
    "SubmissionInfo",
    "EngineOutcome",
    "ReconcileResult",
    "MultisigStructure",
    "InitiateRequest",
    "SignatoryRequest",
]
