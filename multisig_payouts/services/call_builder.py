"""
Call builder: the five-step child-bounty payout, bundled atomically.

One milestone payout is:

    1. ChildBounties.add_child_bounty     carve the payout from the parent bounty
    2. ChildBounties.propose_curator      name the child curator (fee 0)
    3. ChildBounties.accept_curator       curator accepts the role
    4. ChildBounties.award_child_bounty   award to the beneficiary
    5. ChildBounties.claim_child_bounty   settle to the beneficiary

bundled in ``Utility.batch_all`` so either all five land or none do. When
the curator is an account other than the multisig, the batch is wrapped in
``Proxy.proxy(real=curator)`` so that step 3 dispatches with the curator as
origin.

Steps 2-5 reference the child bounty id, which the chain assigns only when
step 1 executes. The builder reads the next id beforehand and embeds that
prediction; an unrelated allocation landing in between invalidates it and
the batch fails on chain. The id actually assigned is read back from the
``ChildBounties.Added`` event on execution.

:func:`build_payout_call` is pure: the same request, predicted id and layout
version always yield the same call tree, so an executing voter can rebuild
byte-identical call data without receiving it from the initiator. Any change
to the call layout must bump ``LAYOUT_VERSION`` and keep the old branch.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..adapters import ss58
from ..adapters.chain import CallSpec, ChainClient
from ..errors import CallDataMismatch
from ..logging import get_logger

log = get_logger(__name__)

LAYOUT_VERSION = 1
SUPPORTED_LAYOUTS = (1,)

PAYOUT_STEPS = (
    "add_child_bounty",
    "propose_curator",
    "accept_curator",
    "award_child_bounty",
    "claim_child_bounty",
)


def call_hash(call_data: bytes) -> str:
    return "0x" + hashlib.blake2b(call_data, digest_size=32).hexdigest()


@dataclass(frozen=True)
class PayoutRequest:
    milestone_id: int
    amount: int
    recipient: str
    parent_bounty_id: int
    curator: str
    milestone_title: Optional[str] = None
    proxy_real: Optional[str] = None
    curator_fee: int = 0

    @property
    def description(self) -> str:
        title = self.milestone_title or f"Milestone {self.milestone_id}"
        return f"Milestone {self.milestone_id}: {title}"


@dataclass(frozen=True)
class PayoutCallSpec:
    call: CallSpec
    steps: List[CallSpec]
    child_bounty_id: int
    layout_version: int

    @property
    def proxied(self) -> bool:
        return self.call.module == "Proxy"


@dataclass(frozen=True)
class PayoutCall:
    call: CallSpec
    call_data: bytes
    call_hash: str
    predicted_child_bounty_id: int
    steps: List[CallSpec]
    layout_version: int

    @property
    def call_data_hex(self) -> str:
        return "0x" + self.call_data.hex()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "call_hash": self.call_hash,
            "call_data": self.call_data_hex,
            "predicted_child_bounty_id": self.predicted_child_bounty_id,
            "layout_version": self.layout_version,
            "steps": [s.name for s in self.steps],
        }


def build_payout_call(
    request: PayoutRequest,
    child_bounty_id: int,
    layout_version: int = LAYOUT_VERSION,
    *,
    ss58_format: int = 42,
) -> PayoutCallSpec:
    if layout_version not in SUPPORTED_LAYOUTS:
        raise ValueError(f"unsupported payout layout version {layout_version}")
    if request.amount <= 0:
        raise ValueError("payout amount must be positive")
    if child_bounty_id < 0:
        raise ValueError("child bounty id must be non-negative")

    # canonical text so every builder encodes the same MultiAddress
    curator = ss58.convert(request.curator, ss58_format)
    beneficiary = ss58.convert(request.recipient, ss58_format)
    parent = request.parent_bounty_id

    steps = [
        CallSpec(
            "ChildBounties",
            "add_child_bounty",
            {
                "parent_bounty_id": parent,
                "value": request.amount,
                "description": "0x" + request.description.encode("utf-8").hex(),
            },
        ),
        CallSpec(
            "ChildBounties",
            "propose_curator",
            {
                "parent_bounty_id": parent,
                "child_bounty_id": child_bounty_id,
                "curator": curator,
                "fee": request.curator_fee,
            },
        ),
        CallSpec("ChildBounties", "accept_curator", {"parent_bounty_id": parent, "child_bounty_id": child_bounty_id}),
        CallSpec(
            "ChildBounties",
            "award_child_bounty",
            {"parent_bounty_id": parent, "child_bounty_id": child_bounty_id, "beneficiary": beneficiary},
        ),
        CallSpec("ChildBounties", "claim_child_bounty", {"parent_bounty_id": parent, "child_bounty_id": child_bounty_id}),
    ]
    call = CallSpec("Utility", "batch_all", {"calls": list(steps)})
    if request.proxy_real:
        call = CallSpec(
            "Proxy",
            "proxy",
            {"real": ss58.convert(request.proxy_real, ss58_format), "force_proxy_type": None, "call": call},
        )
    return PayoutCallSpec(call=call, steps=steps, child_bounty_id=child_bounty_id, layout_version=layout_version)


class PayoutCallBuilder:
    """
    Chain-aware wrapper around :func:`build_payout_call`: predicts the child
    bounty id, encodes via the chain client and hashes the result.
    """

    def __init__(self, chain: ChainClient, *, ss58_format: int = 42):
        self.chain = chain
        self.ss58_format = ss58_format

    async def _encode(self, spec: PayoutCallSpec) -> PayoutCall:
        data = await self.chain.encode_call(spec.call)
        return PayoutCall(
            call=spec.call,
            call_data=data,
            call_hash=call_hash(data),
            predicted_child_bounty_id=spec.child_bounty_id,
            steps=spec.steps,
            layout_version=spec.layout_version,
        )

    async def prepare(self, request: PayoutRequest) -> PayoutCall:
        predicted = await self.chain.get_next_child_bounty_id(request.parent_bounty_id)
        payout = await self._encode(build_payout_call(request, predicted, ss58_format=self.ss58_format))
        log.info(
            "payout_call_built",
            milestone_id=request.milestone_id,
            parent_bounty_id=request.parent_bounty_id,
            predicted_child_bounty_id=predicted,
            proxied=request.proxy_real is not None,
            call_hash=payout.call_hash,
        )
        return payout

    async def rebuild(
        self,
        request: PayoutRequest,
        child_bounty_id: int,
        layout_version: int,
        expected_hash: str,
    ) -> PayoutCall:
        """Reproduce a stored payout; the hash must match what the committee approved."""
        spec = build_payout_call(request, child_bounty_id, layout_version, ss58_format=self.ss58_format)
        payout = await self._encode(spec)
        if payout.call_hash.lower() != expected_hash.lower():
            log.error(
                "payout_rebuild_mismatch",
                milestone_id=request.milestone_id,
                expected=expected_hash,
                got=payout.call_hash,
            )
            raise CallDataMismatch(expected_hash, payout.call_hash)
        return payout


__all__ = [
    "LAYOUT_VERSION",
    "PAYOUT_STEPS",
    "CallSpec",
    "PayoutRequest",
    "PayoutCallSpec",
    "PayoutCall",
    "build_payout_call",
    "call_hash",
    "PayoutCallBuilder",
]
