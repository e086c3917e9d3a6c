"""
Pure multisig helpers: quorum predicates, Multisig pallet call shapes and
event readers. Nothing here touches the chain or the store.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..adapters.chain import CallSpec, ChainEvent, SubmissionReceipt, Timepoint

# upper bound handed to as_multi when the fee estimate carries no weight
MAX_WEIGHT: Dict[str, int] = {"ref_time": 1_000_000_000, "proof_size": 1_000_000}


def will_hit_quorum(current_approvals: int, threshold: int) -> bool:
    """True when one more approval reaches the threshold."""
    return current_approvals + 1 >= threshold


def is_quorum_met(current_approvals: int, threshold: int) -> bool:
    return current_approvals >= threshold


def max_weight_for(estimate: Optional[Mapping[str, int]]) -> Dict[str, int]:
    """Component-wise max of the estimated inner-call weight and :data:`MAX_WEIGHT`."""
    est = estimate or {}
    return {k: max(int(est.get(k, 0) or 0), v) for k, v in MAX_WEIGHT.items()}


# ------------------------------- Call shapes -----------------------------------


def as_multi_call(
    threshold: int,
    other_signatories: List[str],
    timepoint: Optional[Timepoint],
    call: CallSpec,
    max_weight: Optional[Mapping[str, int]] = None,
) -> CallSpec:
    return CallSpec(
        "Multisig",
        "as_multi",
        {
            "threshold": threshold,
            "other_signatories": list(other_signatories),
            "maybe_timepoint": timepoint.to_dict() if timepoint else None,
            "call": call,
            "max_weight": dict(max_weight or MAX_WEIGHT),
        },
    )


def approve_as_multi_call(
    threshold: int,
    other_signatories: List[str],
    timepoint: Timepoint,
    call_hash: str,
    max_weight: Optional[Mapping[str, int]] = None,
) -> CallSpec:
    return CallSpec(
        "Multisig",
        "approve_as_multi",
        {
            "threshold": threshold,
            "other_signatories": list(other_signatories),
            "maybe_timepoint": timepoint.to_dict(),
            "call_hash": call_hash,
            "max_weight": dict(max_weight or MAX_WEIGHT),
        },
    )


def as_multi_threshold_1_call(other_signatories: List[str], call: CallSpec) -> CallSpec:
    """Threshold-1 multisigs dispatch immediately and take no timepoint or weight."""
    return CallSpec(
        "Multisig",
        "as_multi_threshold_1",
        {"other_signatories": list(other_signatories), "call": call},
    )


# ------------------------------- Event readers ---------------------------------


def _attr(attributes: Any, name: str, position: int) -> Any:
    """Event attributes arrive named (dict) or positional (list) depending on metadata."""
    if isinstance(attributes, Mapping):
        return attributes.get(name)
    if isinstance(attributes, (list, tuple)) and len(attributes) > position:
        return attributes[position]
    return None


def extract_timepoint(receipt: SubmissionReceipt) -> Optional[Timepoint]:
    """
    Timepoint of a freshly opened multisig operation: the block and extrinsic
    index of the submission that emitted ``Multisig.NewMultisig``.
    """
    if not receipt.find_events("Multisig", "NewMultisig"):
        return None
    if receipt.block_number is None or receipt.extrinsic_index is None:
        return None
    return Timepoint(height=receipt.block_number, index=receipt.extrinsic_index)


@dataclass(frozen=True)
class ExecutionOutcome:
    ok: bool
    call_hash: Optional[str] = None
    error: Optional[str] = None


def execution_outcome(events: Iterable[ChainEvent]) -> Optional[ExecutionOutcome]:
    """
    Read ``Multisig.MultisigExecuted``. Returns None when the multisig did not
    execute in this extrinsic; otherwise whether the inner call dispatched Ok.

    A proxied payout reports its own result in ``Proxy.ProxyExecuted``; an
    ``Err`` there fails the payout even though the multisig dispatch was Ok.
    """
    events = list(events)
    for ev in events:
        if ev.module != "Multisig" or ev.event != "MultisigExecuted":
            continue
        # (approving, timepoint, multisig, call_hash, result)
        result = _attr(ev.attributes, "result", 4)
        call_hash = _attr(ev.attributes, "call_hash", 3)
        if isinstance(result, Mapping) and "Err" in result:
            return ExecutionOutcome(ok=False, call_hash=call_hash, error=_describe_err(result["Err"]))
        proxy_err = proxy_error(events)
        if proxy_err is not None:
            return ExecutionOutcome(ok=False, call_hash=call_hash, error=proxy_err)
        return ExecutionOutcome(ok=True, call_hash=call_hash)
    return None


def proxy_error(events: Iterable[ChainEvent]) -> Optional[str]:
    """Error of a ``Proxy.ProxyExecuted`` whose result is Err, else None."""
    for ev in events:
        if ev.module == "Proxy" and ev.event == "ProxyExecuted":
            result = _attr(ev.attributes, "result", 0)
            if isinstance(result, Mapping) and "Err" in result:
                return _describe_err(result["Err"])
    return None


def _describe_err(err: Any) -> str:
    if isinstance(err, Mapping):
        module = err.get("Module")
        if isinstance(module, Mapping):
            name = module.get("name") or module.get("error")
            pallet = module.get("pallet") or module.get("index")
            return f"Module error {pallet}.{name}" if name else f"Module error {module}"
        if err:
            key, val = next(iter(err.items()))
            return f"{key}: {val}" if val not in (None, ()) else str(key)
    return str(err)


def child_bounty_id_from_events(events: Iterable[ChainEvent]) -> Optional[int]:
    """Child bounty id actually assigned, from ``ChildBounties.Added {index, child_index}``."""
    for ev in events:
        if ev.module == "ChildBounties" and ev.event == "Added":
            value = _attr(ev.attributes, "child_index", 1)
            if value is not None:
                return int(value)
    return None


def failed_extrinsic_error(events: Iterable[ChainEvent]) -> Optional[str]:
    for ev in events:
        if ev.module == "System" and ev.event == "ExtrinsicFailed":
            err = _attr(ev.attributes, "dispatch_error", 0)
            return _describe_err(err) if err is not None else "Execution failed on chain"
    return None


__all__ = [
    "MAX_WEIGHT",
    "will_hit_quorum",
    "is_quorum_met",
    "max_weight_for",
    "as_multi_call",
    "approve_as_multi_call",
    "as_multi_threshold_1_call",
    "extract_timepoint",
    "ExecutionOutcome",
    "execution_outcome",
    "proxy_error",
    "child_bounty_id_from_events",
    "failed_extrinsic_error",
]
