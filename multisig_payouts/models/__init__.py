from __future__ import annotations

"""
Public model surface for the payout service.

Symbols are re-exported lazily from submodules via __getattr__ (PEP 562) so
importing one model does not pull in the address codec.

Submodules:
- common.py      -> Hex, Hash, Address, Planck
- approvals.py   -> MultisigConfig, Approval, Vote, ApprovalProgress, request bodies
"""

from importlib import import_module
from typing import Any, Dict, Tuple

_EXPORTS: Dict[str, Tuple[str, str]] = {
    "Hex": ("multisig_payouts.models.common", "Hex"),
    "Hash": ("multisig_payouts.models.common", "Hash"),
    "Address": ("multisig_payouts.models.common", "Address"),
    "Planck": ("multisig_payouts.models.common", "Planck"),
    "MultisigConfigIn": ("multisig_payouts.models.approvals", "MultisigConfigIn"),
    "MultisigConfig": ("multisig_payouts.models.approvals", "MultisigConfig"),
    "Approval": ("multisig_payouts.models.approvals", "Approval"),
    "ApprovalCreate": ("multisig_payouts.models.approvals", "ApprovalCreate"),
    "Vote": ("multisig_payouts.models.approvals", "Vote"),
    "VoteCreate": ("multisig_payouts.models.approvals", "VoteCreate"),
    "ApprovalProgress": ("multisig_payouts.models.approvals", "ApprovalProgress"),
    "EngineOutcome": ("multisig_payouts.models.approvals", "EngineOutcome"),
    "ReconcileResult": ("multisig_payouts.models.approvals", "ReconcileResult"),
    "MultisigStructure": ("multisig_payouts.models.approvals", "MultisigStructure"),
    "InitiateRequest": ("multisig_payouts.models.approvals", "InitiateRequest"),
    "SignatoryRequest": ("multisig_payouts.models.approvals", "SignatoryRequest"),
}

__all__ = list(_EXPORTS)


def __getattr__(name: str) -> Any:
    try:
        module_name, attr = _EXPORTS[name]
    except KeyError:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}") from None
    value = getattr(import_module(module_name), attr)
    globals()[name] = value
    return value


def __dir__():
    return sorted(list(globals().keys()) + __all__)
