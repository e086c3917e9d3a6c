"""
multisig_payouts.services
=========================

Service layer of the payout engine, exposed as lazy submodules so that
importing `multisig_payouts.services` does not pull in the chain SDK.

Usage
-----
    from multisig_payouts.services import engine, preflight

    out = await engine.MultisigEngine(chain, store, committees, settings).initiate(...)
    result = await preflight.Preflight(chain, oracle).run(call_data, signer, "paseo")

Public submodules
-----------------
- balance      : Fee and funding-source (parent bounty) checks.
- call_builder : Deterministic five-step child-bounty payout call.
- preflight    : Static payload analysis plus fee estimation.
- multisig     : Quorum predicates, Multisig call shapes, event readers.
- diagnostics  : Chain error classification and root-cause hints.
- engine       : Approval state machine (initiate / vote / execute / cancel).
"""

from __future__ import annotations

from importlib import import_module

__all__ = ["balance", "call_builder", "preflight", "multisig", "diagnostics", "engine"]


def __getattr__(name: str):
    """Lazily import service submodules on first access."""
    if name in __all__:
        return import_module(f".{name}", __name__)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(list(globals().keys()) + __all__)
