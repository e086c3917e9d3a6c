"""
Adapters between the payout services and external systems.

- ss58       : address codec and multisig account derivation
- chain      : ChainClient protocol and the plain value types it returns
- substrate  : ChainClient implementation on substrate-interface
- signer     : Signer protocol, Keypair-backed signer and dev/test registry

Submodules are loaded lazily via PEP 562 (__getattr__) so the pure helpers
can be imported without opening a websocket stack.
"""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING

__all__ = ["ss58", "chain", "substrate", "signer"]


def __getattr__(name: str):
    if name in __all__:
        return importlib.import_module(f".{name}", __name__)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(list(globals().keys()) + __all__)


if TYPE_CHECKING:
    from . import chain, signer, ss58, substrate
