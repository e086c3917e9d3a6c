"""
Chain client interface for the Asset Hub node.

The engine never talks to substrate-interface directly; it depends on the
:class:`ChainClient` protocol defined here. Two implementations exist:

- :class:`multisig_payouts.adapters.substrate.SubstrateChainClient` for a
  real node, and
- the in-memory fake used by the test-suite.

Values crossing this boundary are plain dataclasses so they can be logged,
persisted and asserted on without any SCALE types leaking into the service
layer. Amounts are integers in planck.

Notes
-----
* A call is described by an immutable :class:`CallSpec` tree. Nested calls
  (``Utility.batch_all``'s ``calls``, ``Proxy.proxy``'s ``call``) are
  ``CallSpec`` values inside ``args``.
* ``submit`` signs, submits and waits for inclusion; it returns a receipt
  even when the extrinsic failed on chain (``success=False``), and raises
  only for transport failures, rejections before inclusion and timeouts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional,
                    Protocol, runtime_checkable)

if TYPE_CHECKING:
    from .signer import Signer


# ----------------------------- Errors ---------------------------------------


class ChainError(Exception):
    """Base class for all chain adapter errors."""

    def __init__(self, message: str, *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})


class ChainTransportError(ChainError):
    """Connection or RPC transport failure; nothing is known about the chain state."""


class ChainTimeout(ChainError):
    """The bounded inclusion wait elapsed. The extrinsic may still land."""


class ChainRejected(ChainError):
    """The node refused the extrinsic before inclusion (pool validity, bad signature...)."""


# ----------------------------- Call trees -----------------------------------


def _arg_to_dict(value: Any) -> Any:
    if isinstance(value, CallSpec):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_arg_to_dict(v) for v in value]
    if isinstance(value, dict):
        return {k: _arg_to_dict(v) for k, v in value.items()}
    return value


@dataclass(frozen=True)
class CallSpec:
    module: str
    function: str
    args: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return f"{self.module}.{self.function}"

    def to_dict(self) -> Dict[str, Any]:
        """Shape accepted by ``SubstrateInterface.compose_call`` for nested calls."""
        return {
            "call_module": self.module,
            "call_function": self.function,
            "call_args": {k: _arg_to_dict(v) for k, v in self.args.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CallSpec":
        def _arg(v: Any) -> Any:
            if isinstance(v, Mapping) and "call_module" in v and "call_function" in v:
                return cls.from_dict(v)
            if isinstance(v, list):
                return [_arg(x) for x in v]
            return v

        return cls(
            module=str(data["call_module"]),
            function=str(data["call_function"]),
            args={k: _arg(v) for k, v in (data.get("call_args") or {}).items()},
        )

    def walk(self) -> Iterator["CallSpec"]:
        """Depth-first iteration over this call and every nested call."""
        yield self
        for v in self.args.values():
            items = v if isinstance(v, (list, tuple)) else [v]
            for item in items:
                if isinstance(item, CallSpec):
                    yield from item.walk()


# ----------------------------- Chain values ---------------------------------


@dataclass(frozen=True)
class AccountBalance:
    free: int = 0
    reserved: int = 0
    frozen: int = 0

    @property
    def total(self) -> int:
        return self.free + self.reserved

    @property
    def transferable(self) -> int:
        return max(self.free - self.frozen, 0)


@dataclass(frozen=True)
class BountyInfo:
    bounty_id: int
    value: int
    status: str
    curator: Optional[str] = None
    fee: int = 0


@dataclass(frozen=True)
class FeeEstimate:
    partial_fee: int
    weight: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Timepoint:
    """Block height and extrinsic index of the call that opened a multisig operation."""

    height: int
    index: int

    def to_dict(self) -> Dict[str, int]:
        return {"height": self.height, "index": self.index}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Timepoint":
        return cls(height=int(data["height"]), index=int(data["index"]))


@dataclass(frozen=True)
class ChainEvent:
    module: str
    event: str
    attributes: Any = None

    @property
    def name(self) -> str:
        return f"{self.module}.{self.event}"


@dataclass
class SubmissionReceipt:
    tx_hash: str
    block_hash: Optional[str] = None
    block_number: Optional[int] = None
    extrinsic_index: Optional[int] = None
    success: bool = True
    events: List[ChainEvent] = field(default_factory=list)
    error: Optional[str] = None

    def find_events(self, module: str, event: str) -> List[ChainEvent]:
        return [e for e in self.events if e.module == module and e.event == event]


@dataclass(frozen=True)
class PendingMultisig:
    call_hash: str
    when: Timepoint
    deposit: int
    depositor: str
    approvals: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "call_hash": self.call_hash,
            "when": self.when.to_dict(),
            "deposit": str(self.deposit),
            "depositor": self.depositor,
            "approvals": list(self.approvals),
        }


@dataclass(frozen=True)
class ProxyDefinition:
    """One entry of ``Proxy.Proxies`` for an account: who may act for it, and how."""

    delegate: str
    proxy_type: str
    delay: int = 0


# ----------------------------- Protocol -------------------------------------


@runtime_checkable
class ChainClient(Protocol):
    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def get_account_balance(self, address: str) -> AccountBalance: ...

    async def get_bounty(self, bounty_id: int) -> Optional[BountyInfo]: ...

    async def get_next_child_bounty_id(self, parent_bounty_id: int) -> int: ...

    async def encode_call(self, call: CallSpec) -> bytes: ...

    async def decode_call(self, call_data: bytes) -> CallSpec: ...

    async def estimate_fee(self, call_data: bytes, address: str) -> FeeEstimate: ...

    async def submit(self, call: CallSpec, signer: "Signer", timeout_s: float) -> SubmissionReceipt: ...

    async def find_pending_multisig(self, multisig_address: str, call_hash: str) -> Optional[PendingMultisig]: ...

    async def list_pending_multisigs(self, multisig_address: str) -> List[PendingMultisig]: ...

    async def get_bounty_description(self, bounty_id: int) -> Optional[str]: ...

    async def get_proxies(self, address: str) -> List[ProxyDefinition]: ...


__all__ = [
    "ChainError",
    "ChainTransportError",
    "ChainTimeout",
    "ChainRejected",
    "CallSpec",
    "AccountBalance",
    "BountyInfo",
    "FeeEstimate",
    "Timepoint",
    "ChainEvent",
    "SubmissionReceipt",
    "PendingMultisig",
    "ProxyDefinition",
    "ChainClient",
]
