"""
substrate-interface implementation of :class:`ChainClient`.

substrate-interface is synchronous and keeps a single websocket; every call
is therefore serialized behind an ``asyncio.Lock`` and executed in a worker
thread. Submissions are bounded with ``asyncio.wait_for`` so a stalled node
cannot hold a request forever; when the bound elapses :class:`ChainTimeout`
is raised, the connection is discarded (its worker thread may still be
blocked on it) and the extrinsic may still be included later.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TypeVar

from scalecodec.base import ScaleBytes
from substrateinterface import Keypair, SubstrateInterface
from substrateinterface.exceptions import SubstrateRequestException

from ..logging import get_logger
from .chain import (AccountBalance, BountyInfo, CallSpec, ChainEvent,
                    ChainRejected, ChainTimeout, ChainTransportError,
                    FeeEstimate, PendingMultisig, ProxyDefinition,
                    SubmissionReceipt, Timepoint)
from .signer import Signer
from .ss58 import decode_address, resolve_format

log = get_logger(__name__)

T = TypeVar("T")


@dataclass
class SubstrateConfig:
    url: str
    network: str = "paseo"
    connect_timeout_s: float = 15.0
    query_timeout_s: float = 20.0


class _SignerKeypair:
    """Presents a :class:`Signer` with the attributes substrate-interface reads from a Keypair."""

    def __init__(self, signer: Signer, ss58_format: int):
        self._signer = signer
        self.public_key = signer.public_key
        self.crypto_type = signer.crypto_type
        self.ss58_format = ss58_format
        self.ss58_address = signer.address

    def sign(self, data: Any) -> bytes:
        if isinstance(data, ScaleBytes):
            data = data.data
        elif isinstance(data, str):
            data = bytes.fromhex(data.removeprefix("0x"))
        return self._signer.sign(bytes(data))


def _status_name(status: Any) -> tuple[str, Optional[str]]:
    """Bounty status is either a bare variant name or ``{Variant: {fields}}``."""
    if isinstance(status, str):
        return status, None
    if isinstance(status, dict) and status:
        name, body = next(iter(status.items()))
        curator = body.get("curator") if isinstance(body, dict) else None
        return str(name), curator
    return str(status), None


def _call_from_decoded(value: Dict[str, Any]) -> CallSpec:
    args: Dict[str, Any] = {}
    raw_args = value.get("call_args") or []
    if isinstance(raw_args, dict):
        raw_args = [{"name": k, "value": v} for k, v in raw_args.items()]
    for a in raw_args:
        args[a["name"]] = _decoded_arg(a.get("value"))
    return CallSpec(module=value["call_module"], function=value["call_function"], args=args)


def _decoded_arg(v: Any) -> Any:
    if isinstance(v, dict) and "call_module" in v and "call_function" in v:
        return _call_from_decoded(v)
    if isinstance(v, list):
        return [_decoded_arg(x) for x in v]
    return v


def _format_dispatch_error(err: Any) -> str:
    if isinstance(err, dict):
        name = err.get("name") or err.get("type") or "DispatchError"
        docs = err.get("docs")
        if isinstance(docs, list):
            docs = " ".join(docs)
        module = err.get("module") if isinstance(err.get("module"), str) else None
        head = f"{module}.{name}" if module else str(name)
        return f"{head}: {docs}" if docs else head
    return str(err)


class SubstrateChainClient:
    """
    Chain client for an Asset Hub node.

    Usage:
        async with SubstrateChainClient(SubstrateConfig(url=..., network="paseo")) as chain:
            bal = await chain.get_account_balance(addr)
    """

    def __init__(self, config: SubstrateConfig):
        self._cfg = config
        self._ss58_format = resolve_format(config.network)
        self._substrate: Optional[SubstrateInterface] = None
        self._lock = asyncio.Lock()

    # ---------- lifecycle ----------

    async def connect(self) -> None:
        if self._substrate is not None:
            return
        try:
            self._substrate = await asyncio.wait_for(
                asyncio.to_thread(SubstrateInterface, url=self._cfg.url, ss58_format=self._ss58_format),
                timeout=self._cfg.connect_timeout_s,
            )
        except asyncio.TimeoutError:
            raise ChainTimeout(f"connect to {self._cfg.url} timed out") from None
        except (ConnectionError, OSError, SubstrateRequestException) as e:
            raise ChainTransportError(f"connect to {self._cfg.url} failed: {e}") from e
        log.info("chain_connected", url=self._cfg.url, network=self._cfg.network)

    async def disconnect(self) -> None:
        if self._substrate is not None:
            await asyncio.to_thread(self._substrate.close)
            self._substrate = None
            log.info("chain_disconnected", url=self._cfg.url)

    async def __aenter__(self) -> "SubstrateChainClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    # ---------- core transport ----------

    async def _run(self, fn: Callable[[SubstrateInterface], T], *, timeout_s: Optional[float] = None) -> T:
        async with self._lock:
            if self._substrate is None:
                await self.connect()
            substrate = self._substrate
            assert substrate is not None
            try:
                return await asyncio.wait_for(
                    asyncio.to_thread(fn, substrate),
                    timeout=timeout_s or self._cfg.query_timeout_s,
                )
            except asyncio.TimeoutError:
                self._discard(substrate)
                raise ChainTimeout(f"node did not answer within {timeout_s or self._cfg.query_timeout_s}s") from None
            except SubstrateRequestException as e:
                raise ChainRejected(str(e), details={"rpc_error": e.args[0] if e.args else None}) from e
            except (ConnectionError, OSError) as e:
                raise ChainTransportError(f"node connection failed: {e}") from e

    def _discard(self, substrate: SubstrateInterface) -> None:
        """
        Drop a connection whose worker thread outlived its timeout. The thread
        may still be blocked on the websocket, so the next call must not share
        it: closing the socket unblocks the thread and the next call reconnects.
        """
        if self._substrate is substrate:
            self._substrate = None
        try:
            substrate.close()
        except (ConnectionError, OSError) as e:
            log.warning("chain_discard_failed", url=self._cfg.url, error=str(e))
        log.warning("chain_connection_discarded", url=self._cfg.url)

    def _keypair_for(self, address: str) -> Keypair:
        return Keypair(public_key=decode_address(address), ss58_format=self._ss58_format)

    # ---------- reads ----------

    async def get_account_balance(self, address: str) -> AccountBalance:
        def _q(s: SubstrateInterface) -> AccountBalance:
            info = s.query("System", "Account", [address]).value or {}
            data = info.get("data") or {}
            # pre-fungible runtimes report misc_frozen/fee_frozen instead of frozen
            frozen = data.get("frozen")
            if frozen is None:
                frozen = max(int(data.get("misc_frozen") or 0), int(data.get("fee_frozen") or 0))
            return AccountBalance(
                free=int(data.get("free") or 0),
                reserved=int(data.get("reserved") or 0),
                frozen=int(frozen or 0),
            )

        return await self._run(_q)

    async def get_bounty(self, bounty_id: int) -> Optional[BountyInfo]:
        def _q(s: SubstrateInterface) -> Optional[BountyInfo]:
            value = s.query("Bounties", "Bounties", [bounty_id]).value
            if not value:
                return None
            status, curator = _status_name(value.get("status"))
            return BountyInfo(
                bounty_id=bounty_id,
                value=int(value.get("value") or 0),
                status=status,
                curator=curator,
                fee=int(value.get("fee") or 0),
            )

        return await self._run(_q)

    async def get_next_child_bounty_id(self, parent_bounty_id: int) -> int:
        # child bounty ids are allocated from the global counter
        return await self._run(lambda s: int(s.query("ChildBounties", "ChildBountyCount").value or 0))

    async def find_pending_multisig(self, multisig_address: str, call_hash: str) -> Optional[PendingMultisig]:
        def _q(s: SubstrateInterface) -> Optional[PendingMultisig]:
            value = s.query("Multisig", "Multisigs", [multisig_address, call_hash]).value
            return self._pending_from(call_hash, value) if value else None

        return await self._run(_q)

    async def list_pending_multisigs(self, multisig_address: str) -> List[PendingMultisig]:
        def _q(s: SubstrateInterface) -> List[PendingMultisig]:
            out: List[PendingMultisig] = []
            for key, value in s.query_map("Multisig", "Multisigs", [multisig_address]):
                if value.value:
                    out.append(self._pending_from(str(key.value), value.value))
            return out

        return await self._run(_q)

    async def get_bounty_description(self, bounty_id: int) -> Optional[str]:
        def _q(s: SubstrateInterface) -> Optional[str]:
            raw = s.query("Bounties", "BountyDescriptions", [bounty_id]).value
            if not raw:
                return None
            if isinstance(raw, str) and raw.startswith("0x"):
                return bytes.fromhex(raw[2:]).decode("utf-8", errors="replace")
            return str(raw)

        return await self._run(_q)

    async def get_proxies(self, address: str) -> List[ProxyDefinition]:
        def _q(s: SubstrateInterface) -> List[ProxyDefinition]:
            value = s.query("Proxy", "Proxies", [address]).value
            # (Vec<ProxyDefinition>, deposit)
            entries = value[0] if isinstance(value, (list, tuple)) and value else []
            return [
                ProxyDefinition(
                    delegate=str(p.get("delegate")),
                    proxy_type=str(p.get("proxy_type")),
                    delay=int(p.get("delay") or 0),
                )
                for p in entries
            ]

        return await self._run(_q)

    @staticmethod
    def _pending_from(call_hash: str, value: Dict[str, Any]) -> PendingMultisig:
        when = value.get("when") or {}
        return PendingMultisig(
            call_hash=call_hash,
            when=Timepoint(height=int(when.get("height", 0)), index=int(when.get("index", 0))),
            deposit=int(value.get("deposit") or 0),
            depositor=str(value.get("depositor")),
            approvals=[str(a) for a in value.get("approvals") or []],
        )

    # ---------- calls ----------

    def _compose(self, s: SubstrateInterface, call: CallSpec):
        d = call.to_dict()
        return s.compose_call(call_module=d["call_module"], call_function=d["call_function"], call_params=d["call_args"])

    async def encode_call(self, call: CallSpec) -> bytes:
        return await self._run(lambda s: bytes(self._compose(s, call).data.data))

    async def decode_call(self, call_data: bytes) -> CallSpec:
        def _q(s: SubstrateInterface) -> CallSpec:
            obj = s.create_scale_object("Call", data=ScaleBytes(call_data))
            return _call_from_decoded(obj.decode())

        return await self._run(_q)

    async def estimate_fee(self, call_data: bytes, address: str) -> FeeEstimate:
        def _q(s: SubstrateInterface) -> FeeEstimate:
            obj = s.create_scale_object("Call", data=ScaleBytes(call_data))
            obj.decode()
            info = s.get_payment_info(call=obj, keypair=self._keypair_for(address)) or {}
            weight = info.get("weight") or {}
            if isinstance(weight, int):
                weight = {"ref_time": weight, "proof_size": 0}
            return FeeEstimate(
                partial_fee=int(info.get("partialFee") or info.get("partial_fee") or 0),
                weight={
                    "ref_time": int(weight.get("ref_time", 0)),
                    "proof_size": int(weight.get("proof_size", 0)),
                },
            )

        return await self._run(_q)

    async def submit(self, call: CallSpec, signer: Signer, timeout_s: float) -> SubmissionReceipt:
        keypair = getattr(signer, "keypair", None) or _SignerKeypair(signer, self._ss58_format)

        def _q(s: SubstrateInterface) -> SubmissionReceipt:
            extrinsic = s.create_signed_extrinsic(call=self._compose(s, call), keypair=keypair)
            receipt = s.submit_extrinsic(extrinsic, wait_for_inclusion=True)
            events: List[ChainEvent] = []
            for record in receipt.triggered_events:
                ev = record.value
                events.append(
                    ChainEvent(
                        module=str(ev.get("module_id")),
                        event=str(ev.get("event_id")),
                        attributes=ev.get("attributes"),
                    )
                )
            block_number = s.get_block_number(receipt.block_hash) if receipt.block_hash else None
            success = receipt.is_success
            return SubmissionReceipt(
                tx_hash=str(receipt.extrinsic_hash),
                block_hash=receipt.block_hash,
                block_number=block_number,
                extrinsic_index=receipt.extrinsic_idx,
                success=success,
                events=events,
                error=None if success else _format_dispatch_error(receipt.error_message),
            )

        log.info("extrinsic_submit", call=call.name, signer=signer.address)
        receipt = await self._run(_q, timeout_s=timeout_s)
        log.info(
            "extrinsic_included",
            call=call.name,
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            success=receipt.success,
        )
        return receipt


__all__ = ["SubstrateConfig", "SubstrateChainClient"]
