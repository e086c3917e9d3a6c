"""
Signing capability handed to the engine.

The service never stores keys. A :class:`Signer` is whatever the caller can
produce for the acting signatory: a browser-extension bridge, a remote
signer, or (for development and tests only) a hot key loaded from a secret
URI through :class:`SignerRegistry`.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Protocol, runtime_checkable

from substrateinterface import Keypair, KeypairType

from ..logging import get_logger
from .ss58 import decode_address

log = get_logger(__name__)


@runtime_checkable
class Signer(Protocol):
    address: str
    public_key: bytes
    crypto_type: int

    def sign(self, data: bytes) -> bytes: ...


class KeypairSigner:
    """Signer backed by a substrate-interface ``Keypair``."""

    def __init__(self, keypair: Keypair):
        self.keypair = keypair

    @classmethod
    def from_uri(cls, suri: str, *, ss58_format: int = 42, crypto_type: int = KeypairType.SR25519) -> "KeypairSigner":
        return cls(Keypair.create_from_uri(suri, ss58_format=ss58_format, crypto_type=crypto_type))

    @property
    def address(self) -> str:
        return self.keypair.ss58_address

    @property
    def public_key(self) -> bytes:
        return bytes(self.keypair.public_key)

    @property
    def crypto_type(self) -> int:
        return self.keypair.crypto_type

    def sign(self, data: bytes) -> bytes:
        return self.keypair.sign(data)

    def __repr__(self) -> str:
        return f"KeypairSigner({self.address})"


class SignerRegistry:
    """
    Account-keyed lookup of available signers. Keys are decoded account
    bytes, so any SS58 rendering of the same account finds its signer.
    """

    def __init__(self, signers: Iterable[Signer] = ()):
        self._by_account: Dict[bytes, Signer] = {}
        for s in signers:
            self.add(s)

    @classmethod
    def from_suris(cls, suris: Iterable[str], *, ss58_format: int = 42) -> "SignerRegistry":
        reg = cls()
        for suri in suris:
            signer = KeypairSigner.from_uri(suri, ss58_format=ss58_format)
            reg.add(signer)
        if reg:
            log.warning("hot_signers_loaded", count=len(reg), note="dev/test only")
        return reg

    def add(self, signer: Signer) -> None:
        self._by_account[decode_address(signer.address)] = signer

    def get(self, address: str) -> Optional[Signer]:
        return self._by_account.get(decode_address(address))

    def __len__(self) -> int:
        return len(self._by_account)

    def __bool__(self) -> bool:
        return bool(self._by_account)


__all__ = ["Signer", "KeypairSigner", "SignerRegistry"]
