"""
ss58.py
-------

Address codec for Substrate accounts.

The same 32-byte account appears under different SS58 prefixes depending on
the network (Polkadot and Paseo use 0, Kusama 2, generic Substrate 42), so
every comparison and every on-chain argument goes through the decoded bytes.
Text comparison of SS58 strings is never used for identity.

Public helpers:
- `decode_address(address) -> bytes`         (raises InvalidAddress)
- `convert(address, target_format) -> str`   (raises InvalidAddress)
- `same_account(a, b) -> bool`               (never raises)
- `sort_signatories(addresses) -> list[str]`
- `get_other_signatories(addresses, me) -> list[str]`
- `multisig_account_id(signatories, threshold) -> bytes`
- `compute_multisig_address(signatories, threshold, ss58_format) -> str`
- `bounty_account_address(bounty_id, ss58_format) -> str`
- `validate_multisig_config(expected, signatories, threshold) -> dict`
- `is_signatory(address, signatories) -> bool`

SS58 checksum handling is delegated to scalecodec; the multisig account
derivation mirrors pallet-multisig (`blake2_256("modlpy/utilisuba" ++
SCALE(Vec<AccountId>) ++ u16le(threshold))`).
"""

from __future__ import annotations

import hashlib
import re
from typing import Any, Dict, Iterable, List, Optional, Union

from scalecodec.utils.ss58 import ss58_decode, ss58_encode

from ..errors import InvalidAddress
from ..logging import get_logger

log = get_logger(__name__)

SS58_FORMATS: Dict[str, int] = {
    "polkadot": 0,
    "kusama": 2,
    "substrate": 42,
    "paseo": 0,
}

MULTISIG_PREFIX = b"modlpy/utilisuba"
TREASURY_PALLET_ID = b"py/trsry"

_HEX_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def resolve_format(target: Union[int, str]) -> int:
    """Map a network name or raw prefix to an SS58 format number."""
    if isinstance(target, bool):
        raise ValueError(f"invalid ss58 format {target!r}")
    if isinstance(target, int):
        if not 0 <= target < 16384:
            raise ValueError(f"ss58 format out of range: {target}")
        return target
    key = str(target).strip().lower()
    if key.isdigit():
        return resolve_format(int(key))
    try:
        return SS58_FORMATS[key]
    except KeyError:
        raise ValueError(f"unknown network {target!r}") from None


# ------------------------------- Codec ---------------------------------------


def decode_address(address: Any) -> bytes:
    """
    Decode an SS58 address (any prefix) or a 0x-prefixed 32-byte hex key to
    the underlying account bytes.
    """
    if isinstance(address, (bytes, bytearray)):
        if len(address) == 32:
            return bytes(address)
        raise InvalidAddress(address.hex(), "expected 32 account bytes")
    if not isinstance(address, str) or not address.strip():
        raise InvalidAddress(address, "empty or not a string")
    s = address.strip()
    if s.startswith("0x"):
        if not _HEX_RE.match(s):
            raise InvalidAddress(s, "hex public key must be 32 bytes")
        return bytes.fromhex(s[2:])
    try:
        pub_hex = ss58_decode(s)
    except (ValueError, TypeError, IndexError, KeyError) as e:
        raise InvalidAddress(s, str(e) or "invalid ss58 checksum") from None
    raw = bytes.fromhex(pub_hex.removeprefix("0x"))
    if len(raw) != 32:
        raise InvalidAddress(s, f"decodes to {len(raw)} bytes, expected 32")
    return raw


def encode_address(account: bytes, ss58_format: Union[int, str]) -> str:
    return ss58_encode(account, ss58_format=resolve_format(ss58_format))


def convert(address: Any, target_format: Union[int, str]) -> str:
    """Re-encode `address` under `target_format` (prefix number or network name)."""
    raw = decode_address(address)
    try:
        fmt = resolve_format(target_format)
    except ValueError as e:
        raise InvalidAddress(address, str(e)) from None
    return ss58_encode(raw, ss58_format=fmt)


def same_account(a: Any, b: Any) -> bool:
    try:
        return decode_address(a) == decode_address(b)
    except InvalidAddress as e:
        log.warning("address_compare_malformed", error=e.message)
        return False


# ------------------------------- Signatories ---------------------------------


def sort_signatories(addresses: Iterable[str]) -> List[str]:
    """
    Order signatories by their account bytes, which is the order
    pallet-multisig requires for `other_signatories`. Output keeps each
    input's text; duplicates (same account) are dropped.
    """
    seen: Dict[bytes, str] = {}
    for addr in addresses:
        seen.setdefault(decode_address(addr), addr)
    return [seen[k] for k in sorted(seen)]


def get_other_signatories(addresses: Iterable[str], me: str) -> List[str]:
    me_raw = decode_address(me)
    return sort_signatories(a for a in addresses if decode_address(a) != me_raw)


def is_signatory(address: str, signatories: Iterable[str]) -> bool:
    return any(same_account(address, s) for s in signatories)


# ------------------------------- Multisig account ----------------------------


def _compact_len(n: int) -> bytes:
    # SCALE compact encoding; signatory lists never exceed the 4-byte mode
    if n < 1 << 6:
        return bytes([n << 2])
    if n < 1 << 14:
        return ((n << 2) | 0b01).to_bytes(2, "little")
    if n < 1 << 30:
        return ((n << 2) | 0b10).to_bytes(4, "little")
    raise ValueError("too many signatories")


def multisig_account_id(signatories: Iterable[str], threshold: int) -> bytes:
    accounts = sorted({decode_address(s) for s in signatories})
    if not accounts:
        raise ValueError("at least one signatory is required")
    if not 1 <= threshold <= len(accounts):
        raise ValueError(f"threshold must be between 1 and {len(accounts)}")
    payload = MULTISIG_PREFIX + _compact_len(len(accounts)) + b"".join(accounts)
    payload += threshold.to_bytes(2, "little")
    return hashlib.blake2b(payload, digest_size=32).digest()


def compute_multisig_address(
    signatories: Iterable[str], threshold: int, ss58_format: Union[int, str] = 42
) -> str:
    return encode_address(multisig_account_id(signatories, threshold), ss58_format)


def bounty_account_id(bounty_id: int) -> bytes:
    """Sub-account holding a bounty's funds: `("modl", "py/trsry", ("bt", u32))`, zero padded."""
    if not 0 <= bounty_id < 1 << 32:
        raise ValueError(f"bounty id out of range: {bounty_id}")
    raw = b"modl" + TREASURY_PALLET_ID + _compact_len(2) + b"bt" + bounty_id.to_bytes(4, "little")
    return raw.ljust(32, b"\x00")


def bounty_account_address(bounty_id: int, ss58_format: Union[int, str] = 42) -> str:
    return encode_address(bounty_account_id(bounty_id), ss58_format)


def validate_multisig_config(
    expected_address: str,
    signatories: List[str],
    threshold: int,
    ss58_format: Optional[Union[int, str]] = None,
) -> Dict[str, Any]:
    """
    Check that `expected_address` is the multisig account of
    (`signatories`, `threshold`).

    Returns ``{"valid", "computed_address", "expected_address", "error"}``.
    The computed address is rendered with `ss58_format` when given, else the
    generic Substrate prefix.
    """
    result: Dict[str, Any] = {
        "valid": False,
        "computed_address": None,
        "expected_address": expected_address,
        "error": None,
    }
    try:
        account = multisig_account_id(signatories, threshold)
        result["computed_address"] = encode_address(
            account, ss58_format if ss58_format is not None else 42
        )
        result["valid"] = decode_address(expected_address) == account
        if not result["valid"]:
            result["error"] = "Multisig address does not match signatories and threshold"
    except (InvalidAddress, ValueError) as e:
        result["error"] = e.message if isinstance(e, InvalidAddress) else str(e)
    return result


__all__ = [
    "SS58_FORMATS",
    "resolve_format",
    "decode_address",
    "encode_address",
    "convert",
    "same_account",
    "sort_signatories",
    "get_other_signatories",
    "is_signatory",
    "multisig_account_id",
    "compute_multisig_address",
    "bounty_account_id",
    "bounty_account_address",
    "validate_multisig_config",
]
