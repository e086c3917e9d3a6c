from __future__ import annotations

"""
Common API model types: Hex, Hash, Address and Planck.

- Hex:      0x-prefixed, even-length, lowercase hex string.
- Hash:     0x + 64 hex chars (32 bytes), lowercase.
- Address:  SS58 address (any network prefix) or 0x-hex 32-byte public key.
- Planck:   non-negative integer amount; accepted as int or decimal string
            and serialized as a string, since balances overflow JSON numbers.
"""

import re
from typing import Annotated, Any

from pydantic import AfterValidator, BeforeValidator, PlainSerializer

# ----------------------------- HEX HELPERS -----------------------------

_HEX_BODY = re.compile(r"^[0-9a-f]*$")


def _normalize_hex(v: str) -> str:
    if not isinstance(v, str):
        raise TypeError("value must be a string")
    v = v.strip()
    if not v.startswith("0x"):
        raise ValueError("hex value must start with 0x")
    h = v[2:].lower()
    if len(h) % 2 != 0 or not _HEX_BODY.match(h):
        raise ValueError("hex must have an even number of hex digits")
    return "0x" + h


def _validate_hash(v: str) -> str:
    v = _normalize_hex(v)
    if len(v) != 66:
        raise ValueError("hash must be 0x + 64 hex chars")
    return v


# --------------------------- ADDRESS HELPERS ---------------------------


def _validate_address(v: str) -> str:
    """Full SS58 checksum validation; the text is kept as given (stripped)."""
    from ..adapters.ss58 import decode_address
    from ..errors import InvalidAddress

    if not isinstance(v, str):
        raise TypeError("address must be a string")
    try:
        decode_address(v)
    except InvalidAddress as e:
        raise ValueError(e.message) from None
    return v.strip()


# ---------------------------- AMOUNT HELPERS ---------------------------


def _coerce_planck(v: Any) -> int:
    if isinstance(v, bool):
        raise ValueError("amount must be an integer")
    if isinstance(v, str):
        s = v.strip().replace("_", "")
        if not s.isdigit():
            raise ValueError("amount must be a non-negative integer string (planck)")
        return int(s)
    if isinstance(v, int):
        if v < 0:
            raise ValueError("amount must be non-negative")
        return v
    raise ValueError("amount must be an integer number of planck")


# --------------------------- PUBLIC TYPE ALIASES -----------------------

Hex = Annotated[str, AfterValidator(_normalize_hex)]
Hash = Annotated[str, AfterValidator(_validate_hash)]
Address = Annotated[str, AfterValidator(_validate_address)]
Planck = Annotated[int, BeforeValidator(_coerce_planck), PlainSerializer(str, return_type=str, when_used="json")]


__all__ = ["Hex", "Hash", "Address", "Planck"]
