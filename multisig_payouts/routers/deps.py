"""
Request-scoped accessors for the components the app factory puts on
`app.state` (engine, signer registry, API-key guard).
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from ..adapters.signer import Signer, SignerRegistry
from ..errors import SignerUnavailable
from ..services.engine import MultisigEngine


def get_engine(request: Request) -> MultisigEngine:
    return request.app.state.engine


def get_signers(request: Request) -> SignerRegistry:
    return request.app.state.signers


async def require_api_key(request: Request) -> Optional[str]:
    return await request.app.state.auth(request)


def resolve_signer(signers: SignerRegistry, address: str) -> Signer:
    """Hot signer for `address`; the HTTP flow only signs with configured dev/test keys."""
    signer = signers.get(address)
    if signer is None:
        raise SignerUnavailable(address)
    return signer


__all__ = ["get_engine", "get_signers", "require_api_key", "resolve_signer"]
