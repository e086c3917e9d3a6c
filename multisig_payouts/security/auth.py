from __future__ import annotations

"""
API-key auth (Bearer/header/query) + CORS setup.

- Accepts API keys from:
    * Authorization: Bearer <token>
    * X-API-Key: <token>
    * ?api_key=<token> (query)

- Keys come from `Settings.security.api_keys` (env API_KEYS). With no keys
  configured the guard lets every request through; with keys configured
  every guarded route requires one.

Usage
-----
    from fastapi import Depends, FastAPI
    from multisig_payouts.security.auth import ApiKeyAuth, setup_cors

    app = FastAPI()
    setup_cors(app, settings.security.cors_allow_origins)

    require_key = ApiKeyAuth(valid_keys=settings.security.api_keys)

    @app.post("/approvals")
    async def initiate(_auth=Depends(require_key)):
        ...
"""

import hmac
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Set

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware

from multisig_payouts.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class ApiKeySources:
    header_auth: str = "authorization"
    header_api_key: str = "x-api-key"
    query_param: str = "api_key"


def _extract_bearer(token_hdr: str) -> Optional[str]:
    parts = token_hdr.split()
    if len(parts) == 2 and parts[0].lower() in ("bearer", "token"):
        return parts[1].strip()
    return None


class ApiKeyAuth:
    """
    FastAPI dependency that validates an API key from Authorization/X-API-Key/query.

    The instance is callable and can be used with `Depends(ApiKeyAuth(...))`.
    Returns the accepted key, or None when no keys are configured.
    """

    def __init__(
        self,
        *,
        valid_keys: Optional[Iterable[str]] = None,
        sources: ApiKeySources = ApiKeySources(),
        realm: str = "payouts",
    ) -> None:
        self.valid_keys: Set[str] = {k for k in (valid_keys or ()) if k}
        self.sources = sources
        self.realm = realm

    @property
    def enabled(self) -> bool:
        return bool(self.valid_keys)

    async def __call__(self, request: Request) -> Optional[str]:
        if not self.enabled:
            return None
        token = self._get_token_from_request(request)
        if token is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing API key",
                headers={"WWW-Authenticate": f'Bearer realm="{self.realm}"'},
            )
        if not self._is_valid(token):
            log.warning("api_key_rejected", path=request.url.path)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid API key",
                headers={"WWW-Authenticate": f'Bearer realm="{self.realm}"'},
            )
        return token

    def _get_token_from_request(self, request: Request) -> Optional[str]:
        h = request.headers
        auth_hdr = h.get(self.sources.header_auth)
        if auth_hdr:
            tok = _extract_bearer(auth_hdr)
            if tok:
                return tok
        api_key_hdr = h.get(self.sources.header_api_key)
        if api_key_hdr:
            return api_key_hdr.strip()
        q = request.query_params.get(self.sources.query_param)
        if q:
            return q.strip()
        return None

    def _is_valid(self, token: str) -> bool:
        # Constant-time comparison against each configured key
        return any(hmac.compare_digest(token, k) for k in self.valid_keys)


def setup_cors(app: FastAPI, origins: Sequence[str], *, allow_credentials: bool = False) -> None:
    """
    Install CORSMiddleware for the given origins. "*" allows any origin and
    is incompatible with credentials.
    """
    normalized = [o.rstrip("/") for o in origins]
    if not normalized:
        return
    wildcard = "*" in normalized
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if wildcard else normalized,
        allow_credentials=allow_credentials and not wildcard,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-API-Key", "X-Request-Id"],
        expose_headers=["X-Request-Id"],
        max_age=600,
    )


__all__ = ["ApiKeyAuth", "ApiKeySources", "setup_cors"]
