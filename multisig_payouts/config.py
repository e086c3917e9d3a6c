from __future__ import annotations

"""
Configuration loader for the multisig payout service.

- Reads environment variables (optionally from `.env`) via pydantic-settings.
- Groups chain, preflight, security and storage options into typed sub-configs.
- Exposes a cached `get_settings()` accessor.

Environment variables (high-level):
    NETWORK                       (str, default "paseo")  - paseo | polkadot | kusama
    CHAIN_RPC_URL                 (str)                   - Asset Hub node endpoint (ws/wss/http)
    SUBMISSION_TIMEOUT_S          (float, default 30)     - inclusion wait per submission
    LOG_LEVEL                     (str, default "INFO")
    LOG_FORMAT                    (str, default "json")

Preflight:
    MAX_BATCH_CALLS               (int, default 10)
    FEE_MARGIN_PERCENT            (int, default 10)
    PREFLIGHT_STRICT              (bool, default False)  - escalate warnings to failures

Security:
    API_KEYS                      (csv|json list)        - Optional API keys (bearer or header)
    SIGNER_SURIS                  (csv|json list)        - Hot signer secret URIs (dev/test only)
    CORS_ALLOW_ORIGINS            (csv|json list)

Storage:
    DB_PATH                       (str, default "./.data/payouts.db")

Notes
-----
- Lists accept comma-separated strings or JSON arrays.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ----------------------------- Helpers & Models ------------------------------ #


def _parse_list(val: Optional[str | List[str]], *, default: List[str]) -> List[str]:
    if val is None:
        return list(default)
    if isinstance(val, list):
        return [str(x) for x in val]
    s = val.strip()
    if not s:
        return []
    if s.startswith("[") and s.endswith("]"):
        try:
            parsed = json.loads(s)
            return [str(x) for x in parsed]
        except ValueError:
            pass
    return [x.strip() for x in s.split(",") if x.strip()]


class ChainConfig(BaseModel):
    network: Literal["paseo", "polkadot", "kusama"] = "paseo"
    rpc_url: str = "wss://asset-hub-paseo-rpc.dwellir.com"
    submission_timeout_s: float = Field(30.0, gt=0)


class PreflightConfig(BaseModel):
    max_batch_calls: int = Field(10, ge=1)
    fee_margin_percent: int = Field(10, ge=0)
    strict: bool = False


class SecurityConfig(BaseModel):
    api_keys: List[str] = Field(default_factory=list)
    signer_suris: List[str] = Field(
        default_factory=list, description="Hot signer secret URIs (dev/test only)."
    )
    cors_allow_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"]
    )


class StorageConfig(BaseModel):
    db_path: Path = Path("./.data/payouts.db")


# --------------------------------- Settings ---------------------------------- #


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", case_sensitive=False, extra="ignore"
    )

    log_level: str = Field("INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_format: str = Field("json", description="json | console")

    # --- Env bridges (.env keys -> nested models) ------------------------------
    # Must stay above the sub-configs: validators only see earlier fields.
    NETWORK: Optional[str] = Field(default=None, alias="NETWORK")
    CHAIN_RPC_URL: Optional[str] = Field(default=None, alias="CHAIN_RPC_URL")
    SUBMISSION_TIMEOUT_S: Optional[float] = Field(default=None, alias="SUBMISSION_TIMEOUT_S")
    MAX_BATCH_CALLS: Optional[int] = Field(default=None, alias="MAX_BATCH_CALLS")
    FEE_MARGIN_PERCENT: Optional[int] = Field(default=None, alias="FEE_MARGIN_PERCENT")
    PREFLIGHT_STRICT: Optional[bool] = Field(default=None, alias="PREFLIGHT_STRICT")
    API_KEYS: Optional[str | List[str]] = Field(default=None, alias="API_KEYS")
    SIGNER_SURIS: Optional[str | List[str]] = Field(default=None, alias="SIGNER_SURIS")
    CORS_ALLOW_ORIGINS: Optional[str | List[str]] = Field(default=None, alias="CORS_ALLOW_ORIGINS")
    DB_PATH: Optional[str] = Field(default=None, alias="DB_PATH")

    # Sub-configs
    chain: ChainConfig = Field(default_factory=ChainConfig, validate_default=True)
    preflight: PreflightConfig = Field(default_factory=PreflightConfig, validate_default=True)
    security: SecurityConfig = Field(default_factory=SecurityConfig, validate_default=True)
    storage: StorageConfig = Field(default_factory=StorageConfig, validate_default=True)

    @field_validator("chain", mode="after")
    def _apply_chain_env(cls, v: ChainConfig, info):
        data = info.data
        if data.get("NETWORK"):
            v.network = str(data["NETWORK"]).lower()  # type: ignore[assignment]
            if v.network not in ("paseo", "polkadot", "kusama"):
                raise ValueError(f"unsupported NETWORK {data['NETWORK']!r}")
        if data.get("CHAIN_RPC_URL"):
            v.rpc_url = str(data["CHAIN_RPC_URL"])
        if data.get("SUBMISSION_TIMEOUT_S") is not None:
            v.submission_timeout_s = float(data["SUBMISSION_TIMEOUT_S"])
        return v

    @field_validator("preflight", mode="after")
    def _apply_preflight_env(cls, v: PreflightConfig, info):
        data = info.data
        if data.get("MAX_BATCH_CALLS") is not None:
            v.max_batch_calls = int(data["MAX_BATCH_CALLS"])
        if data.get("FEE_MARGIN_PERCENT") is not None:
            v.fee_margin_percent = int(data["FEE_MARGIN_PERCENT"])
        if data.get("PREFLIGHT_STRICT") is not None:
            v.strict = bool(data["PREFLIGHT_STRICT"])
        return v

    @field_validator("security", mode="after")
    def _apply_security_env(cls, v: SecurityConfig, info):
        data = info.data
        if data.get("API_KEYS") is not None:
            v.api_keys = _parse_list(data["API_KEYS"], default=v.api_keys)
        if data.get("SIGNER_SURIS") is not None:
            v.signer_suris = _parse_list(data["SIGNER_SURIS"], default=v.signer_suris)
        if data.get("CORS_ALLOW_ORIGINS") is not None:
            v.cors_allow_origins = _parse_list(
                data["CORS_ALLOW_ORIGINS"], default=v.cors_allow_origins
            )
        return v

    @field_validator("storage", mode="after")
    def _apply_storage_env(cls, v: StorageConfig, info):
        db = info.data.get("DB_PATH")
        if db:
            v.db_path = Path(db)
        return v


# ------------------------------- Accessor API -------------------------------- #


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


__all__ = [
    "Settings",
    "ChainConfig",
    "PreflightConfig",
    "SecurityConfig",
    "StorageConfig",
    "get_settings",
]
