from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from .adapters.signer import SignerRegistry
from .adapters.ss58 import resolve_format
from .adapters.substrate import SubstrateChainClient, SubstrateConfig
from .config import Settings, get_settings
from .logging import get_logger, setup_logging
from .metrics import setup_metrics
from .middleware.errors import install_error_handlers
from .middleware.request_id import install_request_id_middleware
from .routers import build_router
from .security.auth import ApiKeyAuth, setup_cors
from .services.engine import MultisigEngine
from .storage import ApprovalStore, CommitteeConfigStore, Database
from .version import __version__

log = get_logger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    App lifespan: migrate the database and connect the chain client, then
    disconnect and close on shutdown.
    """
    engine: MultisigEngine = app.state.engine
    db = engine.store.db

    db.run_migrations()
    await engine.chain.connect()
    log.info("service_started", version=__version__, network=app.state.settings.chain.network)
    try:
        yield
    finally:
        await engine.chain.disconnect()
        db.close()
        log.info("service_stopped")


def build_engine(settings: Settings, metrics=None) -> MultisigEngine:
    """Wire the production engine: substrate-interface client + SQLite stores."""
    chain = SubstrateChainClient(
        SubstrateConfig(url=settings.chain.rpc_url, network=settings.chain.network)
    )
    db = Database(settings.storage.db_path)
    return MultisigEngine(chain, ApprovalStore(db), CommitteeConfigStore(db), settings, metrics=metrics)


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[MultisigEngine] = None,
    *,
    signers: Optional[SignerRegistry] = None,
) -> FastAPI:
    """
    FastAPI factory. Mounts routers, middleware and metrics.

    `engine` and `signers` are injectable so tests can run the full HTTP
    surface against an in-memory chain.
    """
    cfg = settings or get_settings()
    setup_logging(level=cfg.log_level, log_format=cfg.log_format)

    app = FastAPI(
        title="Grant Multisig Payouts",
        version=__version__,
        lifespan=_lifespan,
    )
    app.state.settings = cfg

    install_request_id_middleware(app)
    setup_cors(app, cfg.security.cors_allow_origins)
    install_error_handlers(app)
    metrics = setup_metrics(app, service_version=__version__)

    app.state.engine = engine or build_engine(cfg, metrics=metrics)
    app.state.signers = signers if signers is not None else SignerRegistry.from_suris(
        cfg.security.signer_suris, ss58_format=resolve_format(cfg.chain.network)
    )
    app.state.auth = ApiKeyAuth(valid_keys=cfg.security.api_keys)

    app.include_router(build_router())
    return app


__all__ = ["create_app", "build_engine"]
