from __future__ import annotations

from pathlib import Path
from typing import AsyncIterator, Iterator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from multisig_payouts.adapters import ss58
from multisig_payouts.adapters.signer import SignerRegistry
from multisig_payouts.app import create_app
from multisig_payouts.config import Settings
from multisig_payouts.metrics import Metrics
from multisig_payouts.models.approvals import MultisigConfig, MultisigConfigIn
from multisig_payouts.services.engine import MultisigEngine
from multisig_payouts.storage import ApprovalStore, CommitteeConfigStore, Database

from .fakes import ALICE, BOB, CHARLIE, DAVE, EVE, PARENT_BOUNTY, FakeChain, FakeSigner

COMMITTEE_ID = 1
SIGNATORIES = [ALICE, BOB, CHARLIE]


def committee_config(threshold: int = 2, **overrides) -> MultisigConfigIn:
    """Committee of Alice, Bob and Charlie; Dave curates the parent bounty."""
    signatories = overrides.pop("signatories", SIGNATORIES)
    data = dict(
        multisig_address=ss58.compute_multisig_address(signatories, threshold, "paseo"),
        signatories=signatories,
        threshold=threshold,
        network="paseo",
        parent_bounty_id=PARENT_BOUNTY,
        curator_address=DAVE,
    )
    data.update(overrides)
    return MultisigConfigIn(**data)


# ----------------------------
# Settings & storage
# ----------------------------
@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(DB_PATH=str(tmp_path / "payouts.db"), log_level="WARNING", log_format="console")


@pytest.fixture
def db(settings: Settings) -> Iterator[Database]:
    """Migrated database in the per-test temp directory."""
    database = Database(settings.storage.db_path)
    database.run_migrations()
    yield database
    database.close()


@pytest.fixture
def store(db: Database) -> ApprovalStore:
    return ApprovalStore(db)


@pytest.fixture
def committees(db: Database) -> CommitteeConfigStore:
    return CommitteeConfigStore(db)


@pytest.fixture
def committee(committees: CommitteeConfigStore) -> MultisigConfig:
    """Threshold-2 committee stored under COMMITTEE_ID."""
    return committees.upsert_config(COMMITTEE_ID, committee_config())


# ----------------------------
# Chain, signers & engine
# ----------------------------
@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def signers() -> SignerRegistry:
    return SignerRegistry(FakeSigner(a) for a in (ALICE, BOB, CHARLIE, EVE))


@pytest.fixture
def metrics() -> Metrics:
    return Metrics(service_version="test")


@pytest.fixture
def engine(
    chain: FakeChain,
    store: ApprovalStore,
    committees: CommitteeConfigStore,
    settings: Settings,
    metrics: Metrics,
) -> MultisigEngine:
    return MultisigEngine(chain, store, committees, settings, metrics=metrics)


# ----------------------------
# FastAPI application fixtures
# ----------------------------
@pytest.fixture
def app(settings: Settings, engine: MultisigEngine, signers: SignerRegistry) -> FastAPI:
    """
    App wired to the fake chain. ASGITransport does not run the lifespan,
    which is why the `db` fixture migrates up front.
    """
    return create_app(settings, engine=engine, signers=signers)


@pytest.fixture
async def aclient(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
