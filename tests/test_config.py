from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from multisig_payouts.config import Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for key in ("NETWORK", "CHAIN_RPC_URL", "API_KEYS", "SIGNER_SURIS", "DB_PATH", "PREFLIGHT_STRICT"):
        monkeypatch.delenv(key, raising=False)
    # keep a developer's .env out of the picture
    monkeypatch.chdir(tmp_path)


def test_defaults():
    s = Settings()
    assert s.chain.network == "paseo"
    assert s.preflight.max_batch_calls == 10
    assert s.preflight.fee_margin_percent == 10
    assert s.preflight.strict is False
    assert s.security.api_keys == []
    assert s.storage.db_path == Path("./.data/payouts.db")


def test_env_bridges(monkeypatch):
    monkeypatch.setenv("NETWORK", "Kusama")
    monkeypatch.setenv("CHAIN_RPC_URL", "ws://127.0.0.1:9944")
    monkeypatch.setenv("DB_PATH", "/tmp/other.db")
    monkeypatch.setenv("PREFLIGHT_STRICT", "true")
    s = Settings()
    assert s.chain.network == "kusama"
    assert s.chain.rpc_url == "ws://127.0.0.1:9944"
    assert s.storage.db_path == Path("/tmp/other.db")
    assert s.preflight.strict is True


@pytest.mark.parametrize("raw", ["k1, k2", '["k1", "k2"]'])
def test_api_keys_csv_or_json(monkeypatch, raw):
    monkeypatch.setenv("API_KEYS", raw)
    assert Settings().security.api_keys == ["k1", "k2"]


def test_signer_suris_from_init():
    s = Settings(SIGNER_SURIS="//Alice,//Bob")
    assert s.security.signer_suris == ["//Alice", "//Bob"]


def test_unknown_network_is_rejected(monkeypatch):
    monkeypatch.setenv("NETWORK", "rococo")
    with pytest.raises(ValidationError):
        Settings()
