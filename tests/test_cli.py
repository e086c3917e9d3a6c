from __future__ import annotations

import json

from typer.testing import CliRunner

import pytest

from multisig_payouts import cli
from multisig_payouts.adapters import ss58
from multisig_payouts.cli import app
from multisig_payouts.models.approvals import VoteCreate
from multisig_payouts.storage import ApprovalStore, CommitteeConfigStore, Database

from .conftest import COMMITTEE_ID, SIGNATORIES, committee_config
from .fakes import ALICE, BOB, CHARLIE, DAVE, PARENT_BOUNTY, FakeChain, Timepoint, _Operation
from .test_store import CALL_HASH, _approval, _initiator_vote

runner = CliRunner()


def _signatory_args():
    args = []
    for s in SIGNATORIES:
        args += ["-s", s]
    return args


def test_derive_matches_library():
    result = runner.invoke(app, ["derive", *_signatory_args(), "-t", "2"])
    assert result.exit_code == 0, result.output
    out = json.loads(result.output)
    assert out["multisig_address"] == ss58.compute_multisig_address(SIGNATORIES, 2)
    assert out["signatories"] == ss58.sort_signatories([ALICE, BOB, CHARLIE])


def test_derive_rejects_bad_threshold():
    result = runner.invoke(app, ["derive", *_signatory_args(), "-t", "5"])
    assert result.exit_code == 1


def test_configure_then_pending(tmp_path):
    db_path = str(tmp_path / "cli.db")
    multisig = ss58.compute_multisig_address(SIGNATORIES, 2, "paseo")
    result = runner.invoke(
        app,
        [
            "configure", str(COMMITTEE_ID),
            "--multisig", multisig,
            *_signatory_args(),
            "-t", "2",
            "--parent-bounty", str(PARENT_BOUNTY),
            "--curator", DAVE,
            "--db", db_path,
        ],
    )
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["multisig_address"] == multisig

    result = runner.invoke(app, ["pending", str(COMMITTEE_ID), "--db", db_path])
    assert result.exit_code == 0
    assert "No live approvals." in result.output

    db = Database(db_path)
    created = ApprovalStore(db).create_approval_with_vote(_approval(), _initiator_vote())
    db.close()

    result = runner.invoke(app, ["pending", str(COMMITTEE_ID), "--db", db_path])
    assert f"#{created.id}" in result.output
    assert "approvals=1/2" in result.output

    result = runner.invoke(app, ["cancel", str(created.id), "--yes", "--db", db_path])
    assert result.exit_code == 0
    assert "cancelled" in result.output

    result = runner.invoke(app, ["show", str(created.id), "--db", db_path])
    assert json.loads(result.output)["status"] == "cancelled"


def test_configure_rejects_wrong_multisig(tmp_path):
    result = runner.invoke(
        app,
        [
            "configure", str(COMMITTEE_ID),
            "--multisig", ss58.compute_multisig_address(SIGNATORIES, 3),
            *_signatory_args(),
            "-t", "2",
            "--parent-bounty", str(PARENT_BOUNTY),
            "--curator", DAVE,
            "--db", str(tmp_path / "cli.db"),
        ],
    )
    assert result.exit_code == 1


def test_show_missing_approval(tmp_path):
    result = runner.invoke(app, ["show", "77", "--db", str(tmp_path / "cli.db")])
    assert result.exit_code == 1


def test_pending_for_signatory(tmp_path):
    db_path = str(tmp_path / "cli.db")
    db = Database(db_path)
    db.run_migrations()
    store = ApprovalStore(db)
    first = store.create_approval_with_vote(_approval(milestone_id=5), _initiator_vote())
    second = store.create_approval_with_vote(_approval(milestone_id=6, threshold=3), _initiator_vote())
    store.record_vote_and_recompute_threshold(second.id, VoteCreate(signatory_address=BOB), 3)
    db.close()

    result = runner.invoke(app, ["pending", str(COMMITTEE_ID), "--signatory", BOB, "--db", db_path])
    assert result.exit_code == 0, result.output
    assert f"#{first.id}" in result.output
    assert f"#{second.id}" not in result.output

    result = runner.invoke(app, ["pending", str(COMMITTEE_ID), "-s", ALICE, "--db", db_path])
    assert "No approvals awaiting this signatory." in result.output

    result = runner.invoke(app, ["pending", str(COMMITTEE_ID), "-s", "5Nope", "--db", db_path])
    assert result.exit_code == 1


@pytest.fixture
def fake_chain(monkeypatch) -> FakeChain:
    chain = FakeChain()
    monkeypatch.setattr(cli, "_chain", lambda settings: chain)
    return chain


def test_discover_prints_structure(tmp_path, fake_chain: FakeChain):
    multisig = ss58.compute_multisig_address(SIGNATORIES, 2)
    fake_chain.set_proxy(DAVE, multisig)
    result = runner.invoke(
        app, ["discover", str(PARENT_BOUNTY), "--network", "polkadot", "--db", str(tmp_path / "cli.db")]
    )
    assert result.exit_code == 0, result.output
    out = json.loads(result.stdout)
    assert out["effective_multisig"] == ss58.convert(multisig, 0)
    assert out["curator"] == ss58.convert(DAVE, 0)
    assert not fake_chain.connected

    result = runner.invoke(app, ["discover", "99", "--db", str(tmp_path / "cli.db")])
    assert result.exit_code == 1


def test_reconcile_settles_open_vote(tmp_path, fake_chain: FakeChain):
    db_path = str(tmp_path / "cli.db")
    db = Database(db_path)
    db.run_migrations()
    CommitteeConfigStore(db).upsert_config(COMMITTEE_ID, committee_config(threshold=3))
    store = ApprovalStore(db)
    approval = store.create_approval_with_vote(_approval(threshold=3), _initiator_vote())
    store.record_vote_and_recompute_threshold(approval.id, VoteCreate(signatory_address=BOB), 3)
    db.close()

    fake_chain.operations[CALL_HASH] = _Operation(
        threshold=3,
        when=Timepoint(100, 2),
        depositor=ALICE,
        approvals=[ss58.decode_address(ALICE), ss58.decode_address(BOB)],
    )
    result = runner.invoke(app, ["reconcile", str(approval.id), "--db", db_path])
    assert result.exit_code == 0, result.output
    out = json.loads(result.stdout)
    assert out["settled"] == [BOB]
    assert out["approval"]["votes"][-1]["on_chain"] is True
