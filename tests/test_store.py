from __future__ import annotations

import sqlite3
import threading

import pytest
from pydantic import ValidationError

from multisig_payouts.adapters import ss58
from multisig_payouts.errors import (
    ActiveApprovalExists,
    AlreadyTerminal,
    BadRequest,
    DuplicateVote,
    InvalidAddress,
    NotFound,
    ThresholdAlreadyMet,
)
from multisig_payouts.models.approvals import ApprovalCreate, MultisigConfigIn, VoteCreate
from multisig_payouts.storage import ApprovalStore, CommitteeConfigStore, Database

from .conftest import COMMITTEE_ID, committee_config
from .fakes import ALICE, BOB, CHARLIE, DAVE, EVE, PARENT_BOUNTY

CALL_HASH = "0x" + "11" * 32


def _approval(milestone_id: int = 5, **overrides) -> ApprovalCreate:
    data = dict(
        milestone_id=milestone_id,
        milestone_title="Docs",
        committee_id=COMMITTEE_ID,
        call_hash=CALL_HASH,
        call_data="0xABCD",
        timepoint={"height": 100, "index": 2},
        initiator_address=ALICE,
        payment_amount=2**70,
        recipient_address=EVE,
        parent_bounty_id=PARENT_BOUNTY,
        curator_address=DAVE,
        proxy_real=DAVE,
        predicted_child_bounty_id=3,
        threshold=2,
    )
    data.update(overrides)
    return ApprovalCreate(**data)


def _initiator_vote() -> VoteCreate:
    return VoteCreate(signatory_address=ALICE, tx_hash="0x" + "aa" * 32, block_number=100, is_initiator=True)


# ----------------------------
# Database
# ----------------------------
def test_migrations_are_idempotent(db: Database):
    db.run_migrations()
    tables = {
        r[0] for r in db.connection().execute("SELECT name FROM sqlite_master WHERE type = 'table';").fetchall()
    }
    assert {"multisig_approvals", "signatory_votes", "committee_multisig_configs"} <= tables
    assert db.ping()


def test_transaction_rolls_back(db: Database):
    with pytest.raises(RuntimeError):
        with db.transaction() as conn:
            conn.execute(
                "INSERT INTO committee_multisig_configs(committee_id, multisig_address, signatories, threshold,"
                " network, parent_bounty_id, curator_address) VALUES (9, 'x', '[]', 1, 'paseo', 1, 'y');"
            )
            raise RuntimeError("boom")
    row = db.connection().execute("SELECT COUNT(*) FROM committee_multisig_configs;").fetchone()
    assert row[0] == 0


# ----------------------------
# Approvals
# ----------------------------
def test_create_and_read_back(store: ApprovalStore):
    created = store.create_approval_with_vote(_approval(), _initiator_vote())
    assert created.status == "pending"
    assert created.call_data == "0xabcd"
    assert created.payment_amount == 2**70
    assert created.timepoint.height == 100 and created.timepoint.index == 2
    assert len(created.votes) == 1 and created.votes[0].is_initiator

    again = store.get_approval_by_id(created.id)
    assert again == created
    assert store.get_by_call_hash(CALL_HASH).id == created.id
    assert store.get_active_for_milestone(5).id == created.id
    assert [a.id for a in store.list_pending_for_committee(COMMITTEE_ID)] == [created.id]


def test_require_missing(store: ApprovalStore):
    assert store.get_approval_by_id(404) is None
    with pytest.raises(NotFound):
        store.require(404)


def test_one_live_approval_per_milestone(store: ApprovalStore):
    first = store.create_approval_with_vote(_approval(), _initiator_vote())
    with pytest.raises(ActiveApprovalExists) as ei:
        store.create_approval_with_vote(_approval(), _initiator_vote())
    assert ei.value.details["approval_id"] == first.id

    store.mark_cancelled(first.id)
    second = store.create_approval_with_vote(_approval(), _initiator_vote())
    history = store.list_for_milestone(5)
    assert [a.id for a in history] == [second.id, first.id]
    assert history[1].status == "cancelled" and history[1].cancelled_at is not None


def test_vote_reservation_counts_and_status(store: ApprovalStore):
    approval = store.create_approval_with_vote(_approval(threshold=3), _initiator_vote())

    after, before = store.record_vote_and_recompute_threshold(approval.id, VoteCreate(signatory_address=BOB), 3)
    assert before == 1
    assert after.status == "pending"
    assert not after.votes[-1].is_final_approval

    after, before = store.record_vote_and_recompute_threshold(approval.id, VoteCreate(signatory_address=CHARLIE), 3)
    assert before == 2
    assert after.status == "threshold_met"
    assert after.votes[-1].is_final_approval
    assert after.votes[-1].tx_hash is None


def test_duplicate_vote_in_any_encoding(store: ApprovalStore):
    approval = store.create_approval_with_vote(_approval(threshold=3), _initiator_vote())
    store.record_vote_and_recompute_threshold(approval.id, VoteCreate(signatory_address=BOB), 3)
    with pytest.raises(DuplicateVote):
        store.record_vote_and_recompute_threshold(
            approval.id, VoteCreate(signatory_address=ss58.convert(BOB, "polkadot")), 3
        )
    with pytest.raises(DuplicateVote):
        store.record_vote_and_recompute_threshold(approval.id, VoteCreate(signatory_address=ALICE), 3)
    assert len(store.require(approval.id).votes) == 2


def test_vote_on_terminal_approval(store: ApprovalStore):
    approval = store.create_approval_with_vote(_approval(), _initiator_vote())
    store.mark_cancelled(approval.id)
    with pytest.raises(AlreadyTerminal):
        store.record_vote_and_recompute_threshold(approval.id, VoteCreate(signatory_address=BOB), 2)
    with pytest.raises(AlreadyTerminal):
        store.mark_cancelled(approval.id)
    with pytest.raises(NotFound):
        store.record_vote_and_recompute_threshold(999, VoteCreate(signatory_address=BOB), 2)


def test_withdraw_reverts_threshold_met(store: ApprovalStore):
    approval = store.create_approval_with_vote(_approval(), _initiator_vote())
    after, _ = store.record_vote_and_recompute_threshold(approval.id, VoteCreate(signatory_address=BOB), 2)
    assert after.status == "threshold_met"

    store.withdraw_vote(approval.id, BOB)
    back = store.require(approval.id)
    assert back.status == "pending"
    assert [v.signatory_address for v in back.votes] == [ALICE]


def test_withdraw_keeps_confirmed_votes(store: ApprovalStore):
    approval = store.create_approval_with_vote(_approval(threshold=3), _initiator_vote())
    store.record_vote_and_recompute_threshold(approval.id, VoteCreate(signatory_address=BOB), 3)
    store.confirm_vote(approval.id, ss58.convert(BOB, 0), "0x" + "bb" * 32, 101)
    store.withdraw_vote(approval.id, BOB)
    bob = store.require(approval.id).votes[-1]
    assert bob.tx_hash == "0x" + "bb" * 32 and bob.block_number == 101


def test_vote_seen_on_chain_survives_withdraw(store: ApprovalStore):
    approval = store.create_approval_with_vote(_approval(threshold=3), _initiator_vote())
    assert store.require(approval.id).votes[0].on_chain
    store.record_vote_and_recompute_threshold(approval.id, VoteCreate(signatory_address=BOB), 3)
    assert not store.require(approval.id).votes[-1].on_chain

    assert store.mark_vote_on_chain(approval.id, ss58.convert(BOB, 0))
    assert not store.mark_vote_on_chain(approval.id, BOB)
    store.withdraw_vote(approval.id, BOB)
    bob = store.require(approval.id).votes[-1]
    assert bob.on_chain and bob.tx_hash is None


def test_vote_past_threshold_is_refused(store: ApprovalStore):
    approval = store.create_approval_with_vote(_approval(), _initiator_vote())
    store.record_vote_and_recompute_threshold(approval.id, VoteCreate(signatory_address=BOB), 2)
    with pytest.raises(ThresholdAlreadyMet) as ei:
        store.record_vote_and_recompute_threshold(approval.id, VoteCreate(signatory_address=CHARLIE), 2)
    assert ei.value.status_code == 409
    with pytest.raises(DuplicateVote):
        store.record_vote_and_recompute_threshold(approval.id, VoteCreate(signatory_address=BOB), 2)
    assert store.require(approval.id).approve_count == 2


def _race(store: ApprovalStore, approval_id: int, signatories, threshold: int):
    barrier = threading.Barrier(len(signatories))
    results, errors = [], []

    def _vote(address: str) -> None:
        barrier.wait()
        try:
            results.append(
                store.record_vote_and_recompute_threshold(approval_id, VoteCreate(signatory_address=address), threshold)
            )
        except ThresholdAlreadyMet as e:
            errors.append(e)

    threads = [threading.Thread(target=_vote, args=(s,)) for s in signatories]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return results, errors


def test_racing_reservations_yield_one_final_vote(store: ApprovalStore):
    approval = store.create_approval_with_vote(_approval(threshold=3), _initiator_vote())
    results, errors = _race(store, approval.id, [BOB, CHARLIE], 3)
    assert errors == []
    assert sorted(before for _, before in results) == [1, 2]

    after = store.require(approval.id)
    assert after.status == "threshold_met"
    assert after.approve_count == 3
    assert [v.is_final_approval for v in after.votes].count(True) == 1


def test_racing_reservations_never_exceed_threshold(store: ApprovalStore):
    approval = store.create_approval_with_vote(_approval(), _initiator_vote())
    results, errors = _race(store, approval.id, [BOB, CHARLIE], 2)
    assert len(results) == 1 and len(errors) == 1

    after = store.require(approval.id)
    assert after.approve_count == 2
    assert [v.is_final_approval for v in after.votes].count(True) == 1


def test_pending_for_signatory(store: ApprovalStore):
    first = store.create_approval_with_vote(_approval(milestone_id=5), _initiator_vote())
    second = store.create_approval_with_vote(_approval(milestone_id=6, threshold=3), _initiator_vote())
    store.record_vote_and_recompute_threshold(second.id, VoteCreate(signatory_address=BOB), 3)
    third = store.create_approval_with_vote(_approval(milestone_id=7), _initiator_vote())
    store.mark_cancelled(third.id)

    assert [a.id for a in store.list_pending_for_signatory(COMMITTEE_ID, BOB)] == [first.id]
    assert [a.id for a in store.list_pending_for_signatory(COMMITTEE_ID, ss58.convert(CHARLIE, 0))] == [
        first.id,
        second.id,
    ]
    assert store.list_pending_for_signatory(COMMITTEE_ID, ALICE) == []
    assert store.list_pending_for_signatory(COMMITTEE_ID + 1, CHARLIE) == []
    with pytest.raises(InvalidAddress):
        store.list_pending_for_signatory(COMMITTEE_ID, "5Nope")


def test_mark_executed_and_errors(store: ApprovalStore):
    approval = store.create_approval_with_vote(_approval(), _initiator_vote())
    store.record_execution_error(approval.id, "Module error ChildBounties.InsufficientBountyBalance")
    assert store.require(approval.id).execution_error.startswith("Module error")

    done = store.mark_executed(approval.id, tx_hash="0x" + "cc" * 32, block_number=120, child_bounty_id=4)
    assert done.status == "executed"
    assert done.child_bounty_id == 4
    assert done.execution_error is None
    assert done.executed_at is not None
    assert store.get_active_for_milestone(5) is None

    with pytest.raises(AlreadyTerminal):
        store.mark_cancelled(approval.id)


def test_executed_at_set_for_direct_execution(store: ApprovalStore):
    created = store.create_approval_with_vote(
        _approval(status="executed", timepoint=None, threshold=1, execution_tx_hash="0x" + "dd" * 32),
        _initiator_vote(),
    )
    assert created.status == "executed"
    assert created.executed_at is not None
    assert created.timepoint is None


def test_status_check_constraint(db: Database, store: ApprovalStore):
    approval = store.create_approval_with_vote(_approval(), _initiator_vote())
    with pytest.raises(sqlite3.IntegrityError):
        with db.transaction() as conn:
            conn.execute("UPDATE multisig_approvals SET status = 'approved' WHERE id = ?;", (approval.id,))


def test_progress_tracks_pending_signatories(store: ApprovalStore):
    approval = store.create_approval_with_vote(_approval(threshold=3), _initiator_vote())
    progress = store.progress(approval.id, [ALICE, BOB, CHARLIE])
    assert progress.approve_votes == 1
    assert progress.votes_needed == 2
    assert progress.percent == 33
    assert progress.pending_signatories == [BOB, CHARLIE]
    assert not progress.can_execute

    store.record_vote_and_recompute_threshold(approval.id, VoteCreate(signatory_address=BOB), 3)
    store.record_vote_and_recompute_threshold(approval.id, VoteCreate(signatory_address=CHARLIE), 3)
    progress = store.progress(approval.id, [ALICE, BOB, CHARLIE])
    assert progress.threshold_met and progress.can_execute
    assert progress.percent == 100
    assert progress.pending_signatories == []


# ----------------------------
# Committee configs
# ----------------------------
def test_upsert_config_sorts_signatories(committees: CommitteeConfigStore):
    stored = committees.upsert_config(COMMITTEE_ID, committee_config())
    assert stored.signatories == ss58.sort_signatories([ALICE, BOB, CHARLIE])
    assert stored.updated_at is not None

    updated = committees.upsert_config(COMMITTEE_ID, committee_config(threshold=3, use_proxy=False))
    assert updated.threshold == 3 and updated.use_proxy is False
    assert [c.committee_id for c in committees.list_configs()] == [COMMITTEE_ID]


def test_upsert_config_rejects_wrong_multisig(committees: CommitteeConfigStore):
    config = committee_config(multisig_address=ss58.compute_multisig_address([ALICE, BOB, CHARLIE], 3))
    with pytest.raises(BadRequest) as ei:
        committees.upsert_config(COMMITTEE_ID, config)
    assert ei.value.details["valid"] is False
    assert committees.get_config(COMMITTEE_ID) is None


@pytest.mark.parametrize(
    "overrides",
    [{"threshold": 4}, {"threshold": 0}, {"signatories": [ALICE, ss58.convert(ALICE, 0), BOB]}],
)
def test_config_model_validation(overrides):
    data = committee_config().model_dump()
    data.update(overrides)
    with pytest.raises(ValidationError):
        MultisigConfigIn(**data)
