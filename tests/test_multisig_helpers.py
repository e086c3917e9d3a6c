from __future__ import annotations

import pytest

from multisig_payouts.adapters.chain import CallSpec, ChainEvent, SubmissionReceipt, Timepoint
from multisig_payouts.services.multisig import (
    MAX_WEIGHT,
    approve_as_multi_call,
    as_multi_call,
    as_multi_threshold_1_call,
    child_bounty_id_from_events,
    execution_outcome,
    extract_timepoint,
    failed_extrinsic_error,
    is_quorum_met,
    max_weight_for,
    will_hit_quorum,
)

from .fakes import ALICE, BOB


@pytest.mark.parametrize(
    "current,threshold,expected",
    [(0, 1, True), (1, 2, True), (1, 3, False), (2, 3, True), (3, 3, True), (0, 3, False)],
)
def test_will_hit_quorum(current, threshold, expected):
    assert will_hit_quorum(current, threshold) is expected


def test_is_quorum_met():
    assert is_quorum_met(2, 2)
    assert not is_quorum_met(1, 2)


def test_max_weight_never_below_default():
    assert max_weight_for(None) == MAX_WEIGHT
    w = max_weight_for({"ref_time": 5_000_000_000, "proof_size": 10})
    assert w == {"ref_time": 5_000_000_000, "proof_size": MAX_WEIGHT["proof_size"]}


def test_call_shapes():
    inner = CallSpec("System", "remark", {"remark": "0x00"})
    first = as_multi_call(2, [BOB], None, inner)
    assert first.name == "Multisig.as_multi"
    assert first.args["maybe_timepoint"] is None
    assert first.args["call"] is inner
    assert first.args["max_weight"] == MAX_WEIGHT

    approve = approve_as_multi_call(3, [ALICE, BOB], Timepoint(10, 2), "0x" + "ab" * 32)
    assert approve.args["maybe_timepoint"] == {"height": 10, "index": 2}
    assert "call" not in approve.args

    single = as_multi_threshold_1_call([BOB], inner)
    assert single.name == "Multisig.as_multi_threshold_1"
    assert set(single.args) == {"other_signatories", "call"}


def test_extract_timepoint_needs_new_multisig_event():
    receipt = SubmissionReceipt(tx_hash="0x01", block_number=42, extrinsic_index=3)
    assert extract_timepoint(receipt) is None
    receipt.events.append(ChainEvent("Multisig", "NewMultisig", {}))
    assert extract_timepoint(receipt) == Timepoint(42, 3)


def test_execution_outcome_ok_and_err():
    assert execution_outcome([ChainEvent("Multisig", "MultisigApproval", {})]) is None

    ok = execution_outcome([ChainEvent("Multisig", "MultisigExecuted", {"call_hash": "0xaa", "result": {"Ok": None}})])
    assert ok is not None and ok.ok and ok.call_hash == "0xaa"

    err = {"Module": {"pallet": "ChildBounties", "name": "InsufficientBountyBalance"}}
    failed = execution_outcome([ChainEvent("Multisig", "MultisigExecuted", [None, None, None, "0xbb", {"Err": err}])])
    assert failed is not None and not failed.ok
    assert failed.error == "Module error ChildBounties.InsufficientBountyBalance"


def test_execution_outcome_reads_proxy_result():
    events = [
        ChainEvent("Proxy", "ProxyExecuted", {"result": {"Err": {"BadOrigin": None}}}),
        ChainEvent("Multisig", "MultisigExecuted", {"call_hash": "0xcc", "result": {"Ok": None}}),
    ]
    out = execution_outcome(events)
    assert out is not None and not out.ok
    assert out.error == "BadOrigin"


def test_child_bounty_id_and_failed_extrinsic():
    events = [ChainEvent("ChildBounties", "Added", {"index": 7, "child_index": 12})]
    assert child_bounty_id_from_events(events) == 12
    assert child_bounty_id_from_events([]) is None
    assert failed_extrinsic_error([ChainEvent("System", "ExtrinsicFailed", [{"Other": "boom"}])]) == "Other: boom"
