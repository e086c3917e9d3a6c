from __future__ import annotations

import pytest

from multisig_payouts.adapters.chain import AccountBalance
from multisig_payouts.services.balance import (
    MIN_TRANSACTION_FEE,
    FeeBalanceCheck,
    FundingBalanceCheck,
    insufficient_balance_message,
    insufficient_funding_message,
)
from multisig_payouts.services.diagnostics import (
    error_summary,
    is_retryable,
    parse_chain_error,
    requires_user_action,
    root_cause_hint,
)

from .fakes import ALICE


@pytest.mark.parametrize(
    "message,category",
    [
        ("Parent bounty 7 is not active (status: Funded)", "bounty_not_active"),
        ("Module error ChildBounties.InsufficientBountyBalance", "bounty_insufficient_funds"),
        ("wasm trap: unreachable", "wasm_error"),
        ("1010: Invalid Transaction: Inability to pay some fees", "insufficient_balance"),
        ("Module error Balances.FundsUnavailable", "insufficient_balance"),
        ("Module error Multisig.AlreadyApproved", "already_approved"),
        ("Module error Multisig.SignatoriesOutOfOrder", "invalid_signatory"),
        ("Module error Multisig.WrongTimepoint", "timepoint_invalid"),
        ("timed out waiting for inclusion", "transaction_timeout"),
        ("Cancelled", "wasm_error"),
        ("User rejected the request", "user_rejected"),
        ("connection refused by 127.0.0.1:9944", "network_error"),
        ("BadOrigin", "permission_denied"),
        ("Transaction Will Fail: child bounty workflow contains propose_curator and accept_curator", "child_bounty_workflow_error"),
        ("something nobody has seen before", "unknown"),
    ],
)
def test_categories(message, category):
    parsed = parse_chain_error(message, network="paseo")
    assert parsed.category == category
    assert parsed.original_message == message
    assert parsed.context["network"] == "paseo"
    assert parsed.action_items


def test_bounty_not_active_extracts_context():
    parsed = parse_chain_error("Parent bounty 7 is not active (status: Funded)", context={"approval_id": 3})
    assert parsed.context["parent_bounty_id"] == 7
    assert parsed.context["bounty_status"] == "Funded"
    assert parsed.context["approval_id"] == 3
    assert '"Funded"' in parsed.description
    assert requires_user_action(parsed)
    assert not is_retryable(parsed)


def test_own_balance_message_round_trips_through_parser():
    check = FeeBalanceCheck(False, AccountBalance(free=5 * 10**7), MIN_TRANSACTION_FEE, 5 * 10**7)
    parsed = parse_chain_error(insufficient_balance_message(ALICE, check, "paseo", "signatory"), network="paseo")
    assert parsed.category == "insufficient_balance"
    assert parsed.context["current_balance"] == "0.005"
    assert parsed.context["required_balance"] == "0.01"
    assert any("faucet.polkadot.io/paseo" in a for a in parsed.action_items)


def test_own_funding_message_round_trips_through_parser():
    msg = insufficient_funding_message(
        7, FundingBalanceCheck(False, source_value=10**10, available=2 * 10**10), 3 * 10**10, "paseo"
    )
    parsed = parse_chain_error(msg)
    assert parsed.category == "bounty_insufficient_funds"
    assert parsed.context["parent_bounty_id"] == 7
    assert parsed.context["payout_required"] == "3"
    assert parsed.context["available_balance"] == "2"


def test_unknown_is_cleaned_and_truncated():
    parsed = parse_chain_error("Error: " + "x" * 600)
    assert parsed.category == "unknown"
    assert parsed.description.startswith("xxx")
    assert parsed.description.endswith("...")
    assert len(parsed.description) == 503
    assert parse_chain_error(None).description == "Unknown error"


def test_retryable_and_summary():
    timeout = parse_chain_error("Request timed out")
    assert is_retryable(timeout)
    assert error_summary(timeout) == "Check a block explorer for the transaction status"


def test_root_cause_names_underfunded_signer():
    low = FeeBalanceCheck(True, AccountBalance(free=MIN_TRANSACTION_FEE + 1), MIN_TRANSACTION_FEE)
    hint = root_cause_hint(network="paseo", signer=ALICE, fee_check=low)
    assert hint.startswith(f"Signer {ALICE} may be underfunded")

    healthy = FeeBalanceCheck(True, AccountBalance(free=10**12), MIN_TRANSACTION_FEE)
    assert root_cause_hint(network="paseo", signer=ALICE, fee_check=healthy) is None


def test_root_cause_names_underfunded_bounty():
    funding = FundingBalanceCheck(False, source_value=10**10, error="Parent bounty 7 is not active (status: Funded)")
    hint = root_cause_hint(network="paseo", funding_source=7, funding_check=funding, amount=2 * 10**10)
    assert "Parent bounty 7 may be underfunded or inactive" in hint
    assert "available 0 of 1 tokens" in hint
    assert "(Parent bounty 7 is not active (status: Funded))" in hint
