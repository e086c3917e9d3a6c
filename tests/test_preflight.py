from __future__ import annotations

import pytest

from multisig_payouts.adapters import ss58
from multisig_payouts.adapters.chain import CallSpec, ChainTransportError
from multisig_payouts.errors import PreflightCritical, PreflightFailed, PreflightWarning
from multisig_payouts.services.balance import BalanceOracle
from multisig_payouts.services.call_builder import PayoutRequest, build_payout_call
from multisig_payouts.services.preflight import (
    Preflight,
    analyze_call,
    format_preflight_report,
    preflight_error_summary,
)

from .fakes import ALICE, DAVE, EVE, PARENT_BOUNTY, FakeChain


def _payout(proxy_real=DAVE) -> CallSpec:
    request = PayoutRequest(
        milestone_id=3,
        amount=10**10,
        recipient=EVE,
        parent_bounty_id=PARENT_BOUNTY,
        curator=DAVE,
        proxy_real=proxy_real,
    )
    return build_payout_call(request, 1).call


async def _encode(chain: FakeChain, call: CallSpec) -> bytes:
    return await chain.encode_call(call)


def test_analyze_proxied_payout_is_clean():
    findings, details = analyze_call(_payout())
    assert findings == []
    assert details["proxied"] is True
    assert details["batch_call_count"] == 5
    assert details["batch_call_methods"][0] == "Proxy.proxy"


def test_analyze_flags_curator_dependency_without_proxy():
    findings, details = analyze_call(_payout(proxy_real=None))
    assert [f.code for f in findings] == ["CURATOR_STATE_DEPENDENCY_NO_PROXY"]
    assert findings[0].severity == "critical"
    assert details["proxied"] is False


def test_analyze_allows_unproxied_batch_when_curator_is_origin():
    findings, _ = analyze_call(_payout(proxy_real=None), origin=ss58.convert(DAVE, 0))
    assert findings == []


def test_analyze_batch_too_large():
    calls = [CallSpec("System", "remark", {"remark": "0x00"}) for _ in range(11)]
    findings, details = analyze_call(CallSpec("Utility", "batch_all", {"calls": calls}))
    assert [f.code for f in findings] == ["BATCH_TOO_LARGE"]
    assert details["batch_call_count"] == 11


async def test_run_success_reports_fee_and_details():
    chain = FakeChain()
    preflight = Preflight(chain, BalanceOracle(chain))
    data = await _encode(chain, _payout())

    result = await preflight.run(data, ALICE, "paseo")
    assert result.success
    assert result.estimated_fee == chain.fee.partial_fee
    assert result.estimated_weight == chain.fee.weight
    assert result.details["call_size"] == len(data)
    assert result.details["call_data"] == "0x" + data.hex()
    result.raise_for_status(strict=True)

    report = format_preflight_report(result)
    assert "LIKELY TO SUCCEED" in report
    assert "1. Proxy.proxy" in report


async def test_run_critical_raises_preflight_critical():
    chain = FakeChain()
    result = await Preflight(chain, BalanceOracle(chain)).run(await _encode(chain, _payout(None)), ALICE, "paseo")
    assert not result.success
    assert [e.code for e in result.critical] == ["CURATOR_STATE_DEPENDENCY_NO_PROXY"]
    summary = preflight_error_summary(result)
    assert summary["title"] == "Transaction Will Fail"

    with pytest.raises(PreflightCritical) as ei:
        result.raise_for_status()
    assert ei.value.code == "preflight_critical"
    assert isinstance(ei.value, PreflightFailed)
    assert ei.value.details["errors"][0]["code"] == "CURATOR_STATE_DEPENDENCY_NO_PROXY"


async def test_fee_margin_applies_to_transferable():
    chain = FakeChain()
    # estimate 150_000_000 with a 10% margin needs 165_000_000
    chain.set_balance(ALICE, 160_000_000)
    result = await Preflight(chain, BalanceOracle(chain)).run(await _encode(chain, _payout()), ALICE, "paseo")
    assert not result.success
    assert [e.code for e in result.errors] == ["INSUFFICIENT_FEE_BALANCE"]
    assert "Need: ~165000000" in result.errors[0].message
    assert preflight_error_summary(result)["title"] == "Transaction May Fail"
    with pytest.raises(PreflightFailed) as ei:
        result.raise_for_status()
    assert not isinstance(ei.value, PreflightCritical)


async def test_fee_estimation_failure_is_a_warning():
    chain = FakeChain()
    chain.fee_error = ChainTransportError("rpc down")
    result = await Preflight(chain, BalanceOracle(chain)).run(await _encode(chain, _payout()), ALICE, "paseo")
    assert result.success
    assert [w.code for w in result.warnings] == ["FEE_ESTIMATION_FAILED"]
    assert result.estimated_fee is None
    result.raise_for_status()
    with pytest.raises(PreflightWarning):
        result.raise_for_status(strict=True)


async def test_undecodable_call_is_a_warning():
    chain = FakeChain()
    result = await Preflight(chain, BalanceOracle(chain)).run(b"not-json", ALICE, "paseo")
    assert [w.code for w in result.warnings] == ["CALL_DECODE_FAILED"]
    assert result.success
