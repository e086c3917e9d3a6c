"""
Transaction preflight: static analysis of a payout payload plus one fee
estimate, run before every submission attempt.

Findings
--------
- CURATOR_STATE_DEPENDENCY_NO_PROXY (critical): the batch proposes and
  accepts a curator but is not wrapped in ``Proxy.proxy``; accept_curator
  would dispatch with the multisig as origin and fail deterministically.
- BATCH_TOO_LARGE (error): more calls than ``max_batch_calls``.
- INSUFFICIENT_FEE_BALANCE (error): signer's transferable balance is below
  the estimated fee plus the safety margin (10% by default).
- FEE_ESTIMATION_FAILED / BALANCE_CHECK_FAILED / CALL_DECODE_FAILED
  (warnings): a check could not run; the transaction may still succeed.

``success`` is False whenever a critical or error finding exists. Preflight
reduces risk; the authoritative check remains the chain's own execution.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..adapters import ss58
from ..adapters.chain import CallSpec, ChainClient, ChainError
from ..errors import PreflightCritical, PreflightFailed, PreflightWarning
from ..logging import get_logger
from .balance import BalanceOracle
from .call_builder import call_hash

if TYPE_CHECKING:
    from ..metrics import Metrics

log = get_logger(__name__)

DEFAULT_MAX_BATCH_CALLS = 10
DEFAULT_FEE_MARGIN_PERCENT = 10


@dataclass(frozen=True)
class PreflightFinding:
    code: str
    severity: str  # critical | error | warning
    message: str
    suggestion: Optional[str] = None


CURATOR_STATE_DEPENDENCY_NO_PROXY = PreflightFinding(
    code="CURATOR_STATE_DEPENDENCY_NO_PROXY",
    severity="critical",
    message=(
        "Child bounty workflow contains propose_curator and accept_curator in the same batch "
        "WITHOUT a proxy wrapper. This will fail because accept_curator must be called by the curator."
    ),
    suggestion=(
        'Wrap the batch in a Proxy.proxy call where "real" is the curator address, '
        "so accept_curator dispatches with the curator as origin."
    ),
)

BATCH_TOO_LARGE = PreflightFinding(
    code="BATCH_TOO_LARGE",
    severity="error",
    message="The batched transaction contains too many calls and may exceed weight limits.",
    suggestion="Split the transaction into smaller batches.",
)

INSUFFICIENT_FEE_BALANCE = PreflightFinding(
    code="INSUFFICIENT_FEE_BALANCE",
    severity="error",
    message="Account may not have sufficient balance to pay transaction fees.",
    suggestion="Ensure the signing account has enough tokens for fees.",
)


@dataclass
class PreflightResult:
    success: bool
    errors: List[PreflightFinding] = field(default_factory=list)
    warnings: List[PreflightFinding] = field(default_factory=list)
    estimated_fee: Optional[int] = None
    estimated_weight: Optional[Dict[str, int]] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def critical(self) -> List[PreflightFinding]:
        return [e for e in self.errors if e.severity == "critical"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "errors": [asdict(e) for e in self.errors],
            "warnings": [asdict(w) for w in self.warnings],
            "estimated_fee": str(self.estimated_fee) if self.estimated_fee is not None else None,
            "estimated_weight": self.estimated_weight,
            "details": self.details,
        }

    def raise_for_status(self, *, strict: bool = False) -> None:
        """
        Raise the matching taxonomy error: PreflightCritical when any critical
        finding exists, PreflightFailed for errors, PreflightWarning for
        warnings in strict mode only.
        """
        summary = preflight_error_summary(self)
        if summary is not None:
            cls = PreflightCritical if self.critical else PreflightFailed
            raise cls(f"{summary['title']}: {summary['description']}", details=self.to_dict())
        if strict and self.warnings:
            text = "; ".join(f"{w.code}: {w.message}" for w in self.warnings)
            raise PreflightWarning(f"Preflight warnings: {text}", details=self.to_dict())


# ------------------------------- Analysis --------------------------------------


def _batch_calls(call: CallSpec) -> tuple[bool, List[CallSpec]]:
    """Return (proxied, calls inside the batch) for a payout call tree."""
    proxied = call.module == "Proxy" and call.function == "proxy"
    inner = call.args.get("call") if proxied else call
    if isinstance(inner, CallSpec) and inner.module == "Utility" and inner.function in ("batch", "batch_all", "force_batch"):
        return proxied, [c for c in inner.args.get("calls", []) if isinstance(c, CallSpec)]
    return proxied, [inner] if isinstance(inner, CallSpec) else []


def analyze_call(
    call: CallSpec,
    *,
    max_batch_calls: int = DEFAULT_MAX_BATCH_CALLS,
    origin: Optional[str] = None,
) -> tuple[List[PreflightFinding], Dict[str, Any]]:
    """
    Static checks over a decoded call tree. `origin` is the account the call
    dispatches as (the multisig); a curator equal to the origin can accept
    its own role without a proxy.
    """
    proxied, calls = _batch_calls(call)
    methods = [c.name for c in calls]
    findings: List[PreflightFinding] = []

    proposes = [c for c in calls if c.function == "propose_curator"]
    accepts = any(c.function == "accept_curator" for c in calls)
    if proposes and accepts and not proxied:
        curator = proposes[0].args.get("curator")
        if isinstance(curator, dict):  # decoded MultiAddress, e.g. {"Id": "0x.."}
            curator = curator.get("Id") or next(iter(curator.values()), None)
        if origin is None or not ss58.same_account(curator, origin):
            findings.append(CURATOR_STATE_DEPENDENCY_NO_PROXY)

    if len(calls) > max_batch_calls:
        findings.append(BATCH_TOO_LARGE)

    details = {
        "batch_call_count": len(calls),
        "batch_call_methods": (["Proxy.proxy"] if proxied else []) + methods,
        "proxied": proxied,
    }
    return findings, details


class Preflight:
    def __init__(
        self,
        chain: ChainClient,
        oracle: BalanceOracle,
        *,
        max_batch_calls: int = DEFAULT_MAX_BATCH_CALLS,
        fee_margin_percent: int = DEFAULT_FEE_MARGIN_PERCENT,
        metrics: Optional["Metrics"] = None,
    ):
        self.chain = chain
        self.oracle = oracle
        self.max_batch_calls = max_batch_calls
        self.fee_margin_percent = fee_margin_percent
        self.metrics = metrics

    async def run(
        self,
        call_data: bytes,
        signer_address: str,
        network: str,
        *,
        origin: Optional[str] = None,
    ) -> PreflightResult:
        errors: List[PreflightFinding] = []
        warnings: List[PreflightFinding] = []
        details: Dict[str, Any] = {
            "call_hash": call_hash(call_data),
            "call_data": "0x" + call_data.hex(),
            "call_size": len(call_data),
        }

        try:
            decoded = await self.chain.decode_call(call_data)
        except ChainError as e:
            warnings.append(
                PreflightFinding(
                    "CALL_DECODE_FAILED",
                    "warning",
                    f"Could not decode call data for static analysis: {e.message}",
                )
            )
        else:
            found, info = analyze_call(decoded, max_batch_calls=self.max_batch_calls, origin=origin)
            errors.extend(found)
            details.update(info)

        estimated_fee: Optional[int] = None
        estimated_weight: Optional[Dict[str, int]] = None
        try:
            est = await self.chain.estimate_fee(call_data, signer_address)
            estimated_fee, estimated_weight = est.partial_fee, dict(est.weight)
        except ChainError as e:
            warnings.append(
                PreflightFinding(
                    "FEE_ESTIMATION_FAILED",
                    "warning",
                    f"Could not estimate transaction fees: {e.message}",
                    "The transaction may still succeed, but fee estimation was not possible.",
                )
            )

        if estimated_fee is not None:
            required = estimated_fee * (100 + self.fee_margin_percent) // 100
            check = await self.oracle.check_fee_balance(signer_address, network, required=required)
            if check.error:
                warnings.append(PreflightFinding("BALANCE_CHECK_FAILED", "warning", "Could not verify account balance."))
            elif not check.has_balance:
                errors.append(
                    PreflightFinding(
                        INSUFFICIENT_FEE_BALANCE.code,
                        INSUFFICIENT_FEE_BALANCE.severity,
                        f"Insufficient balance for fees on {signer_address}. "
                        f"Have: {check.balance.transferable}, Need: ~{required}",
                        INSUFFICIENT_FEE_BALANCE.suggestion,
                    )
                )

        result = PreflightResult(
            success=not errors,
            errors=errors,
            warnings=warnings,
            estimated_fee=estimated_fee,
            estimated_weight=estimated_weight,
            details=details,
        )
        if self.metrics is not None:
            for f in errors + warnings:
                self.metrics.record_finding(f.code, f.severity)
        log.info(
            "preflight_complete",
            success=result.success,
            call_hash=details["call_hash"],
            errors=[e.code for e in errors],
            warnings=[w.code for w in warnings],
            estimated_fee=estimated_fee,
        )
        return result


# ------------------------------- Reporting -------------------------------------


def format_preflight_report(result: PreflightResult) -> str:
    rule = "=" * 68
    lines = [
        rule,
        "TRANSACTION PREFLIGHT",
        rule,
        f"Status: {'LIKELY TO SUCCEED' if result.success else 'LIKELY TO FAIL'}",
    ]
    if result.estimated_fee is not None:
        lines.append(f"Estimated Fee: {result.estimated_fee} planck")
    if result.estimated_weight:
        lines.append(
            "Estimated Weight: ref_time={}, proof_size={}".format(
                result.estimated_weight.get("ref_time"), result.estimated_weight.get("proof_size")
            )
        )
    methods = result.details.get("batch_call_methods") or []
    if methods:
        lines.append("Batch Calls:")
        lines.extend(f"  {i}. {m}" for i, m in enumerate(methods, 1))
    if result.errors:
        lines += [rule, "ERRORS:"]
        for e in result.errors:
            lines.append(f"  [{e.severity.upper()}] {e.code}")
            lines.append(f"  {e.message}")
            if e.suggestion:
                lines.append(f"  hint: {e.suggestion}")
    if result.warnings:
        lines += [rule, "WARNINGS:"]
        for w in result.warnings:
            lines.append(f"  {w.code}: {w.message}")
            if w.suggestion:
                lines.append(f"  hint: {w.suggestion}")
    lines.append(rule)
    return "\n".join(lines)


def preflight_error_summary(result: PreflightResult) -> Optional[Dict[str, Any]]:
    if result.success:
        return None
    critical = result.critical
    if critical:
        first = critical[0]
        return {
            "title": "Transaction Will Fail",
            "description": first.message,
            "suggestions": [first.suggestion] if first.suggestion else [],
        }
    errs = [e for e in result.errors if e.severity == "error"]
    if errs:
        return {
            "title": "Transaction May Fail",
            "description": "; ".join(e.message for e in errs),
            "suggestions": [e.suggestion for e in errs if e.suggestion],
        }
    return None


__all__ = [
    "PreflightFinding",
    "PreflightResult",
    "Preflight",
    "analyze_call",
    "format_preflight_report",
    "preflight_error_summary",
]
