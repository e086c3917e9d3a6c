from __future__ import annotations

"""
Error hierarchy for the multisig payout service.

Every error raised across a service boundary is an :class:`ApiError`, a
small dataclass exception that knows how to render itself as an RFC 7807
"problem+json" body. The payout taxonomy (balance, preflight, voting and
chain failures) derives from it, so the engine can raise domain errors and
the HTTP layer renders them without a translation table.

Usage
-----
    from multisig_payouts.errors import InsufficientFeeBalance

    raise InsufficientFeeBalance(
        "Insufficient balance for initiator account.",
        details={"address": addr, "required": "100000000"},
    )

Design
------
- Every error has:
  - ``status_code`` (int): HTTP status
  - ``code`` (str): stable machine code (e.g., "duplicate_vote")
  - ``message`` (str): human-friendly summary, safe to show to a signatory
  - ``details`` (dict|None): structured diagnostics (accounts, amounts,
    preflight findings, verbatim chain errors)
- ``to_problem()`` returns an RFC 7807 dict.
- ``to_response()`` returns a Starlette JSONResponse.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional


DEFAULT_ERROR_DOCS_BASE = "https://docs.grantflow.dev/errors"


@dataclass
class ApiError(Exception):
    message: str
    status_code: int = 400
    code: str = "bad_request"
    details: Optional[Mapping[str, Any]] = None
    type_uri_base: str = DEFAULT_ERROR_DOCS_BASE

    def __post_init__(self) -> None:
        super().__init__(self.message)

    # --- RFC 7807 helpers -------------------------------------------------- #

    def type_uri(self) -> str:
        return f"{self.type_uri_base}#{self.code}"

    def title(self) -> str:
        return _TITLES.get(self.code, self.message or "Error")

    def to_problem(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "type": self.type_uri(),
            "title": self.title(),
            "status": self.status_code,
            "code": self.code,
            "detail": self.message,
        }
        if self.details:
            body["details"] = dict(self.details)
        return body

    def to_response(self):
        """Return a Starlette JSONResponse carrying the problem body."""
        from starlette.responses import JSONResponse

        return JSONResponse(
            self.to_problem(),
            status_code=self.status_code,
            media_type="application/problem+json",
        )

    @classmethod
    def from_unexpected(cls, err: BaseException) -> "ApiError":
        """
        Convert an unexpected exception into a generic server error while
        preserving a minimal diagnostic in ``details``.
        """
        return ServerError(
            "Unhandled server error",
            details={"exc_type": err.__class__.__name__, "str": str(err)},
        )


_TITLES = {
    "bad_request": "Bad Request",
    "not_found": "Not Found",
    "unauthorized": "Unauthorized",
    "server_error": "Internal Server Error",
    "invalid_address": "Invalid Address",
    "insufficient_fee_balance": "Insufficient Balance",
    "insufficient_funding_balance": "Insufficient Bounty Funds",
    "preflight_failed": "Transaction May Fail",
    "preflight_critical": "Transaction Will Fail",
    "preflight_warning": "Transaction Preflight Warning",
    "timepoint_extraction_failed": "Invalid Transaction Timepoint",
    "duplicate_vote": "Already Approved",
    "threshold_already_met": "Threshold Already Met",
    "unauthorized_signatory": "Invalid Signatory",
    "already_terminal": "Approval Closed",
    "chain_submission_failed": "Transaction Failed",
    "execution_failed": "Execution Failed",
    "chain_unavailable": "Chain Unavailable",
    "call_data_mismatch": "Call Data Mismatch",
    "active_approval_exists": "Approval Already Active",
    "multisig_not_configured": "Multisig Not Configured",
    "signer_unavailable": "Signer Unavailable",
}


# ------------------------------ Generic types -------------------------------- #


class BadRequest(ApiError):
    def __init__(self, message: str = "Bad request", *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=400, code="bad_request", details=details)


class Unauthorized(ApiError):
    def __init__(self, message: str = "Missing or invalid credentials", *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=401, code="unauthorized", details=details)


class NotFound(ApiError):
    def __init__(self, what: str = "Resource", *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=f"{what} not found", status_code=404, code="not_found", details=details)


class ServerError(ApiError):
    def __init__(self, message: str = "Internal server error", *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=500, code="server_error", details=details)


# ------------------------------ Payout taxonomy ------------------------------ #


class InvalidAddress(ApiError):
    def __init__(self, address: Any, reason: str = "cannot be decoded"):
        super().__init__(
            message=f"Invalid address {address!r}: {reason}",
            status_code=400,
            code="invalid_address",
            details={"address": str(address), "reason": reason},
        )


class InsufficientFeeBalance(ApiError):
    def __init__(self, message: str, *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=422, code="insufficient_fee_balance", details=details)


class InsufficientFundingBalance(ApiError):
    def __init__(self, message: str, *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=422, code="insufficient_funding_balance", details=details)


class PreflightFailed(ApiError):
    """Preflight produced error findings; submission aborted before any fee was spent."""

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Mapping[str, Any]] = None,
        code: str = "preflight_failed",
    ):
        super().__init__(message=message, status_code=422, code=code, details=details)


class PreflightCritical(PreflightFailed):
    """The payload will deterministically fail on chain."""

    def __init__(self, message: str, *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message, details=details, code="preflight_critical")


class PreflightWarning(ApiError):
    """Advisory findings, raised only when preflight runs in strict mode."""

    def __init__(self, message: str, *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=422, code="preflight_warning", details=details)


class TimepointExtractionFailed(ApiError):
    def __init__(self, call_hash: str, *, details: Optional[Mapping[str, Any]] = None):
        d: Dict[str, Any] = {"call_hash": call_hash}
        if details:
            d.update(details)
        super().__init__(
            message=(
                "Failed to extract timepoint for multisig call "
                f"{call_hash}: no NewMultisig event and no pending entry on chain"
            ),
            status_code=502,
            code="timepoint_extraction_failed",
            details=d,
        )


class DuplicateVote(ApiError):
    def __init__(self, approval_id: int, signatory: str):
        super().__init__(
            message=f"Signatory {signatory} has already voted on approval {approval_id}",
            status_code=409,
            code="duplicate_vote",
            details={"approval_id": approval_id, "signatory": signatory},
        )


class ThresholdAlreadyMet(ApiError):
    """Another vote already carried the approval to its threshold; only execute remains."""

    def __init__(self, approval_id: int, threshold: int):
        super().__init__(
            message=f"Approval {approval_id} already has its {threshold} approvals; submit an execute instead",
            status_code=409,
            code="threshold_already_met",
            details={"approval_id": approval_id, "threshold": threshold},
        )


class UnauthorizedSignatory(ApiError):
    def __init__(self, address: str, committee_id: Optional[int] = None, reason: Optional[str] = None):
        details: Dict[str, Any] = {"address": address}
        if committee_id is not None:
            details["committee_id"] = committee_id
        super().__init__(
            message=reason or f"Wallet address {address} is not a signatory for this committee",
            status_code=403,
            code="unauthorized_signatory",
            details=details,
        )


class AlreadyTerminal(ApiError):
    def __init__(self, approval_id: int, status: str):
        super().__init__(
            message=f"Approval {approval_id} is already {status}",
            status_code=409,
            code="already_terminal",
            details={"approval_id": approval_id, "status": status},
        )


class ChainSubmissionFailed(ApiError):
    def __init__(self, message: str, *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=502, code="chain_submission_failed", details=details)


class ExecutionFailed(ApiError):
    """The chain accepted the submission but the inner call dispatched with an error."""

    def __init__(self, message: str, *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=502, code="execution_failed", details=details)


class ChainUnavailable(ApiError):
    """A read against the chain failed; nothing was submitted."""

    def __init__(self, message: str, *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=503, code="chain_unavailable", details=details)


class CallDataMismatch(ApiError):
    def __init__(self, expected: str, got: str):
        super().__init__(
            message=(
                "Rebuilt call data does not match the approved call hash "
                f"(expected {expected}, got {got})"
            ),
            status_code=409,
            code="call_data_mismatch",
            details={"expected_call_hash": expected, "rebuilt_call_hash": got},
        )


class ActiveApprovalExists(ApiError):
    def __init__(self, milestone_id: int, approval_id: Optional[int] = None):
        details: Dict[str, Any] = {"milestone_id": milestone_id}
        if approval_id is not None:
            details["approval_id"] = approval_id
        super().__init__(
            message=f"There is already an active approval process for milestone {milestone_id}",
            status_code=409,
            code="active_approval_exists",
            details=details,
        )


class MultisigNotConfigured(ApiError):
    def __init__(self, committee_id: int):
        super().__init__(
            message=f"Committee {committee_id} has no active multisig configuration",
            status_code=409,
            code="multisig_not_configured",
            details={"committee_id": committee_id},
        )


class SignerUnavailable(ApiError):
    def __init__(self, address: str):
        super().__init__(
            message=f"No signer is available for {address}",
            status_code=422,
            code="signer_unavailable",
            details={"address": address},
        )


__all__ = [
    "ApiError",
    "BadRequest",
    "Unauthorized",
    "NotFound",
    "ServerError",
    "InvalidAddress",
    "InsufficientFeeBalance",
    "InsufficientFundingBalance",
    "PreflightFailed",
    "PreflightCritical",
    "PreflightWarning",
    "TimepointExtractionFailed",
    "DuplicateVote",
    "ThresholdAlreadyMet",
    "UnauthorizedSignatory",
    "AlreadyTerminal",
    "ChainSubmissionFailed",
    "ExecutionFailed",
    "ChainUnavailable",
    "CallDataMismatch",
    "ActiveApprovalExists",
    "MultisigNotConfigured",
    "SignerUnavailable",
]
