"""
Multisig approval engine: the payout state machine.

    (none) --initiate--> pending --vote/execute--> threshold_met --> executed
    pending | threshold_met --cancel--> cancelled

Usage
-----
    engine = MultisigEngine(chain, ApprovalStore(db), CommitteeConfigStore(db), settings)
    out = await engine.initiate(MilestoneRef(7, committee_id=1), amount, recipient, initiator, signer)
    out = await engine.vote(out.approval.id, signatory, signer)

Design
------
- Balance and preflight checks run before every fee-incurring submission
  and raise the matching taxonomy error; nothing is submitted on failure.
- The vote reservation in the store is the serialization point: the count
  it returns decides between a hash-only ``approve_as_multi`` and the full
  ``as_multi`` that executes. No other path decides the branch.
- The executing voter rebuilds the call from the stored payout fields; a
  hash mismatch aborts before submission.
- Chain failures are never retried. They surface verbatim with a parsed
  diagnosis and, where the balance reads point at one, the underfunded
  account.
- A vote whose submission timed out or lost its connection keeps its
  reservation: the extrinsic may have landed. `reconcile` settles it against
  the chain's approval list.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type

from ..adapters import ss58
from ..adapters.chain import (
    CallSpec,
    ChainClient,
    ChainError,
    ChainTimeout,
    ChainTransportError,
    SubmissionReceipt,
    Timepoint,
)
from ..adapters.signer import Signer
from ..errors import (
    ActiveApprovalExists,
    AlreadyTerminal,
    ApiError,
    BadRequest,
    ChainSubmissionFailed,
    ChainUnavailable,
    ExecutionFailed,
    InsufficientFeeBalance,
    InsufficientFundingBalance,
    MultisigNotConfigured,
    NotFound,
    TimepointExtractionFailed,
    UnauthorizedSignatory,
)
from ..logging import get_logger
from ..models.approvals import (
    Approval,
    ApprovalCreate,
    ApprovalProgress,
    EngineOutcome,
    MultisigConfig,
    MultisigStructure,
    ReconcileResult,
    SubmissionInfo,
    VoteCreate,
)
from ..storage.approvals import ApprovalStore
from ..storage.committees import CommitteeConfigStore
from .balance import (
    BalanceOracle,
    FeeBalanceCheck,
    FundingBalanceCheck,
    insufficient_balance_message,
    insufficient_funding_message,
    network_spec,
)
from .call_builder import LAYOUT_VERSION, PayoutCall, PayoutCallBuilder, PayoutRequest
from .diagnostics import parse_chain_error, root_cause_hint
from .discovery import discover_multisig_structure
from .multisig import (
    approve_as_multi_call,
    as_multi_call,
    as_multi_threshold_1_call,
    child_bounty_id_from_events,
    execution_outcome,
    extract_timepoint,
    failed_extrinsic_error,
    max_weight_for,
    proxy_error,
    will_hit_quorum,
)
from .preflight import Preflight, PreflightResult

if TYPE_CHECKING:
    from ..config import Settings
    from ..metrics import Metrics

log = get_logger(__name__)


@dataclass(frozen=True)
class MilestoneRef:
    id: int
    committee_id: int
    title: Optional[str] = None


def _outcome_unknown(err: ApiError) -> bool:
    """True when the chain error behind `err` leaves the extrinsic's fate open."""
    return isinstance(err.__cause__, (ChainTimeout, ChainTransportError))


@dataclass
class _Diagnosis:
    """Balance reads taken before a submission, kept for failure messages."""

    network: str
    signer: str
    fee_check: Optional[FeeBalanceCheck] = None
    funding_source: Optional[int] = None
    funding_check: Optional[FundingBalanceCheck] = None
    amount: Optional[int] = None
    approval_id: Optional[int] = None
    call_hash: Optional[str] = None


class MultisigEngine:
    def __init__(
        self,
        chain: ChainClient,
        store: ApprovalStore,
        committees: CommitteeConfigStore,
        settings: "Settings",
        metrics: Optional["Metrics"] = None,
    ):
        self.chain = chain
        self.store = store
        self.committees = committees
        self.metrics = metrics
        self.oracle = BalanceOracle(chain)
        self.preflight = Preflight(
            chain,
            self.oracle,
            max_batch_calls=settings.preflight.max_batch_calls,
            fee_margin_percent=settings.preflight.fee_margin_percent,
            metrics=metrics,
        )
        self.strict_preflight = settings.preflight.strict
        self.timeout_s = settings.chain.submission_timeout_s
        self.network = settings.chain.network

    # ------------------------------ Lookups ---------------------------------

    def config_for(self, committee_id: int) -> MultisigConfig:
        config = self.committees.get_config(committee_id)
        if config is None:
            raise MultisigNotConfigured(committee_id)
        return config

    def get_approval(self, approval_id: int) -> Approval:
        return self.store.require(approval_id)

    def list_pending(self, committee_id: int) -> List[Approval]:
        return self.store.list_pending_for_committee(committee_id)

    def list_awaiting(self, committee_id: int, signatory: str) -> List[Approval]:
        """Pending approvals of the committee still waiting for `signatory`'s vote."""
        self.config_for(committee_id)
        return self.store.list_pending_for_signatory(committee_id, signatory)

    @staticmethod
    def _authorize(config: MultisigConfig, address: str, signer: Signer) -> None:
        if not ss58.is_signatory(address, config.signatories):
            raise UnauthorizedSignatory(address, config.committee_id)
        if not ss58.same_account(signer.address, address):
            raise UnauthorizedSignatory(
                address,
                config.committee_id,
                reason=f"Signer {signer.address} cannot sign for {address}",
            )

    def _builder(self, config: MultisigConfig) -> PayoutCallBuilder:
        return PayoutCallBuilder(self.chain, ss58_format=network_spec(config.network).ss58_format)

    @staticmethod
    def _proxy_real(config: MultisigConfig) -> Optional[str]:
        if config.use_proxy and not ss58.same_account(config.curator_address, config.multisig_address):
            return config.curator_address
        return None

    @staticmethod
    def _request_from_approval(approval: Approval) -> PayoutRequest:
        return PayoutRequest(
            milestone_id=approval.milestone_id,
            milestone_title=approval.milestone_title,
            amount=approval.payment_amount,
            recipient=approval.recipient_address,
            parent_bounty_id=approval.parent_bounty_id,
            curator=approval.curator_address,
            proxy_real=approval.proxy_real,
        )

    # ------------------------------ Checks ----------------------------------

    async def _require_fee_balance(self, address: str, network: str) -> FeeBalanceCheck:
        check = await self.oracle.check_fee_balance(address, network)
        if not check.has_balance:
            log.warning("fee_balance_insufficient", address=address, network=network, error=check.error)
            raise InsufficientFeeBalance(
                insufficient_balance_message(address, check, network, "signatory"),
                details={"address": address, "network": network, **check.to_dict()},
            )
        return check

    async def _require_funding(self, config: MultisigConfig, amount: int) -> FundingBalanceCheck:
        check = await self.oracle.check_funding_balance(config.parent_bounty_id, amount, config.network)
        if not check.has_balance:
            log.warning(
                "funding_insufficient",
                bounty_id=config.parent_bounty_id,
                amount=amount,
                error=check.error,
            )
            raise InsufficientFundingBalance(
                insufficient_funding_message(config.parent_bounty_id, check, amount, config.network),
                details={"parent_bounty_id": config.parent_bounty_id, "amount": str(amount), **check.to_dict()},
            )
        return check

    async def _run_preflight(self, payout: PayoutCall, signer_address: str, config: MultisigConfig) -> PreflightResult:
        result = await self.preflight.run(
            payout.call_data,
            signer_address,
            config.network,
            origin=config.multisig_address,
        )
        result.raise_for_status(strict=self.strict_preflight)
        return result

    # ------------------------------ Submission ------------------------------

    def _failure(
        self, cls: Type[ApiError], chain_message: str, diag: _Diagnosis, *, outcome: Optional[str] = None
    ) -> ApiError:
        parsed = parse_chain_error(
            chain_message,
            network=diag.network,
            context={"approval_id": diag.approval_id, "call_hash": diag.call_hash},
        )
        hint = root_cause_hint(
            network=diag.network,
            signer=diag.signer,
            fee_check=diag.fee_check,
            funding_source=diag.funding_source,
            funding_check=diag.funding_check,
            amount=diag.amount,
        )
        message = f"{parsed.title}: {chain_message}"
        if hint:
            message += f" Likely cause: {hint}"
        return cls(
            message,
            details={
                "chain_error": chain_message,
                "diagnosis": parsed.to_dict(),
                "root_cause": hint,
                "approval_id": diag.approval_id,
                "call_hash": diag.call_hash,
                **({"outcome": outcome} if outcome else {}),
            },
        )

    async def _submit(self, kind: str, call: CallSpec, signer: Signer, diag: _Diagnosis) -> SubmissionReceipt:
        try:
            receipt = await self.chain.submit(call, signer, self.timeout_s)
        except ChainError as e:
            self._record_submission(kind, "error")
            unknown = isinstance(e, (ChainTimeout, ChainTransportError))
            log.error("submission_failed", kind=kind, signer=signer.address, error=e.message, outcome_unknown=unknown)
            raise self._failure(ChainSubmissionFailed, e.message, diag, outcome="unknown" if unknown else None) from e
        if not receipt.success:
            self._record_submission(kind, "failed")
            error = receipt.error or failed_extrinsic_error(receipt.events) or "Extrinsic failed"
            log.error("submission_rejected", kind=kind, tx_hash=receipt.tx_hash, error=error)
            raise self._failure(ChainSubmissionFailed, error, diag)
        self._record_submission(kind, "ok")
        return receipt

    def _record_submission(self, kind: str, result: str) -> None:
        if self.metrics is not None:
            self.metrics.record_submission(kind, result)

    def _record_transition(self, status: str) -> None:
        if self.metrics is not None:
            self.metrics.record_transition(status)

    @staticmethod
    def _submission_info(kind: str, receipt: SubmissionReceipt) -> SubmissionInfo:
        return SubmissionInfo(
            tx_hash=receipt.tx_hash,
            block_hash=receipt.block_hash,
            block_number=receipt.block_number,
            kind=kind,
        )

    async def _resolve_timepoint(self, receipt: SubmissionReceipt, config: MultisigConfig, call_hash: str) -> Timepoint:
        tp = extract_timepoint(receipt)
        if tp is not None:
            return tp
        log.warning("timepoint_event_missing", call_hash=call_hash, tx_hash=receipt.tx_hash)
        try:
            pending = await self.chain.find_pending_multisig(config.multisig_address, call_hash)
        except ChainError as e:
            raise TimepointExtractionFailed(call_hash, details={"tx_hash": receipt.tx_hash, "error": e.message}) from e
        if pending is None:
            raise TimepointExtractionFailed(call_hash, details={"tx_hash": receipt.tx_hash})
        return pending.when

    # ------------------------------ Operations ------------------------------

    async def initiate(
        self,
        milestone: MilestoneRef,
        amount: int,
        recipient: str,
        initiator: str,
        signer: Signer,
    ) -> EngineOutcome:
        """
        Open a payout approval: check balances, build and preflight the
        five-step payout, submit it as the first ``as_multi`` and persist the
        pending approval together with the initiator's vote.
        """
        if amount <= 0:
            raise BadRequest("Payout amount must be greater than zero", details={"amount": str(amount)})
        config = self.config_for(milestone.committee_id)
        self._authorize(config, initiator, signer)
        active = self.store.get_active_for_milestone(milestone.id)
        if active is not None:
            raise ActiveApprovalExists(milestone.id, active.id)

        fee_check = await self._require_fee_balance(initiator, config.network)
        funding_check = None
        if config.approval_pattern != "separated":
            funding_check = await self._require_funding(config, amount)

        request = PayoutRequest(
            milestone_id=milestone.id,
            milestone_title=milestone.title,
            amount=amount,
            recipient=recipient,
            parent_bounty_id=config.parent_bounty_id,
            curator=config.curator_address,
            proxy_real=self._proxy_real(config),
        )
        payout = await self._builder(config).prepare(request)
        preflight = await self._run_preflight(payout, initiator, config)

        others = ss58.get_other_signatories(config.signatories, initiator)
        single = config.threshold == 1
        if single:
            call = as_multi_threshold_1_call(others, payout.call)
        else:
            call = as_multi_call(config.threshold, others, None, payout.call, max_weight_for(preflight.estimated_weight))
        diag = _Diagnosis(
            network=config.network,
            signer=initiator,
            fee_check=fee_check,
            funding_source=config.parent_bounty_id,
            funding_check=funding_check,
            amount=amount,
            call_hash=payout.call_hash,
        )
        receipt = await self._submit("as_multi", call, signer, diag)

        timepoint: Optional[Timepoint] = None
        child_bounty_id: Optional[int] = None
        if single:
            err = proxy_error(receipt.events)
            if err is not None:
                raise self._failure(ExecutionFailed, err, diag)
            child_bounty_id = child_bounty_id_from_events(receipt.events)
        else:
            timepoint = await self._resolve_timepoint(receipt, config, payout.call_hash)

        approval = self.store.create_approval_with_vote(
            ApprovalCreate(
                milestone_id=milestone.id,
                milestone_title=milestone.title,
                committee_id=config.committee_id,
                call_hash=payout.call_hash,
                call_data=payout.call_data_hex,
                timepoint=timepoint.to_dict() if timepoint else None,
                status="executed" if single else "pending",
                initiator_address=initiator,
                approval_pattern=config.approval_pattern,
                network=config.network,
                payment_amount=amount,
                recipient_address=recipient,
                parent_bounty_id=config.parent_bounty_id,
                curator_address=config.curator_address,
                proxy_real=request.proxy_real,
                predicted_child_bounty_id=payout.predicted_child_bounty_id,
                layout_version=payout.layout_version,
                threshold=config.threshold,
                execution_tx_hash=receipt.tx_hash if single else None,
                execution_block_number=receipt.block_number if single else None,
                child_bounty_id=child_bounty_id,
            ),
            VoteCreate(
                signatory_address=initiator,
                tx_hash=receipt.tx_hash,
                block_number=receipt.block_number,
                is_initiator=True,
                is_final_approval=single,
            ),
        )
        self._record_transition(approval.status)
        log.info(
            "approval_initiated",
            approval_id=approval.id,
            milestone_id=milestone.id,
            committee_id=config.committee_id,
            status=approval.status,
            call_hash=approval.call_hash,
            timepoint=timepoint.to_dict() if timepoint else None,
        )
        return EngineOutcome(
            approval=approval,
            submission=self._submission_info("as_multi", receipt),
            executed=single,
            preflight=preflight.to_dict(),
        )

    async def vote(self, approval_id: int, signatory: str, signer: Signer) -> EngineOutcome:
        """
        Record `signatory`'s approval. Below quorum this submits a hash-only
        ``approve_as_multi``; the vote that reaches quorum rebuilds the call
        and submits the executing ``as_multi``.

        The reservation is taken before any chain read, so a duplicate costs
        nothing. It is withdrawn when a check fails or the chain refuses the
        extrinsic. When the outcome is unknown (timeout, dropped connection)
        the reservation is kept and settled against the chain's approval list,
        here if the list already shows it, else by :meth:`reconcile`.
        """
        approval = self.store.require(approval_id)
        if approval.is_terminal:
            raise AlreadyTerminal(approval_id, approval.status)
        config = self.config_for(approval.committee_id)
        self._authorize(config, signatory, signer)
        if approval.timepoint is None:
            raise TimepointExtractionFailed(approval.call_hash, details={"approval_id": approval_id})

        threshold = approval.threshold
        reserved, before = self.store.record_vote_and_recompute_threshold(
            approval_id,
            VoteCreate(signatory_address=signatory),
            threshold,
        )
        final = will_hit_quorum(before, threshold)
        diag = _Diagnosis(
            network=approval.network,
            signer=signatory,
            approval_id=approval_id,
            call_hash=approval.call_hash,
        )
        preflight: Optional[PreflightResult] = None
        try:
            diag.fee_check = await self._require_fee_balance(signatory, approval.network)
            others = ss58.get_other_signatories(config.signatories, signatory)
            timepoint = Timepoint.from_dict(approval.timepoint.model_dump())
            if final:
                preflight, call = await self._executing_call(approval, config, others, timepoint, signatory, diag)
                kind = "as_multi"
            else:
                call = approve_as_multi_call(threshold, others, timepoint, approval.call_hash)
                kind = "approve_as_multi"
                preflight = await self._approval_preflight(call, signatory, approval.network)
            receipt = await self._submit(kind, call, signer, diag)
        except ChainSubmissionFailed as e:
            if _outcome_unknown(e):
                await self._settle_unknown_vote(approval, config, signatory)
            else:
                self.store.withdraw_vote(approval_id, signatory)
            raise
        except Exception:
            self.store.withdraw_vote(approval_id, signatory)
            raise

        self.store.confirm_vote(approval_id, signatory, receipt.tx_hash, receipt.block_number)
        if reserved.status == "threshold_met" and approval.status == "pending":
            self._record_transition("threshold_met")
        log.info(
            "vote_recorded",
            approval_id=approval_id,
            signatory=signatory,
            kind=kind,
            approvals=before + 1,
            threshold=threshold,
            tx_hash=receipt.tx_hash,
        )

        executed = False
        if final:
            executed = self._apply_execution(approval_id, receipt, diag, require=False)
        return EngineOutcome(
            approval=self.store.require(approval_id),
            submission=self._submission_info(kind, receipt),
            executed=executed,
            preflight=preflight.to_dict() if preflight else None,
        )

    async def execute(self, approval_id: int, signatory: str, signer: Signer) -> EngineOutcome:
        """
        Resubmit the executing ``as_multi`` for an approval stuck at
        ``threshold_met`` (quorum reached off the chain's order, e.g. two
        concurrent votes). Only a signatory who already approved may do this.
        """
        approval = self.store.require(approval_id)
        if approval.is_terminal:
            raise AlreadyTerminal(approval_id, approval.status)
        if approval.status != "threshold_met":
            raise BadRequest(
                f"Approval {approval_id} has {approval.approve_count} of {approval.threshold} approvals",
                details={"approval_id": approval_id, "status": approval.status},
            )
        config = self.config_for(approval.committee_id)
        self._authorize(config, signatory, signer)
        if not any(v.vote == "approve" and ss58.same_account(v.signatory_address, signatory) for v in approval.votes):
            raise UnauthorizedSignatory(
                signatory,
                config.committee_id,
                reason=f"Signatory {signatory} has not approved payout {approval_id}",
            )
        if approval.timepoint is None:
            raise TimepointExtractionFailed(approval.call_hash, details={"approval_id": approval_id})

        fee_check = await self._require_fee_balance(signatory, approval.network)
        diag = _Diagnosis(
            network=approval.network,
            signer=signatory,
            fee_check=fee_check,
            approval_id=approval_id,
            call_hash=approval.call_hash,
        )
        others = ss58.get_other_signatories(config.signatories, signatory)
        timepoint = Timepoint.from_dict(approval.timepoint.model_dump())
        preflight, call = await self._executing_call(approval, config, others, timepoint, signatory, diag)
        receipt = await self._submit("as_multi", call, signer, diag)
        self._apply_execution(approval_id, receipt, diag, require=True)
        return EngineOutcome(
            approval=self.store.require(approval_id),
            submission=self._submission_info("as_multi", receipt),
            executed=True,
            preflight=preflight.to_dict(),
        )

    async def _executing_call(
        self,
        approval: Approval,
        config: MultisigConfig,
        others: List[str],
        timepoint: Timepoint,
        signatory: str,
        diag: _Diagnosis,
    ) -> tuple[PreflightResult, CallSpec]:
        funding = await self._require_funding(config, approval.payment_amount)
        diag.funding_source = config.parent_bounty_id
        diag.funding_check = funding
        diag.amount = approval.payment_amount
        payout = await self._builder(config).rebuild(
            self._request_from_approval(approval),
            approval.predicted_child_bounty_id,
            approval.layout_version or LAYOUT_VERSION,
            approval.call_hash,
        )
        preflight = await self._run_preflight(payout, signatory, config)
        call = as_multi_call(
            approval.threshold, others, timepoint, payout.call, max_weight_for(preflight.estimated_weight)
        )
        return preflight, call

    async def _approval_preflight(self, call: CallSpec, signatory: str, network: str) -> PreflightResult:
        """Fee estimate and margin check for the hash-only approval, signed and paid by `signatory`."""
        data = await self.chain.encode_call(call)
        result = await self.preflight.run(data, signatory, network, origin=signatory)
        result.raise_for_status(strict=self.strict_preflight)
        return result

    async def _settle_unknown_vote(self, approval: Approval, config: MultisigConfig, signatory: str) -> None:
        """
        The vote's extrinsic may or may not have landed. Keep the reservation;
        mark it on chain when the approval list already shows it.
        """
        try:
            entry = await self.chain.find_pending_multisig(config.multisig_address, approval.call_hash)
        except ChainError as e:
            log.warning("vote_outcome_unresolved", approval_id=approval.id, signatory=signatory, error=e.message)
            return
        if entry is not None and any(ss58.same_account(a, signatory) for a in entry.approvals):
            self.store.mark_vote_on_chain(approval.id, signatory)
            return
        log.warning(
            "vote_outcome_unresolved",
            approval_id=approval.id,
            signatory=signatory,
            entry_found=entry is not None,
        )

    def _apply_execution(self, approval_id: int, receipt: SubmissionReceipt, diag: _Diagnosis, *, require: bool) -> bool:
        outcome = execution_outcome(receipt.events)
        if outcome is None:
            log.warning("multisig_not_executed", approval_id=approval_id, tx_hash=receipt.tx_hash)
            if require:
                raise ExecutionFailed(
                    f"Multisig for approval {approval_id} did not execute: the chain has fewer approvals than the threshold",
                    details={"approval_id": approval_id, "tx_hash": receipt.tx_hash},
                )
            return False
        if not outcome.ok:
            error = outcome.error or "Execution failed"
            self.store.record_execution_error(approval_id, error)
            log.error("multisig_execution_failed", approval_id=approval_id, tx_hash=receipt.tx_hash, error=error)
            raise self._failure(ExecutionFailed, error, diag)
        child_bounty_id = child_bounty_id_from_events(receipt.events)
        self.store.mark_executed(
            approval_id,
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            child_bounty_id=child_bounty_id,
        )
        self._record_transition("executed")
        return True

    def cancel(self, approval_id: int) -> Approval:
        """Close a live approval. No chain interaction; an unexecuted multisig is simply left."""
        approval = self.store.mark_cancelled(approval_id)
        self._record_transition("cancelled")
        return approval

    async def pending_on_chain(self, committee_id: int) -> List[Dict[str, Any]]:
        config = self.config_for(committee_id)
        try:
            entries = await self.chain.list_pending_multisigs(config.multisig_address)
        except ChainError as e:
            raise ChainUnavailable(
                f"Could not read pending multisig operations: {e.message}",
                details={"committee_id": committee_id, "multisig_address": config.multisig_address},
            ) from e
        return [p.to_dict() for p in entries]

    def approval_progress(self, approval_id: int) -> ApprovalProgress:
        approval = self.store.require(approval_id)
        config = self.committees.get_config(approval.committee_id)
        signatories = config.signatories if config is not None else [v.signatory_address for v in approval.votes]
        return self.store.progress(approval_id, signatories)

    async def reconcile(self, approval_id: int) -> ReconcileResult:
        """
        Settle reservations left open by submissions whose outcome was
        unknown. A reservation the chain's approval list shows is marked on
        chain; one it does not show, while the operation is still pending on
        chain, is withdrawn. When the operation is gone (executed or cancelled
        on chain) nothing is changed.
        """
        approval = self.store.require(approval_id)
        if approval.is_terminal:
            raise AlreadyTerminal(approval_id, approval.status)
        config = self.config_for(approval.committee_id)
        try:
            entry = await self.chain.find_pending_multisig(config.multisig_address, approval.call_hash)
        except ChainError as e:
            raise ChainUnavailable(
                f"Could not read the multisig operation: {e.message}",
                details={"approval_id": approval_id, "call_hash": approval.call_hash},
            ) from e

        settled: List[str] = []
        withdrawn: List[str] = []
        open_votes = [v for v in approval.votes if v.vote == "approve" and not v.on_chain]
        if entry is not None:
            for v in open_votes:
                if any(ss58.same_account(a, v.signatory_address) for a in entry.approvals):
                    self.store.mark_vote_on_chain(approval_id, v.signatory_address)
                    settled.append(v.signatory_address)
                else:
                    self.store.withdraw_vote(approval_id, v.signatory_address)
                    withdrawn.append(v.signatory_address)
        log.info(
            "approval_reconciled",
            approval_id=approval_id,
            on_chain=entry is not None,
            open_votes=len(open_votes),
            settled=len(settled),
            withdrawn=len(withdrawn),
        )
        return ReconcileResult(
            approval=self.store.require(approval_id),
            on_chain=entry is not None,
            chain_approvals=list(entry.approvals) if entry is not None else [],
            settled=settled,
            withdrawn=withdrawn,
        )

    async def discover(self, bounty_id: int, network: Optional[str] = None) -> MultisigStructure:
        """Bounty -> curator -> controlling multisig, as the chain shows it now."""
        try:
            structure = await discover_multisig_structure(self.chain, bounty_id, network or self.network)
        except ChainError as e:
            raise ChainUnavailable(
                f"Could not read bounty {bounty_id}: {e.message}", details={"bounty_id": bounty_id}
            ) from e
        if structure is None:
            raise NotFound(f"Bounty {bounty_id} or its curator", details={"bounty_id": bounty_id})
        return structure


__all__ = ["MilestoneRef", "MultisigEngine"]
