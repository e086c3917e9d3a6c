"""
Approval store: approvals and signatory votes, the durable audit trail of
every payout decision.

Serialization
-------------
The vote insert and the threshold recompute run in one BEGIN IMMEDIATE
transaction (:meth:`ApprovalStore.record_vote_and_recompute_threshold`), so
two concurrent voters can never both observe "below threshold", and the
UNIQUE(approval_id, signatory_account) constraint (not a prior read) turns a
repeated vote into :class:`DuplicateVote`.

Votes are reserved before the chain submission (``tx_hash`` NULL), confirmed
with the transaction hash afterwards, and withdrawn if the submission fails.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..adapters import ss58
from ..errors import ActiveApprovalExists, AlreadyTerminal, DuplicateVote, NotFound, ThresholdAlreadyMet
from ..logging import get_logger
from ..models.approvals import (
    ACTIVE_STATUSES,
    Approval,
    ApprovalCreate,
    ApprovalProgress,
    Vote,
    VoteCounts,
    VoteCreate,
)
from .sqlite import Database

log = get_logger(__name__)

_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"

_APPROVAL_COLUMNS = (
    "milestone_id",
    "milestone_title",
    "committee_id",
    "call_hash",
    "call_data",
    "timepoint_height",
    "timepoint_index",
    "status",
    "initiator_address",
    "approval_pattern",
    "network",
    "payment_amount",
    "recipient_address",
    "parent_bounty_id",
    "curator_address",
    "proxy_real",
    "predicted_child_bounty_id",
    "child_bounty_id",
    "layout_version",
    "threshold",
    "execution_tx_hash",
    "execution_block_number",
)


def account_key(address: str) -> str:
    """Vote uniqueness key: the 0x public key, independent of SS58 prefix."""
    return "0x" + ss58.decode_address(address).hex()


# ------------------------------- Row mapping -----------------------------------


def _vote_from_row(row: sqlite3.Row) -> Vote:
    return Vote(
        id=row["id"],
        approval_id=row["approval_id"],
        signatory_address=row["signatory_address"],
        vote=row["vote"],
        tx_hash=row["tx_hash"],
        block_number=row["block_number"],
        on_chain=bool(row["on_chain"]),
        is_initiator=bool(row["is_initiator"]),
        is_final_approval=bool(row["is_final_approval"]),
        voted_at=row["voted_at"],
    )


def _approval_from_row(row: sqlite3.Row, votes: List[Vote]) -> Approval:
    data: Dict[str, Any] = {k: row[k] for k in row.keys()}
    height, index = data.pop("timepoint_height"), data.pop("timepoint_index")
    data["timepoint"] = {"height": height, "index": index} if height is not None else None
    data["votes"] = votes
    return Approval.model_validate(data)


def _approval_params(approval: ApprovalCreate) -> Tuple[Any, ...]:
    tp = approval.timepoint
    values: Dict[str, Any] = approval.model_dump(exclude={"timepoint"})
    values["timepoint_height"] = tp.height if tp else None
    values["timepoint_index"] = tp.index if tp else None
    values["payment_amount"] = str(approval.payment_amount)
    return tuple(values[c] for c in _APPROVAL_COLUMNS)


def _count_approvals(db: sqlite3.Connection, approval_id: int) -> int:
    row = db.execute(
        "SELECT COUNT(*) FROM signatory_votes WHERE approval_id = ? AND vote = 'approve';",
        (approval_id,),
    ).fetchone()
    return int(row[0])


def _has_vote(db: sqlite3.Connection, approval_id: int, address: str) -> bool:
    row = db.execute(
        "SELECT 1 FROM signatory_votes WHERE approval_id = ? AND signatory_account = ?;",
        (approval_id, account_key(address)),
    ).fetchone()
    return row is not None


def _insert_vote(db: sqlite3.Connection, approval_id: int, vote: VoteCreate) -> None:
    db.execute(
        """
        INSERT INTO signatory_votes(
            approval_id, signatory_address, signatory_account, vote,
            tx_hash, block_number, on_chain, is_initiator, is_final_approval
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
        """,
        (
            approval_id,
            vote.signatory_address,
            account_key(vote.signatory_address),
            vote.vote,
            vote.tx_hash,
            vote.block_number,
            int(vote.tx_hash is not None),
            int(vote.is_initiator),
            int(vote.is_final_approval),
        ),
    )


# --------------------------------- Store ---------------------------------------


class ApprovalStore:
    def __init__(self, db: Database):
        self.db = db

    # ---- reads ----

    def _load(self, db: sqlite3.Connection, approval_id: int) -> Optional[Approval]:
        row = db.execute("SELECT * FROM multisig_approvals WHERE id = ?;", (approval_id,)).fetchone()
        if row is None:
            return None
        votes = [
            _vote_from_row(r)
            for r in db.execute(
                "SELECT * FROM signatory_votes WHERE approval_id = ? ORDER BY id;", (approval_id,)
            ).fetchall()
        ]
        return _approval_from_row(row, votes)

    def _load_many(self, db: sqlite3.Connection, rows: Iterable[sqlite3.Row]) -> List[Approval]:
        out = []
        for row in rows:
            votes = [
                _vote_from_row(r)
                for r in db.execute(
                    "SELECT * FROM signatory_votes WHERE approval_id = ? ORDER BY id;", (row["id"],)
                ).fetchall()
            ]
            out.append(_approval_from_row(row, votes))
        return out

    def get_approval_by_id(self, approval_id: int) -> Optional[Approval]:
        with self.db.transaction(immediate=False) as db:
            return self._load(db, approval_id)

    def require(self, approval_id: int) -> Approval:
        approval = self.get_approval_by_id(approval_id)
        if approval is None:
            raise NotFound(f"Approval {approval_id}")
        return approval

    def get_active_for_milestone(self, milestone_id: int) -> Optional[Approval]:
        with self.db.transaction(immediate=False) as db:
            row = db.execute(
                "SELECT * FROM multisig_approvals WHERE milestone_id = ? AND status IN (?, ?);",
                (milestone_id, *ACTIVE_STATUSES),
            ).fetchone()
            return self._load_many(db, [row])[0] if row is not None else None

    def get_by_call_hash(self, call_hash: str) -> Optional[Approval]:
        """Most recent approval carrying `call_hash`."""
        with self.db.transaction(immediate=False) as db:
            row = db.execute(
                "SELECT * FROM multisig_approvals WHERE lower(call_hash) = lower(?) ORDER BY id DESC LIMIT 1;",
                (call_hash,),
            ).fetchone()
            return self._load_many(db, [row])[0] if row is not None else None

    def list_pending_for_committee(self, committee_id: int) -> List[Approval]:
        with self.db.transaction(immediate=False) as db:
            rows = db.execute(
                "SELECT * FROM multisig_approvals WHERE committee_id = ? AND status IN (?, ?) ORDER BY id;",
                (committee_id, *ACTIVE_STATUSES),
            ).fetchall()
            return self._load_many(db, rows)

    def list_pending_for_signatory(self, committee_id: int, signatory: str) -> List[Approval]:
        """Live approvals of the committee that `signatory` has not voted on yet."""
        with self.db.transaction(immediate=False) as db:
            rows = db.execute(
                """
                SELECT a.* FROM multisig_approvals a
                 WHERE a.committee_id = ? AND a.status = 'pending'
                   AND NOT EXISTS (
                       SELECT 1 FROM signatory_votes v
                        WHERE v.approval_id = a.id AND v.signatory_account = ?
                   )
                 ORDER BY a.id;
                """,
                (committee_id, account_key(signatory)),
            ).fetchall()
            return self._load_many(db, rows)

    def list_for_milestone(self, milestone_id: int) -> List[Approval]:
        """Full history for a milestone, newest first."""
        with self.db.transaction(immediate=False) as db:
            rows = db.execute(
                "SELECT * FROM multisig_approvals WHERE milestone_id = ? ORDER BY id DESC;",
                (milestone_id,),
            ).fetchall()
            return self._load_many(db, rows)

    # ---- writes ----

    def create_approval_with_vote(self, approval: ApprovalCreate, vote: VoteCreate) -> Approval:
        """
        Insert the approval and the initiator's vote atomically. A second live
        approval for the same milestone violates the partial unique index and
        surfaces as :class:`ActiveApprovalExists`.
        """
        placeholders = ", ".join("?" for _ in _APPROVAL_COLUMNS)
        executed_at = _NOW if approval.status == "executed" else "NULL"
        try:
            with self.db.transaction() as db:
                cur = db.execute(
                    f"INSERT INTO multisig_approvals({', '.join(_APPROVAL_COLUMNS)}, executed_at) "
                    f"VALUES ({placeholders}, {executed_at});",
                    _approval_params(approval),
                )
                approval_id = int(cur.lastrowid)
                _insert_vote(db, approval_id, vote)
                created = self._load(db, approval_id)
        except sqlite3.IntegrityError as e:
            existing = self.get_active_for_milestone(approval.milestone_id)
            if existing is not None:
                raise ActiveApprovalExists(approval.milestone_id, existing.id) from e
            raise
        assert created is not None
        log.info(
            "approval_created",
            approval_id=created.id,
            milestone_id=created.milestone_id,
            status=created.status,
            call_hash=created.call_hash,
        )
        return created

    def record_vote_and_recompute_threshold(
        self, approval_id: int, vote: VoteCreate, threshold: int
    ) -> Tuple[Approval, int]:
        """
        Reserve `vote` and recompute the status in one transaction.

        Returns ``(approval_after, approvals_before)``; the caller branches on
        ``approvals_before`` (approve-only vs approve-and-execute). An approve
        vote that reaches `threshold` moves a pending approval to
        ``threshold_met``; once there, further approve votes are refused so at
        most one reservation per approval is ever final.
        """
        with self.db.transaction() as db:
            current = self._load(db, approval_id)
            if current is None:
                raise NotFound(f"Approval {approval_id}")
            if current.is_terminal:
                raise AlreadyTerminal(approval_id, current.status)
            before = _count_approvals(db, approval_id)
            if vote.vote == "approve" and before >= threshold:
                if _has_vote(db, approval_id, vote.signatory_address):
                    raise DuplicateVote(approval_id, vote.signatory_address)
                raise ThresholdAlreadyMet(approval_id, threshold)
            final = vote.vote == "approve" and before + 1 == threshold
            try:
                _insert_vote(db, approval_id, vote.model_copy(update={"is_final_approval": final}))
            except sqlite3.IntegrityError:
                raise DuplicateVote(approval_id, vote.signatory_address) from None
            after = _count_approvals(db, approval_id)
            if current.status == "pending" and after >= threshold:
                db.execute(
                    f"UPDATE multisig_approvals SET status = 'threshold_met', updated_at = {_NOW} WHERE id = ?;",
                    (approval_id,),
                )
            updated = self._load(db, approval_id)
        assert updated is not None
        log.info(
            "vote_reserved",
            approval_id=approval_id,
            signatory=vote.signatory_address,
            approvals_before=before,
            threshold=threshold,
            status=updated.status,
        )
        return updated, before

    def confirm_vote(
        self, approval_id: int, signatory: str, tx_hash: str, block_number: Optional[int] = None
    ) -> None:
        with self.db.transaction() as db:
            db.execute(
                "UPDATE signatory_votes SET tx_hash = ?, block_number = ?, on_chain = 1 "
                "WHERE approval_id = ? AND signatory_account = ?;",
                (tx_hash, block_number, approval_id, account_key(signatory)),
            )

    def mark_vote_on_chain(self, approval_id: int, signatory: str) -> bool:
        """
        Settle a reservation whose submission outcome was unknown but which the
        chain's approval list now shows. The transaction hash stays unknown.
        """
        with self.db.transaction() as db:
            cur = db.execute(
                "UPDATE signatory_votes SET on_chain = 1 WHERE approval_id = ? AND signatory_account = ? AND on_chain = 0;",
                (approval_id, account_key(signatory)),
            )
        if cur.rowcount:
            log.info("vote_settled_from_chain", approval_id=approval_id, signatory=signatory)
        return bool(cur.rowcount)

    def withdraw_vote(self, approval_id: int, signatory: str) -> None:
        """
        Drop an unconfirmed reservation after a failed submission and move the
        approval back to ``pending`` if it no longer meets its threshold.
        """
        with self.db.transaction() as db:
            cur = db.execute(
                "DELETE FROM signatory_votes WHERE approval_id = ? AND signatory_account = ? AND on_chain = 0;",
                (approval_id, account_key(signatory)),
            )
            row = db.execute(
                "SELECT status, threshold FROM multisig_approvals WHERE id = ?;", (approval_id,)
            ).fetchone()
            if row is not None and row["status"] == "threshold_met":
                if _count_approvals(db, approval_id) < row["threshold"]:
                    db.execute(
                        f"UPDATE multisig_approvals SET status = 'pending', updated_at = {_NOW} WHERE id = ?;",
                        (approval_id,),
                    )
        log.info("vote_withdrawn", approval_id=approval_id, signatory=signatory, removed=cur.rowcount)

    def mark_executed(
        self,
        approval_id: int,
        *,
        tx_hash: str,
        block_number: Optional[int],
        child_bounty_id: Optional[int] = None,
    ) -> Approval:
        with self.db.transaction() as db:
            cur = db.execute(
                f"""
                UPDATE multisig_approvals
                   SET status = 'executed', execution_tx_hash = ?, execution_block_number = ?,
                       child_bounty_id = COALESCE(?, child_bounty_id), execution_error = NULL,
                       executed_at = {_NOW}, updated_at = {_NOW}
                 WHERE id = ? AND status IN (?, ?);
                """,
                (tx_hash, block_number, child_bounty_id, approval_id, *ACTIVE_STATUSES),
            )
            updated = self._load(db, approval_id)
        if updated is None:
            raise NotFound(f"Approval {approval_id}")
        if cur.rowcount == 0 and updated.status != "executed":
            raise AlreadyTerminal(approval_id, updated.status)
        log.info(
            "approval_executed",
            approval_id=approval_id,
            tx_hash=tx_hash,
            block_number=block_number,
            child_bounty_id=updated.child_bounty_id,
        )
        return updated

    def record_execution_error(self, approval_id: int, error: str) -> None:
        """Keep the last on-chain execution error; the status is left untouched."""
        with self.db.transaction() as db:
            db.execute(
                f"UPDATE multisig_approvals SET execution_error = ?, updated_at = {_NOW} WHERE id = ?;",
                (error, approval_id),
            )

    def mark_cancelled(self, approval_id: int) -> Approval:
        with self.db.transaction() as db:
            current = self._load(db, approval_id)
            if current is None:
                raise NotFound(f"Approval {approval_id}")
            if current.is_terminal:
                raise AlreadyTerminal(approval_id, current.status)
            db.execute(
                f"UPDATE multisig_approvals SET status = 'cancelled', cancelled_at = {_NOW}, updated_at = {_NOW} WHERE id = ?;",
                (approval_id,),
            )
            updated = self._load(db, approval_id)
        assert updated is not None
        log.info("approval_cancelled", approval_id=approval_id, milestone_id=updated.milestone_id)
        return updated

    # ---- tallies ----

    def vote_counts(self, approval_id: int) -> VoteCounts:
        approval = self.require(approval_id)
        return _counts(approval)

    def progress(self, approval_id: int, signatories: Iterable[str]) -> ApprovalProgress:
        approval = self.require(approval_id)
        counts = _counts(approval)
        voted = {account_key(v.signatory_address) for v in approval.votes}
        voted_addresses = [v.signatory_address for v in approval.votes]
        pending = [s for s in signatories if account_key(s) not in voted]
        percent = min(100, counts.approve_votes * 100 // counts.threshold) if counts.threshold else 0
        return ApprovalProgress(
            **counts.model_dump(),
            approval_id=approval.id,
            status=approval.status,
            voted_signatories=voted_addresses,
            pending_signatories=pending,
            percent=percent,
            can_execute=approval.status in ACTIVE_STATUSES and counts.threshold_met,
        )


def _counts(approval: Approval) -> VoteCounts:
    approve = approval.approve_count
    reject = sum(1 for v in approval.votes if v.vote == "reject")
    return VoteCounts(
        approve_votes=approve,
        reject_votes=reject,
        total_votes=len(approval.votes),
        threshold=approval.threshold,
        threshold_met=approve >= approval.threshold,
        votes_needed=max(approval.threshold - approve, 0),
    )


__all__ = ["ApprovalStore", "account_key"]
