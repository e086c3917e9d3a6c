"""
Committee config reader: resolves a committee id to its multisig
configuration (account, signatories, threshold, funding source).
"""

from __future__ import annotations

import json
import sqlite3
from typing import List, Optional

from ..adapters import ss58
from ..errors import BadRequest
from ..logging import get_logger
from ..models.approvals import MultisigConfig, MultisigConfigIn
from .sqlite import Database

log = get_logger(__name__)


def _from_row(row: sqlite3.Row) -> MultisigConfig:
    return MultisigConfig(
        committee_id=row["committee_id"],
        multisig_address=row["multisig_address"],
        signatories=json.loads(row["signatories"]),
        threshold=row["threshold"],
        approval_pattern=row["approval_pattern"],
        network=row["network"],
        parent_bounty_id=row["parent_bounty_id"],
        curator_address=row["curator_address"],
        use_proxy=bool(row["use_proxy"]),
        updated_at=row["updated_at"],
    )


class CommitteeConfigStore:
    def __init__(self, db: Database):
        self.db = db

    def get_config(self, committee_id: int) -> Optional[MultisigConfig]:
        row = (
            self.db.connection()
            .execute("SELECT * FROM committee_multisig_configs WHERE committee_id = ?;", (committee_id,))
            .fetchone()
        )
        return _from_row(row) if row is not None else None

    def list_configs(self) -> List[MultisigConfig]:
        rows = self.db.connection().execute(
            "SELECT * FROM committee_multisig_configs ORDER BY committee_id;"
        ).fetchall()
        return [_from_row(r) for r in rows]

    def upsert_config(self, committee_id: int, config: MultisigConfigIn) -> MultisigConfig:
        """
        Store `config` for `committee_id`. The multisig address must be the
        account derived from (signatories, threshold); signatories are stored
        in the order the multisig pallet expects.
        """
        check = ss58.validate_multisig_config(
            config.multisig_address,
            list(config.signatories),
            config.threshold,
            ss58_format=config.network,
        )
        if not check["valid"]:
            raise BadRequest(
                check["error"] or "multisig address does not match signatories and threshold",
                details=check,
            )
        signatories = ss58.sort_signatories(config.signatories)
        with self.db.transaction() as db:
            db.execute(
                """
                INSERT INTO committee_multisig_configs(
                    committee_id, multisig_address, signatories, threshold, approval_pattern,
                    network, parent_bounty_id, curator_address, use_proxy
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(committee_id) DO UPDATE SET
                    multisig_address = excluded.multisig_address,
                    signatories      = excluded.signatories,
                    threshold        = excluded.threshold,
                    approval_pattern = excluded.approval_pattern,
                    network          = excluded.network,
                    parent_bounty_id = excluded.parent_bounty_id,
                    curator_address  = excluded.curator_address,
                    use_proxy        = excluded.use_proxy,
                    updated_at       = strftime('%Y-%m-%dT%H:%M:%fZ', 'now');
                """,
                (
                    committee_id,
                    config.multisig_address,
                    json.dumps(signatories),
                    config.threshold,
                    config.approval_pattern,
                    config.network,
                    config.parent_bounty_id,
                    config.curator_address,
                    int(config.use_proxy),
                ),
            )
        log.info(
            "committee_multisig_configured",
            committee_id=committee_id,
            multisig=config.multisig_address,
            threshold=config.threshold,
            signatories=len(signatories),
        )
        stored = self.get_config(committee_id)
        assert stored is not None
        return stored


__all__ = ["CommitteeConfigStore"]
