"""
multisig_payouts.storage
========================

Persistence for the payout service.

- sqlite.py     : `Database` (thread-local connections, BEGIN IMMEDIATE
                  transactions, bundled schema migrations)
- approvals.py  : `ApprovalStore` (approvals + signatory votes)
- committees.py : `CommitteeConfigStore` (committee -> multisig config)
"""

from __future__ import annotations

from .approvals import ApprovalStore
from .committees import CommitteeConfigStore
from .sqlite import Database

__all__ = ["Database", "ApprovalStore", "CommitteeConfigStore"]
