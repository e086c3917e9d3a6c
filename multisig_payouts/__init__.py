"""
Grant Multisig Payouts
======================

Milestone payout engine for grant committees: builds Polkadot child-bounty
payouts, drives them through a committee multisig and records every vote.

This package exposes:

- ``__version__``: semantic version string
- ``build_app()``: convenience creator for a configured FastAPI app

Prefer importing submodules directly for specific concerns:
``multisig_payouts.services.engine``, ``multisig_payouts.adapters.ss58``,
``multisig_payouts.storage.approvals``, etc.
"""

from __future__ import annotations

from .version import __version__

__all__ = ["__version__", "build_app"]


def build_app():
    """
    Create and return a fully configured FastAPI application.

    Importing lazily avoids pulling in FastAPI and substrate-interface when
    consumers only need the pure helpers.
    """
    from .app import create_app

    return create_app()
