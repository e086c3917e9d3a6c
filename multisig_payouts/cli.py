"""
Admin CLI for the multisig payout service.

Utilities:
  - migrate    : apply DB migrations / initialize schema
  - configure  : store a committee's multisig configuration
  - derive     : derive a multisig address from signatories and threshold
  - pending    : list live approvals for a committee (or those awaiting one signatory)
  - show       : print one approval with its votes
  - cancel     : cancel a live approval (no chain interaction)
  - discover   : find the curator and controlling multisig of a parent bounty
  - reconcile  : settle votes left open by timed-out submissions

Usage:
  multisig-payouts <command> [options]
  python -m multisig_payouts.cli <command> [options]
"""

from __future__ import annotations

import asyncio
import json
from typing import Awaitable, Callable, List, Optional, TypeVar

import typer
from pydantic import ValidationError

from .adapters import ss58
from .adapters.chain import ChainClient
from .adapters.substrate import SubstrateChainClient, SubstrateConfig
from .config import Settings, get_settings
from .errors import ApiError
from .logging import get_logger, setup_logging
from .models.approvals import MultisigConfigIn
from .services.engine import MultisigEngine
from .storage import ApprovalStore, CommitteeConfigStore, Database

app = typer.Typer(add_completion=False, help="Grant multisig payouts: admin CLI")
log = get_logger(__name__)

T = TypeVar("T")


def _db(db_path: Optional[str]) -> Database:
    db = Database(db_path or get_settings().storage.db_path)
    db.run_migrations()
    return db


def _chain(settings: Settings) -> ChainClient:
    return SubstrateChainClient(SubstrateConfig(url=settings.chain.rpc_url, network=settings.chain.network))


def _run_with_chain(db_path: Optional[str], fn: Callable[[MultisigEngine], Awaitable[T]]) -> T:
    settings = get_settings()
    db = _db(db_path)
    engine = MultisigEngine(_chain(settings), ApprovalStore(db), CommitteeConfigStore(db), settings)

    async def _go() -> T:
        await engine.chain.connect()
        try:
            return await fn(engine)
        finally:
            await engine.chain.disconnect()

    try:
        return asyncio.run(_go())
    finally:
        db.close()


def _fail(err: ApiError) -> None:
    typer.echo(f"error: {err.message}", err=True)
    if err.details:
        typer.echo(json.dumps(dict(err.details), indent=2, default=str), err=True)
    raise typer.Exit(code=1)


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level for CLI runs"),
):
    """
    Shared options for all subcommands.
    """
    setup_logging(level=log_level, log_format="console")


@app.command("migrate")
def migrate(db_path: Optional[str] = typer.Option(None, "--db", help="SQLite path (default: $DB_PATH)")):
    """
    Apply DB migrations or initialize schema.
    """
    db = _db(db_path)
    typer.echo(f"Migrations applied: {db.path}")
    db.close()


@app.command("configure")
def configure(
    committee_id: int = typer.Argument(..., help="Committee id"),
    multisig_address: str = typer.Option(..., "--multisig", help="Committee multisig address"),
    signatories: List[str] = typer.Option(..., "--signatory", "-s", help="Signatory address (repeat)"),
    threshold: int = typer.Option(..., "--threshold", "-t"),
    parent_bounty_id: int = typer.Option(..., "--parent-bounty"),
    curator: str = typer.Option(..., "--curator", help="Curator of the parent bounty"),
    network: str = typer.Option("paseo", "--network"),
    pattern: str = typer.Option("merged", "--pattern", help="merged | separated"),
    no_proxy: bool = typer.Option(False, "--no-proxy", help="Do not wrap payouts in Proxy.proxy"),
    db_path: Optional[str] = typer.Option(None, "--db"),
):
    """
    Store a committee's multisig configuration. The address must derive from
    the signatories and threshold.
    """
    db = _db(db_path)
    try:
        cfg = MultisigConfigIn(
            multisig_address=multisig_address,
            signatories=signatories,
            threshold=threshold,
            approval_pattern=pattern,
            network=network,
            parent_bounty_id=parent_bounty_id,
            curator_address=curator,
            use_proxy=not no_proxy,
        )
        stored = CommitteeConfigStore(db).upsert_config(committee_id, cfg)
    except ApiError as e:
        _fail(e)
    except ValidationError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(stored.model_dump_json(indent=2))


@app.command("derive")
def derive(
    signatories: List[str] = typer.Option(..., "--signatory", "-s", help="Signatory address (repeat)"),
    threshold: int = typer.Option(..., "--threshold", "-t"),
    network: str = typer.Option("substrate", "--network", help="SS58 network name or prefix"),
):
    """
    Derive the multisig address for a signatory set and threshold.
    """
    fmt = int(network) if network.isdigit() else network
    try:
        address = ss58.compute_multisig_address(signatories, threshold, fmt)
        ordered = ss58.sort_signatories(signatories)
    except ApiError as e:
        _fail(e)
    except ValueError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps({"multisig_address": address, "threshold": threshold, "signatories": ordered}, indent=2))


@app.command("pending")
def pending(
    committee_id: int = typer.Argument(...),
    signatory: Optional[str] = typer.Option(
        None, "--signatory", "-s", help="Only approvals still awaiting this signatory's vote"
    ),
    db_path: Optional[str] = typer.Option(None, "--db"),
):
    """
    List live (pending / threshold_met) approvals for a committee.
    """
    store = ApprovalStore(_db(db_path))
    try:
        if signatory:
            approvals = store.list_pending_for_signatory(committee_id, signatory)
        else:
            approvals = store.list_pending_for_committee(committee_id)
    except ApiError as e:
        _fail(e)
    if not approvals:
        typer.echo("No approvals awaiting this signatory." if signatory else "No live approvals.")
        return
    for a in approvals:
        typer.echo(
            f"#{a.id}  milestone={a.milestone_id}  status={a.status}  "
            f"approvals={a.approve_count}/{a.threshold}  call_hash={a.call_hash}"
        )


@app.command("show")
def show(
    approval_id: int = typer.Argument(...),
    db_path: Optional[str] = typer.Option(None, "--db"),
):
    """
    Print one approval with its votes as JSON.
    """
    try:
        approval = ApprovalStore(_db(db_path)).require(approval_id)
    except ApiError as e:
        _fail(e)
    typer.echo(approval.model_dump_json(indent=2))


@app.command("cancel")
def cancel(
    approval_id: int = typer.Argument(...),
    db_path: Optional[str] = typer.Option(None, "--db"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """
    Cancel a live approval. The multisig operation on chain is left as is.
    """
    if not yes:
        typer.confirm(f"Cancel approval {approval_id}?", abort=True)
    try:
        approval = ApprovalStore(_db(db_path)).mark_cancelled(approval_id)
    except ApiError as e:
        _fail(e)
    log.info("approval_cancelled_cli", approval_id=approval_id)
    typer.echo(f"Approval {approval.id} cancelled.")


@app.command("discover")
def discover(
    bounty_id: int = typer.Argument(..., help="Parent bounty id"),
    network: Optional[str] = typer.Option(None, "--network", help="paseo | polkadot | kusama (default: $NETWORK)"),
    db_path: Optional[str] = typer.Option(None, "--db"),
):
    """
    Resolve a bounty's curator and the multisig controlling it, as input for
    `configure`.
    """
    try:
        structure = _run_with_chain(db_path, lambda engine: engine.discover(bounty_id, network))
    except ApiError as e:
        _fail(e)
    typer.echo(structure.model_dump_json(indent=2))


@app.command("reconcile")
def reconcile(
    approval_id: int = typer.Argument(...),
    db_path: Optional[str] = typer.Option(None, "--db"),
):
    """
    Settle votes whose submission outcome was unknown against the chain's
    approval list.
    """
    try:
        result = _run_with_chain(db_path, lambda engine: engine.reconcile(approval_id))
    except ApiError as e:
        _fail(e)
    log.info("approval_reconciled_cli", approval_id=approval_id)
    typer.echo(result.model_dump_json(indent=2))


if __name__ == "__main__":
    app()
