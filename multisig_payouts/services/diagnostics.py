"""
Chain error diagnostics.

Turns a raw failure message (a dispatch error such as
``Balances.InsufficientBalance: ...``, a node rejection, or one of our own
multi-line balance messages) into a :class:`ParsedChainError` with a
category, a short title and concrete action items, so a signatory can fix
the problem without reading logs.

Rules are evaluated in order; the first match wins. Pallet error names are
listed alongside the free-text patterns because the chain reports dispatch
errors by name.

Usage
-----
    parsed = parse_chain_error(str(exc), network="paseo", context={"call_hash": h})
    if requires_user_action(parsed):
        ...
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Pattern

from .balance import FeeBalanceCheck, FundingBalanceCheck, format_balance, get_faucet_url, network_spec

BOUNTY_HELP = "https://wiki.polkadot.network/docs/learn-treasury#bounties"

RETRYABLE = frozenset({"transaction_timeout", "network_error", "user_rejected"})
USER_ACTION = frozenset(
    {
        "insufficient_balance",
        "bounty_not_active",
        "bounty_insufficient_funds",
        "invalid_signatory",
        "permission_denied",
    }
)


@dataclass
class ParsedChainError:
    category: str
    severity: str
    title: str
    description: str
    action_items: List[str]
    context: Dict[str, Any] = field(default_factory=dict)
    original_message: str = ""
    help_link: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class _Rule:
    pattern: Pattern[str]
    build: Callable[[re.Match, str, Dict[str, Any]], ParsedChainError]


def _faucet(network: str) -> str:
    return get_faucet_url(network) or "https://faucet.polkadot.io/"


# ------------------------------- Builders --------------------------------------


def _bounty_not_active(m: re.Match, network: str, ctx: Dict[str, Any]) -> ParsedChainError:
    if m.lastindex:
        ctx.update(parent_bounty_id=int(m.group(1)), bounty_status=m.group(2))
    status = ctx.get("bounty_status", "a non-active")
    return ParsedChainError(
        "bounty_not_active",
        "error",
        "Parent Bounty Not Active",
        f'The parent bounty is currently in "{status}" status and cannot fund payouts. '
        'It must be "Active" with a curator assigned.',
        [
            "Wait for the bounty to become active",
            "Contact the treasury or council to activate the bounty",
            "Ensure the bounty has been funded by the treasury",
            "Verify the curator has been assigned and accepted",
        ],
        ctx,
        help_link=BOUNTY_HELP,
    )


def _bounty_funds(m: re.Match, network: str, ctx: Dict[str, Any]) -> ParsedChainError:
    text = m.string
    for key, rx in (
        ("parent_bounty_id", r"Parent Bounty ID: (\d+)"),
        ("bounty_value", r"Bounty Value: ([\d.]+)"),
        ("available_balance", r"Available Balance: ([\d.]+)"),
        ("payout_required", r"Payout Required: ([\d.]+)"),
    ):
        found = re.search(rx, text, re.I)
        if found:
            ctx[key] = int(found.group(1)) if key == "parent_bounty_id" else found.group(1)
    return ParsedChainError(
        "bounty_insufficient_funds",
        "error",
        "Insufficient Bounty Funds",
        "The parent bounty does not have enough funds allocated to cover this payout.",
        [
            "Check the current balance of the parent bounty",
            "Request additional funding through a treasury proposal",
            "Consider reducing the milestone payout amount",
            "Contact the committee or council for assistance",
        ],
        ctx,
    )


def _wasm(m: re.Match, network: str, ctx: Dict[str, Any]) -> ParsedChainError:
    faucet = _faucet(network)
    return ParsedChainError(
        "wasm_error",
        "error",
        "Transaction Validation Failed",
        "The transaction failed runtime validation. This usually points at account balances, "
        "permissions or the current on-chain state.",
        [
            f"Ensure your account has sufficient {network.upper()} tokens for fees",
            f"Get testnet tokens from the faucet: {faucet}",
            "Verify you are connected to the correct network",
            "Check that all multisig signatories are valid addresses",
        ],
        ctx,
        help_link=faucet,
    )


def _insufficient_balance(m: re.Match, network: str, ctx: Dict[str, Any]) -> ParsedChainError:
    detail = re.search(r"Current balance: ([\d.]+).*Required: ([\d.]+)", m.string, re.I | re.S)
    if detail:
        ctx.update(current_balance=detail.group(1), required_balance=detail.group(2))
    faucet = get_faucet_url(network)
    return ParsedChainError(
        "insufficient_balance",
        "error",
        "Insufficient Balance",
        "The signing account does not have enough tokens to cover the transaction fees.",
        [
            f"Add more {network.upper()} tokens to the signing account",
            f"Get testnet tokens from: {faucet}" if faucet else "Transfer tokens to the signing account",
            "Keep at least 0.01 tokens spare for multisig fees",
        ],
        ctx,
        help_link=faucet,
    )


def _simple(category: str, severity: str, title: str, description: str, actions: List[str], help_link: Optional[str] = None):
    def build(m: re.Match, network: str, ctx: Dict[str, Any]) -> ParsedChainError:
        return ParsedChainError(category, severity, title, description, list(actions), ctx, help_link=help_link)

    return build


def _simulation(m: re.Match, network: str, ctx: Dict[str, Any]) -> ParsedChainError:
    found = re.search(r"Suggestions:\n([\s\S]*?)(?:\n\n|$)", m.string)
    suggestions = [s.lstrip("-* ").strip() for s in found.group(1).splitlines()] if found else []
    suggestions = [s for s in suggestions if s]
    return ParsedChainError(
        "simulation_failed",
        "error",
        "Transaction Simulation Failed",
        "Preflight detected that this transaction will likely fail.",
        suggestions
        or [
            "Review the transaction parameters",
            "Check account balances and permissions",
            "Contact support if the problem persists",
        ],
        ctx,
    )


_I = re.I

RULES: List[_Rule] = [
    _Rule(re.compile(r"Parent bounty (\d+) is not active \(status: (\w+)\)|Bounties\.UnexpectedStatus", _I), _bounty_not_active),
    _Rule(
        re.compile(r"Insufficient funds in parent bounty|ChildBounties\.InsufficientBountyBalance", _I),
        _bounty_funds,
    ),
    _Rule(re.compile(r"wasm trap|unreachable", _I), _wasm),
    _Rule(
        re.compile(r"insufficient balance|not enough funds|balance too low|Inability to pay some fees|Balances\.(InsufficientBalance|FundsUnavailable)", _I),
        _insufficient_balance,
    ),
    _Rule(
        re.compile(r"call data does not match|CallDataMismatch", _I),
        _simple(
            "call_data_mismatch",
            "error",
            "Call Data Mismatch",
            "The rebuilt payout does not match the call the committee approved.",
            [
                "Do not retry: the stored approval no longer matches this payout",
                "Cancel the approval and initiate a new one",
            ],
        ),
    ),
    _Rule(
        re.compile(r"not a signatory|wallet address is not a signatory|invalid signatory|Multisig\.(SenderInSignatories|SignatoriesOutOfOrder|NotOwner)", _I),
        _simple(
            "invalid_signatory",
            "error",
            "Invalid Signatory",
            "The signing account is not registered as a signatory for this committee multisig.",
            [
                "Verify you are signing with the correct account",
                "Contact the committee administrator to add your address",
                "Check you are on the correct network (mainnet vs testnet)",
            ],
        ),
    ),
    _Rule(
        re.compile(r"already approved|duplicate approval|already voted|Multisig\.AlreadyApproved", _I),
        _simple(
            "already_approved",
            "warning",
            "Already Approved",
            "You have already submitted your approval for this transaction.",
            [
                "Wait for other signatories to approve",
                "Check the approval progress",
                "No further action is required from you",
            ],
        ),
    ),
    _Rule(
        re.compile(r"not enough approv|threshold not met|Multisig\.(NotEnoughApprovers|MinimumThreshold)", _I),
        _simple(
            "threshold_not_met",
            "warning",
            "Threshold Not Met",
            "The multisig does not yet have enough approvals to execute.",
            ["Wait for more signatories to approve", "Check the approval progress"],
        ),
    ),
    _Rule(
        re.compile(r"invalid.*timepoint|timepoint.*invalid|missing timepoint|Multisig\.(NoTimepoint|WrongTimepoint|UnexpectedTimepoint)", _I),
        _simple(
            "timepoint_invalid",
            "error",
            "Invalid Transaction Timepoint",
            "The multisig timepoint is missing or invalid; the initial transaction may not have been recorded.",
            [
                "Check whether the original transaction was included on-chain",
                "Ask the initiator to retry creating the transaction",
                "The approval process may need to be restarted",
            ],
        ),
    ),
    _Rule(
        re.compile(r"timeout|timed out|failed to extract timepoint", _I),
        _simple(
            "transaction_timeout",
            "error",
            "Transaction Timeout",
            "The transaction took too long to confirm; it may have been dropped or may still land.",
            [
                "Check a block explorer for the transaction status",
                "Check pending multisig operations before retrying",
                "Wait a few minutes and try again",
            ],
        ),
    ),
    _Rule(
        re.compile(r"user rejected|cancelled by user|denied by user", _I),
        _simple(
            "user_rejected",
            "warning",
            "Transaction Cancelled",
            "The signer declined the transaction.",
            ["Submit again and approve the signing request"],
        ),
    ),
    _Rule(
        re.compile(r"^\s*Cancelled\s*$", _I),
        _simple(
            "wasm_error",
            "error",
            "Transaction Rejected by Signer",
            "The signer rejected the transaction, usually because its own pre-check predicted an on-chain failure.",
            [
                "Run the preflight report for this payout",
                "Verify the signing account has sufficient tokens for fees",
                "Ensure the parent bounty has enough funds for the payout",
            ],
        ),
    ),
    _Rule(
        re.compile(r"network error|connection failed|disconnected|connection refused", _I),
        _simple(
            "network_error",
            "error",
            "Network Connection Error",
            "Unable to reach the chain node.",
            [
                "Check the node endpoint configuration",
                "The network may be experiencing issues; try again later",
                "Try a different RPC endpoint",
            ],
        ),
    ),
    _Rule(
        re.compile(r"not authorized|unauthorized|permission denied|access denied|BadOrigin", _I),
        _simple(
            "permission_denied",
            "error",
            "Permission Denied",
            "The signing account does not have permission to perform this action.",
            [
                "Verify you are a committee member with signing rights",
                "Contact the committee administrator",
            ],
        ),
    ),
    _Rule(
        re.compile(r"propose_?curator and accept_?curator|curator state dependency|child bounty workflow|Bounties\.RequireCurator", _I),
        _simple(
            "child_bounty_workflow_error",
            "error",
            "Child Bounty Workflow Error",
            "The payout bundle contains child-bounty steps that cannot execute together with this origin.",
            [
                "Check the committee's curator and proxy configuration",
                "The batch must be wrapped in Proxy.proxy with the curator as the real account",
            ],
            help_link=BOUNTY_HELP,
        ),
    ),
    _Rule(re.compile(r"transaction simulation failed|simulation failed|Transaction Will Fail", _I), _simulation),
]


def _clean(message: str) -> str:
    text = message.split("\n    at ")[0]
    text = re.sub(r"^(Error|Uncaught):\s*", "", text, flags=re.I).strip()
    return text if len(text) <= 500 else text[:500] + "..."


def parse_chain_error(
    message: Any,
    *,
    network: str = "paseo",
    context: Optional[Dict[str, Any]] = None,
) -> ParsedChainError:
    text = str(message if message is not None else "Unknown error")
    ctx: Dict[str, Any] = dict(context or {})
    ctx.setdefault("network", network)
    for rule in RULES:
        m = rule.pattern.search(text)
        if m:
            parsed = rule.build(m, network, ctx)
            parsed.original_message = text
            return parsed
    return ParsedChainError(
        "unknown",
        "error",
        "Transaction Failed",
        _clean(text),
        [
            "Review the error details",
            "Try the transaction again",
            "If the problem persists, contact support with the error details",
        ],
        ctx,
        original_message=text,
    )


def is_retryable(parsed: ParsedChainError) -> bool:
    return parsed.category in RETRYABLE


def requires_user_action(parsed: ParsedChainError) -> bool:
    return parsed.category in USER_ACTION


def error_summary(parsed: ParsedChainError) -> str:
    """Short hint for notifications: first action item, else the truncated description."""
    if parsed.action_items and len(parsed.action_items[0]) < 80:
        return parsed.action_items[0]
    d = parsed.description
    return d if len(d) <= 100 else d[:100] + "..."


# ------------------------------- Root cause ------------------------------------


def root_cause_hint(
    *,
    network: str,
    signer: Optional[str] = None,
    fee_check: Optional[FeeBalanceCheck] = None,
    funding_source: Optional[int] = None,
    funding_check: Optional[FundingBalanceCheck] = None,
    amount: Optional[int] = None,
) -> Optional[str]:
    """
    Best guess at why a submission failed, from the balance reads taken just
    before it: an underfunded signer or an underfunded parent bounty. Returns
    None when neither looks deficient.
    """
    decimals = network_spec(network).decimals
    hints: List[str] = []
    if fee_check is not None and (not fee_check.has_balance or fee_check.balance.transferable < fee_check.required * 2):
        hints.append(
            f"Signer {signer} may be underfunded: transferable "
            f"{format_balance(fee_check.balance.transferable, decimals)} tokens against a fee reserve of "
            f"{format_balance(fee_check.required, decimals)} tokens."
        )
    if funding_check is not None and amount is not None and not funding_check.has_balance:
        hints.append(
            f"Parent bounty {funding_source} may be underfunded or inactive: available "
            f"{format_balance(funding_check.available, decimals)} of "
            f"{format_balance(funding_check.source_value, decimals)} tokens, payout "
            f"{format_balance(amount, decimals)} tokens"
            + (f" ({funding_check.error})" if funding_check.error else "")
            + "."
        )
    return " ".join(hints) or None


__all__ = [
    "ParsedChainError",
    "parse_chain_error",
    "is_retryable",
    "requires_user_action",
    "error_summary",
    "root_cause_hint",
]
