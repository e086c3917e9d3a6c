"""
Balance oracle: fee and funding-source checks run before any submission.

A rejected extrinsic still burns its submitter's fee, so both checks happen
before anything is signed. Neither check raises: chain failures become a
result with ``has_balance=False`` and ``error`` set, and the caller turns
that into one diagnostic message (see :func:`insufficient_balance_message`
and :func:`insufficient_funding_message`).

Payout funds come from the committee's parent bounty, never from the
multisig account itself; the multisig signatories only pay fees.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..adapters import ss58
from ..adapters.chain import AccountBalance, ChainClient, ChainError
from ..logging import get_logger

log = get_logger(__name__)

# 0.01 DOT; multisig extrinsics typically cost 0.001-0.01 DOT
MIN_TRANSACTION_FEE = 100_000_000

FUNDABLE_BOUNTY_STATUS = "Active"


@dataclass(frozen=True)
class NetworkSpec:
    name: str
    ss58_format: int
    decimals: int
    symbol: str
    min_transaction_fee: int = MIN_TRANSACTION_FEE
    faucet_url: Optional[str] = None


NETWORKS: Dict[str, NetworkSpec] = {
    "polkadot": NetworkSpec("polkadot", 0, 10, "DOT"),
    "kusama": NetworkSpec("kusama", 2, 12, "KSM", faucet_url="https://faucet.polkadot.io/kusama"),
    "paseo": NetworkSpec("paseo", 0, 10, "PAS", faucet_url="https://faucet.polkadot.io/paseo"),
}


def network_spec(network: str) -> NetworkSpec:
    try:
        return NETWORKS[network.lower()]
    except KeyError:
        raise ValueError(f"unknown network {network!r}") from None


def get_faucet_url(network: str) -> Optional[str]:
    spec = NETWORKS.get(network.lower())
    return spec.faucet_url if spec else None


# ------------------------------- Results ---------------------------------------


@dataclass
class FeeBalanceCheck:
    has_balance: bool
    balance: AccountBalance
    required: int
    shortfall: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_balance": self.has_balance,
            "transferable": str(self.balance.transferable),
            "required": str(self.required),
            "shortfall": str(self.shortfall),
            "error": self.error,
        }


@dataclass
class FundingBalanceCheck:
    has_balance: bool
    source_value: int = 0
    available: int = 0
    account: Optional[str] = None
    status: Optional[str] = None
    curator: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_balance": self.has_balance,
            "source_value": str(self.source_value),
            "available": str(self.available),
            "account": self.account,
            "status": self.status,
            "curator": self.curator,
            "error": self.error,
        }


# ------------------------------- Oracle ----------------------------------------


class BalanceOracle:
    def __init__(self, chain: ChainClient):
        self.chain = chain

    async def check_fee_balance(self, account: str, network: str, *, required: Optional[int] = None) -> FeeBalanceCheck:
        """
        True when the account's transferable balance covers the network's
        minimum fee reserve (or `required`, when preflight passes a
        margin-adjusted estimate).
        """
        need = required if required is not None else network_spec(network).min_transaction_fee
        try:
            bal = await self.chain.get_account_balance(account)
        except ChainError as e:
            log.warning("fee_balance_query_failed", account=account, network=network, error=e.message)
            return FeeBalanceCheck(False, AccountBalance(), need, need, error=f"Failed to get balance for {account}: {e.message}")

        ok = bal.transferable >= need
        check = FeeBalanceCheck(ok, bal, need, 0 if ok else need - bal.transferable)
        log.debug(
            "fee_balance_checked",
            account=account,
            transferable=bal.transferable,
            required=need,
            has_balance=ok,
        )
        return check

    async def check_funding_balance(self, funding_source: int, amount: int, network: str) -> FundingBalanceCheck:
        """
        The funding source is a parent bounty: it must exist, be ``Active``
        and its account must still hold at least `amount`. ``Bounties.value``
        is the amount originally approved; child bounties already carved out
        have left the account, so the spendable balance of the bounty account
        is what decides.
        """
        try:
            bounty = await self.chain.get_bounty(funding_source)
        except ChainError as e:
            log.warning("funding_query_failed", bounty_id=funding_source, network=network, error=e.message)
            return FundingBalanceCheck(False, error=f"Failed to query parent bounty: {e.message}")

        if bounty is None:
            return FundingBalanceCheck(False, error=f"Parent bounty {funding_source} not found")

        if bounty.status != FUNDABLE_BOUNTY_STATUS:
            return FundingBalanceCheck(
                False,
                source_value=bounty.value,
                status=bounty.status,
                curator=bounty.curator,
                error=f"Parent bounty {funding_source} is not active (status: {bounty.status})",
            )

        account = ss58.bounty_account_address(funding_source, ss58.resolve_format(network))
        try:
            bal = await self.chain.get_account_balance(account)
        except ChainError as e:
            log.warning("funding_query_failed", bounty_id=funding_source, network=network, error=e.message)
            return FundingBalanceCheck(
                False,
                source_value=bounty.value,
                status=bounty.status,
                curator=bounty.curator,
                account=account,
                error=f"Failed to get balance of bounty account {account}: {e.message}",
            )

        ok = bal.transferable >= amount
        log.debug(
            "funding_balance_checked",
            bounty_id=funding_source,
            value=bounty.value,
            available=bal.transferable,
            amount=amount,
            has_balance=ok,
        )
        return FundingBalanceCheck(
            ok,
            source_value=bounty.value,
            available=bal.transferable,
            account=account,
            status=bounty.status,
            curator=bounty.curator,
        )


# ------------------------------- Messages --------------------------------------


def format_balance(planck: int, decimals: int = 10) -> str:
    """Planck to a token string with trailing zeros removed, e.g. 1.5 or 0.01."""
    sign = "-" if planck < 0 else ""
    whole, frac = divmod(abs(planck), 10**decimals)
    frac_s = str(frac).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{frac_s}" if frac_s else f"{sign}{whole}"


def insufficient_balance_message(
    address: str,
    check: FeeBalanceCheck,
    network: str,
    account_type: str = "initiator",
) -> str:
    decimals = NETWORKS.get(network.lower(), NETWORKS["polkadot"]).decimals
    faucet = get_faucet_url(network)

    msg = f"Insufficient balance for {account_type} account.\n\n"
    msg += f"Address: {address}\n"
    msg += f"Current balance: {format_balance(check.balance.transferable, decimals)} tokens\n"
    msg += f"Required: {format_balance(check.required, decimals)} tokens\n"
    msg += f"Shortfall: {format_balance(check.shortfall, decimals)} tokens\n\n"
    if check.error:
        msg += f"Error: {check.error}\n\n"
    if account_type == "multisig":
        msg += "The multisig account needs to be funded before payouts can be made.\n"
        msg += "Please transfer funds to the multisig address.\n\n"
    elif faucet:
        msg += f"Get testnet tokens from: {faucet}\n\n"
    msg += f"Network: {network.upper()}"
    return msg


def insufficient_funding_message(bounty_id: int, check: FundingBalanceCheck, amount: int, network: str) -> str:
    decimals = NETWORKS.get(network.lower(), NETWORKS["polkadot"]).decimals

    msg = "Insufficient funds in parent bounty for payout.\n\n"
    msg += f"Parent Bounty ID: {bounty_id}\n"
    msg += f"Bounty Value: {format_balance(check.source_value, decimals)} tokens\n"
    msg += f"Available Balance: {format_balance(check.available, decimals)} tokens\n"
    msg += f"Payout Required: {format_balance(amount, decimals)} tokens\n\n"
    if check.error:
        msg += f"Error: {check.error}\n\n"
    msg += "The parent bounty must have sufficient funds allocated from the treasury.\n"
    msg += f"Network: {network.upper()}"
    return msg


__all__ = [
    "MIN_TRANSACTION_FEE",
    "NetworkSpec",
    "NETWORKS",
    "network_spec",
    "get_faucet_url",
    "AccountBalance",
    "FeeBalanceCheck",
    "FundingBalanceCheck",
    "BalanceOracle",
    "format_balance",
    "insufficient_balance_message",
    "insufficient_funding_message",
]
