"""
Bounty control discovery.

A parent bounty is controlled through one of two account layouts:

    signatories -> multisig -> pure proxy (curator) -> bounty
    signatories -> multisig (curator)                -> bounty

The bounty names its curator. When the curator has a proxy delegate, that
delegate is the controlling multisig; otherwise the curator is taken to be
the multisig itself. The signatory set of a multisig cannot be read from the
chain: only accounts that opened or approved a pending operation are visible,
and those are reported as ``known_signatories``.
"""

from __future__ import annotations

from typing import List, Optional

from ..adapters import ss58
from ..adapters.chain import ChainClient, PendingMultisig
from ..logging import get_logger
from ..models.approvals import MultisigStructure

log = get_logger(__name__)


def _known_signatories(entries: List[PendingMultisig], ss58_format: int) -> List[str]:
    seen = {}
    for entry in entries:
        for address in [entry.depositor, *entry.approvals]:
            if not address:
                continue
            account = ss58.decode_address(address)
            seen.setdefault(account, ss58.encode_address(account, ss58_format))
    return ss58.sort_signatories(seen.values())


async def discover_multisig_structure(
    chain: ChainClient, bounty_id: int, network: str
) -> Optional[MultisigStructure]:
    """
    Resolve bounty -> curator -> controlling multisig. Returns None when the
    bounty does not exist or has no curator yet. Chain errors propagate.
    """
    fmt = ss58.resolve_format(network)
    bounty = await chain.get_bounty(bounty_id)
    if bounty is None:
        log.info("discovery_bounty_missing", bounty_id=bounty_id)
        return None
    if not bounty.curator:
        log.info("discovery_no_curator", bounty_id=bounty_id, status=bounty.status)
        return None

    description = await chain.get_bounty_description(bounty_id)
    curator = ss58.convert(bounty.curator, fmt)

    controlling: Optional[str] = None
    proxy_type: Optional[str] = None
    proxies = await chain.get_proxies(curator)
    if proxies:
        controlling = ss58.convert(proxies[0].delegate, fmt)
        proxy_type = proxies[0].proxy_type
    effective = controlling or curator

    entries = await chain.list_pending_multisigs(effective)
    structure = MultisigStructure(
        bounty_id=bounty_id,
        description=description,
        status=bounty.status,
        value=bounty.value,
        curator=curator,
        controlling_multisig=controlling,
        proxy_type=proxy_type,
        curator_is_multisig=controlling is None,
        effective_multisig=effective,
        known_signatories=_known_signatories(entries, fmt),
        pending_operations=len(entries),
        network=network,
    )
    log.info(
        "multisig_structure_discovered",
        bounty_id=bounty_id,
        curator=curator,
        effective_multisig=effective,
        via_proxy=controlling is not None,
        pending=len(entries),
    )
    return structure


__all__ = ["discover_multisig_structure"]
