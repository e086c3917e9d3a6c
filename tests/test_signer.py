from __future__ import annotations

from multisig_payouts.adapters import ss58
from multisig_payouts.adapters.signer import KeypairSigner, Signer, SignerRegistry

from .fakes import ALICE, ALICE_PUBKEY, BOB, FakeSigner


def test_keypair_signer_from_dev_uri():
    signer = KeypairSigner.from_uri("//Alice")
    assert signer.address == ALICE
    assert "0x" + signer.public_key.hex() == ALICE_PUBKEY
    assert isinstance(signer, Signer)
    assert len(signer.sign(b"payload")) == 64


def test_registry_lookup_ignores_encoding():
    registry = SignerRegistry([FakeSigner(ALICE)])
    assert registry.get(ss58.convert(ALICE, "polkadot")).address == ALICE
    assert registry.get(ALICE_PUBKEY) is not None
    assert registry.get(BOB) is None
    assert len(registry) == 1


def test_registry_from_suris_uses_network_prefix():
    registry = SignerRegistry.from_suris(["//Alice", "//Bob"], ss58_format=0)
    alice = registry.get(ALICE)
    assert alice is not None
    assert alice.address == ss58.convert(ALICE, 0)
    assert not SignerRegistry.from_suris([])
