from __future__ import annotations

import pytest

from multisig_payouts.adapters import ss58
from multisig_payouts.errors import InvalidAddress

from .fakes import ALICE, ALICE_PUBKEY, BOB, CHARLIE, DAVE, EVE, FERDIE


def test_decode_ss58_and_hex_agree():
    assert ss58.decode_address(ALICE).hex() == ALICE_PUBKEY[2:]
    assert ss58.decode_address(ALICE_PUBKEY) == ss58.decode_address(ALICE)


@pytest.mark.parametrize(
    "bad",
    [
        "",
        "   ",
        "not-an-address",
        "0x1234",
        # last character altered: checksum no longer matches
        ALICE[:-1] + ("Z" if ALICE[-1] != "Z" else "Y"),
        None,
    ],
)
def test_decode_rejects_malformed(bad):
    with pytest.raises(InvalidAddress) as ei:
        ss58.decode_address(bad)
    assert ei.value.status_code == 400
    assert ei.value.code == "invalid_address"


def test_convert_keeps_the_account():
    polkadot = ss58.convert(ALICE, "polkadot")
    kusama = ss58.convert(ALICE, 2)
    assert polkadot.startswith("1")
    assert polkadot != ALICE and kusama != ALICE
    assert ss58.same_account(polkadot, ALICE)
    assert ss58.same_account(kusama, polkadot)
    assert ss58.convert(polkadot, "substrate") == ALICE


def test_convert_unknown_network():
    with pytest.raises(InvalidAddress):
        ss58.convert(ALICE, "westend-ish")


def test_same_account_never_raises():
    assert ss58.same_account(ALICE, ALICE_PUBKEY)
    assert not ss58.same_account(ALICE, BOB)
    assert not ss58.same_account(ALICE, "garbage")
    assert not ss58.same_account(None, None)


def test_sort_signatories_by_account_bytes():
    # public keys: Ferdie 0x1c.., Dave 0x30.., Bob 0x8e.., Charlie 0x90.., Alice 0xd4.., Eve 0xe6..
    ordered = ss58.sort_signatories([ALICE, EVE, BOB, FERDIE, CHARLIE, DAVE])
    assert ordered == [FERDIE, DAVE, BOB, CHARLIE, ALICE, EVE]
    assert ss58.sort_signatories(ordered) == ordered


def test_sort_signatories_drops_same_account_in_other_encoding():
    out = ss58.sort_signatories([ALICE, ss58.convert(ALICE, 0), BOB])
    assert out == [BOB, ALICE]


def test_other_signatories_excludes_me_in_any_encoding():
    me = ss58.convert(BOB, "polkadot")
    assert ss58.get_other_signatories([ALICE, BOB, CHARLIE], me) == [CHARLIE, ALICE]


def test_multisig_address_is_order_independent():
    a = ss58.compute_multisig_address([ALICE, BOB, CHARLIE], 2)
    b = ss58.compute_multisig_address([CHARLIE, ALICE, BOB], 2)
    assert a == b
    assert ss58.compute_multisig_address([ALICE, BOB, CHARLIE], 3) != a
    assert ss58.same_account(ss58.compute_multisig_address([ALICE, BOB, CHARLIE], 2, "polkadot"), a)


@pytest.mark.parametrize("threshold", [0, 4])
def test_multisig_threshold_out_of_range(threshold):
    with pytest.raises(ValueError):
        ss58.multisig_account_id([ALICE, BOB, CHARLIE], threshold)


def test_validate_multisig_config():
    addr = ss58.compute_multisig_address([ALICE, BOB, CHARLIE], 2, "paseo")
    ok = ss58.validate_multisig_config(addr, [BOB, ALICE, CHARLIE], 2, ss58_format="paseo")
    assert ok["valid"] is True
    assert ok["computed_address"] == addr
    assert ok["error"] is None

    bad = ss58.validate_multisig_config(addr, [ALICE, BOB, CHARLIE], 3)
    assert bad["valid"] is False
    assert bad["expected_address"] == addr


def test_is_signatory():
    assert ss58.is_signatory(ss58.convert(CHARLIE, 0), [ALICE, BOB, CHARLIE])
    assert not ss58.is_signatory(DAVE, [ALICE, BOB, CHARLIE])


def test_bounty_account_layout():
    account = ss58.bounty_account_id(7)
    assert len(account) == 32
    assert account.startswith(b"modlpy/trsry\x08bt\x07\x00\x00\x00")
    assert account.endswith(b"\x00" * 13)
    assert ss58.bounty_account_id(7) != ss58.bounty_account_id(8)
    assert ss58.same_account(ss58.bounty_account_address(7, "paseo"), ss58.bounty_account_address(7))


@pytest.mark.parametrize("bounty_id", [-1, 2**32])
def test_bounty_account_rejects_out_of_range(bounty_id):
    with pytest.raises(ValueError):
        ss58.bounty_account_id(bounty_id)
