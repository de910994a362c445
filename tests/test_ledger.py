"""Tests for balance and allowance bookkeeping."""

import pytest

from raincloud.accounts import ZERO_ADDRESS
from raincloud.errors import (
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InvalidRecipientError,
    SupplyOverflowError,
)
from raincloud.ledger import Ledger
from raincloud.units import MAX_UINT256


ALICE = "0x1234567890123456789012345678901234567890"
BOB = "0x00000000000000000000000000000000000000b0"
CAROL = "0x00000000000000000000000000000000000000c0"


@pytest.fixture
def ledger():
    ledger = Ledger()
    ledger.mint(ALICE, 100)
    return ledger


def test_mint_and_burn_track_supply(ledger):
    ledger.mint(BOB, 50)
    ledger.burn(ALICE, 30)
    assert ledger.total_supply() == 120
    assert ledger.balance_of(ALICE) == 70
    assert ledger.balance_of(BOB) == 50


def test_addresses_are_case_insensitive(ledger):
    assert ledger.balance_of(ALICE.lower()) == 100
    assert ledger.balance_of(ALICE.upper().replace("0X", "0x")) == 100


def test_mint_overflow_leaves_state(ledger):
    with pytest.raises(SupplyOverflowError) as exc:
        ledger.mint(BOB, MAX_UINT256)
    assert exc.value.supply == 100
    assert ledger.total_supply() == 100
    assert ledger.balance_of(BOB) == 0


def test_zero_address_rejected_everywhere(ledger):
    with pytest.raises(InvalidRecipientError):
        ledger.mint(ZERO_ADDRESS, 1)
    with pytest.raises(InvalidRecipientError):
        ledger.transfer(ALICE, ZERO_ADDRESS, 1)
    with pytest.raises(InvalidRecipientError, match="spender"):
        ledger.approve(ALICE, ZERO_ADDRESS, 1)


def test_transfer_insufficient_balance(ledger):
    with pytest.raises(InsufficientBalanceError):
        ledger.transfer(ALICE, BOB, 101)
    assert ledger.balance_of(ALICE) == 100


def test_self_transfer_keeps_balance(ledger):
    ledger.transfer(ALICE, ALICE, 40)
    assert ledger.balance_of(ALICE) == 100


def test_transfer_from_checks_allowance_first(ledger):
    ledger.approve(ALICE, BOB, 10)
    with pytest.raises(InsufficientAllowanceError) as exc:
        ledger.transfer_from(BOB, ALICE, CAROL, 11)
    assert exc.value.allowance == 10
    ledger.transfer_from(BOB, ALICE, CAROL, 10)
    assert ledger.balance_of(CAROL) == 10
    assert ledger.allowance(ALICE, BOB) == 0


def test_transfer_from_insufficient_balance_keeps_allowance(ledger):
    ledger.approve(ALICE, BOB, 500)
    with pytest.raises(InsufficientBalanceError):
        ledger.transfer_from(BOB, ALICE, CAROL, 200)
    assert ledger.allowance(ALICE, BOB) == 500


def test_infinite_allowance(ledger):
    ledger.approve(ALICE, BOB, MAX_UINT256)
    ledger.transfer_from(BOB, ALICE, CAROL, 60)
    assert ledger.allowance(ALICE, BOB) == MAX_UINT256


def test_increase_allowance_overflow(ledger):
    ledger.approve(ALICE, BOB, MAX_UINT256)
    with pytest.raises(ValueError):
        ledger.increase_allowance(ALICE, BOB, 1)


def test_roundtrip_drops_empty_entries(ledger):
    ledger.approve(ALICE, BOB, 0)
    ledger.transfer(ALICE, BOB, 100)
    payload = ledger.to_dict()
    assert ALICE not in payload["balances"]
    assert payload["allowances"] == {}
    restored = Ledger.from_dict(payload)
    assert restored.to_dict() == payload
    assert restored.balance_of(BOB) == 100


def test_from_dict_rejects_bad_supply():
    with pytest.raises(ValueError, match="total supply"):
        Ledger.from_dict({"total_supply": "5", "balances": {ALICE: "4"}})
