"""Tests for the in-memory fungible ledger used as sale and payment token."""

import pytest

from token_sale.errors import InsufficientBalanceOrAllowanceError, UnauthorizedError
from token_sale.ledgers import InMemoryLedger

from conftest import DEPLOYER, SECOND, THIRD


@pytest.fixture
def token():
    ledger = InMemoryLedger("FRIES", 18, DEPLOYER)
    ledger.mint(DEPLOYER, SECOND, 100)
    return ledger


class TestMint:
    def test_owner_mint(self, token):
        assert token.balance_of(SECOND) == 100
        assert token.total_supply == 100

    def test_admin_mint(self, token):
        token.add_admin(DEPLOYER, SECOND)
        token.mint(SECOND, THIRD, 5)
        assert token.balance_of(THIRD) == 5

    def test_removed_admin_cannot_mint(self, token):
        token.add_admin(DEPLOYER, SECOND)
        token.remove_admin(DEPLOYER, SECOND)
        with pytest.raises(UnauthorizedError):
            token.mint(SECOND, THIRD, 5)

    def test_only_owner_manages_admins(self, token):
        with pytest.raises(UnauthorizedError):
            token.add_admin(SECOND, SECOND)


class TestTransfers:
    def test_transfer(self, token):
        token.transfer(SECOND, THIRD, 40)
        assert token.balance_of(SECOND) == 60
        assert token.balance_of(THIRD.lower()) == 40

    def test_transfer_over_balance(self, token):
        with pytest.raises(InsufficientBalanceOrAllowanceError):
            token.transfer(SECOND, THIRD, 101)
        assert token.balance_of(SECOND) == 100

    def test_transfer_from_spends_allowance(self, token):
        token.approve(SECOND, THIRD, 50)
        token.transfer_from(THIRD, SECOND, DEPLOYER, 30)
        assert token.allowance(SECOND, THIRD) == 20
        assert token.balance_of(DEPLOYER) == 30

    def test_transfer_from_without_allowance(self, token):
        with pytest.raises(InsufficientBalanceOrAllowanceError, match="allowance"):
            token.transfer_from(THIRD, SECOND, THIRD, 1)

    def test_failed_pull_keeps_allowance(self, token):
        token.approve(SECOND, THIRD, 500)
        with pytest.raises(InsufficientBalanceOrAllowanceError, match="balance"):
            token.transfer_from(THIRD, SECOND, THIRD, 200)
        assert token.allowance(SECOND, THIRD) == 500

    def test_negative_amount(self, token):
        with pytest.raises(ValueError):
            token.transfer(SECOND, THIRD, -1)


class TestBurn:
    def test_burn(self, token):
        token.burn(SECOND, 10)
        assert token.balance_of(SECOND) == 90
        assert token.total_supply == 90

    def test_burn_from(self, token):
        token.approve(SECOND, THIRD, 10)
        token.burn_from(THIRD, SECOND, 10)
        assert token.balance_of(SECOND) == 90
        assert token.allowance(SECOND, THIRD) == 0

    def test_burn_from_needs_approval(self, token):
        with pytest.raises(InsufficientBalanceOrAllowanceError):
            token.burn_from(THIRD, SECOND, 1)
