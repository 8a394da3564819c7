"""Unit tests for the lending strategy adapter.

The adapter is deployed with a stand-in protocol address so principal
movements, yield accounting, fToken burns, the user incentive and token
sweeps can be checked in isolation.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from flashstake.engine.chain import Chain
from flashstake.engine.errors import (
    ArraySizeMismatchError,
    FlashError,
    FTokenAddressAlreadySetError,
    FTokenAddressNotSetError,
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InsufficientFTokenSupplyError,
    InsufficientPrincipalError,
    LockoutInForceError,
    LockoutNotInForceError,
    NotContractOwnerError,
    NotFlashProtocolError,
    RatioCanOnlyBeIncreasedError,
    SlippageError,
    TokenAddressProhibitedError,
)
from flashstake.engine.events import BurnedFToken, RewardDeposited
from flashstake.engine.quoting import PRECISION
from flashstake.engine.strategy import LendingStrategy, LendingVenue
from flashstake.engine.tokens import TokenLedger

E18 = 10 ** 18
YEAR = 31_536_000
PROTOCOL = "0xprotocol"
OWNER = "0xowner"
ALICE = "0xalice"
BOB = "0xbob"


def deploy(lockout=7_257_600):
    """Principal token, venue, adapter and a bound fToken."""
    chain = Chain()
    dai = TokenLedger(chain, "Dai Stablecoin", "DAI", owner=OWNER)
    venue = LendingVenue(chain, dai)
    strategy = LendingStrategy(chain, PROTOCOL, venue, OWNER, reward_lockout_seconds=lockout)
    ftoken = TokenLedger(chain, "fDAI", "fDAI", owner=PROTOCOL)
    strategy.set_ftoken_address(PROTOCOL, ftoken.address)
    return chain, dai, venue, strategy, ftoken


def deposit(dai, strategy, amount):
    """Move principal in the way the protocol does."""
    dai.mint(OWNER, strategy.address, amount)
    return strategy.deposit_principal(PROTOCOL, amount)


class TestPrincipal:
    """Deposits and withdrawals are reserved for the protocol."""

    def test_deposit_reports_amount(self):
        _, dai, venue, strategy, _ = deploy()
        assert deposit(dai, strategy, 10_000 * E18) == 10_000 * E18
        assert strategy.get_principal_balance() == 10_000 * E18
        assert venue.interest_token.balance_of(strategy.address) == 10_000 * E18
        assert strategy.get_yield_balance() == 0

    def test_deposit_by_stranger_rejected(self):
        _, dai, _, strategy, _ = deploy()
        dai.mint(OWNER, strategy.address, E18)
        with pytest.raises(NotFlashProtocolError) as exc_info:
            strategy.deposit_principal(ALICE, E18)
        assert exc_info.value.code == "NOT_FLASH_PROTOCOL"

    def test_withdraw_by_stranger_rejected(self):
        _, dai, _, strategy, _ = deploy()
        deposit(dai, strategy, E18)
        with pytest.raises(NotFlashProtocolError):
            strategy.withdraw_principal(ALICE, E18)

    def test_withdraw_keeps_yield(self):
        _, dai, venue, strategy, _ = deploy()
        deposit(dai, strategy, 10_000 * E18)
        venue.accrue_interest(strategy.address, 50 * E18)

        strategy.withdraw_principal(PROTOCOL, 10_000 * E18)
        assert dai.balance_of(PROTOCOL) == 10_000 * E18
        assert strategy.get_principal_balance() == 0
        assert strategy.get_yield_balance() == 50 * E18

    def test_over_withdraw_rejected(self):
        _, dai, _, strategy, _ = deploy()
        deposit(dai, strategy, 10 * E18)
        with pytest.raises(InsufficientPrincipalError) as exc_info:
            strategy.withdraw_principal(PROTOCOL, 10 * E18 + 1)
        assert isinstance(exc_info.value, FlashError)
        assert exc_info.value.code == "INSUFFICIENT_PRINCIPAL"
        assert strategy.get_principal_balance() == 10 * E18


class TestVenueInterest:
    """Rate-based accrual is integer basis points."""

    def test_full_year_at_rate(self):
        _, dai, venue, strategy, _ = deploy()
        balance = 123456789123456789123456
        deposit(dai, strategy, balance)
        interest = venue.accrue_rate(strategy.address, 400, YEAR)
        assert interest == balance * 400 // 10_000
        assert strategy.get_yield_balance() == interest

    def test_half_year_floors(self):
        _, dai, venue, strategy, _ = deploy()
        deposit(dai, strategy, 1001)
        # 1001 * 0.04 / 2 = 20.02
        assert venue.accrue_rate(strategy.address, 400, YEAR // 2) == 20

    def test_dust_accrues_nothing(self):
        _, dai, venue, strategy, _ = deploy()
        deposit(dai, strategy, 10)
        assert venue.accrue_rate(strategy.address, 400, 1) == 0
        assert strategy.get_yield_balance() == 0


class TestFTokenBinding:
    """The fToken can be bound once."""

    def test_second_binding_rejected(self):
        _, _, _, strategy, ftoken = deploy()
        assert strategy.get_ftoken_address() == ftoken.address
        with pytest.raises(FTokenAddressAlreadySetError):
            strategy.set_ftoken_address(PROTOCOL, "0xother")

    def test_unbound_strategy_cannot_quote_burn(self):
        chain = Chain()
        dai = TokenLedger(chain, "Dai Stablecoin", "DAI", owner=OWNER)
        strategy = LendingStrategy(chain, PROTOCOL, LendingVenue(chain, dai), OWNER)
        with pytest.raises(FTokenAddressNotSetError) as exc_info:
            strategy.quote_burn_ftoken(E18)
        assert isinstance(exc_info.value, FlashError)
        assert exc_info.value.code == "FTOKEN_ADDRESS_NOT_SET"

    def test_principal_address(self):
        _, dai, _, strategy, _ = deploy()
        assert strategy.get_principal_address() == dai.address

    def test_mint_quote_uses_principal_decimals(self):
        _, _, _, strategy, _ = deploy()
        assert strategy.quote_mint_ftoken(10_000 * E18, YEAR) == 10000000005120000000000


class TestYieldBurn:
    """fToken holders redeem yield proportionally."""

    def test_no_supply_no_quote(self):
        _, _, _, strategy, _ = deploy()
        with pytest.raises(InsufficientFTokenSupplyError):
            strategy.quote_burn_ftoken(E18)

    def test_half_supply_gets_half_yield(self):
        chain, dai, venue, strategy, ftoken = deploy()
        deposit(dai, strategy, 10_000 * E18)
        venue.accrue_interest(strategy.address, 200 * E18)
        ftoken.mint(PROTOCOL, ALICE, 10_000 * E18)

        ftoken.approve(ALICE, strategy.address, 5_000 * E18)
        paid = strategy.burn_ftoken(ALICE, 5_000 * E18, 0, ALICE)
        assert paid == 100 * E18
        assert dai.balance_of(ALICE) == 100 * E18
        assert ftoken.total_supply == 5_000 * E18
        assert strategy.get_principal_balance() == 10_000 * E18

        event = chain.events.last(BurnedFToken)
        assert event.yield_returned == 100 * E18
        assert event.ftoken_amount == 5_000 * E18

    def test_bootstrap_balance_paid_first(self):
        _, dai, venue, strategy, ftoken = deploy()
        deposit(dai, strategy, 10_000 * E18)
        venue.accrue_interest(strategy.address, 100 * E18)
        dai.mint(OWNER, strategy.address, 100 * E18)
        assert strategy.get_yield_balance() == 200 * E18
        ftoken.mint(PROTOCOL, ALICE, 1_000 * E18)
        ftoken.approve(ALICE, strategy.address, 1_000 * E18)

        strategy.burn_ftoken(ALICE, 500 * E18, 0, ALICE)
        assert strategy.bootstrap_balance() == 0
        assert venue.interest_token.balance_of(strategy.address) == 10_100 * E18

        strategy.burn_ftoken(ALICE, 500 * E18, 0, ALICE)
        assert strategy.get_yield_balance() == 0
        assert venue.interest_token.balance_of(strategy.address) == 10_000 * E18
        assert dai.balance_of(ALICE) == 200 * E18

    def test_minimum_out_enforced(self):
        _, dai, venue, strategy, ftoken = deploy()
        deposit(dai, strategy, 1_000 * E18)
        venue.accrue_interest(strategy.address, 10 * E18)
        ftoken.mint(PROTOCOL, ALICE, 100 * E18)
        ftoken.approve(ALICE, strategy.address, 100 * E18)

        with pytest.raises(SlippageError) as exc_info:
            strategy.burn_ftoken(ALICE, 100 * E18, 10 * E18 + 1, ALICE)
        assert exc_info.value.code == "OUTPUT_TOO_LOW"
        assert ftoken.balance_of(ALICE) == 100 * E18

    def test_burn_requires_allowance(self):
        _, dai, venue, strategy, ftoken = deploy()
        deposit(dai, strategy, 1_000 * E18)
        venue.accrue_interest(strategy.address, 10 * E18)
        ftoken.mint(PROTOCOL, ALICE, 100 * E18)
        with pytest.raises(InsufficientAllowanceError) as exc_info:
            strategy.burn_ftoken(ALICE, 100 * E18, 0, ALICE)
        assert exc_info.value.code == "INSUFFICIENT_ALLOWANCE"
        assert dai.balance_of(ALICE) == 0


class TestUserIncentive:
    """Reward tokens paid on fToken burns."""

    def _with_reward(self, ratio=PRECISION // 2, amount=1_000 * E18):
        chain, dai, venue, strategy, ftoken = deploy()
        reward = TokenLedger(chain, "Flash", "FLASH", owner=OWNER)
        reward.mint(OWNER, OWNER, 10_000 * E18)
        reward.approve(OWNER, strategy.address, 10_000 * E18)
        strategy.deposit_reward(OWNER, reward.address, amount, ratio)
        deposit(dai, strategy, 1_000 * E18)
        venue.accrue_interest(strategy.address, 10 * E18)
        return chain, dai, strategy, ftoken, reward

    def test_reward_paid_at_ratio(self):
        chain, _, strategy, ftoken, reward = self._with_reward()
        ftoken.mint(PROTOCOL, ALICE, 100 * E18)
        ftoken.approve(ALICE, strategy.address, 100 * E18)

        strategy.burn_ftoken(ALICE, 100 * E18, 0, BOB)
        assert reward.balance_of(BOB) == 50 * E18
        assert chain.events.last(BurnedFToken).reward_paid == 50 * E18

    def test_reward_capped_at_balance(self):
        _, _, strategy, ftoken, reward = self._with_reward(ratio=PRECISION, amount=30 * E18)
        ftoken.mint(PROTOCOL, ALICE, 100 * E18)
        ftoken.approve(ALICE, strategy.address, 100 * E18)
        strategy.burn_ftoken(ALICE, 100 * E18, 0, ALICE)
        assert reward.balance_of(ALICE) == 30 * E18
        assert strategy.reward_token_balance() == 0

    def test_deposit_during_lockout_rejected(self):
        _, _, strategy, _, reward = self._with_reward()
        with pytest.raises(LockoutInForceError):
            strategy.deposit_reward(OWNER, reward.address, E18, PRECISION)

    def test_new_deposit_returns_leftovers_after_lockout(self):
        chain, _, strategy, _, reward = self._with_reward()
        chain.advance(7_257_600)
        before = reward.balance_of(OWNER)
        leftover = strategy.deposit_reward(OWNER, reward.address, 100 * E18, PRECISION)
        assert leftover == 1_000 * E18
        assert reward.balance_of(OWNER) == before + 1_000 * E18 - 100 * E18
        assert chain.events.last(RewardDeposited).amount == 100 * E18

    def test_ratio_only_increases_during_lockout(self):
        chain, _, strategy, _, _ = self._with_reward()
        with pytest.raises(RatioCanOnlyBeIncreasedError):
            strategy.set_reward_ratio(OWNER, PRECISION // 4)
        strategy.set_reward_ratio(OWNER, PRECISION)
        assert strategy.reward_ratio == PRECISION

        chain.advance(7_257_600)
        with pytest.raises(LockoutNotInForceError):
            strategy.set_reward_ratio(OWNER, 2 * PRECISION)

    def test_anyone_can_top_up(self):
        _, _, strategy, _, reward = self._with_reward()
        reward.mint(OWNER, ALICE, 5 * E18)
        reward.approve(ALICE, strategy.address, 5 * E18)
        strategy.add_reward_tokens(ALICE, 5 * E18)
        assert strategy.reward_token_balance() == 1_005 * E18

    def test_reward_admin_is_owner_only(self):
        _, _, strategy, _, reward = self._with_reward()
        with pytest.raises(NotContractOwnerError):
            strategy.set_reward_ratio(ALICE, PRECISION)


class TestWithdrawERC20:
    """Owner sweep of stray tokens."""

    def test_sweep_stray_token(self):
        chain, _, _, strategy, _ = deploy()
        stray = TokenLedger(chain, "Stray", "STRAY", owner=OWNER)
        stray.mint(OWNER, strategy.address, 100)
        strategy.withdraw_erc20(OWNER, [stray.address], [60])
        assert stray.balance_of(OWNER) == 60
        assert stray.balance_of(strategy.address) == 40

    def test_interest_bearing_token_prohibited(self):
        _, dai, venue, strategy, _ = deploy()
        deposit(dai, strategy, 100)
        with pytest.raises(TokenAddressProhibitedError) as exc_info:
            strategy.withdraw_erc20(OWNER, [venue.interest_token.address], [1])
        assert exc_info.value.code == "TOKEN_ADDRESS_PROHIBITED"

    def test_length_mismatch(self):
        chain, _, _, strategy, _ = deploy()
        with pytest.raises(ArraySizeMismatchError):
            strategy.withdraw_erc20(OWNER, ["0xa", "0xb"], [1])

    def test_owner_only(self):
        chain, _, _, strategy, _ = deploy()
        stray = TokenLedger(chain, "Stray", "STRAY", owner=OWNER)
        with pytest.raises(NotContractOwnerError):
            strategy.withdraw_erc20(ALICE, [stray.address], [0])

    def test_failed_sweep_leaves_nothing_behind(self):
        chain, _, _, strategy, _ = deploy()
        stray = TokenLedger(chain, "Stray", "STRAY", owner=OWNER)
        stray.mint(OWNER, strategy.address, 100)
        with pytest.raises(InsufficientBalanceError):
            strategy.withdraw_erc20(OWNER, [stray.address, stray.address], [60, 60])
        assert stray.balance_of(strategy.address) == 100
