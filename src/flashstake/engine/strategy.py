"""Strategy adapters: the yield sources stakes are backed by.

``StrategyAdapter`` is the contract the protocol relies on. ``LendingStrategy``
is the reference adapter: it parks principal in a ``LendingVenue`` that issues
1:1 interest-bearing tokens, so everything the venue holds above the
deposited principal is yield claimable by fToken holders.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from .chain import Chain, Ownable, Snapshottable, atomic, nonreentrant
from .errors import (
    ArraySizeMismatchError,
    FTokenAddressAlreadySetError,
    FTokenAddressNotSetError,
    InsufficientPrincipalError,
    LockoutInForceError,
    LockoutNotInForceError,
    NotFlashProtocolError,
    RatioCanOnlyBeIncreasedError,
    SlippageError,
    TokenAddressProhibitedError,
    ZeroAmountError,
)
from .events import BurnedFToken, ERC20Withdrawn, RewardDeposited, RewardRatioUpdated
from .quoting import BPS_DENOMINATOR, PRECISION, MintCurve, quote_burn, quote_mint, saturating_sub
from .tokens import TokenLedger

logger = logging.getLogger(__name__)

SECONDS_PER_YEAR = 31_536_000


class StrategyAdapter(ABC):
    """Operations the protocol requires from a yield source."""

    address: str

    @abstractmethod
    def deposit_principal(self, caller: str, amount: int) -> int:
        """Take ``amount`` principal already transferred in; return the net deposited."""

    @abstractmethod
    def withdraw_principal(self, caller: str, amount: int) -> None:
        """Send ``amount`` principal back to the protocol."""

    @abstractmethod
    def get_principal_balance(self) -> int:
        ...

    @abstractmethod
    def get_yield_balance(self) -> int:
        ...

    @abstractmethod
    def get_principal_address(self) -> str:
        ...

    @abstractmethod
    def get_ftoken_address(self) -> Optional[str]:
        ...

    @abstractmethod
    def set_ftoken_address(self, caller: str, ftoken_address: str) -> None:
        ...

    @abstractmethod
    def quote_mint_ftoken(self, amount: int, duration: int) -> int:
        ...

    @abstractmethod
    def quote_burn_ftoken(self, amount: int) -> int:
        ...

    @abstractmethod
    def burn_ftoken(self, caller: str, amount: int, minimum_out: int, recipient: str) -> int:
        """Burn the caller's fTokens and pay the quoted yield to ``recipient``."""


class LendingVenue:
    """Minimal lending market issuing 1:1 interest-bearing tokens.

    ``accrue_interest`` mints interest-bearing tokens to a holder and backs
    them with newly minted principal, standing in for borrower interest.
    """

    def __init__(self, chain: Chain, principal: TokenLedger, name: Optional[str] = None):
        self.chain = chain
        self.principal = principal
        self.address = chain.deploy(self, prefix="venue")
        self.interest_token = TokenLedger(
            chain,
            name or f"Interest bearing {principal.symbol}",
            f"a{principal.symbol}",
            decimals=principal.decimals,
            owner=self.address,
        )

    def deposit(self, depositor: str, amount: int) -> None:
        self.principal.transfer_from(self.address, depositor, self.address, amount)
        self.interest_token.mint(self.address, depositor, amount)

    def withdraw(self, holder: str, amount: int, recipient: str) -> None:
        self.interest_token.burn(holder, amount)
        self.principal.transfer(self.address, recipient, amount)

    def accrue_interest(self, holder: str, amount: int) -> None:
        """Credit ``amount`` of interest to ``holder``."""
        self.principal.mint(self.principal.owner, self.address, amount)
        self.interest_token.mint(self.address, holder, amount)

    def accrue_rate(self, holder: str, rate_bps: int, seconds: int) -> int:
        """Credit simple interest at ``rate_bps`` a year on the holder's balance; returns the interest."""
        balance = self.interest_token.balance_of(holder)
        interest = balance * rate_bps * seconds // (BPS_DENOMINATOR * SECONDS_PER_YEAR)
        if interest > 0:
            self.accrue_interest(holder, interest)
        return interest


class LendingStrategy(StrategyAdapter, Snapshottable, Ownable):
    """Reference adapter over a ``LendingVenue``.

    Yield is the interest-bearing balance above the principal, plus any
    principal token held directly by the adapter (the bootstrap balance).
    Burns pay from the bootstrap balance first and the venue second.
    """

    _snapshot_fields = (
        'principal_balance', 'ftoken_address', 'reward_token', 'reward_ratio',
        'reward_lockout_until', 'owner',
    )

    def __init__(
        self,
        chain: Chain,
        protocol_address: str,
        venue: LendingVenue,
        owner: str,
        curve: Optional[MintCurve] = None,
        reward_lockout_seconds: int = 7_257_600,
    ):
        """
        Deploy the adapter.

        Args:
            chain: Execution environment
            protocol_address: The only address allowed to move principal
            venue: Lending market holding the principal
            owner: Adapter owner (incentives and sweeps)
            curve: Mint curve used by quote_mint_ftoken
            reward_lockout_seconds: Lockout started by each reward deposit
        """
        self.chain = chain
        self.protocol_address = protocol_address
        self.venue = venue
        self.principal = venue.principal
        self.interest_token = venue.interest_token
        self.owner = owner
        self.curve = curve or MintCurve()
        self.reward_lockout_seconds = reward_lockout_seconds

        self.principal_balance = 0
        self.ftoken_address: Optional[str] = None
        self.reward_token: Optional[str] = None
        self.reward_ratio = 0
        self.reward_lockout_until = 0
        self.address = chain.deploy(self, prefix="strategy")

    def _only_protocol(self, caller: str) -> None:
        if caller != self.protocol_address:
            raise NotFlashProtocolError(f"{caller} is not the protocol")

    @property
    def ftoken(self) -> TokenLedger:
        if self.ftoken_address is None:
            raise FTokenAddressNotSetError(f"{self.address} has no fToken bound")
        return self.chain.contract_at(self.ftoken_address)

    # Principal

    @atomic
    def deposit_principal(self, caller: str, amount: int) -> int:
        self._only_protocol(caller)
        self.principal.approve(self.address, self.venue.address, amount)
        self.venue.deposit(self.address, amount)
        self.principal_balance += amount
        return amount

    @atomic
    def withdraw_principal(self, caller: str, amount: int) -> None:
        self._only_protocol(caller)
        if amount > self.principal_balance:
            raise InsufficientPrincipalError(f"withdrawal {amount} exceeds principal {self.principal_balance}")
        self.principal_balance -= amount
        self.venue.withdraw(self.address, amount, self.protocol_address)

    def get_principal_balance(self) -> int:
        return self.principal_balance

    def bootstrap_balance(self) -> int:
        return self.principal.balance_of(self.address)

    def get_yield_balance(self) -> int:
        venue_yield = saturating_sub(self.interest_token.balance_of(self.address), self.principal_balance)
        return venue_yield + self.bootstrap_balance()

    def get_principal_address(self) -> str:
        return self.principal.address

    # fToken

    def get_ftoken_address(self) -> Optional[str]:
        return self.ftoken_address

    def set_ftoken_address(self, caller: str, ftoken_address: str) -> None:
        self._only_protocol(caller)
        if self.ftoken_address is not None:
            raise FTokenAddressAlreadySetError()
        self.ftoken_address = ftoken_address

    def quote_mint_ftoken(self, amount: int, duration: int) -> int:
        return quote_mint(amount, duration, self.principal.decimals, self.curve)

    def quote_burn_ftoken(self, amount: int) -> int:
        ftoken = self.ftoken
        return quote_burn(amount, self.get_yield_balance(), ftoken.total_supply)

    @atomic
    @nonreentrant
    def burn_ftoken(self, caller: str, amount: int, minimum_out: int, recipient: str) -> int:
        """
        Redeem fTokens for yield.

        Args:
            caller: fToken holder; must have approved the adapter
            amount: fTokens to burn
            minimum_out: Smallest acceptable yield
            recipient: Receives the yield (and any reward tokens)

        Returns:
            Yield paid in principal base units
        """
        if amount <= 0:
            raise ZeroAmountError()
        yield_out = self.quote_burn_ftoken(amount)
        if yield_out < minimum_out:
            raise SlippageError(f"yield {yield_out} is below minimum {minimum_out}")

        reward = self._reward_for(amount)
        self.ftoken.burn_from(self.address, caller, amount)

        from_bootstrap = min(yield_out, self.bootstrap_balance())
        from_venue = yield_out - from_bootstrap
        if from_bootstrap:
            self.principal.transfer(self.address, recipient, from_bootstrap)
        if from_venue:
            self.venue.withdraw(self.address, from_venue, recipient)
        if reward:
            self.chain.contract_at(self.reward_token).transfer(self.address, recipient, reward)

        self.chain.emit(BurnedFToken(
            timestamp=self.chain.timestamp,
            strategy=self.address,
            caller=caller,
            recipient=recipient,
            ftoken_amount=amount,
            yield_returned=yield_out,
            reward_paid=reward,
        ))
        logger.info("Burned %d fTokens on %s for %d yield", amount, self.address, yield_out)
        return yield_out

    # User incentive

    def _reward_for(self, ftoken_amount: int) -> int:
        if self.reward_token is None or self.reward_ratio == 0:
            return 0
        reward = ftoken_amount * self.reward_ratio // PRECISION
        return min(reward, self.reward_token_balance())

    def reward_token_balance(self) -> int:
        if self.reward_token is None:
            return 0
        return self.chain.contract_at(self.reward_token).balance_of(self.address)

    def lockout_in_force(self) -> bool:
        return self.chain.timestamp < self.reward_lockout_until

    @atomic
    def deposit_reward(self, caller: str, reward_token: str, amount: int, ratio: int) -> int:
        """
        Start a new reward period.

        Leftovers of the previous reward token go back to the owner and a new
        lockout starts, during which the reward can only be topped up or made
        more generous.

        Args:
            caller: Adapter owner
            reward_token: Address of the reward token ledger
            amount: Reward tokens pulled from the owner
            ratio: Reward tokens per fToken burned (1e18 fixed point)

        Returns:
            Leftover amount of the previous reward returned to the owner
        """
        self._only_owner(caller)
        if self.lockout_in_force():
            raise LockoutInForceError()
        if reward_token in (self.interest_token.address, self.ftoken_address):
            raise TokenAddressProhibitedError()

        leftover = self.reward_token_balance()
        if leftover:
            self.chain.contract_at(self.reward_token).transfer(self.address, caller, leftover)

        token = self.chain.contract_at(reward_token)
        token.transfer_from(self.address, caller, self.address, amount)
        self.reward_token = reward_token
        self.reward_ratio = ratio
        self.reward_lockout_until = self.chain.timestamp + self.reward_lockout_seconds

        self.chain.emit(RewardDeposited(
            timestamp=self.chain.timestamp,
            strategy=self.address,
            reward_token=reward_token,
            amount=amount,
            ratio=ratio,
            lockout_until=self.reward_lockout_until,
        ))
        logger.info("Reward of %d deposited on %s at ratio %d", amount, self.address, ratio)
        return leftover

    @atomic
    def add_reward_tokens(self, caller: str, amount: int) -> None:
        """Top up the current reward; anyone may contribute during the lockout."""
        if not self.lockout_in_force() or self.reward_token is None:
            raise LockoutNotInForceError()
        self.chain.contract_at(self.reward_token).transfer_from(self.address, caller, self.address, amount)

    @atomic
    def set_reward_ratio(self, caller: str, ratio: int) -> None:
        self._only_owner(caller)
        if not self.lockout_in_force():
            raise LockoutNotInForceError()
        if ratio <= self.reward_ratio:
            raise RatioCanOnlyBeIncreasedError(f"ratio {ratio} <= current {self.reward_ratio}")
        self.reward_ratio = ratio
        self.chain.emit(RewardRatioUpdated(self.chain.timestamp, self.address, ratio))

    # Sweeps

    @atomic
    def withdraw_erc20(self, caller: str, tokens: List[str], amounts: List[int]) -> None:
        """Owner sweep of stray tokens, except the interest-bearing token."""
        self._only_owner(caller)
        if len(tokens) != len(amounts):
            raise ArraySizeMismatchError()
        for token_address, amount in zip(tokens, amounts):
            if token_address == self.interest_token.address:
                raise TokenAddressProhibitedError(f"{token_address} is the interest-bearing token")
            self.chain.contract_at(token_address).transfer(self.address, caller, amount)
            self.chain.emit(ERC20Withdrawn(self.chain.timestamp, self.address, token_address, amount, caller))
