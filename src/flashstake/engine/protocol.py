"""Protocol facade: strategy registry, stakes, fees and receipt NFTs.

Every mutating entry point is guarded against reentrancy and runs inside a
chain transaction, so an error anywhere in the call tree (including inside a
token or strategy) leaves no trace. Stake records are committed before the
fToken burn, NFT burn and principal transfers of an unstake are issued.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..config.schema import Config
from .chain import Chain, Ownable, Snapshottable, atomic, nonreentrant
from .errors import (
    DurationTooHighError,
    DurationTooLowError,
    InputValidationError,
    MintFeeTooHighError,
    NFTAlreadyExistsError,
    NFTTokenRequiredError,
    NotNFTOwnerError,
    NotOwnerError,
    PrincipalMismatchError,
    StakeNotActiveError,
    StrategyAlreadyRegisteredError,
    UnregisteredStrategyError,
    ZeroAmountError,
)
from .events import MintFeeUpdated, NFTIssued, Staked, StrategyRegistered, Unstaked
from .quoting import MintCurve, quote_mint, split_fee
from .receipts import ReceiptNFTRegistry
from .redemption import RedemptionQuote, quote_redemption
from .stakes import Stake, StakeLedger, resolve_rights_holder
from .strategy import StrategyAdapter
from .tokens import FTokenFactory, TokenLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StrategyRegistration:
    """Immutable registry entry for one strategy."""
    strategy: str
    principal_token: str
    ftoken: str
    registered_at: int


@dataclass(frozen=True)
class UnstakeResult:
    stake_id: int
    principal_returned: int
    ftokens_burned: int
    settled: bool


@dataclass(frozen=True)
class FlashStakeResult:
    stake_id: int
    nft_id: int
    ftokens_burned: int
    yield_returned: int


class FlashProtocol(Snapshottable, Ownable):
    """Entry points for staking, redeeming and administering strategies."""

    _snapshot_fields = ('registrations', 'stakes', 'mint_fee_bps', 'mint_fee_recipient', 'owner')

    def __init__(
        self,
        chain: Chain,
        owner: str,
        nft_registry: Optional[ReceiptNFTRegistry] = None,
        config: Optional[Config] = None,
    ):
        """
        Deploy the protocol.

        Args:
            chain: Execution environment
            owner: Protocol owner (fee administration)
            nft_registry: Receipt registry; must be owned by the protocol.
                A new one is created when omitted.
            config: Protocol configuration (defaults when omitted)
        """
        self.chain = chain
        self.owner = owner
        self.config = config or Config()
        self.curve = MintCurve.from_config(self.config)
        self.min_duration = self.config.durations.min_stake_duration
        self.max_duration = self.config.durations.max_stake_duration
        self.max_mint_fee_bps = self.config.fees.max_mint_fee_bps
        self.mint_fee_bps = self.config.fees.mint_fee_bps
        self.mint_fee_recipient = self.config.fees.mint_fee_recipient

        self.registrations: Dict[str, StrategyRegistration] = {}
        self.stakes = StakeLedger()
        self.address = chain.deploy(self, prefix="protocol")
        self.ftoken_factory = FTokenFactory(chain)
        self.nft = nft_registry or ReceiptNFTRegistry(chain, owner=self.address)

    # Registry

    @atomic
    @nonreentrant
    def register_strategy(self, caller: str, strategy_address: str, principal_token: str,
                          ftoken_name: str, ftoken_symbol: str) -> str:
        """
        Register a strategy and create its fToken.

        Args:
            caller: Transaction sender
            strategy_address: Deployed strategy adapter
            principal_token: Principal token the strategy accepts
            ftoken_name: Name of the new fToken
            ftoken_symbol: Symbol of the new fToken

        Returns:
            Address of the new fToken
        """
        if strategy_address in self.registrations:
            raise StrategyAlreadyRegisteredError(f"{strategy_address} is already registered")
        strategy = self._strategy(strategy_address)
        if strategy.get_principal_address() != principal_token:
            raise PrincipalMismatchError(
                f"strategy principal {strategy.get_principal_address()} != {principal_token}"
            )

        ftoken = self.ftoken_factory.create(
            ftoken_name, ftoken_symbol, owner=self.address,
            decimals=self.curve.ftoken_decimals,
        )
        registration = StrategyRegistration(
            strategy=strategy_address,
            principal_token=principal_token,
            ftoken=ftoken.address,
            registered_at=self.chain.timestamp,
        )
        self.registrations[strategy_address] = registration
        strategy.set_ftoken_address(self.address, ftoken.address)

        self.chain.emit(StrategyRegistered(
            timestamp=self.chain.timestamp,
            strategy=strategy_address,
            principal_token=principal_token,
            ftoken=ftoken.address,
            ftoken_name=ftoken_name,
            ftoken_symbol=ftoken_symbol,
        ))
        logger.info("Registered strategy %s with fToken %s (%s)", strategy_address, ftoken_symbol, ftoken.address)
        return ftoken.address

    def get_strategy_registration(self, strategy_address: str) -> StrategyRegistration:
        try:
            return self.registrations[strategy_address]
        except KeyError:
            raise UnregisteredStrategyError(f"{strategy_address} is not registered") from None

    def get_ftoken_address(self, strategy_address: str) -> str:
        return self.get_strategy_registration(strategy_address).ftoken

    def _strategy(self, strategy_address: str) -> StrategyAdapter:
        try:
            strategy = self.chain.contract_at(strategy_address)
        except KeyError:
            raise UnregisteredStrategyError(f"{strategy_address} is not a contract") from None
        if not isinstance(strategy, StrategyAdapter):
            raise UnregisteredStrategyError(f"{strategy_address} is not a strategy")
        return strategy

    def _token(self, address: str) -> TokenLedger:
        return self.chain.contract_at(address)

    # Fees

    @atomic
    @nonreentrant
    def set_mint_fee_info(self, caller: str, recipient: Optional[str], fee_bps: int) -> None:
        self._only_owner(caller)
        if fee_bps < 0:
            raise InputValidationError("fee_bps cannot be negative")
        if fee_bps > self.max_mint_fee_bps:
            raise MintFeeTooHighError(f"{fee_bps} bps exceeds {self.max_mint_fee_bps} bps")
        self.mint_fee_recipient = recipient
        self.mint_fee_bps = fee_bps
        self.chain.emit(MintFeeUpdated(self.chain.timestamp, recipient, fee_bps))
        logger.info("Mint fee set to %d bps for %s", fee_bps, recipient)

    def _effective_fee_bps(self) -> int:
        return self.mint_fee_bps if self.mint_fee_recipient else 0

    # Staking

    def quote_stake(self, strategy_address: str, amount: int, duration: int) -> Tuple[int, int]:
        """(fTokens to user, fee fTokens) a stake would mint right now."""
        registration = self.get_strategy_registration(strategy_address)
        decimals = self._token(registration.principal_token).decimals
        total = quote_mint(amount, duration, decimals, self.curve)
        return split_fee(total, self._effective_fee_bps())

    @atomic
    @nonreentrant
    def stake(self, caller: str, strategy_address: str, amount: int, duration: int,
              recipient: Optional[str] = None, issue_nft: bool = False) -> Stake:
        """
        Lock principal in a strategy and mint fTokens.

        The caller must have approved the protocol for ``amount`` principal.

        Args:
            caller: Transaction sender; becomes the stake owner
            strategy_address: Registered strategy
            amount: Principal in base units
            duration: Lock duration in seconds
            recipient: Receives the user fTokens (defaults to caller)
            issue_nft: Issue the receipt NFT to the caller immediately

        Returns:
            Copy of the new stake
        """
        return self._stake(caller, strategy_address, amount, duration, recipient or caller, issue_nft)

    def _stake(self, caller: str, strategy_address: str, amount: int, duration: int,
               ftoken_recipient: str, issue_nft: bool) -> Stake:
        registration = self.get_strategy_registration(strategy_address)
        if amount <= 0:
            raise ZeroAmountError()
        if duration < self.min_duration:
            raise DurationTooLowError(f"duration {duration}s is below {self.min_duration}s")
        if duration > self.max_duration:
            raise DurationTooHighError(f"duration {duration}s exceeds {self.max_duration}s")

        strategy = self._strategy(strategy_address)
        principal = self._token(registration.principal_token)
        principal.transfer_from(self.address, caller, strategy_address, amount)
        deposited = strategy.deposit_principal(self.address, amount)
        if deposited <= 0:
            raise ZeroAmountError("strategy accepted no principal")

        total = quote_mint(deposited, duration, principal.decimals, self.curve)
        fee_bps = self._effective_fee_bps()
        to_user, fee = split_fee(total, fee_bps)

        stake = self.stakes.open(
            owner=caller,
            strategy=strategy_address,
            start_ts=self.chain.timestamp,
            duration=duration,
            staked_amount=deposited,
            ftokens_to_user=to_user,
            ftokens_fee=fee,
        )

        ftoken = self._token(registration.ftoken)
        ftoken.mint(self.address, ftoken_recipient, to_user)
        if fee:
            ftoken.mint(self.address, self.mint_fee_recipient, fee)

        self.chain.emit(Staked(
            timestamp=self.chain.timestamp,
            stake_id=stake.stake_id,
            owner=caller,
            strategy=strategy_address,
            amount=deposited,
            duration=duration,
            ftokens_to_user=to_user,
            ftokens_fee=fee,
            ftoken_recipient=ftoken_recipient,
            fee_recipient=self.mint_fee_recipient if fee else None,
        ))
        logger.info(
            "Stake %d: %d principal for %ds on %s, %d fTokens (+%d fee)",
            stake.stake_id, deposited, duration, strategy_address, to_user, fee,
        )

        if issue_nft:
            self._issue_nft(caller, stake.stake_id)
        return self.stakes.get(stake.stake_id)

    @atomic
    @nonreentrant
    def flash_stake(self, caller: str, strategy_address: str, amount: int, duration: int,
                    minimum_out: int, yield_recipient: Optional[str] = None,
                    issue_nft: bool = False) -> FlashStakeResult:
        """
        Stake and immediately redeem the minted fTokens for yield.

        The user fTokens are minted to the protocol and burned against the
        strategy in the same transaction; the stake itself stays with the
        caller, who can recover the principal at maturity.

        Args:
            caller: Transaction sender; becomes the stake owner
            strategy_address: Registered strategy
            amount: Principal in base units
            duration: Lock duration in seconds
            minimum_out: Smallest acceptable yield
            yield_recipient: Receives the yield (defaults to caller)
            issue_nft: Issue the receipt NFT to the caller

        Returns:
            FlashStakeResult
        """
        stake = self._stake(caller, strategy_address, amount, duration, self.address, issue_nft)
        strategy = self._strategy(strategy_address)
        ftoken = self._token(self.get_ftoken_address(strategy_address))

        ftoken.approve(self.address, strategy_address, stake.ftokens_to_user)
        yield_returned = strategy.burn_ftoken(
            self.address, stake.ftokens_to_user, minimum_out, yield_recipient or caller,
        )
        logger.info("Flash stake %d returned %d yield", stake.stake_id, yield_returned)
        return FlashStakeResult(
            stake_id=stake.stake_id,
            nft_id=self.stakes.get(stake.stake_id).nft_id,
            ftokens_burned=stake.ftokens_to_user,
            yield_returned=yield_returned,
        )

    # NFTs

    @atomic
    @nonreentrant
    def issue_nft(self, caller: str, stake_id: int) -> int:
        """Issue the receipt NFT for a stake to its owner; returns the NFT id."""
        return self._issue_nft(caller, stake_id)

    def _issue_nft(self, caller: str, stake_id: int) -> int:
        stake = self.stakes.get(stake_id)
        if stake.nft_id:
            raise NFTAlreadyExistsError(f"stake {stake_id} already has NFT {stake.nft_id}")
        if caller != stake.owner:
            raise NotOwnerError(f"{caller} does not own stake {stake_id}")
        if not stake.active:
            raise StakeNotActiveError(f"stake {stake_id} is settled")

        nft_id = self.nft.mint(self.address, caller)
        self.stakes.attach_nft(stake_id, nft_id)
        self.chain.emit(NFTIssued(self.chain.timestamp, stake_id, nft_id, caller))
        logger.info("Issued NFT %d for stake %d", nft_id, stake_id)
        return nft_id

    # Redemption

    def _lookup(self, stake_or_nft_id: int, use_nft: bool) -> Stake:
        if use_nft:
            return self.stakes.by_nft(stake_or_nft_id)
        stake = self.stakes.get(stake_or_nft_id)
        if stake.nft_id:
            raise NFTTokenRequiredError(f"stake {stake.stake_id} is held by NFT {stake.nft_id}")
        return stake

    def get_stake_info(self, stake_or_nft_id: int, use_nft: bool = False) -> Stake:
        if use_nft:
            return self.stakes.by_nft(stake_or_nft_id)
        return self.stakes.get(stake_or_nft_id)

    def rights_holder(self, stake: Stake) -> str:
        return resolve_rights_holder(stake, self.nft.owner_of)

    def quote_unstake(self, stake_or_nft_id: int, use_nft: bool, ftokens_to_burn: int) -> RedemptionQuote:
        """Redemption quote at the current timestamp, without state changes."""
        stake = self.get_stake_info(stake_or_nft_id, use_nft)
        if not stake.active:
            raise StakeNotActiveError(f"stake {stake.stake_id} is settled")
        return quote_redemption(stake, self.chain.timestamp, ftokens_to_burn)

    @atomic
    @nonreentrant
    def unstake(self, caller: str, stake_or_nft_id: int, use_nft: bool, ftokens_to_burn: int) -> UnstakeResult:
        """
        Redeem principal from a stake, early or at maturity.

        Before maturity only the rights holder may call, burning fTokens from
        their own balance (approved to the protocol). From maturity onwards
        anyone may settle the stake; the principal always goes to the rights
        holder and nothing is burned.

        Args:
            caller: Transaction sender
            stake_or_nft_id: Stake id, or NFT id when ``use_nft``
            use_nft: Interpret the id as a receipt NFT id
            ftokens_to_burn: fTokens offered; capped to what is owed

        Returns:
            UnstakeResult
        """
        stake = self._lookup(stake_or_nft_id, use_nft)
        if not stake.active:
            raise StakeNotActiveError(f"stake {stake.stake_id} is settled")

        holder = self.rights_holder(stake)
        now = self.chain.timestamp
        if not stake.is_matured(now) and caller != holder:
            if use_nft:
                raise NotNFTOwnerError(f"{caller} does not hold NFT {stake.nft_id}")
            raise NotOwnerError(f"{caller} does not own stake {stake.stake_id}")

        quote = quote_redemption(stake, now, ftokens_to_burn)
        if quote.ftokens_to_burn == 0 and quote.principal_released == 0 and not quote.settles:
            self.chain.emit(Unstaked(now, stake.stake_id, caller, holder, 0, 0, False))
            return UnstakeResult(stake.stake_id, 0, 0, False)

        updated = self.stakes.record_redemption(stake.stake_id, quote.ftokens_to_burn, quote.principal_released)
        self.chain.emit(Unstaked(
            timestamp=now,
            stake_id=stake.stake_id,
            caller=caller,
            recipient=holder,
            principal_returned=quote.principal_released,
            ftokens_burned=quote.ftokens_to_burn,
            settled=not updated.active,
        ))

        registration = self.get_strategy_registration(stake.strategy)
        if quote.ftokens_to_burn:
            self._token(registration.ftoken).burn_from(self.address, caller, quote.ftokens_to_burn)
        if not updated.active and stake.nft_id:
            self.nft.burn(self.address, stake.nft_id)
        if quote.principal_released:
            self._strategy(stake.strategy).withdraw_principal(self.address, quote.principal_released)
            self._token(registration.principal_token).transfer(self.address, holder, quote.principal_released)

        logger.info(
            "Unstake %d: burned %d fTokens, returned %d principal%s",
            stake.stake_id, quote.ftokens_to_burn, quote.principal_released,
            " (settled)" if not updated.active else "",
        )
        return UnstakeResult(stake.stake_id, quote.principal_released, quote.ftokens_to_burn, not updated.active)
