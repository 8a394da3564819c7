"""Quoting, stake accounting and the protocol facade."""

from .chain import Chain, EventLog
from .errors import FlashError
from .protocol import FlashProtocol, FlashStakeResult, StrategyRegistration, UnstakeResult
from .quoting import MintCurve, quote_burn, quote_mint, saturating_sub, split_fee
from .receipts import ReceiptNFTRegistry
from .redemption import RedemptionQuote, quote_redemption
from .stakes import DelegatedRights, DirectRights, Stake, StakeLedger, resolve_rights_holder
from .strategy import LendingStrategy, LendingVenue, StrategyAdapter
from .tokens import FTokenFactory, TokenLedger

__all__ = [
    "Chain",
    "EventLog",
    "FlashError",
    "FlashProtocol",
    "FlashStakeResult",
    "StrategyRegistration",
    "UnstakeResult",
    "MintCurve",
    "quote_burn",
    "quote_mint",
    "saturating_sub",
    "split_fee",
    "ReceiptNFTRegistry",
    "RedemptionQuote",
    "quote_redemption",
    "DelegatedRights",
    "DirectRights",
    "Stake",
    "StakeLedger",
    "resolve_rights_holder",
    "LendingStrategy",
    "LendingVenue",
    "StrategyAdapter",
    "FTokenFactory",
    "TokenLedger",
]
