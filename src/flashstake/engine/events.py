"""Event records emitted by the protocol and its collaborators.

The minimum set (StrategyRegistered, Staked, NFTIssued, Unstaked,
BurnedFToken) is enough for an observer to rebuild the stake table and the
strategy registry. Events are immutable; an event emitted inside a reverted
transaction is discarded together with the rest of the transaction.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Event:
    """Base class for all events."""

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['event'] = self.name
        return data


@dataclass(frozen=True)
class StrategyRegistered(Event):
    timestamp: int
    strategy: str
    principal_token: str
    ftoken: str
    ftoken_name: str
    ftoken_symbol: str


@dataclass(frozen=True)
class Staked(Event):
    timestamp: int
    stake_id: int
    owner: str
    strategy: str
    amount: int  # principal actually deposited
    duration: int
    ftokens_to_user: int
    ftokens_fee: int
    ftoken_recipient: str
    fee_recipient: Optional[str]


@dataclass(frozen=True)
class NFTIssued(Event):
    timestamp: int
    stake_id: int
    nft_id: int
    holder: str


@dataclass(frozen=True)
class Unstaked(Event):
    timestamp: int
    stake_id: int
    caller: str
    recipient: str
    principal_returned: int
    ftokens_burned: int
    settled: bool


@dataclass(frozen=True)
class BurnedFToken(Event):
    timestamp: int
    strategy: str
    caller: str
    recipient: str
    ftoken_amount: int
    yield_returned: int
    reward_paid: int


@dataclass(frozen=True)
class MintFeeUpdated(Event):
    timestamp: int
    recipient: Optional[str]
    fee_bps: int


@dataclass(frozen=True)
class RewardDeposited(Event):
    timestamp: int
    strategy: str
    reward_token: str
    amount: int
    ratio: int
    lockout_until: int


@dataclass(frozen=True)
class RewardRatioUpdated(Event):
    timestamp: int
    strategy: str
    ratio: int


@dataclass(frozen=True)
class ERC20Withdrawn(Event):
    timestamp: int
    strategy: str
    token: str
    amount: int
    recipient: str

