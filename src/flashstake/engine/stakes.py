"""Stake table and stake ownership rights.

Stakes live in an append-only arena keyed by 1-based integer ids. Callers
never get at the stored records directly: reads return copies and every
mutation goes through a method that enforces the conservation bounds.
"""

import copy
import logging
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

from .chain import Snapshottable
from .errors import (
    NFTAlreadyExistsError,
    StakeNotActiveError,
    StakeNotFoundError,
)
from .quoting import PRECISION

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectRights:
    """Rights held by the stored stake owner."""
    owner: str


@dataclass(frozen=True)
class DelegatedRights:
    """Rights held by whoever currently holds the receipt NFT."""
    nft_id: int


Rights = Union[DirectRights, DelegatedRights]


@dataclass
class Stake:
    """Protocol-level record of one stake.

    ``ftokens_to_user + ftokens_fee`` is the total quote at creation.
    ``total_ftoken_burned`` never exceeds ``ftokens_to_user`` and
    ``total_staked_withdrawn`` never exceeds ``staked_amount``; the latter
    reaches its bound exactly when ``active`` goes false.
    """
    stake_id: int
    owner: str
    strategy: str
    start_ts: int
    duration: int
    staked_amount: int
    ftokens_to_user: int
    ftokens_fee: int
    active: bool = True
    nft_id: int = 0
    total_ftoken_burned: int = 0
    total_staked_withdrawn: int = 0

    @property
    def total_ftokens(self) -> int:
        return self.ftokens_to_user + self.ftokens_fee

    @property
    def end_ts(self) -> int:
        return self.start_ts + self.duration

    @property
    def remaining_principal(self) -> int:
        return self.staked_amount - self.total_staked_withdrawn

    @property
    def remaining_ftokens(self) -> int:
        """User fTokens not yet burned against this stake."""
        return self.ftokens_to_user - self.total_ftoken_burned

    @property
    def rights(self) -> Rights:
        if self.nft_id:
            return DelegatedRights(self.nft_id)
        return DirectRights(self.owner)

    def is_matured(self, now: int) -> bool:
        return now >= self.end_ts

    def elapsed_fraction(self, now: int) -> int:
        """min(1, (now - start) / duration) as a 1e18 fixed-point integer."""
        elapsed = max(0, now - self.start_ts)
        if elapsed >= self.duration:
            return PRECISION
        return elapsed * PRECISION // self.duration

    def validate_bounds(self) -> Tuple[bool, Optional[str]]:
        """
        Check the conservation bounds of this record.

        Returns:
            (is_valid, error_message)
        """
        if self.total_ftoken_burned > self.ftokens_to_user:
            return False, (
                f"Stake {self.stake_id}: burned {self.total_ftoken_burned} "
                f"exceeds user fTokens {self.ftokens_to_user}"
            )
        if self.total_staked_withdrawn > self.staked_amount:
            return False, (
                f"Stake {self.stake_id}: withdrawn {self.total_staked_withdrawn} "
                f"exceeds staked {self.staked_amount}"
            )
        fully_withdrawn = self.total_staked_withdrawn == self.staked_amount
        if fully_withdrawn == self.active:
            return False, (
                f"Stake {self.stake_id}: active={self.active} but "
                f"withdrawn {self.total_staked_withdrawn} of {self.staked_amount}"
            )
        return True, None

    def to_dict(self) -> Dict[str, object]:
        return {
            'stake_id': self.stake_id,
            'owner': self.owner,
            'strategy': self.strategy,
            'start_ts': self.start_ts,
            'duration': self.duration,
            'staked_amount': self.staked_amount,
            'ftokens_to_user': self.ftokens_to_user,
            'ftokens_fee': self.ftokens_fee,
            'active': self.active,
            'nft_id': self.nft_id,
            'total_ftoken_burned': self.total_ftoken_burned,
            'total_staked_withdrawn': self.total_staked_withdrawn,
        }


def resolve_rights_holder(stake: Stake, nft_owner_of: Callable[[int], str]) -> str:
    """The single address that may act on ``stake`` right now."""
    rights = stake.rights
    if isinstance(rights, DelegatedRights):
        return nft_owner_of(rights.nft_id)
    return rights.owner


class StakeLedger(Snapshottable):
    """Append-only arena of stakes."""

    _snapshot_fields = ('_stakes', '_by_nft')

    def __init__(self):
        self._stakes: List[Stake] = []
        self._by_nft: Dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._stakes)

    def __iter__(self) -> Iterator[Stake]:
        return iter(self.snapshot_stakes())

    def open(self, owner: str, strategy: str, start_ts: int, duration: int,
             staked_amount: int, ftokens_to_user: int, ftokens_fee: int) -> Stake:
        """Append a new active stake and return a copy of it."""
        stake = Stake(
            stake_id=len(self._stakes) + 1,
            owner=owner,
            strategy=strategy,
            start_ts=start_ts,
            duration=duration,
            staked_amount=staked_amount,
            ftokens_to_user=ftokens_to_user,
            ftokens_fee=ftokens_fee,
        )
        self._stakes.append(stake)
        return replace(stake)

    def _record(self, stake_id: int) -> Stake:
        if not 1 <= stake_id <= len(self._stakes):
            raise StakeNotFoundError(f"stake {stake_id} does not exist")
        return self._stakes[stake_id - 1]

    def get(self, stake_id: int) -> Stake:
        return replace(self._record(stake_id))

    def id_for_nft(self, nft_id: int) -> int:
        try:
            return self._by_nft[nft_id]
        except KeyError:
            raise StakeNotFoundError(f"no stake for NFT {nft_id}") from None

    def by_nft(self, nft_id: int) -> Stake:
        return self.get(self.id_for_nft(nft_id))

    def attach_nft(self, stake_id: int, nft_id: int) -> None:
        """Bind a receipt NFT to a stake; allowed once per stake."""
        stake = self._record(stake_id)
        if stake.nft_id:
            raise NFTAlreadyExistsError(f"stake {stake_id} already has NFT {stake.nft_id}")
        if not stake.active:
            raise StakeNotActiveError(f"stake {stake_id} is settled")
        if nft_id <= 0 or nft_id in self._by_nft:
            raise NFTAlreadyExistsError(f"NFT {nft_id} is already bound")
        stake.nft_id = nft_id
        self._by_nft[nft_id] = stake_id

    def record_redemption(self, stake_id: int, ftokens_burned: int, principal_withdrawn: int) -> Stake:
        """
        Apply one redemption to the running totals.

        Args:
            stake_id: Stake to update
            ftokens_burned: User fTokens burned by this call
            principal_withdrawn: Principal released by this call

        Returns:
            Copy of the updated stake

        Raises:
            StakeNotActiveError: stake already settled
            ValueError: totals would exceed their bounds
        """
        stake = self._record(stake_id)
        if not stake.active:
            raise StakeNotActiveError(f"stake {stake_id} is settled")
        if ftokens_burned < 0 or principal_withdrawn < 0:
            raise ValueError("redemption amounts cannot be negative")

        burned = stake.total_ftoken_burned + ftokens_burned
        withdrawn = stake.total_staked_withdrawn + principal_withdrawn
        if burned > stake.ftokens_to_user:
            raise ValueError(
                f"stake {stake_id}: burned {burned} would exceed {stake.ftokens_to_user}"
            )
        if withdrawn > stake.staked_amount:
            raise ValueError(
                f"stake {stake_id}: withdrawn {withdrawn} would exceed {stake.staked_amount}"
            )

        stake.total_ftoken_burned = burned
        stake.total_staked_withdrawn = withdrawn
        if withdrawn == stake.staked_amount:
            stake.active = False
            logger.debug("Stake %d settled", stake_id)
        return replace(stake)

    def snapshot_stakes(self) -> List[Stake]:
        """Copies of every stake, in id order."""
        return copy.deepcopy(self._stakes)

    def active_stakes(self, strategy: Optional[str] = None) -> List[Stake]:
        return [
            replace(s) for s in self._stakes
            if s.active and (strategy is None or s.strategy == strategy)
        ]
