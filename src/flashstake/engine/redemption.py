"""Early-redemption accounting.

The fTokens needed to unlock a stake's whole principal decay linearly from
the full quote at creation to zero at maturity::

    full_burn(now) = total_quote * (end_ts - now) // duration

A holder who has already burned ``total_ftoken_burned`` may take the rest of
the principal by burning ``full_burn - total_ftoken_burned`` more. Burning
less releases principal at par (``staked_amount / total_quote`` per fToken)
and leaves the unused increment for a later call. Since the burn owed only
shrinks with time, the principal unlockable for a given cumulative burn only
grows: the release curve is monotonic and reaches the whole principal at
maturity, when nothing has to be burned at all.
"""

import logging
from dataclasses import dataclass

from .stakes import Stake

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedemptionQuote:
    """Outcome of one redemption call, computed without side effects."""
    elapsed_fraction: int  # 1e18 fixed point
    required_burn: int  # fTokens still owed to settle in full right now
    ftokens_to_burn: int
    principal_released: int
    settles: bool
    matured: bool


def full_settlement_burn(stake: Stake, now: int) -> int:
    """Cumulative fToken burn that unlocks the whole principal at ``now``."""
    if now >= stake.end_ts:
        return 0
    remaining_time = stake.end_ts - max(now, stake.start_ts)
    return stake.total_ftokens * remaining_time // stake.duration


def quote_redemption(stake: Stake, now: int, ftokens_requested: int) -> RedemptionQuote:
    """
    Price one unstake call against a stake.

    Requests above what is owed (or above the user's unburned fTokens) are
    capped, never rejected.

    Args:
        stake: Current stake record
        now: Block timestamp
        ftokens_requested: fTokens the caller offers to burn

    Returns:
        RedemptionQuote
    """
    if ftokens_requested < 0:
        raise ValueError("ftokens_requested cannot be negative")

    elapsed = stake.elapsed_fraction(now)
    remaining = stake.remaining_principal
    matured = stake.is_matured(now)

    if matured:
        return RedemptionQuote(elapsed, 0, 0, remaining, True, True)

    owed = full_settlement_burn(stake, now) - stake.total_ftoken_burned
    if owed <= 0:
        return RedemptionQuote(elapsed, 0, 0, remaining, True, False)

    actual = min(ftokens_requested, owed, stake.remaining_ftokens)
    if actual == owed:
        return RedemptionQuote(elapsed, owed, actual, remaining, True, False)

    released = min(actual * stake.staked_amount // stake.total_ftokens, remaining)
    settles = released == remaining
    logger.debug(
        "Stake %d at %d: owed %d, burning %d for %d principal",
        stake.stake_id, elapsed, owed, actual, released,
    )
    return RedemptionQuote(elapsed, owed, actual, released, settles, False)
