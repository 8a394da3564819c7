"""Quoting curve: pure conversions between principal, duration, fTokens and yield.

Nothing here touches state. All arithmetic is on integers in base units and
truncates toward zero.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import DurationTooLowError, InsufficientFTokenSupplyError

PRECISION = 10 ** 18
BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class MintCurve:
    """Calibration constants of the mint curve.

    Locking P principal for ``seconds_per_year`` mints
    ``P * seconds_per_year * mint_rate_per_second / mint_rate_scale`` fTokens,
    i.e. P plus the fixed 512e-12 remainder carried by the rounded-up rate.
    """
    min_duration: int = 60
    seconds_per_year: int = 31_536_000
    mint_rate_per_second: int = 31_709_792
    mint_rate_scale: int = 10 ** 15
    ftoken_decimals: int = 18

    @classmethod
    def from_config(cls, config) -> 'MintCurve':
        """Build from a ``Config``."""
        return cls(
            min_duration=config.durations.min_stake_duration,
            seconds_per_year=config.quoting.seconds_per_year,
            mint_rate_per_second=config.quoting.mint_rate_per_second,
            mint_rate_scale=config.quoting.mint_rate_scale,
            ftoken_decimals=config.quoting.ftoken_decimals,
        )


DEFAULT_CURVE = MintCurve()


def quote_mint(amount: int, duration: int, principal_decimals: int = 18,
               curve: Optional[MintCurve] = None) -> int:
    """
    fTokens minted for locking ``amount`` principal for ``duration`` seconds.

    Principal is first normalised to fToken decimals, so one whole unit of a
    6-decimal token quotes the same as one whole unit of an 18-decimal one.

    Args:
        amount: Principal in base units
        duration: Lock duration in seconds
        principal_decimals: Decimals of the principal token
        curve: Calibration constants (defaults to DEFAULT_CURVE)

    Returns:
        Total fTokens (fee not yet deducted)

    Raises:
        DurationTooLowError: duration below the curve minimum
    """
    curve = curve or DEFAULT_CURVE
    if duration < curve.min_duration:
        raise DurationTooLowError(f"duration {duration}s is below {curve.min_duration}s")
    if amount < 0:
        raise ValueError("amount cannot be negative")
    normalised = _normalise(amount, principal_decimals, curve.ftoken_decimals)
    return normalised * duration * curve.mint_rate_per_second // curve.mint_rate_scale


def _normalise(amount: int, from_decimals: int, to_decimals: int) -> int:
    if from_decimals <= to_decimals:
        return amount * 10 ** (to_decimals - from_decimals)
    return amount // 10 ** (from_decimals - to_decimals)


def split_fee(total: int, fee_bps: int) -> Tuple[int, int]:
    """Split a quote into (to_user, fee); the two always sum to ``total``."""
    if not 0 <= fee_bps <= BPS_DENOMINATOR:
        raise ValueError(f"fee_bps must be within [0, {BPS_DENOMINATOR}], got {fee_bps}")
    fee = total * fee_bps // BPS_DENOMINATOR
    return total - fee, fee


def quote_burn(ftoken_amount: int, yield_balance: int, ftoken_total_supply: int) -> int:
    """Yield released by burning ``ftoken_amount`` out of the whole supply."""
    if ftoken_total_supply == 0:
        raise InsufficientFTokenSupplyError()
    return ftoken_amount * yield_balance // ftoken_total_supply


def saturating_sub(a: int, b: int) -> int:
    """``a - b`` floored at zero."""
    return a - b if a > b else 0
