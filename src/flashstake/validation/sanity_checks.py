"""Sanity checks and validation for protocol state and simulation output."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..config.schema import Config
from ..engine.quoting import MintCurve, quote_mint
from ..engine.stakes import Stake


@dataclass
class ValidationWarning:
    """A validation warning with severity and message."""
    severity: str  # "warning" or "error"
    category: str  # e.g., "input", "conservation", "bounds"
    message: str
    details: Optional[str] = None


class SanityChecker:
    """Run sanity checks on configuration, stakes and ledger totals."""

    def __init__(self, config: Config):
        """Initialize with configuration."""
        self.config = config
        self.curve = MintCurve.from_config(config)

    def check_config_inputs(self) -> List[ValidationWarning]:
        """
        Check configuration inputs for implausible values.

        Returns:
            List of validation warnings
        """
        warnings = []

        # Par convention: one year of one whole unit should mint about one fToken
        one = 10 ** self.curve.ftoken_decimals
        par = quote_mint(one, self.curve.seconds_per_year, curve=self.curve)
        drift = abs(par - one) / one
        if drift > 1e-6:
            warnings.append(ValidationWarning(
                severity="warning",
                category="input",
                message=f"One-year quote is {par / one:.9f} fTokens per unit, expected ~1.0",
                details=f"mint_rate_per_second={self.config.quoting.mint_rate_per_second}"
            ))

        if self.config.durations.max_stake_duration > 10 * self.curve.seconds_per_year:
            warnings.append(ValidationWarning(
                severity="warning",
                category="bounds",
                message="Maximum stake duration exceeds ten years",
                details=f"Current value: {self.config.durations.max_stake_duration}s"
            ))

        if self.config.fees.mint_fee_bps > 0 and not self.config.fees.mint_fee_recipient:
            warnings.append(ValidationWarning(
                severity="warning",
                category="input",
                message="Mint fee configured without a recipient; no fee will be taken",
                details=f"mint_fee_bps={self.config.fees.mint_fee_bps}"
            ))

        return warnings

    def check_stake(self, stake: Stake, principal_decimals: int = 18) -> List[ValidationWarning]:
        """
        Check one stake record against its conservation bounds.

        Args:
            stake: Stake to check
            principal_decimals: Decimals of the stake's principal token

        Returns:
            List of validation warnings
        """
        warnings = []

        is_valid, error = stake.validate_bounds()
        if not is_valid:
            warnings.append(ValidationWarning(
                severity="error",
                category="conservation",
                message=error,
            ))

        expected = quote_mint(stake.staked_amount, stake.duration, principal_decimals, self.curve)
        if stake.total_ftokens != expected:
            warnings.append(ValidationWarning(
                severity="error",
                category="conservation",
                message=f"Stake {stake.stake_id}: fee split does not sum to the quote",
                details=f"{stake.ftokens_to_user} + {stake.ftokens_fee} != {expected}"
            ))

        max_fee = stake.total_ftokens * self.config.fees.max_mint_fee_bps // 10_000
        if stake.ftokens_fee > max_fee:
            warnings.append(ValidationWarning(
                severity="error",
                category="bounds",
                message=f"Stake {stake.stake_id}: fee share above the fee cap",
                details=f"fee={stake.ftokens_fee}, cap={max_fee}"
            ))

        return warnings

    def check_ledgers(self, metrics: Dict[str, Any]) -> List[ValidationWarning]:
        """
        Check ledger-level totals reported by a simulation.

        Returns:
            List of validation warnings
        """
        warnings = []

        expected_supply = (
            metrics.get('ftokens_minted', 0) -
            metrics.get('ftokens_burned_for_principal', 0) -
            metrics.get('ftokens_burned_for_yield', 0)
        )
        supply = metrics.get('ftoken_total_supply', expected_supply)
        if supply != expected_supply:
            warnings.append(ValidationWarning(
                severity="error",
                category="conservation",
                message="fToken supply differs from minted minus burned",
                details=f"supply={supply}, expected={expected_supply}"
            ))

        outstanding = metrics.get('outstanding_principal', 0)
        held = metrics.get('strategy_principal', outstanding)
        if held < outstanding:
            warnings.append(ValidationWarning(
                severity="error",
                category="conservation",
                message="Strategy principal does not cover outstanding stakes",
                details=f"held={held}, outstanding={outstanding}"
            ))

        staked = metrics.get('total_staked', 0)
        returned = metrics.get('total_principal_returned', 0)
        if returned + outstanding != staked:
            warnings.append(ValidationWarning(
                severity="error",
                category="conservation",
                message="Principal returned plus outstanding differs from principal staked",
                details=f"returned={returned}, outstanding={outstanding}, staked={staked}"
            ))

        return warnings


def validate_simulation_results(result) -> List[ValidationWarning]:
    """
    Validate complete simulation results.

    Args:
        result: SimulationResult

    Returns:
        List of all validation warnings
    """
    checker = SanityChecker(result.config)
    warnings = []

    # Check config first
    warnings.extend(checker.check_config_inputs())

    decimals = result.config.simulation.principal_decimals
    for stake in result.stakes:
        warnings.extend(checker.check_stake(stake, decimals))

    warnings.extend(checker.check_ledgers(result.final_metrics))

    for error in result.conservation_errors:
        warnings.append(ValidationWarning(
            severity="error",
            category="conservation",
            message=error,
        ))

    return warnings
