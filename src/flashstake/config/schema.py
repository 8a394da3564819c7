"""Pydantic schema for protocol configuration validation."""

import hashlib
import json
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class Durations(BaseModel):
    """Stake duration bounds (seconds)."""
    min_stake_duration: int = Field(default=60, gt=0, description="Minimum stake duration")
    max_stake_duration: int = Field(default=63_072_000, gt=0, description="Maximum stake duration (730 days)")

    @field_validator('max_stake_duration')
    @classmethod
    def validate_max_duration(cls, v, info):
        """Ensure min < max duration."""
        if 'min_stake_duration' in info.data and v <= info.data['min_stake_duration']:
            raise ValueError("max_stake_duration must be greater than min_stake_duration")
        return v


class Quoting(BaseModel):
    """Mint curve calibration constants.

    The per-second rate is 10^15 / seconds_per_year rounded up, which is what
    puts the 512e-12 remainder into every one-year quote.
    """
    seconds_per_year: int = Field(default=31_536_000, gt=0, description="Seconds in the par year")
    mint_rate_per_second: int = Field(default=31_709_792, gt=0, description="fTokens per principal-second, scaled")
    mint_rate_scale: int = Field(default=10**15, gt=0, description="Fixed-point scale of mint_rate_per_second")
    ftoken_decimals: int = Field(default=18, ge=0, le=36, description="fToken decimals")


class Fees(BaseModel):
    """Mint fee parameters (basis points of the total quote)."""
    max_mint_fee_bps: int = Field(default=2000, ge=0, le=10_000, description="Upper bound on the mint fee")
    mint_fee_bps: int = Field(default=0, ge=0, le=10_000, description="Initial mint fee")
    mint_fee_recipient: Optional[str] = Field(default=None, description="Initial fee recipient address")

    @model_validator(mode='after')
    def validate_fee_cap(self):
        """Ensure the initial fee respects the cap."""
        if self.mint_fee_bps > self.max_mint_fee_bps:
            raise ValueError(
                f"mint_fee_bps ({self.mint_fee_bps}) exceeds max_mint_fee_bps ({self.max_mint_fee_bps})"
            )
        return self


class Incentives(BaseModel):
    """User incentive (reward-on-burn) parameters."""
    reward_lockout_seconds: int = Field(default=7_257_600, ge=0, description="Lockout after a reward deposit (84 days)")


class Simulation(BaseModel):
    """Randomized redemption-path simulation parameters."""
    runs: int = Field(default=20, gt=0, description="Number of simulation runs")
    stakes_per_run: int = Field(default=25, gt=0, description="Stakes opened per run")
    max_calls_per_stake: int = Field(default=4, gt=0, description="Early unstake calls per stake")
    random_seed: int = Field(default=42, description="Random seed for reproducibility")
    principal_decimals: int = Field(default=18, ge=0, le=18, description="Decimals of the simulated principal token")
    max_principal_units: int = Field(default=100_000, gt=0, description="Largest stake in whole principal units")
    venue_rate_bps: int = Field(default=400, ge=0, le=10_000, description="Annual interest paid by the simulated venue (bps)")
    over_request_probability: float = Field(
        default=0.25, ge=0, le=1,
        description="Probability that a call requests more fTokens than can be burned"
    )


class Config(BaseModel):
    """Complete configuration for the flashstake engine."""
    durations: Durations = Field(default_factory=Durations)
    quoting: Quoting = Field(default_factory=Quoting)
    fees: Fees = Field(default_factory=Fees)
    incentives: Incentives = Field(default_factory=Incentives)
    simulation: Simulation = Field(default_factory=Simulation)

    def compute_hash(self) -> str:
        """Compute config hash for reproducibility."""
        config_dict = self.model_dump()
        config_str = json.dumps(config_dict, sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create config from dictionary."""
        return cls(**(data or {}))

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return self.model_dump()
