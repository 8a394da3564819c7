"""Simulation runner - randomized stake and early-redemption paths.

Each run deploys a fresh chain with one principal token, a lending venue, the
reference strategy and the protocol, then walks ``stakes_per_run`` stakes
through random early unstake calls (including over-requests) and a final
maturity settlement. Venue interest accrues between calls and, once a stake
settles, its owner burns the leftover fTokens for yield.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from ..config.schema import Config
from ..engine.chain import Chain
from ..engine.protocol import FlashProtocol
from ..engine.stakes import Stake
from ..engine.strategy import LendingStrategy, LendingVenue
from ..engine.tokens import TokenLedger

logger = logging.getLogger(__name__)

DEPLOYER = "0xdeployer"
TREASURY = "0xtreasury"


@dataclass
class SimulationResult:
    """Complete simulation result."""
    config: Config
    records: List[Dict[str, Any]]
    stakes: List[Stake]
    final_metrics: Dict[str, Any]
    events: List[Dict[str, Any]] = field(default_factory=list)
    conservation_errors: List[str] = field(default_factory=list)
    random_seed: Optional[int] = None


@dataclass
class _Deployment:
    chain: Chain
    principal: TokenLedger
    venue: LendingVenue
    strategy: LendingStrategy
    protocol: FlashProtocol
    ftoken: TokenLedger


class SimulationRunner:
    """Drives the protocol through randomized redemption paths."""

    def __init__(self, config: Config):
        """
        Initialize simulation runner.

        Args:
            config: Protocol and simulation configuration
        """
        self.config = config

    def _deploy(self) -> _Deployment:
        sim = self.config.simulation
        chain = Chain()
        principal = TokenLedger(chain, "Simulated Principal", "PRN", decimals=sim.principal_decimals, owner=DEPLOYER)
        protocol = FlashProtocol(chain, DEPLOYER, config=self.config)
        if protocol.mint_fee_bps and not protocol.mint_fee_recipient:
            protocol.set_mint_fee_info(DEPLOYER, TREASURY, protocol.mint_fee_bps)
        venue = LendingVenue(chain, principal)
        strategy = LendingStrategy(
            chain, protocol.address, venue, DEPLOYER,
            curve=protocol.curve,
            reward_lockout_seconds=self.config.incentives.reward_lockout_seconds,
        )
        ftoken_address = protocol.register_strategy(DEPLOYER, strategy.address, principal.address, "fPRN", "fPRN")
        return _Deployment(chain, principal, venue, strategy, protocol, chain.contract_at(ftoken_address))

    def run(self, random_seed: int = None) -> SimulationResult:
        """
        Run the simulation.

        Args:
            random_seed: Random seed for reproducibility

        Returns:
            Simulation result
        """
        seed = self.config.simulation.random_seed if random_seed is None else random_seed
        np.random.seed(seed)

        sim = self.config.simulation
        d = self._deploy()
        unit = 10 ** sim.principal_decimals
        min_duration = self.config.durations.min_stake_duration
        max_duration = self.config.durations.max_stake_duration

        records: List[Dict[str, Any]] = []
        totals = {
            'staked': 0, 'returned': 0, 'yield_paid': 0,
            'ftokens_minted': 0, 'ftokens_burned': 0, 'ftokens_burned_for_yield': 0,
        }

        for i in range(sim.stakes_per_run):
            user = f"0xuser{i:04d}"
            amount = int(np.random.randint(1, sim.max_principal_units + 1)) * unit
            duration = int(np.random.randint(min_duration, max_duration + 1))

            d.principal.mint(DEPLOYER, user, amount)
            d.principal.approve(user, d.protocol.address, amount)
            stake = d.protocol.stake(user, d.strategy.address, amount, duration)
            d.ftoken.approve(user, d.protocol.address, stake.ftokens_to_user)
            totals['staked'] += stake.staked_amount
            totals['ftokens_minted'] += stake.total_ftokens

            num_calls = int(np.random.randint(1, sim.max_calls_per_stake + 1))
            fractions = np.sort(np.random.uniform(0.0, 1.0, size=num_calls))
            for call_idx, fraction in enumerate(fractions):
                target = stake.start_ts + int(fraction * duration)
                if target < d.chain.timestamp:
                    continue
                self._accrue(d, target - d.chain.timestamp)
                d.chain.set_timestamp(target)
                record = self._redeem(d, user, stake.stake_id, call_idx, seed)
                records.append(record)
                totals['returned'] += record['principal_returned']
                totals['ftokens_burned'] += record['ftokens_burned']
                if record['settled']:
                    break

            info = d.protocol.get_stake_info(stake.stake_id)
            if info.active:
                self._accrue(d, max(0, info.end_ts - d.chain.timestamp))
                d.chain.set_timestamp(max(d.chain.timestamp, info.end_ts))
                record = self._redeem(d, user, stake.stake_id, num_calls, seed)
                records.append(record)
                totals['returned'] += record['principal_returned']
                totals['ftokens_burned'] += record['ftokens_burned']

            burned, paid = self._claim_yield(d, user)
            totals['ftokens_burned_for_yield'] += burned
            totals['yield_paid'] += paid

        stakes = d.protocol.stakes.snapshot_stakes()
        conservation_errors = []
        for stake in stakes:
            is_valid, error = stake.validate_bounds()
            if not is_valid:
                conservation_errors.append(error)

        final_metrics = self._compute_final_metrics(d, stakes, records, totals)
        logger.info(
            "Simulation seed %d: %d stakes, %d calls, %d conservation errors",
            seed, len(stakes), len(records), len(conservation_errors),
        )
        return SimulationResult(
            config=self.config,
            records=records,
            stakes=stakes,
            final_metrics=final_metrics,
            events=[event.to_dict() for event in d.chain.events],
            conservation_errors=conservation_errors,
            random_seed=seed,
        )

    def run_batch(self, num_runs: int = None, random_seed: int = None) -> List[SimulationResult]:
        """
        Repeat the simulation with consecutive seeds.

        Args:
            num_runs: Number of runs (defaults to config value)
            random_seed: First seed (defaults to config value)

        Returns:
            List of simulation results
        """
        if num_runs is None:
            num_runs = self.config.simulation.runs
        if random_seed is None:
            random_seed = self.config.simulation.random_seed
        return [self.run(random_seed=random_seed + run_idx) for run_idx in range(num_runs)]

    def _accrue(self, d: _Deployment, seconds: int) -> None:
        if seconds > 0:
            d.venue.accrue_rate(d.strategy.address, self.config.simulation.venue_rate_bps, seconds)

    def _redeem(self, d: _Deployment, user: str, stake_id: int, call_idx: int, seed: int) -> Dict[str, Any]:
        quote = d.protocol.quote_unstake(stake_id, False, 0)
        owed = quote.required_burn
        if np.random.random() < self.config.simulation.over_request_probability:
            requested = int(owed * np.random.uniform(1.0, 3.0)) + 1
        else:
            requested = int(owed * np.random.random())

        result = d.protocol.unstake(user, stake_id, False, requested)
        stake = d.protocol.get_stake_info(stake_id)
        return {
            'seed': seed,
            'stake_id': stake_id,
            'call': call_idx,
            'timestamp': d.chain.timestamp,
            'elapsed_fraction': stake.elapsed_fraction(d.chain.timestamp) / 1e18,
            'required_burn': owed,
            'requested': requested,
            'ftokens_burned': result.ftokens_burned,
            'principal_returned': result.principal_returned,
            'total_ftoken_burned': stake.total_ftoken_burned,
            'total_staked_withdrawn': stake.total_staked_withdrawn,
            'staked_amount': stake.staked_amount,
            'ftokens_to_user': stake.ftokens_to_user,
            'settled': result.settled,
            'yield_balance': d.strategy.get_yield_balance(),
        }

    def _claim_yield(self, d: _Deployment, user: str) -> Tuple[int, int]:
        balance = d.ftoken.balance_of(user)
        if balance == 0 or d.strategy.quote_burn_ftoken(balance) == 0:
            return 0, 0
        d.ftoken.approve(user, d.strategy.address, balance)
        return balance, d.strategy.burn_ftoken(user, balance, 0, user)

    def _compute_final_metrics(
        self,
        d: _Deployment,
        stakes: List[Stake],
        records: List[Dict[str, Any]],
        totals: Dict[str, int],
    ) -> Dict[str, Any]:
        outstanding = sum(s.remaining_principal for s in stakes if s.active)
        early = [r for r in records if not r['settled'] and r['principal_returned'] > 0]
        capped = [r for r in records if r['requested'] > r['ftokens_burned']]
        fractions = np.array([r['elapsed_fraction'] for r in records]) if records else np.zeros(1)
        return {
            'num_stakes': len(stakes),
            'num_calls': len(records),
            'settled_stakes': sum(1 for s in stakes if not s.active),
            'early_partial_calls': len(early),
            'capped_calls': len(capped),
            'mean_call_elapsed_fraction': float(np.mean(fractions)),
            'total_staked': totals['staked'],
            'total_principal_returned': totals['returned'],
            'outstanding_principal': outstanding,
            'strategy_principal': d.strategy.get_principal_balance(),
            'ftokens_minted': totals['ftokens_minted'],
            'ftokens_burned_for_principal': totals['ftokens_burned'],
            'ftokens_burned_for_yield': totals['ftokens_burned_for_yield'],
            'ftoken_total_supply': d.ftoken.total_supply,
            'yield_paid': totals['yield_paid'],
            'yield_balance': d.strategy.get_yield_balance(),
            'config_hash': self.config.compute_hash(),
        }
