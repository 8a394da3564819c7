"""Export functionality for CSV and JSON."""

import json
from typing import Any, Dict, Iterable, List

import pandas as pd

from ..engine.stakes import Stake
from ..simulation.runner import SimulationResult


def stakes_to_frame(stakes: Iterable[Stake]) -> pd.DataFrame:
    """One row per stake, with the derived totals alongside the stored fields."""
    rows = []
    for stake in stakes:
        row = stake.to_dict()
        row['total_ftokens'] = stake.total_ftokens
        row['end_ts'] = stake.end_ts
        row['remaining_principal'] = stake.remaining_principal
        rows.append(row)
    return pd.DataFrame(rows)


def events_to_frame(events: Iterable[Any]) -> pd.DataFrame:
    """Events (objects or dicts) as a sparse frame keyed by event name."""
    rows = [e if isinstance(e, dict) else e.to_dict() for e in events]
    df = pd.DataFrame(rows)
    if not df.empty:
        df = df[['event'] + [c for c in df.columns if c != 'event']]
    return df


def records_to_frame(records: List[Dict[str, Any]]) -> pd.DataFrame:
    """Unstake call records with the withdrawn share of principal added."""
    df = pd.DataFrame(records)
    if not df.empty:
        df['withdrawn_fraction'] = [
            w / s if s else 0.0
            for w, s in zip(df['total_staked_withdrawn'], df['staked_amount'])
        ]
    return df


def export_csv(result: SimulationResult, filepath: str):
    """Export simulation call records to CSV."""
    df = records_to_frame(result.records)
    df.to_csv(filepath, index=False)


def export_json(result: SimulationResult, filepath: str):
    """Export simulation results to JSON."""
    export_data = {
        'config': result.config.to_dict(),
        'config_hash': result.config.compute_hash(),
        'random_seed': result.random_seed,
        'stakes': [stake.to_dict() for stake in result.stakes],
        'records': result.records,
        'events': result.events,
        'final_metrics': result.final_metrics,
        'conservation_errors': result.conservation_errors,
    }

    with open(filepath, 'w') as f:
        json.dump(export_data, f, indent=2, default=str)
