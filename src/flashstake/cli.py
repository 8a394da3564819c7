"""Command-line interface for quoting and simulation.

Usage:
    flashstake quote 1000 --days 365 --fee-bps 2000
    flashstake redeem-quote 1000 --days 365 --elapsed 0.6 --burn 100.0000000512
    flashstake simulate --runs 5 --csv calls.csv
"""

import argparse
import logging
import sys
from decimal import Decimal
from typing import List, Optional

from .config.loader import load_config
from .engine.errors import FlashError
from .engine.quoting import MintCurve, quote_mint, split_fee
from .engine.redemption import quote_redemption
from .engine.stakes import Stake

DAY = 86_400


def _to_base_units(value: str, decimals: int) -> int:
    return int(Decimal(value) * (Decimal(10) ** decimals))


def _fmt(amount: int, decimals: int) -> str:
    return f"{Decimal(amount) / (Decimal(10) ** decimals):f}"


def _duration(args) -> int:
    if args.seconds is not None:
        return args.seconds
    return int(Decimal(str(args.days)) * DAY)


def cmd_quote(args, config) -> int:
    curve = MintCurve.from_config(config)
    amount = _to_base_units(args.amount, args.decimals)
    total = quote_mint(amount, _duration(args), args.decimals, curve)
    to_user, fee = split_fee(total, args.fee_bps)
    print(f"total_ftokens   {_fmt(total, curve.ftoken_decimals)}")
    print(f"ftokens_to_user {_fmt(to_user, curve.ftoken_decimals)}")
    print(f"ftokens_fee     {_fmt(fee, curve.ftoken_decimals)}")
    return 0


def cmd_redeem_quote(args, config) -> int:
    curve = MintCurve.from_config(config)
    amount = _to_base_units(args.amount, args.decimals)
    duration = _duration(args)
    total = quote_mint(amount, duration, args.decimals, curve)
    to_user, fee = split_fee(total, args.fee_bps)
    stake = Stake(
        stake_id=1,
        owner="cli",
        strategy="cli",
        start_ts=0,
        duration=duration,
        staked_amount=amount,
        ftokens_to_user=to_user,
        ftokens_fee=fee,
        total_ftoken_burned=_to_base_units(args.burned, curve.ftoken_decimals),
        total_staked_withdrawn=_to_base_units(args.withdrawn, args.decimals),
    )
    now = int(Decimal(str(args.elapsed)) * duration)
    requested = to_user if args.burn is None else _to_base_units(args.burn, curve.ftoken_decimals)
    quote = quote_redemption(stake, now, requested)
    print(f"elapsed_fraction   {quote.elapsed_fraction / 10**18:.6f}")
    print(f"required_burn      {_fmt(quote.required_burn, curve.ftoken_decimals)}")
    print(f"ftokens_to_burn    {_fmt(quote.ftokens_to_burn, curve.ftoken_decimals)}")
    print(f"principal_released {_fmt(quote.principal_released, args.decimals)}")
    print(f"settles            {quote.settles}")
    return 0


def cmd_simulate(args, config) -> int:
    from .reporting.export import export_csv, export_json
    from .simulation.runner import SimulationRunner
    from .validation.sanity_checks import validate_simulation_results

    runner = SimulationRunner(config)
    results = runner.run_batch(num_runs=args.runs, random_seed=args.seed)
    errors = 0
    for result in results:
        m = result.final_metrics
        warnings = validate_simulation_results(result)
        errors += sum(1 for w in warnings if w.severity == "error")
        print(
            f"seed={result.random_seed} stakes={m['num_stakes']} calls={m['num_calls']} "
            f"settled={m['settled_stakes']} capped={m['capped_calls']} "
            f"warnings={len(warnings)}"
        )
    if args.csv and results:
        export_csv(results[0], args.csv)
    if args.json and results:
        export_json(results[0], args.json)
    return 1 if errors else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="flashstake", description="Yield tokenization quoting and simulation")
    parser.add_argument("--config", help="YAML config (defaults to the packaged defaults)")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_stake_args(p):
        p.add_argument("amount", help="Principal in whole units")
        p.add_argument("--decimals", type=int, default=18, help="Principal token decimals")
        group = p.add_mutually_exclusive_group()
        group.add_argument("--days", type=float, default=365, help="Duration in days")
        group.add_argument("--seconds", type=int, help="Duration in seconds")
        p.add_argument("--fee-bps", type=int, default=0, help="Mint fee in basis points")

    quote = sub.add_parser("quote", help="fTokens minted for a stake")
    add_stake_args(quote)
    quote.set_defaults(func=cmd_quote)

    redeem = sub.add_parser("redeem-quote", help="Early redemption quote for a hypothetical stake")
    add_stake_args(redeem)
    redeem.add_argument("--elapsed", type=float, required=True, help="Elapsed fraction of the duration")
    redeem.add_argument("--burn", help="fTokens offered (defaults to all user fTokens)")
    redeem.add_argument("--burned", default="0", help="fTokens already burned against the stake")
    redeem.add_argument("--withdrawn", default="0", help="Principal already withdrawn")
    redeem.set_defaults(func=cmd_redeem_quote)

    simulate = sub.add_parser("simulate", help="Run randomized redemption simulations")
    simulate.add_argument("--runs", type=int, help="Number of runs (defaults to config)")
    simulate.add_argument("--seed", type=int, help="First random seed (defaults to config)")
    simulate.add_argument("--csv", help="Write the first run's call records to CSV")
    simulate.add_argument("--json", help="Write the first run to JSON")
    simulate.set_defaults(func=cmd_simulate)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")
    try:
        config = load_config(args.config)
        return args.func(args, config)
    except FlashError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
