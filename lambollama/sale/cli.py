"""
Command line helpers for planning and checking a sale.

    lambollama-sale effective --amount 40 --prior 10
    lambollama-sale vested --total 100 --start 0 --duration 10000 --at 5000
    lambollama-sale vested --total 100 --start 0 --at 5000
    lambollama-sale tiers
"""

import argparse
import json
import logging
import sys
from decimal import Decimal, InvalidOperation

from eth_utils import from_wei, to_wei
from tabulate import tabulate

from lambollama.sale.config import bonus_tiers_from_config, load_sale_config
from lambollama.sale.core.bonus import effective_total, get_tier_thresholds, split_contribution
from lambollama.sale.core.release import VestingTerms, get_claimable, get_vested_amount
from lambollama.sale.errors import SaleError

logger = logging.getLogger(__name__)


def _ether(value: str) -> int:
    try:
        return to_wei(Decimal(value), "ether")
    except (InvalidOperation, ValueError):
        raise argparse.ArgumentTypeError(f"invalid ether amount: {value}")


def _fmt(wei: int) -> str:
    return f"{Decimal(from_wei(wei, 'ether')).normalize():f}"


def cmd_effective(args, config):
    tiers = bonus_tiers_from_config(config)
    allocations, unbonused = split_contribution(args.amount, args.prior, tiers)
    effective = effective_total(allocations, unbonused)

    if args.json:
        print(json.dumps({
            "amount": str(args.amount),
            "prior": str(args.prior),
            "effective_amount": str(effective),
            "tiers": [
                {"ceiling": str(a.ceiling), "bonus_percent": a.bonus_percent,
                 "amount": str(a.amount), "bonus": str(a.bonus)}
                for a in allocations
            ],
            "unbonused": str(unbonused),
        }, indent=2))
        return

    rows = [[_fmt(a.ceiling), f"{a.bonus_percent}%", _fmt(a.amount), _fmt(a.bonus)] for a in allocations]
    if unbonused:
        rows.append(["-", "0%", _fmt(unbonused), "0"])
    print(tabulate(rows, headers=["Ceiling (ETH)", "Bonus", "Amount (ETH)", "Bonus (ETH)"], tablefmt="simple"))
    print(f"\nEffective amount: {_fmt(effective)} ETH")


def cmd_vested(args, config):
    duration = config["presale_vesting_duration"] if args.duration is None else args.duration
    schedule = VestingTerms(args.total, args.start, duration, args.claimed)
    vested = get_vested_amount(schedule.total_amount, schedule.start, schedule.duration, args.at)
    claimable = get_claimable(schedule, args.at)

    if args.json:
        print(json.dumps({"vested": vested, "claimable": claimable}))
    else:
        print(f"Vested: {vested}")
        print(f"Claimable: {claimable}")


def cmd_tiers(args, config):
    thresholds = get_tier_thresholds(bonus_tiers_from_config(config))
    if args.json:
        print(json.dumps({
            "bonus_tiers": [[str(c), p] for c, p in thresholds["bonus_tiers"]],
            "max_bonus_eligible": str(thresholds["max_bonus_eligible"]),
        }, indent=2))
        return

    rows = [[_fmt(ceiling), f"{percent}%"] for ceiling, percent in thresholds["bonus_tiers"]]
    print(tabulate(rows, headers=["Ceiling (ETH)", "Bonus"], tablefmt="simple"))


def build_parser():
    parser = argparse.ArgumentParser(prog="lambollama-sale", description="Lambollama sale calculator")
    parser.add_argument("--tiers", help='Threshold table override, e.g. "15:40,45:30,90:15"')
    parser.add_argument("--json", action="store_true", help="Output in JSON format")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    effective = subparsers.add_parser("effective", help="Bonus breakdown of a contribution")
    effective.add_argument("--amount", type=_ether, required=True, help="Contribution in ETH")
    effective.add_argument("--prior", type=_ether, default=0, help="Cumulative sale total before it, in ETH")
    effective.set_defaults(func=cmd_effective)

    vested = subparsers.add_parser("vested", help="Vested and claimable amount of a schedule")
    vested.add_argument("--total", type=int, required=True, help="Total amount")
    vested.add_argument("--start", type=int, required=True, help="Start timestamp")
    vested.add_argument("--duration", type=int, help="Duration in seconds (default: presale_vesting_duration)")
    vested.add_argument("--at", type=int, required=True, help="Timestamp to evaluate at")
    vested.add_argument("--claimed", type=int, default=0, help="Amount already claimed")
    vested.set_defaults(func=cmd_vested)

    tiers = subparsers.add_parser("tiers", help="Show the threshold table")
    tiers.set_defaults(func=cmd_tiers)

    return parser


def main(argv=None):
    """Entry point of the lambollama-sale command."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    try:
        override = {"bonus_tiers": args.tiers} if args.tiers else None
        args.func(args, load_sale_config(override))
    except SaleError as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
