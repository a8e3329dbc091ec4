"""
Administrator CLI for the compensation engine.

Usage:
    python main.py initdb
    python main.py enroll --sponsor 1 --strategy weaker_leg --ref alice
    python main.py place --pending 7 --parent 3 --position left
    python main.py tank --sponsor 1
    python main.py purchase --node 7 --pv 150 --price 300
    python main.py payout [--as-of 2026-01-31T23:59:00]
    python main.py tree --node 1 --depth 3
"""
import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime

import config
from init import Session, _engine, init_tables
from mlm_system.engine import CompensationEngine
from mlm_system.errors import CompensationError
from mlm_system.results import HoldingTankSnapshot

logger = logging.getLogger(__name__)


def _print(data):
    print(json.dumps(data, indent=2, default=str))


# region Commands

async def cmd_initdb(engine: CompensationEngine, args: argparse.Namespace) -> int:
    init_tables(_engine)
    logger.info(f"Tables created in {config.DATABASE_URL}")
    return 0


async def cmd_enroll(engine: CompensationEngine, args: argparse.Namespace) -> int:
    result = await engine.enrollMember(args.sponsor, args.strategy, args.position, args.ref)
    if isinstance(result, HoldingTankSnapshot):
        print(f"Member {result.pendingUserId} parked in holding tank of sponsor {result.sponsorId}")
    else:
        print(f"Member enrolled as node {result}")
    return 0


async def cmd_place(engine: CompensationEngine, args: argparse.Namespace) -> int:
    nodeId = await engine.placePendingMember(args.pending, args.parent, args.position)
    print(f"Node {nodeId} placed under {args.parent} ({args.position})")
    return 0


async def cmd_tank(engine: CompensationEngine, args: argparse.Namespace) -> int:
    entries = await engine.getHoldingTank(args.sponsor)
    _print([entry.__dict__ for entry in entries])
    return 0


async def cmd_purchase(engine: CompensationEngine, args: argparse.Namespace) -> int:
    await engine.creditPurchase(args.node, args.pv, args.price)
    print(f"Credited {args.pv} PV to node {args.node}")
    return 0


async def cmd_payout(engine: CompensationEngine, args: argparse.Namespace) -> int:
    asOf = datetime.fromisoformat(args.as_of) if args.as_of else None
    summary = await engine.runPayoutCycle(asOf=asOf)
    _print({
        "payoutRunId": summary.payoutRunId,
        "asOf": summary.asOf,
        "nodesProcessed": summary.nodesProcessed,
        "totalCommissionPaid": summary.totalCommissionPaid,
        "totalMatchingPaid": summary.totalMatchingPaid,
        "totalForfeited": summary.totalForfeited,
        "rankChanges": [change.__dict__ for change in summary.rankChanges],
    })
    return 0


async def cmd_tree(engine: CompensationEngine, args: argparse.Namespace) -> int:
    _print(await engine.getTree(args.node, args.depth))
    return 0

# endregion


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="main.py",
        description="Binary network compensation engine - administrator commands",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("initdb", help="Create the network tables")

    p_enroll = sub.add_parser("enroll", help="Enroll a member")
    p_enroll.add_argument("--sponsor", type=int, help="Sponsor node ID (omit for the root)")
    p_enroll.add_argument(
        "--strategy",
        choices=["left", "right", "weaker_leg", "alternating", "holding_tank"],
        help="Placement strategy (default: sponsor preference, then HOLDING_TANK_MODE)",
    )
    p_enroll.add_argument("--position", choices=["left", "right"], help="Explicit slot directly under the sponsor")
    p_enroll.add_argument("--ref", help="Member reference in the external system")

    p_place = sub.add_parser("place", help="Place a holding tank member")
    p_place.add_argument("--pending", type=int, required=True, help="Pending member node ID")
    p_place.add_argument("--parent", type=int, required=True, help="Target parent node ID")
    p_place.add_argument("--position", choices=["left", "right"], required=True)

    p_tank = sub.add_parser("tank", help="List a sponsor's holding tank")
    p_tank.add_argument("--sponsor", type=int, required=True)

    p_purchase = sub.add_parser("purchase", help="Credit a confirmed purchase")
    p_purchase.add_argument("--node", type=int, required=True, help="Purchaser node ID")
    p_purchase.add_argument("--pv", required=True, help="Point volume (Decimal)")
    p_purchase.add_argument("--price", required=True, help="Purchase price (Decimal)")

    p_payout = sub.add_parser("payout", help="Run a payout cycle with the configured plan")
    p_payout.add_argument("--as-of", help="Cycle time, ISO format (default: now)")

    p_tree = sub.add_parser("tree", help="Print a subtree")
    p_tree.add_argument("--node", type=int, required=True)
    p_tree.add_argument("--depth", type=int, default=3)

    return parser


COMMANDS = {
    "initdb": cmd_initdb,
    "enroll": cmd_enroll,
    "place": cmd_place,
    "tank": cmd_tank,
    "purchase": cmd_purchase,
    "payout": cmd_payout,
    "tree": cmd_tree,
}


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    engine = CompensationEngine(Session)
    try:
        return asyncio.run(COMMANDS[args.command](engine, args))
    except CompensationError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Failed: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    raise SystemExit(main())
