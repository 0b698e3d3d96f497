"""Command-line interface for the isolated lending dashboard."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .config import load_config
from .errors import IsolendError
from .logging_setup import configure_logging
from .services import ActionKind, Dashboard, FlowPhase
from .services.transactions import TransactionFlow

_ACTION_COMMANDS: dict[str, ActionKind] = {
    "supply": ActionKind.SUPPLY,
    "withdraw": ActionKind.WITHDRAW,
    "supply-collateral": ActionKind.SUPPLY_COLLATERAL,
    "withdraw-collateral": ActionKind.WITHDRAW_COLLATERAL,
    "borrow": ActionKind.BORROW,
    "repay": ActionKind.REPAY,
    "swap": ActionKind.SWAP_COLLATERAL,
}

_ACTION_HELP = {
    "supply": ("Supply borrow tokens as liquidity", "Amount of the borrow token"),
    "withdraw": ("Withdraw liquidity", "Amount of pool shares to redeem"),
    "supply-collateral": ("Supply collateral to your position", "Amount of the collateral token"),
    "withdraw-collateral": ("Withdraw collateral from your position", "Amount of the collateral token"),
    "borrow": ("Borrow against your collateral", "Amount of the borrow token"),
    "repay": ("Repay debt from your wallet", "Amount of the borrow token"),
}


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="isolend",
        description="Isolated lending pool dashboard",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("pools", help="List pools with supply, borrow and rates")

    positions_parser = sub.add_parser("positions", help="Show an account's portfolio")
    positions_parser.add_argument("--account", default=None, help="Account (default: configured wallet)")

    history_parser = sub.add_parser("history", help="Show an account's deposit, borrow and collateral history")
    history_parser.add_argument("--account", default=None, help="Account (default: configured wallet)")

    pool_history_parser = sub.add_parser("pool-history", help="Show a pool's indexed totals and rates")
    pool_history_parser.add_argument("pool", help="Lending pool address")

    watch_parser = sub.add_parser("watch", help="Refresh continuously")
    watch_parser.add_argument(
        "interval",
        nargs="?",
        type=float,
        default=None,
        help="Refresh interval in seconds (overrides config)",
    )

    activity_parser = sub.add_parser("activity", help="Show indexed transactions, newest first")
    activity_parser.add_argument("--pool", default=None, help="Only this pool")
    activity_parser.add_argument("--user", default=None, help="Only this account")

    for name, (help_text, amount_help) in _ACTION_HELP.items():
        action_parser = sub.add_parser(name, help=help_text)
        action_parser.add_argument("pool", help="Lending pool address")
        action_parser.add_argument("amount", help=amount_help)
        _add_retry(action_parser)

    swap_parser = sub.add_parser("swap", help="Swap collateral held by your position")
    swap_parser.add_argument("pool", help="Lending pool address")
    swap_parser.add_argument("token_in", help="Token to sell")
    swap_parser.add_argument("token_out", help="Token to buy")
    swap_parser.add_argument("amount", help="Amount of token_in")
    swap_parser.add_argument("--min-out", default="0", help="Minimum amount of token_out (default: 0)")
    _add_retry(swap_parser)

    return parser


def _add_retry(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--retries",
        type=int,
        default=0,
        help="Retry a failed transaction this many times (default: 0)",
    )


def _print_flow(flow: TransactionFlow) -> None:
    if flow.phase == FlowPhase.APPROVING:
        print(f"[{flow.action.value}] approving" + (f" · {flow.approval_hash}" if flow.approval_hash else ""))
    elif flow.phase == FlowPhase.EXECUTING:
        print(f"[{flow.action.value}] executing" + (f" · {flow.action_hash}" if flow.action_hash else ""))


async def _run_action(dashboard: Dashboard, args: argparse.Namespace) -> int:
    action = _ACTION_COMMANDS[args.command]
    request = await dashboard.prepare(
        action,
        args.pool,
        args.amount,
        token_in=getattr(args, "token_in", None),
        token_out=getattr(args, "token_out", None),
        min_amount_out=getattr(args, "min_out", "0"),
    )

    orchestrator = dashboard.orchestrator(action)
    orchestrator.subscribe(_print_flow)
    flow = await dashboard.execute(request)
    if flow.validation_error:
        print(f"✖ {flow.validation_error}")
        return 2

    attempts = args.retries
    while flow.phase == FlowPhase.ERROR and attempts > 0:
        print(f"✖ {flow.error}, retrying")
        attempts -= 1
        flow = await orchestrator.retry()

    if flow.phase == FlowPhase.ERROR:
        print(f"✖ {flow.error}")
        return 1
    print(f"✔ {action.value} confirmed · {flow.action_hash}")
    return 0


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    dashboard = Dashboard(config)

    if args.command == "pools":
        print(dashboard.render_pools(await dashboard.refresh_pools()))
    elif args.command == "positions":
        print(dashboard.render_portfolio(await dashboard.refresh_portfolio(args.account)))
    elif args.command == "history":
        summary = await dashboard.refresh_portfolio(args.account)
        print(dashboard.render_history(*await dashboard.history(summary)))
    elif args.command == "pool-history":
        print(dashboard.render_pool_history(args.pool, await dashboard.pool_history(args.pool)))
    elif args.command == "watch":
        await dashboard.run_continuous(args.interval)
    elif args.command == "activity":
        events, pools = await asyncio.gather(
            dashboard.activity(pool=args.pool, user=args.user), dashboard.refresh_pools()
        )
        print(dashboard.render_activity(events, pools))
    elif args.command in _ACTION_COMMANDS:
        return await _run_action(dashboard, args)
    else:
        build_parser().print_help()
        return 1
    return 0


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        code = asyncio.run(_run(args))
    except (IsolendError, ValueError) as e:
        print(f"✖ {e}")
        sys.exit(2)
    sys.exit(code)
