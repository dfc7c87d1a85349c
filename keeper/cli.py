"""CLI entry point for the conditional-order keeper."""

import argparse
import asyncio
import logging

from keeper.config.loader import load_config
from keeper.config.schema import KeeperConfig
from keeper.daemon import KeeperDaemon, read_daemon_state, stop_daemon
from keeper.errors import ConfigError, KeypairLoadError
from keeper.models.execution import Route
from keeper.reporting.formatters import format_summary_json
from keeper.runtime import create_runtime
from keeper.storage import cycle_repo
from keeper.storage.ledger import ExecutionLedger

DEFAULT_CONFIG = "keeper.yaml"

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="keeper",
        description="Conditional order keeper",
    )
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG, help="Config YAML path"
    )
    parser.add_argument("--db", default=None, help="SQLite ledger path (overrides config)")

    sub = parser.add_subparsers(dest="command")

    run_p = sub.add_parser("run", help="Run the keeper loop")
    run_p.add_argument("--live", action="store_true", help="Broadcast transactions")

    once_p = sub.add_parser("once", help="Run a single keeper cycle")
    once_p.add_argument("--live", action="store_true", help="Broadcast transactions")
    once_p.add_argument("--json", action="store_true", help="Print the cycle summary as JSON")

    sub.add_parser("stop", help="Stop a running keeper")
    sub.add_parser("status", help="Show ledger entries and daemon state")

    config_p = sub.add_parser("config", help="Config operations")
    config_sub = config_p.add_subparsers(dest="config_command")
    config_sub.add_parser("show", help="Display effective config")

    ledger_p = sub.add_parser("ledger", help="Ledger operations")
    ledger_sub = ledger_p.add_subparsers(dest="ledger_command")
    reset_p = ledger_sub.add_parser("reset", help="Clear a failed entry's attempts")
    reset_p.add_argument("order_pubkey")
    reset_p.add_argument("route", choices=[r.value for r in Route])

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Invalid config: {e}")
        return 1

    logging.basicConfig(
        level=config.ops.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.db:
        config = config.model_copy(
            update={"ledger": config.ledger.model_copy(update={"sqlite_path": args.db})}
        )

    if args.command in ("run", "once"):
        if args.live:
            config = config.model_copy(
                update={"execution": config.execution.model_copy(update={"dry_run": False})}
            )
        return asyncio.run(
            _cmd_keeper(
                config,
                once=args.command == "once",
                as_json=getattr(args, "json", False),
            )
        )
    elif args.command == "stop":
        return stop_daemon()
    elif args.command == "status":
        return _cmd_status(config)
    elif args.command == "config":
        return _cmd_config(config, args)
    elif args.command == "ledger":
        return _cmd_ledger(config, args)
    else:
        parser.print_help()
        return 1


async def _cmd_keeper(config: KeeperConfig, once: bool, as_json: bool = False) -> int:
    try:
        runtime = create_runtime(config)
    except (ConfigError, KeypairLoadError) as e:
        logger.error("Startup failed: %s", e)
        return 1

    try:
        if once:
            summary = await runtime.cycle.run()
            if as_json:
                print(format_summary_json(summary))
            return 0 if not summary.errors else 1
        daemon = KeeperDaemon(config, runtime.cycle)
        await daemon.run()
        return 0
    except Exception:
        logger.exception("Keeper crashed")
        return 1
    finally:
        await runtime.close()


def _cmd_status(config: KeeperConfig) -> int:
    ledger = ExecutionLedger.open(config.ledger.sqlite_path)
    try:
        state = read_daemon_state()
        if state is None:
            print("Daemon: no state found")
        else:
            print(
                f"Daemon: pid {state.get('pid', '?')} | Mode: {state.get('mode', '?')} | "
                f"Cycles: {state.get('total_cycles', 0)} "
                f"({state.get('total_failures', 0)} failed)"
            )

        latest = cycle_repo.get_latest_cycle(ledger.conn)
        if latest is not None:
            print(
                f"Last cycle: {latest['cycle_id'][:8]} {latest['status']} "
                f"scanned={latest['orders_scanned']} submitted={latest['submitted']}"
            )

        entries = ledger.list_entries()
        print(f"Ledger entries: {len(entries)}")
        for e in entries:
            code = f" ({e.error_code})" if e.error_code else ""
            print(f"  {e.order_pubkey} {e.route.value}: {e.status.value} x{e.attempts}{code}")
    finally:
        ledger.close()
    return 0


def _cmd_config(config: KeeperConfig, args) -> int:
    if args.config_command == "show":
        data = config.model_dump(mode="json")
        if data["oracle"]["api_key"]:
            data["oracle"]["api_key"] = "***"
        print(KeeperConfig.model_validate(data).model_dump_json(indent=2))
        return 0
    print("Use: config show")
    return 1


def _cmd_ledger(config: KeeperConfig, args) -> int:
    if args.ledger_command != "reset":
        print("Use: ledger reset <order_pubkey> <route>")
        return 1
    ledger = ExecutionLedger.open(config.ledger.sqlite_path)
    try:
        if ledger.reset_entry(args.order_pubkey, args.route):
            print(f"Reset {args.order_pubkey}:{args.route}")
            return 0
        print(f"Nothing reset for {args.order_pubkey}:{args.route} (missing or succeeded)")
        return 1
    finally:
        ledger.close()
