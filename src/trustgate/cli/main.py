#!/usr/bin/env python
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv


def _project_root() -> Path:
    return Path.cwd().resolve()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trustgate",
        description="trustgate - trust scores, accountability and feature access",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--db", help="Path to the SQLite database (overrides TRUSTGATE_DB_PATH)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    subparsers.add_parser("init", help="Create the database and seed default configuration")

    recalc_p = subparsers.add_parser("recalc", help="Recalculate trust scores")
    recalc_p.add_argument("users", nargs="*", help="User ids (default: everyone)")
    recalc_p.add_argument("--json", action="store_true", help="Output JSON")

    history_p = subparsers.add_parser("history", help="Show a user's score history")
    history_p.add_argument("user", help="User id")
    history_p.add_argument("--limit", type=int, default=20, help="Rows to show (default: 20)")
    history_p.add_argument(
        "--category",
        choices=["activity", "decay", "accountability", "recalculation"],
        help="Only this kind of change",
    )
    history_p.add_argument("--json", action="store_true", help="Output JSON")

    badges_p = subparsers.add_parser("badges", help="Show earned badge tiers")
    badges_p.add_argument("user", help="User id")
    badges_p.add_argument("--json", action="store_true", help="Output JSON")

    decay_p = subparsers.add_parser("decay", help="Run the trust decay job")
    decay_p.add_argument("--warnings-only", action="store_true", help="Only send decay warnings")
    decay_p.add_argument("--json", action="store_true", help="Output JSON")

    sweep_p = subparsers.add_parser("sweep", help="Process unprocessed accountability logs")
    sweep_p.add_argument("--json", action="store_true", help="Output JSON")

    access_p = subparsers.add_parser("access", help="Check a user's access to a feature")
    access_p.add_argument("user", help="User id")
    access_p.add_argument("feature", help="Feature code, e.g. CREATE_EVENTS")
    access_p.add_argument("--json", action="store_true", help="Output JSON")

    summary_p = subparsers.add_parser("summary", help="Summarize a user's access")
    summary_p.add_argument("user", help="User id")
    summary_p.add_argument("--json", action="store_true", help="Output JSON")

    config_p = subparsers.add_parser("config", help="View/edit platform configuration")
    config_p.add_argument(
        "action", choices=["show", "get", "set", "history"], default="show", nargs="?"
    )
    config_p.add_argument("category", nargs="?", help="Configuration category, e.g. TRUST_FORMULA")
    config_p.add_argument("value", nargs="?", help="New document as JSON or @file.json")
    config_p.add_argument("--by", default="cli", help="Who is making the change")
    config_p.add_argument("--reason", help="Why the change is made")

    return parser


async def _init(db_path):
    from trustgate.cli.commands import open_orchestrator
    from trustgate.cli.output import ConsoleOutput

    async with open_orchestrator(db_path) as orch:
        configs = await orch.store.list_configs()
        ConsoleOutput().print_success(
            f"Database ready at {orch.store.db_path} ({len(configs)} configuration documents)"
        )
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("trustgate").setLevel(logging.DEBUG if args.verbose else logging.INFO)

    load_dotenv(_project_root() / ".env")

    if args.command is None:
        parser.print_help()
        return 0

    from trustgate.cli.commands import access, config, jobs, scores

    db = args.db
    try:
        if args.command == "init":
            return asyncio.run(_init(db))
        elif args.command == "recalc":
            return asyncio.run(scores.recalc(args.users, args.json, db))
        elif args.command == "history":
            return asyncio.run(
                scores.history(args.user, args.limit, args.category, args.json, db)
            )
        elif args.command == "badges":
            return asyncio.run(scores.badges(args.user, args.json, db))
        elif args.command == "decay":
            return asyncio.run(jobs.decay(args.warnings_only, args.json, db))
        elif args.command == "sweep":
            return asyncio.run(jobs.sweep(args.json, db))
        elif args.command == "access":
            return asyncio.run(access.check(args.user, args.feature, args.json, db))
        elif args.command == "summary":
            return asyncio.run(access.summary(args.user, args.json, db))
        elif args.command == "config":
            return asyncio.run(
                config.run(args.action, args.category, args.value, args.by, args.reason, db)
            )
    except Exception as e:
        from trustgate.cli.output import ConsoleOutput

        ConsoleOutput().print_error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
