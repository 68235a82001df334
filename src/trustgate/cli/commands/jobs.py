#!/usr/bin/env python
"""
Job commands - trust decay and the accountability sweep.
"""

from __future__ import annotations

from typing import Optional

from trustgate.cli.commands import open_orchestrator
from trustgate.cli.output import ConsoleOutput


async def decay(
    warnings_only: bool = False, json_output: bool = False, db_path: Optional[str] = None
) -> int:
    console = ConsoleOutput()
    async with open_orchestrator(db_path) as orch:
        if warnings_only:
            summary = {"warnings_sent": await orch.decay.send_decay_warnings()}
        else:
            summary = await orch.decay.run_all()

    failed = summary["decay"]["failed"] if "decay" in summary else 0
    if json_output:
        console.print_json(summary)
        return 1 if failed else 0

    console.print_info(f"Warnings sent: {summary['warnings_sent']}")
    if "decay" in summary:
        result = summary["decay"]
        console.print_info(
            f"Decayed {result['decayed']} of {result['candidates']} idle users "
            f"({result['total_decay']:.2f} points)"
        )
        if failed:
            console.print_warning(f"{failed} users failed")
        console.print_info(f"Reactivation bonuses: {summary['bonuses_granted']}")
    return 1 if failed else 0


async def sweep(json_output: bool = False, db_path: Optional[str] = None) -> int:
    """Process accountability logs left unprocessed."""
    console = ConsoleOutput()
    async with open_orchestrator(db_path) as orch:
        result = await orch.accountability.process_unprocessed_logs()

    if json_output:
        console.print_json(result.to_dict())
    else:
        console.print_success(f"Processed {result.succeeded} accountability logs")
        if result.failed:
            console.print_warning(f"{result.failed} failed")
    return 1 if result.failed else 0
