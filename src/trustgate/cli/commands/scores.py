#!/usr/bin/env python
"""
Score commands - recalculate scores, show history and badges.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import List, Optional

from trustgate.cli.commands import open_orchestrator
from trustgate.cli.output import ConsoleOutput, format_change, format_level
from trustgate.models import ScoreChangeCategory


async def recalc(user_ids: List[str], json_output: bool = False, db_path: Optional[str] = None) -> int:
    """Recalculate the given users, or everyone."""
    console = ConsoleOutput()
    async with open_orchestrator(db_path) as orch:
        result = await orch.calculator.recalculate_trust_scores(user_ids or None)

    if json_output:
        console.print_json(result.to_dict())
    else:
        console.print_success(f"Recalculated {result.succeeded} users")
        if result.failed:
            console.print_warning(f"{result.failed} failed")
            for error in result.errors:
                console.print_dim(f"  {error}")
    return 1 if result.failed else 0


async def history(
    user_id: str,
    limit: int = 20,
    category: Optional[str] = None,
    json_output: bool = False,
    db_path: Optional[str] = None,
) -> int:
    """Show a user's score history."""
    console = ConsoleOutput()
    async with open_orchestrator(db_path) as orch:
        data = await orch.ledger.get_history(
            user_id,
            limit=limit,
            category=ScoreChangeCategory(category) if category else None,
        )

    if json_output:
        console.print_json({**data, "entries": [asdict(e) for e in data["entries"]]})
        return 0

    console.print(
        f"[bold]{user_id}[/bold]: {data['current_score']:.2f} ({format_level(data['current_level'])})"
    )
    console.print_table(
        "Score history",
        ["When", "Category", "Change", "New score", "Reason"],
        [
            [
                e.created_at.strftime("%Y-%m-%d %H:%M"),
                e.category.value,
                format_change(e.change),
                f"{e.new_score:.2f}",
                e.reason,
            ]
            for e in data["entries"]
        ],
    )
    summary = data["summary"]
    console.print_dim(
        f"Gained {summary['total_gained']:.2f}, lost {summary['total_lost']:.2f}"
    )
    return 0


async def badges(user_id: str, json_output: bool = False, db_path: Optional[str] = None) -> int:
    console = ConsoleOutput()
    async with open_orchestrator(db_path) as orch:
        earned = await orch.badges.evaluate(user_id)

    if json_output:
        console.print_json(earned)
    else:
        console.print_table(
            f"Badges for {user_id}",
            ["Badge", "Tier"],
            [[badge, tier or "-"] for badge, tier in earned.items()],
        )
    return 0
