#!/usr/bin/env python
"""
Access commands - check one feature or summarize a user's access.
"""

from __future__ import annotations

from typing import Optional

from trustgate.cli.commands import open_orchestrator
from trustgate.cli.output import ConsoleOutput, format_level


async def check(
    user_id: str, feature: str, json_output: bool = False, db_path: Optional[str] = None
) -> int:
    console = ConsoleOutput()
    async with open_orchestrator(db_path) as orch:
        access = await orch.access.can_access_feature(user_id, feature)
        usage = await orch.access.check_feature_usage(user_id, feature)

    if json_output:
        console.print_json({"access": access.to_dict(), "usage": usage.to_dict()})
        return 0 if access.allowed else 1

    if access.allowed:
        console.print_success(f"{user_id} can use {feature}")
    else:
        console.print_error(f"{user_id} cannot use {feature}: {access.reason}")
        options = access.upgrade_options
        if options and options.subscription_needed:
            sub = options.subscription_needed
            console.print_info(
                f"Upgrade to {sub.required_tier} for {sub.currency} {sub.price_monthly}/month"
            )
        if options and options.trust_needed:
            trust = options.trust_needed
            console.print_info(
                f"Earn {trust.points_needed} more trust points (about {trust.estimated_days} days)"
            )
            for action in trust.suggested_actions:
                console.print_dim(f"  - {action}")

    if usage.limit != -1:
        console.print_dim(f"Used {usage.used}/{usage.limit} this month")
    return 0 if access.allowed else 1


async def summary(user_id: str, json_output: bool = False, db_path: Optional[str] = None) -> int:
    console = ConsoleOutput()
    async with open_orchestrator(db_path) as orch:
        data = await orch.access.get_user_access_summary(user_id)

    if data is None:
        console.print_error(f"User not found: {user_id}")
        return 1
    if json_output:
        console.print_json(data)
        return 0

    trust = data["trust"]
    console.print(
        f"[bold]{user_id}[/bold]  {data['subscription']['tier']}  "
        f"trust {trust['score']:.1f} ({format_level(trust['level'])})"
    )
    console.print_dim(
        f"{trust['vouch_count']} vouches, {trust['moment_count']} trust moments, "
        f"{trust['event_count']} events"
    )
    console.print_table(
        "Locked features",
        ["Feature", "Blocked by", "Reason"],
        [[f["feature"], f["blocked_by"], f["reason"]] for f in data["locked_features"]],
    )
    console.print_info(f"{len(data['accessible_features'])} features available")
    return 0
