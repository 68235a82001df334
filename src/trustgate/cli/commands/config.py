#!/usr/bin/env python
"""
Config command - view and edit platform configuration.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from trustgate.cli.commands import open_orchestrator
from trustgate.cli.output import ConsoleOutput
from trustgate.config.defaults import CATEGORY_KEYS
from trustgate.errors import ConfigNotFoundError, ConfigValidationError


def _load_value(value: str) -> dict:
    """Inline JSON, or @path to a JSON file."""
    if value.startswith("@"):
        return json.loads(Path(value[1:]).read_text())
    return json.loads(value)


async def run(
    action: str = "show",
    category: Optional[str] = None,
    value: Optional[str] = None,
    changed_by: str = "cli",
    reason: Optional[str] = None,
    db_path: Optional[str] = None,
) -> int:
    """Run the config command."""
    console = ConsoleOutput()

    if action != "show" and not category:
        console.print(f"[yellow]Usage: trustgate config {action} <category>[/yellow]")
        return 1
    if category:
        category = category.upper()
        if category not in CATEGORY_KEYS:
            console.print_error(f"Unknown category {category}")
            console.print_dim(f"Known: {', '.join(CATEGORY_KEYS)}")
            return 1

    async with open_orchestrator(db_path) as orch:
        if action == "show":
            configs = await orch.store.list_configs()
            console.print_table(
                "Platform configuration",
                ["Category", "Key", "Version", "Updated by", "Updated"],
                [
                    [c.category, c.key, c.version, c.updated_by or "-", c.updated_at.isoformat()]
                    for c in configs
                ],
            )
            return 0

        key = CATEGORY_KEYS[category]

        if action == "get":
            console.print_json(await orch.config.get(category, key))
            return 0

        if action == "history":
            entries = await orch.config.get_history(category, key)
            console.print_table(
                f"{category}:{key} history",
                ["When", "By", "Reason"],
                [[e.changed_at.isoformat(), e.changed_by, e.reason or "-"] for e in entries],
            )
            return 0

        if action == "set":
            if value is None:
                console.print("[yellow]Usage: trustgate config set <category> <json|@file>[/yellow]")
                return 1
            try:
                document = _load_value(value)
            except (OSError, json.JSONDecodeError) as e:
                console.print_error(f"Could not read configuration value: {e}")
                return 1
            try:
                result = await orch.config.update(category, key, document, changed_by, reason)
            except ConfigValidationError as e:
                console.print_error(f"{category} configuration rejected")
                for error in e.errors:
                    console.print(f"  [red]-[/red] {error}")
                return 1
            except ConfigNotFoundError as e:
                console.print_error(str(e))
                return 1
            console.print_success(f"{category}:{key} is now version {result.config.version}")
            for warning in result.warnings:
                console.print_warning(warning)
            return 0

    console.print_error(f"Unknown action {action}")
    return 1
