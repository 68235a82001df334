"""
Exception taxonomy for the trust subsystem.

Access denials are not exceptions: they are returned as FeatureAccess /
GuardDecision results so callers can render upgrade guidance.
"""

from __future__ import annotations

from typing import List, Optional


class TrustGateError(Exception):
    """Base class for all trustgate errors."""
    pass


class NotFoundError(TrustGateError):
    """Referenced entity does not exist."""
    pass


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


class AccountabilityLogNotFoundError(NotFoundError):
    def __init__(self, log_id: str):
        super().__init__(f"Accountability log not found: {log_id}")
        self.log_id = log_id


class ConfigNotFoundError(NotFoundError):
    """No stored row and no hardcoded default for a (category, key) pair."""

    def __init__(self, category: str, key: str):
        super().__init__(f"Configuration not found: {category}:{key}")
        self.category = category
        self.key = key


class ConfigValidationError(TrustGateError):
    """A configuration document failed validation; nothing was persisted."""

    def __init__(
        self,
        category: str,
        errors: List[str],
        warnings: Optional[List[str]] = None,
    ):
        super().__init__(
            f"Invalid {category} configuration: {'; '.join(errors)}"
        )
        self.category = category
        self.errors = errors
        self.warnings = warnings or []


class ScoreConflictError(TrustGateError):
    """A score write kept losing the optimistic version check."""

    def __init__(self, user_id: str, attempts: int):
        super().__init__(f"Score for {user_id} changed concurrently {attempts} times")
        self.user_id = user_id
        self.attempts = attempts


class JobAlreadyRunningError(TrustGateError):
    """The decay job was started while a previous run is still in flight."""
    pass
