"""
TrustStore - Async SQLite persistence for users, vouches, accountability,
score history, platform configuration and subscriptions.

All writes go through one shared connection guarded by an asyncio.Lock.
Score mutations are read-modify-write inside that lock and commit together
with their history row.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import aiosqlite

from .constants import DEFAULT_DATA_DIR, TRUST_DB_FILENAME
from .errors import UserNotFoundError
from .models import (
    COUNTING_VOUCH_STATUSES,
    AccountabilityLog,
    ActivityType,
    ConfigHistoryEntry,
    ImpactType,
    PlatformConfig,
    ScoreChange,
    ScoreChangeCategory,
    ScoreHistoryEntry,
    Subscription,
    SubscriptionStatus,
    SubscriptionTier,
    TrustMoment,
    User,
    Vouch,
    VouchStatus,
    VouchType,
    utcnow,
)

logger = logging.getLogger(__name__)

# Counters the business modules may increment
USER_COUNTERS = (
    "events_attended",
    "events_hosted",
    "communities_joined",
    "services_provided",
)

# compute(user) -> (new_score, new_level, history_row or None), or None for no-op
ScoreComputation = Callable[[User], Optional[Tuple[float, str, Optional[ScoreHistoryEntry]]]]


def new_id() -> str:
    return uuid.uuid4().hex


def _ts(value: Optional[datetime]) -> Optional[str]:
    """Normalize to a UTC ISO-8601 string so text comparison orders correctly."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        full_name TEXT DEFAULT '',
        trust_score REAL NOT NULL DEFAULT 0.0,
        trust_level TEXT NOT NULL DEFAULT 'starter',
        events_attended INTEGER DEFAULT 0,
        events_hosted INTEGER DEFAULT 0,
        communities_joined INTEGER DEFAULT 0,
        services_provided INTEGER DEFAULT 0,
        score_version INTEGER DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vouches (
        id TEXT PRIMARY KEY,
        voucher_id TEXT NOT NULL,
        vouchee_id TEXT NOT NULL,
        vouch_type TEXT NOT NULL,
        status TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_vouches_vouchee ON vouches(vouchee_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_vouches_voucher ON vouches(voucher_id)",
    """
    CREATE TABLE IF NOT EXISTS trust_moments (
        id TEXT PRIMARY KEY,
        giver_id TEXT NOT NULL,
        receiver_id TEXT NOT NULL,
        rating INTEGER NOT NULL,
        is_public INTEGER DEFAULT 1,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_moments_receiver ON trust_moments(receiver_id)",
    "CREATE INDEX IF NOT EXISTS idx_moments_giver ON trust_moments(giver_id)",
    """
    CREATE TABLE IF NOT EXISTS user_activity (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        activity_type TEXT NOT NULL,
        occurred_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_activity_user ON user_activity(user_id, occurred_at)",
    """
    CREATE TABLE IF NOT EXISTS accountability_logs (
        id TEXT PRIMARY KEY,
        voucher_id TEXT NOT NULL,
        vouchee_id TEXT NOT NULL,
        vouch_id TEXT NOT NULL,
        impact_type TEXT NOT NULL,
        impact_value REAL NOT NULL,
        description TEXT,
        related_entity_type TEXT,
        related_entity_id TEXT,
        metadata TEXT,  -- JSON
        is_processed INTEGER DEFAULT 0,
        processed_at TEXT,
        occurred_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_logs_voucher ON accountability_logs(voucher_id)",
    "CREATE INDEX IF NOT EXISTS idx_logs_vouchee ON accountability_logs(vouchee_id)",
    "CREATE INDEX IF NOT EXISTS idx_logs_unprocessed ON accountability_logs(is_processed, occurred_at)",
    """
    CREATE TABLE IF NOT EXISTS trust_score_history (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        previous_score REAL NOT NULL,
        new_score REAL NOT NULL,
        change REAL NOT NULL,
        reason TEXT,
        category TEXT NOT NULL,
        related_entity_type TEXT,
        related_entity_id TEXT,
        metadata TEXT,  -- JSON
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_history_user ON trust_score_history(user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_history_category ON trust_score_history(category, created_at)",
    """
    CREATE TABLE IF NOT EXISTS platform_config (
        id TEXT PRIMARY KEY,
        category TEXT NOT NULL,
        key TEXT NOT NULL,
        value TEXT NOT NULL,  -- JSON
        version INTEGER DEFAULT 1,
        description TEXT,
        updated_by TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (category, key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS config_history (
        id TEXT PRIMARY KEY,
        config_id TEXT NOT NULL,
        old_value TEXT,  -- JSON
        new_value TEXT,  -- JSON
        changed_by TEXT NOT NULL,
        reason TEXT,
        changed_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_config_history ON config_history(config_id, changed_at)",
    """
    CREATE TABLE IF NOT EXISTS subscriptions (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        tier TEXT NOT NULL,
        status TEXT NOT NULL,
        current_period_start TEXT,
        current_period_end TEXT,
        features TEXT,  -- JSON
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_subscriptions_user ON subscriptions(user_id)",
    """
    CREATE TABLE IF NOT EXISTS feature_usage (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        feature_code TEXT NOT NULL,
        entity_type TEXT,
        entity_id TEXT,
        used_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_usage_user ON feature_usage(user_id, feature_code, used_at)",
]


class TrustStore:
    """
    Async SQLite store for the trust subsystem.

    The database lives at ``<root>/.trustgate/trustgate.db`` unless an explicit
    ``db_path`` is given.
    """

    def __init__(self, root: Optional[Path] = None, db_path: Optional[Path] = None):
        if db_path is None:
            if root is None:
                raise ValueError("TrustStore needs a root directory or a db_path")
            db_path = Path(root) / DEFAULT_DATA_DIR / TRUST_DB_FILENAME
        self.db_path = Path(db_path)
        self._lock = asyncio.Lock()
        self._connection: Optional[aiosqlite.Connection] = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create a shared connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(str(self.db_path))
            self._connection.row_factory = aiosqlite.Row
        return self._connection

    async def initialize(self) -> None:
        """Create schema if not exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with self._lock:
            conn = await self._get_connection()
            for statement in _SCHEMA:
                await conn.execute(statement)
            await conn.commit()
            logger.info(f"Initialized trust store at {self.db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def _fetchone(self, sql: str, params: tuple = ()) -> Optional[aiosqlite.Row]:
        conn = await self._get_connection()
        cursor = await conn.execute(sql, params)
        return await cursor.fetchone()

    async def _fetchall(self, sql: str, params: tuple = ()) -> List[aiosqlite.Row]:
        conn = await self._get_connection()
        cursor = await conn.execute(sql, params)
        return list(await cursor.fetchall())

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def add_user(self, user: User) -> User:
        async with self._lock:
            conn = await self._get_connection()
            await conn.execute(
                """
                INSERT INTO users (
                    id, full_name, trust_score, trust_level, events_attended,
                    events_hosted, communities_joined, services_provided,
                    score_version, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    user.id,
                    user.full_name,
                    user.trust_score,
                    user.trust_level,
                    user.events_attended,
                    user.events_hosted,
                    user.communities_joined,
                    user.services_provided,
                    user.score_version,
                    _ts(user.created_at),
                ),
            )
            await conn.commit()
        return user

    async def get_user(self, user_id: str) -> Optional[User]:
        row = await self._fetchone("SELECT * FROM users WHERE id = ?", (user_id,))
        return self._row_to_user(row) if row else None

    async def list_user_ids(self) -> List[str]:
        rows = await self._fetchall("SELECT id FROM users ORDER BY created_at")
        return [r["id"] for r in rows]

    async def increment_counter(self, user_id: str, counter: str, amount: int = 1) -> None:
        """Increment one of the behavioural counters on a user."""
        if counter not in USER_COUNTERS:
            raise ValueError(f"Unknown user counter: {counter}")
        async with self._lock:
            conn = await self._get_connection()
            cursor = await conn.execute(
                f"UPDATE users SET {counter} = {counter} + ? WHERE id = ?",
                (amount, user_id),
            )
            await conn.commit()
            if cursor.rowcount == 0:
                raise UserNotFoundError(user_id)

    async def set_score_if_version(
        self,
        user_id: str,
        expected_version: int,
        score: float,
        level: str,
        history: Optional[ScoreHistoryEntry] = None,
    ) -> bool:
        """
        Optimistic write: only applies if nobody changed the score since
        ``expected_version`` was read. History is committed with the score.
        """
        async with self._lock:
            conn = await self._get_connection()
            try:
                cursor = await conn.execute(
                    """
                    UPDATE users
                    SET trust_score = ?, trust_level = ?, score_version = score_version + 1
                    WHERE id = ? AND score_version = ?
                """,
                    (score, level, user_id, expected_version),
                )
                if cursor.rowcount == 0:
                    await conn.rollback()
                    return False
                if history is not None:
                    await self._insert_history(conn, history)
                await conn.commit()
                return True
            except Exception:
                await conn.rollback()
                raise

    async def mutate_score(
        self,
        user_id: str,
        compute: ScoreComputation,
        processed_log_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[ScoreChange]:
        """
        Atomic read-modify-write of a user's score.

        ``compute`` sees the current user row and returns the new score, level
        and optional history row. When ``processed_log_id`` is given the log is
        claimed in the same transaction; if it was already processed nothing is
        written and None is returned.
        """
        async with self._lock:
            conn = await self._get_connection()
            try:
                if processed_log_id is not None:
                    cursor = await conn.execute(
                        """
                        UPDATE accountability_logs SET is_processed = 1, processed_at = ?
                        WHERE id = ? AND is_processed = 0
                    """,
                        (_ts(now or utcnow()), processed_log_id),
                    )
                    if cursor.rowcount == 0:
                        await conn.rollback()
                        return None

                cursor = await conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
                row = await cursor.fetchone()
                if row is None:
                    await conn.rollback()
                    raise UserNotFoundError(user_id)
                user = self._row_to_user(row)

                outcome = compute(user)
                if outcome is None:
                    await conn.commit()
                    return ScoreChange(
                        user_id=user_id,
                        previous_score=user.trust_score,
                        new_score=user.trust_score,
                        level=user.trust_level,
                        recorded=False,
                    )

                new_score, new_level, history = outcome
                await conn.execute(
                    """
                    UPDATE users
                    SET trust_score = ?, trust_level = ?, score_version = score_version + 1
                    WHERE id = ?
                """,
                    (new_score, new_level, user_id),
                )
                if history is not None:
                    await self._insert_history(conn, history)
                await conn.commit()
                return ScoreChange(
                    user_id=user_id,
                    previous_score=user.trust_score,
                    new_score=new_score,
                    level=new_level,
                    recorded=history is not None,
                )
            except UserNotFoundError:
                raise
            except Exception:
                await conn.rollback()
                raise

    # ------------------------------------------------------------------
    # Vouches and trust moments
    # ------------------------------------------------------------------

    async def add_vouch(self, vouch: Vouch) -> Vouch:
        async with self._lock:
            conn = await self._get_connection()
            await conn.execute(
                """
                INSERT INTO vouches (id, voucher_id, vouchee_id, vouch_type, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """,
                (
                    vouch.id,
                    vouch.voucher_id,
                    vouch.vouchee_id,
                    vouch.vouch_type.value,
                    vouch.status.value,
                    _ts(vouch.created_at),
                ),
            )
            await conn.commit()
        return vouch

    async def update_vouch_status(self, vouch_id: str, status: VouchStatus) -> None:
        async with self._lock:
            conn = await self._get_connection()
            await conn.execute(
                "UPDATE vouches SET status = ? WHERE id = ?", (status.value, vouch_id)
            )
            await conn.commit()

    async def get_active_vouches_for_vouchee(self, vouchee_id: str) -> List[Vouch]:
        """Vouches that currently count (approved or active) for a vouchee."""
        placeholders = ",".join("?" for _ in COUNTING_VOUCH_STATUSES)
        rows = await self._fetchall(
            f"""
            SELECT * FROM vouches
            WHERE vouchee_id = ? AND status IN ({placeholders})
            ORDER BY created_at
        """,
            (vouchee_id, *[s.value for s in COUNTING_VOUCH_STATUSES]),
        )
        return [self._row_to_vouch(r) for r in rows]

    async def count_active_vouches_by_type(self, vouchee_id: str) -> Dict[VouchType, int]:
        counts = {t: 0 for t in VouchType}
        for vouch in await self.get_active_vouches_for_vouchee(vouchee_id):
            counts[vouch.vouch_type] += 1
        return counts

    async def count_vouches_given(self, voucher_id: str) -> int:
        placeholders = ",".join("?" for _ in COUNTING_VOUCH_STATUSES)
        row = await self._fetchone(
            f"SELECT COUNT(*) AS n FROM vouches WHERE voucher_id = ? AND status IN ({placeholders})",
            (voucher_id, *[s.value for s in COUNTING_VOUCH_STATUSES]),
        )
        return int(row["n"])

    async def add_trust_moment(self, moment: TrustMoment) -> TrustMoment:
        async with self._lock:
            conn = await self._get_connection()
            await conn.execute(
                """
                INSERT INTO trust_moments (id, giver_id, receiver_id, rating, is_public, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """,
                (
                    moment.id,
                    moment.giver_id,
                    moment.receiver_id,
                    moment.rating,
                    1 if moment.is_public else 0,
                    _ts(moment.created_at),
                ),
            )
            await conn.commit()
        return moment

    async def get_public_moment_stats(self, receiver_id: str) -> Tuple[int, float]:
        """(count, average rating) of public moments received."""
        row = await self._fetchone(
            """
            SELECT COUNT(*) AS n, AVG(rating) AS avg_rating FROM trust_moments
            WHERE receiver_id = ? AND is_public = 1
        """,
            (receiver_id,),
        )
        count = int(row["n"] or 0)
        return count, float(row["avg_rating"] or 0.0)

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    async def record_activity(
        self,
        user_id: str,
        activity_type: ActivityType,
        occurred_at: Optional[datetime] = None,
    ) -> None:
        async with self._lock:
            conn = await self._get_connection()
            await conn.execute(
                "INSERT INTO user_activity (user_id, activity_type, occurred_at) VALUES (?, ?, ?)",
                (user_id, activity_type.value, _ts(occurred_at or utcnow())),
            )
            await conn.commit()

    async def count_activity(self, user_id: str, activity_type: ActivityType) -> int:
        row = await self._fetchone(
            "SELECT COUNT(*) AS n FROM user_activity WHERE user_id = ? AND activity_type = ?",
            (user_id, activity_type.value),
        )
        return int(row["n"])

    def _last_activity_of(self, row: aiosqlite.Row) -> datetime:
        """Latest of any activity signal, falling back to account creation."""
        signals = [_dt(row["last_activity"]), _dt(row["last_moment_given"])]
        signals = [s for s in signals if s is not None]
        return max(signals) if signals else _dt(row["created_at"])

    async def get_last_activity(self, user_id: str) -> Optional[datetime]:
        row = await self._fetchone(
            """
            SELECT u.created_at,
                (SELECT MAX(occurred_at) FROM user_activity a WHERE a.user_id = u.id) AS last_activity,
                (SELECT MAX(created_at) FROM trust_moments m WHERE m.giver_id = u.id) AS last_moment_given
            FROM users u WHERE u.id = ?
        """,
            (user_id,),
        )
        return self._last_activity_of(row) if row else None

    async def get_users_with_last_activity(
        self, min_score_exclusive: float
    ) -> List[Tuple[User, datetime]]:
        """Users scoring above a floor, paired with their last activity time."""
        rows = await self._fetchall(
            """
            SELECT u.*,
                (SELECT MAX(occurred_at) FROM user_activity a WHERE a.user_id = u.id) AS last_activity,
                (SELECT MAX(created_at) FROM trust_moments m WHERE m.giver_id = u.id) AS last_moment_given
            FROM users u
            WHERE u.trust_score > ?
            ORDER BY u.created_at
        """,
            (min_score_exclusive,),
        )
        return [(self._row_to_user(r), self._last_activity_of(r)) for r in rows]

    # ------------------------------------------------------------------
    # Accountability logs
    # ------------------------------------------------------------------

    async def insert_accountability_log(self, log: AccountabilityLog) -> AccountabilityLog:
        async with self._lock:
            conn = await self._get_connection()
            await conn.execute(
                """
                INSERT INTO accountability_logs (
                    id, voucher_id, vouchee_id, vouch_id, impact_type, impact_value,
                    description, related_entity_type, related_entity_id, metadata,
                    is_processed, processed_at, occurred_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    log.id,
                    log.voucher_id,
                    log.vouchee_id,
                    log.vouch_id,
                    log.impact_type.value,
                    log.impact_value,
                    log.description,
                    log.related_entity_type,
                    log.related_entity_id,
                    json.dumps(log.metadata),
                    1 if log.is_processed else 0,
                    _ts(log.processed_at),
                    _ts(log.occurred_at),
                ),
            )
            await conn.commit()
        return log

    async def get_accountability_log(self, log_id: str) -> Optional[AccountabilityLog]:
        row = await self._fetchone("SELECT * FROM accountability_logs WHERE id = ?", (log_id,))
        return self._row_to_log(row) if row else None

    async def mark_log_processed(self, log_id: str, now: Optional[datetime] = None) -> bool:
        """Flip a log to processed. False if it already was."""
        async with self._lock:
            conn = await self._get_connection()
            cursor = await conn.execute(
                """
                UPDATE accountability_logs SET is_processed = 1, processed_at = ?
                WHERE id = ? AND is_processed = 0
            """,
                (_ts(now or utcnow()), log_id),
            )
            await conn.commit()
            return cursor.rowcount > 0

    async def get_unprocessed_logs(self, limit: Optional[int] = None) -> List[AccountabilityLog]:
        """Unprocessed logs, oldest first."""
        sql = "SELECT * FROM accountability_logs WHERE is_processed = 0 ORDER BY occurred_at ASC"
        params: tuple = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        rows = await self._fetchall(sql, params)
        return [self._row_to_log(r) for r in rows]

    async def get_logs_by_voucher(self, voucher_id: str) -> List[AccountabilityLog]:
        """All logs where the user is the voucher, newest first."""
        rows = await self._fetchall(
            "SELECT * FROM accountability_logs WHERE voucher_id = ? ORDER BY occurred_at DESC",
            (voucher_id,),
        )
        return [self._row_to_log(r) for r in rows]

    async def get_logs_by_vouchee(
        self,
        vouchee_id: str,
        impact_type: Optional[ImpactType] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[AccountabilityLog], int]:
        """A page of logs where the user is the vouchee, plus the total count."""
        where = "WHERE vouchee_id = ?"
        params: List[Any] = [vouchee_id]
        if impact_type is not None:
            where += " AND impact_type = ?"
            params.append(impact_type.value)
        count_row = await self._fetchone(
            f"SELECT COUNT(*) AS n FROM accountability_logs {where}", tuple(params)
        )
        rows = await self._fetchall(
            f"SELECT * FROM accountability_logs {where} ORDER BY occurred_at DESC LIMIT ? OFFSET ?",
            tuple(params) + (limit, offset),
        )
        return [self._row_to_log(r) for r in rows], int(count_row["n"])

    # ------------------------------------------------------------------
    # Score history
    # ------------------------------------------------------------------

    async def _insert_history(self, conn: aiosqlite.Connection, entry: ScoreHistoryEntry) -> None:
        await conn.execute(
            """
            INSERT INTO trust_score_history (
                id, user_id, previous_score, new_score, change, reason, category,
                related_entity_type, related_entity_id, metadata, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                entry.id,
                entry.user_id,
                entry.previous_score,
                entry.new_score,
                entry.change,
                entry.reason,
                entry.category.value,
                entry.related_entity_type,
                entry.related_entity_id,
                json.dumps(entry.metadata),
                _ts(entry.created_at),
            ),
        )

    async def get_score_history(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
        category: Optional[ScoreChangeCategory] = None,
    ) -> List[ScoreHistoryEntry]:
        """History rows for a user, newest first."""
        where = "WHERE user_id = ?"
        params: List[Any] = [user_id]
        if category is not None:
            where += " AND category = ?"
            params.append(category.value)
        rows = await self._fetchall(
            f"""
            SELECT * FROM trust_score_history {where}
            ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?
        """,
            tuple(params) + (limit, offset),
        )
        return [self._row_to_history(r) for r in rows]

    async def get_history_summary(self, user_id: str) -> Dict[str, Any]:
        """Aggregate gains/losses per category for a user."""
        rows = await self._fetchall(
            """
            SELECT category,
                COUNT(*) AS n,
                SUM(CASE WHEN change > 0 THEN change ELSE 0 END) AS gained,
                SUM(CASE WHEN change < 0 THEN change ELSE 0 END) AS lost
            FROM trust_score_history WHERE user_id = ?
            GROUP BY category
        """,
            (user_id,),
        )
        return {
            r["category"]: {
                "count": int(r["n"]),
                "gained": float(r["gained"] or 0.0),
                "lost": float(r["lost"] or 0.0),
            }
            for r in rows
        }

    async def get_recent_decays(self, since: datetime) -> List[Tuple[str, datetime]]:
        """(user_id, latest decay time) for users decayed since ``since``."""
        rows = await self._fetchall(
            """
            SELECT user_id, MAX(created_at) AS last_decay FROM trust_score_history
            WHERE category = ? AND created_at >= ?
            GROUP BY user_id
        """,
            (ScoreChangeCategory.DECAY.value, _ts(since)),
        )
        return [(r["user_id"], _dt(r["last_decay"])) for r in rows]

    async def has_history_since(
        self,
        user_id: str,
        category: ScoreChangeCategory,
        reason: str,
        since: datetime,
    ) -> bool:
        row = await self._fetchone(
            """
            SELECT 1 FROM trust_score_history
            WHERE user_id = ? AND category = ? AND reason = ? AND created_at >= ?
            LIMIT 1
        """,
            (user_id, category.value, reason, _ts(since)),
        )
        return row is not None

    # ------------------------------------------------------------------
    # Platform configuration
    # ------------------------------------------------------------------

    async def get_config(self, category: str, key: str) -> Optional[PlatformConfig]:
        row = await self._fetchone(
            "SELECT * FROM platform_config WHERE category = ? AND key = ?", (category, key)
        )
        return self._row_to_config(row) if row else None

    async def get_configs_by_category(self, category: str) -> List[PlatformConfig]:
        rows = await self._fetchall(
            "SELECT * FROM platform_config WHERE category = ? ORDER BY key", (category,)
        )
        return [self._row_to_config(r) for r in rows]

    async def list_configs(self) -> List[PlatformConfig]:
        rows = await self._fetchall("SELECT * FROM platform_config ORDER BY category, key")
        return [self._row_to_config(r) for r in rows]

    async def insert_config(self, config: PlatformConfig) -> bool:
        """Insert a config row unless (category, key) already exists."""
        async with self._lock:
            conn = await self._get_connection()
            cursor = await conn.execute(
                """
                INSERT OR IGNORE INTO platform_config (
                    id, category, key, value, version, description, updated_by,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    config.id,
                    config.category,
                    config.key,
                    json.dumps(config.value),
                    config.version,
                    config.description,
                    config.updated_by,
                    _ts(config.created_at),
                    _ts(config.updated_at),
                ),
            )
            await conn.commit()
            return cursor.rowcount > 0

    async def update_config(
        self,
        category: str,
        key: str,
        new_value: Dict[str, Any],
        changed_by: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[PlatformConfig]:
        """
        Replace a config document, bump its version and append a history row
        in one transaction. Returns None when no row exists.
        """
        now = now or utcnow()
        async with self._lock:
            conn = await self._get_connection()
            try:
                cursor = await conn.execute(
                    "SELECT * FROM platform_config WHERE category = ? AND key = ?",
                    (category, key),
                )
                row = await cursor.fetchone()
                if row is None:
                    return None
                existing = self._row_to_config(row)

                await conn.execute(
                    """
                    UPDATE platform_config
                    SET value = ?, version = version + 1, updated_by = ?, updated_at = ?
                    WHERE id = ?
                """,
                    (json.dumps(new_value), changed_by, _ts(now), existing.id),
                )
                await conn.execute(
                    """
                    INSERT INTO config_history (
                        id, config_id, old_value, new_value, changed_by, reason, changed_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        new_id(),
                        existing.id,
                        json.dumps(existing.value),
                        json.dumps(new_value),
                        changed_by,
                        reason,
                        _ts(now),
                    ),
                )
                await conn.commit()
            except Exception:
                await conn.rollback()
                raise

        existing.value = new_value
        existing.version += 1
        existing.updated_by = changed_by
        existing.updated_at = now
        return existing

    async def get_config_history(self, config_id: str, limit: int = 10) -> List[ConfigHistoryEntry]:
        rows = await self._fetchall(
            """
            SELECT * FROM config_history WHERE config_id = ?
            ORDER BY changed_at DESC, rowid DESC LIMIT ?
        """,
            (config_id, limit),
        )
        return [
            ConfigHistoryEntry(
                id=r["id"],
                config_id=r["config_id"],
                old_value=json.loads(r["old_value"]) if r["old_value"] else {},
                new_value=json.loads(r["new_value"]) if r["new_value"] else {},
                changed_by=r["changed_by"],
                reason=r["reason"],
                changed_at=_dt(r["changed_at"]),
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Subscriptions and feature usage
    # ------------------------------------------------------------------

    async def upsert_subscription(self, subscription: Subscription) -> Subscription:
        async with self._lock:
            conn = await self._get_connection()
            await conn.execute(
                """
                INSERT INTO subscriptions (
                    id, user_id, tier, status, current_period_start,
                    current_period_end, features, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    tier = excluded.tier,
                    status = excluded.status,
                    current_period_start = excluded.current_period_start,
                    current_period_end = excluded.current_period_end,
                    features = excluded.features
            """,
                (
                    subscription.id,
                    subscription.user_id,
                    subscription.tier.name,
                    subscription.status.value,
                    _ts(subscription.current_period_start),
                    _ts(subscription.current_period_end),
                    json.dumps(subscription.features),
                    _ts(utcnow()),
                ),
            )
            await conn.commit()
        return subscription

    async def get_subscriptions(self, user_id: str) -> List[Subscription]:
        rows = await self._fetchall(
            "SELECT * FROM subscriptions WHERE user_id = ? ORDER BY created_at DESC",
            (user_id,),
        )
        return [self._row_to_subscription(r) for r in rows]

    async def record_feature_usage(
        self,
        user_id: str,
        feature_code: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        used_at: Optional[datetime] = None,
    ) -> None:
        async with self._lock:
            conn = await self._get_connection()
            await conn.execute(
                """
                INSERT INTO feature_usage (user_id, feature_code, entity_type, entity_id, used_at)
                VALUES (?, ?, ?, ?, ?)
            """,
                (user_id, feature_code, entity_type, entity_id, _ts(used_at or utcnow())),
            )
            await conn.commit()

    async def count_feature_usage(
        self, user_id: str, feature_code: str, start: datetime, end: datetime
    ) -> int:
        """Uses in the half-open window [start, end)."""
        row = await self._fetchone(
            """
            SELECT COUNT(*) AS n FROM feature_usage
            WHERE user_id = ? AND feature_code = ? AND used_at >= ? AND used_at < ?
        """,
            (user_id, feature_code, _ts(start), _ts(end)),
        )
        return int(row["n"])

    async def count_moments_given(self, user_id: str) -> int:
        row = await self._fetchone(
            "SELECT COUNT(*) AS n FROM trust_moments WHERE giver_id = ?", (user_id,)
        )
        return int(row["n"])

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    def _row_to_user(self, row: aiosqlite.Row) -> User:
        return User(
            id=row["id"],
            full_name=row["full_name"] or "",
            trust_score=float(row["trust_score"]),
            trust_level=row["trust_level"],
            events_attended=row["events_attended"] or 0,
            events_hosted=row["events_hosted"] or 0,
            communities_joined=row["communities_joined"] or 0,
            services_provided=row["services_provided"] or 0,
            score_version=row["score_version"] or 0,
            created_at=_dt(row["created_at"]),
        )

    def _row_to_vouch(self, row: aiosqlite.Row) -> Vouch:
        return Vouch(
            id=row["id"],
            voucher_id=row["voucher_id"],
            vouchee_id=row["vouchee_id"],
            vouch_type=VouchType(row["vouch_type"]),
            status=VouchStatus(row["status"]),
            created_at=_dt(row["created_at"]),
        )

    def _row_to_log(self, row: aiosqlite.Row) -> AccountabilityLog:
        return AccountabilityLog(
            id=row["id"],
            voucher_id=row["voucher_id"],
            vouchee_id=row["vouchee_id"],
            vouch_id=row["vouch_id"],
            impact_type=ImpactType(row["impact_type"]),
            impact_value=float(row["impact_value"]),
            description=row["description"] or "",
            related_entity_type=row["related_entity_type"],
            related_entity_id=row["related_entity_id"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            is_processed=bool(row["is_processed"]),
            processed_at=_dt(row["processed_at"]),
            occurred_at=_dt(row["occurred_at"]),
        )

    def _row_to_history(self, row: aiosqlite.Row) -> ScoreHistoryEntry:
        return ScoreHistoryEntry(
            id=row["id"],
            user_id=row["user_id"],
            previous_score=float(row["previous_score"]),
            new_score=float(row["new_score"]),
            change=float(row["change"]),
            reason=row["reason"] or "",
            category=ScoreChangeCategory(row["category"]),
            related_entity_type=row["related_entity_type"],
            related_entity_id=row["related_entity_id"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            created_at=_dt(row["created_at"]),
        )

    def _row_to_config(self, row: aiosqlite.Row) -> PlatformConfig:
        return PlatformConfig(
            id=row["id"],
            category=row["category"],
            key=row["key"],
            value=json.loads(row["value"]),
            version=row["version"],
            description=row["description"],
            updated_by=row["updated_by"],
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
        )

    def _row_to_subscription(self, row: aiosqlite.Row) -> Subscription:
        return Subscription(
            id=row["id"],
            user_id=row["user_id"],
            tier=SubscriptionTier.parse(row["tier"]),
            status=SubscriptionStatus(row["status"]),
            current_period_start=_dt(row["current_period_start"]),
            current_period_end=_dt(row["current_period_end"]),
            features=json.loads(row["features"]) if row["features"] else {},
        )
