import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from ...domain.errors import InvalidArgument
from ...domain.models import Profile
from ...domain.models.subscription import TIER_FREE, TIER_PREMIUM
from ...domain.ports.billing import ProfileStore

_TIERS = (TIER_FREE, TIER_PREMIUM)


class SQLiteProfileStore(ProfileStore):
    """SQLite-backed profile store used for local development."""

    def __init__(self, path: Union[Path, str]) -> None:
        if str(path) != ":memory:":
            path = Path(path)
            path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._initialize()

    def _initialize(self) -> None:
        with self._lock, self._conn:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS profiles (
                    user_id TEXT PRIMARY KEY,
                    email TEXT,
                    full_name TEXT,
                    tier TEXT NOT NULL DEFAULT 'free',
                    plan TEXT,
                    updated_at TEXT NOT NULL
                );
                """
            )

    def close(self) -> None:
        self._conn.close()

    def get_profile(self, user_id: str) -> Optional[Profile]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM profiles WHERE user_id = ?", (user_id,))
            row = cur.fetchone()
        return self._row_to_profile(row) if row else None

    def upsert_profile(
        self,
        user_id: str,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
        tier: str = TIER_FREE,
    ) -> Profile:
        """Insert a profile, or refresh the contact details of an existing one."""
        self._validate_tier(tier)
        now = _utcnow()
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO profiles (user_id, email, full_name, tier, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    email = COALESCE(excluded.email, profiles.email),
                    full_name = COALESCE(excluded.full_name, profiles.full_name),
                    updated_at = excluded.updated_at
                """,
                (user_id, email, full_name, tier, now),
            )
            row = self._conn.execute("SELECT * FROM profiles WHERE user_id = ?", (user_id,)).fetchone()
        return self._row_to_profile(row)

    def update_tier(self, user_id: str, tier: str, plan: Optional[str] = None) -> bool:
        """Set the user's tier (and plan when given); False if no profile row exists."""
        self._validate_tier(tier)
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                UPDATE profiles
                SET tier = ?, plan = COALESCE(?, plan), updated_at = ?
                WHERE user_id = ?
                """,
                (tier, plan, _utcnow(), user_id),
            )
        return cur.rowcount > 0

    @staticmethod
    def _validate_tier(tier: str) -> None:
        if tier not in _TIERS:
            raise InvalidArgument(f'Invalid tier "{tier}". Expected one of: {", ".join(_TIERS)}')

    @staticmethod
    def _row_to_profile(row: sqlite3.Row) -> Profile:
        return Profile(
            user_id=row["user_id"],
            email=row["email"],
            full_name=row["full_name"],
            tier=row["tier"],
            plan=row["plan"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()
