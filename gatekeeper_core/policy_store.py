import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import List, Optional

from .config import RuntimeConfig
from .policy import VerificationPolicy


class PolicyStore:
    """
    Keyed record store for per-guild verification policies.

    One JSON row per guild id. A guild without a row has verification disabled.
    """

    def __init__(self, config: RuntimeConfig):
        self.config = config
        self.config.ensure_paths()
        self.path: Path = config.policy_db_path
        self.logger = logging.getLogger("gatekeeper.policy_store")
        self._init_db()

    def _open_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, timeout=0.5)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        conn = self._open_conn()
        try:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS verification_policies (
                    guild_id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    def get(self, guild_id: int | str) -> Optional[VerificationPolicy]:
        conn = self._open_conn()
        try:
            row = conn.execute(
                "SELECT data FROM verification_policies WHERE guild_id = ?", (str(guild_id),)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        try:
            return VerificationPolicy.from_record(json.loads(row["data"]))
        except (KeyError, TypeError, ValueError) as exc:
            # A malformed record disables verification for that guild only.
            self.logger.warning("Unreadable policy for guild %s: %s", guild_id, exc)
            return None

    def put(self, guild_id: int | str, policy: VerificationPolicy) -> None:
        payload = json.dumps(policy.to_record())
        conn = self._open_conn()
        try:
            conn.execute(
                """
                INSERT INTO verification_policies (guild_id, data, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(guild_id) DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at
                """,
                (str(guild_id), payload, time.time()),
            )
            conn.commit()
        finally:
            conn.close()

    def guild_ids(self) -> List[str]:
        conn = self._open_conn()
        try:
            rows = conn.execute("SELECT guild_id FROM verification_policies ORDER BY guild_id").fetchall()
        finally:
            conn.close()
        return [row["guild_id"] for row in rows]

    def load_seed(self, path: Path) -> int:
        """
        Import a JSON file of ``{guild_id: record}`` pairs. Records with a
        ``verificationChannel`` key are treated as legacy settings rows.
        """
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        loaded = 0
        for guild_id, record in data.items():
            try:
                if "verificationChannel" in record:
                    policy = VerificationPolicy.from_legacy_row(record)
                else:
                    policy = VerificationPolicy.from_record(record)
            except (KeyError, TypeError, ValueError) as exc:
                self.logger.warning("Skipping seed policy for guild %s: %s", guild_id, exc)
                continue
            self.put(guild_id, policy)
            loaded += 1
        self.logger.info("Loaded %d seed policies from %s", loaded, path)
        return loaded
