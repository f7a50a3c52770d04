"""
SQLite Storage Layer.
Persists the recent-server history, the current server and the operator's
runtime settings. Read at startup, written on change.
"""

from __future__ import annotations
import sqlite3
from datetime import datetime
from typing import List, Optional, Tuple
from game.models import RuntimeSettings, ServerAddress
import logging

logger = logging.getLogger(__name__)

MAX_HISTORY = 10


class Database:
    """SQLite database manager with typed accessors."""

    def __init__(self, db_path: str, max_history: int = MAX_HISTORY):
        self.db_path = db_path
        self.max_history = max_history
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self):
        """Initialize database connection and create tables."""
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        if self.db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()
        logger.info(f"[DB] Connected to {self.db_path}")

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def conn(self) -> sqlite3.Connection:
        assert self._conn is not None, "Database not connected"
        return self._conn

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS server_history (
                host TEXT NOT NULL,
                port INTEGER NOT NULL,
                timestamp TEXT NOT NULL,
                PRIMARY KEY (host, port)
            );

            CREATE TABLE IF NOT EXISTS bot_state (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT
            );
        """)
        self.conn.commit()

    # ==================== Server History ====================

    def add_server(self, host: str, port: int) -> List[ServerAddress]:
        """Push to the front of the history, dropping duplicates and overflow."""
        self.conn.execute(
            "INSERT OR REPLACE INTO server_history (host, port, timestamp) VALUES (?, ?, ?)",
            (host, port, datetime.utcnow().isoformat()),
        )
        self.conn.execute(
            """DELETE FROM server_history WHERE rowid NOT IN (
                   SELECT rowid FROM server_history ORDER BY timestamp DESC, rowid DESC LIMIT ?
               )""",
            (self.max_history,),
        )
        self.conn.commit()
        return self.get_server_history()

    def get_server_history(self) -> List[ServerAddress]:
        rows = self.conn.execute(
            "SELECT * FROM server_history ORDER BY timestamp DESC, rowid DESC"
        ).fetchall()
        return [
            ServerAddress(
                host=r["host"],
                port=r["port"],
                timestamp=datetime.fromisoformat(r["timestamp"]),
            )
            for r in rows
        ]

    def save_current_server(self, host: str, port: int):
        self.set_state("server_host", host)
        self.set_state("server_port", str(port))

    def load_current_server(self) -> Optional[Tuple[str, int]]:
        host = self.get_state("server_host")
        port = self.get_state("server_port")
        if not host or not port:
            return None
        return host, int(port)

    # ==================== Runtime Settings ====================

    def save_settings(self, settings: RuntimeSettings):
        self.set_state("auto_reconnect", "true" if settings.auto_reconnect else "false")
        self.set_state("anti_afk", "true" if settings.anti_afk else "false")
        self.set_state("chat_log", "true" if settings.chat_log else "false")

    def load_settings(self, defaults: RuntimeSettings) -> RuntimeSettings:
        """Stored settings, falling back to defaults for anything unset."""
        def flag(key: str, default: bool) -> bool:
            value = self.get_state(key)
            return default if value is None else value == "true"

        return RuntimeSettings(
            auto_reconnect=flag("auto_reconnect", defaults.auto_reconnect),
            anti_afk=flag("anti_afk", defaults.anti_afk),
            chat_log=flag("chat_log", defaults.chat_log),
        )

    # ==================== Bot State ====================

    def set_state(self, key: str, value: str):
        self.conn.execute(
            "INSERT OR REPLACE INTO bot_state (key, value, updated_at) VALUES (?, ?, ?)",
            (key, value, datetime.utcnow().isoformat()),
        )
        self.conn.commit()

    def get_state(self, key: str) -> Optional[str]:
        row = self.conn.execute("SELECT value FROM bot_state WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None
