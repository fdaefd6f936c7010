"""SQLite database connection and schema management."""

import os
import sqlite3
from pathlib import Path

import structlog

logger = structlog.get_logger()

_DB_FILE_PERMISSIONS = 0o600

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS draft_sessions (
    id TEXT PRIMARY KEY,
    league_id TEXT NOT NULL,
    season_id TEXT NOT NULL,
    status TEXT NOT NULL,
    version INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    archived_at TEXT,
    data TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_draft_sessions_league
    ON draft_sessions (league_id, season_id);

CREATE INDEX IF NOT EXISTS idx_draft_sessions_status
    ON draft_sessions (status);

CREATE TABLE IF NOT EXISTS draft_picks (
    session_id TEXT NOT NULL REFERENCES draft_sessions (id),
    overall_pick INTEGER NOT NULL,
    player_id TEXT,
    picked_at TEXT NOT NULL,
    data TEXT NOT NULL,
    PRIMARY KEY (session_id, overall_pick)
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_draft_picks_player
    ON draft_picks (session_id, player_id) WHERE player_id IS NOT NULL;

CREATE TABLE IF NOT EXISTS draft_queues (
    session_id TEXT NOT NULL REFERENCES draft_sessions (id),
    team_id TEXT NOT NULL,
    data TEXT NOT NULL,
    PRIMARY KEY (session_id, team_id)
);

CREATE TABLE IF NOT EXISTS players (
    id TEXT PRIMARY KEY,
    league_id TEXT NOT NULL,
    draft_value REAL NOT NULL DEFAULT 0,
    data TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_players_league
    ON players (league_id);
"""

_MEMORY_PATH = ":memory:"


class Database:
    """SQLite database wrapper with schema management."""

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the active connection or raise if disconnected."""
        if self._conn is None:
            raise RuntimeError("Database is not connected")
        return self._conn

    @property
    def is_memory(self) -> bool:
        return self._path == _MEMORY_PATH

    def connect(self) -> None:
        """Open the database, apply pragmas, create schema, and harden file permissions."""
        if not self.is_memory:
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        if not self.is_memory:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.executescript(_SCHEMA_SQL)

        self._harden_permissions()
        logger.info("database ready", path=self._path)

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _harden_permissions(self) -> None:
        """Set restrictive file permissions on POSIX systems (best effort).

        Covers the WAL/SHM sibling files too, since they hold database content.
        """
        if os.name != "posix" or self.is_memory:  # pragma: no cover
            return
        for suffix in ("", "-wal", "-shm"):
            p = Path(self._path + suffix)
            if p.exists():
                try:
                    p.chmod(_DB_FILE_PERMISSIONS)
                except OSError:
                    logger.warning("could not set file permissions", permissions=oct(_DB_FILE_PERMISSIONS), path=str(p))
