"""SQLite-backed draft repository and player directory."""

from __future__ import annotations

import asyncio
import sqlite3
from typing import TYPE_CHECKING, TypeVar

import structlog

from draft.logic.exceptions import StaleSessionError
from draft.logic.types import DraftPick, DraftQueue, DraftSession, PlayerRecord
from draft.store.repository import DraftRepository, PlayerDirectory
from draft.store.retry import DEFAULT_ATTEMPTS, with_storage_retry

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from draft.logic.enums import DraftStatus
    from draft.store.connection import Database

logger = structlog.get_logger()

T = TypeVar("T")


class SqliteDraftRepository(DraftRepository):
    """SQLite implementation of DraftRepository.

    Stores full session/pick/queue snapshots as JSON with indexed columns for
    queries. Session writes are compare-and-swap on the version column; writes
    are serialized by an asyncio.Lock since they share one connection.
    """

    def __init__(self, db: Database, *, retry_attempts: int = DEFAULT_ATTEMPTS) -> None:
        self._db = db
        self._lock = asyncio.Lock()
        self._retry_attempts = retry_attempts

    async def _run(self, operation: Callable[[], T], what: str) -> T:
        return await with_storage_retry(operation, what=what, attempts=self._retry_attempts)

    async def create_session(self, session: DraftSession) -> None:
        def insert() -> None:
            conn = self._db.connection
            try:
                conn.execute(
                    "INSERT INTO draft_sessions "
                    "(id, league_id, season_id, status, version, created_at, archived_at, data) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        session.id,
                        session.league_id,
                        session.season_id,
                        session.status.value,
                        session.version,
                        session.created_at.isoformat(),
                        session.archived_at.isoformat() if session.archived_at else None,
                        session.model_dump_json(),
                    ),
                )
                conn.commit()
            except Exception:
                conn.rollback()
                raise

        async with self._lock:
            await self._run(insert, "create_session")

    async def get_session(self, session_id: str) -> DraftSession | None:
        def select() -> tuple[str] | None:
            return self._db.connection.execute(
                "SELECT data FROM draft_sessions WHERE id = ?",
                (session_id,),
            ).fetchone()

        row = await self._run(select, "get_session")
        if row is None:
            return None
        return DraftSession.model_validate_json(row[0])

    async def list_sessions(
        self,
        *,
        league_id: str | None = None,
        season_id: str | None = None,
        status: DraftStatus | None = None,
        include_archived: bool = False,
        limit: int | None = 50,
    ) -> list[DraftSession]:
        clauses: list[str] = []
        params: list[object] = []
        if league_id is not None:
            clauses.append("league_id = ?")
            params.append(league_id)
        if season_id is not None:
            clauses.append("season_id = ?")
            params.append(season_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if not include_archived:
            clauses.append("archived_at IS NULL")
        sql = "SELECT data FROM draft_sessions"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        def select() -> list[tuple[str]]:
            return self._db.connection.execute(sql, params).fetchall()

        rows = await self._run(select, "list_sessions")
        return [DraftSession.model_validate_json(row[0]) for row in rows]

    def _write_session(self, conn: sqlite3.Connection, session: DraftSession, expected_version: int) -> None:
        cursor = conn.execute(
            "UPDATE draft_sessions SET status = ?, version = ?, archived_at = ?, data = ? WHERE id = ? AND version = ?",
            (
                session.status.value,
                session.version,
                session.archived_at.isoformat() if session.archived_at else None,
                session.model_dump_json(),
                session.id,
                expected_version,
            ),
        )
        if cursor.rowcount == 0:
            raise StaleSessionError(session.id, expected_version)

    @staticmethod
    def _write_queue(conn: sqlite3.Connection, queue: DraftQueue) -> None:
        conn.execute(
            "INSERT INTO draft_queues (session_id, team_id, data) VALUES (?, ?, ?) "
            "ON CONFLICT (session_id, team_id) DO UPDATE SET data = excluded.data",
            (queue.session_id, queue.team_id, queue.model_dump_json()),
        )

    async def update_session(self, session: DraftSession, *, expected_version: int) -> None:
        def update() -> None:
            conn = self._db.connection
            try:
                self._write_session(conn, session, expected_version)
                conn.commit()
            except Exception:
                conn.rollback()
                raise

        async with self._lock:
            await self._run(update, "update_session")

    async def commit_pick(
        self,
        session: DraftSession,
        pick: DraftPick,
        *,
        expected_version: int,
        queue: DraftQueue | None = None,
    ) -> None:
        def commit() -> None:
            conn = self._db.connection
            try:
                self._write_session(conn, session, expected_version)
                conn.execute(
                    "INSERT INTO draft_picks (session_id, overall_pick, player_id, picked_at, data) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        pick.session_id,
                        pick.overall_pick,
                        pick.player_id,
                        pick.picked_at.isoformat(),
                        pick.model_dump_json(),
                    ),
                )
                if queue is not None:
                    self._write_queue(conn, queue)
                conn.commit()
            except sqlite3.IntegrityError as e:
                # slot or player already taken by a concurrent writer
                conn.rollback()
                raise StaleSessionError(session.id, expected_version) from e
            except Exception:
                conn.rollback()
                raise

        async with self._lock:
            await self._run(commit, "commit_pick")

    async def list_picks(self, session_id: str) -> list[DraftPick]:
        def select() -> list[tuple[str]]:
            return self._db.connection.execute(
                "SELECT data FROM draft_picks WHERE session_id = ? ORDER BY overall_pick",
                (session_id,),
            ).fetchall()

        rows = await self._run(select, "list_picks")
        return [DraftPick.model_validate_json(row[0]) for row in rows]

    async def get_session_with_picks(self, session_id: str) -> tuple[DraftSession, list[DraftPick]] | None:
        def select() -> tuple[tuple[str] | None, list[tuple[str]]]:
            conn = self._db.connection
            # both SELECTs run inside one read transaction, so WAL serves them from the same snapshot
            conn.execute("BEGIN")
            try:
                session_row = conn.execute("SELECT data FROM draft_sessions WHERE id = ?", (session_id,)).fetchone()
                pick_rows = conn.execute(
                    "SELECT data FROM draft_picks WHERE session_id = ? ORDER BY overall_pick",
                    (session_id,),
                ).fetchall()
            finally:
                conn.commit()
            return session_row, pick_rows

        session_row, pick_rows = await self._run(select, "get_session_with_picks")
        if session_row is None:
            return None
        session = DraftSession.model_validate_json(session_row[0])
        return session, [DraftPick.model_validate_json(row[0]) for row in pick_rows]

    async def get_picked_player_ids(self, session_id: str) -> set[str]:
        def select() -> list[tuple[str]]:
            return self._db.connection.execute(
                "SELECT player_id FROM draft_picks WHERE session_id = ? AND player_id IS NOT NULL",
                (session_id,),
            ).fetchall()

        rows = await self._run(select, "get_picked_player_ids")
        return {row[0] for row in rows}

    async def get_queue(self, session_id: str, team_id: str) -> DraftQueue | None:
        def select() -> tuple[str] | None:
            return self._db.connection.execute(
                "SELECT data FROM draft_queues WHERE session_id = ? AND team_id = ?",
                (session_id, team_id),
            ).fetchone()

        row = await self._run(select, "get_queue")
        if row is None:
            return None
        return DraftQueue.model_validate_json(row[0])

    async def save_queue(self, queue: DraftQueue) -> None:
        def upsert() -> None:
            conn = self._db.connection
            try:
                self._write_queue(conn, queue)
                conn.commit()
            except Exception:
                conn.rollback()
                raise

        async with self._lock:
            await self._run(upsert, "save_queue")


class SqlitePlayerDirectory(PlayerDirectory):
    """Player directory backed by the local players table."""

    def __init__(self, db: Database, *, retry_attempts: int = DEFAULT_ATTEMPTS) -> None:
        self._db = db
        self._lock = asyncio.Lock()
        self._retry_attempts = retry_attempts

    async def get_player(self, player_id: str) -> PlayerRecord | None:
        def select() -> tuple[str] | None:
            return self._db.connection.execute("SELECT data FROM players WHERE id = ?", (player_id,)).fetchone()

        row = await with_storage_retry(select, what="get_player", attempts=self._retry_attempts)
        if row is None:
            return None
        return PlayerRecord.model_validate_json(row[0])

    async def list_players(self, league_id: str) -> list[PlayerRecord]:
        def select() -> list[tuple[str]]:
            return self._db.connection.execute(
                "SELECT data FROM players WHERE league_id = ? ORDER BY draft_value DESC, id",
                (league_id,),
            ).fetchall()

        rows = await with_storage_retry(select, what="list_players", attempts=self._retry_attempts)
        return [PlayerRecord.model_validate_json(row[0]) for row in rows]

    async def upsert_players(self, players: Sequence[PlayerRecord]) -> None:
        def upsert() -> None:
            conn = self._db.connection
            try:
                conn.executemany(
                    "INSERT INTO players (id, league_id, draft_value, data) VALUES (?, ?, ?, ?) "
                    "ON CONFLICT (id) DO UPDATE SET "
                    "league_id = excluded.league_id, draft_value = excluded.draft_value, data = excluded.data",
                    [(p.id, p.league_id, p.draft_value, p.model_dump_json()) for p in players],
                )
                conn.commit()
            except Exception:
                conn.rollback()
                raise

        async with self._lock:
            await with_storage_retry(upsert, what="upsert_players", attempts=self._retry_attempts)
        logger.info("player directory updated", count=len(players))
