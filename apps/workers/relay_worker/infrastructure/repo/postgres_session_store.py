"""
PostgresSessionStore (asyncpg)
- Async implementation that satisfies domain/ports/session_store.SessionStore
- Uses asyncpg.Pool with `async with pool.acquire()` pattern.

Schema:
  relay_sessions(
      user_id          TEXT PRIMARY KEY,
      payload          JSONB  NOT NULL,   -- full Session record (camelCase)
      created_at       BIGINT NOT NULL,   -- epoch ms
      last_activity_at BIGINT NOT NULL
  );
"""
from __future__ import annotations

from logging import getLogger
from typing import Dict

import asyncpg
from pydantic import ValidationError

from relay_worker.domain.entities import Session
from relay_worker.domain.ports.session_store import SessionStore

logger = getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS relay_sessions (
    user_id          TEXT PRIMARY KEY,
    payload          JSONB  NOT NULL,
    created_at       BIGINT NOT NULL,
    last_activity_at BIGINT NOT NULL
);
"""


class PostgresSessionStore(SessionStore):
    """
    Async repository for session records, backed by Postgres (asyncpg).
    One row per user_id; saves are upserts so the last write wins.
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def ensure_schema(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)

    # --- Reading ---

    async def load_all(self) -> Dict[str, Session]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT user_id, payload::text AS payload
                FROM relay_sessions
                ORDER BY user_id
                """
            )

        sessions: Dict[str, Session] = {}
        for r in rows:
            try:
                session = Session.model_validate_json(str(r["payload"]))
            except ValidationError as e:
                logger.warning("⚠️ Skipping unreadable session row user_id=%s: %s", r["user_id"], e)
                continue
            sessions[session.user_id] = session

        logger.info("📂 Loaded %d session(s) from postgres", len(sessions))
        return sessions

    # --- Writing ---

    async def save(self, session: Session) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO relay_sessions (user_id, payload, created_at, last_activity_at)
                VALUES ($1, $2::jsonb, $3, $4)
                ON CONFLICT (user_id)
                DO UPDATE SET
                    payload          = EXCLUDED.payload,
                    created_at       = EXCLUDED.created_at,
                    last_activity_at = EXCLUDED.last_activity_at
                """,
                session.user_id,
                session.to_json(),
                session.created_at,
                session.last_activity_at,
            )

    async def delete(self, user_id: str) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute("DELETE FROM relay_sessions WHERE user_id = $1", user_id)

    async def close(self) -> None:
        await self.pool.close()
