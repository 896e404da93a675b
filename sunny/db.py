"""Optional Postgres audit store for tool executions and agent runs."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import certifi
import psycopg2
from psycopg2.extensions import connection as PsycopgConnection
from psycopg2.extras import RealDictCursor

logger = logging.getLogger(__name__)

HOSTED_SSL_MARKERS = ("supabase.co", "supabase.com", "neon.tech")


@dataclass
class ToolExecutionRecord:
    tool_name: str
    success: bool
    duration_ms: float
    error_message: Optional[str] = None
    error_type: Optional[str] = None
    user_id: Optional[int] = None
    guild_id: Optional[int] = None
    run_id: Optional[str] = None


@dataclass
class AgentRunRecord:
    run_id: str
    provider: str
    model: str
    category: str
    complexity_score: int
    stop_reason: str
    iterations: int
    elapsed_ms: float
    guild_id: Optional[int] = None
    user_id: Optional[int] = None


class Database:
    """psycopg2 wrapper whose queries run in a worker thread.

    Every public coroutine is a no-op (or returns an empty result) when no
    database URL is configured or the connection could not be opened.
    """

    def __init__(self, database_url: Optional[str]):
        self._url = database_url
        self._conn: Optional[PsycopgConnection] = None
        self._lock = asyncio.Lock()

    @property
    def is_enabled(self) -> bool:
        return bool(self._url)

    @property
    def is_connected(self) -> bool:
        return self._conn is not None and not self._conn.closed

    async def connect(self) -> None:
        if not self._url:
            logger.info("Database URL not configured; audit logging disabled.")
            return
        async with self._lock:
            if self.is_connected:
                return
            try:
                ssl_args: Dict[str, str] = {}
                if any(marker in self._url for marker in HOSTED_SSL_MARKERS):
                    ssl_args = {"sslmode": "verify-full", "sslrootcert": certifi.where()}
                self._conn = await asyncio.to_thread(
                    lambda: psycopg2.connect(dsn=self._url, **ssl_args)
                )
                await asyncio.to_thread(self._create_schema, self._conn)
                logger.info("Connected to audit database")
            except Exception:
                logger.exception("Failed to initialise database connection; audit logging disabled.")
                if self._conn is not None and not self._conn.closed:
                    self._conn.close()
                self._conn = None

    async def close(self) -> None:
        async with self._lock:
            if self.is_connected:
                await asyncio.to_thread(self._conn.close)
            self._conn = None

    async def _ensure_connection(self) -> Optional[PsycopgConnection]:
        if not self._url:
            return None
        if not self.is_connected:
            await self.connect()
        return self._conn

    def _create_schema(self, conn: PsycopgConnection) -> None:
        with conn, conn.cursor() as cur:
            cur.execute(
                """
                create table if not exists tool_executions (
                    id bigserial primary key,
                    created_at timestamptz not null default now(),
                    tool_name text not null,
                    success boolean not null,
                    error_message text,
                    error_type text,
                    duration_ms double precision not null,
                    user_id bigint,
                    guild_id bigint,
                    run_id text
                );
                """
            )
            cur.execute(
                """
                create index if not exists idx_tool_executions_guild_created
                on tool_executions(guild_id, created_at desc);
                """
            )
            cur.execute(
                """
                create table if not exists agent_runs (
                    run_id text primary key,
                    created_at timestamptz not null default now(),
                    guild_id bigint,
                    user_id bigint,
                    provider text not null,
                    model text not null,
                    category text not null,
                    complexity_score integer not null,
                    stop_reason text not null,
                    iterations integer not null,
                    elapsed_ms double precision not null
                );
                """
            )

    async def ping(self) -> bool:
        conn = await self._ensure_connection()
        if conn is None:
            return False
        try:
            await asyncio.to_thread(self._fetchone_sync, conn, "select 1 as ok;", ())
        except psycopg2.Error:
            logger.warning("Audit database ping failed")
            return False
        return True

    async def record_tool_execution(self, record: ToolExecutionRecord) -> None:
        await self._execute_async(
            """
            insert into tool_executions (
                tool_name,
                success,
                error_message,
                error_type,
                duration_ms,
                user_id,
                guild_id,
                run_id
            )
            values (%s, %s, %s, %s, %s, %s, %s, %s);
            """,
            (
                record.tool_name,
                record.success,
                record.error_message,
                record.error_type,
                record.duration_ms,
                record.user_id,
                record.guild_id,
                record.run_id,
            ),
        )

    async def record_agent_run(self, record: AgentRunRecord) -> None:
        await self._execute_async(
            """
            insert into agent_runs (
                run_id,
                guild_id,
                user_id,
                provider,
                model,
                category,
                complexity_score,
                stop_reason,
                iterations,
                elapsed_ms
            )
            values (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            on conflict (run_id) do nothing;
            """,
            (
                record.run_id,
                record.guild_id,
                record.user_id,
                record.provider,
                record.model,
                record.category,
                record.complexity_score,
                record.stop_reason,
                record.iterations,
                record.elapsed_ms,
            ),
        )

    async def fetch_tool_reliability(self, guild_id: int, limit: int = 10) -> List[Dict[str, Any]]:
        """Per-tool success counts for a guild, least reliable first."""

        return await self._fetchall(
            """
            select tool_name,
                   count(*) as total,
                   count(*) filter (where success) as succeeded,
                   avg(duration_ms) as avg_duration_ms
            from tool_executions
            where guild_id = %s
            group by tool_name
            order by (count(*) filter (where success))::float / count(*) asc, count(*) desc
            limit %s;
            """,
            (guild_id, limit),
        )

    async def _execute_async(self, query: str, params: tuple[Any, ...]) -> None:
        conn = await self._ensure_connection()
        if conn is None:
            return
        async with self._lock:
            await asyncio.to_thread(self._execute, conn, query, params)

    def _execute(self, conn: PsycopgConnection, query: str, params: tuple[Any, ...]) -> None:
        with conn, conn.cursor() as cur:
            cur.execute(query, params)

    async def _fetchall(self, query: str, params: tuple[Any, ...]) -> List[Dict[str, Any]]:
        conn = await self._ensure_connection()
        if conn is None:
            return []
        async with self._lock:
            return await asyncio.to_thread(self._fetchall_sync, conn, query, params)

    def _fetchall_sync(
        self, conn: PsycopgConnection, query: str, params: tuple[Any, ...]
    ) -> List[Dict[str, Any]]:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        conn.commit()
        return [dict(row) for row in rows]

    def _fetchone_sync(
        self, conn: PsycopgConnection, query: str, params: tuple[Any, ...]
    ) -> Optional[Dict[str, Any]]:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(query, params)
            row = cur.fetchone()
        conn.commit()
        return dict(row) if row else None
