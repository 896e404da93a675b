"""Lightweight HTTP health endpoint for deployment platforms."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional

from .db import Database
from .services.engine import AgentEngine
from .utils.rate_limiter import RateLimiterRegistry

HEALTH_PATHS = {"/", "/health", "/healthz"}


def build_health_payload(
    engine: AgentEngine,
    database: Database,
    limiters: RateLimiterRegistry,
    database_connected: Optional[bool] = None,
) -> Dict[str, Any]:
    """Snapshot of the running bot. ``database_connected`` overrides the cached connection state."""

    selector = engine.selector
    if database_connected is None:
        database_connected = database.is_connected if database else False
    return {
        "status": "ok",
        "provider": selector.provider.value,
        "models": {
            "simple": selector.simple_model,
            "complex": selector.complex_model,
            "override": selector.model_override,
        },
        "configured_providers": sorted(provider.value for provider in engine.providers),
        "database_connected": database_connected,
        "rate_limits": limiters.stats(),
    }


async def _close(writer: asyncio.StreamWriter) -> None:
    writer.close()
    await writer.wait_closed()


async def _handle_client(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    engine: AgentEngine,
    database: Database,
    limiters: RateLimiterRegistry,
) -> None:
    try:
        data = await reader.readuntil(b"\r\n\r\n")
    except (asyncio.IncompleteReadError, asyncio.LimitOverrunError):
        await _close(writer)
        return

    request_line = data.decode(errors="ignore").split("\r\n", 1)[0]
    method, path, *_ = request_line.split(" ") + ["", ""]
    if method.upper() != "GET" or path not in HEALTH_PATHS:
        writer.write(b"HTTP/1.1 404 Not Found\r\nContent-Length: 0\r\nConnection: close\r\n\r\n")
        await writer.drain()
        await _close(writer)
        return

    connected = await database.ping() if database else False
    body = json.dumps(build_health_payload(engine, database, limiters, connected)).encode()
    response = (
        "HTTP/1.1 200 OK\r\n"
        "Content-Type: application/json\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    ).encode() + body
    writer.write(response)
    await writer.drain()
    await _close(writer)


async def start_health_server(
    host: str,
    port: int,
    engine: AgentEngine,
    database: Database,
    limiters: RateLimiterRegistry,
) -> asyncio.AbstractServer:
    return await asyncio.start_server(
        lambda r, w: _handle_client(r, w, engine, database, limiters),
        host,
        port,
    )
