"""Agent observer that persists tool executions and run summaries."""

from __future__ import annotations

import logging

from ..db import AgentRunRecord, Database, ToolExecutionRecord
from ..models.agent import AgentReply, AgentRequest, ToolCallRequest, ToolContext, ToolResult
from .engine import AgentObserver

logger = logging.getLogger(__name__)


class AuditObserver(AgentObserver):
    def __init__(self, database: Database):
        self._database = database

    async def on_tool_executed(
        self,
        run_id: str,
        call: ToolCallRequest,
        result: ToolResult,
        duration_ms: float,
        context: ToolContext,
    ) -> None:
        if not self._database.is_enabled:
            return
        await self._database.record_tool_execution(
            ToolExecutionRecord(
                tool_name=call.name,
                success=result.success,
                duration_ms=duration_ms,
                error_message=result.error,
                error_type=result.error_type,
                user_id=context.actor_id,
                guild_id=context.guild_id,
                run_id=run_id,
            )
        )

    async def on_run_complete(self, reply: AgentReply, request: AgentRequest) -> None:
        if not self._database.is_enabled or reply.selection is None or reply.run_id is None:
            return
        selection = reply.selection
        await self._database.record_agent_run(
            AgentRunRecord(
                run_id=reply.run_id,
                provider=selection.provider.value,
                model=selection.model,
                category=selection.category,
                complexity_score=selection.complexity_score,
                stop_reason=reply.stop.value,
                iterations=reply.iterations,
                elapsed_ms=reply.elapsed * 1000,
                guild_id=request.tool_context.guild_id,
                user_id=request.tool_context.actor_id,
            )
        )
