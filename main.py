"""Entry-point for running the Sunny Discord bot."""

from __future__ import annotations

import asyncio
import logging

from sunny import create_bot
from sunny.db import Database
from sunny.health import start_health_server
from sunny.models.config import BotSettings, load_settings
from sunny.services.audit import AuditObserver
from sunny.services.context import ConversationContextService
from sunny.services.engine import AgentEngine, LoggingObserver
from sunny.services.providers import create_providers
from sunny.services.selector import ModelSelector
from sunny.tools import ToolRegistry
from sunny.tools.executor import ToolExecutor
from sunny.utils.permissions import PermissionPolicy
from sunny.utils.prompts import load_personality
from sunny.utils.rate_limiter import TOOL_EXECUTION_BUCKET, RateLimiterRegistry


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def build_engine(
    settings: BotSettings,
    database: Database,
    limiters: RateLimiterRegistry,
    permissions: PermissionPolicy,
) -> AgentEngine:
    simple_model, complex_model = settings.provider_models()
    selector = ModelSelector(
        settings.ai_provider,
        simple_model,
        complex_model,
        model_override=settings.model_override,
    )
    registry = ToolRegistry()
    executor = ToolExecutor.from_registry(
        registry,
        permissions,
        limiters.get(TOOL_EXECUTION_BUCKET),
        retry_policy=settings.retry_policy(),
    )
    return AgentEngine(
        create_providers(settings),
        selector,
        registry,
        executor,
        limiters=limiters,
        retry_policy=settings.retry_policy(),
        budget=settings.loop_budget(),
        personality=load_personality(settings.personality_path, settings.owner_ids),
        observers=[LoggingObserver(), AuditObserver(database)],
    )


async def async_main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    database = Database(settings.database_url)
    limiters = RateLimiterRegistry.from_settings(settings)
    permissions = PermissionPolicy(settings.owner_ids, settings.self_assignable_roles)
    engine = build_engine(settings, database, limiters, permissions)
    context_service = ConversationContextService(settings.context_max_messages)
    logger.info(
        "Starting Sunny with provider %s (%d provider(s) configured)",
        settings.ai_provider.value,
        len(engine.providers),
    )

    bot = create_bot(settings, engine, context_service, database, limiters, permissions)
    health_server = await start_health_server(
        settings.health_host, settings.health_port, engine, database, limiters
    )
    try:
        await bot.start(settings.discord_token)
    finally:
        health_server.close()
        await health_server.wait_closed()
        await database.close()


def main() -> None:
    try:
        asyncio.run(async_main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
