"""Configuration helpers for the Sunny bot."""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from ..utils.permissions import DEFAULT_SELF_ASSIGNABLE_ROLES
from ..utils.retry import RetryPolicy
from .agent import LoopBudget, Provider

# (simple, complex) model pairs used when no override is configured
DEFAULT_PROVIDER_MODELS = {
    Provider.ANTHROPIC: ("claude-3-5-haiku-20241022", "claude-3-5-sonnet-20241022"),
    Provider.ZAI: ("glm-4.5-air", "glm-4.6"),
    Provider.GROQ: ("llama-3.1-8b-instant", "llama-3.3-70b-versatile"),
    Provider.OPENAI: ("gpt-4o-mini", "gpt-4o"),
}


class BotSettings(BaseModel):
    """Runtime configuration parsed from environment variables."""

    discord_token: str = Field(..., alias="DISCORD_TOKEN")
    owner_ids: List[int] = Field(
        default_factory=list,
        alias="DISCORD_OWNER_ID",
        validation_alias=AliasChoices("DISCORD_OWNER_ID", "DISCORD_OWNER_IDS", "owner_ids"),
    )

    self_assignable_roles: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SELF_ASSIGNABLE_ROLES), alias="SELF_ASSIGNABLE_ROLES"
    )

    ai_provider: Provider = Field(default=Provider.ANTHROPIC, alias="AI_PROVIDER")
    model_override: Optional[str] = Field(
        default=None,
        alias="AI_MODEL",
        validation_alias=AliasChoices("AI_MODEL", "CLAUDE_MODEL", "ZAI_MODEL", "GROQ_MODEL", "model_override"),
    )
    simple_model: Optional[str] = Field(default=None, alias="AI_SIMPLE_MODEL")
    complex_model: Optional[str] = Field(default=None, alias="AI_COMPLEX_MODEL")
    max_tokens: int = Field(
        default=3000,
        alias="AI_MAX_TOKENS",
        validation_alias=AliasChoices("AI_MAX_TOKENS", "CLAUDE_MAX_TOKENS", "ZAI_MAX_TOKENS", "max_tokens"),
    )
    temperature: float = Field(
        default=0.7,
        alias="AI_TEMPERATURE",
        validation_alias=AliasChoices(
            "AI_TEMPERATURE", "CLAUDE_TEMPERATURE", "ZAI_TEMPERATURE", "temperature"
        ),
    )
    max_iterations: int = Field(default=50, alias="AGENT_MAX_ITERATIONS", ge=1)
    max_wall_clock_seconds: float = Field(default=420.0, alias="AGENT_MAX_SECONDS", gt=0)

    anthropic_api_key: Optional[str] = Field(
        default=None,
        alias="ANTHROPIC_API_KEY",
        validation_alias=AliasChoices("CLAUDE_API_KEY", "ANTHROPIC_API_KEY", "anthropic_api_key"),
    )
    anthropic_base_url: Optional[str] = Field(default=None, alias="ANTHROPIC_BASE_URL")
    zai_api_key: Optional[str] = Field(default=None, alias="ZAI_API_KEY")
    zai_base_url: str = Field(default="https://api.z.ai/api/paas/v4/", alias="ZAI_BASE_URL")
    groq_api_key: Optional[str] = Field(default=None, alias="GROQ_API_KEY")
    groq_base_url: str = Field(default="https://api.groq.com/openai/v1", alias="GROQ_BASE_URL")
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_base_url: Optional[str] = Field(default=None, alias="OPENAI_BASE_URL")

    llm_requests_per_minute: int = Field(default=300, alias="LLM_REQUESTS_PER_MINUTE", ge=1)
    llm_max_burst: int = Field(default=50, alias="LLM_MAX_BURST", ge=1)
    tool_calls_per_second: int = Field(default=20, alias="TOOL_CALLS_PER_SECOND", ge=1)
    tool_max_burst: int = Field(default=5, alias="TOOL_MAX_BURST", ge=1)
    retry_max_attempts: int = Field(default=3, alias="RETRY_MAX_ATTEMPTS", ge=1, le=10)
    retry_base_delay: float = Field(default=1.0, alias="RETRY_BASE_DELAY", ge=0)
    retry_max_delay: float = Field(default=30.0, alias="RETRY_MAX_DELAY", ge=0)

    context_max_messages: int = Field(default=10, alias="CONTEXT_MAX_MESSAGES", ge=1)
    personality_path: str = Field(default="config/personality.txt", alias="PERSONALITY_PATH")

    database_url: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL",
        validation_alias=AliasChoices("DATABASE_URL", "SUPABASE_DB_URL", "database_url"),
    )
    health_host: str = Field(default="0.0.0.0", alias="HEALTH_HOST")
    health_port: int = Field(
        default=8080,
        alias="HEALTH_PORT",
        validation_alias=AliasChoices("HEALTH_PORT", "PORT", "health_port"),
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    class Config:
        populate_by_name = True

    @field_validator("owner_ids", mode="before")
    @classmethod
    def _split_owner_ids(cls, value):
        if value is None:
            return []
        if isinstance(value, (int, str)):
            value = str(value).split(",")
        return [int(str(item).strip()) for item in value if str(item).strip()]

    @field_validator("self_assignable_roles", mode="before")
    @classmethod
    def _split_role_names(cls, value):
        if isinstance(value, str):
            return [name.strip() for name in value.split(",") if name.strip()]
        return value

    @field_validator("ai_provider", mode="before")
    @classmethod
    def _normalise_provider(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    def loop_budget(self) -> LoopBudget:
        return LoopBudget(
            max_iterations=self.max_iterations,
            max_wall_clock_seconds=self.max_wall_clock_seconds,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
        )

    def provider_models(self, provider: Optional[Provider] = None) -> Tuple[str, str]:
        """Return the (simple, complex) model ids for ``provider``."""

        provider = provider or self.ai_provider
        simple, complex_ = DEFAULT_PROVIDER_MODELS[provider]
        if provider == self.ai_provider:
            simple = self.simple_model or simple
            complex_ = self.complex_model or complex_
        return simple, complex_


def load_settings(env_file: str | None = ".env") -> BotSettings:
    """Load and validate configuration, raising a helpful error if missing."""

    if env_file and Path(env_file).exists():
        load_dotenv(env_file)

    try:
        settings = BotSettings.model_validate(os.environ)
    except ValidationError as exc:
        missing = [str(err["loc"][0]) for err in exc.errors() if err["type"] == "missing"]
        if not missing:
            raise RuntimeError(f"Invalid configuration: {exc}") from exc
        raise RuntimeError(
            (
                "Missing required configuration values: "
                f"{', '.join(missing)}. "
                "Ensure DISCORD_TOKEN is set before running the bot."
            )
        ) from exc

    return settings
