"""Short per-channel conversation memory used to seed each agent run."""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_SECONDS = 3600.0


@dataclass(frozen=True)
class ContextMessage:
    author: str
    author_id: int
    content: str
    timestamp: float
    is_bot: bool = False


class ConversationContextService:
    """Keeps the last ``max_messages`` messages of every active channel in memory."""

    def __init__(self, max_messages: int = 10, clock: Callable[[], float] = time.time):
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self.max_messages = max_messages
        self._clock = clock
        self._channels: Dict[int, Deque[ContextMessage]] = {}

    def __len__(self) -> int:
        return len(self._channels)

    def get_context(self, channel_id: int) -> List[ContextMessage]:
        return list(self._channels.get(channel_id, ()))

    def add_message(self, channel_id: int, message: Any) -> ContextMessage:
        """Record a discord.py message (or anything shaped like one)."""

        author = message.author
        created = getattr(message, "created_at", None)
        entry = ContextMessage(
            author=getattr(author, "name", str(author)),
            author_id=author.id,
            content=message.content or "",
            timestamp=created.timestamp() if created is not None else self._clock(),
            is_bot=bool(getattr(author, "bot", False)),
        )
        history = self._channels.setdefault(channel_id, deque(maxlen=self.max_messages))
        history.append(entry)
        return entry

    def build_context_prompt(
        self, channel_id: int, message: Any, reply_context: Optional[str] = None
    ) -> str:
        lines = ["Recent conversation context:", ""]
        for entry in self.get_context(channel_id):
            lines.append(f"{entry.author} (ID: {entry.author_id}): {entry.content}")
        if reply_context:
            lines.append("")
            lines.append(f'[User is replying to your message: "{reply_context}"]')
        lines.append("")
        lines.append(f"Current message from {getattr(message.author, 'name', message.author)}:")
        lines.append(f'"{message.content}"')
        lines.append("")
        lines.append("Respond to this message with full awareness of the conversation context.")
        lines.append("When taking moderation actions, use the correct user ID from the conversation history.")
        return "\n".join(lines)

    def clear(self, channel_id: int) -> None:
        self._channels.pop(channel_id, None)

    def prune(self, max_age: float = DEFAULT_MAX_AGE_SECONDS) -> int:
        """Forget channels whose newest message is older than ``max_age`` seconds."""

        now = self._clock()
        stale = [
            channel_id
            for channel_id, history in self._channels.items()
            if not history or now - history[-1].timestamp > max_age
        ]
        for channel_id in stale:
            del self._channels[channel_id]
        if stale:
            logger.info("Pruned conversation context for %d channel(s)", len(stale))
        return len(stale)
