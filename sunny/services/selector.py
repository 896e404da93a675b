"""Heuristic routing between a provider's cheap and capable models."""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..models.agent import ModelSelection, Provider
from ..utils.complexity import ComplexityLevel, MessageComplexityAnalyzer, word_count

logger = logging.getLogger(__name__)

FORCED_SIMPLE = "FORCED_SIMPLE"
SIMPLE_TASK = "SIMPLE_TASK"
COMPLEX_REASONING = "COMPLEX_REASONING"
CONFIGURED_OVERRIDE = "CONFIGURED_OVERRIDE"

FORCE_SIMPLE_PATTERNS = {
    "greetings": re.compile(r"^(hi|hello|hey|sup|yo|morning|evening|night|bye|thanks|ty|ok)\b"),
    "singleAction": re.compile(r"^(list|show|get|delete|rename|kick|ban|timeout|remove)\s+"),
    "statusCheck": re.compile(r"^(what|who|when|is)\s+.*\?$", re.DOTALL),
}
MULTI_STEP_PATTERN = re.compile(
    r"\b(and then|after that|also|plus|set up|configure|create a system|build)\b"
)
DEEP_REASONING_PATTERN = re.compile(
    r"\b(why|explain|how does|analyze|investigate|determine|figure out|understand)\b"
)
CREATIVE_PATTERN = re.compile(r"\b(generate|create|write|compose|design|come up with|think of)\b")
ACTION_VERB_PATTERN = re.compile(r"\b(create|delete|add|remove|set|configure|assign|give|take)\b")

# USD per million tokens
MODEL_COSTS = {
    "claude-3-haiku-20240307": {"input": 0.25, "output": 1.25},
    "claude-3-5-haiku-20241022": {"input": 0.80, "output": 4.00},
    "claude-3-5-sonnet-20241022": {"input": 3.00, "output": 15.00},
    "glm-4.5-air": {"input": 0.20, "output": 1.10},
    "glm-4.5": {"input": 0.60, "output": 2.20},
    "glm-4.6": {"input": 0.60, "output": 2.20},
    "llama-3.1-8b-instant": {"input": 0.05, "output": 0.08},
    "llama-3.3-70b-versatile": {"input": 0.59, "output": 0.79},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
}


@dataclass(frozen=True)
class SelectorWeights:
    """Empirical weights; a total at or above ``threshold`` picks the complex model."""

    multi_step: int = 2
    deep_reasoning: int = 2
    creative: int = 1
    long_conversation: int = 1
    multi_tool: int = 2
    technical: int = 3
    complex: int = 2
    moderate: int = 1
    long_message: int = 1
    threshold: int = 3
    long_conversation_words: int = 500
    long_message_words: int = 30
    multi_tool_verbs: int = 3


class ModelSelector:
    def __init__(
        self,
        provider: Provider,
        simple_model: str,
        complex_model: str,
        weights: Optional[SelectorWeights] = None,
        model_override: Optional[str] = None,
        analyzer: Optional[MessageComplexityAnalyzer] = None,
    ):
        self.provider = provider
        self.simple_model = simple_model
        self.complex_model = complex_model
        self.weights = weights or SelectorWeights()
        self.model_override = model_override
        self._analyzer = analyzer or MessageComplexityAnalyzer()
        self._usage: Counter = Counter()

    def select(
        self, user_message: str, conversation_context: str = "", is_privileged: bool = False
    ) -> ModelSelection:
        """Pick the model for one agent run.

        The result depends only on the arguments and the configured weights.
        Privilege does not change the score.
        """

        clean = (user_message or "").lower().strip()
        w = self.weights

        for name, pattern in FORCE_SIMPLE_PATTERNS.items():
            if pattern.search(clean):
                return self._finish(
                    self.simple_model, FORCED_SIMPLE, 0, [f"matched force-simple pattern: {name}"]
                )

        score = 0
        reasons: List[str] = []
        if MULTI_STEP_PATTERN.search(clean):
            score += w.multi_step
            reasons.append("multi-step workflow")
        if DEEP_REASONING_PATTERN.search(clean):
            score += w.deep_reasoning
            reasons.append("deep reasoning required")
        if CREATIVE_PATTERN.search(clean):
            score += w.creative
            reasons.append("creative task")
        if word_count(conversation_context or "") > w.long_conversation_words:
            score += w.long_conversation
            reasons.append("long conversation context")

        verbs = len(ACTION_VERB_PATTERN.findall(clean))
        if verbs >= w.multi_tool_verbs:
            score += w.multi_tool
            reasons.append(f"{verbs} potential tool operations")

        level = self._analyzer.analyze(user_message or "")
        if level == ComplexityLevel.TECHNICAL:
            score += w.technical
            reasons.append("technical complexity")
        elif level == ComplexityLevel.COMPLEX:
            score += w.complex
            reasons.append("complex message")
        elif level == ComplexityLevel.MODERATE:
            score += w.moderate
            reasons.append("moderate complexity")

        words = word_count(user_message or "")
        if words > w.long_message_words:
            score += w.long_message
            reasons.append(f"long message ({words} words)")

        if score >= w.threshold:
            return self._finish(self.complex_model, COMPLEX_REASONING, score, reasons)
        return self._finish(
            self.simple_model,
            SIMPLE_TASK,
            score,
            reasons or ["simple task, single operation"],
        )

    def _finish(self, model: str, category: str, score: int, reasons: List[str]) -> ModelSelection:
        if self.model_override:
            reasons = reasons + [f"configured override replaced {model}"]
            model = self.model_override
            category = CONFIGURED_OVERRIDE
        self._usage[model] += 1
        return ModelSelection(
            provider=self.provider,
            model=model,
            category=category,
            complexity_score=score,
            reasons=tuple(reasons),
        )

    @staticmethod
    def model_costs(model: str) -> Dict[str, float]:
        return MODEL_COSTS.get(model, {"input": 0.0, "output": 0.0})

    def usage_stats(self) -> Dict[str, object]:
        total = sum(self._usage.values())
        percentages = {
            model: round(count * 100 / total, 1) for model, count in self._usage.items()
        } if total else {}
        simple_share = percentages.get(self.simple_model, 0.0)
        if not total:
            recommendation = "No usage data yet"
        elif simple_share >= 70:
            recommendation = "Good balance, mostly using the cheap model"
        else:
            recommendation = "Using the expensive model often, check complexity detection"
        return {
            "total": total,
            "breakdown": dict(self._usage),
            "percentages": percentages,
            "recommendation": recommendation,
        }

    def reset_stats(self) -> None:
        self._usage.clear()
