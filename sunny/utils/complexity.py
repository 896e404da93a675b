"""Classify incoming messages by how much of an answer they need."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class ComplexityLevel(str, Enum):
    GREETING = "GREETING"
    SIMPLE = "SIMPLE"
    MODERATE = "MODERATE"
    COMPLEX = "COMPLEX"
    TECHNICAL = "TECHNICAL"


GREETING_PATTERN = re.compile(
    r"^(hi|hello|hey|sup|yo|morning|evening|night|goodbye|bye|thanks|thank you|ty|thx"
    r"|cool|nice|awesome|great|ok|okay)\b",
    re.IGNORECASE,
)
SIMPLE_QUESTION_PATTERN = re.compile(
    r"^(what's|whats|who's|whos|where's|wheres|when's|whens|is|are|can|could|will|would|should)\b",
    re.IGNORECASE,
)
COMPLEX_INDICATOR_PATTERN = re.compile(
    r"\b(how|why|explain|describe|configure|setup|debug|error|issue|problem|help me understand)\b",
    re.IGNORECASE,
)
TECHNICAL_PATTERN = re.compile(
    r"\b(error|exception|traceback|debug|api|webhook|permission|timeout|ban|kick|moderate"
    r"|automod|reaction role|verification system)\b",
    re.IGNORECASE,
)
MULTI_OPERATION_PATTERN = re.compile(
    r"\b(and|then|after that|also|plus|additionally|furthermore|as well as)\b",
    re.IGNORECASE,
)
LIST_REQUEST_PATTERN = re.compile(
    r"\b(list|show me all|what are all|enumerate|tell me all|give me all)\b",
    re.IGNORECASE,
)

GUIDELINES = {
    ComplexityLevel.GREETING: "Respond in 1-2 sentences maximum. Be warm but very brief. Just acknowledge and offer help.",
    ComplexityLevel.SIMPLE: "Keep response to 2-3 sentences. Be direct, friendly, and to the point.",
    ComplexityLevel.MODERATE: "Use 3-5 sentences. Confirm the action, provide the result, and ask if anything else is needed.",
    ComplexityLevel.COMPLEX: "Use 4-8 sentences. Break down multiple steps clearly. Explain what you're doing and why.",
    ComplexityLevel.TECHNICAL: (
        "Be thorough but stay concise. Use bullet points or numbered lists for clarity. "
        "Include relevant technical details but avoid unnecessary verbosity."
    ),
}

MAX_SENTENCES = {
    ComplexityLevel.GREETING: 2,
    ComplexityLevel.SIMPLE: 3,
    ComplexityLevel.MODERATE: 5,
    ComplexityLevel.COMPLEX: 8,
    ComplexityLevel.TECHNICAL: 15,
}


def word_count(text: str) -> int:
    return len(text.split())


@dataclass(frozen=True)
class ComplexitySummary:
    complexity: ComplexityLevel
    word_count: int
    guidelines: str
    max_sentences: int
    is_list_request: bool
    has_attachments: bool


class MessageComplexityAnalyzer:
    """Rule-based classifier; earlier rules win."""

    def analyze(self, message: str, has_attachments: bool = False) -> ComplexityLevel:
        if not message or not message.strip():
            return ComplexityLevel.SIMPLE

        clean = message.lower().strip()
        words = word_count(clean)
        question_marks = message.count("?")

        if GREETING_PATTERN.search(clean) and words <= 5:
            return ComplexityLevel.GREETING

        if TECHNICAL_PATTERN.search(clean):
            if COMPLEX_INDICATOR_PATTERN.search(clean) or question_marks > 1:
                return ComplexityLevel.TECHNICAL
            if words < 10:
                return ComplexityLevel.MODERATE
            return ComplexityLevel.COMPLEX

        if MULTI_OPERATION_PATTERN.search(clean) and words > 15:
            return ComplexityLevel.COMPLEX

        if COMPLEX_INDICATOR_PATTERN.search(clean):
            return ComplexityLevel.TECHNICAL if words > 20 else ComplexityLevel.COMPLEX

        if has_attachments:
            return ComplexityLevel.MODERATE

        if SIMPLE_QUESTION_PATTERN.search(clean) and words <= 10:
            return ComplexityLevel.SIMPLE

        if words <= 7:
            return ComplexityLevel.SIMPLE
        if words <= 20:
            return ComplexityLevel.MODERATE
        if words <= 40:
            return ComplexityLevel.COMPLEX
        return ComplexityLevel.TECHNICAL

    def guidelines(self, level: ComplexityLevel) -> str:
        return GUIDELINES.get(level, GUIDELINES[ComplexityLevel.MODERATE])

    def max_sentences(self, level: ComplexityLevel) -> int:
        return MAX_SENTENCES.get(level, 5)

    def is_list_request(self, message: str) -> bool:
        return bool(LIST_REQUEST_PATTERN.search(message or ""))

    def summarize(self, message: str, has_attachments: bool = False) -> ComplexitySummary:
        level = self.analyze(message, has_attachments)
        return ComplexitySummary(
            complexity=level,
            word_count=word_count(message or ""),
            guidelines=self.guidelines(level),
            max_sentences=self.max_sentences(level),
            is_list_request=self.is_list_request(message),
            has_attachments=has_attachments,
        )
