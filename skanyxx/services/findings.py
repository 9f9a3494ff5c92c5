"""
Keyword-based extraction of findings, recommendations and insights from
assistant replies.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

from ..models.kagent import ChatMessage

MAX_PER_CATEGORY = 3
MIN_SENTENCE_LENGTH = 20
MAX_SENTENCE_LENGTH = 500

SENTENCE_SPLIT = re.compile(r"[.!?]+")

FINDING_KEYWORDS = (
    "error", "issue", "problem", "failed", "broken", "down", "not running", "unhealthy", "crash",
)
RECOMMENDATION_KEYWORDS = (
    "recommend", "suggest", "should", "action", "fix", "resolve", "need to", "must", "required",
)
INSIGHT_KEYWORDS = (
    "analysis", "observe", "found", "detected", "identified", "shows", "running", "healthy",
    "status", "summary", "overview", "total",
)


@dataclass
class Findings:
    findings: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    insights: List[str] = field(default_factory=list)


def split_sentences(text: str) -> List[str]:
    """Split on runs of sentence punctuation and keep sentences of a useful length."""
    sentences = (s.strip() for s in SENTENCE_SPLIT.split(text))
    return [s for s in sentences if MIN_SENTENCE_LENGTH < len(s) < MAX_SENTENCE_LENGTH]


def _matches(sentence: str, keywords: Tuple[str, ...]) -> bool:
    lowered = sentence.lower()
    return any(k in lowered for k in keywords)


def extract_findings(messages: Iterable[ChatMessage], limit: int = MAX_PER_CATEGORY) -> Findings:
    """
    Classify the sentences of assistant messages. Placeholder replies are skipped.

    Each sentence lands in at most one category, checked in the order
    finding, recommendation, insight. Repeated sentences are counted once and
    every category keeps its first ``limit`` entries.
    """
    result = Findings()
    seen = set()

    for message in messages:
        if message.role != "assistant" or message.placeholder or not message.content:
            continue

        for sentence in split_sentences(message.content):
            if sentence in seen:
                continue

            if _matches(sentence, FINDING_KEYWORDS):
                target = result.findings
            elif _matches(sentence, RECOMMENDATION_KEYWORDS):
                target = result.recommendations
            elif _matches(sentence, INSIGHT_KEYWORDS):
                target = result.insights
            else:
                continue

            seen.add(sentence)
            target.append(sentence)

    result.findings = result.findings[:limit]
    result.recommendations = result.recommendations[:limit]
    result.insights = result.insights[:limit]
    return result
