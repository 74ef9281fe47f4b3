"""Deterministic keyword scoring engine.

Scores an idea against a domain context across three weighted categories:

    mission alignment    0-4.0  (domain 1.2, AI 1.5, execution 0.8, revenue 0.5)
    anti-challenge       0-3.5  (context 1.2, prototyping 1.0, accountability 0.8, income 0.5)
    strategic fit        0-2.5  (stack 1.0, shipping 0.8, public 0.4, revenue testing 0.3)

Every sub-score is clamped to its bound, so category totals never exceed the
category maximum.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Tuple

from .models import (
    AntiChallengeScores,
    DomainContext,
    MissionScores,
    ScoreCard,
    StrategicScores,
)

__all__ = ["ScoringEngine", "score_idea"]

# Ordered (pattern, score) tables: the first matching row wins.
_AI_TIERS: List[Tuple[re.Pattern[str], float]] = [
    (re.compile(r"\b(llm|gpt|claude|agent|ai[- ]powered|machine learning|automation)\b"), 1.4),
    (re.compile(r"\b(ai|nlp|classifier|embedding|model)\b"), 1.0),
    (re.compile(r"artificial intelligence"), 0.5),
]
_TIMELINE_TIERS = [
    (re.compile(r"(learn.*(before|then|first)|study.*before)"), 0.05),
    (re.compile(r"\b(30 days?|1 month|one month|this week|weekend|mvp)\b"), 0.75),
    (re.compile(r"\b(60 days?|2 months?|2 weeks?|basic version)\b"), 0.6),
    (re.compile(r"\b(90 days?|3 months?|6 months?|comprehensive)\b"), 0.35),
]
_REVENUE_TIERS = [
    (re.compile(r"(\$\d+k|subscription|saas|recurring)"), 0.45),
    (re.compile(r"\b(paid|pricing|customers?|clients?)\b"), 0.3),
    (re.compile(r"\b(revenue|monetize|sell|profit)\b"), 0.15),
    (re.compile(r"\b(personal|hobby|fun|just for me)\b"), 0.02),
]
_PROTOTYPE_RE = re.compile(r"\b(prototype|mvp|simple|quick|script|cli|tool)\b")
_ACCOUNTABILITY_RE = re.compile(r"\b(launch|users?|customers?|beta|publish|community)\b")
_INCOME_RE = re.compile(r"\b(revenue|paid|sell|subscription|customers?|clients?)\b")
_SHIPPING_RE = re.compile(r"\b(reusable|library|template|framework|ship|open source)\b")
_PUBLIC_RE = re.compile(r"\b(public|blog|share|twitter|audience|open source)\b")
_SCALABLE_RE = re.compile(r"\b(saas|subscription|platform|marketplace)\b")
_CONSULTING_RE = re.compile(r"\b(consulting|freelance|agency)\b")


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _first_tier(text: str, tiers: Iterable[Tuple[re.Pattern[str], float]], default: float) -> float:
    for pattern, score in tiers:
        if pattern.search(text):
            return score
    return default


class ScoringEngine:
    """Scores idea text against one domain context."""

    def __init__(self, context: DomainContext):
        self.context = context
        self._primary = [t.lower() for t in context.stack.primary]
        self._secondary = [t.lower() for t in context.stack.secondary]
        self._goal_words = self._words(" ".join(g.description for g in context.goals))

    @staticmethod
    def _words(text: str) -> set:
        return {w for w in re.split(r"[^a-z0-9]+", text.lower()) if len(w) > 3}

    def _stack_ratio(self, idea: str) -> float:
        total = len(self._primary) + len(self._secondary)
        if total == 0:
            return -1.0
        hits = 2 * sum(1 for t in self._primary if t in idea)
        hits += sum(1 for t in self._secondary if t in idea)
        return hits / total

    # ------------------------------------------------------------------
    def calculate(self, idea: str) -> ScoreCard:
        idea_lower = idea.lower()
        return ScoreCard(
            mission=self._mission(idea_lower),
            anti_challenge=self._anti_challenge(idea_lower),
            strategic=self._strategic(idea_lower),
        )

    def _mission(self, idea: str) -> MissionScores:
        ratio = self._stack_ratio(idea)
        goal_overlap = len(self._words(idea) & self._goal_words)
        domain = 0.5 if ratio < 0 else ratio * 1.0
        domain += 0.1 * goal_overlap
        return MissionScores(
            domain_expertise=_clamp(domain, 0.0, 1.2),
            ai_alignment=_clamp(_first_tier(idea, _AI_TIERS, 0.0), 0.0, 1.5),
            execution_support=_clamp(_first_tier(idea, _TIMELINE_TIERS, 0.4), 0.0, 0.8),
            revenue_potential=_clamp(_first_tier(idea, _REVENUE_TIERS, 0.1), 0.0, 0.5),
        )

    def _anti_challenge(self, idea: str) -> AntiChallengeScores:
        ratio = self._stack_ratio(idea)
        context_switching = 0.6 if ratio < 0 else 0.4 + 0.8 * min(ratio, 1.0)
        for pattern in self.context.failure_patterns:
            if any(k.lower() in idea for k in pattern.keywords):
                context_switching -= 0.3
        return AntiChallengeScores(
            context_switching=_clamp(context_switching, 0.0, 1.2),
            rapid_prototyping=0.8 if _PROTOTYPE_RE.search(idea) else 0.4,
            accountability=0.6 if _ACCOUNTABILITY_RE.search(idea) else 0.2,
            income_anxiety=0.4 if _INCOME_RE.search(idea) else 0.1,
        )

    def _strategic(self, idea: str) -> StrategicScores:
        ratio = self._stack_ratio(idea)
        revenue_testing = 0.3 if _SCALABLE_RE.search(idea) else 0.1
        if _CONSULTING_RE.search(idea):
            revenue_testing = 0.05
        return StrategicScores(
            stack_compatibility=_clamp(0.5 if ratio < 0 else ratio, 0.0, 1.0),
            shipping_habit=0.6 if _SHIPPING_RE.search(idea) else 0.3,
            public_accountability=0.3 if _PUBLIC_RE.search(idea) else 0.1,
            revenue_testing=revenue_testing,
        )


def score_idea(idea: str, context: DomainContext) -> ScoreCard:
    """Default scorer used by the rule-based provider."""
    return ScoringEngine(context).calculate(idea)
