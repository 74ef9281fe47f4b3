"""Deterministic idea scoring and the domain context it scores against."""

from .engine import ScoringEngine, score_idea
from .models import DomainContext, Goal, Pattern, ScoreCard, Stack, Strategy

__all__ = [
    "DomainContext",
    "Goal",
    "Pattern",
    "ScoreCard",
    "ScoringEngine",
    "Stack",
    "Strategy",
    "score_idea",
]
