"""Shared request/result types and the provider capability contract."""
from __future__ import annotations

import dataclasses
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from core.errors import ScoreValidationError
from scoring.models import DomainContext

__all__ = [
    "AnalysisRequest",
    "AnalysisResult",
    "DomainContext",
    "Provider",
    "ProviderKind",
    "Recommendation",
    "ScoreBreakdown",
    "SCORE_BOUNDS",
    "recommendation_for",
]

# Upper bound of each weighted category; every lower bound is 0.
SCORE_BOUNDS: Dict[str, float] = {
    "mission_alignment": 4.0,
    "anti_challenge": 3.5,
    "strategic_fit": 2.5,
}


class Recommendation(str, Enum):
    """Discrete labels derived from the final score."""
    STRONGLY_PURSUE = "strongly_pursue"
    PURSUE = "pursue"
    REVIEW = "review"
    DEPRIORITIZE = "deprioritize"


def recommendation_for(score: float) -> str:
    """Map a final score to its recommendation (thresholds 8.0 / 6.0 / 4.0)."""
    if score >= 8.0:
        return Recommendation.STRONGLY_PURSUE.value
    if score >= 6.0:
        return Recommendation.PURSUE.value
    if score >= 4.0:
        return Recommendation.REVIEW.value
    return Recommendation.DEPRIORITIZE.value


class ProviderKind(str, Enum):
    """Closed set of provider variants."""
    RULE_BASED = "rule_based"
    NETWORK_GENERATE = "network_generate"
    GENERIC_HTTP = "generic_http"
    FALLBACK_CHAIN = "fallback_chain"
    CACHED = "cached"


@dataclass(frozen=True)
class AnalysisRequest:
    """An idea to score plus the domain context it is scored against."""
    idea: str
    context: Optional[DomainContext] = None


@dataclass
class ScoreBreakdown:
    """The three weighted category scores."""
    mission_alignment: float = 0.0
    anti_challenge: float = 0.0
    strategic_fit: float = 0.0

    def total(self) -> float:
        return self.mission_alignment + self.anti_challenge + self.strategic_fit

    def validate(self) -> None:
        """Raise ScoreValidationError if any category is outside [0, bound]."""
        for name, bound in SCORE_BOUNDS.items():
            value = getattr(self, name)
            if not 0.0 <= value <= bound:
                raise ScoreValidationError(
                    f"{name} score {value:.2f} out of range [0, {bound}]"
                )


@dataclass
class AnalysisResult:
    scores: ScoreBreakdown
    final_score: float
    recommendation: str
    explanations: Dict[str, str] = field(default_factory=dict)
    provider: str = ""
    duration: float = 0.0  # seconds
    from_cache: bool = False

    def with_cache_flag(self, from_cache: bool) -> "AnalysisResult":
        """Return a copy flagged as (not) served from cache."""
        return dataclasses.replace(
            self,
            scores=dataclasses.replace(self.scores),
            explanations=dict(self.explanations),
            from_cache=from_cache,
        )


class Provider(ABC):
    """Base class for analysis providers.

    Implementations must not retry internally and must tolerate concurrent
    ``analyze`` calls; failures are raised as ``core.errors`` types.
    """

    kind: ProviderKind

    @abstractmethod
    def name(self) -> str:
        """Stable provider identifier."""

    @abstractmethod
    def is_available(self) -> bool:
        """Cheap liveness check; may touch the network with a short timeout."""

    @abstractmethod
    def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """Score the request or raise a ProviderError."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name()!r}>"
