"""Domain context models and the rule engine's score card."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class Goal(BaseModel):
    """A goal the idea is measured against."""
    id: str
    description: str
    deadline: Optional[datetime] = None
    priority: int = 0


class Strategy(BaseModel):
    id: str
    description: str


class Stack(BaseModel):
    """Technology preferences: what is used daily and what is known."""
    primary: List[str] = Field(default_factory=list)
    secondary: List[str] = Field(default_factory=list)


class Pattern(BaseModel):
    """A failure pattern (anti-pattern) the owner wants to avoid."""
    name: str
    description: str
    keywords: List[str] = Field(default_factory=list)


class DomainContext(BaseModel):
    """Goals, strategies, stack and failure patterns an idea is scored against.

    Providers treat this bundle as opaque: it is passed through verbatim and
    only checked for presence where a provider needs it.
    """
    goals: List[Goal] = Field(default_factory=list)
    strategies: List[Strategy] = Field(default_factory=list)
    stack: Stack = Field(default_factory=Stack)
    failure_patterns: List[Pattern] = Field(default_factory=list)


class MissionScores(BaseModel):
    domain_expertise: float = 0.0
    ai_alignment: float = 0.0
    execution_support: float = 0.0
    revenue_potential: float = 0.0

    @property
    def total(self) -> float:
        return self.domain_expertise + self.ai_alignment + self.execution_support + self.revenue_potential


class AntiChallengeScores(BaseModel):
    context_switching: float = 0.0
    rapid_prototyping: float = 0.0
    accountability: float = 0.0
    income_anxiety: float = 0.0

    @property
    def total(self) -> float:
        return self.context_switching + self.rapid_prototyping + self.accountability + self.income_anxiety


class StrategicScores(BaseModel):
    stack_compatibility: float = 0.0
    shipping_habit: float = 0.0
    public_accountability: float = 0.0
    revenue_testing: float = 0.0

    @property
    def total(self) -> float:
        return self.stack_compatibility + self.shipping_habit + self.public_accountability + self.revenue_testing


class ScoreCard(BaseModel):
    """Bounded sub-scores produced by the deterministic engine."""
    mission: MissionScores
    anti_challenge: AntiChallengeScores
    strategic: StrategicScores

    @property
    def final_score(self) -> float:
        return self.mission.total + self.anti_challenge.total + self.strategic.total
