"""Shared fixtures for the analysis layer tests."""
import sys
import threading
from pathlib import Path
from typing import Callable, Optional

import pytest

# Allow imports from the project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from ai.adapters.types import AnalysisRequest, AnalysisResult, Provider, ProviderKind, ScoreBreakdown
from core.errors import ProviderTransportError
from scoring.models import DomainContext, Goal, Pattern, Stack, Strategy


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubProvider(Provider):
    """Configurable in-memory provider that records every call."""

    kind = ProviderKind.RULE_BASED

    def __init__(
        self,
        name: str,
        available: bool = True,
        error: Optional[BaseException] = None,
        final_score: float = 7.0,
        on_analyze: Optional[Callable[[], None]] = None,
    ):
        self._name = name
        self.available = available
        self.error = error
        self.final_score = final_score
        self.on_analyze = on_analyze
        self._lock = threading.Lock()
        self.calls = 0
        self.availability_checks = 0

    def name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        with self._lock:
            self.availability_checks += 1
        return self.available

    def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        with self._lock:
            self.calls += 1
        if self.on_analyze is not None:
            self.on_analyze()
        if self.error is not None:
            raise self.error
        return AnalysisResult(
            scores=ScoreBreakdown(mission_alignment=3.0, anti_challenge=2.5, strategic_fit=1.5),
            final_score=self.final_score,
            recommendation="pursue",
            explanations={"overall": f"scored by {self._name}"},
            provider=self._name,
        )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def domain_context():
    """A representative domain context for scoring."""
    return DomainContext(
        goals=[
            Goal(id="G1", description="Build AI-powered developer tools"),
            Goal(id="G2", description="Reach recurring revenue within 90 days"),
        ],
        strategies=[Strategy(id="S1", description="Ship small tools publicly every week")],
        stack=Stack(primary=["python", "fastapi"], secondary=["go"]),
        failure_patterns=[
            Pattern(name="Shiny objects", description="Jumping to new stacks", keywords=["rust", "blockchain"]),
        ],
    )


@pytest.fixture
def request_with_context(domain_context):
    return AnalysisRequest(idea="Build a python automation tool for invoices", context=domain_context)


@pytest.fixture
def stub_provider_factory():
    return StubProvider


@pytest.fixture
def transport_error():
    return ProviderTransportError("connection refused")
