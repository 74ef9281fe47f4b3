"""Analysis providers: rule-based, local generation service and fallback chain."""
import time
from typing import Callable, List, Optional, Sequence

import httpx

from core.errors import (
    AllProvidersFailedError,
    DeadlineExceededError,
    MissingContextError,
    NoProvidersAvailableError,
    ProviderError,
    ProviderHTTPError,
    ProviderTimeoutError,
    ProviderTransportError,
    ResponseParseError,
    TelosMatrixError,
)
from core.logging import logger
from scoring import score_idea
from scoring.models import DomainContext, ScoreCard

from .prompts import build_analysis_prompt, parse_llm_response
from .types import (
    AnalysisRequest,
    AnalysisResult,
    Provider,
    ProviderKind,
    ScoreBreakdown,
    recommendation_for,
)

DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama2"
HEALTH_TIMEOUT_SEC = 2.0
GENERATE_TIMEOUT_SEC = 30.0

Scorer = Callable[[str, DomainContext], ScoreCard]

# httpx.InvalidURL is not an HTTPError subclass.
TRANSPORT_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


def check_available(provider: Provider) -> bool:
    """Live availability check; a provider whose check raises counts as unavailable."""
    try:
        return bool(provider.is_available())
    except Exception as e:
        logger.warning(f"Availability check of {provider.name()} raised: {e}")
        return False


def translate_transport_error(exc: Exception, target: str) -> ProviderError:
    """Map an httpx failure onto the provider error taxonomy."""
    if isinstance(exc, httpx.TimeoutException):
        return ProviderTimeoutError(f"{target} timed out: {exc}")
    return ProviderTransportError(f"HTTP request to {target} failed: {exc}")


# ---------------------------------------------------------------------------
# Rule-based
# ---------------------------------------------------------------------------


class RuleBasedProvider(Provider):
    """Deterministic scoring; always available and the last line of fallback."""

    kind = ProviderKind.RULE_BASED

    def __init__(self, scorer: Optional[Scorer] = None):
        self._scorer = scorer or score_idea

    def name(self) -> str:
        return "rule_based"

    def is_available(self) -> bool:
        return True

    def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        start = time.perf_counter()
        if request.context is None:
            raise MissingContextError("domain context is required for rule-based analysis")

        card = self._scorer(request.idea, request.context)
        mission, anti, strategic = card.mission, card.anti_challenge, card.strategic
        final_score = card.final_score

        return AnalysisResult(
            scores=ScoreBreakdown(
                mission_alignment=mission.total,
                anti_challenge=anti.total,
                strategic_fit=strategic.total,
            ),
            final_score=final_score,
            recommendation=recommendation_for(final_score),
            explanations={
                "mission_alignment": (
                    f"Score: {mission.total:.2f}/4.0 (Domain: {mission.domain_expertise:.2f}, "
                    f"AI: {mission.ai_alignment:.2f}, Execution: {mission.execution_support:.2f}, "
                    f"Revenue: {mission.revenue_potential:.2f})"
                ),
                "anti_challenge": (
                    f"Score: {anti.total:.2f}/3.5 (Context: {anti.context_switching:.2f}, "
                    f"Prototyping: {anti.rapid_prototyping:.2f}, Accountability: {anti.accountability:.2f}, "
                    f"Income: {anti.income_anxiety:.2f})"
                ),
                "strategic_fit": (
                    f"Score: {strategic.total:.2f}/2.5 (Stack: {strategic.stack_compatibility:.2f}, "
                    f"Shipping: {strategic.shipping_habit:.2f}, Public: {strategic.public_accountability:.2f}, "
                    f"Revenue: {strategic.revenue_testing:.2f})"
                ),
            },
            provider=self.name(),
            duration=time.perf_counter() - start,
            from_cache=False,
        )


# ---------------------------------------------------------------------------
# Local generation service (Ollama API)
# ---------------------------------------------------------------------------


class OllamaClient:
    """Minimal blocking client for the Ollama HTTP API."""

    def __init__(
        self,
        base_url: str = DEFAULT_OLLAMA_URL,
        timeout: float = GENERATE_TIMEOUT_SEC,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = (base_url or DEFAULT_OLLAMA_URL).rstrip("/")
        self.timeout = timeout or GENERATE_TIMEOUT_SEC
        self._client = client or httpx.Client()

    def generate(self, model: str, prompt: str, timeout: Optional[float] = None) -> str:
        """POST /api/generate (non-streaming) and return the response text."""
        url = f"{self.base_url}/api/generate"
        payload = {"model": model, "prompt": prompt, "stream": False}
        try:
            response = self._client.post(url, json=payload, timeout=timeout or self.timeout)
        except TRANSPORT_ERRORS as e:
            raise translate_transport_error(e, url) from e

        if response.status_code != 200:
            raise ProviderHTTPError(response.status_code, response.text[:512])
        try:
            data = response.json()
        except ValueError as e:
            raise ResponseParseError(f"decode response: {e}") from e
        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise ResponseParseError("ollama response has no 'response' text")
        return text

    def list_models(self, timeout: float = HEALTH_TIMEOUT_SEC) -> List[str]:
        url = f"{self.base_url}/api/tags"
        try:
            response = self._client.get(url, timeout=timeout)
        except TRANSPORT_ERRORS as e:
            raise translate_transport_error(e, url) from e
        if response.status_code != 200:
            raise ProviderHTTPError(response.status_code, response.text[:512])
        try:
            models = response.json().get("models") or []
        except (ValueError, AttributeError) as e:
            raise ResponseParseError(f"decode response: {e}") from e
        return [m["name"] for m in models if isinstance(m, dict) and "name" in m]

    def health_check(self, timeout: float = HEALTH_TIMEOUT_SEC) -> None:
        """Raise unless GET /api/tags answers 200 within ``timeout``."""
        url = f"{self.base_url}/api/tags"
        try:
            response = self._client.get(url, timeout=timeout)
        except TRANSPORT_ERRORS as e:
            raise translate_transport_error(e, url) from e
        if response.status_code != 200:
            raise ProviderHTTPError(response.status_code, "ollama not healthy")

    def close(self) -> None:
        self._client.close()


class NetworkGenerateProvider(Provider):
    """Scores ideas by prompting a local generation service."""

    kind = ProviderKind.NETWORK_GENERATE

    def __init__(
        self,
        base_url: str = DEFAULT_OLLAMA_URL,
        model: str = DEFAULT_OLLAMA_MODEL,
        timeout: float = GENERATE_TIMEOUT_SEC,
        name: str = "ollama",
        client: Optional[httpx.Client] = None,
    ):
        self.model = model or DEFAULT_OLLAMA_MODEL
        self.timeout = timeout
        self._name = name
        self.client = OllamaClient(base_url, timeout, client=client)

    def name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        try:
            self.client.health_check(timeout=HEALTH_TIMEOUT_SEC)
        except ProviderError as e:
            logger.debug(f"{self._name} health check failed: {e}")
            return False
        return True

    def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        start = time.perf_counter()

        prompt = build_analysis_prompt(request.idea, request.context)
        text = self.client.generate(self.model, prompt, timeout=self.timeout)
        result = parse_llm_response(text)

        result.provider = self.name()
        result.duration = time.perf_counter() - start
        result.from_cache = False
        return result


# ---------------------------------------------------------------------------
# Fallback chain
# ---------------------------------------------------------------------------


class FallbackProvider(Provider):
    """Tries each member in order; the first success wins.

    Attempts are strictly sequential and each one runs to completion or to its
    own timeout. ``deadline`` (seconds) only stops *new* attempts from starting
    once it has elapsed.
    """

    kind = ProviderKind.FALLBACK_CHAIN

    def __init__(self, providers: Sequence[Provider], deadline: Optional[float] = None):
        self._providers = list(providers)
        self.deadline = deadline

    @property
    def providers(self) -> List[Provider]:
        return list(self._providers)

    def name(self) -> str:
        return "fallback"

    def is_available(self) -> bool:
        return any(check_available(p) for p in self._providers)

    def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        started = time.monotonic()
        last_error: Optional[BaseException] = None

        for provider in self._providers:
            if self.deadline is not None and time.monotonic() - started >= self.deadline:
                raise DeadlineExceededError(
                    f"fallback deadline of {self.deadline}s exceeded, last error: {last_error}"
                ) from last_error
            if not check_available(provider):
                continue
            try:
                return provider.analyze(request)
            except TelosMatrixError as e:
                logger.warning(f"Provider {provider.name()} failed: {e}")
                last_error = e
            except Exception as e:
                logger.error(f"Unexpected error in provider {provider.name()}: {e}", exc_info=True)
                last_error = e

        if last_error is not None:
            raise AllProvidersFailedError(last_error) from last_error
        raise NoProvidersAvailableError("no providers available")


def create_default_fallback_chain(
    ollama_url: str = DEFAULT_OLLAMA_URL,
    ollama_model: str = DEFAULT_OLLAMA_MODEL,
) -> FallbackProvider:
    """Local generation service first, deterministic rules last."""
    return FallbackProvider([
        NetworkGenerateProvider(ollama_url, ollama_model),
        RuleBasedProvider(),
    ])
