"""Tests for the rule-based, local generation and fallback providers."""
import json
import time
from unittest.mock import Mock

import httpx
import pytest

from ai.adapters.providers import (
    FallbackProvider,
    NetworkGenerateProvider,
    OllamaClient,
    RuleBasedProvider,
    check_available,
    create_default_fallback_chain,
)
from ai.adapters.types import SCORE_BOUNDS, AnalysisRequest
from core.errors import (
    AllProvidersFailedError,
    DeadlineExceededError,
    MissingContextError,
    NoProvidersAvailableError,
    ProviderHTTPError,
    ProviderTimeoutError,
    ProviderTransportError,
    ResponseParseError,
    ScoreValidationError,
)

LLM_ANSWER = {
    "scores": {"mission_alignment": 3.2, "anti_challenge": 2.8, "strategic_fit": 2.0},
    "final_score": 8.0,
    "recommendation": "strongly_pursue",
    "explanations": {"mission_alignment": "fits the AI goal"},
}


def ollama_transport(generate_body=None, generate_status=200, tags_status=200, exc=None):
    """MockTransport emulating the two Ollama endpoints in use."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if exc is not None:
            raise exc
        if request.url.path == "/api/tags":
            return httpx.Response(tags_status, json={"models": [{"name": "llama2"}]})
        if request.url.path == "/api/generate":
            body = generate_body if generate_body is not None else {"response": json.dumps(LLM_ANSWER)}
            return httpx.Response(generate_status, json=body)
        return httpx.Response(404)

    transport = httpx.MockTransport(handler)
    transport.seen = seen
    return transport


# --- Rule-based ---

class TestRuleBasedProvider:

    def test_identity(self):
        provider = RuleBasedProvider()
        assert provider.name() == "rule_based"
        assert provider.is_available() is True

    def test_scores_within_bounds_and_sum(self, request_with_context):
        result = RuleBasedProvider().analyze(request_with_context)

        for field, bound in SCORE_BOUNDS.items():
            assert 0 <= getattr(result.scores, field) <= bound
        assert result.final_score == pytest.approx(result.scores.total())
        assert result.provider == "rule_based"
        assert result.from_cache is False
        assert set(result.explanations) == {"mission_alignment", "anti_challenge", "strategic_fit"}
        assert result.explanations["mission_alignment"].startswith("Score: ")

    def test_missing_context_rejected(self):
        with pytest.raises(MissingContextError):
            RuleBasedProvider().analyze(AnalysisRequest(idea="anything"))

    def test_custom_scorer_is_used(self, request_with_context):
        from scoring import score_idea

        scorer = Mock(side_effect=score_idea)
        RuleBasedProvider(scorer=scorer).analyze(request_with_context)
        scorer.assert_called_once_with(request_with_context.idea, request_with_context.context)


# --- Local generation service ---

class TestOllamaClient:

    def test_generate_posts_non_streaming_payload(self):
        transport = ollama_transport(generate_body={"response": "hello"})
        client = OllamaClient("http://ollama:11434/", client=httpx.Client(transport=transport))

        assert client.generate("llama2", "prompt text") == "hello"
        payload = json.loads(transport.seen[0].content)
        assert payload == {"model": "llama2", "prompt": "prompt text", "stream": False}
        assert str(transport.seen[0].url) == "http://ollama:11434/api/generate"

    def test_list_models(self):
        client = OllamaClient(client=httpx.Client(transport=ollama_transport()))
        assert client.list_models() == ["llama2"]

    def test_non_200_raises_http_error(self):
        client = OllamaClient(client=httpx.Client(transport=ollama_transport(generate_status=500)))
        with pytest.raises(ProviderHTTPError) as exc_info:
            client.generate("llama2", "p")
        assert exc_info.value.status_code == 500

    def test_missing_response_field(self):
        client = OllamaClient(client=httpx.Client(transport=ollama_transport(generate_body={"done": True})))
        with pytest.raises(ResponseParseError):
            client.generate("llama2", "p")

    def test_timeout_translated(self):
        transport = ollama_transport(exc=httpx.ReadTimeout("too slow"))
        client = OllamaClient(client=httpx.Client(transport=transport))
        with pytest.raises(ProviderTimeoutError):
            client.generate("llama2", "p")

    def test_connection_error_translated(self):
        transport = ollama_transport(exc=httpx.ConnectError("refused"))
        client = OllamaClient(client=httpx.Client(transport=transport))
        with pytest.raises(ProviderTransportError):
            client.health_check()


    def test_malformed_base_url_translated(self):
        client = OllamaClient("http://[::1", client=httpx.Client(transport=ollama_transport()))
        with pytest.raises(ProviderTransportError):
            client.health_check()
        with pytest.raises(ProviderTransportError):
            client.generate("llama2", "prompt")


class TestNetworkGenerateProvider:

    def make(self, **kwargs):
        return NetworkGenerateProvider(client=httpx.Client(transport=ollama_transport(**kwargs)))

    def test_available_when_tags_answer(self):
        assert self.make().is_available() is True

    def test_unavailable_on_error_status(self):
        assert self.make(tags_status=503).is_available() is False

    def test_unavailable_when_unreachable(self):
        assert self.make(exc=httpx.ConnectError("refused")).is_available() is False

    def test_unavailable_with_malformed_base_url(self):
        provider = NetworkGenerateProvider("http://[::1", client=httpx.Client(transport=ollama_transport()))
        assert provider.is_available() is False

    def test_analyze_parses_model_answer(self, request_with_context):
        result = self.make().analyze(request_with_context)

        assert result.scores.mission_alignment == pytest.approx(3.2)
        assert result.final_score == pytest.approx(8.0)
        assert result.recommendation == "strongly_pursue"
        assert result.provider == "ollama"
        assert result.from_cache is False
        assert result.duration >= 0

    def test_prompt_carries_idea_and_context(self, request_with_context):
        transport = ollama_transport()
        provider = NetworkGenerateProvider(client=httpx.Client(transport=transport))
        provider.analyze(request_with_context)

        prompt = json.loads(transport.seen[0].content)["prompt"]
        assert request_with_context.idea in prompt
        assert "G1: Build AI-powered developer tools" in prompt
        assert "- Primary: python, fastapi" in prompt

    def test_missing_context_rejected(self):
        with pytest.raises(MissingContextError):
            self.make().analyze(AnalysisRequest(idea="an idea"))

    def test_out_of_range_score_rejected(self, request_with_context):
        answer = dict(LLM_ANSWER, scores={"mission_alignment": 4.5, "anti_challenge": 1, "strategic_fit": 1})
        provider = self.make(generate_body={"response": json.dumps(answer)})
        with pytest.raises(ScoreValidationError):
            provider.analyze(request_with_context)

    def test_custom_name(self):
        provider = NetworkGenerateProvider(name="ollama-mistral", client=httpx.Client(transport=ollama_transport()))
        assert provider.name() == "ollama-mistral"


# --- Fallback chain ---

class TestFallbackProvider:

    def test_first_success_wins(self, stub_provider_factory, request_with_context, transport_error):
        failing = stub_provider_factory("a", error=transport_error)
        winner = stub_provider_factory("b")
        never = stub_provider_factory("c")

        result = FallbackProvider([failing, winner, never]).analyze(request_with_context)

        assert result.provider == "b"
        assert (failing.calls, winner.calls, never.calls) == (1, 1, 0)

    def test_unavailable_members_skipped(self, stub_provider_factory, request_with_context):
        offline = stub_provider_factory("offline", available=False)
        online = stub_provider_factory("online")

        result = FallbackProvider([offline, online]).analyze(request_with_context)

        assert result.provider == "online"
        assert offline.calls == 0

    def test_all_failed_cites_last_error(self, stub_provider_factory, request_with_context, transport_error):
        last = ProviderHTTPError(502, "bad gateway")
        chain = FallbackProvider([
            stub_provider_factory("a", error=transport_error),
            stub_provider_factory("b", error=last),
        ])

        with pytest.raises(AllProvidersFailedError) as exc_info:
            chain.analyze(request_with_context)
        assert exc_info.value.last_error is last
        assert "bad gateway" in str(exc_info.value)

    def test_no_available_members(self, stub_provider_factory, request_with_context):
        chain = FallbackProvider([stub_provider_factory("a", available=False)])
        with pytest.raises(NoProvidersAvailableError):
            chain.analyze(request_with_context)

    def test_unexpected_exception_becomes_typed_error(self, stub_provider_factory, request_with_context):
        chain = FallbackProvider([stub_provider_factory("a", error=RuntimeError("boom"))])
        with pytest.raises(AllProvidersFailedError):
            chain.analyze(request_with_context)

    def test_deadline_stops_new_attempts(self, stub_provider_factory, request_with_context, transport_error):
        first = stub_provider_factory("a", error=transport_error, on_analyze=lambda: time.sleep(0.02))
        second = stub_provider_factory("b")
        chain = FallbackProvider([first, second], deadline=0.001)

        with pytest.raises(DeadlineExceededError):
            chain.analyze(request_with_context)
        assert second.calls == 0

    def test_availability_is_any_member(self, stub_provider_factory):
        assert FallbackProvider([
            stub_provider_factory("a", available=False),
            stub_provider_factory("b"),
        ]).is_available()
        assert not FallbackProvider([]).is_available()

    def test_raising_availability_check_skips_member(self, stub_provider_factory, request_with_context):
        broken = stub_provider_factory("broken")
        broken.is_available = Mock(side_effect=RuntimeError("check crashed"))
        healthy = stub_provider_factory("healthy")
        chain = FallbackProvider([broken, healthy])

        assert chain.is_available() is True
        assert chain.analyze(request_with_context).provider == "healthy"
        assert broken.calls == 0

    def test_default_chain_order(self):
        chain = create_default_fallback_chain("http://localhost:11434", "llama2")
        assert [p.name() for p in chain.providers] == ["ollama", "rule_based"]


def test_check_available_reports_raising_provider_as_unavailable(stub_provider_factory):
    provider = stub_provider_factory("a")
    assert check_available(provider) is True
    provider.is_available = Mock(side_effect=ValueError("bad state"))
    assert check_available(provider) is False
