"""Configurable HTTP adapter for arbitrary third-party scoring services.

Request bodies are either a default JSON envelope or a Jinja2 template;
responses are read through alias tables so services that name their fields
differently integrate without code changes.  Plain-text answers degrade to a
neutral mid-range result instead of failing.
"""
import json
import math
import time
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx
import jinja2

from core.config import GenericHTTPConfig, parse_headers
from core.errors import (
    ConfigError,
    ProviderHTTPError,
    ScoreValidationError,
    TemplateCompileError,
    TemplateRenderError,
)
from core.logging import logger

from .providers import TRANSPORT_ERRORS, translate_transport_error
from .types import (
    AnalysisRequest,
    AnalysisResult,
    Provider,
    ProviderKind,
    Recommendation,
    ScoreBreakdown,
    recommendation_for,
)

__all__ = [
    "EXPLANATION_ALIASES",
    "FINAL_SCORE_ALIASES",
    "GenericHTTPProvider",
    "RECOMMENDATION_ALIASES",
    "SCORE_ALIASES",
    "parse_headers",
    "parse_response_body",
]

MAX_ERROR_BODY_CHARS = 512

# Candidate key names per logical field, tried in order.
SCORE_ALIASES: Dict[str, Sequence[str]] = {
    "mission_alignment": ("mission_alignment", "missionAlignment", "mission"),
    "anti_challenge": ("anti_challenge", "antiChallenge", "challenges"),
    "strategic_fit": ("strategic_fit", "strategicFit", "strategic"),
}
FINAL_SCORE_ALIASES: Sequence[str] = ("final_score", "finalScore", "score", "total_score")
RECOMMENDATION_ALIASES: Sequence[str] = ("recommendation", "action", "decision")
EXPLANATION_ALIASES: Dict[str, Sequence[str]] = {
    "overall": ("reasoning", "explanation", "analysis"),
    "mission_alignment": ("mission_explanation", "mission_reasoning"),
    "anti_challenge": ("challenge_explanation", "challenge_reasoning"),
    "strategic_fit": ("strategic_explanation", "strategic_reasoning"),
}

# Neutral result for non-JSON answers: the midpoint of every bound.
TEXT_FALLBACK_SCORES = ScoreBreakdown(mission_alignment=2.0, anti_challenge=1.75, strategic_fit=1.25)
TEXT_FALLBACK_FINAL_SCORE = 5.0

_TEMPLATE_ENV = jinja2.Environment(autoescape=False, undefined=jinja2.StrictUndefined)


def _documents(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Top-level object first, then a nested ``scores`` object if present."""
    docs = [data]
    nested = data.get("scores")
    if isinstance(nested, dict):
        docs.append(nested)
    return docs


def _extract_float(docs: Iterable[Dict[str, Any]], keys: Sequence[str]) -> float:
    for doc in docs:
        for key in keys:
            value = doc.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return float(value)
    return 0.0


def _extract_string(docs: Iterable[Dict[str, Any]], keys: Sequence[str]) -> str:
    for doc in docs:
        for key in keys:
            value = doc.get(key)
            if isinstance(value, str) and value:
                return value
    return ""


def _parse_json_document(data: Dict[str, Any]) -> AnalysisResult:
    docs = _documents(data)
    scores = ScoreBreakdown(**{
        field: _extract_float(docs, aliases) for field, aliases in SCORE_ALIASES.items()
    })
    scores.validate()

    final_score = _extract_float(docs, FINAL_SCORE_ALIASES)
    if not math.isfinite(final_score):
        raise ScoreValidationError(f"final score must be a finite number, got {final_score}")
    if final_score == 0:
        final_score = scores.total()

    recommendation = _extract_string(docs, RECOMMENDATION_ALIASES) or recommendation_for(final_score)

    explanations = {}
    for field, aliases in EXPLANATION_ALIASES.items():
        text = _extract_string(docs, aliases)
        if text:
            explanations[field] = text

    return AnalysisResult(
        scores=scores,
        final_score=final_score,
        recommendation=recommendation,
        explanations=explanations,
    )


def _parse_text(content: str) -> AnalysisResult:
    return AnalysisResult(
        scores=ScoreBreakdown(
            mission_alignment=TEXT_FALLBACK_SCORES.mission_alignment,
            anti_challenge=TEXT_FALLBACK_SCORES.anti_challenge,
            strategic_fit=TEXT_FALLBACK_SCORES.strategic_fit,
        ),
        final_score=TEXT_FALLBACK_FINAL_SCORE,
        recommendation=Recommendation.REVIEW.value,
        explanations={"overall": content},
    )


def parse_response_body(body: str) -> AnalysisResult:
    """Parse a JSON object via the alias tables, anything else as plain text.

    Only the JSON path can fail (category score out of bounds).
    """
    try:
        data = json.loads(body)
    except ValueError:
        data = None
    if isinstance(data, dict):
        return _parse_json_document(data)
    return _parse_text(body)


class GenericHTTPProvider(Provider):
    """POSTs ideas to a configured endpoint and adapts whatever comes back."""

    kind = ProviderKind.GENERIC_HTTP

    def __init__(self, config: GenericHTTPConfig, client: Optional[httpx.Client] = None):
        self.config = config
        self._client = client or httpx.Client()
        self._template: Optional[jinja2.Template] = None
        self._template_error: Optional[str] = None
        if config.request_template:
            try:
                self._template = _TEMPLATE_ENV.from_string(config.request_template)
            except jinja2.TemplateSyntaxError as e:
                # Raised from every analyze() call.
                self._template_error = f"invalid request template: {e}"
                logger.error(f"{config.name}: {self._template_error}")

    def name(self) -> str:
        return self.config.name

    def is_available(self) -> bool:
        return bool(self.config.endpoint)

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    def build_request_body(self, request: AnalysisRequest) -> bytes:
        if self._template_error is not None:
            raise TemplateCompileError(self._template_error)
        if self._template is None:
            body: Dict[str, Any] = {"idea": request.idea}
            if request.context is not None:
                body.update(request.context.model_dump(mode="json"))
            return json.dumps(body).encode("utf-8")

        context = request.context
        context_json = context.model_dump_json() if context is not None else ""
        try:
            rendered = self._template.render(
                idea=request.idea,
                context_raw=context,
                context_json=context_json,
            )
        except (jinja2.TemplateError, TypeError, ValueError) as e:
            raise TemplateRenderError(f"failed to execute template: {e}") from e
        return rendered.encode("utf-8")

    def _headers(self) -> Dict[str, str]:
        headers = dict(self.config.headers)
        if not any(k.lower() == "content-type" for k in headers):
            headers["Content-Type"] = "application/json"
        return headers

    def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        start = time.perf_counter()
        if not self.is_available():
            raise ConfigError(f"{self.name()} is not configured: endpoint not set")

        body = self.build_request_body(request)
        try:
            response = self._client.post(
                self.config.endpoint,
                content=body,
                headers=self._headers(),
                timeout=self.config.timeout,
            )
        except TRANSPORT_ERRORS as e:
            raise translate_transport_error(e, self.config.endpoint) from e

        if not 200 <= response.status_code < 300:
            raise ProviderHTTPError(response.status_code, response.text[:MAX_ERROR_BODY_CHARS])

        result = parse_response_body(response.text)
        result.provider = self.name()
        result.duration = time.perf_counter() - start
        result.from_cache = False
        return result
