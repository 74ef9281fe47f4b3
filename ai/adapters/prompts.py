"""Prompt construction and free-form response parsing for generative backends."""
import json
import re
from typing import Any, Dict, Optional

from core.errors import MissingContextError, ProviderError, ResponseParseError, ScoreValidationError
from scoring.models import DomainContext

from .types import AnalysisResult, Recommendation, ScoreBreakdown, recommendation_for

__all__ = ["PROMPT_TEMPLATE", "build_analysis_prompt", "format_context", "parse_llm_response"]

PROMPT_TEMPLATE = """You are an expert at evaluating ideas against personal goals and values.

TELOS (Personal Goals & Values):
{context}

IDEA TO EVALUATE:
{idea}

TASK:
Analyze this idea and provide a detailed scoring breakdown based on the telos above.

SCORING FRAMEWORK:

1. Mission Alignment (0-4.0 points total - 40%):
   - Domain Expertise (0-1.2): Does this leverage existing skills and domain knowledge?
   - AI Alignment (0-1.5): How central is AI to this idea?
   - Execution Support (0-0.8): Can this be delivered quickly?
   - Revenue Potential (0-0.5): Is there a clear path to revenue?

2. Anti-Challenge Patterns (0-3.5 points total - 35%):
   - Avoid Context-Switching (0-1.2): Does this use your current stack?
   - Rapid Prototyping (0-1.0): Can you build an MVP quickly?
   - Accountability (0-0.8): Is there external accountability?
   - Income Anxiety (0-0.5): How quickly can this generate revenue?

3. Strategic Fit (0-2.5 points total - 25%):
   - Stack Compatibility (0-1.0): Enables flow state with your stack?
   - Shipping Habit (0-0.8): Creates reusable systems/code?
   - Public Accountability (0-0.4): Can you validate quickly?
   - Revenue Testing (0-0.3): Is this scalable (SaaS vs consulting)?

RESPONSE FORMAT:
Respond with valid JSON in this exact format:
{{
  "scores": {{
    "mission_alignment": 2.5,
    "anti_challenge": 2.0,
    "strategic_fit": 1.5
  }},
  "final_score": 6.0,
  "recommendation": "pursue",
  "explanations": {{
    "mission_alignment": "explanation here",
    "anti_challenge": "explanation here",
    "strategic_fit": "explanation here"
  }}
}}

IMPORTANT:
- Provide ONLY the JSON response, no additional text
- Ensure all scores are within their valid ranges
- final_score should be the sum of the three category scores
- recommendation should be one of: "strongly_pursue", "pursue", "review", "deprioritize"
"""

# Labels older prompt revisions asked models for.
_LEGACY_RECOMMENDATIONS = {
    "PRIORITIZE NOW": Recommendation.STRONGLY_PURSUE.value,
    "GOOD ALIGNMENT": Recommendation.PURSUE.value,
    "CONSIDER LATER": Recommendation.REVIEW.value,
    "AVOID FOR NOW": Recommendation.DEPRIORITIZE.value,
}
_VALID_RECOMMENDATIONS = {r.value for r in Recommendation}

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def format_context(context: DomainContext) -> str:
    """Render the domain context as Markdown sections for the prompt."""
    lines = []
    if context.goals:
        lines.append("## Goals:")
        for goal in context.goals:
            lines.append(f"- {goal.id}: {goal.description}")
            if goal.deadline is not None:
                lines.append(f"  Deadline: {goal.deadline:%Y-%m-%d}")
        lines.append("")
    if context.strategies:
        lines.append("## Strategies:")
        lines.extend(f"- {s.id}: {s.description}" for s in context.strategies)
        lines.append("")
    if context.stack.primary or context.stack.secondary:
        lines.append("## Tech Stack:")
        if context.stack.primary:
            lines.append(f"- Primary: {', '.join(context.stack.primary)}")
        if context.stack.secondary:
            lines.append(f"- Secondary: {', '.join(context.stack.secondary)}")
        lines.append("")
    if context.failure_patterns:
        lines.append("## Failure Patterns to Avoid:")
        lines.extend(f"- {p.name}: {p.description}" for p in context.failure_patterns)
        lines.append("")
    return "\n".join(lines)


def build_analysis_prompt(idea: str, context: Optional[DomainContext]) -> str:
    if not idea:
        raise ProviderError("idea content is required")
    if context is None:
        raise MissingContextError("domain context is required to build a prompt")
    return PROMPT_TEMPLATE.format(context=format_context(context), idea=idea)


def _extract_json(text: str) -> str:
    """Pull a JSON object out of text that may carry fences or chatter."""
    fenced = _FENCE_RE.search(text)
    if fenced:
        return fenced.group(1).strip()

    start = text.find("{")
    if start != -1:
        depth = 0
        for i, ch in enumerate(text[start:], start):
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
    return text.strip()


def _as_float(value: Any, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ResponseParseError(f"{field} must be a number, got {value!r}")
    return float(value)


def parse_llm_response(text: str) -> AnalysisResult:
    """Parse a model's free-form answer into an AnalysisResult.

    Provider name, duration and cache flag are left for the caller to fill.
    """
    payload = _extract_json(text)
    if not payload:
        raise ResponseParseError("no JSON found in response")
    try:
        data: Dict[str, Any] = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ResponseParseError(f"unmarshal JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise ResponseParseError("response JSON is not an object")

    raw_scores = data.get("scores")
    if not isinstance(raw_scores, dict):
        raise ResponseParseError("response has no 'scores' object")

    scores = ScoreBreakdown(
        mission_alignment=_as_float(raw_scores.get("mission_alignment", 0), "mission_alignment"),
        anti_challenge=_as_float(raw_scores.get("anti_challenge", 0), "anti_challenge"),
        strategic_fit=_as_float(raw_scores.get("strategic_fit", 0), "strategic_fit"),
    )
    scores.validate()

    if data.get("final_score") is None:
        final_score = scores.total()
    else:
        final_score = _as_float(data["final_score"], "final_score")
    if not 0.0 <= final_score <= 10.0:
        raise ScoreValidationError(f"final_score must be between 0-10, got {final_score:.2f}")

    recommendation = data.get("recommendation")
    if isinstance(recommendation, str):
        recommendation = _LEGACY_RECOMMENDATIONS.get(recommendation.strip().upper(), recommendation.strip().lower())
    if recommendation not in _VALID_RECOMMENDATIONS:
        recommendation = recommendation_for(final_score)

    explanations = data.get("explanations") or {}
    if not isinstance(explanations, dict):
        explanations = {"overall": str(explanations)}

    return AnalysisResult(
        scores=scores,
        final_score=final_score,
        recommendation=recommendation,
        explanations={str(k): str(v) for k, v in explanations.items()},
    )
