"""Adapters layer: analysis providers, similarity caching and the provider manager.

The sub-modules are plug-compatible: every backend implements ``Provider`` and
can be wrapped, chained or managed without call sites changing.
"""

from __future__ import annotations

from .cache import CacheStats, SimilarityCache, jaccard_similarity, normalize_text
from .cached_provider import CachedProvider
from .generic_http import GenericHTTPProvider, parse_response_body
from .manager import HealthStatus, Manager, ProviderStats, create_manager
from .providers import (
    FallbackProvider,
    NetworkGenerateProvider,
    OllamaClient,
    RuleBasedProvider,
    check_available,
    create_default_fallback_chain,
)
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
    "AnalysisRequest",
    "AnalysisResult",
    "CacheStats",
    "CachedProvider",
    "FallbackProvider",
    "GenericHTTPProvider",
    "HealthStatus",
    "Manager",
    "NetworkGenerateProvider",
    "OllamaClient",
    "Provider",
    "ProviderKind",
    "ProviderStats",
    "Recommendation",
    "RuleBasedProvider",
    "ScoreBreakdown",
    "check_available",
    "SimilarityCache",
    "create_default_fallback_chain",
    "create_manager",
    "jaccard_similarity",
    "normalize_text",
    "parse_response_body",
    "recommendation_for",
]
