"""Provider decorator that puts a SimilarityCache in front of another provider."""
from typing import Optional

from core.logging import logger

from .cache import CacheStats, SimilarityCache
from .types import AnalysisRequest, AnalysisResult, Provider, ProviderKind


class CachedProvider(Provider):
    """Serves repeated (or near-identical) ideas from cache.

    Each instance owns its cache; do not share one cache between differently
    configured providers.
    """

    kind = ProviderKind.CACHED

    def __init__(self, provider: Provider, cache: Optional[SimilarityCache] = None):
        self._provider = provider
        self._cache = cache if cache is not None else SimilarityCache()

    @property
    def inner(self) -> Provider:
        return self._provider

    @property
    def cache(self) -> SimilarityCache:
        return self._cache

    def name(self) -> str:
        return self._provider.name()

    def is_available(self) -> bool:
        return self._provider.is_available()

    def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        cached = self._cache.get(request.idea)
        if isinstance(cached, AnalysisResult):
            logger.debug(f"{self.name()}: serving cached analysis")
            return cached.with_cache_flag(True)

        result = self._provider.analyze(request)
        self._cache.store(request.idea, result.with_cache_flag(False))
        return result.with_cache_flag(False)

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def clear_cache(self) -> None:
        self._cache.clear()
