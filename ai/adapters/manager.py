from __future__ import annotations
"""Provider manager with primary selection, fallback and usage statistics.

The manager keeps an ordered registry of Provider instances.  ``analyze``
tries the primary provider first and, when fallback is enabled, walks the
remaining providers in registry order until one succeeds.  Every attempt is
counted per provider.  A health map caches the last ``is_available`` result of
each provider; it is informational only, routing always checks live.
"""

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import Config, ManagerConfig
from core.errors import (
    AllProvidersFailedError,
    ConfigError,
    DeadlineExceededError,
    FallbackDisabledError,
    NoProvidersAvailableError,
    PreferenceError,
    ProviderNotFoundError,
    ProviderUnavailableError,
    TelosMatrixError,
)
from core.locks import ReadWriteLock
from core.logging import logger
from core.preferences import PreferenceStore

from .cache import SimilarityCache
from .cached_provider import CachedProvider
from .generic_http import GenericHTTPProvider
from .providers import NetworkGenerateProvider, RuleBasedProvider, check_available
from .types import AnalysisRequest, AnalysisResult, DomainContext, Provider

__all__ = ["HealthStatus", "Manager", "ProviderStats", "create_manager"]

HEALTH_CHECK_JOB_ID = "provider-health-check"


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Statistics & health records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProviderStats:
    name: str
    available: bool
    total_requests: int
    success_count: int
    failure_count: int
    average_latency: float  # seconds, over successful calls
    last_used: Optional[datetime]


@dataclass(frozen=True)
class HealthStatus:
    available: bool
    last_checked: datetime
    last_error: Optional[str] = None


class _StatsRecord:
    """Mutable counters for one provider, guarded by their own lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.total_requests = 0
        self.success_count = 0
        self.failure_count = 0
        self.total_latency_ns = 0
        self.last_used: Optional[datetime] = None

    def record_attempt(self) -> None:
        with self._lock:
            self.total_requests += 1
            self.last_used = _now()

    def record_success(self, latency_ns: int) -> None:
        with self._lock:
            self.success_count += 1
            self.total_latency_ns += latency_ns

    def record_failure(self) -> None:
        with self._lock:
            self.failure_count += 1

    def snapshot(self, name: str, available: bool) -> ProviderStats:
        with self._lock:
            avg = (self.total_latency_ns / self.success_count / 1e9) if self.success_count else 0.0
            return ProviderStats(
                name=name,
                available=available,
                total_requests=self.total_requests,
                success_count=self.success_count,
                failure_count=self.failure_count,
                average_latency=avg,
                last_used=self.last_used,
            )

    def reset(self) -> None:
        with self._lock:
            self.total_requests = 0
            self.success_count = 0
            self.failure_count = 0
            self.total_latency_ns = 0
            self.last_used = None


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class Manager:
    """Routes analysis requests across registered providers.

    One instance is meant to live for the whole process and be passed to
    whoever needs it.  Safe for concurrent ``analyze`` calls.
    """

    def __init__(self, config: Optional[ManagerConfig] = None, providers: Sequence[Provider] = ()):
        self._config = config or ManagerConfig()
        self._lock = ReadWriteLock()
        self._providers: List[Provider] = []
        self._primary: Optional[Provider] = None
        self._fallback_enabled = self._config.fallback_enabled
        self._health: Dict[str, HealthStatus] = {}
        self._stats: Dict[str, _StatsRecord] = {}
        self._scheduler: Optional[BackgroundScheduler] = None

        for provider in providers:
            self.register_provider(provider)
        if self._config.priority:
            self.apply_priority_order(self._config.priority)

        if self._config.default_provider:
            try:
                self.set_primary_provider(self._config.default_provider)
            except TelosMatrixError as e:
                logger.warning(f"Default provider '{self._config.default_provider}' not usable ({e}); selecting automatically")
                self.select_primary_provider()
        else:
            self.select_primary_provider()

    @property
    def config(self) -> ManagerConfig:
        with self._lock.read():
            return self._config

    # --- Registry ---

    def register_provider(self, provider: Provider) -> None:
        name = provider.name()
        available = check_available(provider)
        with self._lock.write():
            if name in self._stats:
                raise ConfigError(f"provider already registered: {name}")
            self._providers.append(provider)
            self._stats[name] = _StatsRecord()
            self._health[name] = HealthStatus(available=available, last_checked=_now())
        logger.info(f"Registered provider {name} (available={available})")

    def get_providers(self) -> List[Provider]:
        with self._lock.read():
            return list(self._providers)

    def get_all_providers(self) -> Dict[str, Provider]:
        with self._lock.read():
            return {p.name(): p for p in self._providers}

    def get_available_providers(self) -> List[Provider]:
        return [p for p in self.get_providers() if check_available(p)]

    def _find(self, name: str) -> Provider:
        for provider in self.get_providers():
            if provider.name() == name:
                return provider
        raise ProviderNotFoundError(f"provider not found: {name}")

    def apply_priority_order(self, priority: Sequence[str]) -> None:
        """Named providers first in the given order, the rest keep their order."""
        with self._lock.write():
            by_name = {p.name(): p for p in self._providers}
            ordered = [by_name[name] for name in dict.fromkeys(priority) if name in by_name]
            seen = {p.name() for p in ordered}
            ordered.extend(p for p in self._providers if p.name() not in seen)
            self._providers = ordered

    # --- Primary selection ---

    def set_primary_provider(self, name: str) -> None:
        provider = self._find(name)
        if not check_available(provider):
            raise ProviderUnavailableError(f"provider not available: {name}")
        with self._lock.write():
            self._primary = provider
        logger.info(f"Primary provider set to {name}")

    def select_primary_provider(self) -> Optional[Provider]:
        """Pick the first available provider in registry order."""
        selected = None
        for provider in self.get_providers():
            if check_available(provider):
                selected = provider
                break
        with self._lock.write():
            self._primary = selected
        if selected is None:
            logger.warning("No available provider to select as primary")
        return selected

    @property
    def primary_provider(self) -> Optional[Provider]:
        with self._lock.read():
            return self._primary

    @property
    def primary_provider_name(self) -> str:
        primary = self.primary_provider
        return primary.name() if primary is not None else ""

    def enable_fallback(self, enabled: bool) -> None:
        with self._lock.write():
            self._fallback_enabled = enabled

    @property
    def fallback_enabled(self) -> bool:
        with self._lock.read():
            return self._fallback_enabled

    def load_config(self, config: ManagerConfig) -> None:
        """Apply default provider, fallback flag and priority at runtime."""
        if config.priority:
            self.apply_priority_order(config.priority)
        if config.default_provider:
            self.set_primary_provider(config.default_provider)
        self.enable_fallback(config.fallback_enabled)
        with self._lock.write():
            self._config = config

    # --- Analysis ---

    def _analyze_with(self, provider: Provider, request: AnalysisRequest) -> AnalysisResult:
        stats = self._stats_for(provider.name())
        stats.record_attempt()
        start = time.perf_counter_ns()
        try:
            result = provider.analyze(request)
        except Exception:
            stats.record_failure()
            raise
        stats.record_success(time.perf_counter_ns() - start)
        return result

    def _stats_for(self, name: str) -> _StatsRecord:
        with self._lock.read():
            stats = self._stats.get(name)
        if stats is None:
            raise ProviderNotFoundError(f"provider not found: {name}")
        return stats

    def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        with self._lock.read():
            primary = self._primary
            fallback_enabled = self._fallback_enabled
            providers = list(self._providers)
            deadline = self._config.deadline

        started = time.monotonic()
        last_error: Optional[BaseException] = None

        if primary is not None:
            try:
                return self._analyze_with(primary, request)
            except TelosMatrixError as e:
                logger.warning(f"Primary provider {primary.name()} failed: {e}")
                last_error = e
            except Exception as e:
                logger.error(f"Unexpected error in primary provider {primary.name()}: {e}", exc_info=True)
                last_error = e

        if not fallback_enabled:
            if primary is None:
                raise NoProvidersAvailableError("no primary provider selected and fallback disabled")
            raise FallbackDisabledError(
                f"primary provider {primary.name()} failed and fallback disabled: {last_error}"
            ) from last_error

        for provider in providers:
            if primary is not None and provider.name() == primary.name():
                continue
            if deadline is not None and time.monotonic() - started >= deadline:
                raise DeadlineExceededError(
                    f"analysis deadline of {deadline}s exceeded, last error: {last_error}"
                ) from last_error
            if not check_available(provider):
                continue
            try:
                result = self._analyze_with(provider, request)
            except TelosMatrixError as e:
                logger.warning(f"Provider {provider.name()} failed: {e}")
                last_error = e
                continue
            except Exception as e:
                logger.error(f"Unexpected error in provider {provider.name()}: {e}", exc_info=True)
                last_error = e
                continue
            logger.info(f"Fallback succeeded with provider: {provider.name()}")
            return result

        if last_error is not None:
            raise AllProvidersFailedError(last_error) from last_error
        raise NoProvidersAvailableError("no providers available")

    def analyze_idea(self, idea: str, context: Optional[DomainContext] = None) -> AnalysisResult:
        return self.analyze(AnalysisRequest(idea=idea, context=context))

    # --- Statistics ---

    def get_stats(self) -> List[ProviderStats]:
        with self._lock.read():
            entries = [(p, self._stats[p.name()]) for p in self._providers]
        return [stats.snapshot(p.name(), check_available(p)) for p, stats in entries]

    def get_provider_stats(self, name: str) -> ProviderStats:
        provider = self._find(name)
        return self._stats_for(name).snapshot(name, check_available(provider))

    def reset_stats(self) -> None:
        with self._lock.read():
            records = list(self._stats.values())
        for stats in records:
            stats.reset()

    # --- Health ---

    def health_check(self) -> Dict[str, bool]:
        """Probe every provider and refresh the cached health map."""
        status: Dict[str, bool] = {}
        for provider in self.get_providers():
            name = provider.name()
            error = None
            try:
                available = provider.is_available()
            except Exception as e:
                logger.warning(f"Health check of {name} raised: {e}")
                available, error = False, str(e)
            status[name] = available
            with self._lock.write():
                self._health[name] = HealthStatus(available=available, last_checked=_now(), last_error=error)
        logger.debug(f"Health check: {status}")
        return status

    def get_health_status(self, name: str) -> HealthStatus:
        with self._lock.read():
            health = self._health.get(name)
        if health is None:
            raise ProviderNotFoundError(f"provider not found: {name}")
        return health

    def start_periodic_health_check(self, interval: Optional[float] = None) -> None:
        """Run health_check() every ``interval`` seconds in a background thread."""
        seconds = interval or self.config.health_check_interval
        if self._scheduler is not None:
            self.stop_periodic_health_check()
        scheduler = BackgroundScheduler(daemon=True)
        scheduler.add_job(
            self.health_check,
            IntervalTrigger(seconds=seconds),
            id=HEALTH_CHECK_JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(f"Periodic health check every {seconds}s started")

    def stop_periodic_health_check(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Periodic health check stopped")


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_manager(settings: Config, preferences: Optional[PreferenceStore] = None) -> Manager:
    """Build a Manager with every provider the settings describe."""
    cfg = settings.providers
    cache_cfg = cfg.cache

    def _maybe_cached(provider: Provider) -> Provider:
        if not cache_cfg.enabled:
            return provider
        return CachedProvider(provider, SimilarityCache(
            ttl_sec=cache_cfg.ttl_seconds,
            similarity_threshold=cache_cfg.similarity_threshold,
            max_size=cache_cfg.max_size,
        ))

    providers: List[Provider] = []
    if cfg.ollama.base_url:
        providers.append(_maybe_cached(NetworkGenerateProvider(
            base_url=cfg.ollama.base_url,
            model=cfg.ollama.model,
            timeout=cfg.ollama.timeout,
            name=cfg.ollama.name,
        )))
    for http_cfg in cfg.generic_http:
        providers.append(_maybe_cached(GenericHTTPProvider(http_cfg)))
    providers.append(RuleBasedProvider())

    manager_cfg = cfg.manager
    if not manager_cfg.default_provider and preferences is not None:
        try:
            saved = preferences.get_default_provider()
        except PreferenceError as e:
            logger.warning(f"Ignoring unreadable preferences: {e}")
            saved = ""
        if saved:
            manager_cfg = manager_cfg.model_copy(update={'default_provider': saved})

    return Manager(manager_cfg, providers)
