"""
Latest-version resolution with per-package memoization.

A ResolverContext owns the process-lifetime cache of resolution outcomes and
one lock per package, so concurrent imports of the same package cost a single
registry lookup and every caller sees the same answer.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Type

import httpx

from .dependency import Dependency, compare_versions, is_prerelease, is_range
from .error_handling import RegistryError
from .registry_clients import BaseRegistryClient, get_registry_client_class
from .structured_logging import get_resolver_logger, log_resolution


class CacheState(Enum):
    """Lifecycle of a resolver cache entry."""

    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    NO_UPDATE = "no_update"
    FAILED = "failed"


@dataclass(frozen=True)
class ResolverCacheEntry:
    """Outcome of resolving one package name."""

    state: CacheState = CacheState.UNRESOLVED
    version: Optional[str] = None
    error: Optional[RegistryError] = None

    @property
    def is_terminal(self) -> bool:
        return self.state is not CacheState.UNRESOLVED


_UNRESOLVED = ResolverCacheEntry()


class ResolverStats:
    """Counters for cache effectiveness."""

    def __init__(self):
        self.hits = 0
        self.misses = 0
        self.skipped_ranges = 0

    def get_stats(self) -> Dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "skipped_ranges": self.skipped_ranges,
        }


class ResolverContext:
    """
    Resolves the latest released version of dependencies.

    Use as an async context manager so the registry clients' HTTP sessions are
    opened once and closed at the end:

        async with ResolverContext() as resolver:
            latest = await resolver.resolve_latest(parse("npm:chalk@5.0.0"))
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clients: Optional[Dict[str, BaseRegistryClient]] = None,
        rate_limit_rps: Optional[float] = None,
    ):
        """
        Args:
            transport: Optional httpx transport shared by all registry clients
            clients: Pre-built clients keyed by scheme, overriding the defaults
            rate_limit_rps: Requests per second per registry family
        """
        self.transport = transport
        self.rate_limit_rps = rate_limit_rps
        self._clients: Dict[str, BaseRegistryClient] = dict(clients or {})
        self._clients_by_class: Dict[Type[BaseRegistryClient], BaseRegistryClient] = {}
        self._cache: Dict[str, ResolverCacheEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._opened = False
        self.stats = ResolverStats()

    async def __aenter__(self):
        for client in self._clients.values():
            await client.__aenter__()
        self._opened = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        for client in list(self._clients.values()) + list(self._clients_by_class.values()):
            await client.__aexit__(exc_type, exc_val, exc_tb)
        self._opened = False

    @property
    def request_count(self) -> int:
        """Number of outbound registry requests issued through this context."""
        clients = {id(c): c for c in list(self._clients.values()) + list(self._clients_by_class.values())}
        return sum(c.request_count for c in clients.values())

    async def client_for(self, dependency: Dependency) -> BaseRegistryClient:
        """Get (and open on first use) the client for a dependency's scheme."""
        scheme = dependency.scheme.lower()
        if scheme in self._clients:
            return self._clients[scheme]

        client_class = get_registry_client_class(scheme)
        client = self._clients_by_class.get(client_class)
        if client is None:
            client = client_class(
                rate_limit_rps=self.rate_limit_rps, transport=self.transport
            )
            await client.__aenter__()
            self._clients_by_class[client_class] = client
        return client

    @staticmethod
    def cache_key(dependency: Dependency) -> str:
        return f"{dependency.scheme.lower()}:{dependency.name}"

    def get_cache_entry(self, dependency: Dependency) -> ResolverCacheEntry:
        return self._cache.get(self.cache_key(dependency), _UNRESOLVED)

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def _store(self, key: str, entry: ResolverCacheEntry) -> ResolverCacheEntry:
        if key in self._cache:
            raise RuntimeError(f"Cache entry for {key} written twice")
        self._cache[key] = entry
        return entry

    async def resolve_latest(self, dependency: Dependency) -> Optional[Dependency]:
        """
        Resolve the latest release of a dependency.

        Args:
            dependency: The dependency as currently referenced

        Returns:
            The dependency at its latest version, or None if it is up to date,
            pinned to a range, or not resolvable for its scheme

        Raises:
            RegistryError: The registry lookup for this package failed
        """
        if not self._opened:
            raise RuntimeError("ResolverContext must be used as an async context manager")

        if is_range(dependency.version):
            self.stats.skipped_ranges += 1
            get_resolver_logger().debug(
                "range_skipped", package_name=dependency.name, version=dependency.version
            )
            return None

        key = self.cache_key(dependency)
        async with self._lock_for(key):
            entry = self._cache.get(key)
            cached = entry is not None
            if cached:
                self.stats.hits += 1
            else:
                self.stats.misses += 1
                entry = self._store(key, await self._resolve(dependency))

        return self._apply(dependency, entry, cached)

    async def _resolve(self, dependency: Dependency) -> ResolverCacheEntry:
        client = await self.client_for(dependency)
        try:
            candidate = await client.fetch_latest(dependency)
        except RegistryError as e:
            return ResolverCacheEntry(CacheState.FAILED, error=e)

        if candidate is None or candidate == dependency.version:
            return ResolverCacheEntry(CacheState.NO_UPDATE)
        if is_prerelease(candidate):
            return ResolverCacheEntry(CacheState.NO_UPDATE)
        if compare_versions(candidate, dependency.version) == -1:
            # Never downgrade, even when a redirect points at an older release
            return ResolverCacheEntry(CacheState.NO_UPDATE)
        return ResolverCacheEntry(CacheState.RESOLVED, version=candidate)

    def _apply(
        self, dependency: Dependency, entry: ResolverCacheEntry, cached: bool
    ) -> Optional[Dependency]:
        if entry.state is CacheState.FAILED:
            raise entry.error

        latest = entry.version if entry.state is CacheState.RESOLVED else None
        # Another occurrence of the same package may already be at the latest version
        if latest is not None and (
            latest == dependency.version
            or compare_versions(latest, dependency.version) == -1
        ):
            latest = None

        log_resolution(dependency.name, dependency.version, latest, cached=cached)
        if latest is None:
            return None
        return dependency.with_version(latest)

    def get_stats(self) -> Dict[str, int]:
        stats = self.stats.get_stats()
        stats["requests"] = self.request_count
        stats["cached_names"] = len(self._cache)
        return stats
