"""
Registry clients for looking up the latest release of a dependency.

One client per registry family: npm-style metadata, JSR-style metadata,
redirect probing for hosts that redirect an unversioned URL to the latest
release, and a no-op client for schemes that are never updated.
"""

import asyncio
import os
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type
from urllib.parse import quote

import httpx
from httpx import RequestError

from .cli_config import get_config
from .dependency import Dependency, is_prerelease, parse, parse_semver, to_uri
from .error_handling import (
    MalformedRegistryResponseError,
    RegistryError,
    RegistryNotFoundError,
    log_registry_error,
    sanitize_url,
)
from .structured_logging import log_registry_request

CREDENTIAL_PATTERN = re.compile(r"^[a-zA-Z0-9_\-+=/.]+$")


def _load_token_from_env(registry_type: str) -> Optional[str]:
    """Read a registry token from the environment, ignoring malformed values."""
    for env_var in (f"DEP_BUMPER_{registry_type.upper()}_TOKEN", f"{registry_type.upper()}_TOKEN"):
        value = os.getenv(env_var, "").strip()
        if not value:
            continue
        if CREDENTIAL_PATTERN.match(value):
            return value
        log_registry_error(
            "Invalid credential format in environment variable",
            "registry_clients",
            "_load_token_from_env",
            package_name=None,
        )
    return None


@dataclass(frozen=True)
class RegistryConfig:
    """Configuration for a metadata registry."""

    base_url: str
    token: Optional[str] = None

    def __post_init__(self):
        if not self.base_url or not isinstance(self.base_url, str):
            raise ValueError("base_url must be a non-empty string")
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))

    def get_auth_headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}


class RateLimiter:
    """Simple rate limiter to prevent overwhelming registries."""

    def __init__(self, requests_per_second: float = 10.0):
        self.requests_per_second = requests_per_second
        self.min_interval = 1.0 / requests_per_second
        self.last_request_time = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait if necessary to respect rate limits."""
        async with self._lock:
            time_since_last = time.monotonic() - self.last_request_time
            if time_since_last < self.min_interval:
                await asyncio.sleep(self.min_interval - time_since_last)
            self.last_request_time = time.monotonic()


class BaseRegistryClient(ABC):
    """
    Base class for registry clients.

    The HTTP client is created on context entry and closed on exit, so one
    client instance can be shared by every dependency of its registry family.
    """

    def __init__(
        self,
        registry_config: Optional[RegistryConfig] = None,
        rate_limit_rps: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        config = get_config()
        self.registry_config = registry_config
        self.rate_limiter = RateLimiter(rate_limit_rps or config.resolve.rate_limit)
        self.timeout = httpx.Timeout(
            timeout or config.network.read_timeout,
            connect=config.network.connect_timeout,
        )
        self.transport = transport
        self.client: Optional[httpx.AsyncClient] = None
        self.request_count = 0

        self._headers = {
            "User-Agent": config.network.user_agent,
            "Accept": "application/json",
        }
        if self.registry_config:
            self._headers.update(self.registry_config.get_auth_headers())

    async def __aenter__(self):
        """Initialize the HTTP client when entering the context."""
        self.client = httpx.AsyncClient(
            timeout=self.timeout, headers=self._headers, transport=self.transport
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Clean up the HTTP client when exiting the context."""
        if self.client:
            await self.client.aclose()
            self.client = None

    @abstractmethod
    async def fetch_latest(self, dependency: Dependency) -> Optional[str]:
        """Return the registry's candidate latest version, or None if there is none."""

    @abstractmethod
    def get_registry_type(self) -> str:
        """Get the registry type identifier."""

    def _require_client(self) -> httpx.AsyncClient:
        if self.client is None:
            raise RegistryError(
                "HTTP client not initialized - use within async context manager"
            )
        return self.client

    async def _send(self, method: str, url: str, package_name: str, **kwargs) -> httpx.Response:
        client = self._require_client()
        await self.rate_limiter.acquire()
        start_time = time.time()
        self.request_count += 1
        try:
            response = await client.request(method, url, **kwargs)
        except RequestError as e:
            raise RegistryError(
                f"Network error while querying {sanitize_url(url)}: {e}",
                package_name,
            ) from e
        log_registry_request(
            self.get_registry_type(),
            package_name,
            method,
            status_code=response.status_code,
            response_time_ms=round((time.time() - start_time) * 1000, 2),
        )
        return response

    async def _get_json(self, url: str, package_name: str) -> Dict[str, Any]:
        """
        Fetch a metadata document.

        Raises:
            RegistryNotFoundError: The registry has no such package
            RegistryError: Any other non-2xx answer or network failure
            MalformedRegistryResponseError: The body is not a JSON object
        """
        response = await self._send("GET", url, package_name)

        if response.status_code == 404:
            raise RegistryNotFoundError(
                f"Package {package_name} was not found in the {self.get_registry_type()} registry",
                package_name,
            )
        if not response.is_success:
            raise RegistryError(
                f"Failed to fetch {self.get_registry_type()} registry: "
                f"HTTP {response.status_code} {response.reason_phrase}",
                package_name,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedRegistryResponseError(
                f"Invalid JSON from {self.get_registry_type()} registry for {package_name}",
                package_name,
            ) from e
        if not isinstance(data, dict):
            raise MalformedRegistryResponseError(
                f"Expected a JSON object from {self.get_registry_type()} registry for {package_name}",
                package_name,
            )
        return data


class NpmRegistryClient(BaseRegistryClient):
    """npm-style registry: the "latest" distribution tag is the candidate."""

    def __init__(self, registry_config: Optional[RegistryConfig] = None, **kwargs):
        registry_config = registry_config or RegistryConfig(
            base_url=get_config().network.registry_urls["npm"],
            token=_load_token_from_env("npm"),
        )
        super().__init__(registry_config, **kwargs)

    def get_registry_type(self) -> str:
        return "npm"

    async def fetch_latest(self, dependency: Dependency) -> Optional[str]:
        url = f"{self.registry_config.base_url}/{quote(dependency.name, safe='@')}"
        data = await self._get_json(url, dependency.name)

        dist_tags = data.get("dist-tags")
        if not isinstance(dist_tags, dict) or not isinstance(dist_tags.get("latest"), str):
            raise MalformedRegistryResponseError(
                f"Could not find the latest version of {dependency.name} from registry.",
                dependency.name,
            )
        return dist_tags["latest"]


class JsrRegistryClient(BaseRegistryClient):
    """JSR-style registry: the greatest non-yanked, non-prerelease version."""

    def __init__(self, registry_config: Optional[RegistryConfig] = None, **kwargs):
        registry_config = registry_config or RegistryConfig(
            base_url=get_config().network.registry_urls["jsr"],
            token=_load_token_from_env("jsr"),
        )
        super().__init__(registry_config, **kwargs)

    def get_registry_type(self) -> str:
        return "jsr"

    async def fetch_latest(self, dependency: Dependency) -> Optional[str]:
        url = f"{self.registry_config.base_url}/{dependency.name}/meta.json"
        data = await self._get_json(url, dependency.name)

        versions = data.get("versions")
        if not isinstance(versions, dict):
            raise MalformedRegistryResponseError(
                f"Missing versions in JSR metadata for {dependency.name}",
                dependency.name,
            )

        candidates = []
        for version, meta in versions.items():
            if not isinstance(meta, dict):
                raise MalformedRegistryResponseError(
                    f"Invalid metadata for {dependency.name}@{version}",
                    dependency.name,
                )
            if meta.get("yanked", False) is True or is_prerelease(version):
                continue
            parsed = parse_semver(version)
            if parsed is not None:
                candidates.append((parsed, version))

        if not candidates:
            return None
        return max(candidates)[1]


class RedirectProbeClient(BaseRegistryClient):
    """
    Hosts such as deno.land redirect an unversioned URL to the latest release.

    A HEAD request on the unversioned URL is followed through its redirects;
    the version in the final URL is the candidate. No redirect, or a non-2xx
    answer, means there is nothing to update to.
    """

    def get_registry_type(self) -> str:
        return "redirect"

    async def fetch_latest(self, dependency: Dependency) -> Optional[str]:
        url = to_uri(dependency.with_version(None))
        response = await self._send("HEAD", url, dependency.name, follow_redirects=True)

        if not response.history or not response.is_success:
            return None

        final = parse(str(response.url))
        return final.version


class NoopRegistryClient(BaseRegistryClient):
    """Schemes that are never updated (file:, node:, data:, unknown ones)."""

    def get_registry_type(self) -> str:
        return "noop"

    async def __aenter__(self):
        return self

    async def fetch_latest(self, dependency: Dependency) -> Optional[str]:
        return None


REGISTRY_CLIENTS: Dict[str, Type[BaseRegistryClient]] = {
    "npm": NpmRegistryClient,
    "jsr": JsrRegistryClient,
    "http": RedirectProbeClient,
    "https": RedirectProbeClient,
}


def get_registry_client_class(scheme: str) -> Type[BaseRegistryClient]:
    """Select the client class for a specifier scheme."""
    return REGISTRY_CLIENTS.get(scheme.lower(), NoopRegistryClient)


def get_registry_client(scheme: str, **kwargs) -> BaseRegistryClient:
    """
    Factory function to get the client for a specifier scheme.

    Args:
        scheme: Specifier scheme without the colon ('npm', 'jsr', 'https', ...)
        **kwargs: Passed through to the client constructor

    Returns:
        Configured registry client (a no-op client for unsupported schemes)
    """
    return get_registry_client_class(scheme)(**kwargs)
