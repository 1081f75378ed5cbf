"""Configuration containers for the Midnight bridge client."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import urlparse

from dotenv import find_dotenv, load_dotenv

from .constants import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_BASE_URI,
    DEFAULT_CACHE_PREFIX,
    DEFAULT_CONTRACT_STATE_TTL,
    DEFAULT_MAX_SKEW,
    DEFAULT_NETWORK_METADATA_TTL,
    DEFAULT_RETRY_SLEEP_MS,
    DEFAULT_RETRY_TIMES,
    DEFAULT_STATIC_SELECTORS,
    DEFAULT_TIMEOUT,
    DEFAULT_TRANSPORT_RETRIES,
    DEFAULT_UNIQUE_FOR,
    VALID_NETWORKS,
)
from .exceptions import ConfigurationError

MAX_TIMEOUT = 300.0
STORE_BACKENDS = ("memory", "redis")
QUEUE_BACKENDS = ("memory",)


@dataclass(frozen=True)
class BridgeConfig:
    """Where the bridge lives and how long to wait for it."""

    base_uri: str = DEFAULT_BASE_URI
    timeout: float = DEFAULT_TIMEOUT
    api_key: str | None = None


@dataclass(frozen=True)
class SigningConfig:
    """HMAC request signing settings."""

    enabled: bool = False
    key: str | None = field(default=None, repr=False)
    max_skew: int = DEFAULT_MAX_SKEW


@dataclass(frozen=True)
class RetryConfig:
    """Retry behaviour for the transport and for queued submissions."""

    times: int = DEFAULT_RETRY_TIMES
    sleep_ms: int = DEFAULT_RETRY_SLEEP_MS
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    transport_retries: int = DEFAULT_TRANSPORT_RETRIES

    @property
    def base_delay(self) -> float:
        return self.sleep_ms / 1000


@dataclass(frozen=True)
class CacheConfig:
    """Read-cache backend and TTL policy."""

    backend: str = "memory"
    prefix: str = DEFAULT_CACHE_PREFIX
    contract_state_ttl: float = DEFAULT_CONTRACT_STATE_TTL
    network_metadata_ttl: float = DEFAULT_NETWORK_METADATA_TTL
    static_selectors: tuple[str, ...] = DEFAULT_STATIC_SELECTORS
    selector_ttls: Mapping[str, float] = field(default_factory=dict)
    refresh_on_invalidate: bool = False


@dataclass(frozen=True)
class QueueConfig:
    """Submission queue and lease settings."""

    backend: str = "memory"
    lease_backend: str = "memory"
    name: str = "midnight"
    unique_for: int = DEFAULT_UNIQUE_FOR
    workers: int = 1


@dataclass(frozen=True)
class MidnightConfig:
    """Aggregated configuration used to wire the bridge client."""

    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    signing: SigningConfig = field(default_factory=SigningConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    network: str = "devnet"
    redis_url: str | None = None

    @property
    def job_timeout(self) -> float:
        """Upper bound for one queued attempt: twice the bridge timeout."""
        return self.bridge.timeout * 2

    def backoff_schedule(self) -> list[float]:
        """Delays in seconds before each queued retry."""
        return [
            self.retry.base_delay * self.retry.backoff_multiplier**i
            for i in range(self.retry.times - 1)
        ]

    @property
    def signing_key(self) -> str | None:
        if not self.signing.enabled:
            return None
        return self.signing.key

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, *, dotenv: bool = True
    ) -> MidnightConfig:
        """Build a configuration from ``MIDNIGHT_*`` environment variables."""

        if environ is None:
            if dotenv:
                load_dotenv(find_dotenv(usecwd=True))
            environ = os.environ

        def _get(name: str, default: str | None = None) -> str | None:
            value = environ.get(name)
            return value if value not in (None, "") else default

        bridge = BridgeConfig(
            base_uri=_get("MIDNIGHT_BRIDGE_BASE_URI", DEFAULT_BASE_URI) or DEFAULT_BASE_URI,
            timeout=_as_float(_get("MIDNIGHT_BRIDGE_TIMEOUT"), DEFAULT_TIMEOUT, "bridge.timeout"),
            api_key=_get("MIDNIGHT_BRIDGE_API_KEY"),
        )
        signing = SigningConfig(
            enabled=_as_bool(_get("MIDNIGHT_BRIDGE_SIGNING"), False),
            key=_get("MIDNIGHT_BRIDGE_SIGNING_KEY"),
            max_skew=_as_int(_get("MIDNIGHT_BRIDGE_MAX_SKEW"), DEFAULT_MAX_SKEW, "signing.max_skew"),
        )
        retry = RetryConfig(
            times=_as_int(_get("MIDNIGHT_RETRY_TIMES"), DEFAULT_RETRY_TIMES, "retry.times"),
            sleep_ms=_as_int(_get("MIDNIGHT_RETRY_SLEEP"), DEFAULT_RETRY_SLEEP_MS, "retry.sleep"),
        )
        cache = CacheConfig(backend=(_get("MIDNIGHT_CACHE_STORE", "memory") or "memory").lower())
        lease_backend = (_get("MIDNIGHT_LEASE_STORE", cache.backend) or "memory").lower()
        queue = QueueConfig(
            backend=(_get("MIDNIGHT_QUEUE_CONNECTION", "memory") or "memory").lower(),
            lease_backend=lease_backend,
            name=_get("MIDNIGHT_QUEUE_NAME", "midnight") or "midnight",
            workers=_as_int(_get("MIDNIGHT_QUEUE_WORKERS"), 1, "queue.workers"),
        )
        return cls(
            bridge=bridge,
            signing=signing,
            retry=retry,
            cache=cache,
            queue=queue,
            network=(_get("MIDNIGHT_NETWORK", "devnet") or "devnet").lower(),
            redis_url=_get("MIDNIGHT_REDIS_URL"),
        )

    def validate(self) -> MidnightConfig:
        """Raise ConfigurationError on the first invalid setting; return self otherwise."""

        parsed = urlparse(self.bridge.base_uri)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ConfigurationError(
                "Bridge base URI must be an absolute http(s) URL",
                field="bridge.base_uri",
                value=self.bridge.base_uri,
            )

        if not 0 < self.bridge.timeout <= MAX_TIMEOUT:
            raise ConfigurationError(
                f"Bridge timeout must be between 0 and {MAX_TIMEOUT:.0f} seconds",
                field="bridge.timeout",
                value=self.bridge.timeout,
            )

        if self.signing.enabled and not self.signing.key:
            raise ConfigurationError(
                "Request signing is enabled but no signing key is configured",
                field="signing.key",
                details={"env_var": "MIDNIGHT_BRIDGE_SIGNING_KEY"},
            )

        if self.signing.max_skew <= 0:
            raise ConfigurationError(
                "Signature max skew must be positive",
                field="signing.max_skew",
                value=self.signing.max_skew,
            )

        if self.retry.times < 1:
            raise ConfigurationError(
                "Retry times must be at least 1", field="retry.times", value=self.retry.times
            )

        if self.retry.sleep_ms < 0 or self.retry.transport_retries < 0:
            raise ConfigurationError(
                "Retry delays and counts cannot be negative",
                field="retry",
                value=self.retry,
            )

        if self.network not in VALID_NETWORKS:
            raise ConfigurationError(
                f"Invalid network '{self.network}'. Valid networks: {', '.join(VALID_NETWORKS)}",
                field="network",
                value=self.network,
            )

        for name, backend, allowed in (
            ("cache.backend", self.cache.backend, STORE_BACKENDS),
            ("queue.lease_backend", self.queue.lease_backend, STORE_BACKENDS),
            ("queue.backend", self.queue.backend, QUEUE_BACKENDS),
        ):
            if backend not in allowed:
                raise ConfigurationError(
                    f"Unsupported backend '{backend}' for {name}", field=name, value=backend
                )
            if backend == "redis" and not self.redis_url:
                raise ConfigurationError(
                    f"{name} uses redis but no redis URL is configured",
                    field="redis_url",
                    details={"env_var": "MIDNIGHT_REDIS_URL"},
                )

        if self.queue.unique_for <= 0 or self.queue.workers < 1:
            raise ConfigurationError(
                "Queue lease TTL and worker count must be positive",
                field="queue",
                value=self.queue,
            )

        return self


def _as_float(raw: str | None, default: float, name: str) -> float:
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"Invalid value for '{name}': expected a number", field=name, value=raw
        ) from exc


def _as_int(raw: str | None, default: int, name: str) -> int:
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"Invalid value for '{name}': expected an integer", field=name, value=raw
        ) from exc


def _as_bool(raw: str | None, default: bool) -> bool:
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}
