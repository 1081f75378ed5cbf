"""Midnight client that wires transport, submission queue and read cache together."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

import requests

from .cache import (
    CacheCoordinator,
    CacheStore,
    InMemoryCacheStore,
    InvalidationReport,
    RedisCacheStore,
)
from .config import MidnightConfig
from .http import BridgeTransport, RequestSigner
from .queue import (
    EventDispatcher,
    InMemoryLeaseStore,
    InMemoryTaskQueue,
    LeaseStore,
    RedisLeaseStore,
    SubmissionJob,
    SubmissionQueue,
    TaskQueue,
    TransactionConfirmed,
    TransactionFailed,
)
from .types import (
    Address,
    ContractCall,
    ContractCallResult,
    DeploymentResult,
    NetworkMetadata,
    TransactionStatus,
    TxHash,
)

logger = logging.getLogger(__name__)


class MidnightClient:
    """Single entry point for talking to a Midnight bridge."""

    def __init__(
        self,
        config: MidnightConfig | None = None,
        *,
        session: requests.Session | None = None,
        lease_store: LeaseStore | None = None,
        task_queue: TaskQueue | None = None,
        cache_store: CacheStore | None = None,
        events: EventDispatcher | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        config = (config or MidnightConfig()).validate()
        self._config = config

        signer = None
        if config.signing_key:
            signer = RequestSigner(config.signing_key, max_skew=config.signing.max_skew)

        self._transport = BridgeTransport(
            config.bridge.base_uri,
            session=session,
            signer=signer,
            api_key=config.bridge.api_key,
            timeout=config.bridge.timeout,
            max_retries=config.retry.transport_retries,
            retry_sleep=config.retry.base_delay,
            sleep=sleep,
        )
        self._events = events if events is not None else EventDispatcher()
        self._cache = CacheCoordinator.from_config(
            self._transport,
            cache_store if cache_store is not None else self._build_cache_store(),
            config.cache,
        )
        self._queue = SubmissionQueue(
            self._transport,
            lease_store=lease_store if lease_store is not None else self._build_lease_store(),
            task_queue=task_queue if task_queue is not None else InMemoryTaskQueue(),
            events=self._events,
            max_attempts=config.retry.times,
            backoff_schedule=config.backoff_schedule(),
            unique_for=config.queue.unique_for,
            job_timeout=config.job_timeout,
        )
        self._events.listen(TransactionConfirmed, self._cache.on_transaction_confirmed)

        logger.debug(
            "Midnight client ready base_uri=%s network=%s signing=%s",
            config.bridge.base_uri,
            config.network,
            signer is not None,
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **kwargs: Any) -> MidnightClient:
        return cls(MidnightConfig.from_env(environ), **kwargs)

    # ---- Lifecycle -----------------------------------------------------------------

    def close(self) -> None:
        self._queue.stop()
        self._transport.close()

    def __enter__(self) -> MidnightClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def start_workers(self, workers: int | None = None) -> None:
        self._queue.start(workers or self._config.queue.workers)

    def run_pending(self) -> int:
        return self._queue.run_pending()

    # ---- Accessors -----------------------------------------------------------------

    @property
    def config(self) -> MidnightConfig:
        return self._config

    @property
    def transport(self) -> BridgeTransport:
        return self._transport

    @property
    def queue(self) -> SubmissionQueue:
        return self._queue

    @property
    def cache(self) -> CacheCoordinator:
        return self._cache

    @property
    def events(self) -> EventDispatcher:
        return self._events

    def on_confirmed(self, listener: Callable[[TransactionConfirmed], None]) -> None:
        self._events.listen(TransactionConfirmed, listener)

    def on_failed(self, listener: Callable[[TransactionFailed], None]) -> None:
        self._events.listen(TransactionFailed, listener)

    # ---- Network -------------------------------------------------------------------

    def health_check(self) -> bool:
        return self._transport.health_check()

    def get_network_metadata(self) -> NetworkMetadata:
        return self._cache.get_network_metadata()

    def get_transaction_status(self, tx_hash: TxHash | str) -> TransactionStatus:
        return self._transport.get_transaction_status(tx_hash)

    # ---- Contracts -----------------------------------------------------------------

    def read(
        self, contract_address: str, selector: str, args: Mapping[str, Any] | None = None
    ) -> ContractCallResult:
        """Cached read-only call."""
        return self._cache.read(contract_address, selector, args)

    def call(
        self, contract_address: str, selector: str, args: Mapping[str, Any] | None = None
    ) -> Any:
        """Cached read returning the value, raising ContractError on failure."""
        return self.read(contract_address, selector, args).value_or_raise(
            contract_address, selector
        )

    def submit(self, contract_call: ContractCall) -> SubmissionJob | None:
        return self._queue.dispatch(contract_call)

    def write(
        self,
        contract_address: str,
        entrypoint: str,
        public_args: Mapping[str, Any] | None = None,
        private_args: Mapping[str, Any] | None = None,
        *,
        touched_selectors: list[str] | None = None,
    ) -> SubmissionJob | None:
        metadata = {"touched_selectors": list(touched_selectors)} if touched_selectors else None
        return self.submit(
            ContractCall.write(contract_address, entrypoint, public_args, private_args, metadata)
        )

    def invalidate(
        self, contract_address: str, selectors: list[str] | None = None, *, refresh: bool = False
    ) -> InvalidationReport:
        return self._cache.invalidate(contract_address, selectors, refresh=refresh)

    def deploy_contract(
        self,
        contract_path: str,
        constructor_args: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> DeploymentResult:
        return self._transport.deploy_contract(contract_path, constructor_args, options)

    def join_contract(
        self, contract_address: str, params: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        return self._transport.join_contract(contract_address, params)

    # ---- Wallet --------------------------------------------------------------------

    def get_wallet_address(self) -> Address:
        return self._transport.get_wallet_address()

    def get_wallet_balance(self, address: str | None = None) -> dict[str, Any]:
        return self._transport.get_wallet_balance(address)

    def wallet_transfer(
        self, to: str, amount: str | int, options: Mapping[str, Any] | None = None
    ) -> TxHash:
        return self._transport.wallet_transfer(to, amount, options)

    # ---- Helpers -------------------------------------------------------------------

    def _build_cache_store(self) -> CacheStore:
        if self._config.cache.backend == "redis":
            return RedisCacheStore.from_url(self._config.redis_url)
        return InMemoryCacheStore()

    def _build_lease_store(self) -> LeaseStore:
        if self._config.queue.lease_backend == "redis":
            return RedisLeaseStore.from_url(self._config.redis_url)
        return InMemoryLeaseStore()
