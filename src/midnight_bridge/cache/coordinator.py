"""Contract read cache with invalidation driven by confirmed transactions."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..base import BridgeInterface
from ..config import CacheConfig
from ..constants import (
    DEFAULT_CACHE_PREFIX,
    DEFAULT_CONTRACT_STATE_TTL,
    DEFAULT_NETWORK_METADATA_TTL,
    DEFAULT_STATIC_SELECTORS,
)
from ..exceptions import MidnightError
from ..queue.events import TransactionConfirmed
from ..types import ContractCallResult, NetworkMetadata
from ..utils import canonical_json, mask_address, sha256_hex
from .store import CacheStore, InMemoryCacheStore

logger = logging.getLogger(__name__)

TOUCHED_SELECTORS_KEY = "touched_selectors"


@dataclass(frozen=True)
class InvalidationReport:
    """What one invalidation removed and, when asked to, re-read."""

    contract_address: str
    cleared_keys: tuple[str, ...] = ()
    refreshed: tuple[str, ...] = ()
    refresh_failures: Mapping[str, str] = field(default_factory=dict)

    @property
    def cleared(self) -> int:
        return len(self.cleared_keys)


class CacheCoordinator:
    """Serve read-only contract calls from cache and drop them when state changes.

    Every cached key is recorded in a per-address index so a confirmed
    transaction can clear exactly the keys that belong to its contract.
    """

    def __init__(
        self,
        transport: BridgeInterface,
        store: CacheStore | None = None,
        *,
        prefix: str = DEFAULT_CACHE_PREFIX,
        contract_state_ttl: float = DEFAULT_CONTRACT_STATE_TTL,
        network_metadata_ttl: float = DEFAULT_NETWORK_METADATA_TTL,
        static_selectors: Iterable[str] = DEFAULT_STATIC_SELECTORS,
        selector_ttls: Mapping[str, float] | None = None,
        refresh_on_invalidate: bool = False,
    ) -> None:
        self._transport = transport
        self._store = store if store is not None else InMemoryCacheStore()
        self._prefix = prefix
        self._state_ttl = contract_state_ttl
        self._metadata_ttl = network_metadata_ttl
        self._static_selectors = frozenset(static_selectors)
        self._selector_ttls = dict(selector_ttls or {})
        self._refresh_on_invalidate = refresh_on_invalidate

    @classmethod
    def from_config(
        cls, transport: BridgeInterface, store: CacheStore | None, config: CacheConfig
    ) -> CacheCoordinator:
        return cls(
            transport,
            store,
            prefix=config.prefix,
            contract_state_ttl=config.contract_state_ttl,
            network_metadata_ttl=config.network_metadata_ttl,
            static_selectors=config.static_selectors,
            selector_ttls=config.selector_ttls,
            refresh_on_invalidate=config.refresh_on_invalidate,
        )

    @property
    def store(self) -> CacheStore:
        return self._store

    # ---- Keys ----------------------------------------------------------------------

    def cache_key(
        self, contract_address: str, selector: str, args: Mapping[str, Any] | None = None
    ) -> str:
        key = self._selector_base(contract_address, selector)
        if args:
            key = f"{key}:{sha256_hex(canonical_json(args))[:16]}"
        return key

    def _selector_base(self, contract_address: str, selector: str) -> str:
        return f"{self._prefix}:contract:{contract_address}:{selector}"

    def _address_index(self, contract_address: str) -> str:
        return f"{self._prefix}:index:{contract_address}"

    def _generation_key(self, contract_address: str) -> str:
        return f"{self._prefix}:generation:{contract_address}"

    @property
    def _addresses_index(self) -> str:
        return f"{self._prefix}:index:addresses"

    @property
    def _network_metadata_key(self) -> str:
        return f"{self._prefix}:network:metadata"

    def ttl_for(self, selector: str) -> float:
        if selector in self._selector_ttls:
            return self._selector_ttls[selector]
        if selector in self._static_selectors:
            return self._metadata_ttl
        return self._state_ttl

    # ---- Reads ---------------------------------------------------------------------

    def read(
        self, contract_address: str, selector: str, args: Mapping[str, Any] | None = None
    ) -> ContractCallResult:
        """Return the cached result for ``selector`` or call the contract.

        Failed results are handed back to the caller but never cached. A
        result whose address was invalidated while the call was in flight is
        returned but not stored.
        """

        key = self.cache_key(contract_address, selector, args)
        cached = self._store.get(key)
        if cached is not None:
            logger.debug("Cache hit %s", key)
            return ContractCallResult(**cached)

        logger.debug("Cache miss %s", key)
        generation_key = self._generation_key(contract_address)
        generation = self._store.generation(generation_key)
        result = self._transport.call_contract(contract_address, selector, args)
        if not result.success:
            return result
        if self._store.generation(generation_key) != generation:
            logger.debug("Not caching %s; invalidated during the read", key)
            return result

        ttl = self.ttl_for(selector)
        index = self._address_index(contract_address)
        self._store.put(key, result.to_dict(), ttl)
        self._store.index_add(index, key, ttl)
        self._store.index_add(self._addresses_index, contract_address, ttl)
        if self._store.generation(generation_key) != generation:
            # An invalidation landed between the check and the write.
            self._store.forget(key)
            self._store.index_remove(index, key)
        return result

    def get_network_metadata(self) -> NetworkMetadata:
        cached = self._store.get(self._network_metadata_key)
        if cached is not None:
            return NetworkMetadata.from_dict(cached)

        metadata = self._transport.get_network_metadata()
        self._store.put(self._network_metadata_key, metadata.to_dict(), self._metadata_ttl)
        return metadata

    # ---- Invalidation --------------------------------------------------------------

    def invalidate(
        self,
        contract_address: str,
        selectors: Iterable[str] | None = None,
        *,
        refresh: bool | None = None,
    ) -> InvalidationReport:
        """Drop cached reads for ``contract_address``.

        Without ``selectors`` every indexed key for the address goes. With
        them, only those selectors (in every argument variant) are removed.
        Refresh failures are logged and reported, never raised.
        """

        if refresh is None:
            refresh = self._refresh_on_invalidate
        # Bumped before anything is cleared so in-flight reads see it.
        self._store.bump(self._generation_key(contract_address))
        index = self._address_index(contract_address)
        members = self._store.index_members(index)

        if selectors is None:
            cleared = sorted(members)
            self._store.forget(*cleared)
            self._store.index_clear(index)
            self._store.index_remove(self._addresses_index, contract_address)
            # Only argument-free reads can be replayed; argument variants are keyed by digest.
            stem = self._selector_base(contract_address, "")
            to_refresh = sorted(
                key[len(stem) :]
                for key in cleared
                if key.startswith(stem) and ":" not in key[len(stem) :]
            )
        else:
            wanted = list(dict.fromkeys(selectors))
            matched: set[str] = set()
            for selector in wanted:
                base = self._selector_base(contract_address, selector)
                matched.update(
                    key for key in members if key == base or key.startswith(f"{base}:")
                )
                matched.add(base)
            cleared = sorted(matched)
            self._store.forget(*cleared)
            self._store.index_remove(index, *cleared)
            if not self._store.index_members(index):
                self._store.index_remove(self._addresses_index, contract_address)
            to_refresh = wanted

        logger.info(
            "Invalidated %d cached read(s) for %s%s",
            len(cleared),
            mask_address(contract_address),
            f" (selectors: {', '.join(to_refresh)})" if selectors is not None else "",
        )

        refreshed: list[str] = []
        failures: dict[str, str] = {}
        if refresh:
            for selector in to_refresh:
                try:
                    self.read(contract_address, selector)
                except MidnightError as exc:
                    logger.warning(
                        "Cache refresh of %s on %s failed: %s",
                        selector,
                        mask_address(contract_address),
                        exc.message,
                    )
                    failures[selector] = exc.message
                else:
                    refreshed.append(selector)

        return InvalidationReport(
            contract_address=contract_address,
            cleared_keys=tuple(cleared),
            refreshed=tuple(refreshed),
            refresh_failures=failures,
        )

    def on_transaction_confirmed(self, event: TransactionConfirmed) -> InvalidationReport:
        """Listener for confirmed submissions.

        Selectors come only from ``metadata["touched_selectors"]`` on the
        call; without them the whole address is invalidated.
        """

        call = event.contract_call
        touched = call.metadata.get(TOUCHED_SELECTORS_KEY)
        if isinstance(touched, str):
            touched = [touched]
        selectors = list(touched) if touched else None
        return self.invalidate(call.contract_address, selectors)

    def flush(self, contract_address: str | None = None) -> int:
        """Clear one address, or every indexed address plus network metadata."""

        if contract_address is not None:
            return self.invalidate(contract_address, refresh=False).cleared

        total = 0
        for address in sorted(self._store.index_members(self._addresses_index)):
            total += self.invalidate(address, refresh=False).cleared
        if self._store.has(self._network_metadata_key):
            total += 1
        self._store.forget(self._network_metadata_key)
        self._store.index_clear(self._addresses_index)
        return total

    def indexed_addresses(self) -> set[str]:
        """Addresses with at least one live cached read; dead index entries are pruned."""

        live: set[str] = set()
        for address in self._store.index_members(self._addresses_index):
            index = self._address_index(address)
            members = self._store.index_members(index)
            expired = [key for key in members if not self._store.has(key)]
            if expired:
                self._store.index_remove(index, *expired)
            if len(expired) < len(members):
                live.add(address)
            else:
                self._store.index_remove(self._addresses_index, address)
        return live
