"""Outcome events emitted by the submission queue."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..types import ContractCall, TxHash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionConfirmed:
    contract_call: ContractCall
    tx_hash: TxHash
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "contract_address": self.contract_call.contract_address,
            "entrypoint": self.contract_call.entrypoint,
            "tx_hash": str(self.tx_hash),
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class TransactionFailed:
    contract_call: ContractCall
    exception: BaseException
    failure_reason: str
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "contract_address": self.contract_call.contract_address,
            "entrypoint": self.contract_call.entrypoint,
            "failure_reason": self.failure_reason,
            "exception": type(self.exception).__name__,
            "metadata": dict(self.metadata),
        }


Listener = Callable[[Any], None]


class EventDispatcher:
    """Synchronous in-process fan-out of events to registered listeners."""

    def __init__(self) -> None:
        self._listeners: dict[type, list[Listener]] = defaultdict(list)
        self._lock = threading.Lock()

    def listen(self, event_type: type, listener: Listener) -> None:
        with self._lock:
            self._listeners[event_type].append(listener)

    def listeners_for(self, event_type: type) -> list[Listener]:
        with self._lock:
            return list(self._listeners.get(event_type, ()))

    def dispatch(self, event: Any) -> None:
        for listener in self.listeners_for(type(event)):
            try:
                listener(event)
            except Exception:
                # A broken listener must not stop the others from seeing the event.
                logger.exception(
                    "Listener %r failed while handling %s", listener, type(event).__name__
                )
