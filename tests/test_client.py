from __future__ import annotations

import itertools
import threading
from typing import Any

import pytest

from midnight_bridge.cache import InMemoryCacheStore
from midnight_bridge.client import MidnightClient
from midnight_bridge.config import BridgeConfig, MidnightConfig, SigningConfig
from midnight_bridge.exceptions import ConfigurationError, ContractError
from midnight_bridge.http.signer import RequestSigner
from midnight_bridge.queue import (
    EventDispatcher,
    InMemoryLeaseStore,
    InMemoryTaskQueue,
    TransactionConfirmed,
    TransactionFailed,
)
from midnight_bridge.types import TxHash

SIGNED = MidnightConfig(
    bridge=BridgeConfig(base_uri="http://bridge.test"),
    signing=SigningConfig(enabled=True, key="bridge-secret"),
)


def _balances():
    counter = itertools.count(1000, 500)
    return lambda request: (200, {"value": next(counter), "success": True})


@pytest.fixture
def client(fake_bridge, recorded_sleep):
    fake_bridge.route("GET", "/health", (200, {"status": "ok"}))
    fake_bridge.route("POST", "/contract/call", _balances())
    fake_bridge.route("POST", "/tx/submit", (200, {"tx_hash": "0xdeadbeef"}))
    with MidnightClient(SIGNED, session=fake_bridge, sleep=recorded_sleep) as client:
        yield client


def test_transfer_confirmation_invalidates_cached_reads(client, fake_bridge) -> None:
    confirmed: list[TransactionConfirmed] = []
    client.on_confirmed(confirmed.append)

    assert client.call("A", "balance") == 1000
    assert client.call("A", "balance") == 1000
    assert len(fake_bridge.calls_to("POST", "/contract/call")) == 1

    job = client.write("A", "transfer", {"to": "B", "amount": 1000})
    assert job is not None
    assert client.write("A", "transfer", {"to": "B", "amount": 1000}) is None
    client.run_pending()

    assert len(fake_bridge.calls_to("POST", "/tx/submit")) == 1
    assert [event.tx_hash for event in confirmed] == [TxHash("0xdeadbeef")]
    assert client.cache.indexed_addresses() == set()

    assert client.call("A", "balance") == 1500
    assert len(fake_bridge.calls_to("POST", "/contract/call")) == 2


def test_submissions_are_signed(client, fake_bridge) -> None:
    client.write("A", "transfer", {"to": "B", "amount": 1000})
    client.run_pending()

    submit = fake_bridge.calls_to("POST", "/tx/submit")[0]
    assert submit.json["public_args"] == {"to": "B", "amount": 1000}
    assert RequestSigner("bridge-secret").verify_headers(submit.request) is True


def test_touched_selectors_limit_invalidation(client, fake_bridge) -> None:
    client.call("A", "balance")
    client.call("A", "symbol")

    client.write("A", "transfer", {"amount": 1}, touched_selectors=["balance"])
    client.run_pending()
    client.call("A", "balance")
    client.call("A", "symbol")

    entrypoints = [call.json["entrypoint"] for call in fake_bridge.calls_to("POST", "/contract/call")]
    assert entrypoints == ["balance", "symbol", "balance"]


def test_failed_submission_reports_through_event(fake_bridge, recorded_sleep) -> None:
    fake_bridge.route("POST", "/tx/submit", (400, {"message": "insufficient funds"}))
    config = MidnightConfig(bridge=BridgeConfig(base_uri="http://bridge.test"))
    failed: list[TransactionFailed] = []
    finished = threading.Event()

    def on_failed(event: TransactionFailed) -> None:
        failed.append(event)
        finished.set()

    with MidnightClient(config, session=fake_bridge, sleep=recorded_sleep) as client:
        client.on_failed(on_failed)
        client.start_workers(1)
        client.write("A", "transfer", {"amount": 10**9})
        assert finished.wait(timeout=5), "submission never reached a terminal state"

    assert failed[0].failure_reason == "Transaction submission failed: insufficient funds"
    assert failed[0].metadata["attempts"] == 3
    assert len(fake_bridge.calls_to("POST", "/tx/submit")) == 3


def test_read_errors_surface_as_contract_errors(fake_bridge, recorded_sleep) -> None:
    fake_bridge.route("POST", "/contract/call", (200, {"success": False, "error": "reverted"}))
    config = MidnightConfig(bridge=BridgeConfig(base_uri="http://bridge.test"))

    with MidnightClient(config, session=fake_bridge, sleep=recorded_sleep) as client:
        with pytest.raises(ContractError, match="reverted"):
            client.call("A", "balance")


def test_invalid_configuration_fails_at_startup(fake_bridge) -> None:
    with pytest.raises(ConfigurationError):
        MidnightClient(MidnightConfig(network="nowhere"), session=fake_bridge)


def test_from_env_wires_everything(fake_bridge, recorded_sleep) -> None:
    environ: dict[str, Any] = {
        "MIDNIGHT_BRIDGE_BASE_URI": "http://bridge.test",
        "MIDNIGHT_BRIDGE_API_KEY": "key-1",
    }
    fake_bridge.route("GET", "/health", (200, {"status": "ok"}))

    with MidnightClient.from_env(environ, session=fake_bridge, sleep=recorded_sleep) as client:
        assert client.health_check() is True
        assert client.transport.signer is None

    assert fake_bridge.calls[0].headers["X-API-Key"] == "key-1"
    assert fake_bridge.closed is True


def test_injected_collaborators_are_used_even_when_empty(fake_bridge, recorded_sleep) -> None:
    tasks = InMemoryTaskQueue()
    leases = InMemoryLeaseStore()
    store = InMemoryCacheStore()
    events = EventDispatcher()

    with MidnightClient(
        SIGNED,
        session=fake_bridge,
        lease_store=leases,
        task_queue=tasks,
        cache_store=store,
        events=events,
        sleep=recorded_sleep,
    ) as client:
        assert client.queue.task_queue is tasks
        assert client.cache.store is store
        assert client.events is events

        job = client.write("A", "transfer", {"to": "B", "amount": 1})

    assert len(tasks) == 1
    assert leases.is_held(job.uniqueness_key) is True
