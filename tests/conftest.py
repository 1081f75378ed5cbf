from __future__ import annotations

import json
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any
from urllib.parse import parse_qs, urlsplit

import pytest
from requests import PreparedRequest, Session

_NOT_JSON = object()


class DummyResponse:
    def __init__(self, status_code: int = 200, payload: Any = None) -> None:
        self.status_code = status_code
        self._payload = payload

    def json(self) -> Any:
        if self._payload is _NOT_JSON:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload

    def close(self) -> None:
        pass


class FakeBridge(Session):
    """Session double that answers from per-route scripts instead of the network.

    A route script is a list of steps; each step is a ``(status, payload)``
    tuple, an exception to raise, or a callable taking the prepared request.
    The last step repeats once the others are used up.
    """

    NOT_JSON = _NOT_JSON

    def __init__(self) -> None:
        super().__init__()
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.calls: list[SimpleNamespace] = []
        self.closed = False

    def route(self, method: str, path: str, *steps: Any) -> FakeBridge:
        self.routes[(method.upper(), path)] = list(steps)
        return self

    def calls_to(self, method: str, path: str) -> list[SimpleNamespace]:
        return [call for call in self.calls if call.method == method and call.path == path]

    def send(self, request: PreparedRequest, **kwargs: Any) -> Any:  # type: ignore[override]
        parts = urlsplit(request.url)
        body = request.body
        self.calls.append(
            SimpleNamespace(
                method=request.method,
                path=parts.path,
                query=parse_qs(parts.query),
                json=json.loads(body) if body else None,
                headers=dict(request.headers),
                request=request,
                kwargs=kwargs,
            )
        )

        script = self.routes.get((request.method, parts.path))
        if not script:
            return DummyResponse(404, {"message": f"no route for {request.method} {parts.path}"})
        step = script.pop(0) if len(script) > 1 else script[0]

        if isinstance(step, BaseException):
            raise step
        if callable(step):
            step = step(request)
        if isinstance(step, DummyResponse):
            return step
        status, payload = step
        return DummyResponse(status, payload)

    def close(self) -> None:
        self.closed = True
        super().close()


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """Just enough of the redis client API for the lease and cache stores."""

    def __init__(self) -> None:
        self.values: dict[str, Any] = {}
        self.sets: dict[str, set[str]] = {}
        self.ttls: dict[str, int] = {}

    def set(self, key: str, value: Any, nx: bool = False, ex: int | None = None) -> bool | None:
        if nx and key in self.values:
            return None
        self.values[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    def setex(self, key: str, ttl: int, value: Any) -> bool:
        self.values[key] = value
        self.ttls[key] = ttl
        return True

    def get(self, key: str) -> Any:
        return self.values.get(key)

    def exists(self, key: str) -> int:
        return int(key in self.values or key in self.sets)

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None or self.sets.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    def sadd(self, key: str, *members: str) -> int:
        bucket = self.sets.setdefault(key, set())
        before = len(bucket)
        bucket.update(members)
        return len(bucket) - before

    def srem(self, key: str, *members: str) -> int:
        bucket = self.sets.get(key, set())
        before = len(bucket)
        bucket.difference_update(members)
        return before - len(bucket)

    def smembers(self, key: str) -> set[str]:
        return set(self.sets.get(key, set()))

    def incr(self, key: str) -> int:
        value = int(self.values.get(key, 0)) + 1
        self.values[key] = str(value)
        return value

    def expire(self, key: str, seconds: int) -> bool:
        if key not in self.values and key not in self.sets:
            return False
        self.ttls[key] = seconds
        return True

    def ttl(self, key: str) -> int:
        if key not in self.values and key not in self.sets:
            return -2
        return self.ttls.get(key, -1)

    def eval(self, script: str, numkeys: int, *args: str) -> int:
        # Only the lease compare-and-delete script is understood.
        (key,), (owner,) = args[:numkeys], args[numkeys:]
        if self.values.get(key) != owner:
            return 0
        return self.delete(key)


@pytest.fixture
def fake_bridge() -> FakeBridge:
    return FakeBridge()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def recorded_sleep() -> Callable[[float], None]:
    sleeps: list[float] = []

    def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    _sleep.calls = sleeps  # type: ignore[attr-defined]
    return _sleep
