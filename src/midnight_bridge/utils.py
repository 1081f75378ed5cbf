"""Utility functions for the Midnight bridge client."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any

from .constants import REDACTED, SENSITIVE_HEADERS, SENSITIVE_KEYS

_MISSING = object()


def pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present, non-None value among ``keys``.

    Callers list the snake_case spelling first so it wins over the camelCase
    variant when a payload carries both.
    """
    for key in keys:
        value = data.get(key, _MISSING)
        if value is not _MISSING and value is not None:
            return value
    return default


def canonical_json(value: Any) -> str:
    """Serialise ``value`` deterministically (sorted keys, compact separators)."""
    return json.dumps(
        _plain(value), sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    )


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _plain(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_plain(item) for item in value]
    return value


def sha256_hex(data: bytes | str | None) -> str:
    if data is None:
        data = b""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def uniqueness_key(
    contract_address: str,
    entrypoint: str,
    public_args: Mapping[str, Any],
    private_args: Mapping[str, Any],
    *,
    prefix: str = "midnight:submit",
) -> str:
    """Deterministic fingerprint of a logical submission.

    Argument ordering does not matter; private arguments only contribute
    through the digest so they never appear in the key itself.
    """
    digest = sha256_hex(
        "\n".join(
            (
                contract_address,
                entrypoint,
                canonical_json(public_args),
                canonical_json(private_args),
            )
        )
    )
    return f"{prefix}:{contract_address}:{entrypoint}:{digest}"


def redact(value: Any) -> Any:
    """Recursively mask sensitive keys before a structure is logged."""
    if isinstance(value, Mapping):
        cleaned: dict[str, Any] = {}
        for key, item in value.items():
            if _is_sensitive(str(key)):
                cleaned[key] = REDACTED
            else:
                cleaned[key] = redact(item)
        return cleaned
    if isinstance(value, list | tuple):
        return [redact(item) for item in value]
    return value


def _is_sensitive(key: str) -> bool:
    lowered = key.lower().replace("-", "_")
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    sensitive = {name.lower() for name in SENSITIVE_HEADERS}
    return {
        name: (REDACTED if name.lower() in sensitive else value) for name, value in headers.items()
    }


def mask_address(address: str, visible: int = 6) -> str:
    """Shorten an address for logs, keeping both ends."""
    if len(address) <= visible * 2:
        return address
    return f"{address[:visible]}...{address[-visible:]}"
