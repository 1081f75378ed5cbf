"""HMAC request signing for bridge traffic."""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import time
from collections.abc import Callable
from typing import Any

from ..constants import DEFAULT_MAX_SKEW, SIGNATURE_HEADER, TIMESTAMP_HEADER
from ..types import SignedEnvelope
from ..utils import sha256_hex

logger = logging.getLogger(__name__)

_HEX_SIGNATURE = re.compile(r"[0-9a-f]{64}")


class RequestSigner:
    """Attach and check ``X-Midnight-*`` signature headers.

    ``request`` is anything exposing ``method``, ``path_url``, ``body`` and
    ``headers``; in practice a :class:`requests.PreparedRequest`.
    """

    def __init__(
        self,
        key: str | bytes,
        *,
        max_skew: int = DEFAULT_MAX_SKEW,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not key:
            raise ValueError("Signing key cannot be empty")
        self._key = key.encode("utf-8") if isinstance(key, str) else bytes(key)
        self._max_skew = max_skew
        self._clock = clock

    def __repr__(self) -> str:
        return f"RequestSigner(max_skew={self._max_skew})"

    @property
    def max_skew(self) -> int:
        return self._max_skew

    def sign(self, request: Any, timestamp: int | None = None) -> SignedEnvelope:
        """Compute the signature for ``request`` and set its auth headers."""

        if timestamp is None:
            timestamp = int(self._clock())
        method = str(request.method).upper()
        path = request.path_url
        body_hash = sha256_hex(request.body)
        signature = self.compute_signature(timestamp, method, path, request.body)

        envelope = SignedEnvelope(
            timestamp=timestamp,
            method=method,
            path=path,
            body_hash=body_hash,
            signature=signature,
        )
        request.headers.update(envelope.headers())
        logger.debug("Signed %s %s at %d", method, path, timestamp)
        return envelope

    def compute_signature(
        self, timestamp: int, method: str, path: str, body: bytes | str | None
    ) -> str:
        canonical = "\n".join((str(timestamp), method.upper(), path, sha256_hex(body)))
        return hmac.new(self._key, canonical.encode("utf-8"), hashlib.sha256).hexdigest()

    def verify(self, request: Any, claimed_signature: str, now: float | None = None) -> bool:
        """Return True only for a fresh, matching signature. Never raises."""

        raw_timestamp = request.headers.get(TIMESTAMP_HEADER)
        if raw_timestamp is None:
            logger.debug("Rejecting request without %s header", TIMESTAMP_HEADER)
            return False
        try:
            timestamp = int(raw_timestamp)
        except (TypeError, ValueError):
            logger.debug("Rejecting request with malformed timestamp")
            return False

        current = self._clock() if now is None else now
        if abs(current - timestamp) > self._max_skew:
            logger.debug("Rejecting request outside the %ds skew window", self._max_skew)
            return False

        if not isinstance(claimed_signature, str):
            return False
        if not _HEX_SIGNATURE.fullmatch(claimed_signature):
            logger.debug("Rejecting request with malformed signature")
            return False
        expected = self.compute_signature(
            timestamp, str(request.method), request.path_url, request.body
        )
        return hmac.compare_digest(expected.encode("ascii"), claimed_signature.encode("ascii"))

    def verify_headers(self, request: Any, now: float | None = None) -> bool:
        """Verify using the signature carried in the request's own headers."""
        claimed = request.headers.get(SIGNATURE_HEADER)
        if claimed is None:
            return False
        return self.verify(request, claimed, now=now)
