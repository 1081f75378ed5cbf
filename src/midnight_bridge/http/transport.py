"""HTTP transport to the Midnight bridge service."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any
from urllib.parse import quote

import requests

from ..base import BridgeInterface
from ..constants import (
    API_KEY_HEADER,
    DEFAULT_BASE_URI,
    DEFAULT_TIMEOUT,
    DEFAULT_TRANSPORT_RETRIES,
    DEFAULT_TRANSPORT_RETRY_SLEEP,
    RETRYABLE_STATUS_CODES,
    SIGNATURE_REJECTED_STATUS,
    USER_AGENT,
    Endpoint,
)
from ..exceptions import (
    ContractError,
    MidnightError,
    NetworkError,
    ProofFailedError,
    SignatureRejectedError,
)
from ..types import (
    Address,
    ContractCallResult,
    DeploymentResult,
    NetworkMetadata,
    ProofResponse,
    TransactionStatus,
    TxHash,
)
from ..utils import pick, redact, redact_headers
from .signer import RequestSigner

logger = logging.getLogger(__name__)


class BridgeTransport(BridgeInterface):
    """Signed, retrying JSON client for the bridge HTTP API."""

    def __init__(
        self,
        base_uri: str = DEFAULT_BASE_URI,
        *,
        session: requests.Session | None = None,
        signer: RequestSigner | None = None,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_TRANSPORT_RETRIES,
        retry_sleep: float = DEFAULT_TRANSPORT_RETRY_SLEEP,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._base_uri = base_uri.rstrip("/")
        self._session = session or requests.Session()
        self._signer = signer
        self._timeout = timeout
        self._max_retries = max(0, max_retries)
        self._retry_sleep = retry_sleep
        self._sleep = sleep

        self._session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            }
        )
        if api_key:
            self._session.headers[API_KEY_HEADER] = api_key

    # ---- Lifecycle -----------------------------------------------------------------

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> BridgeTransport:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ---- Accessors -----------------------------------------------------------------

    @property
    def base_uri(self) -> str:
        return self._base_uri

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def signer(self) -> RequestSigner | None:
        return self._signer

    # ---- Verbs ---------------------------------------------------------------------

    def get(self, path: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        return self.request("GET", path, params=params)

    def post(self, path: str, data: Mapping[str, Any] | None = None) -> dict[str, Any]:
        return self.request("POST", path, json=dict(data or {}))

    def put(self, path: str, data: Mapping[str, Any] | None = None) -> dict[str, Any]:
        return self.request("PUT", path, json=dict(data or {}))

    def delete(self, path: str) -> dict[str, Any]:
        return self.request("DELETE", path)

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send one logical request, retrying transient failures.

        Connection errors, timeouts, HTTP 408 and HTTP 5xx are retried up to
        ``max_retries`` times. HTTP 401 raises SignatureRejectedError at once.
        """

        path = str(path.value if isinstance(path, Endpoint) else path)
        prepared = self._session.prepare_request(
            requests.Request(method.upper(), f"{self._base_uri}{path}", json=json, params=params)
        )

        attempt = 0
        while True:
            attempt += 1
            if self._signer is not None:
                # Every attempt carries its own timestamp.
                self._signer.sign(prepared)

            logger.debug(
                "Bridge request %s %s (attempt %d) headers=%s",
                prepared.method,
                prepared.path_url,
                attempt,
                redact_headers(prepared.headers),
            )

            cause: Exception | None = None
            try:
                response = self._session.send(prepared, timeout=self._timeout)
            except requests.Timeout as exc:
                cause = exc
                error = NetworkError.bridge_timeout(self._timeout, path)
            except requests.ConnectionError as exc:
                cause = exc
                error = NetworkError.bridge_connection_failed(self._base_uri, str(exc))
            except requests.RequestException as exc:
                raise NetworkError(
                    f"Bridge request to {path} failed",
                    endpoint=path,
                    details={"error": str(exc)},
                ) from exc
            else:
                status = response.status_code
                logger.debug("Bridge response %s %s -> %d", prepared.method, path, status)
                if status == SIGNATURE_REJECTED_STATUS:
                    raise self._error_from_response(response, path, SignatureRejectedError)
                if not _is_retryable(status):
                    return self._decode(response, path)
                error = self._error_from_response(response, path)

            if attempt > self._max_retries:
                logger.error(
                    "Bridge request %s %s failed after %d attempts: %s",
                    prepared.method,
                    path,
                    attempt,
                    error.message,
                )
                raise error from cause

            delay = self._retry_sleep * attempt
            logger.warning(
                "Bridge request %s %s failed (%s); retrying in %.2fs",
                prepared.method,
                path,
                error.message,
                delay,
            )
            self._sleep(delay)

    # ---- Bridge operations ---------------------------------------------------------

    def get_health(self) -> dict[str, Any]:
        data = self.get(Endpoint.HEALTH)
        if data.get("status") != "ok":
            raise NetworkError.health_check_failed(
                str(data.get("message") or "Unknown health check failure")
            )
        return data

    def health_check(self) -> bool:
        try:
            self.get_health()
        except MidnightError as exc:
            logger.warning("Bridge health check failed: %s", exc.message)
            return False
        return True

    def get_network_metadata(self) -> NetworkMetadata:
        return NetworkMetadata.from_dict(self.get(Endpoint.NETWORK_METADATA))

    def submit_transaction(self, tx_data: Mapping[str, Any]) -> TxHash:
        data = self.post(Endpoint.TX_SUBMIT, tx_data)
        return _require_tx_hash(data, Endpoint.TX_SUBMIT.value)

    def get_transaction_status(self, tx_hash: TxHash | str) -> TransactionStatus:
        path = Endpoint.TX_STATUS.value.format(tx_hash=quote(str(tx_hash), safe=""))
        data = self.get(path)
        if data.get("status") is None:
            raise NetworkError.missing_field("status", path)
        try:
            return TransactionStatus.from_dict(data)
        except (TypeError, ValueError) as exc:
            reason = f"block_height is not an integer: {exc}"
            raise NetworkError(
                f"Bridge returned invalid response from {path}: {reason}",
                endpoint=path,
                details={"reason": reason},
            ) from exc

    def call_contract(
        self, contract_address: str, entrypoint: str, args: Mapping[str, Any] | None = None
    ) -> ContractCallResult:
        try:
            data = self.post(
                Endpoint.CONTRACT_CALL,
                {
                    "contract_address": contract_address,
                    "entrypoint": entrypoint,
                    "arguments": dict(args or {}),
                },
            )
        except NetworkError as exc:
            raise ContractError.call_failed(
                contract_address,
                entrypoint,
                exc.message,
                details={"status_code": exc.status_code},
            ) from exc
        return ContractCallResult.from_dict(data)

    def generate_proof(
        self,
        contract_name: str,
        entrypoint: str,
        public_inputs: Mapping[str, Any],
        private_inputs: Mapping[str, Any],
    ) -> ProofResponse:
        logger.debug(
            "Requesting proof for %s::%s inputs=%s",
            contract_name,
            entrypoint,
            redact({"public_inputs": public_inputs, "private_inputs": private_inputs}),
        )
        try:
            data = self.post(
                Endpoint.PROOF_GENERATE,
                {
                    "contract_name": contract_name,
                    "entrypoint": entrypoint,
                    "public_inputs": dict(public_inputs),
                    "private_inputs": dict(private_inputs),
                },
            )
        except NetworkError as exc:
            raise ProofFailedError.generation_failed(
                contract_name,
                entrypoint,
                exc.message,
                details={"status_code": exc.status_code},
            ) from exc

        proof = ProofResponse.from_dict(data)
        if proof.is_empty():
            raise ProofFailedError.generation_failed(
                contract_name, entrypoint, "Bridge returned an empty proof"
            )
        return proof

    def deploy_contract(
        self,
        contract_path: str,
        constructor_args: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> DeploymentResult:
        try:
            data = self.post(
                Endpoint.CONTRACT_DEPLOY,
                {
                    "contract_path": contract_path,
                    "constructor_args": dict(constructor_args or {}),
                    "options": dict(options or {}),
                },
            )
        except NetworkError as exc:
            raise ContractError.deployment_failed(exc.message, contract_path) from exc

        address = pick(data, "contract_address", "contractAddress")
        if not address:
            raise ContractError.deployment_failed(
                "Missing contract_address in response", contract_path
            )
        tx_hash = pick(data, "tx_hash", "txHash")
        return DeploymentResult(
            contract_address=str(address),
            tx_hash=TxHash(str(tx_hash)) if tx_hash else None,
            raw=data,
        )

    def join_contract(
        self, contract_address: str, params: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        try:
            return self.post(
                Endpoint.CONTRACT_JOIN,
                {"contract_address": contract_address, "params": dict(params or {})},
            )
        except NetworkError as exc:
            raise ContractError.join_failed(contract_address, exc.message) from exc

    def get_wallet_address(self) -> Address:
        data = self.get(Endpoint.WALLET_ADDRESS)
        address = data.get("address")
        if not address:
            raise NetworkError.missing_field("address", Endpoint.WALLET_ADDRESS.value)
        return Address(str(address))

    def get_wallet_balance(self, address: str | None = None) -> dict[str, Any]:
        params = {"address": address} if address is not None else None
        return self.get(Endpoint.WALLET_BALANCE, params=params)

    def wallet_transfer(
        self, to: str, amount: str | int, options: Mapping[str, Any] | None = None
    ) -> TxHash:
        payload = {**dict(options or {}), "to_address": to, "amount": str(amount)}
        data = self.post(Endpoint.WALLET_TRANSFER, payload)
        return _require_tx_hash(data, Endpoint.WALLET_TRANSFER.value)

    # ---- Helpers -------------------------------------------------------------------

    def _decode(self, response: requests.Response, path: str) -> dict[str, Any]:
        status = response.status_code
        if not 200 <= status < 300:
            raise self._error_from_response(response, path)

        try:
            payload = response.json()
        except ValueError as exc:
            raise NetworkError.invalid_response(status, path, "body is not valid JSON") from exc
        if not isinstance(payload, Mapping):
            raise NetworkError.invalid_response(status, path, "expected a JSON object")
        return dict(payload)

    def _error_from_response(
        self,
        response: requests.Response,
        path: str,
        error_cls: type[NetworkError] = NetworkError,
    ) -> NetworkError:
        status = response.status_code
        try:
            payload = response.json()
        except ValueError:
            return error_cls(
                f"Bridge returned invalid response (HTTP {status}) from {path}",
                endpoint=path,
                status_code=status,
            )

        message = pick(payload, "message", "error") if isinstance(payload, Mapping) else None
        if not message:
            return error_cls(
                f"Bridge returned HTTP {status} from {path}",
                endpoint=path,
                status_code=status,
                details={"response": redact(payload)},
            )
        return error_cls(
            str(message),
            endpoint=path,
            status_code=status,
            details={"response": redact(payload)},
        )


def _is_retryable(status: int) -> bool:
    return status >= 500 or status in RETRYABLE_STATUS_CODES


def _require_tx_hash(data: Mapping[str, Any], path: str) -> TxHash:
    tx_hash = pick(data, "tx_hash", "txHash")
    if not tx_hash:
        raise NetworkError.missing_field("tx_hash", path)
    return TxHash(str(tx_hash))
