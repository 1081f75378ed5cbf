"""Exception hierarchy for the Midnight bridge client."""

from __future__ import annotations

from typing import Any


class MidnightError(Exception):
    """Base exception for all Midnight bridge errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NetworkError(MidnightError):
    """Raised when the bridge is unreachable or answers with an unusable response."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code

    @classmethod
    def bridge_connection_failed(cls, base_uri: str, error: str | None = None) -> NetworkError:
        return cls(
            f"Failed to connect to Midnight bridge at {base_uri}",
            endpoint=base_uri,
            details={"error": error} if error else None,
        )

    @classmethod
    def bridge_timeout(cls, timeout: float, endpoint: str) -> NetworkError:
        return cls(
            f"Bridge request to {endpoint} timed out after {timeout} seconds",
            endpoint=endpoint,
            details={"timeout": timeout},
        )

    @classmethod
    def invalid_response(
        cls, status_code: int, endpoint: str, reason: str | None = None
    ) -> NetworkError:
        message = f"Bridge returned invalid response (HTTP {status_code}) from {endpoint}"
        if reason:
            message = f"{message}: {reason}"
        return cls(
            message,
            endpoint=endpoint,
            status_code=status_code,
            details={"reason": reason},
        )

    @classmethod
    def missing_field(cls, field: str, endpoint: str, status_code: int = 200) -> NetworkError:
        return cls(
            f"Missing {field} in response",
            endpoint=endpoint,
            status_code=status_code,
            details={"field": field},
        )

    @classmethod
    def health_check_failed(cls, reason: str) -> NetworkError:
        return cls(f"Bridge health check failed: {reason}", details={"reason": reason})


class SignatureRejectedError(NetworkError):
    """Raised when the bridge refuses the request signature or credentials."""


class ContractError(MidnightError):
    """Raised when a contract call, deployment or join fails."""

    def __init__(
        self,
        message: str,
        contract_address: str | None = None,
        entrypoint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.contract_address = contract_address
        self.entrypoint = entrypoint

    @classmethod
    def call_failed(
        cls, contract_address: str, entrypoint: str, reason: str, details: dict | None = None
    ) -> ContractError:
        return cls(
            f"Contract call to {contract_address}::{entrypoint} failed: {reason}",
            contract_address=contract_address,
            entrypoint=entrypoint,
            details={"reason": reason, **(details or {})},
        )

    @classmethod
    def deployment_failed(cls, reason: str, contract_path: str | None = None) -> ContractError:
        message = f"Contract deployment failed: {reason}"
        if contract_path is not None:
            message += f" (contract: {contract_path})"
        return cls(message, details={"reason": reason, "contract_path": contract_path})

    @classmethod
    def join_failed(cls, contract_address: str, reason: str) -> ContractError:
        return cls(
            f"Failed to join contract at {contract_address}: {reason}",
            contract_address=contract_address,
            details={"reason": reason},
        )

    @classmethod
    def state_read_failed(cls, contract_address: str, selector: str, reason: str) -> ContractError:
        return cls(
            f"Failed to read state '{selector}' from contract at {contract_address}: {reason}",
            contract_address=contract_address,
            entrypoint=selector,
            details={"reason": reason},
        )

    @classmethod
    def invalid_arguments(cls, entrypoint: str, reason: str, value: Any = None) -> ContractError:
        return cls(
            f"Invalid arguments for {entrypoint}: {reason}",
            entrypoint=entrypoint,
            details={"reason": reason, "value": value},
        )


class ProofFailedError(MidnightError):
    """Raised when zero-knowledge proof generation fails or yields no proof."""

    def __init__(
        self,
        message: str,
        contract_name: str | None = None,
        entrypoint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.contract_name = contract_name
        self.entrypoint = entrypoint

    @classmethod
    def generation_failed(
        cls, contract_name: str, entrypoint: str, reason: str, details: dict | None = None
    ) -> ProofFailedError:
        return cls(
            f"Proof generation failed for {contract_name}::{entrypoint}: {reason}",
            contract_name=contract_name,
            entrypoint=entrypoint,
            details={"reason": reason, **(details or {})},
        )

    @classmethod
    def server_unavailable(cls, server_uri: str) -> ProofFailedError:
        return cls(
            f"Proof server at {server_uri} is unavailable", details={"server_uri": server_uri}
        )


class ConfigurationError(MidnightError):
    """Raised at startup when settings are missing or invalid."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.field = field
        self.value = value
