"""Type definitions and data models for the Midnight bridge client."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .constants import SIGNATURE_HEADER, TIMESTAMP_HEADER
from .exceptions import ContractError
from .utils import pick


@dataclass(frozen=True)
class TxHash:
    """Transaction hash returned by the bridge."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value:
            raise ValueError("Transaction hash cannot be empty")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Address:
    """Wallet or contract address."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value:
            raise ValueError("Address cannot be empty")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ContractCall:
    """A read or write operation against a deployed contract."""

    contract_address: str
    entrypoint: str
    public_args: Mapping[str, Any] = field(default_factory=dict)
    private_args: Mapping[str, Any] = field(default_factory=dict)
    read_only: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.contract_address, str) or not self.contract_address:
            raise ContractError.invalid_arguments(
                self.entrypoint or "<unknown>", "Contract address cannot be empty"
            )
        if not isinstance(self.entrypoint, str) or not self.entrypoint:
            raise ContractError(
                "Entrypoint cannot be empty", contract_address=self.contract_address
            )
        # Copies, not the caller's mappings.
        object.__setattr__(self, "public_args", dict(self.public_args or {}))
        object.__setattr__(self, "private_args", dict(self.private_args or {}))
        object.__setattr__(self, "metadata", dict(self.metadata or {}))

    @classmethod
    def read(
        cls, contract_address: str, entrypoint: str, args: Mapping[str, Any] | None = None
    ) -> ContractCall:
        return cls(contract_address, entrypoint, public_args=args or {}, read_only=True)

    @classmethod
    def write(
        cls,
        contract_address: str,
        entrypoint: str,
        public_args: Mapping[str, Any] | None = None,
        private_args: Mapping[str, Any] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> ContractCall:
        return cls(
            contract_address,
            entrypoint,
            public_args=public_args or {},
            private_args=private_args or {},
            read_only=False,
            metadata=metadata or {},
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ContractCall:
        return cls(
            contract_address=pick(data, "contract_address", "contractAddress", default=""),
            entrypoint=data.get("entrypoint") or "",
            public_args=pick(data, "public_args", "publicArgs", default={}),
            private_args=pick(data, "private_args", "privateArgs", default={}),
            read_only=bool(pick(data, "read_only", "readOnly", default=False)),
            metadata=data.get("metadata") or {},
        )

    def has_private_args(self) -> bool:
        return bool(self.private_args)

    def requires_proof(self) -> bool:
        return not self.read_only and self.has_private_args()

    def to_payload(self) -> dict[str, Any]:
        """Body sent to the bridge submit endpoint."""
        return {
            "contract_address": self.contract_address,
            "entrypoint": self.entrypoint,
            "public_args": dict(self.public_args),
            "private_args": dict(self.private_args),
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class SignedEnvelope:
    """Authentication material attached to one outgoing request."""

    timestamp: int
    method: str
    path: str
    body_hash: str
    signature: str

    def headers(self) -> dict[str, str]:
        return {TIMESTAMP_HEADER: str(self.timestamp), SIGNATURE_HEADER: self.signature}


@dataclass(frozen=True)
class ContractCallResult:
    """Outcome of a read-only contract call."""

    value: Any = None
    success: bool = True
    error: str | None = None
    raw_response: Mapping[str, Any] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ContractCallResult:
        success = data.get("success")
        return cls(
            value=pick(data, "value", "result"),
            success=True if success is None else bool(success),
            error=data.get("error"),
            raw_response=dict(data),
            metadata=data.get("metadata") or {},
        )

    @classmethod
    def failure(cls, error: str, raw_response: Mapping[str, Any] | None = None) -> ContractCallResult:
        return cls(value=None, success=False, error=error, raw_response=raw_response or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "success": self.success,
            "error": self.error,
            "raw_response": dict(self.raw_response),
            "metadata": dict(self.metadata),
        }

    def has_value(self) -> bool:
        return self.value is not None

    def value_or_raise(self, contract_address: str = "", entrypoint: str = "") -> Any:
        if not self.success:
            raise ContractError.call_failed(
                contract_address or "<unknown>",
                entrypoint or "<unknown>",
                self.error or "Unknown error",
            )
        return self.value


@dataclass(frozen=True)
class ProofResponse:
    """Zero-knowledge proof produced by the bridge proof server."""

    proof: str
    public_outputs: Mapping[str, Any] = field(default_factory=dict)
    verified: bool = False
    generation_time: float | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProofResponse:
        generation_time = pick(data, "generation_time", "generationTime")
        return cls(
            proof=data.get("proof") or "",
            public_outputs=pick(data, "public_outputs", "publicOutputs", default={}),
            verified=bool(data.get("verified", False)),
            generation_time=float(generation_time) if generation_time is not None else None,
            metadata=data.get("metadata") or {},
        )

    def is_empty(self) -> bool:
        return not self.proof

    def has_public_outputs(self) -> bool:
        return bool(self.public_outputs)


@dataclass(frozen=True)
class NetworkMetadata:
    """Descriptive metadata for the network the bridge is attached to."""

    chain_id: str
    name: str
    explorer_uri: str | None = None
    protocol_params: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NetworkMetadata:
        return cls(
            chain_id=str(pick(data, "chain_id", "chainId", default="")),
            name=str(data.get("name") or ""),
            explorer_uri=pick(data, "explorer_uri", "explorerUri"),
            protocol_params=pick(data, "protocol_params", "protocolParams", default={}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "name": self.name,
            "explorer_uri": self.explorer_uri,
            "protocol_params": dict(self.protocol_params),
        }

    def explorer_tx_url(self, tx_hash: str) -> str | None:
        if self.explorer_uri is None:
            return None
        return f"{self.explorer_uri.rstrip('/')}/tx/{tx_hash}"

    def is_mainnet(self) -> bool:
        return self.name.lower() == "mainnet"


@dataclass(frozen=True)
class TransactionStatus:
    """Ledger status of a submitted transaction."""

    status: str
    block_height: int | None = None
    raw: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TransactionStatus:
        height = pick(data, "block_height", "blockHeight")
        return cls(
            status=str(data["status"]).lower(),
            block_height=int(height) if height is not None else None,
            raw=dict(data),
        )

    def is_final(self) -> bool:
        return self.status in {"confirmed", "failed"}


@dataclass(frozen=True)
class DeploymentResult:
    """Address and transaction of a freshly deployed contract."""

    contract_address: str
    tx_hash: TxHash | None = None
    raw: Mapping[str, Any] = field(default_factory=dict)
