"""Midnight bridge base interface."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from .types import (
    Address,
    ContractCallResult,
    DeploymentResult,
    NetworkMetadata,
    ProofResponse,
    TransactionStatus,
    TxHash,
)


class BridgeInterface(ABC):
    """Operations the bridge service exposes to the rest of the package."""

    @abstractmethod
    def get_health(self) -> dict[str, Any]:
        pass

    @abstractmethod
    def health_check(self) -> bool:
        pass

    @abstractmethod
    def get_network_metadata(self) -> NetworkMetadata:
        pass

    @abstractmethod
    def submit_transaction(self, tx_data: Mapping[str, Any]) -> TxHash:
        pass

    @abstractmethod
    def get_transaction_status(self, tx_hash: TxHash | str) -> TransactionStatus:
        pass

    @abstractmethod
    def call_contract(
        self, contract_address: str, entrypoint: str, args: Mapping[str, Any] | None = None
    ) -> ContractCallResult:
        pass

    @abstractmethod
    def generate_proof(
        self,
        contract_name: str,
        entrypoint: str,
        public_inputs: Mapping[str, Any],
        private_inputs: Mapping[str, Any],
    ) -> ProofResponse:
        pass

    @abstractmethod
    def deploy_contract(
        self,
        contract_path: str,
        constructor_args: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> DeploymentResult:
        pass

    @abstractmethod
    def join_contract(
        self, contract_address: str, params: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        pass

    @abstractmethod
    def get_wallet_address(self) -> Address:
        pass

    @abstractmethod
    def get_wallet_balance(self, address: str | None = None) -> dict[str, Any]:
        pass

    @abstractmethod
    def wallet_transfer(
        self, to: str, amount: str | int, options: Mapping[str, Any] | None = None
    ) -> TxHash:
        pass
