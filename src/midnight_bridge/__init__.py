"""Midnight bridge client.

Signed HTTP transport to the Midnight bridge service, an idempotent
submission queue for state-changing contract calls, and a read cache that
is invalidated when those calls are confirmed.
"""

from .base import BridgeInterface
from .cache import CacheCoordinator, InMemoryCacheStore, InvalidationReport, RedisCacheStore
from .client import MidnightClient
from .config import (
    BridgeConfig,
    CacheConfig,
    MidnightConfig,
    QueueConfig,
    RetryConfig,
    SigningConfig,
)
from .exceptions import (
    ConfigurationError,
    ContractError,
    MidnightError,
    NetworkError,
    ProofFailedError,
    SignatureRejectedError,
)
from .http import BridgeTransport, RequestSigner
from .queue import (
    EventDispatcher,
    InMemoryLeaseStore,
    InMemoryTaskQueue,
    JobState,
    RedisLeaseStore,
    SubmissionJob,
    SubmissionQueue,
    TransactionConfirmed,
    TransactionFailed,
    compute_backoff,
)
from .types import (
    Address,
    ContractCall,
    ContractCallResult,
    DeploymentResult,
    NetworkMetadata,
    ProofResponse,
    SignedEnvelope,
    TransactionStatus,
    TxHash,
)

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "MidnightClient",
    "BridgeInterface",
    "BridgeTransport",
    "RequestSigner",
    "SubmissionQueue",
    "CacheCoordinator",
    # Configuration
    "MidnightConfig",
    "BridgeConfig",
    "SigningConfig",
    "RetryConfig",
    "CacheConfig",
    "QueueConfig",
    # Queue and cache building blocks
    "EventDispatcher",
    "InMemoryLeaseStore",
    "InMemoryTaskQueue",
    "RedisLeaseStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "InvalidationReport",
    "JobState",
    "SubmissionJob",
    "TransactionConfirmed",
    "TransactionFailed",
    "compute_backoff",
    # Types
    "Address",
    "ContractCall",
    "ContractCallResult",
    "DeploymentResult",
    "NetworkMetadata",
    "ProofResponse",
    "SignedEnvelope",
    "TransactionStatus",
    "TxHash",
    # Exceptions
    "MidnightError",
    "NetworkError",
    "SignatureRejectedError",
    "ContractError",
    "ProofFailedError",
    "ConfigurationError",
]
