"""Constants shared across the Midnight bridge client."""

from enum import Enum

TIMESTAMP_HEADER = "X-Midnight-Timestamp"
SIGNATURE_HEADER = "X-Midnight-Signature"
API_KEY_HEADER = "X-API-Key"
USER_AGENT = "midnight-bridge-python/0.1"

DEFAULT_BASE_URI = "http://127.0.0.1:4100"
DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_SKEW = 300
DEFAULT_TRANSPORT_RETRIES = 2
DEFAULT_TRANSPORT_RETRY_SLEEP = 0.1

DEFAULT_RETRY_TIMES = 3
DEFAULT_RETRY_SLEEP_MS = 100
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_UNIQUE_FOR = 3600

DEFAULT_CACHE_PREFIX = "midnight"
DEFAULT_CONTRACT_STATE_TTL = 10.0
DEFAULT_NETWORK_METADATA_TTL = 3600.0
DEFAULT_STATIC_SELECTORS = ("name", "symbol", "decimals", "metadata", "owner")

# Status codes that are worth repeating: request timeout plus every 5xx.
RETRYABLE_STATUS_CODES = frozenset({408})
SIGNATURE_REJECTED_STATUS = 401

SENSITIVE_HEADERS = ("X-API-Key", "Authorization", SIGNATURE_HEADER)
SENSITIVE_KEYS = (
    "private_args",
    "privateargs",
    "private_inputs",
    "privateinputs",
    "api_key",
    "apikey",
    "signing_key",
    "secret",
    "password",
    "token",
)
REDACTED = "***REDACTED***"

VALID_NETWORKS = ("devnet", "testnet", "mainnet")


class Endpoint(str, Enum):
    """Bridge HTTP endpoints."""

    HEALTH = "/health"
    NETWORK_METADATA = "/network/metadata"
    TX_SUBMIT = "/tx/submit"
    TX_STATUS = "/tx/{tx_hash}/status"
    CONTRACT_CALL = "/contract/call"
    CONTRACT_DEPLOY = "/contract/deploy"
    CONTRACT_JOIN = "/contract/join"
    PROOF_GENERATE = "/proof/generate"
    WALLET_ADDRESS = "/wallet/address"
    WALLET_BALANCE = "/wallet/balance"
    WALLET_TRANSFER = "/wallet/transfer"
