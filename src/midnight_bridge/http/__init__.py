"""HTTP layer: request signing and the bridge transport."""

from .signer import RequestSigner
from .transport import BridgeTransport

__all__ = ["BridgeTransport", "RequestSigner"]
