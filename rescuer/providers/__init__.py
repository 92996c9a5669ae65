"""Chain data source and private relay clients."""

from .base import BundleRelayProvider, ChainDataProvider
from .chain import ChainClient
from .flashbots import FlashbotsRelay

__all__ = [
    "BundleRelayProvider",
    "ChainDataProvider",
    "ChainClient",
    "FlashbotsRelay",
]
