"""Protocol interfaces for the lending dashboard."""
from .chain import ChainReader, WalletClient
from .indexer import Indexer
from .price_oracle import PriceOracle

__all__ = ["ChainReader", "WalletClient", "Indexer", "PriceOracle"]
