"""Protocol indexer client and history helpers."""
from .client import GraphQLIndexer

__all__ = ["GraphQLIndexer"]
