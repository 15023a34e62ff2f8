"""
Client for the hierarchical key-value storage service.

Records are addressed by slash-delimited keys below an optional prefix and
versioned by etags for optimistic concurrency.
"""

from .client import StorageClient, create_storage_client, storage_client_from_configuration
from .models import StorageContext, StorageItem, StorageListPage, StorageRecord
from .tokens import JwtTokenProvider

__all__ = [
    "JwtTokenProvider",
    "StorageClient",
    "StorageContext",
    "StorageItem",
    "StorageListPage",
    "StorageRecord",
    "create_storage_client",
    "storage_client_from_configuration",
]
