from .base import MetadataStore, StoreStatus
from .memory import MemoryMetadataStore

__all__ = ["MetadataStore", "MemoryMetadataStore", "StoreStatus"]
