"""In-memory reference store."""

from blockhub.adapters.memory.store import MultiIndexResourceStore, TenantStores

__all__ = ["MultiIndexResourceStore", "TenantStores"]
