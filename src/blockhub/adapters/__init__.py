"""Adapters module - VolumeService and gateway implementations."""

from blockhub.adapters.ec2 import EC2Gateway
from blockhub.adapters.memory import MultiIndexResourceStore, TenantStores

__all__ = [
    "EC2Gateway",
    "MultiIndexResourceStore",
    "TenantStores",
]
