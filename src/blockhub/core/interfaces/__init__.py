"""Core interfaces."""

from blockhub.core.interfaces.gateway import RemoteResourceGateway
from blockhub.core.interfaces.volume import VolumeService

__all__ = [
    "RemoteResourceGateway",
    "VolumeService",
]
