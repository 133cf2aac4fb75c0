"""Control - lifecycle orchestration against remote providers."""

from blockhub.control.coordinator import VolumeLifecycleCoordinator

__all__ = ["VolumeLifecycleCoordinator"]
