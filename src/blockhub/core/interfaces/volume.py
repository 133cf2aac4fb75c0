"""Volume lifecycle interface."""

from abc import ABC, abstractmethod

from blockhub.core.domain.options import (
    AttachVolumeOptions,
    CreateSnapshotOptions,
    DetachVolumeOptions,
    EC2DetachVolumeOptions,
    EC2VolumeOptions,
    VolumeOptions,
)
from blockhub.core.domain.volume import Snapshot, Volume


class VolumeService(ABC):
    """Volume and snapshot lifecycle operations.

    Implementations:
    - VolumeLifecycleCoordinator: remote provider through a gateway
    - MultiIndexResourceStore: in-memory reference

    All ids are composite handles. Absent inputs produce negative results
    (None, False or an empty set), never exceptions. Malformed ids raise
    InvalidArgumentError before any side effect.
    """

    @abstractmethod
    async def create_volume(
        self, name: str | None, options: VolumeOptions | EC2VolumeOptions
    ) -> Volume | None:
        """Create a volume and wait until it is usable.

        Returns:
            The finalized volume, or None if the source snapshot is missing
        """
        ...

    @abstractmethod
    async def attach_volume(
        self, volume_id: str, node_id: str, options: AttachVolumeOptions
    ) -> bool:
        ...

    @abstractmethod
    async def detach_volume(
        self,
        volume_id: str,
        options: DetachVolumeOptions | EC2DetachVolumeOptions | None = None,
    ) -> bool:
        """Detach the attachment selected by options (any if unset).

        Returns:
            False if the volume is missing or no attachment matches
        """
        ...

    @abstractmethod
    async def remove_volume(self, volume_id: str) -> bool:
        ...

    @abstractmethod
    async def get_volume_by_id(self, volume_id: str) -> Volume | None:
        ...

    @abstractmethod
    async def list_volumes(self) -> set[Volume]:
        ...

    @abstractmethod
    async def list_volumes_in_location(self, location_id: str) -> set[Volume]:
        ...

    @abstractmethod
    async def list_volumes_for_node(self, node_id: str) -> set[Volume]:
        """Volumes currently attached to the node, with device set."""
        ...

    @abstractmethod
    async def create_snapshot(
        self, volume_id: str, options: CreateSnapshotOptions | None = None
    ) -> Snapshot | None:
        """Snapshot a volume and wait until the snapshot is complete.

        Returns:
            The snapshot, or None if the source volume is missing
        """
        ...

    @abstractmethod
    async def delete_snapshot(self, snapshot_id: str) -> bool:
        ...

    @abstractmethod
    async def get_snapshot_by_id(self, snapshot_id: str) -> Snapshot | None:
        ...

    @abstractmethod
    async def list_snapshots(self) -> set[Snapshot]:
        ...

    @abstractmethod
    async def list_snapshots_in_location(self, location_id: str) -> set[Snapshot]:
        ...

    @abstractmethod
    async def list_snapshots_for_volume(self, volume_id: str) -> set[Snapshot]:
        ...
