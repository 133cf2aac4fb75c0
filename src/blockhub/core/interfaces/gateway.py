"""Remote resource gateway interface.

The narrow contract the lifecycle coordinator consumes. Every call is
scoped by a partition (region) and returns the current remote state; no
call waits for an asynchronous effect to settle.

Implementations:
- EC2Gateway: EBS via aioboto3
"""

from abc import ABC, abstractmethod

from blockhub.core.domain.remote import RemoteAttachment, RemoteSnapshot, RemoteVolume


class RemoteResourceGateway(ABC):
    """Interface for remote block-storage calls.

    Every method may raise ResourceNotFoundError when the addressed
    resource does not exist; other provider errors surface as
    RemoteFailureError.
    """

    @abstractmethod
    async def list_scopes(self) -> list[str]:
        """Return every partition known to the provider."""
        ...

    @abstractmethod
    async def describe_volumes(self, scope: str, *volume_ids: str) -> list[RemoteVolume]:
        """Describe volumes in a scope.

        Args:
            scope: Partition (region)
            *volume_ids: Local ids to describe; none means all volumes

        Raises:
            ResourceNotFoundError: If any requested id does not exist
        """
        ...

    @abstractmethod
    async def create_volume(self, scope: str, size_gb: float, zone: str) -> RemoteVolume:
        """Request an empty volume. Returns while still creating."""
        ...

    @abstractmethod
    async def create_volume_from_snapshot(
        self,
        scope: str,
        snapshot_id: str,
        zone: str,
        size_gb: float | None = None,
    ) -> RemoteVolume:
        """Request a volume restored from a snapshot.

        Args:
            size_gb: Overrides the snapshot size when set
        """
        ...

    @abstractmethod
    async def delete_volume(self, scope: str, volume_id: str) -> None:
        ...

    @abstractmethod
    async def attach_volume(
        self, scope: str, volume_id: str, node_id: str, device: str
    ) -> RemoteAttachment:
        """Request attachment of a volume to an instance.

        Raises:
            ResourceNotFoundError: If the volume or the instance is missing
        """
        ...

    @abstractmethod
    async def detach_volume(
        self,
        scope: str,
        volume_id: str,
        force: bool,
        device: str | None = None,
        node_id: str | None = None,
    ) -> RemoteAttachment:
        """Request detachment.

        Args:
            force: Skip the instance-side safety checks
        """
        ...

    @abstractmethod
    async def describe_snapshots(
        self,
        scope: str,
        snapshot_ids: list[str] | None = None,
        volume_id: str | None = None,
    ) -> list[RemoteSnapshot]:
        """Describe snapshots, filtered by id and/or source volume."""
        ...

    @abstractmethod
    async def create_snapshot(
        self, scope: str, volume_id: str, description: str = ""
    ) -> RemoteSnapshot:
        ...

    @abstractmethod
    async def delete_snapshot(self, scope: str, snapshot_id: str) -> None:
        ...
