"""Fixtures for lifecycle coordinator unit tests."""

from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest

from blockhub.config import PollerConfig
from blockhub.control.coordinator import VolumeLifecycleCoordinator
from blockhub.core.domain.remote import (
    AttachmentStatus,
    RemoteAttachment,
    RemoteSnapshot,
    RemoteVolume,
    RemoteVolumeStatus,
    SnapshotStatus,
)
from blockhub.core.interfaces.gateway import RemoteResourceGateway
from blockhub.core.poller import ConditionPoller


@pytest.fixture
def make_attachment() -> Callable[..., RemoteAttachment]:
    def factory(
        volume_id: str = "v1",
        instance_id: str = "i1",
        device: str = "/dev/sdh",
        status: AttachmentStatus = AttachmentStatus.ATTACHED,
    ) -> RemoteAttachment:
        return RemoteAttachment(
            volume_id=volume_id, instance_id=instance_id, device=device, status=status
        )

    return factory


@pytest.fixture
def make_volume() -> Callable[..., RemoteVolume]:
    def factory(
        volume_id: str = "v1",
        status: RemoteVolumeStatus = RemoteVolumeStatus.AVAILABLE,
        size_gb: float = 1.0,
        scope: str = "us-east-1",
        attachments: tuple[RemoteAttachment, ...] = (),
    ) -> RemoteVolume:
        return RemoteVolume(
            scope=scope,
            volume_id=volume_id,
            size_gb=size_gb,
            availability_zone=f"{scope}a",
            status=status,
            attachments=attachments,
        )

    return factory


@pytest.fixture
def make_snapshot() -> Callable[..., RemoteSnapshot]:
    def factory(
        snapshot_id: str = "snap-1",
        volume_id: str = "v1",
        status: SnapshotStatus = SnapshotStatus.COMPLETED,
        size_gb: float = 1.0,
        scope: str = "us-east-1",
        description: str = "",
    ) -> RemoteSnapshot:
        return RemoteSnapshot(
            scope=scope,
            snapshot_id=snapshot_id,
            volume_id=volume_id,
            size_gb=size_gb,
            status=status,
            description=description,
        )

    return factory


@pytest.fixture
def mock_gateway() -> AsyncMock:
    """RemoteResourceGateway mock with an empty us-east-1."""
    gateway = AsyncMock(spec=RemoteResourceGateway)
    gateway.list_scopes = AsyncMock(return_value=["us-east-1"])
    gateway.describe_volumes = AsyncMock(return_value=[])
    gateway.describe_snapshots = AsyncMock(return_value=[])
    gateway.create_volume = AsyncMock()
    gateway.create_volume_from_snapshot = AsyncMock()
    gateway.delete_volume = AsyncMock(return_value=None)
    gateway.attach_volume = AsyncMock()
    gateway.detach_volume = AsyncMock()
    gateway.create_snapshot = AsyncMock()
    gateway.delete_snapshot = AsyncMock(return_value=None)
    return gateway


@pytest.fixture
def poller() -> ConditionPoller:
    """Five refreshes, no delay."""
    return ConditionPoller(PollerConfig(max_attempts=5, delay=0.0))


@pytest.fixture
def coordinator(mock_gateway: AsyncMock, poller: ConditionPoller) -> VolumeLifecycleCoordinator:
    return VolumeLifecycleCoordinator(mock_gateway, poller, backend="test")


@pytest.fixture
def mutating_calls(mock_gateway: AsyncMock) -> Callable[[], list[str]]:
    """Names of gateway mutations that were awaited."""
    names = [
        "create_volume",
        "create_volume_from_snapshot",
        "delete_volume",
        "attach_volume",
        "detach_volume",
        "create_snapshot",
        "delete_snapshot",
    ]

    def awaited() -> list[str]:
        return [name for name in names if getattr(mock_gateway, name).await_count]

    return awaited
