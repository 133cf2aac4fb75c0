"""Domain models and enums."""

from blockhub.core.domain.options import (
    AttachVolumeOptions,
    CreateSnapshotOptions,
    CreateVolumeOptions,
    DetachOptions,
    DetachVolumeOptions,
    EC2DetachVolumeOptions,
    EC2VolumeOptions,
    VolumeOptions,
)
from blockhub.core.domain.remote import (
    AttachmentStatus,
    RemoteAttachment,
    RemoteSnapshot,
    RemoteVolume,
    RemoteVolumeStatus,
    SnapshotStatus,
)
from blockhub.core.domain.volume import Snapshot, Volume, VolumeType

__all__ = [
    "Volume",
    "Snapshot",
    "VolumeType",
    # Remote state
    "RemoteVolume",
    "RemoteAttachment",
    "RemoteSnapshot",
    "RemoteVolumeStatus",
    "AttachmentStatus",
    "SnapshotStatus",
    # Options
    "VolumeOptions",
    "EC2VolumeOptions",
    "CreateVolumeOptions",
    "AttachVolumeOptions",
    "DetachVolumeOptions",
    "EC2DetachVolumeOptions",
    "DetachOptions",
    "CreateSnapshotOptions",
]
