"""Target-state predicates awaited by the lifecycle coordinator.

Each predicate inspects one remote snapshot; names double as the
`condition` label of the poll metrics.
"""

from blockhub.core.domain.remote import (
    AttachmentStatus,
    RemoteAttachment,
    RemoteSnapshot,
    RemoteVolume,
    RemoteVolumeStatus,
    SnapshotStatus,
)

VOLUME_AVAILABLE = "volume_available"
VOLUME_DELETED = "volume_deleted"
ATTACHMENT_ATTACHED = "attachment_attached"
ATTACHMENT_DETACHED = "attachment_detached"
SNAPSHOT_COMPLETED = "snapshot_completed"


def volume_available(volume: RemoteVolume) -> bool:
    return volume.status == RemoteVolumeStatus.AVAILABLE


def volume_deleted(volume: RemoteVolume) -> bool:
    return volume.status == RemoteVolumeStatus.DELETED


def volume_failed(volume: RemoteVolume) -> bool:
    return volume.status == RemoteVolumeStatus.ERROR


def attachment_attached(attachment: RemoteAttachment) -> bool:
    return attachment.status == AttachmentStatus.ATTACHED


def attachment_detached(attachment: RemoteAttachment) -> bool:
    return attachment.status == AttachmentStatus.DETACHED


def snapshot_completed(snapshot: RemoteSnapshot) -> bool:
    return snapshot.status == SnapshotStatus.COMPLETED


def snapshot_failed(snapshot: RemoteSnapshot) -> bool:
    return snapshot.status == SnapshotStatus.ERROR
