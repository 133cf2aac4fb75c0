"""Provider-neutral snapshots of remote resource state.

Gateways return these; the coordinator only ever inspects them through
status predicates and converts them to Volume/Snapshot at the end of a
flow. Status values follow the EBS vocabulary.
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class RemoteVolumeStatus(StrEnum):
    CREATING = "creating"
    AVAILABLE = "available"
    IN_USE = "in-use"
    DELETING = "deleting"
    DELETED = "deleted"
    ERROR = "error"


class AttachmentStatus(StrEnum):
    ATTACHING = "attaching"
    ATTACHED = "attached"
    DETACHING = "detaching"
    DETACHED = "detached"
    BUSY = "busy"


class SnapshotStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"


class RemoteAttachment(BaseModel):
    """Attachment of one volume to one instance."""

    volume_id: str
    instance_id: str
    device: str
    status: AttachmentStatus

    model_config = {"frozen": True}


class RemoteVolume(BaseModel):
    """Current state of a remote volume in one scope (region)."""

    scope: str
    volume_id: str
    size_gb: float
    availability_zone: str
    status: RemoteVolumeStatus
    attachments: tuple[RemoteAttachment, ...] = Field(default_factory=tuple)
    snapshot_id: str | None = None
    created_at: datetime | None = None

    model_config = {"frozen": True}

    def attachment(
        self, device: str | None = None, instance_id: str | None = None
    ) -> RemoteAttachment | None:
        """Return the first attachment matching the given filters."""
        for attachment in self.attachments:
            if device is not None and attachment.device != device:
                continue
            if instance_id is not None and attachment.instance_id != instance_id:
                continue
            return attachment
        return None


class RemoteSnapshot(BaseModel):
    """Current state of a remote snapshot."""

    scope: str
    snapshot_id: str
    volume_id: str
    size_gb: float
    status: SnapshotStatus
    description: str = ""
    start_time: datetime | None = None

    model_config = {"frozen": True}
