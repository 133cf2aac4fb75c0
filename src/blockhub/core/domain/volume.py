"""Caller-facing volume and snapshot records."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel


class VolumeType(StrEnum):
    """How the volume is provisioned."""

    LOCAL = "LOCAL"
    SAN = "SAN"
    NAS = "NAS"
    POOLED = "POOLED"


class Volume(BaseModel):
    """A block device, optionally attached to a node.

    id is a composite handle (see blockhub.core.identifier). device is set
    only while the volume is attached.
    """

    id: str
    size_gb: float | None = None
    location_id: str | None = None
    type: VolumeType = VolumeType.LOCAL
    durable: bool = False
    boot_device: bool = False
    device: str | None = None
    name: str | None = None

    model_config = {"frozen": True}

    @property
    def attached(self) -> bool:
        return self.device is not None


class Snapshot(BaseModel):
    """Point-in-time copy of exactly one source volume."""

    id: str
    size_gb: float | None = None
    name: str | None = None
    location_id: str | None = None
    volume_id: str | None = None
    created: datetime | None = None

    model_config = {"frozen": True}
