"""Immutable operation options.

Provider-specific variants are discriminated by `kind`, so callers can
pattern-match on the concrete record:

    match options:
        case EC2VolumeOptions(availability_zone=zone):
            ...
        case VolumeOptions():
            raise InvalidArgumentError(...)
"""

from typing import Annotated, Literal

from pydantic import BaseModel, Field


class VolumeOptions(BaseModel):
    """Generic create options understood by every backend."""

    kind: Literal["generic"] = "generic"
    size_gb: float | None = Field(default=None, gt=0)
    location_id: str | None = None

    model_config = {"frozen": True}


class EC2VolumeOptions(BaseModel):
    """EBS create options.

    When snapshot_id is set the volume is restored from that snapshot;
    size_gb then only overrides the snapshot size.
    """

    kind: Literal["ec2"] = "ec2"
    size_gb: float | None = Field(default=None, gt=0)
    location_id: str | None = None
    availability_zone: str
    snapshot_id: str | None = None

    model_config = {"frozen": True}


CreateVolumeOptions = Annotated[
    VolumeOptions | EC2VolumeOptions, Field(discriminator="kind")
]


class AttachVolumeOptions(BaseModel):
    device: str

    model_config = {"frozen": True}


class DetachVolumeOptions(BaseModel):
    """Which attachment to detach; None means any."""

    kind: Literal["generic"] = "generic"
    device: str | None = None
    node_id: str | None = None

    model_config = {"frozen": True}


class EC2DetachVolumeOptions(BaseModel):
    """EBS detach options; force skips the instance-side unmount."""

    kind: Literal["ec2"] = "ec2"
    device: str | None = None
    node_id: str | None = None
    force: bool = False

    model_config = {"frozen": True}


DetachOptions = Annotated[
    DetachVolumeOptions | EC2DetachVolumeOptions, Field(discriminator="kind")
]


class CreateSnapshotOptions(BaseModel):
    name: str | None = None

    model_config = {"frozen": True}
