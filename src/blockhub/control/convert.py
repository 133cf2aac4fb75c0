"""Remote snapshot -> caller-facing record conversion."""

from blockhub.core.domain.remote import RemoteSnapshot, RemoteVolume
from blockhub.core.domain.volume import Snapshot, Volume, VolumeType
from blockhub.core.identifier import encode


def to_volume(remote: RemoteVolume) -> Volume:
    """Map a remote volume to a Volume scoped by its region.

    Only the first attachment is reflected in `device`.
    """
    first = remote.attachments[0] if remote.attachments else None
    return Volume(
        id=encode(remote.scope, remote.volume_id),
        size_gb=remote.size_gb,
        location_id=remote.scope,
        type=VolumeType.SAN,
        durable=True,
        device=first.device if first else None,
    )


def to_snapshot(remote: RemoteSnapshot, size_gb: float | None = None) -> Snapshot:
    """Map a remote snapshot to a Snapshot.

    Args:
        size_gb: Source volume size; defaults to the size the provider reports
    """
    return Snapshot(
        id=encode(remote.scope, remote.snapshot_id),
        size_gb=remote.size_gb if size_gb is None else size_gb,
        name=remote.description or None,
        location_id=remote.scope,
        volume_id=encode(remote.scope, remote.volume_id),
        created=remote.start_time,
    )
