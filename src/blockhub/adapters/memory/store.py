"""In-memory reference implementation of the volume lifecycle.

MultiIndexResourceStore keeps volumes and snapshots in primary maps plus
secondary indices, all guarded by one asyncio.Lock:

    _volumes            volume id   -> Volume
    _snapshots          snapshot id -> Snapshot
    _node_volumes       node id     -> {volume id}   (attached volumes)
    _location_volumes   location id -> {volume id}
    _location_snapshots location id -> {snapshot id}
    _volume_snapshots   volume id   -> {snapshot id}
    _attachments        volume id   -> (node id, device)

A volume is attached to at most one node. Every mutation updates the
primary map and all indices before releasing the lock, so a reader never
sees one without the other. Effects are immediate; there is no pending
state to wait for.
"""

import asyncio
import logging
from datetime import datetime, timezone

from blockhub.config import StoreConfig, get_settings
from blockhub.core.domain.options import (
    AttachVolumeOptions,
    CreateSnapshotOptions,
    DetachVolumeOptions,
    EC2DetachVolumeOptions,
    EC2VolumeOptions,
    VolumeOptions,
)
from blockhub.core.domain.volume import Snapshot, Volume, VolumeType
from blockhub.core.errors import InvalidArgumentError
from blockhub.core.identifier import decode, encode, region_from_zone
from blockhub.core.interfaces.volume import VolumeService
from blockhub.logging_schema import Component, LogEvent

logger = logging.getLogger(__name__)


class MultiIndexResourceStore(VolumeService):
    """Volumes and snapshots of one tenant, indexed by node and location."""

    def __init__(self, config: StoreConfig | None = None) -> None:
        self._config = config or get_settings().store
        self._volume_type = VolumeType(self._config.default_volume_type.upper())
        self._lock = asyncio.Lock()

        self._volumes: dict[str, Volume] = {}
        self._snapshots: dict[str, Snapshot] = {}
        self._node_volumes: dict[str, set[str]] = {}
        self._location_volumes: dict[str, set[str]] = {}
        self._location_snapshots: dict[str, set[str]] = {}
        self._volume_snapshots: dict[str, set[str]] = {}
        self._attachments: dict[str, tuple[str, str]] = {}

        self._next_volume = 1
        self._next_snapshot = 1

    # =========================================================================
    # Volumes
    # =========================================================================

    async def create_volume(
        self, name: str | None, options: VolumeOptions | EC2VolumeOptions
    ) -> Volume | None:
        """Create a volume in `options.location_id` (or the zone's region).

        Arguments are checked as the remote coordinator checks them: size_gb
        is required without a snapshot, and an explicit location must be
        the zone's region. With EC2VolumeOptions.snapshot_id the snapshot
        must exist in the store; its size is used unless size_gb is given.
        """
        snapshot_id: str | None = None
        match options:
            case EC2VolumeOptions(availability_zone=zone, snapshot_id=snapshot_id):
                location_id = region_from_zone(zone)
                if options.location_id is not None and options.location_id != location_id:
                    raise InvalidArgumentError(
                        f"location {options.location_id} does not contain zone {zone}"
                    )
            case VolumeOptions(location_id=location_id):
                pass
            case _:
                raise InvalidArgumentError(f"unsupported volume options: {options!r}")

        if not location_id:
            raise InvalidArgumentError("location_id is required")
        if snapshot_id is None and options.size_gb is None:
            raise InvalidArgumentError("size_gb is required without a snapshot")
        if snapshot_id is not None and decode(snapshot_id).scope != location_id:
            raise InvalidArgumentError(f"snapshot {snapshot_id} is not in {location_id}")

        async with self._lock:
            size_gb = options.size_gb
            if snapshot_id is not None:
                source = self._snapshots.get(snapshot_id)
                if source is None:
                    self._log_not_found("create_volume", snapshot_id)
                    return None
                if size_gb is None:
                    size_gb = source.size_gb

            volume_id = encode(location_id, f"{self._config.volume_prefix}{self._next_volume}")
            self._next_volume += 1

            volume = Volume(
                id=volume_id,
                name=name,
                size_gb=size_gb,
                location_id=location_id,
                type=self._volume_type,
            )
            self._volumes[volume_id] = volume
            self._location_volumes.setdefault(location_id, set()).add(volume_id)

        logger.info(
            "Volume created",
            extra={
                "event": LogEvent.VOLUME_CREATED,
                "component": Component.STORE,
                "volume_id": volume_id,
                "snapshot_id": snapshot_id,
            },
        )
        return volume

    async def attach_volume(
        self, volume_id: str, node_id: str, options: AttachVolumeOptions
    ) -> bool:
        """Attach a volume to a node.

        Re-attaching to the current node is a no-op that succeeds;
        attaching a volume held by another node fails.
        """
        if not options.device:
            raise InvalidArgumentError("attach requires a device")
        volume_ref = decode(volume_id)
        if decode(node_id).scope != volume_ref.scope:
            raise InvalidArgumentError(
                f"node {node_id} and volume {volume_id} are in different scopes"
            )

        async with self._lock:
            volume = self._volumes.get(volume_id)
            if volume is None:
                self._log_not_found("attach_volume", volume_id)
                return False

            current = self._attachments.get(volume_id)
            if current is not None:
                holder, _ = current
                if holder == node_id:
                    return True
                logger.warning(
                    "Volume already attached to another node",
                    extra={
                        "event": LogEvent.ATTACHMENT_CONFLICT,
                        "component": Component.STORE,
                        "volume_id": volume_id,
                        "node_id": node_id,
                        "holder": holder,
                    },
                )
                return False

            self._attachments[volume_id] = (node_id, options.device)
            self._node_volumes.setdefault(node_id, set()).add(volume_id)
            self._volumes[volume_id] = volume.model_copy(update={"device": options.device})

        logger.info(
            "Volume attached",
            extra={
                "event": LogEvent.VOLUME_ATTACHED,
                "component": Component.STORE,
                "volume_id": volume_id,
                "node_id": node_id,
                "device": options.device,
            },
        )
        return True

    async def detach_volume(
        self,
        volume_id: str,
        options: DetachVolumeOptions | EC2DetachVolumeOptions | None = None,
    ) -> bool:
        options = options or DetachVolumeOptions()
        decode(volume_id)

        async with self._lock:
            volume = self._volumes.get(volume_id)
            if volume is None:
                self._log_not_found("detach_volume", volume_id)
                return False

            current = self._attachments.get(volume_id)
            if current is None:
                return False
            node_id, device = current
            if options.device is not None and options.device != device:
                return False
            if options.node_id is not None and options.node_id != node_id:
                return False

            self._unlink_attachment(volume_id)
            self._volumes[volume_id] = volume.model_copy(update={"device": None})

        logger.info(
            "Volume detached",
            extra={
                "event": LogEvent.VOLUME_DETACHED,
                "component": Component.STORE,
                "volume_id": volume_id,
                "node_id": node_id,
                "device": device,
            },
        )
        return True

    async def remove_volume(self, volume_id: str) -> bool:
        """Remove a volume and every index entry that references it.

        Snapshots taken from the volume are kept.
        """
        decode(volume_id)

        async with self._lock:
            volume = self._volumes.pop(volume_id, None)
            if volume is None:
                return False

            self._unlink_attachment(volume_id)
            _discard(self._location_volumes, volume.location_id, volume_id)
            self._volume_snapshots.pop(volume_id, None)

        logger.info(
            "Volume removed",
            extra={
                "event": LogEvent.VOLUME_REMOVED,
                "component": Component.STORE,
                "volume_id": volume_id,
            },
        )
        return True

    async def get_volume_by_id(self, volume_id: str) -> Volume | None:
        decode(volume_id)
        return self._volumes.get(volume_id)

    async def list_volumes(self) -> set[Volume]:
        async with self._lock:
            return set(self._volumes.values())

    async def list_volumes_in_location(self, location_id: str) -> set[Volume]:
        async with self._lock:
            ids = self._location_volumes.get(location_id, set())
            return {self._volumes[volume_id] for volume_id in ids}

    async def list_volumes_for_node(self, node_id: str) -> set[Volume]:
        decode(node_id)
        async with self._lock:
            ids = self._node_volumes.get(node_id, set())
            return {self._volumes[volume_id] for volume_id in ids}

    # =========================================================================
    # Snapshots
    # =========================================================================

    async def create_snapshot(
        self, volume_id: str, options: CreateSnapshotOptions | None = None
    ) -> Snapshot | None:
        options = options or CreateSnapshotOptions()
        decode(volume_id)

        async with self._lock:
            volume = self._volumes.get(volume_id)
            if volume is None:
                self._log_not_found("create_snapshot", volume_id)
                return None

            location_id = volume.location_id or decode(volume_id).scope
            snapshot_id = encode(
                location_id, f"{self._config.snapshot_prefix}{self._next_snapshot}"
            )
            self._next_snapshot += 1

            snapshot = Snapshot(
                id=snapshot_id,
                name=options.name,
                size_gb=volume.size_gb,
                location_id=location_id,
                volume_id=volume_id,
                created=datetime.now(timezone.utc),
            )
            self._snapshots[snapshot_id] = snapshot
            self._location_snapshots.setdefault(location_id, set()).add(snapshot_id)
            self._volume_snapshots.setdefault(volume_id, set()).add(snapshot_id)

        logger.info(
            "Snapshot created",
            extra={
                "event": LogEvent.SNAPSHOT_CREATED,
                "component": Component.STORE,
                "snapshot_id": snapshot_id,
                "volume_id": volume_id,
            },
        )
        return snapshot

    async def delete_snapshot(self, snapshot_id: str) -> bool:
        decode(snapshot_id)

        async with self._lock:
            snapshot = self._snapshots.pop(snapshot_id, None)
            if snapshot is None:
                return False

            _discard(self._location_snapshots, snapshot.location_id, snapshot_id)
            _discard(self._volume_snapshots, snapshot.volume_id, snapshot_id)

        logger.info(
            "Snapshot deleted",
            extra={
                "event": LogEvent.SNAPSHOT_DELETED,
                "component": Component.STORE,
                "snapshot_id": snapshot_id,
            },
        )
        return True

    async def get_snapshot_by_id(self, snapshot_id: str) -> Snapshot | None:
        decode(snapshot_id)
        return self._snapshots.get(snapshot_id)

    async def list_snapshots(self) -> set[Snapshot]:
        async with self._lock:
            return set(self._snapshots.values())

    async def list_snapshots_in_location(self, location_id: str) -> set[Snapshot]:
        async with self._lock:
            ids = self._location_snapshots.get(location_id, set())
            return {self._snapshots[snapshot_id] for snapshot_id in ids}

    async def list_snapshots_for_volume(self, volume_id: str) -> set[Snapshot]:
        decode(volume_id)
        async with self._lock:
            ids = self._volume_snapshots.get(volume_id, set())
            return {self._snapshots[snapshot_id] for snapshot_id in ids}

    # =========================================================================
    # Invariants
    # =========================================================================

    def consistency_errors(self) -> list[str]:
        """Describe every index entry that disagrees with the primary maps.

        Empty when the store is consistent.
        """
        errors: list[str] = []

        holders: dict[str, list[str]] = {}
        for node_id, volume_ids in self._node_volumes.items():
            if not volume_ids:
                errors.append(f"empty node index entry {node_id}")
            for volume_id in volume_ids:
                holders.setdefault(volume_id, []).append(node_id)
                if volume_id not in self._volumes:
                    errors.append(f"node {node_id} references missing volume {volume_id}")

        for volume_id, nodes in holders.items():
            if len(nodes) != 1:
                errors.append(f"volume {volume_id} attached to {sorted(nodes)}")
            attachment = self._attachments.get(volume_id)
            if attachment is None or attachment[0] != nodes[0]:
                errors.append(f"volume {volume_id} missing attachment record")

        for volume_id, (node_id, device) in self._attachments.items():
            if volume_id not in self._node_volumes.get(node_id, set()):
                errors.append(f"attachment of {volume_id} not indexed under {node_id}")
            volume = self._volumes.get(volume_id)
            if volume is None or volume.device != device:
                errors.append(f"attachment of {volume_id} disagrees with volume device")

        for volume_id, volume in self._volumes.items():
            if volume.device is not None and volume_id not in self._attachments:
                errors.append(f"volume {volume_id} has device but no attachment")
            if volume_id not in self._location_volumes.get(volume.location_id, set()):
                errors.append(f"volume {volume_id} missing from location index")
            if decode(volume_id).scope != volume.location_id:
                errors.append(f"volume {volume_id} scope differs from {volume.location_id}")

        for location_id, volume_ids in self._location_volumes.items():
            for volume_id in volume_ids:
                volume = self._volumes.get(volume_id)
                if volume is None or volume.location_id != location_id:
                    errors.append(f"location {location_id} lists stale volume {volume_id}")

        for location_id, snapshot_ids in self._location_snapshots.items():
            for snapshot_id in snapshot_ids:
                snapshot = self._snapshots.get(snapshot_id)
                if snapshot is None or snapshot.location_id != location_id:
                    errors.append(f"location {location_id} lists stale snapshot {snapshot_id}")

        for volume_id, snapshot_ids in self._volume_snapshots.items():
            if volume_id not in self._volumes:
                errors.append(f"snapshot index references removed volume {volume_id}")
            for snapshot_id in snapshot_ids:
                snapshot = self._snapshots.get(snapshot_id)
                if snapshot is None or snapshot.volume_id != volume_id:
                    errors.append(f"volume {volume_id} lists stale snapshot {snapshot_id}")

        for snapshot_id, snapshot in self._snapshots.items():
            if snapshot_id not in self._location_snapshots.get(snapshot.location_id, set()):
                errors.append(f"snapshot {snapshot_id} missing from location index")
            if decode(snapshot.volume_id).scope != decode(snapshot_id).scope:
                errors.append(f"snapshot {snapshot_id} scope differs from its volume")

        return errors

    def _unlink_attachment(self, volume_id: str) -> None:
        attachment = self._attachments.pop(volume_id, None)
        if attachment is not None:
            _discard(self._node_volumes, attachment[0], volume_id)

    def _log_not_found(self, operation: str, resource_id: str) -> None:
        logger.info(
            "%s: resource %s not found",
            operation,
            resource_id,
            extra={
                "event": LogEvent.RESOURCE_NOT_FOUND,
                "component": Component.STORE,
                "resource_id": resource_id,
            },
        )


def _discard(index: dict[str, set[str]], key: str | None, value: str) -> None:
    """Remove value from index[key], dropping the key once empty."""
    if key is None:
        return
    members = index.get(key)
    if members is None:
        return
    members.discard(value)
    if not members:
        del index[key]


class TenantStores:
    """One MultiIndexResourceStore per tenant (credential identity).

    Owned by the caller; nothing is shared across instances.
    """

    def __init__(self, config: StoreConfig | None = None) -> None:
        self._config = config
        self._stores: dict[str, MultiIndexResourceStore] = {}

    def get(self, tenant: str) -> MultiIndexResourceStore:
        if tenant not in self._stores:
            self._stores[tenant] = MultiIndexResourceStore(self._config)
        return self._stores[tenant]

    def clear(self) -> None:
        self._stores.clear()

    def __len__(self) -> int:
        return len(self._stores)
