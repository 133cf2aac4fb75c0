"""VolumeLifecycleCoordinator - lifecycle flows against a remote provider.

Each mutating flow is one gateway call followed by a bounded wait:

    create   REQUESTED -> PENDING   -> READY      (volume_available)
    attach   READY     -> ATTACHING -> ATTACHED   (attachment_attached)
    detach   ATTACHED  -> DETACHING -> DETACHED   (attachment_detached)
    delete   READY     -> DELETING  -> DELETED    (volume_deleted, not-found ok)
    snapshot REQUESTED -> PENDING   -> COMPLETED  (snapshot_completed)

Result contract:
- Absent inputs -> None / False / empty set (logged, not raised)
- Malformed ids or missing options -> InvalidArgumentError, before any call
- Budget exhausted -> PollTimeoutError (remote resource left as-is)
- Provider errors -> RemoteFailureError, never re-issued here
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager

from blockhub.control import conditions
from blockhub.control.convert import to_snapshot, to_volume
from blockhub.core.domain.options import (
    AttachVolumeOptions,
    CreateSnapshotOptions,
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
)
from blockhub.core.domain.volume import Snapshot, Volume
from blockhub.core.errors import (
    InvalidArgumentError,
    PollCancelledError,
    PollTimeoutError,
    ResourceNotFoundError,
)
from blockhub.core.identifier import ResourceIdentifier, decode, encode, region_from_zone
from blockhub.core.interfaces.gateway import RemoteResourceGateway
from blockhub.core.interfaces.volume import VolumeService
from blockhub.core.poller import ConditionPoller
from blockhub.logging_schema import Component, ErrorClass, LogEvent
from blockhub.metrics.collector import LIFECYCLE_OPERATIONS_TOTAL

logger = logging.getLogger(__name__)

# Attachment states in which the node holds the volume
_HELD = frozenset({AttachmentStatus.ATTACHING, AttachmentStatus.ATTACHED, AttachmentStatus.BUSY})


class VolumeLifecycleCoordinator(VolumeService):
    """Lifecycle operations for one provider, composed from a gateway and a poller.

    Args:
        gateway: Remote calls for the provider
        poller: Wait primitive (default: ConditionPoller with env budgets)
        backend: Metric label for this provider
        cancel: Optional event that aborts every in-flight wait when set
    """

    def __init__(
        self,
        gateway: RemoteResourceGateway,
        poller: ConditionPoller | None = None,
        backend: str = "ec2",
        cancel: asyncio.Event | None = None,
    ) -> None:
        self._gateway = gateway
        self._poller = poller or ConditionPoller()
        self._backend = backend
        self._cancel = cancel

    # =========================================================================
    # Volumes
    # =========================================================================

    async def create_volume(
        self, name: str | None, options: VolumeOptions | EC2VolumeOptions
    ) -> Volume | None:
        match options:
            case EC2VolumeOptions(availability_zone=zone, snapshot_id=snapshot_handle):
                pass
            case VolumeOptions():
                raise InvalidArgumentError(
                    "create_volume requires EC2VolumeOptions with an availability zone"
                )
            case _:
                raise InvalidArgumentError(f"unsupported volume options: {options!r}")

        scope = region_from_zone(zone)
        if options.location_id is not None and options.location_id != scope:
            raise InvalidArgumentError(
                f"location {options.location_id} does not contain zone {zone}"
            )

        snapshot: ResourceIdentifier | None = None
        if snapshot_handle is not None:
            snapshot = decode(snapshot_handle)
            if snapshot.scope != scope:
                raise InvalidArgumentError(
                    f"snapshot {snapshot_handle} is not in region {scope}"
                )
        elif options.size_gb is None:
            raise InvalidArgumentError("size_gb is required without a snapshot")

        with self._tracked("create_volume"):
            if snapshot is not None:
                if await self._describe_snapshot(snapshot.scope, snapshot.local_id) is None:
                    self._not_found("create_volume", snapshot_handle)
                    return None
                created = await self._gateway.create_volume_from_snapshot(
                    scope, snapshot.local_id, zone, size_gb=options.size_gb
                )
            else:
                created = await self._gateway.create_volume(scope, options.size_gb, zone)

            await self._poller.wait(
                created,
                conditions.volume_available,
                self._refresh_volume,
                condition=conditions.VOLUME_AVAILABLE,
                operation="create_volume",
                failed=conditions.volume_failed,
                cancel=self._cancel,
            )

            final = await self._describe_volume(created.scope, created.volume_id)
            if final is None:
                self._not_found("create_volume", encode(created.scope, created.volume_id))
                return None

            volume = to_volume(final)
            self._record("create_volume", "success")
            logger.info(
                "Volume created",
                extra={
                    "event": LogEvent.VOLUME_CREATED,
                    "component": Component.COORDINATOR,
                    "volume_id": volume.id,
                    "volume_name": name,
                    "size_gb": volume.size_gb,
                    "snapshot_id": snapshot_handle,
                },
            )
            return volume

    async def attach_volume(
        self, volume_id: str, node_id: str, options: AttachVolumeOptions
    ) -> bool:
        if not options.device:
            raise InvalidArgumentError("attach requires a device")
        volume = decode(volume_id)
        node = decode(node_id)
        if node.scope != volume.scope:
            raise InvalidArgumentError(
                f"node {node_id} and volume {volume_id} are in different scopes"
            )

        with self._tracked("attach_volume"):
            try:
                attachment = await self._gateway.attach_volume(
                    volume.scope, volume.local_id, node.local_id, options.device
                )
                await self._poller.wait(
                    attachment,
                    conditions.attachment_attached,
                    self._attachment_refresher(volume.scope, AttachmentStatus.ATTACHING),
                    condition=conditions.ATTACHMENT_ATTACHED,
                    operation="attach_volume",
                    cancel=self._cancel,
                )
            except ResourceNotFoundError as exc:
                self._not_found("attach_volume", exc.resource_id or volume_id)
                return False

            self._record("attach_volume", "success")
            logger.info(
                "Volume attached",
                extra={
                    "event": LogEvent.VOLUME_ATTACHED,
                    "component": Component.COORDINATOR,
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
        match options:
            case None:
                options, force = DetachVolumeOptions(), False
            case EC2DetachVolumeOptions(force=force):
                pass
            case DetachVolumeOptions():
                force = False
            case _:
                raise InvalidArgumentError(f"unsupported detach options: {options!r}")

        volume = decode(volume_id)
        instance_id: str | None = None
        if options.node_id is not None:
            node = decode(options.node_id)
            if node.scope != volume.scope:
                raise InvalidArgumentError(
                    f"node {options.node_id} and volume {volume_id} are in different scopes"
                )
            instance_id = node.local_id

        with self._tracked("detach_volume"):
            remote = await self._describe_volume(volume.scope, volume.local_id)
            if remote is None:
                self._not_found("detach_volume", volume_id)
                return False

            # Resolve before the call: the attachment record is gone afterwards.
            target = remote.attachment(device=options.device, instance_id=instance_id)
            if target is None:
                self._record("detach_volume", "not_found")
                logger.warning(
                    "No matching attachment to detach",
                    extra={
                        "event": LogEvent.ATTACHMENT_NOT_FOUND,
                        "component": Component.COORDINATOR,
                        "volume_id": volume_id,
                        "device": options.device,
                        "node_id": options.node_id,
                        "attachments": len(remote.attachments),
                    },
                )
                return False

            try:
                detaching = await self._gateway.detach_volume(
                    volume.scope,
                    volume.local_id,
                    force,
                    device=target.device,
                    node_id=target.instance_id,
                )
            except ResourceNotFoundError:
                self._not_found("detach_volume", volume_id)
                return False

            await self._poller.wait(
                detaching,
                conditions.attachment_detached,
                self._attachment_refresher(volume.scope, AttachmentStatus.DETACHED),
                condition=conditions.ATTACHMENT_DETACHED,
                operation="detach_volume",
                not_found_is_ready=True,
                cancel=self._cancel,
            )

            self._record("detach_volume", "success")
            logger.info(
                "Volume detached",
                extra={
                    "event": LogEvent.VOLUME_DETACHED,
                    "component": Component.COORDINATOR,
                    "volume_id": volume_id,
                    "node_id": encode(volume.scope, target.instance_id),
                    "device": target.device,
                    "force": force,
                },
            )
            return True

    async def remove_volume(self, volume_id: str) -> bool:
        volume = decode(volume_id)

        with self._tracked("remove_volume"):
            remote = await self._describe_volume(volume.scope, volume.local_id)
            if remote is None:
                self._not_found("remove_volume", volume_id)
                return False

            try:
                await self._gateway.delete_volume(volume.scope, volume.local_id)
            except ResourceNotFoundError:
                # Deleted concurrently
                pass
            else:
                await self._poller.wait(
                    remote,
                    conditions.volume_deleted,
                    self._refresh_volume,
                    condition=conditions.VOLUME_DELETED,
                    operation="remove_volume",
                    not_found_is_ready=True,
                    cancel=self._cancel,
                )

            self._record("remove_volume", "success")
            logger.info(
                "Volume removed",
                extra={
                    "event": LogEvent.VOLUME_REMOVED,
                    "component": Component.COORDINATOR,
                    "volume_id": volume_id,
                },
            )
            return True

    async def get_volume_by_id(self, volume_id: str) -> Volume | None:
        volume = decode(volume_id)
        remote = await self._describe_volume(volume.scope, volume.local_id)
        return to_volume(remote) if remote is not None else None

    async def list_volumes(self) -> set[Volume]:
        scopes = await self._gateway.list_scopes()
        per_scope = await asyncio.gather(
            *(self.list_volumes_in_location(scope) for scope in scopes)
        )
        return set().union(*per_scope)

    async def list_volumes_in_location(self, location_id: str) -> set[Volume]:
        if not location_id:
            raise InvalidArgumentError("location id must not be empty")
        remotes = await self._gateway.describe_volumes(location_id)
        return {to_volume(remote) for remote in remotes if remote is not None}

    async def list_volumes_for_node(self, node_id: str) -> set[Volume]:
        """Volumes the node holds; attachments on their way out are skipped."""
        node = decode(node_id)
        remotes = await self._gateway.describe_volumes(node.scope)

        volumes = set()
        for remote in remotes:
            if remote is None:
                continue
            attachment = next(
                (
                    a
                    for a in remote.attachments
                    if a.instance_id == node.local_id and a.status in _HELD
                ),
                None,
            )
            if attachment is None:
                continue
            volumes.add(to_volume(remote).model_copy(update={"device": attachment.device}))
        return volumes

    # =========================================================================
    # Snapshots
    # =========================================================================

    async def create_snapshot(
        self, volume_id: str, options: CreateSnapshotOptions | None = None
    ) -> Snapshot | None:
        options = options or CreateSnapshotOptions()
        volume = decode(volume_id)

        with self._tracked("create_snapshot"):
            source = await self._describe_volume(volume.scope, volume.local_id)
            if source is None:
                self._not_found("create_snapshot", volume_id)
                return None

            try:
                pending = await self._gateway.create_snapshot(
                    volume.scope, volume.local_id, description=options.name or ""
                )
            except ResourceNotFoundError:
                self._not_found("create_snapshot", volume_id)
                return None

            completed = await self._poller.wait(
                pending,
                conditions.snapshot_completed,
                self._refresh_snapshot,
                condition=conditions.SNAPSHOT_COMPLETED,
                operation="create_snapshot",
                failed=conditions.snapshot_failed,
                cancel=self._cancel,
            )

            final = await self._describe_snapshot(pending.scope, pending.snapshot_id)
            snapshot = to_snapshot(final or completed, size_gb=source.size_gb)
            self._record("create_snapshot", "success")
            logger.info(
                "Snapshot created",
                extra={
                    "event": LogEvent.SNAPSHOT_CREATED,
                    "component": Component.COORDINATOR,
                    "snapshot_id": snapshot.id,
                    "volume_id": volume_id,
                },
            )
            return snapshot

    async def delete_snapshot(self, snapshot_id: str) -> bool:
        snapshot = decode(snapshot_id)

        with self._tracked("delete_snapshot"):
            if await self._describe_snapshot(snapshot.scope, snapshot.local_id) is None:
                self._not_found("delete_snapshot", snapshot_id)
                return False

            try:
                await self._gateway.delete_snapshot(snapshot.scope, snapshot.local_id)
            except ResourceNotFoundError:
                pass

            remaining = await self._describe_snapshot(snapshot.scope, snapshot.local_id)
            deleted = remaining is None
            self._record("delete_snapshot", "success" if deleted else "error")
            logger.info(
                "Snapshot deleted" if deleted else "Snapshot still present after delete",
                extra={
                    "event": LogEvent.SNAPSHOT_DELETED,
                    "component": Component.COORDINATOR,
                    "snapshot_id": snapshot_id,
                    "confirmed": deleted,
                },
            )
            return deleted

    async def get_snapshot_by_id(self, snapshot_id: str) -> Snapshot | None:
        snapshot = decode(snapshot_id)
        remote = await self._describe_snapshot(snapshot.scope, snapshot.local_id)
        return to_snapshot(remote) if remote is not None else None

    async def list_snapshots(self) -> set[Snapshot]:
        scopes = await self._gateway.list_scopes()
        per_scope = await asyncio.gather(
            *(self.list_snapshots_in_location(scope) for scope in scopes)
        )
        return set().union(*per_scope)

    async def list_snapshots_in_location(self, location_id: str) -> set[Snapshot]:
        if not location_id:
            raise InvalidArgumentError("location id must not be empty")
        remotes = await self._gateway.describe_snapshots(location_id)
        return {to_snapshot(remote) for remote in remotes if remote is not None}

    async def list_snapshots_for_volume(self, volume_id: str) -> set[Snapshot]:
        volume = decode(volume_id)
        if await self._describe_volume(volume.scope, volume.local_id) is None:
            return set()
        remotes = await self._gateway.describe_snapshots(
            volume.scope, volume_id=volume.local_id
        )
        return {to_snapshot(remote) for remote in remotes if remote is not None}

    # =========================================================================
    # Remote lookups
    # =========================================================================

    async def _describe_volume(self, scope: str, volume_id: str) -> RemoteVolume | None:
        try:
            remotes = await self._gateway.describe_volumes(scope, volume_id)
        except ResourceNotFoundError:
            return None
        for remote in remotes:
            if remote is not None and remote.volume_id == volume_id:
                return remote
        return None

    async def _describe_snapshot(self, scope: str, snapshot_id: str) -> RemoteSnapshot | None:
        try:
            remotes = await self._gateway.describe_snapshots(scope, snapshot_ids=[snapshot_id])
        except ResourceNotFoundError:
            return None
        for remote in remotes:
            if remote is not None and remote.snapshot_id == snapshot_id:
                return remote
        return None

    async def _refresh_volume(self, volume: RemoteVolume) -> RemoteVolume:
        remote = await self._describe_volume(volume.scope, volume.volume_id)
        if remote is None:
            raise ResourceNotFoundError(encode(volume.scope, volume.volume_id))
        return remote

    async def _refresh_snapshot(self, snapshot: RemoteSnapshot) -> RemoteSnapshot:
        remote = await self._describe_snapshot(snapshot.scope, snapshot.snapshot_id)
        if remote is None:
            raise ResourceNotFoundError(encode(snapshot.scope, snapshot.snapshot_id))
        return remote

    def _attachment_refresher(
        self, scope: str, absent: AttachmentStatus
    ) -> Callable[[RemoteAttachment], Awaitable[RemoteAttachment]]:
        """Build a refresh function for one attachment.

        An attachment missing from the volume is reported with status
        `absent`: still attaching while waiting for attach, already
        detached while waiting for detach.
        """

        async def refresh(attachment: RemoteAttachment) -> RemoteAttachment:
            remote = await self._describe_volume(scope, attachment.volume_id)
            if remote is None:
                raise ResourceNotFoundError(encode(scope, attachment.volume_id))
            current = remote.attachment(
                device=attachment.device, instance_id=attachment.instance_id
            )
            if current is None:
                return attachment.model_copy(update={"status": absent})
            return current

        return refresh

    # =========================================================================
    # Outcome tracking
    # =========================================================================

    def _record(self, operation: str, result: str) -> None:
        LIFECYCLE_OPERATIONS_TOTAL.labels(
            backend=self._backend, operation=operation, result=result
        ).inc()

    def _not_found(self, operation: str, resource_id: str) -> None:
        self._record(operation, "not_found")
        logger.warning(
            "%s: resource %s not found",
            operation,
            resource_id,
            extra={
                "event": LogEvent.RESOURCE_NOT_FOUND,
                "component": Component.COORDINATOR,
                "error_class": ErrorClass.NOT_FOUND,
                "resource_id": resource_id,
            },
        )

    @contextmanager
    def _tracked(self, operation: str) -> Iterator[None]:
        """Record failed outcomes of an operation and re-raise."""
        try:
            yield
        except PollTimeoutError:
            self._record(operation, "timeout")
            raise
        except PollCancelledError:
            self._record(operation, "cancelled")
            raise
        except Exception as exc:
            self._record(operation, "error")
            logger.error(
                "%s failed: %s",
                operation,
                exc,
                extra={
                    "event": LogEvent.OPERATION_FAILED,
                    "component": Component.COORDINATOR,
                    "error_class": ErrorClass.PERMANENT,
                },
            )
            raise
