"""EC2/EBS implementation of RemoteResourceGateway.

One aioboto3 client per call, bound to the call's region. Every call goes
through with_retry behind the gateway's own circuit breaker:

- describe / delete: throttling, transient 5xx and connection drops are
  retried with backoff
- create / attach / detach: only throttling and refused connections are
  retried; an ambiguous failure is raised rather than re-sent
- <Resource>.NotFound: ResourceNotFoundError
- anything else: RemoteFailureError carrying the EC2 error code
"""

import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError
from types_aiobotocore_ec2 import EC2Client

from blockhub.config import EC2Config, get_settings
from blockhub.core.domain.remote import (
    AttachmentStatus,
    RemoteAttachment,
    RemoteSnapshot,
    RemoteVolume,
    RemoteVolumeStatus,
    SnapshotStatus,
)
from blockhub.core.circuit_breaker import CircuitBreaker
from blockhub.core.errors import RemoteFailureError, ResourceNotFoundError
from blockhub.core.interfaces.gateway import RemoteResourceGateway
from blockhub.core.retryable import (
    classify_error,
    classify_mutation_error,
    client_error_code,
    error_class_of,
    is_not_found_code,
    with_retry,
)
from blockhub.logging_schema import Component, LogEvent
from blockhub.metrics.collector import GATEWAY_CALL_DURATION, GATEWAY_ERRORS_TOTAL

logger = logging.getLogger(__name__)

T = TypeVar("T")

PROVIDER = "ec2"
CIRCUIT = "ec2"

# EBS snapshot states outside the three we model are still in progress
_SNAPSHOT_STATES = {
    "pending": SnapshotStatus.PENDING,
    "completed": SnapshotStatus.COMPLETED,
    "error": SnapshotStatus.ERROR,
    "recoverable": SnapshotStatus.PENDING,
    "recovering": SnapshotStatus.PENDING,
}


class EC2Gateway(RemoteResourceGateway):
    """EBS volumes and snapshots via aioboto3.

    Args:
        config: EC2 settings (default: get_settings().ec2)
        session: aioboto3 session (default: new session from the environment)
        circuit_breaker: Breaker for this gateway's credentials (default: a
            new "ec2" breaker owned by this instance)
    """

    def __init__(
        self,
        config: EC2Config | None = None,
        session: aioboto3.Session | None = None,
        circuit_breaker: CircuitBreaker | None = None,
    ) -> None:
        self._config = config or get_settings().ec2
        self._session = session or aioboto3.Session()
        self._breaker = circuit_breaker or CircuitBreaker(
            CIRCUIT, error_classifier=classify_error
        )

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    async def _call(
        self,
        call: str,
        scope: str,
        fn: Callable[[EC2Client], Awaitable[T]],
        resource_id: str = "",
        idempotent: bool = True,
    ) -> T:
        """Run fn against a regional client with retry and error mapping.

        Non-idempotent calls are retried only when the provider certainly
        did not apply them.
        """

        async def attempt() -> T:
            async with self._session.client(
                "ec2",
                region_name=scope,
                endpoint_url=self._config.endpoint_url,
            ) as ec2:
                return await fn(ec2)

        start = time.monotonic()
        try:
            return await with_retry(
                attempt,
                max_retries=self._config.max_retries,
                base_delay=self._config.retry_base_delay,
                max_delay=self._config.retry_max_delay,
                circuit_breaker=self._breaker,
                classifier=classify_error if idempotent else classify_mutation_error,
            )
        except ClientError as exc:
            code = client_error_code(exc)
            GATEWAY_ERRORS_TOTAL.labels(
                provider=PROVIDER, call=call, error_class=error_class_of(exc)
            ).inc()
            if is_not_found_code(code):
                raise ResourceNotFoundError(
                    f"{scope}/{resource_id}" if resource_id else scope,
                    message=f"{call}: {code} in {scope}",
                ) from exc
            logger.error(
                "EC2 %s failed in %s: %s",
                call,
                scope,
                code,
                extra={
                    "event": LogEvent.REMOTE_ERROR,
                    "component": Component.GATEWAY,
                    "error_class": error_class_of(exc),
                    "provider_code": code,
                    "region": scope,
                },
            )
            raise RemoteFailureError(str(exc), provider_code=code) from exc
        except BotoCoreError as exc:
            GATEWAY_ERRORS_TOTAL.labels(
                provider=PROVIDER, call=call, error_class=error_class_of(exc)
            ).inc()
            logger.error(
                "EC2 %s failed in %s: %s",
                call,
                scope,
                exc,
                extra={
                    "event": LogEvent.REMOTE_ERROR,
                    "component": Component.GATEWAY,
                    "error_class": error_class_of(exc),
                    "region": scope,
                },
            )
            raise RemoteFailureError(str(exc), provider_code=type(exc).__name__) from exc
        finally:
            GATEWAY_CALL_DURATION.labels(provider=PROVIDER, call=call).observe(
                time.monotonic() - start
            )

    # =========================================================================
    # Scopes
    # =========================================================================

    async def list_scopes(self) -> list[str]:
        if self._config.regions:
            return list(self._config.regions)

        async def describe(ec2: EC2Client) -> list[str]:
            response = await ec2.describe_regions()
            return sorted(region["RegionName"] for region in response.get("Regions", []))

        return await self._call("describe_regions", self._config.default_region, describe)

    # =========================================================================
    # Volumes
    # =========================================================================

    async def describe_volumes(self, scope: str, *volume_ids: str) -> list[RemoteVolume]:
        kwargs: dict[str, Any] = {"VolumeIds": list(volume_ids)} if volume_ids else {}

        async def describe(ec2: EC2Client) -> list[RemoteVolume]:
            volumes = []
            paginator = ec2.get_paginator("describe_volumes")
            async for page in paginator.paginate(**kwargs):
                for item in page.get("Volumes", []):
                    volumes.append(_to_remote_volume(scope, item))
            return volumes

        return await self._call(
            "describe_volumes", scope, describe, resource_id=",".join(volume_ids)
        )

    async def create_volume(self, scope: str, size_gb: float, zone: str) -> RemoteVolume:
        async def create(ec2: EC2Client) -> dict:
            return await ec2.create_volume(AvailabilityZone=zone, Size=int(size_gb))

        response = await self._call("create_volume", scope, create, idempotent=False)
        return _to_remote_volume(scope, response)

    async def create_volume_from_snapshot(
        self,
        scope: str,
        snapshot_id: str,
        zone: str,
        size_gb: float | None = None,
    ) -> RemoteVolume:
        kwargs: dict[str, Any] = {"AvailabilityZone": zone, "SnapshotId": snapshot_id}
        if size_gb:
            kwargs["Size"] = int(size_gb)

        async def create(ec2: EC2Client) -> dict:
            return await ec2.create_volume(**kwargs)

        response = await self._call(
            "create_volume_from_snapshot",
            scope,
            create,
            resource_id=snapshot_id,
            idempotent=False,
        )
        return _to_remote_volume(scope, response)

    async def delete_volume(self, scope: str, volume_id: str) -> None:
        async def delete(ec2: EC2Client) -> None:
            await ec2.delete_volume(VolumeId=volume_id)

        await self._call("delete_volume", scope, delete, resource_id=volume_id)

    async def attach_volume(
        self, scope: str, volume_id: str, node_id: str, device: str
    ) -> RemoteAttachment:
        async def attach(ec2: EC2Client) -> dict:
            return await ec2.attach_volume(
                VolumeId=volume_id, InstanceId=node_id, Device=device
            )

        response = await self._call(
            "attach_volume", scope, attach, resource_id=volume_id, idempotent=False
        )
        return _to_attachment(response)

    async def detach_volume(
        self,
        scope: str,
        volume_id: str,
        force: bool,
        device: str | None = None,
        node_id: str | None = None,
    ) -> RemoteAttachment:
        kwargs: dict[str, Any] = {"VolumeId": volume_id, "Force": force}
        if device is not None:
            kwargs["Device"] = device
        if node_id is not None:
            kwargs["InstanceId"] = node_id

        async def detach(ec2: EC2Client) -> dict:
            return await ec2.detach_volume(**kwargs)

        response = await self._call(
            "detach_volume", scope, detach, resource_id=volume_id, idempotent=False
        )
        return _to_attachment(response)

    # =========================================================================
    # Snapshots
    # =========================================================================

    async def describe_snapshots(
        self,
        scope: str,
        snapshot_ids: list[str] | None = None,
        volume_id: str | None = None,
    ) -> list[RemoteSnapshot]:
        kwargs: dict[str, Any] = {}
        if snapshot_ids:
            kwargs["SnapshotIds"] = list(snapshot_ids)
        else:
            # Without ids EC2 also lists every public snapshot
            kwargs["OwnerIds"] = ["self"]
        if volume_id is not None:
            kwargs["Filters"] = [{"Name": "volume-id", "Values": [volume_id]}]

        async def describe(ec2: EC2Client) -> list[RemoteSnapshot]:
            snapshots = []
            paginator = ec2.get_paginator("describe_snapshots")
            async for page in paginator.paginate(**kwargs):
                for item in page.get("Snapshots", []):
                    snapshots.append(_to_remote_snapshot(scope, item))
            return snapshots

        return await self._call(
            "describe_snapshots",
            scope,
            describe,
            resource_id=",".join(snapshot_ids or []),
        )

    async def create_snapshot(
        self, scope: str, volume_id: str, description: str = ""
    ) -> RemoteSnapshot:
        async def create(ec2: EC2Client) -> dict:
            return await ec2.create_snapshot(VolumeId=volume_id, Description=description)

        response = await self._call(
            "create_snapshot", scope, create, resource_id=volume_id, idempotent=False
        )
        return _to_remote_snapshot(scope, response)

    async def delete_snapshot(self, scope: str, snapshot_id: str) -> None:
        async def delete(ec2: EC2Client) -> None:
            await ec2.delete_snapshot(SnapshotId=snapshot_id)

        await self._call("delete_snapshot", scope, delete, resource_id=snapshot_id)


# =============================================================================
# Response mapping
# =============================================================================


def _to_attachment(item: dict) -> RemoteAttachment:
    return RemoteAttachment(
        volume_id=item["VolumeId"],
        instance_id=item["InstanceId"],
        device=item.get("Device", ""),
        status=AttachmentStatus(item.get("State", "attaching")),
    )


def _to_remote_volume(scope: str, item: dict) -> RemoteVolume:
    created_at: datetime | None = item.get("CreateTime")
    return RemoteVolume(
        scope=scope,
        volume_id=item["VolumeId"],
        size_gb=float(item.get("Size", 0)),
        availability_zone=item.get("AvailabilityZone", ""),
        status=RemoteVolumeStatus(item.get("State", "creating")),
        attachments=tuple(_to_attachment(a) for a in item.get("Attachments", [])),
        snapshot_id=item.get("SnapshotId") or None,
        created_at=created_at,
    )


def _to_remote_snapshot(scope: str, item: dict) -> RemoteSnapshot:
    return RemoteSnapshot(
        scope=scope,
        snapshot_id=item["SnapshotId"],
        volume_id=item.get("VolumeId", ""),
        size_gb=float(item.get("VolumeSize", 0)),
        status=_SNAPSHOT_STATES.get(item.get("State", "pending"), SnapshotStatus.PENDING),
        description=item.get("Description", ""),
        start_time=item.get("StartTime"),
    )
