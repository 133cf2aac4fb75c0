"""Composite resource identifiers.

A resource is named across the API boundary by one opaque handle that
carries its partition (region) and its provider-local id:

    "us-east-1/vol-0abc"  <->  ResourceIdentifier(scope="us-east-1", local_id="vol-0abc")
"""

import re

from pydantic import BaseModel

from blockhub.core.errors import InvalidArgumentError

SEPARATOR = "/"

_ZONE_SUFFIX = re.compile(r"[a-z]+$")


class ResourceIdentifier(BaseModel):
    """(scope, local_id) pair behind a composite handle."""

    scope: str
    local_id: str

    model_config = {"frozen": True}

    @classmethod
    def parse(cls, handle: str) -> "ResourceIdentifier":
        return decode(handle)

    @property
    def encoded(self) -> str:
        return encode(self.scope, self.local_id)

    def __str__(self) -> str:
        return self.encoded


def encode(scope: str, local_id: str) -> str:
    """Join scope and local id into a handle.

    Raises:
        InvalidArgumentError: If either part is empty or contains the separator
    """
    if not local_id:
        raise InvalidArgumentError("local id must not be empty")
    if SEPARATOR in local_id:
        raise InvalidArgumentError(f"local id must not contain {SEPARATOR!r}: {local_id}")
    if not scope:
        raise InvalidArgumentError("scope must not be empty")
    if SEPARATOR in scope:
        raise InvalidArgumentError(f"scope must not contain {SEPARATOR!r}: {scope}")
    return f"{scope}{SEPARATOR}{local_id}"


def decode(handle: str) -> ResourceIdentifier:
    """Split a handle on the first separator.

    Raises:
        InvalidArgumentError: If the separator is missing or either part is empty
    """
    if not handle or SEPARATOR not in handle:
        raise InvalidArgumentError(f"malformed resource id: {handle!r}")
    scope, local_id = handle.split(SEPARATOR, 1)
    if not scope or not local_id:
        raise InvalidArgumentError(f"malformed resource id: {handle!r}")
    return ResourceIdentifier(scope=scope, local_id=local_id)


def region_from_zone(zone: str) -> str:
    """Derive the region of an availability zone (us-east-1a -> us-east-1)."""
    if not zone:
        raise InvalidArgumentError("availability zone must not be empty")
    region = _ZONE_SUFFIX.sub("", zone)
    if not region or region == zone:
        raise InvalidArgumentError(f"not an availability zone: {zone!r}")
    return region
