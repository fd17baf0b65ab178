"""Inventory record models.

Plain dataclasses for every resource kind the collector handles. Records
coming from the live API and records loaded from the snapshot store share
the same shapes, so downstream code never needs to know where a record
came from.

Public API (the "studs"):
    ResourceGroup, Stack, TemplateLink, StackOperation, StackResource,
    StackTemplate, Instance, InstanceDisk, InstanceStatus, NetworkInterface,
    FloatingIP, RouteTable, ManagedDisk, StorageAccount, AccountKeys,
    PersistedStack, PersistedStackResource
    parse_resource_id: Extract (resource_group, name) from an ARM id
    parse_timestamp: Normalize API/DB timestamps to aware UTC datetimes
    unique_by_id: Deduplicate records by external id
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar
from urllib.parse import urlparse

_RESOURCE_ID_PATTERN = re.compile(
    r"/resourceGroups/(?P<group>[^/]+)/providers/.+/(?P<name>[^/]+)$", re.IGNORECASE
)

T = TypeVar("T")


def parse_resource_id(resource_id: str) -> tuple[str, str]:
    """Split an ARM resource id into its resource group and leaf name.

    Args:
        resource_id: Full ARM id, e.g.
            /subscriptions/s/resourceGroups/rg/providers/Microsoft.Resources/deployments/d

    Returns:
        Tuple of (resource_group, name)

    Raises:
        ValueError: If the id has no resource group or provider segment

    Example:
        >>> parse_resource_id(
        ...     "/subscriptions/s/resourceGroups/rg1/providers/Microsoft.Resources/deployments/d1"
        ... )
        ('rg1', 'd1')
    """
    match = _RESOURCE_ID_PATTERN.search(resource_id or "")
    if not match:
        raise ValueError(f"Not a resource id: {resource_id!r}")
    return match.group("group"), match.group("name")


def parse_timestamp(value: Any) -> datetime | None:
    """Normalize a timestamp to an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), ISO-8601 strings
    (including a trailing ``Z``) and None/empty values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        raise TypeError(f"Unsupported timestamp type: {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def unique_by_id(records: Iterable[T]) -> list[T]:
    """Drop records whose ``id`` was already seen, keeping first occurrence order."""
    seen: set[str] = set()
    unique: list[T] = []
    for record in records:
        record_id = record.id  # type: ignore[attr-defined]
        if record_id in seen:
            continue
        seen.add(record_id)
        unique.append(record)
    return unique


@dataclass(frozen=True)
class ResourceGroup:
    """Resource group, the partition unit for per-group listings."""

    name: str
    location: str


@dataclass(frozen=True)
class TemplateLink:
    """Link to a deployment template stored outside the deployment."""

    uri: str
    content_version: str | None = None


@dataclass
class Stack:
    """Deployment (orchestration stack) as reported by the API.

    Attributes:
        id: ARM id of the deployment, the external reference id
        name: Deployment name
        resource_group: Resource group holding the deployment
        location: Deployment location (None for group-scoped deployments)
        timestamp: Last modification time reported by the API
        template_link: Linked template, if the deployment used one
        provisioning_state: Provisioning state reported by the API
    """

    id: str
    name: str
    resource_group: str
    location: str | None = None
    timestamp: datetime | None = None
    template_link: TemplateLink | None = None
    provisioning_state: str | None = None


@dataclass
class StackOperation:
    """Single deployment operation, as listed by the API."""

    id: str
    provisioning_operation: str | None = None
    provisioning_state: str | None = None
    target_id: str | None = None
    target_name: str | None = None
    target_type: str | None = None
    service_request_id: str | None = None
    status_code: str | None = None
    status_message: str | None = None
    timestamp: datetime | None = None


@dataclass
class StackResource:
    """Resource created by a stack.

    Built from a StackOperation for changed stacks and from a persisted
    row for unchanged stacks.
    """

    ems_ref: str | None
    name: str | None
    logical_resource: str | None = None
    physical_resource: str | None = None
    resource_category: str | None = None
    resource_status: str | None = None
    resource_status_reason: str | None = None
    last_updated: datetime | None = None

    @classmethod
    def from_operation(cls, operation: StackOperation) -> "StackResource":
        return cls(
            ems_ref=operation.target_id,
            name=operation.target_name,
            logical_resource=operation.target_name,
            physical_resource=operation.service_request_id,
            resource_category=operation.target_type,
            resource_status=operation.provisioning_state,
            resource_status_reason=operation.status_message or operation.status_code,
            last_updated=operation.timestamp,
        )


@dataclass
class StackTemplate:
    """Template used by one or more stacks.

    ``uri`` is None for templates returned inline by the API. Templates
    reached through a link are shared by every stack using the same URI;
    ``uid`` and ``name`` belong to the first stack that registered it.
    """

    uid: str
    name: str
    description: str
    content: str | None = None
    uri: str | None = None


@dataclass(frozen=True)
class InstanceDisk:
    """OS or data disk attached to an instance."""

    name: str | None = None
    vhd_uri: str | None = None
    managed_disk_id: str | None = None

    @property
    def storage_account_name(self) -> str | None:
        """Storage account hosting an unmanaged VHD (first label of the blob host)."""
        if not self.vhd_uri:
            return None
        host = urlparse(self.vhd_uri).hostname
        if not host:
            return None
        return host.split(".")[0]


@dataclass
class Instance:
    """Virtual machine."""

    id: str
    name: str
    resource_group: str
    location: str
    os_disk: InstanceDisk | None = None
    data_disks: list[InstanceDisk] = field(default_factory=list)
    network_interface_ids: list[str] = field(default_factory=list)

    @property
    def disks(self) -> list[InstanceDisk]:
        """Data disks followed by the OS disk."""
        return self.data_disks + ([self.os_disk] if self.os_disk else [])

    @property
    def is_managed_disk(self) -> bool:
        """True when the OS disk is a managed disk."""
        return bool(self.os_disk and self.os_disk.managed_disk_id)


@dataclass(frozen=True)
class InstanceStatus:
    """Entry of an instance view's status list."""

    code: str
    display_status: str | None = None


@dataclass
class NetworkInterface:
    id: str
    name: str
    resource_group: str
    location: str
    public_ip_ids: list[str] = field(default_factory=list)
    private_ip_address: str | None = None


@dataclass
class FloatingIP:
    id: str
    name: str
    resource_group: str
    location: str
    ip_address: str | None = None


@dataclass
class RouteTable:
    id: str
    name: str
    resource_group: str
    location: str


@dataclass
class ManagedDisk:
    id: str
    name: str
    location: str


@dataclass
class StorageAccount:
    id: str
    name: str
    resource_group: str
    location: str


@dataclass
class AccountKeys:
    """Storage account access keys (CRITICAL: never log the values)."""

    keys: list[tuple[str, str]] = field(default_factory=list)

    def value(self, key_name: str) -> str | None:
        for name, value in self.keys:
            if name == key_name:
                return value
        return None

    def __repr__(self) -> str:
        """Prevent accidental exposure of keys in logs."""
        names = ", ".join(name for name, _ in self.keys)
        return f"AccountKeys([{names}] values=***REDACTED***)"

    def __str__(self) -> str:
        return self.__repr__()


@dataclass(frozen=True)
class PersistedStack:
    """Stack row from the previous run's snapshot."""

    id: int
    ems_ref: str
    finish_time: datetime | None


@dataclass(frozen=True)
class PersistedStackResource:
    """Stack resource row from the previous run's snapshot."""

    stack_id: int
    ems_ref: str | None
    name: str | None
    logical_resource: str | None = None
    physical_resource: str | None = None
    resource_category: str | None = None
    resource_status: str | None = None
    resource_status_reason: str | None = None
    last_updated: datetime | None = None

    def to_stack_resource(self) -> StackResource:
        """Normalize into the record shape produced by the live path."""
        return StackResource(
            ems_ref=self.ems_ref,
            name=self.name,
            logical_resource=self.logical_resource,
            physical_resource=self.physical_resource,
            resource_category=self.resource_category,
            resource_status=self.resource_status,
            resource_status_reason=self.resource_status_reason,
            last_updated=self.last_updated,
        )


__all__ = [
    "AccountKeys",
    "FloatingIP",
    "Instance",
    "InstanceDisk",
    "InstanceStatus",
    "ManagedDisk",
    "NetworkInterface",
    "PersistedStack",
    "PersistedStackResource",
    "ResourceGroup",
    "RouteTable",
    "Stack",
    "StackOperation",
    "StackResource",
    "StackTemplate",
    "StorageAccount",
    "TemplateLink",
    "parse_resource_id",
    "parse_timestamp",
    "unique_by_id",
]
