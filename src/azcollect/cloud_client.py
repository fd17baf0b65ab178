"""Cloud API client capability.

CloudApiClient is the single typed interface the collector uses to talk to
Azure Resource Manager: one method per resource kind, returning azcollect
model records. AzureCloudApiClient implements it with the Azure management
SDKs and DefaultAzureCredential.

Errors are not translated: methods raise azure.core.exceptions errors
(ResourceNotFoundError, ResourceExistsError, HttpResponseError, ...) and
the collector decides, per call site, which of them are soft failures.

Public API (the "studs"):
    CloudApiClient: Protocol consumed by the collector
    AzureCloudApiClient: Azure SDK implementation
"""

import json
import logging
from collections.abc import Callable
from typing import Any, Protocol

from azure.core.credentials import TokenCredential
from azure.identity import DefaultAzureCredential
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.network import NetworkManagementClient
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.storage import StorageManagementClient

from azcollect.models import (
    AccountKeys,
    FloatingIP,
    Instance,
    InstanceDisk,
    InstanceStatus,
    ManagedDisk,
    NetworkInterface,
    ResourceGroup,
    RouteTable,
    Stack,
    StackOperation,
    StorageAccount,
    TemplateLink,
    parse_resource_id,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


class CloudApiClient(Protocol):
    """Remote calls the collector needs, one per resource kind."""

    def list_resource_groups(self) -> list[ResourceGroup]: ...

    def list_stacks(self, resource_group: str) -> list[Stack]: ...

    def get_stack(self, resource_group: str, name: str) -> Stack: ...

    def get_stack_template(self, resource_group: str, name: str) -> Any:
        """Template stored with the deployment (dict or JSON text), None if empty."""
        ...

    def list_stack_operations(self, resource_group: str, name: str) -> list[StackOperation]: ...

    def list_instances(self, resource_group: str) -> list[Instance]: ...

    def get_instance_statuses(self, resource_group: str, name: str) -> list[InstanceStatus]: ...

    def list_network_interfaces(self, resource_group: str) -> list[NetworkInterface]: ...

    def list_floating_ips(self, resource_group: str) -> list[FloatingIP]: ...

    def list_route_tables(self, resource_group: str) -> list[RouteTable]: ...

    def list_managed_disks(self) -> list[ManagedDisk]: ...

    def list_storage_accounts(self) -> list[StorageAccount]: ...

    def list_storage_account_keys(self, resource_group: str, account_name: str) -> AccountKeys: ...


def _group_of(resource_id: str) -> str:
    return parse_resource_id(resource_id)[0]


def _disk_from_sdk(disk: Any) -> InstanceDisk:
    vhd = getattr(disk, "vhd", None)
    managed = getattr(disk, "managed_disk", None)
    return InstanceDisk(
        name=getattr(disk, "name", None),
        vhd_uri=getattr(vhd, "uri", None),
        managed_disk_id=getattr(managed, "id", None),
    )


def _status_message_text(status_message: Any) -> str | None:
    if status_message is None:
        return None
    if isinstance(status_message, str):
        return status_message
    error = getattr(status_message, "error", None)
    if error is not None and getattr(error, "message", None):
        return error.message
    status = getattr(status_message, "status", None)
    if status:
        return str(status)
    as_dict = getattr(status_message, "as_dict", None)
    return json.dumps(as_dict()) if callable(as_dict) else str(status_message)


def stack_from_sdk(deployment: Any, resource_group: str | None = None) -> Stack:
    """Convert an SDK DeploymentExtended into a Stack."""
    properties = deployment.properties
    link = getattr(properties, "template_link", None) if properties else None
    return Stack(
        id=deployment.id,
        name=deployment.name,
        resource_group=resource_group or _group_of(deployment.id),
        location=getattr(deployment, "location", None),
        timestamp=parse_timestamp(getattr(properties, "timestamp", None)),
        template_link=(
            TemplateLink(uri=link.uri, content_version=getattr(link, "content_version", None))
            if link is not None and link.uri
            else None
        ),
        provisioning_state=getattr(properties, "provisioning_state", None),
    )


def operation_from_sdk(operation: Any) -> StackOperation:
    """Convert an SDK DeploymentOperation into a StackOperation."""
    properties = operation.properties
    target = getattr(properties, "target_resource", None)
    return StackOperation(
        id=operation.id,
        provisioning_operation=_enum_text(getattr(properties, "provisioning_operation", None)),
        provisioning_state=getattr(properties, "provisioning_state", None),
        target_id=getattr(target, "id", None),
        target_name=getattr(target, "resource_name", None),
        target_type=getattr(target, "resource_type", None),
        service_request_id=getattr(properties, "service_request_id", None),
        status_code=getattr(properties, "status_code", None),
        status_message=_status_message_text(getattr(properties, "status_message", None)),
        timestamp=parse_timestamp(getattr(properties, "timestamp", None)),
    )


def instance_from_sdk(vm: Any, resource_group: str | None = None) -> Instance:
    """Convert an SDK VirtualMachine into an Instance."""
    storage = vm.storage_profile
    network = vm.network_profile
    return Instance(
        id=vm.id,
        name=vm.name,
        resource_group=resource_group or _group_of(vm.id),
        location=vm.location,
        os_disk=_disk_from_sdk(storage.os_disk) if storage and storage.os_disk else None,
        data_disks=[_disk_from_sdk(d) for d in (storage.data_disks or [])] if storage else [],
        network_interface_ids=(
            [nic.id for nic in (network.network_interfaces or [])] if network else []
        ),
    )


def _enum_text(value: Any) -> str | None:
    if value is None:
        return None
    return getattr(value, "value", value)


class AzureCloudApiClient:
    """CloudApiClient backed by the Azure management SDKs.

    Example:
        >>> client = AzureCloudApiClient(subscription_id="00000000-0000-0000-0000-000000000000")
        >>> groups = client.list_resource_groups()
    """

    def __init__(
        self,
        subscription_id: str,
        credential: TokenCredential | None = None,
        **client_kwargs: Any,
    ):
        """Initialize Azure clients.

        Args:
            subscription_id: Azure subscription ID
            credential: Credential to use (default: DefaultAzureCredential)
            **client_kwargs: Extra keyword arguments for every management client
                (e.g. proxies, connection_verify)

        Raises:
            ValueError: If subscription_id is empty
        """
        if not subscription_id or not subscription_id.strip():
            raise ValueError("Subscription ID cannot be empty")

        self.subscription_id = subscription_id
        self.credential = credential or DefaultAzureCredential()
        self._resources = ResourceManagementClient(
            self.credential, subscription_id, **client_kwargs
        )
        self._compute = ComputeManagementClient(self.credential, subscription_id, **client_kwargs)
        self._network = NetworkManagementClient(self.credential, subscription_id, **client_kwargs)
        self._storage = StorageManagementClient(self.credential, subscription_id, **client_kwargs)

    def list_resource_groups(self) -> list[ResourceGroup]:
        return [
            ResourceGroup(name=group.name, location=group.location)
            for group in self._resources.resource_groups.list()
        ]

    def list_stacks(self, resource_group: str) -> list[Stack]:
        return [
            stack_from_sdk(deployment, resource_group)
            for deployment in self._resources.deployments.list_by_resource_group(resource_group)
        ]

    def get_stack(self, resource_group: str, name: str) -> Stack:
        return stack_from_sdk(self._resources.deployments.get(resource_group, name), resource_group)

    def get_stack_template(self, resource_group: str, name: str) -> Any:
        result = self._resources.deployments.export_template(resource_group, name)
        return result.template if result is not None else None

    def list_stack_operations(self, resource_group: str, name: str) -> list[StackOperation]:
        return [
            operation_from_sdk(operation)
            for operation in self._resources.deployment_operations.list(resource_group, name)
        ]

    def list_instances(self, resource_group: str) -> list[Instance]:
        return [
            instance_from_sdk(vm, resource_group)
            for vm in self._compute.virtual_machines.list(resource_group)
        ]

    def get_instance_statuses(self, resource_group: str, name: str) -> list[InstanceStatus]:
        view = self._compute.virtual_machines.instance_view(resource_group, name)
        return [
            InstanceStatus(code=status.code, display_status=status.display_status)
            for status in (view.statuses or [])
            if status.code
        ]

    def list_network_interfaces(self, resource_group: str) -> list[NetworkInterface]:
        interfaces = []
        for nic in self._network.network_interfaces.list(resource_group):
            configs = nic.ip_configurations or []
            interfaces.append(
                NetworkInterface(
                    id=nic.id,
                    name=nic.name,
                    resource_group=resource_group,
                    location=nic.location,
                    public_ip_ids=[
                        c.public_ip_address.id for c in configs if c.public_ip_address is not None
                    ],
                    private_ip_address=next(
                        (c.private_ip_address for c in configs if c.private_ip_address), None
                    ),
                )
            )
        return interfaces

    def list_floating_ips(self, resource_group: str) -> list[FloatingIP]:
        return self._list_in_group(
            self._network.public_ip_addresses.list,
            resource_group,
            lambda ip: FloatingIP(
                id=ip.id,
                name=ip.name,
                resource_group=resource_group,
                location=ip.location,
                ip_address=ip.ip_address,
            ),
        )

    def list_route_tables(self, resource_group: str) -> list[RouteTable]:
        return self._list_in_group(
            self._network.route_tables.list,
            resource_group,
            lambda table: RouteTable(
                id=table.id, name=table.name, resource_group=resource_group, location=table.location
            ),
        )

    def list_managed_disks(self) -> list[ManagedDisk]:
        return [
            ManagedDisk(id=disk.id, name=disk.name, location=disk.location)
            for disk in self._compute.disks.list()
        ]

    def list_storage_accounts(self) -> list[StorageAccount]:
        return [
            StorageAccount(
                id=account.id,
                name=account.name,
                resource_group=_group_of(account.id),
                location=account.location,
            )
            for account in self._storage.storage_accounts.list()
        ]

    def list_storage_account_keys(self, resource_group: str, account_name: str) -> AccountKeys:
        result = self._storage.storage_accounts.list_keys(resource_group, account_name)
        return AccountKeys(keys=[(key.key_name, key.value) for key in (result.keys or [])])

    @staticmethod
    def _list_in_group(
        list_call: Callable[[str], Any], resource_group: str, convert: Callable[[Any], Any]
    ) -> list[Any]:
        return [convert(item) for item in list_call(resource_group)]


__all__ = [
    "AzureCloudApiClient",
    "CloudApiClient",
    "instance_from_sdk",
    "operation_from_sdk",
    "stack_from_sdk",
]
