"""
Fake Cloud API client and snapshot store for testing.

These fakes simulate Azure Resource Manager behavior without making real
API calls. Every call is counted, and errors can be injected per method
(optionally per argument tuple) to exercise soft and hard failures.
"""

import threading
from collections import Counter
from collections.abc import Collection, Sequence
from typing import Any

from azure.core.exceptions import ResourceNotFoundError

from azcollect.models import (
    AccountKeys,
    FloatingIP,
    Instance,
    InstanceStatus,
    ManagedDisk,
    NetworkInterface,
    PersistedStack,
    PersistedStackResource,
    ResourceGroup,
    RouteTable,
    Stack,
    StackOperation,
    StorageAccount,
)


class FakeCloudApiClient:
    """In-memory CloudApiClient.

    Attributes:
        calls: Call count per method name
        call_log: (method, args) of every call, in call order
        errors: Errors to raise, keyed by method name or (method, *args)
    """

    def __init__(
        self,
        resource_groups: list[ResourceGroup] | None = None,
        stacks: list[Stack] | None = None,
        operations: dict[tuple[str, str], list[StackOperation]] | None = None,
        templates: dict[tuple[str, str], Any] | None = None,
        instances: list[Instance] | None = None,
        statuses: dict[tuple[str, str], list[InstanceStatus]] | None = None,
        network_interfaces: list[NetworkInterface] | None = None,
        floating_ips: list[FloatingIP] | None = None,
        route_tables: list[RouteTable] | None = None,
        managed_disks: list[ManagedDisk] | None = None,
        storage_accounts: list[StorageAccount] | None = None,
        account_keys: dict[tuple[str, str], AccountKeys] | None = None,
    ):
        self.resource_groups = resource_groups or []
        self.stacks = stacks or []
        self.operations = operations or {}
        self.templates = templates or {}
        self.instances = instances or []
        self.statuses = statuses or {}
        self.network_interfaces = network_interfaces or []
        self.floating_ips = floating_ips or []
        self.route_tables = route_tables or []
        self.managed_disks = managed_disks or []
        self.storage_accounts = storage_accounts or []
        self.account_keys = account_keys or {}

        self.errors: dict[Any, BaseException] = {}
        self.calls: Counter[str] = Counter()
        self.call_log: list[tuple[str, tuple]] = []
        self._lock = threading.Lock()

    def fail(self, method: str, error: BaseException, *args: str) -> None:
        """Make ``method`` raise ``error`` (only for ``args`` if given)."""
        self.errors[(method, *args) if args else method] = error

    def _record(self, method: str, *args: str) -> None:
        with self._lock:
            self.calls[method] += 1
            self.call_log.append((method, args))
        error = self.errors.get((method, *args)) or self.errors.get(method)
        if error is not None:
            raise error

    @staticmethod
    def _in_group(records: list[Any], resource_group: str) -> list[Any]:
        return [r for r in records if r.resource_group == resource_group]

    def list_resource_groups(self) -> list[ResourceGroup]:
        self._record("list_resource_groups")
        return list(self.resource_groups)

    def list_stacks(self, resource_group: str) -> list[Stack]:
        self._record("list_stacks", resource_group)
        return self._in_group(self.stacks, resource_group)

    def get_stack(self, resource_group: str, name: str) -> Stack:
        self._record("get_stack", resource_group, name)
        for stack in self.stacks:
            if stack.resource_group == resource_group and stack.name == name:
                return stack
        raise ResourceNotFoundError(f"Deployment '{name}' could not be found.")

    def get_stack_template(self, resource_group: str, name: str) -> Any:
        self._record("get_stack_template", resource_group, name)
        return self.templates.get((resource_group, name))

    def list_stack_operations(self, resource_group: str, name: str) -> list[StackOperation]:
        self._record("list_stack_operations", resource_group, name)
        return list(self.operations.get((resource_group, name), []))

    def list_instances(self, resource_group: str) -> list[Instance]:
        self._record("list_instances", resource_group)
        return self._in_group(self.instances, resource_group)

    def get_instance_statuses(self, resource_group: str, name: str) -> list[InstanceStatus]:
        self._record("get_instance_statuses", resource_group, name)
        return list(self.statuses.get((resource_group, name), []))

    def list_network_interfaces(self, resource_group: str) -> list[NetworkInterface]:
        self._record("list_network_interfaces", resource_group)
        return self._in_group(self.network_interfaces, resource_group)

    def list_floating_ips(self, resource_group: str) -> list[FloatingIP]:
        self._record("list_floating_ips", resource_group)
        return self._in_group(self.floating_ips, resource_group)

    def list_route_tables(self, resource_group: str) -> list[RouteTable]:
        self._record("list_route_tables", resource_group)
        return self._in_group(self.route_tables, resource_group)

    def list_managed_disks(self) -> list[ManagedDisk]:
        self._record("list_managed_disks")
        return list(self.managed_disks)

    def list_storage_accounts(self) -> list[StorageAccount]:
        self._record("list_storage_accounts")
        return list(self.storage_accounts)

    def list_storage_account_keys(self, resource_group: str, account_name: str) -> AccountKeys:
        self._record("list_storage_account_keys", resource_group, account_name)
        return self.account_keys.get(
            (account_name, resource_group),
            AccountKeys(keys=[("key1", f"{account_name}-secret-1")]),
        )


class InMemorySnapshotStore:
    """SnapshotStore backed by lists, recording every query."""

    def __init__(
        self,
        stacks: list[PersistedStack] | None = None,
        resources: list[PersistedStackResource] | None = None,
    ):
        self.stacks = stacks or []
        self.resources = resources or []
        self.stack_queries: list[Collection[str] | None] = []
        self.resource_queries: list[list[int]] = []

    def find_stacks(self, refs: Collection[str] | None = None) -> list[PersistedStack]:
        self.stack_queries.append(refs)
        if refs is None:
            return list(self.stacks)
        return [s for s in self.stacks if s.ems_ref in refs]

    def find_stack_resources(self, stack_ids: Sequence[int]) -> list[PersistedStackResource]:
        self.resource_queries.append(list(stack_ids))
        wanted = set(stack_ids)
        return [r for r in self.resources if r.stack_id in wanted]
