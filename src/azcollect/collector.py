"""Inventory collector.

InventoryCollector is the entry point of a collection run. It exposes flat,
memoized collections (stacks, instances, network ports, ...) and join
helpers backed by indexed lookups, and it routes stacks through change
detection so that only changed stacks cost live API calls.

One collector instance is one run: all caches live in its
CollectionContext and are discarded with it.

Example:
    >>> client = AzureCloudApiClient(subscription_id)
    >>> store = SqliteSnapshotStore("~/.azcollect/snapshot.db")
    >>> collector = InventoryCollector(client, store, ConfigManager.load_config())
    >>> for stack in collector.stacks():
    ...     resources = collector.stack_resources(stack)
    >>> templates = collector.stack_templates()
"""

import logging
import time
from collections.abc import Callable, Collection, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

from azcollect.change_detection import StackChangeDetector
from azcollect.cloud_client import CloudApiClient
from azcollect.config import CollectorConfig
from azcollect.context import CollectionContext, ResourceSource, StackState
from azcollect.errors import ParallelFetchError
from azcollect.fallback_policy import Operation, guarded
from azcollect.lookups import IndexedLookup
from azcollect.models import (
    AccountKeys,
    FloatingIP,
    Instance,
    ManagedDisk,
    NetworkInterface,
    ResourceGroup,
    RouteTable,
    Stack,
    StackResource,
    StackTemplate,
    StorageAccount,
    parse_resource_id,
    unique_by_id,
)
from azcollect.parallel import ParallelFetcher
from azcollect.resolvers import AccountKeyResolver, PowerStatusResolver
from azcollect.snapshot_store import SnapshotStore
from azcollect.templates import TemplateDownloader, TemplateResolver

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CollectionTarget:
    """Scope of a targeted (partial) run: the stacks to refresh."""

    stack_refs: frozenset[str]

    @classmethod
    def of(cls, refs: Iterable[str]) -> "CollectionTarget":
        return cls(stack_refs=frozenset(refs))


class InventoryCollector:
    """Collect Azure inventory for one refresh run."""

    def __init__(
        self,
        client: CloudApiClient,
        snapshot_store: SnapshotStore,
        config: CollectorConfig | None = None,
        target: CollectionTarget | None = None,
        downloader: TemplateDownloader | None = None,
    ):
        """Initialize collector.

        Args:
            client: Cloud API client
            snapshot_store: Previous run's snapshot (read-only)
            config: Collector settings (default: CollectorConfig())
            target: Restrict stack collection to these refs (targeted run)
            downloader: Template downloader (default: built from config)
        """
        self.client = client
        self.config = config or CollectorConfig()
        self.target = target
        self.context = CollectionContext()
        self.fetcher = ParallelFetcher(self.config.thread_limit)

        self.change_detector = StackChangeDetector(snapshot_store, self.config, self.context)
        self.template_resolver = TemplateResolver(
            client, downloader or TemplateDownloader.from_config(self.config), self.context
        )
        self.power_status_resolver = PowerStatusResolver(
            client, self.context, self.fetcher, self.config.power_state_prefix
        )
        self.account_key_resolver = AccountKeyResolver(
            client, self.context, self.fetcher, self.storage_accounts
        )

        self._created_operation = self.config.created_operation_regex
        self._stacks_classified = False

        self._network_ports_index: IndexedLookup[NetworkInterface] = IndexedLookup(
            "network_ports", self.network_ports, key=lambda nic: nic.id
        )
        self._floating_ips_index: IndexedLookup[FloatingIP] = IndexedLookup(
            "floating_ips", self.floating_ips, key=lambda ip: ip.id
        )
        self._managed_disks_index: IndexedLookup[ManagedDisk] = IndexedLookup(
            "managed_disks", self.managed_disks, key=lambda disk: disk.id, case_insensitive=True
        )
        self._storage_accounts_index: IndexedLookup[StorageAccount] = IndexedLookup(
            "storage_accounts",
            self.storage_accounts,
            key=lambda account: account.name,
            case_insensitive=True,
        )

    @property
    def target_refs(self) -> frozenset[str] | None:
        return self.target.stack_refs if self.target else None

    # ------------------------------------------------------------------
    # Collection helpers
    # ------------------------------------------------------------------

    def _collect(self, name: str, loader: Callable[[], list[T]]) -> list[T]:
        """Memoize collection ``name``, logging its size and duration on first load.

        Callers get a copy; the memoized list is never handed out.
        """

        def timed_loader() -> list[T]:
            start_time = time.time()
            records = loader()
            logger.info(f"Collected {len(records)} {name} in {time.time() - start_time:.2f}s")
            return records

        return list(self.context.memoize(name, timed_loader))

    def _in_region(self, location: str | None, group: ResourceGroup) -> bool:
        if not self.config.region:
            return True
        location = location or group.location
        return bool(location) and location.casefold() == self.config.region.casefold()

    def _gather_for_region(self, name: str, list_call: Callable[[str], list[Any]]) -> list[Any]:
        """List a resource kind in every resource group, keeping the configured region."""
        groups = self.resource_groups()
        results = self.fetcher.run(
            groups,
            lambda group: [
                record
                for record in list_call(group.name)
                if self._in_region(getattr(record, "location", None), group)
            ],
            key=lambda group: group.name,
            name=name,
        )
        return unique_by_id(record for group in groups for record in results.get(group.name, []))

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def resource_groups(self) -> list[ResourceGroup]:
        def load() -> list[ResourceGroup]:
            seen: set[str] = set()
            groups = []
            for group in self.client.list_resource_groups():
                if group.name not in seen:
                    seen.add(group.name)
                    groups.append(group)
            return groups

        return self._collect("resource_groups", load)

    def instances(self) -> list[Instance]:
        return self._collect(
            "instances", lambda: self._gather_for_region("instances", self.client.list_instances)
        )

    def network_ports(self) -> list[NetworkInterface]:
        return self._collect(
            "network_ports",
            lambda: self._gather_for_region("network_ports", self.client.list_network_interfaces),
        )

    def network_routers(self) -> list[RouteTable]:
        return self._collect(
            "network_routers",
            lambda: self._gather_for_region("network_routers", self.client.list_route_tables),
        )

    def floating_ips(self) -> list[FloatingIP]:
        return self._collect(
            "floating_ips",
            lambda: self._gather_for_region("floating_ips", self.client.list_floating_ips),
        )

    def managed_disks(self) -> list[ManagedDisk]:
        return self._collect(
            "managed_disks", lambda: unique_by_id(self.client.list_managed_disks())
        )

    def storage_accounts(self) -> list[StorageAccount]:
        """Storage accounts holding at least one unmanaged instance disk.

        Only these accounts are collected, so keys are never listed for
        accounts no instance uses.
        """

        def load() -> list[StorageAccount]:
            used = self._used_storage_account_names()
            if not used:
                return []
            return [
                account
                for account in unique_by_id(self.client.list_storage_accounts())
                if account.name.casefold() in used
            ]

        return self._collect("storage_accounts", load)

    def _used_storage_account_names(self) -> set[str]:
        names: set[str] = set()
        for instance in self.instances():
            if instance.is_managed_disk:
                continue
            for disk in instance.disks:
                if disk.storage_account_name:
                    names.add(disk.storage_account_name.casefold())
        return names

    # ------------------------------------------------------------------
    # Stacks
    # ------------------------------------------------------------------

    def stacks(self) -> list[Stack]:
        """Stacks of this run, classified by change detection on first access.

        Resources of changed stacks are fetched live in one parallel pass;
        resources of unchanged stacks come from the snapshot store.

        Raises:
            SnapshotStoreError: If the snapshot cannot be read (retried on the next call)
            ParallelFetchError: If fetching live resources failed for some stacks
                (resources of the other stacks remain cached)
        """
        stacks = self._collect("stacks", self._fetch_stacks)
        if not self._stacks_classified:
            changed = self.change_detector.classify(stacks, self.target_refs)
            # Classification is final; failed live fetches are retried per stack
            self._stacks_classified = True
            self._cache_live_stack_resources(changed)
        return stacks

    def _fetch_stacks(self) -> list[Stack]:
        refs = self.target_refs
        if refs is not None and len(refs) <= self.config.targeted_api_collection_threshold:
            ordered = sorted(refs)
            results = self.fetcher.run(ordered, self._get_target_stack, name="targeted stacks")
            return unique_by_id(stack for ref in ordered if (stack := results[ref]) is not None)

        stacks = self._gather_for_region("stacks", self.client.list_stacks)
        if refs is not None:
            stacks = [stack for stack in stacks if stack.id in refs]
        return stacks

    def _get_target_stack(self, ref: str) -> Stack | None:
        try:
            resource_group, name = parse_resource_id(ref)
        except ValueError:
            logger.warning(f"Skipping target with invalid stack reference: {ref}")
            return None
        return guarded(Operation.STACK_GET, self.client.get_stack, resource_group, name)

    def _raw_stack_resources(self, stack: Stack) -> list[StackResource]:
        operations = guarded(
            Operation.STACK_OPERATIONS,
            self.client.list_stack_operations,
            stack.resource_group,
            stack.name,
        )
        resources: list[StackResource] = []
        seen: set[str] = set()
        for operation in operations:
            if not (
                operation.provisioning_operation
                and self._created_operation.search(operation.provisioning_operation)
            ):
                continue
            resource = StackResource.from_operation(operation)
            if resource.ems_ref in seen:
                continue
            seen.add(resource.ems_ref)
            resources.append(resource)
        return resources

    def _cache_live_stack_resources(self, stacks: Collection[Stack]) -> None:
        if not stacks:
            return
        try:
            results = self.fetcher.run(
                stacks, self._raw_stack_resources, key=lambda s: s.id, name="stack resources"
            )
        except ParallelFetchError as e:
            self._store_live_resources(e.results)
            raise
        self._store_live_resources(results)

    def _store_live_resources(self, results: dict[Any, list[StackResource]]) -> None:
        for stack_id, resources in results.items():
            self.context.store_stack_resources(stack_id, resources, ResourceSource.LIVE)

    def stack_state(self, stack: Stack) -> StackState:
        return self.context.stack_state(stack.id)

    def stack_resources(self, stack: Stack) -> list[StackResource]:
        """Resources created by ``stack``, from the run cache or the live API."""
        if not self._stacks_classified:
            self.stacks()
        cached = self.context.stack_resources.get(stack.id)
        if cached is not None:
            return list(cached)
        resources = self._raw_stack_resources(stack)
        self.context.store_stack_resources(stack.id, resources, ResourceSource.LIVE)
        return list(resources)

    def stack_templates(self) -> list[StackTemplate]:
        """Templates of changed stacks that could be retrieved."""
        return self._collect(
            "stack_templates", lambda: self.template_resolver.collect(self.stacks())
        )

    def stack_template(self, stack: Stack) -> StackTemplate | None:
        """Template record resolved for ``stack`` (None if unchanged or unavailable)."""
        self.stack_templates()
        template = self.context.stack_templates.get(stack.id)
        return template if template is not None and template.content else None

    # ------------------------------------------------------------------
    # Joins and auxiliary state
    # ------------------------------------------------------------------

    def instance_network_ports(self, instance: Instance) -> list[NetworkInterface]:
        return [
            nic
            for nic_id in instance.network_interface_ids
            if (nic := self._network_ports_index.get(nic_id)) is not None
        ]

    def instance_floating_ip(self, public_ip_id: str) -> FloatingIP | None:
        return self._floating_ips_index.get(public_ip_id)

    def instance_floating_ips(self, instance: Instance) -> list[FloatingIP]:
        return [
            ip
            for nic in self.instance_network_ports(instance)
            for ip_id in nic.public_ip_ids
            if (ip := self.instance_floating_ip(ip_id)) is not None
        ]

    def instance_managed_disk(self, disk_location: str) -> ManagedDisk | None:
        return self._managed_disks_index.get(disk_location)

    def instance_storage_accounts(self, storage_name: str) -> StorageAccount | None:
        return self._storage_accounts_index.get(storage_name)

    def instance_account_keys(self, storage_account: StorageAccount) -> AccountKeys | None:
        return self.account_key_resolver.get(storage_account)

    def power_status(self, instance: Instance) -> str | None:
        return self.power_status_resolver.get(instance)

    def prefetch_power_states(self) -> None:
        """Fetch power states of every collected instance in one parallel pass."""
        self.power_status_resolver.prefetch(self.instances())


__all__ = ["CollectionTarget", "InventoryCollector"]
