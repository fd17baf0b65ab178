"""Power state and storage account key resolvers.

Both keep their values in the run's CollectionContext, so each instance's
power state and each storage account's keys are fetched at most once per
run.

Security:
- Account keys are CRITICAL secrets: never logged, AccountKeys redacts its repr
"""

import logging
from collections.abc import Callable, Iterable

from azcollect.cloud_client import CloudApiClient
from azcollect.context import CollectionContext
from azcollect.errors import ParallelFetchError
from azcollect.fallback_policy import Operation, guarded
from azcollect.models import AccountKeys, Instance, StorageAccount
from azcollect.parallel import ParallelFetcher

logger = logging.getLogger(__name__)


class PowerStatusResolver:
    """Resolve and cache instance power states."""

    def __init__(
        self,
        client: CloudApiClient,
        context: CollectionContext,
        fetcher: ParallelFetcher,
        prefix: str = "PowerState/",
    ):
        self.client = client
        self.context = context
        self.fetcher = fetcher
        self.prefix = prefix

    def _power_state(self, instance: Instance) -> str | None:
        statuses = self.client.get_instance_statuses(instance.resource_group, instance.name)
        for status in statuses:
            if status.code.startswith(self.prefix):
                return status.display_status
        return None

    def _fetch(self, instance: Instance) -> str | None:
        return guarded(Operation.INSTANCE_VIEW, self._power_state, instance)

    def get(self, instance: Instance) -> str | None:
        """Power state display text of ``instance`` (e.g. "VM running").

        Returns:
            Display status, "off" when the instance no longer exists, or None
            when the instance view reports no power state
        """
        if instance.id in self.context.power_states:
            return self.context.power_states[instance.id]
        status = self._fetch(instance)
        self.context.power_states[instance.id] = status
        return status

    def prefetch(self, instances: Iterable[Instance]) -> None:
        """Fetch power states of all uncached instances in one parallel pass."""
        uncached = [i for i in instances if i.id not in self.context.power_states]
        if not uncached:
            return
        try:
            results = self.fetcher.run(
                uncached, self._fetch, key=lambda i: i.id, name="instance power states"
            )
        except ParallelFetchError as e:
            self.context.power_states.update(e.results)
            raise
        self.context.power_states.update(results)


class AccountKeyResolver:
    """Load storage account keys in a single parallel pass per run."""

    def __init__(
        self,
        client: CloudApiClient,
        context: CollectionContext,
        fetcher: ParallelFetcher,
        accounts: Callable[[], list[StorageAccount]],
    ):
        """Initialize resolver.

        Args:
            client: Cloud API client
            context: Run context holding the key cache
            fetcher: Parallel fetcher for the key pass
            accounts: Returns the storage accounts whose keys are needed
        """
        self.client = client
        self.context = context
        self.fetcher = fetcher
        self._accounts = accounts

    def _load(self) -> None:
        accounts = self._accounts()
        if accounts:
            try:
                results = self.fetcher.run(
                    accounts,
                    lambda a: self.client.list_storage_account_keys(a.resource_group, a.name),
                    key=lambda a: (a.name, a.resource_group),
                    name="storage account keys",
                )
            except ParallelFetchError as e:
                self.context.account_keys.update(e.results)
                raise
            self.context.account_keys.update(results)
        logger.debug(f"Loaded keys for {len(accounts)} storage accounts")

    def get(self, account: StorageAccount) -> AccountKeys | None:
        """Keys of ``account``, None if the account was not part of the key pass.

        Raises:
            ParallelFetchError: If listing keys failed for any account; keys of
                the other accounts are kept and the pass is retried on the next call
        """
        if not self.context.account_keys_loaded:
            self._load()
            self.context.account_keys_loaded = True
        return self.context.account_keys.get((account.name, account.resource_group))


__all__ = ["AccountKeyResolver", "PowerStatusResolver"]
