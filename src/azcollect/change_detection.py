"""Stack change detection against the previous run's snapshot.

Listing a deployment's operations costs one API round trip per stack. By
comparing each live stack's timestamp with the finish time persisted by the
previous run, only stacks that actually changed are re-fetched; the
resources of every other stack are taken from the snapshot store.

Classification rules:
    UNCHANGED: both timestamps present and
               persisted >= remote or |persisted - remote| <= tolerance
    CHANGED:   anything else (missing timestamp on either side, or the
               snapshot is older than the tolerance allows)

Public API (the "studs"):
    is_stack_unchanged: Pure classification function
    StackChangeDetector: Classifies stacks and fills resources from the snapshot
"""

import logging
import time
from collections.abc import Collection, Sequence
from datetime import datetime, timedelta

from azcollect.config import CollectorConfig
from azcollect.context import CollectionContext, ResourceSource, StackState
from azcollect.models import Stack, parse_timestamp
from azcollect.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = timedelta(seconds=1)


def is_stack_unchanged(
    persisted: datetime | None,
    remote: datetime | None,
    tolerance: timedelta = DEFAULT_TOLERANCE,
) -> bool:
    """Decide whether a stack is unchanged since the snapshot was taken.

    Args:
        persisted: Finish time stored by the previous run
        remote: Timestamp currently reported by the API
        tolerance: Clock skew under which the timestamps are considered equal

    Returns:
        True if the snapshot can be reused for this stack

    Example:
        >>> t = datetime(2024, 1, 1)
        >>> is_stack_unchanged(t, t + timedelta(milliseconds=500))
        True
    """
    persisted = parse_timestamp(persisted)
    remote = parse_timestamp(remote)
    if persisted is None or remote is None:
        return False
    return persisted >= remote or abs(persisted - remote) <= tolerance


class StackChangeDetector:
    """Classify stacks and pre-load unchanged stacks' resources.

    Results are written to the run's CollectionContext: one terminal
    StackState per stack, and snapshot-sourced resources for every
    unchanged stack.
    """

    def __init__(
        self,
        snapshot_store: SnapshotStore,
        config: CollectorConfig,
        context: CollectionContext,
    ):
        self.snapshot_store = snapshot_store
        self.config = config
        self.context = context
        self.tolerance = timedelta(seconds=config.timestamp_tolerance_seconds)

    def classify(self, stacks: Sequence[Stack], refs: Collection[str] | None = None) -> list[Stack]:
        """Classify every stack and return the changed ones.

        Args:
            stacks: Live stacks of this run
            refs: Restrict the snapshot query to these external ids (targeted runs)

        Returns:
            Stacks classified CHANGED, in input order

        Raises:
            StackClassificationError: If a stack was already classified in this run
            SnapshotStoreError: If the snapshot store cannot be read
        """
        if not self.config.enabled_deployments_caching:
            for stack in stacks:
                self.context.classify_stack(stack.id, StackState.CHANGED)
            logger.debug(f"Deployment caching disabled, {len(stacks)} stacks marked changed")
            return list(stacks)

        start_time = time.time()
        persisted_times: dict[str, datetime | None] = {}
        persisted_keys: dict[str, int] = {}
        for persisted in self.snapshot_store.find_stacks(refs):
            persisted_times[persisted.ems_ref] = persisted.finish_time
            persisted_keys[persisted.ems_ref] = persisted.id

        changed: list[Stack] = []
        for stack in stacks:
            if stack.id in persisted_keys and is_stack_unchanged(
                persisted_times.get(stack.id), stack.timestamp, self.tolerance
            ):
                self.context.classify_stack(stack.id, StackState.UNCHANGED)
                self.context.unchanged_stack_keys[stack.id] = persisted_keys[stack.id]
            else:
                self.context.classify_stack(stack.id, StackState.CHANGED)
                changed.append(stack)

        self._load_snapshot_resources()

        logger.info(
            f"Classified {len(stacks)} stacks: {len(stacks) - len(changed)} unchanged, "
            f"{len(changed)} changed ({time.time() - start_time:.2f}s)"
        )
        return changed

    def _load_snapshot_resources(self) -> None:
        """Fill the resource cache of unchanged stacks from the snapshot, in chunks."""
        key_to_ref = {key: ref for ref, key in self.context.unchanged_stack_keys.items()}
        for ref in self.context.unchanged_stack_keys:
            self.context.store_stack_resources(ref, [], ResourceSource.SNAPSHOT)

        keys = list(key_to_ref)
        batch_size = self.config.snapshot_batch_size
        loaded = 0
        for start in range(0, len(keys), batch_size):
            batch = keys[start : start + batch_size]
            for row in self.snapshot_store.find_stack_resources(batch):
                ref = key_to_ref.get(row.stack_id)
                if ref is None:
                    continue
                self.context.store_stack_resources(
                    ref, [row.to_stack_resource()], ResourceSource.SNAPSHOT
                )
                loaded += 1

        logger.debug(f"Loaded {loaded} stack resources for {len(keys)} unchanged stacks")


__all__ = ["DEFAULT_TOLERANCE", "StackChangeDetector", "is_stack_unchanged"]
