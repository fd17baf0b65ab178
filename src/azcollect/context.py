"""Per-run collection context.

A CollectionContext owns every cache of a single collection run: memoized
collections, stack classifications, stack resources (with their source),
the template dedup tables, power states and account keys. A fresh context
is created for every run and dropped with it, so nothing leaks between
runs or between concurrently running tests.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, TypeVar

from azcollect.errors import ResourceSourceConflictError, StackClassificationError
from azcollect.models import AccountKeys, StackResource, StackTemplate

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StackState(StrEnum):
    """Change-detection state of a stack."""

    UNCLASSIFIED = "unclassified"
    UNCHANGED = "unchanged"
    CHANGED = "changed"


class ResourceSource(StrEnum):
    """Where a stack's resources came from."""

    SNAPSHOT = "snapshot"
    LIVE = "live"


@dataclass
class CollectionContext:
    """Caches of one collection run.

    Attributes:
        collections: Memoized collections by name
        stack_states: Terminal classification per stack id
        unchanged_stack_keys: Snapshot primary key per unchanged stack id
        stack_resources: Resources per stack id
        resource_sources: Source of stack_resources per stack id
        template_uris: Linked templates pending or downloaded, by URI
        template_directs: Templates returned inline, by stack id
        stack_templates: Template record resolved for each stack id
        power_states: Power state per instance id (None = no power state reported)
        account_keys: Keys per (storage account name, resource group)
        account_keys_loaded: Whether the account key pass already ran
    """

    collections: dict[str, Any] = field(default_factory=dict)
    stack_states: dict[str, StackState] = field(default_factory=dict)
    unchanged_stack_keys: dict[str, int] = field(default_factory=dict)
    stack_resources: dict[str, list[StackResource]] = field(default_factory=dict)
    resource_sources: dict[str, ResourceSource] = field(default_factory=dict)
    template_uris: dict[str, StackTemplate] = field(default_factory=dict)
    template_directs: dict[str, StackTemplate] = field(default_factory=dict)
    stack_templates: dict[str, StackTemplate | None] = field(default_factory=dict)
    power_states: dict[str, str | None] = field(default_factory=dict)
    account_keys: dict[tuple[str, str], AccountKeys] = field(default_factory=dict)
    account_keys_loaded: bool = False
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def memoize(self, name: str, loader: Callable[[], T]) -> T:
        """Return collection ``name``, loading it with ``loader`` on first access."""
        with self._lock:
            if name not in self.collections:
                self.collections[name] = loader()
            return self.collections[name]

    def stack_state(self, stack_id: str) -> StackState:
        return self.stack_states.get(stack_id, StackState.UNCLASSIFIED)

    def classify_stack(self, stack_id: str, state: StackState) -> None:
        """Record the terminal classification of a stack.

        Raises:
            StackClassificationError: If the stack is already classified or
                ``state`` is not terminal
        """
        if state is StackState.UNCLASSIFIED:
            raise StackClassificationError(f"Cannot classify {stack_id} as {state}")
        with self._lock:
            existing = self.stack_states.get(stack_id)
            if existing is not None:
                raise StackClassificationError(
                    f"Stack {stack_id} already classified as {existing}"
                )
            self.stack_states[stack_id] = state

    def store_stack_resources(
        self, stack_id: str, resources: list[StackResource], source: ResourceSource
    ) -> None:
        """Cache resources of a stack.

        Resources from the same source are appended; resources from a second
        source are rejected.

        Raises:
            ResourceSourceConflictError: If the stack already has resources
                from the other source
        """
        with self._lock:
            existing = self.resource_sources.get(stack_id)
            if existing is not None and existing is not source:
                raise ResourceSourceConflictError(
                    f"Stack {stack_id} already has {existing} resources, refusing {source} ones"
                )
            self.resource_sources[stack_id] = source
            self.stack_resources.setdefault(stack_id, []).extend(resources)

    def unchanged_stack_ids(self) -> set[str]:
        return {
            stack_id
            for stack_id, state in self.stack_states.items()
            if state is StackState.UNCHANGED
        }


__all__ = ["CollectionContext", "ResourceSource", "StackState"]
