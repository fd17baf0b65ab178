"""azcollect - incremental Azure inventory collector

Philosophy:
- Pay only for what changed: unchanged deployments come from the snapshot
- Brick architecture (self-contained modules)
- Soft failures are declared in one table, everything else propagates
- Security by design (no secrets in logs)

Collects resource groups, deployments (orchestration stacks) with their
resources and templates, virtual machines, network interfaces, public IPs,
route tables, managed disks and storage accounts from Azure Resource
Manager for one refresh run.
"""

from azcollect.cloud_client import AzureCloudApiClient, CloudApiClient
from azcollect.collector import CollectionTarget, InventoryCollector
from azcollect.config import CollectorConfig, ConfigManager
from azcollect.errors import CollectorError, ParallelFetchError
from azcollect.snapshot_store import SnapshotStore, SqliteSnapshotStore

__version__ = "0.1.0"
__all__ = [
    "AzureCloudApiClient",
    "CloudApiClient",
    "CollectionTarget",
    "CollectorConfig",
    "CollectorError",
    "ConfigManager",
    "InventoryCollector",
    "ParallelFetchError",
    "SnapshotStore",
    "SqliteSnapshotStore",
    "__version__",
]
