"""
Shared test fixtures and configuration for azcollect tests.

This module provides common fixtures used across all test types:
- Test mode marker (sequential parallel passes)
- Fake Cloud API client and in-memory snapshot store
- Sample inventory for a two-group subscription
- Temporary config directories
"""

import os

import pytest

from azcollect.config import TEST_MODE_ENV, CollectorConfig
from tests.fixtures.azure_responses import (
    RUNNING_STATUSES,
    make_floating_ip,
    make_instance,
    make_managed_disk,
    make_network_interface,
    make_operation,
    make_resource_group,
    make_route_table,
    make_stack,
    make_storage_account,
)
from tests.mocks.azure_mock import FakeCloudApiClient, InMemorySnapshotStore

# ============================================================================
# SESSION FIXTURES
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def collector_test_mode():
    """Mark the session as a test run.

    Forces every collector-owned parallel pass to run sequentially so
    tests are deterministic.
    """
    previous = os.environ.get(TEST_MODE_ENV)
    os.environ[TEST_MODE_ENV] = "true"

    yield

    if previous is None:
        os.environ.pop(TEST_MODE_ENV, None)
    else:
        os.environ[TEST_MODE_ENV] = previous


# ============================================================================
# DIRECTORY FIXTURES
# ============================================================================


@pytest.fixture
def temp_config_dir(tmp_path):
    """Temporary .azcollect directory for config file tests."""
    config_dir = tmp_path / ".azcollect"
    config_dir.mkdir()
    return config_dir


# ============================================================================
# COLLECTOR FIXTURES
# ============================================================================


@pytest.fixture
def config():
    """Default collector config."""
    return CollectorConfig()


@pytest.fixture
def snapshot_store():
    """Empty in-memory snapshot store (first run)."""
    return InMemorySnapshotStore()


@pytest.fixture
def fake_client():
    """Fake client holding a small two-group subscription.

    rg-east (eastus): deployments web and db, vm-1 with a NIC and public IP,
    a managed disk, a route table.
    rg-west (westus): deployment cache, vm-2 on an unmanaged VHD in
    storage account "legacyvhds".
    """
    web = make_stack("web")
    db = make_stack("db")
    cache = make_stack("cache", group="rg-west")
    return FakeCloudApiClient(
        resource_groups=[
            make_resource_group("rg-east", "eastus"),
            make_resource_group("rg-west", "westus"),
        ],
        stacks=[web, db, cache],
        operations={
            ("rg-east", "web"): [
                make_operation("vm-1"),
                make_operation("vm-1", provisioning_operation="Read"),
            ],
            ("rg-east", "db"): [make_operation("sqldb", target_type="Microsoft.Sql/servers")],
            ("rg-west", "cache"): [make_operation("redis", group="rg-west")],
        },
        instances=[
            make_instance("vm-1", nics=["vm-1-nic"]),
            make_instance("vm-2", group="rg-west", location="westus", vhd_account="legacyvhds"),
        ],
        statuses={("rg-east", "vm-1"): RUNNING_STATUSES},
        network_interfaces=[make_network_interface("vm-1-nic", public_ips=("vm-1-ip",))],
        floating_ips=[make_floating_ip("vm-1-ip")],
        route_tables=[make_route_table("rt-east")],
        managed_disks=[make_managed_disk("vm-1-os")],
        storage_accounts=[
            make_storage_account("legacyvhds", group="rg-west", location="westus"),
            make_storage_account("unusedlogs", group="rg-west", location="westus"),
        ],
    )
