"""
Tests for the inventory hierarchy walker

Author: uldyssian-sh
License: MIT
"""

import time
from unittest.mock import Mock

import pytest

from vsphere_exporter.exceptions import InventoryError, InventoryTimeoutError
from vsphere_exporter.inventory import InventoryNode
from vsphere_exporter.registry import ObjectKind
from vsphere_exporter.walker import HierarchyWalker, Partition, Scope, Strategy
from tests.fakes import FakeInventory, make_datastore, make_host


class TestScope:
    """Test Scope and Partition descriptions"""

    def test_whole_inventory(self):
        scope = Scope.whole_inventory()

        assert scope.is_whole_inventory
        assert scope.describe() == "inventory"

    def test_cluster_scope(self):
        dc = InventoryNode("dc1", "datacenter-1")
        cluster = InventoryNode("cluster1", "domain-c1")

        assert Scope.of_datacenter(dc).describe() == "datacenter=dc1"
        assert Scope.of_cluster(dc, cluster).describe() == "datacenter=dc1 cluster=cluster1"
        assert not Scope.of_cluster(dc, cluster).is_whole_inventory

    def test_partition_describe(self):
        partition = Partition(ObjectKind.DATASTORE, Scope.whole_inventory())

        assert partition.describe() == "Datastore inventory"

    def test_strategy_for_labels(self):
        assert Strategy.for_labels(True) is Strategy.HIERARCHICAL
        assert Strategy.for_labels(False) is Strategy.FLAT


class TestHierarchyWalker:
    """Test HierarchyWalker against an in-memory inventory"""

    def setup_method(self):
        """Setup test fixtures"""
        self.inventory = FakeInventory()
        self.dc = self.inventory.add_datacenter("dc1")
        self.cluster = self.inventory.add_cluster(
            self.dc, "cluster1", [make_host("esx-01"), make_host("esx-02")]
        )
        self.inventory.add_datastores(self.dc, [make_datastore("ds-01")])
        self.walker = HierarchyWalker(
            self.inventory, fetcher=self.inventory,
            strategy=Strategy.HIERARCHICAL, call_timeout=5.0
        )

    def teardown_method(self):
        self.walker.close()

    @pytest.mark.asyncio
    async def test_list_datacenters(self):
        assert await self.walker.list_datacenters() == [self.dc]

    @pytest.mark.asyncio
    async def test_list_datacenters_failure(self):
        """Test client errors surface as inventory errors"""
        self.inventory.fail("datacenters")

        with pytest.raises(InventoryError):
            await self.walker.list_datacenters()

    @pytest.mark.asyncio
    async def test_call_deadline(self):
        """Test a slow call is abandoned at the per-call deadline"""
        self.walker.call_timeout = 0.05
        self.inventory.delay("datacenters", 0.5)

        with pytest.raises(InventoryTimeoutError):
            await self.walker.list_datacenters()

    @pytest.mark.asyncio
    async def test_deadline_excludes_wait_for_worker(self):
        """Test a call queued behind a timed-out one gets its full deadline"""
        walker = HierarchyWalker(self.inventory, fetcher=self.inventory,
                                 call_timeout=0.2, max_workers=1)
        self.inventory.delay("datacenters", 0.5)
        try:
            with pytest.raises(InventoryTimeoutError):
                await walker.list_datacenters()

            # the abandoned call still holds the only worker for another 0.3s
            assert await walker.list_clusters(self.dc) == [self.cluster]
        finally:
            walker.close()

    @pytest.mark.asyncio
    async def test_fetch_hosts_of_cluster(self):
        """Test a cluster's hosts are fetched in one retrieval"""
        snapshots = await self.walker.fetch_hosts(Scope.of_cluster(self.dc, self.cluster))

        assert [s.moid for s in snapshots] == ["host-esx-01", "host-esx-02"]
        assert self.inventory.retrieve_calls == 1

    @pytest.mark.asyncio
    async def test_fetch_empty_cluster(self):
        """Test an empty cluster yields nothing and skips retrieval"""
        empty = self.inventory.add_cluster(self.dc, "empty")

        assert await self.walker.fetch_hosts(Scope.of_cluster(self.dc, empty)) == []
        assert self.inventory.retrieve_calls == 0

    @pytest.mark.asyncio
    async def test_fetch_datastores_of_datacenter(self):
        snapshots = await self.walker.fetch_datastores(Scope.of_datacenter(self.dc))

        assert [s.moid for s in snapshots] == ["datastore-ds-01"]

    @pytest.mark.asyncio
    async def test_hosts_need_cluster_scope(self):
        with pytest.raises(InventoryError):
            await self.walker.list_hosts_under(Scope.of_datacenter(self.dc))

    @pytest.mark.asyncio
    async def test_fetch_failure(self):
        self.inventory.fail("host-esx-02")

        with pytest.raises(InventoryError):
            await self.walker.fetch_hosts(Scope.of_cluster(self.dc, self.cluster))

    @pytest.mark.asyncio
    async def test_host_partitions(self):
        """Test one labelled host partition per cluster"""
        other = self.inventory.add_cluster(self.dc, "cluster2")

        partitions = await self.walker.host_partitions(self.dc)

        assert partitions == [
            Partition(ObjectKind.HOST, Scope.of_cluster(self.dc, self.cluster),
                      ("dc1", "cluster1")),
            Partition(ObjectKind.HOST, Scope.of_cluster(self.dc, other),
                      ("dc1", "cluster2")),
        ]

    @pytest.mark.asyncio
    async def test_host_partitions_without_clusters(self):
        bare = self.inventory.add_datacenter("dc2")

        assert await self.walker.host_partitions(bare) == []

    def test_datastore_partition(self):
        partition = self.walker.datastore_partition(self.dc)

        assert partition.kind is ObjectKind.DATASTORE
        assert partition.scope == Scope.of_datacenter(self.dc)
        assert partition.hierarchy_values == ("dc1",)

    @pytest.mark.asyncio
    async def test_fetch_dispatches_on_kind(self):
        snapshots = await self.walker.fetch(self.walker.datastore_partition(self.dc))

        assert [s.kind for s in snapshots] == [ObjectKind.DATASTORE]


class TestFlatWalk:
    """Test inventory-wide retrieval"""

    def setup_method(self):
        """Setup test fixtures"""
        self.client = Mock()
        self.fetcher = Mock()
        self.walker = HierarchyWalker(self.client, fetcher=self.fetcher, call_timeout=5.0)

    def teardown_method(self):
        self.walker.close()

    def test_inventory_partitions(self):
        partitions = self.walker.inventory_partitions()

        assert [p.kind for p in partitions] == [ObjectKind.HOST, ObjectKind.DATASTORE]
        assert all(p.scope.is_whole_inventory for p in partitions)
        assert all(p.hierarchy_values == () for p in partitions)

    @pytest.mark.asyncio
    async def test_fetch_whole_inventory(self):
        """Test the whole inventory is fetched without listing first"""
        self.fetcher.fetch_all.return_value = ["snapshot"]

        snapshots = await self.walker.fetch_hosts(Scope.whole_inventory())

        assert snapshots == ["snapshot"]
        self.fetcher.fetch_all.assert_called_once_with(ObjectKind.HOST, ("summary",))
        self.client.list_inventory.assert_not_called()

    @pytest.mark.asyncio
    async def test_list_whole_inventory(self):
        self.client.list_inventory.return_value = ["host-1"]

        assert await self.walker.list_hosts_under(Scope.whole_inventory()) == ["host-1"]
        self.client.list_inventory.assert_called_once_with(ObjectKind.HOST)

    @pytest.mark.asyncio
    async def test_call_timeout_is_inventory_error(self):
        self.walker.call_timeout = 0.05
        self.fetcher.fetch_all.side_effect = lambda kind, properties: time.sleep(0.5)

        with pytest.raises(InventoryError):
            await self.walker.fetch_datastores(Scope.whole_inventory())
