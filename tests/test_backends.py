"""Tests for backend membership reconciliation."""

from __future__ import annotations

import pytest
from cloud_mock import MockCloudClient, MockCloudState

from blb_controller.backends import plan_backends, reconcile_backends
from blb_controller.errors import CloudApiError
from blb_controller.models import DEFAULT_BACKEND_WEIGHT, BackendServer, Node


def node(instance_id: str) -> Node:
    return Node(name=f"node-{instance_id}", instance_id=instance_id)


class TestPlanBackends:
    """Tests for plan_backends."""

    def test_adds_missing_and_removes_stale(self) -> None:
        current = [BackendServer("i-1"), BackendServer("i-9")]

        plan = plan_backends(current, [node("i-2"), node("i-1"), node("i-3")])

        assert [server.instance_id for server in plan.to_add] == ["i-2", "i-3"]
        assert all(server.weight == DEFAULT_BACKEND_WEIGHT for server in plan.to_add)
        assert plan.to_remove == ["i-9"]

    def test_weight_changes_are_ignored(self) -> None:
        plan = plan_backends([BackendServer("i-1", weight=10)], [node("i-1")])

        assert plan.empty

    def test_no_nodes_removes_everything(self) -> None:
        plan = plan_backends([BackendServer("i-1"), BackendServer("i-2")], [])

        assert plan.to_add == []
        assert plan.to_remove == ["i-1", "i-2"]


class TestReconcileBackends:
    """Tests for reconcile_backends against the mock cloud."""

    @pytest.mark.asyncio
    async def test_members_match_nodes(self, cloud_state: MockCloudState) -> None:
        load_balancer = cloud_state.add_load_balancer(
            "c-1/default/svc-a", backends=[BackendServer("i-old")]
        )

        await reconcile_backends(
            MockCloudClient(cloud_state), load_balancer.id, [node("i-1"), node("i-2")]
        )

        assert set(cloud_state.backends[load_balancer.id]) == {"i-1", "i-2"}

    @pytest.mark.asyncio
    async def test_up_to_date_makes_no_calls(self, cloud_state: MockCloudState) -> None:
        load_balancer = cloud_state.add_load_balancer(
            "c-1/default/svc-a", backends=[BackendServer("i-1")]
        )

        plan = await reconcile_backends(
            MockCloudClient(cloud_state), load_balancer.id, [node("i-1")]
        )

        assert plan.empty
        assert cloud_state.mutating_calls == []

    @pytest.mark.asyncio
    async def test_add_failure_propagates(self, cloud_state: MockCloudState) -> None:
        load_balancer = cloud_state.add_load_balancer("c-1/default/svc-a")
        cloud_state.fail_on("add_backend_servers", "instance not in vpc")

        with pytest.raises(CloudApiError, match="instance not in vpc"):
            await reconcile_backends(MockCloudClient(cloud_state), load_balancer.id, [node("i-1")])
