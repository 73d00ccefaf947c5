"""Tests for subnet placement and reserved subnet synthesis."""

from __future__ import annotations

import ipaddress

import pytest
from cloud_mock import FakeClock, MockCloudClient, MockCloudState
from cloud_mock.state import NAT_SUBNET_TYPE

from blb_controller.errors import (
    AddressSpaceExhausted,
    CloudApiError,
    ClusterInstancesNotFound,
    SubnetSynthesisTimeout,
)
from blb_controller.retry import RetryPolicy
from blb_controller.subnet import (
    GENERAL_PURPOSE_SUBNET_TYPE,
    RESERVED_SUBNET_NAME,
    SYSTEM_PREDEFINED_SUBNET_NAME,
    SubnetAllocator,
    next_subnet,
)

POLICY = RetryPolicy(max_attempts=10, delay_seconds=3)


def nat_cluster(cidr: str = "192.168.0.0/24") -> MockCloudState:
    state = MockCloudState()
    state.add_cluster("c-1", vpc_id="vpc-1", subnet_cidr=cidr, subnet_type=NAT_SUBNET_TYPE)
    return state


def allocator(state: MockCloudState, clock: FakeClock) -> SubnetAllocator:
    return SubnetAllocator(MockCloudClient(state), "c-1", POLICY, clock.sleep)


class TestNextSubnet:
    """Tests for next_subnet."""

    @pytest.mark.parametrize(
        ("cidr", "expected"),
        [
            ("192.168.0.0/24", "192.168.1.0/24"),
            ("10.0.0.0/20", "10.0.16.0/20"),
            ("172.16.255.0/24", "172.17.0.0/24"),
            ("10.0.0.8/29", "10.0.0.16/29"),
            ("2001:db8::/64", "2001:db8:0:1::/64"),
        ],
    )
    def test_next_block_of_same_size(self, cidr: str, expected: str) -> None:
        assert next_subnet(ipaddress.ip_network(cidr)) == ipaddress.ip_network(expected)

    def test_last_block_has_no_successor(self) -> None:
        assert next_subnet(ipaddress.ip_network("255.255.255.0/24")) is None

    def test_whole_address_space_has_no_successor(self) -> None:
        assert next_subnet(ipaddress.ip_network("0.0.0.0/0")) is None


class TestSubnetAllocator:
    """Tests for SubnetAllocator.resolve_subnet_for_load_balancer."""

    @pytest.mark.asyncio
    async def test_general_purpose_instance_subnet_used_directly(
        self, cloud_state: MockCloudState, clock: FakeClock
    ) -> None:
        instance = cloud_state.instances["c-1"][0]

        placement = await allocator(cloud_state, clock).resolve_subnet_for_load_balancer()

        assert placement.subnet_id == instance.subnet_id
        assert placement.vpc_id == instance.vpc_id
        assert cloud_state.call_count("list_subnets") == 0
        assert cloud_state.call_count("create_subnet") == 0

    @pytest.mark.asyncio
    async def test_existing_reserved_subnet_reused(self, clock: FakeClock) -> None:
        state = nat_cluster()
        reserved = state.add_subnet(
            vpc_id="vpc-1", cidr="192.168.7.0/24", name=RESERVED_SUBNET_NAME
        )

        placement = await allocator(state, clock).resolve_subnet_for_load_balancer()

        assert placement.subnet_id == reserved.id
        assert placement.vpc_id == "vpc-1"
        assert state.call_count("create_subnet") == 0

    @pytest.mark.asyncio
    async def test_system_predefined_subnet_reused(self, clock: FakeClock) -> None:
        state = nat_cluster()
        predefined = state.add_subnet(
            vpc_id="vpc-1", cidr="192.168.200.0/24", name=SYSTEM_PREDEFINED_SUBNET_NAME
        )

        placement = await allocator(state, clock).resolve_subnet_for_load_balancer()

        assert placement.subnet_id == predefined.id
        assert state.call_count("create_subnet") == 0

    @pytest.mark.asyncio
    async def test_reserved_subnet_in_other_vpc_ignored(self, clock: FakeClock) -> None:
        state = nat_cluster()
        state.add_subnet(vpc_id="vpc-2", cidr="10.0.0.0/24", name=RESERVED_SUBNET_NAME)

        placement = await allocator(state, clock).resolve_subnet_for_load_balancer()

        created = state.subnets[placement.subnet_id]
        assert created.vpc_id == "vpc-1"
        assert created.cidr == "192.168.1.0/24"

    @pytest.mark.asyncio
    async def test_synthesizes_next_block(self, clock: FakeClock) -> None:
        state = nat_cluster("192.168.0.0/24")

        placement = await allocator(state, clock).resolve_subnet_for_load_balancer()

        created = state.subnets[placement.subnet_id]
        assert created.name == RESERVED_SUBNET_NAME
        assert created.cidr == "192.168.1.0/24"
        assert created.zone == "zoneA"
        assert created.vpc_id == "vpc-1"
        assert created.subnet_type == GENERAL_PURPOSE_SUBNET_TYPE
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_failed_candidates_never_retried(self, clock: FakeClock) -> None:
        state = nat_cluster("192.168.0.0/24")
        # 192.168.1.0/24 is taken by an unrelated subnet, 192.168.2.0/24 is refused
        state.add_subnet(vpc_id="vpc-1", cidr="192.168.1.0/24", name="workloads")
        state.rejected_cidrs.add("192.168.2.0/24")

        placement = await allocator(state, clock).resolve_subnet_for_load_balancer()

        tried = [call.args[0].cidr for call in state.calls_to("create_subnet")]
        assert tried == ["192.168.1.0/24", "192.168.2.0/24", "192.168.3.0/24"]
        assert state.subnets[placement.subnet_id].cidr == "192.168.3.0/24"
        assert clock.sleeps == [3, 3]

    @pytest.mark.asyncio
    async def test_attempts_are_capped(self, clock: FakeClock) -> None:
        state = nat_cluster("10.0.0.0/24")
        state.fail_on("create_subnet", "quota exceeded")

        with pytest.raises(SubnetSynthesisTimeout) as exc_info:
            await allocator(state, clock).resolve_subnet_for_load_balancer()

        tried = [
            ipaddress.ip_network(call.args[0].cidr) for call in state.calls_to("create_subnet")
        ]
        assert len(tried) == 10
        assert tried == sorted(set(tried))
        assert str(tried[0]) == "10.0.1.0/24"
        assert exc_info.value.attempts == 10
        assert exc_info.value.last_cidr == "10.0.10.0/24"
        assert isinstance(exc_info.value.__cause__, CloudApiError)
        # No pause after the final attempt
        assert clock.sleeps == [3] * 9

    @pytest.mark.asyncio
    async def test_address_space_exhausted(self, clock: FakeClock) -> None:
        state = nat_cluster("255.255.255.0/24")

        with pytest.raises(AddressSpaceExhausted) as exc_info:
            await allocator(state, clock).resolve_subnet_for_load_balancer()

        assert exc_info.value.cidr == "255.255.255.0/24"
        assert state.call_count("create_subnet") == 0

    @pytest.mark.asyncio
    async def test_address_space_exhausted_mid_synthesis(self, clock: FakeClock) -> None:
        state = nat_cluster("255.255.253.0/24")
        state.rejected_cidrs.update({"255.255.254.0/24", "255.255.255.0/24"})

        with pytest.raises(AddressSpaceExhausted):
            await allocator(state, clock).resolve_subnet_for_load_balancer()

        assert state.call_count("create_subnet") == 2

    @pytest.mark.asyncio
    async def test_cluster_without_instances(self, clock: FakeClock) -> None:
        state = MockCloudState()

        with pytest.raises(ClusterInstancesNotFound) as exc_info:
            await allocator(state, clock).resolve_subnet_for_load_balancer()

        assert exc_info.value.cluster_id == "c-1"

    @pytest.mark.asyncio
    async def test_describe_subnet_failure_propagates(self, clock: FakeClock) -> None:
        state = nat_cluster()
        state.fail_on("describe_subnet", "throttled", status_code=429)

        with pytest.raises(CloudApiError) as exc_info:
            await allocator(state, clock).resolve_subnet_for_load_balancer()

        assert exc_info.value.status_code == 429
        assert state.call_count("create_subnet") == 0
