"""In-memory BLB, VPC and CCE cloud for reconciler tests.

Key Features:
- In-memory state for load balancers, listeners, backends, subnets and instances
- Read-after-write lag and status sequences to simulate eventual consistency
- Error injection per operation and rejected subnet CIDRs
- A fake clock that records sleeps instead of waiting

Usage:
    from cloud_mock import FakeClock, MockCloudClient, MockCloudState

    state = MockCloudState()
    state.add_cluster("c-1", vpc_id="vpc-1", subnet_cidr="192.168.0.0/24")
    client = MockCloudClient(state)
    clock = FakeClock()

    reconciler = LoadBalancerReconciler(client, config, sleep=clock.sleep)
    result = await reconciler.ensure_load_balancer(service, nodes)

    assert state.create_count == 1
"""

from .client import MockCloudClient
from .clock import FakeClock, hang_forever
from .state import MockCloudState

__all__ = [
    "FakeClock",
    "MockCloudClient",
    "MockCloudState",
    "hang_forever",
]
