"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for cloud_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from cloud_mock import FakeClock, MockCloudClient, MockCloudState  # noqa: E402

from blb_controller.config import ReconcilerConfig  # noqa: E402
from blb_controller.models import (  # noqa: E402
    ListenerProtocol,
    Node,
    ServiceDeclaration,
    ServicePort,
)

CLUSTER_ID = "c-1"


@pytest.fixture
def cloud_state() -> MockCloudState:
    """Cloud with one cluster of two instances in a general purpose subnet."""
    state = MockCloudState()
    state.add_cluster(CLUSTER_ID, vpc_id="vpc-1", subnet_cidr="192.168.0.0/24")
    return state


@pytest.fixture
def cloud_client(cloud_state: MockCloudState) -> MockCloudClient:
    return MockCloudClient(cloud_state)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def reconciler_config() -> ReconcilerConfig:
    return ReconcilerConfig(cluster_id=CLUSTER_ID)


@pytest.fixture
def service() -> ServiceDeclaration:
    """The default/svc-a Service with one TCP port."""
    return ServiceDeclaration(
        namespace="default",
        name="svc-a",
        ports=(ServicePort(port=80, node_port=30080, protocol=ListenerProtocol.TCP),),
    )


@pytest.fixture
def nodes() -> list[Node]:
    return [
        Node(name="node-0", instance_id=f"i-{CLUSTER_ID}-0"),
        Node(name="node-1", instance_id=f"i-{CLUSTER_ID}-1"),
    ]
