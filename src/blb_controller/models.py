"""Domain records for BLB reconciliation.

Cloud records (LoadBalancer, Listener, BackendServer, Subnet, Instance) are
read-mostly snapshots owned by the cloud provider. ServiceDeclaration is
the caller's view of a Kubernetes Service, and DesiredState is derived
from it once per reconciliation pass.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from .annotations import (
    ElasticIPConfig,
    HealthCheckConfig,
    Scheduler,
    ServiceAnnotations,
    parse_service_annotations,
)
from .errors import InvalidServiceDeclaration

# Status of a BLB that accepts configuration changes
STATUS_AVAILABLE = "available"
STATUS_UNKNOWN = "unknown"

DEFAULT_BACKEND_WEIGHT = 100

# =============================================================================
# Cloud records
# =============================================================================


class ListenerProtocol(str, Enum):
    """Listener protocols a Service port can map to."""

    TCP = "TCP"
    UDP = "UDP"


@dataclass(frozen=True)
class LoadBalancer:
    """Snapshot of a remote BLB."""

    id: str
    name: str
    status: str
    address: str | None = None
    description: str = ""
    vpc_id: str | None = None
    subnet_id: str | None = None

    @property
    def available(self) -> bool:
        return self.status == STATUS_AVAILABLE


@dataclass(frozen=True)
class Listener:
    """A BLB listener, keyed by its port."""

    protocol: ListenerProtocol
    port: int
    backend_port: int
    scheduler: Scheduler = Scheduler.ROUND_ROBIN
    health_check_timeout_seconds: int = 3
    health_check_interval_seconds: int = 3
    unhealthy_threshold: int = 3
    healthy_threshold: int = 3
    health_check_string: str | None = None


@dataclass(frozen=True)
class BackendServer:
    """A BLB backend member."""

    instance_id: str
    weight: int = DEFAULT_BACKEND_WEIGHT


@dataclass(frozen=True)
class Subnet:
    """A VPC subnet."""

    id: str
    name: str
    cidr: str
    zone: str
    vpc_id: str
    subnet_type: str


@dataclass(frozen=True)
class Instance:
    """A cluster member instance and its network placement."""

    id: str
    vpc_id: str
    subnet_id: str


@dataclass(frozen=True)
class SubnetCandidate:
    """A subnet the controller intends to create for the BLB."""

    name: str
    cidr: str
    zone: str
    vpc_id: str
    subnet_type: str


@dataclass(frozen=True)
class CreateLoadBalancerArgs:
    """Arguments of a BLB creation request."""

    name: str
    vpc_id: str
    subnet_id: str
    description: str
    allocate_vip: bool = False


# =============================================================================
# Service declaration
# =============================================================================


@dataclass(frozen=True)
class ServicePort:
    """A port of a LoadBalancer Service."""

    port: int
    node_port: int
    protocol: ListenerProtocol = ListenerProtocol.TCP
    name: str = ""


@dataclass(frozen=True)
class Node:
    """A candidate backend node and the cloud instance behind it."""

    name: str
    instance_id: str


@dataclass(frozen=True)
class ServiceDeclaration:
    """The caller's Service. Annotations are read-only here."""

    namespace: str
    name: str
    annotations: Mapping[str, str] = field(default_factory=dict)
    ports: tuple[ServicePort, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "annotations", MappingProxyType(dict(self.annotations)))
        object.__setattr__(self, "ports", tuple(self.ports))

    @property
    def qualified_name(self) -> str:
        """Namespace-qualified name, e.g. "default/svc-a"."""
        return f"{self.namespace}/{self.name}"

    def with_annotations(self, annotations: Mapping[str, str]) -> ServiceDeclaration:
        """Return a copy carrying a different annotation map."""
        return ServiceDeclaration(
            namespace=self.namespace,
            name=self.name,
            annotations=annotations,
            ports=self.ports,
        )


def load_balancer_name(cluster_id: str, service: ServiceDeclaration, max_length: int) -> str:
    """Logical BLB name "<clusterId>/<namespace>/<name>", truncated to max_length."""
    return f"{cluster_id}/{service.qualified_name}"[:max_length]


# =============================================================================
# Desired state
# =============================================================================


@dataclass(frozen=True)
class DesiredState:
    """What a Service asks of its BLB, derived once per pass."""

    existing_load_balancer_id: str | None
    auto_managed_load_balancer_id: str | None
    allocate_vip: bool
    internal_vpc: bool
    listeners: tuple[Listener, ...]
    health_check: HealthCheckConfig
    elastic_ip: ElasticIPConfig

    @classmethod
    def from_service(cls, service: ServiceDeclaration) -> DesiredState:
        """Derive the desired state from a Service declaration.

        Raises:
            AnnotationError: If annotations fail validation.
            InvalidServiceDeclaration: If ports cannot be mapped to listeners.
        """
        annotations = parse_service_annotations(service.annotations)
        return cls(
            existing_load_balancer_id=annotations.load_balancer_exist_id,
            auto_managed_load_balancer_id=annotations.cce_add_load_balancer_id,
            allocate_vip=annotations.allocate_vip,
            internal_vpc=annotations.internal_vpc,
            listeners=_desired_listeners(service, annotations),
            health_check=annotations.health_check,
            elastic_ip=annotations.elastic_ip,
        )


def _desired_listeners(
    service: ServiceDeclaration, annotations: ServiceAnnotations
) -> tuple[Listener, ...]:
    health = annotations.health_check
    listeners: dict[int, Listener] = {}
    for port in service.ports:
        if port.port in listeners:
            raise InvalidServiceDeclaration(
                f"{service.qualified_name}: port {port.port} is declared more than once"
            )
        if port.node_port <= 0:
            raise InvalidServiceDeclaration(
                f"{service.qualified_name}: port {port.port} has no node port"
            )
        listeners[port.port] = Listener(
            protocol=port.protocol,
            port=port.port,
            backend_port=port.node_port,
            scheduler=annotations.scheduler,
            health_check_timeout_seconds=health.timeout_seconds,
            health_check_interval_seconds=health.interval_seconds,
            unhealthy_threshold=health.unhealthy_threshold,
            healthy_threshold=health.healthy_threshold,
            # Only UDP listeners carry a health check payload
            health_check_string=(
                health.check_string if port.protocol == ListenerProtocol.UDP else None
            ),
        )
    return tuple(listeners[p] for p in sorted(listeners))
