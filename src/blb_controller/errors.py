"""Error taxonomy for load balancer reconciliation.

Every failure a reconciliation pass can report is one of a closed set of
variants, tagged with an ErrorKind:

- NOT_FOUND: a resource expected to resolve does not exist
- CONFLICT: a declared pre-existing BLB already serves another workload
- TIMEOUT: a bounded retry budget or the pass deadline was exhausted
- TRANSPORT: the cloud API reported a failure
- ADDRESS_SPACE_EXHAUSTED: no next CIDR block exists for subnet synthesis

Corrective actions are dispatched on these classes in classifier.py.
Boundary errors (invalid Service declarations, manifests) are kept separate
because they are raised before a pass starts.
"""

from __future__ import annotations

from enum import Enum
from typing import ClassVar


class ErrorKind(str, Enum):
    """Tag carried by every reconcile error variant."""

    NOT_FOUND = "NotFound"
    CONFLICT = "Conflict"
    TIMEOUT = "Timeout"
    TRANSPORT = "Transport"
    ADDRESS_SPACE_EXHAUSTED = "AddressSpaceExhausted"


class ReconcileError(Exception):
    """Base class for failures returned by a reconciliation pass."""

    kind: ClassVar[ErrorKind]


# =============================================================================
# NotFound
# =============================================================================


class ResourceNotFound(ReconcileError):
    """A resource expected to resolve does not exist."""

    kind = ErrorKind.NOT_FOUND


class LoadBalancerNotFound(ResourceNotFound):
    """The BLB referenced by an annotation does not exist."""

    def __init__(self, load_balancer_id: str, message: str | None = None) -> None:
        self.load_balancer_id = load_balancer_id
        super().__init__(message or f"Load balancer does not exist: {load_balancer_id}")


class LoadBalancerVanished(LoadBalancerNotFound):
    """The bound BLB disappeared while waiting for it to become available."""

    def __init__(self, load_balancer_id: str) -> None:
        super().__init__(
            load_balancer_id,
            f"Load balancer {load_balancer_id} vanished while waiting for it to become available",
        )


class ClusterInstancesNotFound(ResourceNotFound):
    """The cluster has no instances to derive a network placement from."""

    def __init__(self, cluster_id: str) -> None:
        self.cluster_id = cluster_id
        super().__init__(f"Cluster {cluster_id} has no instances, cannot place load balancer")


# =============================================================================
# Conflict
# =============================================================================


class LoadBalancerConflict(ReconcileError):
    """A user-declared BLB already has listeners of another workload."""

    kind = ErrorKind.CONFLICT

    def __init__(self, load_balancer_id: str, listener_count: int) -> None:
        self.load_balancer_id = load_balancer_id
        self.listener_count = listener_count
        super().__init__(
            f"Load balancer {load_balancer_id} is already in use "
            f"({listener_count} listeners) and is not bound to this service"
        )


# =============================================================================
# Timeout
# =============================================================================


class ReconcileTimeout(ReconcileError):
    """A bounded wait ran out of attempts or time."""

    kind = ErrorKind.TIMEOUT


class ReadAfterWriteTimeout(ReconcileTimeout):
    """A created BLB never became visible to the describe API."""

    def __init__(self, load_balancer_id: str, attempts: int) -> None:
        self.load_balancer_id = load_balancer_id
        self.attempts = attempts
        super().__init__(
            f"Load balancer {load_balancer_id} was created but is not visible "
            f"after {attempts} describe attempts"
        )


class StabilizationTimeout(ReconcileTimeout):
    """A BLB did not reach the available status within the poll budget."""

    def __init__(self, load_balancer_id: str, attempts: int, last_status: str) -> None:
        self.load_balancer_id = load_balancer_id
        self.attempts = attempts
        self.last_status = last_status
        super().__init__(
            f"Load balancer {load_balancer_id} still '{last_status}' after {attempts} polls"
        )


class SubnetSynthesisTimeout(ReconcileTimeout):
    """Every synthesized subnet candidate failed to be created."""

    def __init__(self, vpc_id: str, attempts: int, last_cidr: str) -> None:
        self.vpc_id = vpc_id
        self.attempts = attempts
        self.last_cidr = last_cidr
        super().__init__(
            f"Could not create a reserved subnet in {vpc_id} after {attempts} attempts "
            f"(last candidate {last_cidr})"
        )


class ReconcileDeadlineExceeded(ReconcileTimeout):
    """The whole reconciliation pass exceeded its deadline."""

    def __init__(self, service: str, timeout_seconds: float) -> None:
        self.service = service
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Reconciliation of {service} exceeded {timeout_seconds}s")


# =============================================================================
# Transport
# =============================================================================


class CloudApiError(ReconcileError):
    """The cloud API (or its SDK) reported a failure.

    Raised by CloudClient implementations. Never retried locally except by
    subnet synthesis, which moves on to the next candidate.
    """

    kind = ErrorKind.TRANSPORT

    def __init__(
        self,
        operation: str,
        message: str,
        *,
        status_code: int | None = None,
        request_id: str | None = None,
    ) -> None:
        self.operation = operation
        self.status_code = status_code
        self.request_id = request_id
        super().__init__(f"{operation} failed: {message}")


# =============================================================================
# Address space
# =============================================================================


class AddressSpaceExhausted(ReconcileError):
    """No next block of the same mask exists after the given CIDR."""

    kind = ErrorKind.ADDRESS_SPACE_EXHAUSTED

    def __init__(self, cidr: str) -> None:
        self.cidr = cidr
        super().__init__(f"No subnet of the same size exists after {cidr}")


# =============================================================================
# Boundary errors
# =============================================================================


class InvalidServiceDeclaration(Exception):
    """Raised when a Service cannot be turned into a desired state."""

    pass


class AnnotationError(InvalidServiceDeclaration):
    """Raised when Service annotations fail validation."""

    pass
