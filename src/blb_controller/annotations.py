"""Service annotations: keys, validation and the persisted binding.

Annotations are the only durable state of the controller. Two keys carry
the binding between a Service and its BLB:

- ANNOTATION_CCE_ADD_LOAD_BALANCER_ID: BLB id created or adopted by the controller
- ANNOTATION_LOAD_BALANCER_EXIST_ID: BLB id declared by the user; replaced
  with LOAD_BALANCER_IN_USE_SENTINEL when that BLB serves another workload

The remaining keys are parsed once into a validated ServiceAnnotations
model. Numeric values outside their documented range are rejected instead
of silently defaulted.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from .errors import AnnotationError

LOAD_BALANCER_PREFIX = "service.beta.kubernetes.io/cce-load-balancer-"
ELASTIC_IP_PREFIX = "service.beta.kubernetes.io/cce-elastic-ip-"

ANNOTATION_CCE_ADD_LOAD_BALANCER_ID = LOAD_BALANCER_PREFIX + "cce-add-id"
ANNOTATION_LOAD_BALANCER_EXIST_ID = LOAD_BALANCER_PREFIX + "exist-id"
ANNOTATION_INTERNAL_VPC = LOAD_BALANCER_PREFIX + "internal-vpc"
ANNOTATION_ALLOCATE_VIP = LOAD_BALANCER_PREFIX + "allocate-vip"
ANNOTATION_SCHEDULER = LOAD_BALANCER_PREFIX + "scheduler"
ANNOTATION_HEALTH_CHECK_TIMEOUT = LOAD_BALANCER_PREFIX + "health-check-timeout-in-second"
ANNOTATION_HEALTH_CHECK_INTERVAL = LOAD_BALANCER_PREFIX + "health-check-interval"
ANNOTATION_UNHEALTHY_THRESHOLD = LOAD_BALANCER_PREFIX + "unhealthy-threshold"
ANNOTATION_HEALTHY_THRESHOLD = LOAD_BALANCER_PREFIX + "healthy-threshold"
ANNOTATION_HEALTH_CHECK_STRING = LOAD_BALANCER_PREFIX + "health-check-string"

ANNOTATION_ELASTIC_IP_NAME = ELASTIC_IP_PREFIX + "name"
ANNOTATION_ELASTIC_IP_PAYMENT_TIMING = ELASTIC_IP_PREFIX + "payment-timing"
ANNOTATION_ELASTIC_IP_BILLING_METHOD = ELASTIC_IP_PREFIX + "billing-method"
ANNOTATION_ELASTIC_IP_BANDWIDTH = ELASTIC_IP_PREFIX + "bandwidth-in-mbps"
ANNOTATION_ELASTIC_IP_RESERVATION_LENGTH = ELASTIC_IP_PREFIX + "reservation-length"

# Written into the exist-id key when the declared BLB already has listeners
LOAD_BALANCER_IN_USE_SENTINEL = "error_blb_has_been_used"


class Scheduler(str, Enum):
    """BLB listener scheduling algorithms."""

    ROUND_ROBIN = "RoundRobin"
    LEAST_CONNECTION = "LeastConnection"
    HASH = "Hash"


class HealthCheckConfig(BaseModel):
    """Listener health check parameters with BLB defaults and ranges."""

    model_config = {"extra": "ignore", "frozen": True, "populate_by_name": True}

    timeout_seconds: Annotated[
        int, Field(ge=1, le=60, alias=ANNOTATION_HEALTH_CHECK_TIMEOUT)
    ] = 3
    interval_seconds: Annotated[
        int, Field(ge=1, le=10, alias=ANNOTATION_HEALTH_CHECK_INTERVAL)
    ] = 3
    unhealthy_threshold: Annotated[
        int, Field(ge=2, le=5, alias=ANNOTATION_UNHEALTHY_THRESHOLD)
    ] = 3
    healthy_threshold: Annotated[int, Field(ge=2, le=5, alias=ANNOTATION_HEALTHY_THRESHOLD)] = 3
    check_string: str | None = Field(None, alias=ANNOTATION_HEALTH_CHECK_STRING)


class ElasticIPConfig(BaseModel):
    """EIP parameters. Parsed and validated only; EIP binding is handled elsewhere."""

    model_config = {"extra": "ignore", "frozen": True, "populate_by_name": True}

    name: str | None = Field(None, alias=ANNOTATION_ELASTIC_IP_NAME)
    payment_timing: str | None = Field(None, alias=ANNOTATION_ELASTIC_IP_PAYMENT_TIMING)
    billing_method: str | None = Field(None, alias=ANNOTATION_ELASTIC_IP_BILLING_METHOD)
    bandwidth_in_mbps: Annotated[
        int | None, Field(ge=1, alias=ANNOTATION_ELASTIC_IP_BANDWIDTH)
    ] = None
    reservation_length: Annotated[
        int | None, Field(ge=1, alias=ANNOTATION_ELASTIC_IP_RESERVATION_LENGTH)
    ] = None


class ServiceAnnotations(BaseModel):
    """Typed view of the load balancer annotations of a Service."""

    model_config = {"extra": "ignore", "frozen": True, "populate_by_name": True}

    cce_add_load_balancer_id: str | None = Field(
        None, alias=ANNOTATION_CCE_ADD_LOAD_BALANCER_ID
    )
    load_balancer_exist_id: str | None = Field(None, alias=ANNOTATION_LOAD_BALANCER_EXIST_ID)
    internal_vpc: bool = Field(False, alias=ANNOTATION_INTERNAL_VPC)
    allocate_vip: bool = Field(False, alias=ANNOTATION_ALLOCATE_VIP)
    scheduler: Scheduler = Field(Scheduler.ROUND_ROBIN, alias=ANNOTATION_SCHEDULER)
    health_check: HealthCheckConfig = Field(default_factory=HealthCheckConfig)
    elastic_ip: ElasticIPConfig = Field(default_factory=ElasticIPConfig)

    @model_validator(mode="before")
    @classmethod
    def split_annotation_groups(cls, data: Any) -> Any:
        """Drop empty values and route health check / EIP keys to their sub-models."""
        if not isinstance(data, Mapping):
            return data
        values = {k: v for k, v in data.items() if v not in ("", None)}
        values["health_check"] = {
            k: v for k, v in values.items() if k in _HEALTH_CHECK_KEYS
        }
        values["elastic_ip"] = {k: v for k, v in values.items() if k.startswith(ELASTIC_IP_PREFIX)}
        return values


_HEALTH_CHECK_KEYS = frozenset(
    {
        ANNOTATION_HEALTH_CHECK_TIMEOUT,
        ANNOTATION_HEALTH_CHECK_INTERVAL,
        ANNOTATION_UNHEALTHY_THRESHOLD,
        ANNOTATION_HEALTHY_THRESHOLD,
        ANNOTATION_HEALTH_CHECK_STRING,
    }
)


def parse_service_annotations(annotations: Mapping[str, str] | None) -> ServiceAnnotations:
    """Parse and validate the annotation map of a Service.

    Args:
        annotations: Raw annotation map (may be None).

    Returns:
        Validated ServiceAnnotations.

    Raises:
        AnnotationError: If any recognized annotation has an invalid value.
    """
    try:
        return ServiceAnnotations.model_validate(dict(annotations or {}))
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(part) for part in error["loc"])
            errors.append(f"{loc}: {error['msg']}")
        raise AnnotationError("Invalid service annotations:\n  - " + "\n  - ".join(errors)) from e


# =============================================================================
# Annotation patch
# =============================================================================


@dataclass
class AnnotationPatch:
    """Annotation changes produced by a reconciliation pass.

    The reconciler never mutates the caller's annotation map; the caller
    persists the patch. A value of None removes the key.
    """

    updates: dict[str, str | None] = field(default_factory=dict)

    def set(self, key: str, value: str) -> None:
        self.updates[key] = value

    def remove(self, key: str) -> None:
        self.updates[key] = None

    @property
    def changed(self) -> bool:
        return bool(self.updates)

    def apply(self, annotations: Mapping[str, str] | None) -> dict[str, str]:
        """Return a new annotation map with the patch applied."""
        result = dict(annotations or {})
        for key, value in self.updates.items():
            if value is None:
                result.pop(key, None)
            else:
                result[key] = value
        return result
