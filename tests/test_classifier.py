"""Tests for corrective actions on reconcile errors."""

from __future__ import annotations

import pytest

from blb_controller.annotations import ANNOTATION_CCE_ADD_LOAD_BALANCER_ID, AnnotationPatch
from blb_controller.classifier import apply_corrective_action
from blb_controller.errors import (
    AddressSpaceExhausted,
    CloudApiError,
    ClusterInstancesNotFound,
    ErrorKind,
    LoadBalancerConflict,
    LoadBalancerNotFound,
    LoadBalancerVanished,
    ReadAfterWriteTimeout,
    ReconcileDeadlineExceeded,
    ReconcileError,
    StabilizationTimeout,
    SubnetSynthesisTimeout,
)


class TestApplyCorrectiveAction:
    """Tests for apply_corrective_action."""

    def test_vanished_clears_bound_id(self) -> None:
        patch = AnnotationPatch()

        apply_corrective_action(LoadBalancerVanished("lb-1"), patch)

        assert patch.updates == {ANNOTATION_CCE_ADD_LOAD_BALANCER_ID: None}
        current = {ANNOTATION_CCE_ADD_LOAD_BALANCER_ID: "lb-1", "other": "x"}
        assert patch.apply(current) == {"other": "x"}

    @pytest.mark.parametrize(
        "error",
        [
            LoadBalancerNotFound("lb-1"),
            ClusterInstancesNotFound("c-1"),
            LoadBalancerConflict("lb-1", 2),
            ReadAfterWriteTimeout("lb-1", 11),
            StabilizationTimeout("lb-1", 10, "updating"),
            SubnetSynthesisTimeout("vpc-1", 10, "10.0.10.0/24"),
            ReconcileDeadlineExceeded("default/svc-a", 600),
            CloudApiError("describe_load_balancers", "boom"),
            AddressSpaceExhausted("255.255.255.0/24"),
        ],
    )
    def test_other_errors_leave_annotations_alone(self, error: ReconcileError) -> None:
        patch = AnnotationPatch()

        apply_corrective_action(error, patch)

        assert not patch.changed


class TestErrorKinds:
    """Every error variant carries its kind tag."""

    @pytest.mark.parametrize(
        ("error", "kind"),
        [
            (LoadBalancerNotFound("lb-1"), ErrorKind.NOT_FOUND),
            (LoadBalancerVanished("lb-1"), ErrorKind.NOT_FOUND),
            (ClusterInstancesNotFound("c-1"), ErrorKind.NOT_FOUND),
            (LoadBalancerConflict("lb-1", 1), ErrorKind.CONFLICT),
            (StabilizationTimeout("lb-1", 10, "updating"), ErrorKind.TIMEOUT),
            (ReconcileDeadlineExceeded("default/svc-a", 600), ErrorKind.TIMEOUT),
            (CloudApiError("create_subnet", "boom"), ErrorKind.TRANSPORT),
            (AddressSpaceExhausted("255.255.255.0/24"), ErrorKind.ADDRESS_SPACE_EXHAUSTED),
        ],
    )
    def test_kind(self, error: ReconcileError, kind: ErrorKind) -> None:
        assert error.kind is kind

    def test_cloud_api_error_message(self) -> None:
        error = CloudApiError("create_subnet", "quota exceeded", status_code=400, request_id="r-1")

        assert str(error) == "create_subnet failed: quota exceeded"
        assert error.request_id == "r-1"
