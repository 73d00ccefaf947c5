"""Configuration management with validation.

Retry budgets and deadlines are validated at configuration load time so a
reconciliation pass never starts with an unbounded wait.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field

from .retry import RetryPolicy


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_WAIT_ATTEMPTS = 10  # polls until the BLB is available
DEFAULT_WAIT_INTERVAL_SECONDS = 10

DEFAULT_DESCRIBE_ATTEMPTS = 10  # retries until a created BLB is visible
DEFAULT_DESCRIBE_INTERVAL_SECONDS = 10

DEFAULT_SUBNET_CREATE_ATTEMPTS = 10  # synthesized CIDR candidates tried
DEFAULT_SUBNET_CREATE_INTERVAL_SECONDS = 3

# Worst case: three waits plus the describe wait plus subnet synthesis
DEFAULT_RECONCILE_TIMEOUT_SECONDS = 600
MIN_RECONCILE_TIMEOUT_SECONDS = 60
MAX_RECONCILE_TIMEOUT_SECONDS = 3600

# BLB API limit on load balancer names
MAX_LOAD_BALANCER_NAME_LENGTH = 65

# Service manifests read by the CLI
MAX_MANIFEST_FILE_SIZE_BYTES = 1024 * 1024  # 1 MiB

# CCE cluster ids, e.g. "c-1" or "cce-8gp5ehf9"
VALID_CLUSTER_ID_PATTERN = r"^[a-z][a-z0-9-]{0,62}$"


@dataclass(frozen=True)
class ReconcilerConfig:
    """Reconciler configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-pass.
    """

    cluster_id: str

    stabilization: RetryPolicy = field(
        default_factory=lambda: RetryPolicy(DEFAULT_WAIT_ATTEMPTS, DEFAULT_WAIT_INTERVAL_SECONDS)
    )
    read_after_write: RetryPolicy = field(
        default_factory=lambda: RetryPolicy(
            DEFAULT_DESCRIBE_ATTEMPTS, DEFAULT_DESCRIBE_INTERVAL_SECONDS
        )
    )
    subnet_creation: RetryPolicy = field(
        default_factory=lambda: RetryPolicy(
            DEFAULT_SUBNET_CREATE_ATTEMPTS, DEFAULT_SUBNET_CREATE_INTERVAL_SECONDS
        )
    )

    reconcile_timeout_seconds: int = DEFAULT_RECONCILE_TIMEOUT_SECONDS
    max_name_length: int = MAX_LOAD_BALANCER_NAME_LENGTH

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.cluster_id:
            errors.append("CLUSTER_ID is required")
        elif not re.match(VALID_CLUSTER_ID_PATTERN, self.cluster_id):
            errors.append(
                f"CLUSTER_ID must match pattern {VALID_CLUSTER_ID_PATTERN}: {self.cluster_id}"
            )

        if not (
            MIN_RECONCILE_TIMEOUT_SECONDS
            <= self.reconcile_timeout_seconds
            <= MAX_RECONCILE_TIMEOUT_SECONDS
        ):
            errors.append(
                f"RECONCILE_TIMEOUT must be between {MIN_RECONCILE_TIMEOUT_SECONDS} "
                f"and {MAX_RECONCILE_TIMEOUT_SECONDS} seconds"
            )

        if not 1 <= self.max_name_length <= MAX_LOAD_BALANCER_NAME_LENGTH:
            errors.append(
                f"max_name_length must be between 1 and {MAX_LOAD_BALANCER_NAME_LENGTH}"
            )

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> ReconcilerConfig:
        """Load configuration from environment variables.

        Environment Variables:
            CLUSTER_ID: The CCE cluster whose Services are reconciled
            BLB_WAIT_ATTEMPTS: Polls until a BLB is available (default: 10)
            BLB_WAIT_INTERVAL: Seconds before each poll (default: 10)
            BLB_DESCRIBE_ATTEMPTS: Retries until a created BLB is visible (default: 10)
            BLB_DESCRIBE_INTERVAL: Seconds before each retry (default: 10)
            SUBNET_CREATE_ATTEMPTS: Reserved subnet candidates to try (default: 10)
            SUBNET_CREATE_INTERVAL: Seconds between candidates (default: 3)
            RECONCILE_TIMEOUT: Deadline for one pass in seconds (default: 600)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_policy(attempts_key: str, attempts: int, delay_key: str, delay: int) -> RetryPolicy:
            try:
                return RetryPolicy(get_int(attempts_key, attempts), get_int(delay_key, delay))
            except ValueError as e:
                raise ConfigurationError(f"{attempts_key}/{delay_key}: {e}") from e

        return cls(
            cluster_id=os.environ.get("CLUSTER_ID", ""),
            stabilization=get_policy(
                "BLB_WAIT_ATTEMPTS",
                DEFAULT_WAIT_ATTEMPTS,
                "BLB_WAIT_INTERVAL",
                DEFAULT_WAIT_INTERVAL_SECONDS,
            ),
            read_after_write=get_policy(
                "BLB_DESCRIBE_ATTEMPTS",
                DEFAULT_DESCRIBE_ATTEMPTS,
                "BLB_DESCRIBE_INTERVAL",
                DEFAULT_DESCRIBE_INTERVAL_SECONDS,
            ),
            subnet_creation=get_policy(
                "SUBNET_CREATE_ATTEMPTS",
                DEFAULT_SUBNET_CREATE_ATTEMPTS,
                "SUBNET_CREATE_INTERVAL",
                DEFAULT_SUBNET_CREATE_INTERVAL_SECONDS,
            ),
            reconcile_timeout_seconds=get_int(
                "RECONCILE_TIMEOUT", DEFAULT_RECONCILE_TIMEOUT_SECONDS
            ),
        )
