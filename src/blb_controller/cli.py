"""BLB controller CLI (blbctl).

Offline tooling for Service authors and operators. Nothing here calls the
cloud.

Usage:
    blbctl annotations validate svc.yaml --cluster-id c-1
    blbctl annotations keys
    blbctl subnet next 192.168.0.0/20 --count 3
    blbctl config show
    blbctl dev test --coverage
"""

from __future__ import annotations

import dataclasses
import ipaddress
import json
import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Any

import click

from .annotations import (
    ANNOTATION_ALLOCATE_VIP,
    ANNOTATION_CCE_ADD_LOAD_BALANCER_ID,
    ANNOTATION_ELASTIC_IP_BANDWIDTH,
    ANNOTATION_ELASTIC_IP_BILLING_METHOD,
    ANNOTATION_ELASTIC_IP_NAME,
    ANNOTATION_ELASTIC_IP_PAYMENT_TIMING,
    ANNOTATION_ELASTIC_IP_RESERVATION_LENGTH,
    ANNOTATION_HEALTH_CHECK_INTERVAL,
    ANNOTATION_HEALTH_CHECK_STRING,
    ANNOTATION_HEALTH_CHECK_TIMEOUT,
    ANNOTATION_HEALTHY_THRESHOLD,
    ANNOTATION_INTERNAL_VPC,
    ANNOTATION_LOAD_BALANCER_EXIST_ID,
    ANNOTATION_SCHEDULER,
    ANNOTATION_UNHEALTHY_THRESHOLD,
)
from .config import MAX_LOAD_BALANCER_NAME_LENGTH, ConfigurationError, ReconcilerConfig
from .errors import InvalidServiceDeclaration
from .logging_config import setup_logging
from .manifest import ManifestLoadError, load_service_manifest
from .models import DesiredState, load_balancer_name
from .subnet import next_subnet

# CLI constants with documented bounds
MAX_SUBNET_COUNT = 256

# Directory constants
TESTS_DIR = "tests/"
COVERAGE_TARGET = "src/blb_controller"

# Timeout constants (seconds)
COMMAND_TIMEOUT_SECONDS = 300

SUPPORTED_ANNOTATIONS: tuple[tuple[str, str], ...] = (
    (ANNOTATION_CCE_ADD_LOAD_BALANCER_ID, "BLB bound by the controller (do not set by hand)"),
    (ANNOTATION_LOAD_BALANCER_EXIST_ID, "Pre-existing BLB to adopt"),
    (ANNOTATION_INTERNAL_VPC, "true to keep the BLB VPC-internal"),
    (ANNOTATION_ALLOCATE_VIP, "true to allocate a VIP on creation"),
    (ANNOTATION_SCHEDULER, "RoundRobin | LeastConnection | Hash"),
    (ANNOTATION_HEALTH_CHECK_TIMEOUT, "Health check timeout, 1..60 seconds"),
    (ANNOTATION_HEALTH_CHECK_INTERVAL, "Health check interval, 1..10 seconds"),
    (ANNOTATION_UNHEALTHY_THRESHOLD, "Failed checks before unhealthy, 2..5"),
    (ANNOTATION_HEALTHY_THRESHOLD, "Passed checks before healthy, 2..5"),
    (ANNOTATION_HEALTH_CHECK_STRING, "UDP health check payload"),
    (ANNOTATION_ELASTIC_IP_NAME, "EIP name"),
    (ANNOTATION_ELASTIC_IP_PAYMENT_TIMING, "EIP payment timing"),
    (ANNOTATION_ELASTIC_IP_BILLING_METHOD, "EIP billing method"),
    (ANNOTATION_ELASTIC_IP_BANDWIDTH, "EIP bandwidth in Mbps, >= 1"),
    (ANNOTATION_ELASTIC_IP_RESERVATION_LENGTH, "EIP reservation length, >= 1"),
)


def desired_state_to_dict(desired: DesiredState) -> dict[str, Any]:
    """Render a DesiredState as JSON-compatible data."""
    return {
        "existing_load_balancer_id": desired.existing_load_balancer_id,
        "auto_managed_load_balancer_id": desired.auto_managed_load_balancer_id,
        "allocate_vip": desired.allocate_vip,
        "internal_vpc": desired.internal_vpc,
        "listeners": [dataclasses.asdict(listener) for listener in desired.listeners],
        "health_check": desired.health_check.model_dump(mode="json"),
        "elastic_ip": desired.elastic_ip.model_dump(mode="json"),
    }


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    current = Path(__file__).resolve()
    for parent in [current, *current.parents]:
        if (parent / "pyproject.toml").exists():
            return parent
    return Path.cwd()


def run_command(
    cmd: list[str],
    *,
    cwd: Path | None = None,
    timeout: int = COMMAND_TIMEOUT_SECONDS,
) -> subprocess.CompletedProcess[str]:
    """Run a command, streaming its output.

    Raises:
        click.ClickException: If the command fails, times out or is missing.
    """
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd or get_project_root(),
            env=os.environ.copy(),
            timeout=timeout,
            text=True,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise click.ClickException(f"Command timed out after {timeout}s: {' '.join(cmd)}") from e
    except FileNotFoundError as e:
        raise click.ClickException(f"Command not found: {cmd[0]}") from e
    if result.returncode != 0:
        raise click.ClickException(f"Command failed with exit code {result.returncode}")
    return result


def build_test_command(coverage: bool, verbose: bool, filter_expr: str | None) -> list[str]:
    """Build the pytest invocation; coverage is always measured."""
    cmd = [sys.executable, "-m", "pytest", TESTS_DIR, f"--cov={COVERAGE_TARGET}"]
    cmd.append("--cov-report=term-missing")
    if coverage:
        cmd.append("--cov-report=html")
    if verbose:
        cmd.append("-v")
    if filter_expr:
        cmd.extend(["-k", filter_expr])
    return cmd



# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="blbctl")
@click.option("--verbose", "-v", is_flag=True, help="Emit JSON logs on stdout")
def cli(verbose: bool) -> None:
    """BLB controller CLI (blbctl).

    \b
    Quick Start:
        blbctl annotations keys                 # List supported annotations
        blbctl annotations validate svc.yaml    # Check a Service manifest
        blbctl subnet next 10.0.0.0/24          # Next reserved subnet candidate
    """
    if verbose:
        setup_logging(logging.DEBUG)


# =============================================================================
# Annotation Commands
# =============================================================================


@cli.group()
def annotations() -> None:
    """Service annotation commands: keys, validate."""
    pass


@annotations.command("keys")
def annotations_keys() -> None:
    """List the annotations the controller understands."""
    for key, description in SUPPORTED_ANNOTATIONS:
        click.echo(f"{key}\n    {description}")


@annotations.command("validate")
@click.argument("manifest", type=click.Path(path_type=Path, dir_okay=False))
@click.option(
    "--cluster-id",
    "-c",
    envvar="CLUSTER_ID",
    default="",
    help="Cluster id used to derive the BLB name",
)
def annotations_validate(manifest: Path, cluster_id: str) -> None:
    """Validate a Service manifest and print its desired BLB state."""
    try:
        service = load_service_manifest(manifest)
        desired = DesiredState.from_service(service)
    except (ManifestLoadError, InvalidServiceDeclaration) as e:
        raise click.ClickException(str(e)) from e

    output: dict[str, Any] = {"service": service.qualified_name}
    if cluster_id:
        output["load_balancer_name"] = load_balancer_name(
            cluster_id, service, MAX_LOAD_BALANCER_NAME_LENGTH
        )
    output["desired_state"] = desired_state_to_dict(desired)
    echo_json(output)


# =============================================================================
# Subnet Commands
# =============================================================================


@cli.group()
def subnet() -> None:
    """Reserved subnet commands: next."""
    pass


@subnet.command("next")
@click.argument("cidr")
@click.option(
    "--count",
    "-n",
    type=click.IntRange(1, MAX_SUBNET_COUNT),
    default=1,
    show_default=True,
    help="Number of successive candidates to print",
)
def subnet_next(cidr: str, count: int) -> None:
    """Print the blocks tried after CIDR when synthesizing a reserved subnet."""
    try:
        network = ipaddress.ip_network(cidr, strict=False)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="CIDR") from e

    for _ in range(count):
        candidate = next_subnet(network)
        if candidate is None:
            raise click.ClickException(f"Address space exhausted after {network}")
        click.echo(str(candidate))
        network = candidate


# =============================================================================
# Config Commands
# =============================================================================


@cli.group()
def config() -> None:
    """Reconciler configuration commands: show."""
    pass


@config.command("show")
def config_show() -> None:
    """Load configuration from the environment and print it."""
    try:
        reconciler_config = ReconcilerConfig.from_env()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    echo_json(dataclasses.asdict(reconciler_config))


# =============================================================================
# Development Commands
# =============================================================================


@cli.group()
def dev() -> None:
    """Development commands: test."""
    pass


@dev.command()
@click.option("--coverage", "-c", is_flag=True, help="Also write an HTML coverage report")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option("--filter", "-k", "filter_expr", help="Run tests matching expression")
def test(coverage: bool, verbose: bool, filter_expr: str | None) -> None:
    """Run tests with pytest and coverage."""
    run_command(build_test_command(coverage, verbose, filter_expr))
    if coverage:
        click.echo("\nCoverage report: htmlcov/index.html")


# =============================================================================
# Entry Point
# =============================================================================



def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
