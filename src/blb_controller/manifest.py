"""Service manifest loading with validation.

SECURITY: File reads enforce a size limit and YAML is parsed with
safe_load only. Input validation is performed at the boundary.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import MAX_MANIFEST_FILE_SIZE_BYTES
from .models import ListenerProtocol, ServiceDeclaration, ServicePort

logger = logging.getLogger(__name__)


class ManifestLoadError(Exception):
    """Raised when manifest loading or validation fails."""

    pass


# Unknown Kubernetes fields (selector, targetPort, status...) are ignored
_MANIFEST_CONFIG = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)


class ServicePortSpec(BaseModel):
    model_config = _MANIFEST_CONFIG

    name: str = ""
    protocol: ListenerProtocol = ListenerProtocol.TCP
    port: int = Field(ge=1, le=65535)
    node_port: int = Field(default=0, alias="nodePort", ge=0, le=65535)


class ServiceSpec(BaseModel):
    model_config = _MANIFEST_CONFIG

    type: Literal["LoadBalancer"] = "LoadBalancer"
    ports: list[ServicePortSpec] = Field(default_factory=list)


class ObjectMeta(BaseModel):
    model_config = _MANIFEST_CONFIG

    name: str = Field(min_length=1, max_length=253)
    namespace: str = Field(default="default", min_length=1, max_length=63)
    annotations: dict[str, str] = Field(default_factory=dict)


class ServiceManifest(BaseModel):
    """A Kubernetes Service of type LoadBalancer."""

    model_config = _MANIFEST_CONFIG

    api_version: Literal["v1"] = Field(default="v1", alias="apiVersion")
    kind: Literal["Service"]
    metadata: ObjectMeta
    spec: ServiceSpec = Field(default_factory=ServiceSpec)

    def to_declaration(self) -> ServiceDeclaration:
        return ServiceDeclaration(
            namespace=self.metadata.namespace,
            name=self.metadata.name,
            annotations=self.metadata.annotations,
            ports=tuple(
                ServicePort(
                    port=p.port,
                    node_port=p.node_port,
                    protocol=p.protocol,
                    name=p.name,
                )
                for p in self.spec.ports
            ),
        )


def load_service_manifest(path: Path) -> ServiceDeclaration:
    """Load and validate a Service manifest from YAML.

    Args:
        path: Path to a single-document YAML manifest.

    Returns:
        The Service declaration described by the manifest.

    Raises:
        ManifestLoadError: If the manifest cannot be loaded or fails validation.
    """
    if not path.exists():
        raise ManifestLoadError(f"Manifest file not found: {path}")

    # SECURITY: Check file size before reading to prevent DoS
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise ManifestLoadError(f"Failed to stat manifest file {path}: {e}") from e

    if file_size > MAX_MANIFEST_FILE_SIZE_BYTES:
        raise ManifestLoadError(
            f"Manifest file exceeds maximum size of {MAX_MANIFEST_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ManifestLoadError(f"Failed to read manifest file {path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ManifestLoadError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise ManifestLoadError(f"Manifest file must contain a YAML mapping: {path}")

    try:
        manifest = ServiceManifest.model_validate(raw_data)
    except ValidationError as e:
        # Format Pydantic validation errors for readability
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            errors.append(f"  - {loc}: {msg}")

        error_list = "\n".join(errors)
        raise ManifestLoadError(f"Validation failed for {path}:\n{error_list}") from e

    service = manifest.to_declaration()
    logger.info(
        "Loaded service manifest",
        extra={"service": service.qualified_name, "path": str(path)},
    )
    return service
