"""
Configuration management for the service CA controller.

This module provides a single configuration object that supports:
- YAML configuration files
- Environment variable overrides (``SERVICE_CA_`` prefix, ``__`` nesting)
- Runtime overrides from the command line

Every resource name and label key the controller uses lives here, so two
trust domains can run side by side with different settings.
"""

from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..durations import format_duration, parse_duration
from ..exceptions import ConfigurationError

ENV_PREFIX = "SERVICE_CA_"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CertificateNaming(str, Enum):
    """How per-service certificate names are derived."""

    # <service>.<namespace>-tls, unique across namespaces
    NAMESPACED = "namespaced"
    # <service>-tls, collides for equal names in different namespaces
    NAME = "name"


class ResourceNames(BaseModel):
    """Fixed names of the trust anchor objects."""

    self_signed_issuer: str = Field(default="service-ca-self-signed")
    ca_certificate: str = Field(default="service-ca-certificate")
    ca_common_name: str = Field(default="service-ca")
    ca_secret: str = Field(
        default="service-ca-root",
        description="Backing secret of the root CA; must never change once issued",
    )
    cluster_issuer: str = Field(default="service-ca-issuer")


class LabelKeys(BaseModel):
    """Label and annotation keys read or written by the controller."""

    serving_cert_secret_name: str = Field(
        default="service.syn.tools/serving-cert-secret-name",
        description="Service label naming the secret to provision",
    )
    inject_ca_bundle: str = Field(
        default="service.syn.tools/inject-ca-bundle",
        description="ConfigMap opt-in label for CA bundle injection",
    )
    certificate: str = Field(
        default="service.syn.tools/certificate",
        description="Label linking certificates and secrets to their intent",
    )
    owner_annotation: str = Field(
        default="service.syn.tools/owner",
        description="Annotation holding <namespace>/<name> of the owning service",
    )


class CertificatePolicy(BaseModel):
    """Settings applied to every per-service certificate."""

    naming: CertificateNaming = Field(default=CertificateNaming.NAMESPACED)
    duration: timedelta = Field(default=timedelta(hours=2160))
    renew_before: timedelta = Field(default=timedelta(hours=360))
    key_algorithm: str = Field(default="ECDSA", description="Root CA key algorithm")
    key_size: int = Field(default=521, description="Root CA key size")
    ca_bundle_key: str = Field(default="ca.crt", description="ConfigMap key for the CA bundle")
    requeue_after: float = Field(
        default=5.0, gt=0, description="Seconds to wait before polling issuance again"
    )

    @field_validator("duration", "renew_before", mode="before")
    @classmethod
    def _parse_go_duration(cls, value: Any) -> Any:
        # Accept cert-manager style strings ("2160h") next to pydantic's formats
        if isinstance(value, str):
            try:
                return parse_duration(value)
            except ValueError:
                return value
        return value

    @model_validator(mode="after")
    def _check_windows(self) -> "CertificatePolicy":
        if self.duration <= timedelta(0):
            raise ValueError("certificate duration must be positive")
        if not timedelta(0) < self.renew_before < self.duration:
            raise ValueError("renew_before must be positive and shorter than duration")
        for field, value in (("duration", self.duration), ("renew_before", self.renew_before)):
            if value % timedelta(seconds=1):
                raise ValueError(f"{field} must be a whole number of seconds")
        return self

    @property
    def duration_string(self) -> str:
        return format_duration(self.duration)

    @property
    def renew_before_string(self) -> str:
        return format_duration(self.renew_before)


class ManagerConfig(BaseModel):
    """Watch and work queue settings."""

    workers: int = Field(default=4, ge=1, description="Concurrent reconcile workers")
    base_backoff: float = Field(default=1.0, gt=0, description="First retry delay after an error")
    max_backoff: float = Field(default=300.0, gt=0, description="Upper bound of the retry delay")
    watch_restart_delay: float = Field(default=5.0, ge=0)
    kubeconfig: str | None = Field(default=None, description="Path to a kubeconfig file")


class ObservabilityConfig(BaseModel):
    """Logging and metrics configuration."""

    service_name: str = Field(default="service-ca-controller")
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: str = Field(default="json", description="Log format (json|console)")
    metrics_enabled: bool = Field(default=True, description="Expose Prometheus metrics")
    metrics_port: int = Field(default=8080, description="Metrics server port")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.upper()
        return value

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, value: str) -> str:
        if value not in ("json", "console"):
            raise ValueError(f"Invalid log format '{value}'. Choose json or console.")
        return value


class ControllerConfig(BaseSettings):
    """Main controller configuration class."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX, env_nested_delimiter="__", case_sensitive=False
    )

    trust_namespace: str = Field(
        default="cert-manager",
        description="Namespace holding the CA and all per-service certificates",
    )
    cluster_domain: str = Field(default="cluster.local")
    issuance_crd: str = Field(
        default="certificates.cert-manager.io",
        description="CRD whose presence proves the issuance backend is installed",
    )

    names: ResourceNames = Field(default_factory=ResourceNames)
    labels: LabelKeys = Field(default_factory=LabelKeys)
    certificate: CertificatePolicy = Field(default_factory=CertificatePolicy)
    manager: ManagerConfig = Field(default_factory=ManagerConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    @field_validator("trust_namespace")
    @classmethod
    def _validate_namespace(cls, value: str) -> str:
        if not value:
            raise ValueError("trust namespace cannot be empty")
        return value

    @classmethod
    def from_yaml(cls, file_path: str | Path, **overrides: Any) -> "ControllerConfig":
        """Load configuration from a YAML file, environment still applies."""
        try:
            with open(file_path) as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {file_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML configuration: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {file_path}")

        data = _merge(data, overrides)
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}")

    @classmethod
    def from_env(cls, **overrides: Any) -> "ControllerConfig":
        """Load configuration from environment variables."""
        try:
            return cls(**overrides)
        except ValidationError as e:
            raise ConfigurationError(f"Environment configuration validation failed: {e}")

    def to_dict(self) -> dict[str, Any]:
        """Plain representation with durations rendered as Go strings."""
        data = self.model_dump(mode="json")
        data["certificate"]["duration"] = self.certificate.duration_string
        data["certificate"]["renew_before"] = self.certificate.renew_before_string
        return data

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)


def _merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    yaml_file: str | Path | None = None,
    **overrides: Any,
) -> ControllerConfig:
    """
    Load configuration.

    Priority order:
    1. Explicit overrides (command line)
    2. YAML file (if provided)
    3. Environment variables
    4. Defaults
    """
    overrides = {key: value for key, value in overrides.items() if value is not None}
    if yaml_file:
        return ControllerConfig.from_yaml(yaml_file, **overrides)
    return ControllerConfig.from_env(**overrides)
