"""Tests for configuration loading."""

from datetime import timedelta

import pytest
import yaml

from service_ca_controller.config import (
    CertificateNaming,
    ControllerConfig,
    LogLevel,
    load_config,
)
from service_ca_controller.exceptions import ConfigurationError


class TestDefaults:
    """Default configuration values."""

    def test_resource_names(self):
        config = ControllerConfig()
        assert config.trust_namespace == "cert-manager"
        assert config.names.self_signed_issuer == "service-ca-self-signed"
        assert config.names.ca_certificate == "service-ca-certificate"
        assert config.names.ca_secret == "service-ca-root"
        assert config.names.cluster_issuer == "service-ca-issuer"
        assert config.issuance_crd == "certificates.cert-manager.io"

    def test_certificate_policy(self):
        policy = ControllerConfig().certificate
        assert policy.naming == CertificateNaming.NAMESPACED
        assert policy.duration == timedelta(hours=2160)
        assert policy.renew_before == timedelta(hours=360)
        assert policy.duration_string == "2160h0m0s"
        assert policy.renew_before_string == "360h0m0s"
        assert policy.ca_bundle_key == "ca.crt"

    def test_label_keys(self):
        labels = ControllerConfig().labels
        assert labels.serving_cert_secret_name == "service.syn.tools/serving-cert-secret-name"
        assert labels.inject_ca_bundle == "service.syn.tools/inject-ca-bundle"


class TestValidation:
    """Invalid values are rejected."""

    def test_go_duration_strings(self):
        config = ControllerConfig(certificate={"duration": "720h", "renew_before": "24h"})
        assert config.certificate.duration == timedelta(hours=720)
        assert config.certificate.renew_before == timedelta(hours=24)

    def test_renew_before_must_be_shorter_than_duration(self):
        with pytest.raises(ValueError):
            ControllerConfig(certificate={"duration": "24h", "renew_before": "48h"})

    def test_sub_second_windows_are_rejected(self):
        with pytest.raises(ValueError, match="whole number of seconds"):
            ControllerConfig(certificate={"duration": "90m", "renew_before": "500ms"})
        with pytest.raises(ValueError, match="whole number of seconds"):
            ControllerConfig(certificate={"duration": "90m1.5s", "renew_before": "1m"})

    def test_empty_trust_namespace(self):
        with pytest.raises(ValueError):
            ControllerConfig(trust_namespace="")

    def test_log_level_is_case_insensitive(self):
        config = ControllerConfig(observability={"log_level": "debug"})
        assert config.observability.log_level == LogLevel.DEBUG

    def test_unknown_log_format(self):
        with pytest.raises(ValueError):
            ControllerConfig(observability={"log_format": "xml"})


class TestLoading:
    """YAML files, environment and overrides."""

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "trust_namespace": "pki",
                    "certificate": {"naming": "name", "duration": "100h", "renew_before": "10h"},
                }
            )
        )
        config = ControllerConfig.from_yaml(path)
        assert config.trust_namespace == "pki"
        assert config.certificate.naming == CertificateNaming.NAME
        assert config.certificate.duration == timedelta(hours=100)

    def test_overrides_are_merged_into_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"observability": {"log_format": "console", "metrics_port": 9000}}))
        config = load_config(path, trust_namespace="pki", observability={"log_level": "WARNING"})
        assert config.trust_namespace == "pki"
        assert config.observability.log_format == "console"
        assert config.observability.metrics_port == 9000
        assert config.observability.log_level == LogLevel.WARNING

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ControllerConfig.from_yaml(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("trust_namespace: [unclosed")
        with pytest.raises(ConfigurationError):
            ControllerConfig.from_yaml(path)

    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            ControllerConfig.from_yaml(path)

    def test_validation_error_becomes_configuration_error(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"certificate": {"duration": "1h", "renew_before": "2h"}}))
        with pytest.raises(ConfigurationError):
            ControllerConfig.from_yaml(path)

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("SERVICE_CA_TRUST_NAMESPACE", "from-env")
        monkeypatch.setenv("SERVICE_CA_MANAGER__WORKERS", "7")
        config = load_config()
        assert config.trust_namespace == "from-env"
        assert config.manager.workers == 7

    def test_none_overrides_are_ignored(self):
        config = load_config(trust_namespace=None)
        assert config.trust_namespace == "cert-manager"

    def test_to_yaml_renders_go_durations(self):
        rendered = yaml.safe_load(ControllerConfig().to_yaml())
        assert rendered["certificate"]["duration"] == "2160h0m0s"
        assert rendered["certificate"]["renew_before"] == "360h0m0s"
        assert rendered["trust_namespace"] == "cert-manager"
