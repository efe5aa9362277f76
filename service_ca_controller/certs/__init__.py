"""
Certificate lifecycle components.

- ``ca``: trust anchor bootstrap and root CA lookup
- ``create``: per-service Certificate intents
- ``watch``: issuance readiness and secret lookup
- ``propagate``: copying key material into the service namespace
- ``delete``: teardown for deleted services
"""

from .ca import TrustAnchorBootstrapper, decode_ca_certificate
from .create import CertificateIntentSynchronizer, service_cluster_ips
from .delete import TeardownHandler
from .propagate import SecretPropagator, build_secret_copy, set_owning_service
from .util import certificate_name, service_dns_names
from .watch import ReadinessPoller, is_certificate_ready

__all__ = [
    "CertificateIntentSynchronizer",
    "ReadinessPoller",
    "SecretPropagator",
    "TeardownHandler",
    "TrustAnchorBootstrapper",
    "build_secret_copy",
    "certificate_name",
    "decode_ca_certificate",
    "is_certificate_ready",
    "service_cluster_ips",
    "service_dns_names",
    "set_owning_service",
]
