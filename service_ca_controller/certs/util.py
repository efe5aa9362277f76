"""Naming conventions shared by the certificate components."""

from ..config import CertificateNaming, ControllerConfig


def certificate_name(config: ControllerConfig, service_name: str, service_namespace: str) -> str:
    """
    Derive the Certificate name for a service.

    With the default ``namespaced`` policy the result is
    ``<service>.<namespace>-tls``. Service and namespace names are DNS labels
    and never contain dots, so two different services always map to two
    different certificates in the shared trust namespace.
    """
    if config.certificate.naming == CertificateNaming.NAME:
        return f"{service_name}-tls"
    return f"{service_name}.{service_namespace}-tls"


def service_dns_names(config: ControllerConfig, service_name: str, service_namespace: str) -> list[str]:
    """The four names a service is reachable under inside the cluster."""
    qualified = f"{service_name}.{service_namespace}"
    return [
        service_name,
        qualified,
        f"{qualified}.svc",
        f"{qualified}.svc.{config.cluster_domain}",
    ]


def owner_annotation_value(service_namespace: str, service_name: str) -> str:
    return f"{service_namespace}/{service_name}"


def parse_owner_annotation(value: str | None) -> tuple[str, str] | None:
    """Split ``<namespace>/<name>``; None when absent or malformed."""
    if not value or value.count("/") != 1:
        return None
    namespace, name = value.split("/")
    if not namespace or not name:
        return None
    return namespace, name
