"""
Service CA controller.

Provisions serving certificates for Kubernetes Services and injects the
service CA bundle into ConfigMaps, using cert-manager as the issuance
backend.
"""

__version__ = "0.1.0"

from .config import ControllerConfig, load_config
from .controllers import ConfigMapReconciler, ControllerManager, ServiceReconciler
from .exceptions import (
    CertificateDataError,
    ConfigurationError,
    ObjectAlreadyExistsError,
    ObjectConflictError,
    ObjectNotFoundError,
    PreconditionError,
    ServiceCAError,
    StoreError,
)
from .models import ReconcileRequest, ReconcileResult

__all__ = [
    "CertificateDataError",
    "ConfigMapReconciler",
    "ConfigurationError",
    "ControllerConfig",
    "ControllerManager",
    "ObjectAlreadyExistsError",
    "ObjectConflictError",
    "ObjectNotFoundError",
    "PreconditionError",
    "ReconcileRequest",
    "ReconcileResult",
    "ServiceCAError",
    "ServiceReconciler",
    "StoreError",
    "load_config",
]
