"""Reconcilers and the manager driving them."""

from .configmap import ConfigMapReconciler, inject_if_requested, parse_inject_label
from .manager import ControllerManager
from .service import ServiceReconciler

__all__ = [
    "ConfigMapReconciler",
    "ControllerManager",
    "ServiceReconciler",
    "inject_if_requested",
    "parse_inject_label",
]
