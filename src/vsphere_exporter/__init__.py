"""
vSphere Exporter

Prometheus exporter polling VMware vCenter for ESXi host and datastore
metrics, walking the datacenter and cluster hierarchy concurrently.

Author: uldyssian-sh
License: MIT
Version: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "uldyssian-sh"
__license__ = "MIT"
__description__ = "vSphere Exporter - Prometheus metrics for ESXi hosts and datastores"

from .exceptions import (
    VSphereExporterError,
    VCenterConnectionError,
    InventoryError,
    InventoryTimeoutError,
    PropertyRetrievalError,
    MetricDefinitionError,
    ConfigurationError
)
from .registry import MetricDefinition, MetricRegistry, ObjectKind, Sample, build_registry


def get_version():
    """Get the current version of vSphere Exporter."""
    return __version__


def get_info():
    """Get information about vSphere Exporter."""
    return {
        "name": "vSphere Exporter",
        "version": __version__,
        "author": __author__,
        "license": __license__,
        "description": __description__
    }


__all__ = [
    # Metadata
    "__version__",
    "__author__",
    "__license__",
    "__description__",

    # Core functions
    "get_version",
    "get_info",

    # Registry
    "MetricDefinition",
    "MetricRegistry",
    "ObjectKind",
    "Sample",
    "build_registry",

    # Exceptions
    "VSphereExporterError",
    "VCenterConnectionError",
    "InventoryError",
    "InventoryTimeoutError",
    "PropertyRetrievalError",
    "MetricDefinitionError",
    "ConfigurationError"
]
