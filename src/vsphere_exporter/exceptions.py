"""
vSphere Exporter Exceptions

Custom exception classes for vSphere exporter operations.

Author: uldyssian-sh
License: MIT
"""


class VSphereExporterError(Exception):
    """Base exception for vSphere exporter"""
    pass


class VCenterConnectionError(VSphereExporterError):
    """Raised when the vCenter session cannot be established"""
    pass


class InventoryError(VSphereExporterError):
    """Raised when an inventory listing or retrieval fails"""
    pass


class InventoryTimeoutError(InventoryError):
    """Raised when an inventory call exceeds its deadline"""
    pass


class PropertyRetrievalError(InventoryError):
    """Raised when bulk property retrieval fails"""
    pass


class MetricDefinitionError(VSphereExporterError):
    """Raised when a metric definition is misused"""
    pass


class ConfigurationError(VSphereExporterError):
    """Raised when configuration is invalid"""
    pass
