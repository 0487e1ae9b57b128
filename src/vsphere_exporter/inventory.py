"""
vCenter Inventory Client

Thin pyVmomi session wrapper used by the property fetcher and the hierarchy
walker. All calls are blocking; callers run them off the event loop.

Author: uldyssian-sh
License: MIT
"""

import ssl
from dataclasses import dataclass
from typing import Any, List
from urllib.parse import urlparse

import structlog
from pyVmomi import vim
from pyVim.connect import SmartConnect, Disconnect

from .exceptions import VCenterConnectionError
from .registry import ObjectKind

logger = structlog.get_logger(__name__)


@dataclass
class VCenterConfig:
    """vCenter connection configuration"""
    host: str
    username: str
    password: str
    port: int = 443
    ssl_verify: bool = True

    @classmethod
    def from_url(cls, url: str, username: str, password: str,
                 insecure: bool = False) -> "VCenterConfig":
        """Accepts host, host:port or https://host[:port]/sdk"""
        parsed = urlparse(url if "://" in url else f"https://{url}")
        return cls(
            host=parsed.hostname or url,
            username=username,
            password=password,
            port=parsed.port or 443,
            ssl_verify=not insecure,
        )


@dataclass(frozen=True)
class InventoryNode:
    """A named container in the inventory hierarchy (datacenter, cluster)"""
    name: str
    ref: Any


class VCenterClient:
    """VMware vCenter inventory client"""

    def __init__(self, config: VCenterConfig):
        self.config = config
        self.service_instance = None
        self.content = None
        self._connected = False

    def connect(self) -> None:
        """Connect to vCenter"""
        ssl_context = None
        if not self.config.ssl_verify:
            ssl_context = ssl.create_default_context()
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE

        try:
            self.service_instance = SmartConnect(
                host=self.config.host,
                user=self.config.username,
                pwd=self.config.password,
                port=self.config.port,
                sslContext=ssl_context
            )
        except Exception as e:
            logger.error("vCenter connection failed", host=self.config.host, error=str(e))
            raise VCenterConnectionError(f"Connection failed: {e}") from e

        if not self.service_instance:
            raise VCenterConnectionError(f"Failed to connect to vCenter {self.config.host}")

        self.content = self.service_instance.RetrieveContent()
        self._connected = True

        logger.info("Connected to vCenter", host=self.config.host)

    def disconnect(self) -> None:
        """Disconnect from vCenter"""
        if self.service_instance:
            try:
                Disconnect(self.service_instance)
                logger.info("Disconnected from vCenter")
            except Exception as e:
                logger.error("Disconnect error", error=str(e))
            finally:
                self._connected = False

    def is_connected(self) -> bool:
        return self._connected and self.service_instance is not None

    def _require_content(self) -> Any:
        if not self.content:
            raise VCenterConnectionError("Not connected to vCenter")
        return self.content

    def _view(self, container: Any, vimtype: Any) -> List[Any]:
        content = self._require_content()
        view = content.viewManager.CreateContainerView(container, [vimtype], True)
        try:
            return list(view.view)
        finally:
            view.Destroy()

    def list_datacenters(self) -> List[InventoryNode]:
        content = self._require_content()
        return [InventoryNode(name=dc.name, ref=dc)
                for dc in self._view(content.rootFolder, vim.Datacenter)]

    def list_clusters(self, datacenter: Any) -> List[InventoryNode]:
        return [InventoryNode(name=cluster.name, ref=cluster)
                for cluster in self._view(datacenter.hostFolder, vim.ClusterComputeResource)]

    def list_hosts(self, cluster: Any) -> List[Any]:
        return list(cluster.host or [])

    def list_datastores(self, datacenter: Any) -> List[Any]:
        return list(datacenter.datastore or [])

    def list_inventory(self, kind: ObjectKind) -> List[Any]:
        """Every object of a kind under the root folder"""
        content = self._require_content()
        return self._view(content.rootFolder, getattr(vim, kind.value))

    @property
    def property_collector(self) -> Any:
        return self._require_content().propertyCollector

    @property
    def root_folder(self) -> Any:
        return self._require_content().rootFolder

    @property
    def view_manager(self) -> Any:
        return self._require_content().viewManager
