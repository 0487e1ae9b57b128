"""
vSphere Exporter - Main Entry Point

Command-line interface for running the vSphere Prometheus exporter.

Author: uldyssian-sh
License: MIT
"""

import argparse
import asyncio
import os
import sys
from typing import Any, Dict, List, Optional

import structlog

from . import __version__
from .collector import VSphereCollector
from .config import ExporterConfig, LOG_FORMATS, LOG_LEVELS, load_config
from .exceptions import ConfigurationError, VCenterConnectionError
from .inventory import VCenterClient, VCenterConfig
from .logging_config import setup_logging
from .registry import build_registry
from .server import ExporterServer
from .walker import HierarchyWalker, Strategy

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vsphere-exporter",
        description="Prometheus exporter for VMware vSphere hosts and datastores",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with environment variables
  VCENTER_URL=vcenter.example.com VCENTER_USERNAME=monitor python -m vsphere_exporter

  # Run with a config file
  python -m vsphere_exporter --config config.yaml

  # Label hosts and datastores with their datacenter and cluster
  python -m vsphere_exporter --hierarchy-labels
        """
    )

    parser.add_argument("--config", "-c", help="Configuration file path", default=None)
    parser.add_argument("--vcenter-url", dest="vcenter_url", help="URL of the vCenter")
    parser.add_argument("--username", help="Username to connect the vCenter")
    parser.add_argument("--password", help="Password to connect the vCenter")
    parser.add_argument(
        "--insecure", dest="insecure", action="store_true",
        help="Skip SSL certificate verification (default)"
    )
    parser.add_argument(
        "--secure", dest="insecure", action="store_false",
        help="Verify the vCenter SSL certificate"
    )
    parser.add_argument(
        "--web.listen-address", dest="listen_address",
        help="Address to listen on for web interface and telemetry (default :9102)"
    )
    parser.add_argument(
        "--web.telemetry-path", dest="metrics_path",
        help="Path under which to expose metrics (default /metrics)"
    )
    parser.add_argument(
        "--hierarchy-labels", dest="hierarchy_labels", action="store_true", default=None,
        help="Walk datacenters and clusters and add them as labels"
    )
    parser.add_argument(
        "--log-level", "-l", dest="log_level", choices=list(LOG_LEVELS),
        help="Logging level"
    )
    parser.add_argument(
        "--log-format", dest="log_format", choices=list(LOG_FORMATS),
        help="Render logs as JSON lines or aligned console text"
    )
    parser.add_argument(
        "--version", "-v", action="version",
        version=f"vsphere_exporter {__version__}"
    )
    parser.set_defaults(insecure=None)
    return parser


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    keys = ("vcenter_url", "username", "password", "insecure", "listen_address",
            "metrics_path", "hierarchy_labels", "log_level", "log_format")
    return {key: getattr(args, key) for key in keys}


def build_collector(config: ExporterConfig, client: VCenterClient) -> VSphereCollector:
    """Wire registry, walker and orchestrator for a connected client"""
    registry = build_registry(hierarchy_labels=config.hierarchy_labels)
    walker = HierarchyWalker(
        client,
        strategy=Strategy.for_labels(config.hierarchy_labels),
        call_timeout=config.call_timeout,
        max_workers=config.max_workers
    )
    return VSphereCollector(walker, registry, poll_timeout=config.poll_timeout)


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config, os.environ, overrides_from_args(args))
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.log_level, config.log_dir, json_logs=config.log_format == "json")
    logger.info("Starting vsphere_exporter", version=__version__)

    client = VCenterClient(VCenterConfig.from_url(
        config.vcenter_url, config.username, config.password, insecure=config.insecure
    ))
    try:
        client.connect()
    except VCenterConnectionError as e:
        logger.error("Unable to connect to the vCenter", error=str(e))
        sys.exit(1)

    collector = build_collector(config, client)
    server = ExporterServer(config, collector)

    try:
        asyncio.run(server.serve_forever())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    finally:
        collector.walker.close()
        client.disconnect()


if __name__ == "__main__":
    main()
