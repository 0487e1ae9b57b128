"""
Tests for the command-line entry point

Author: uldyssian-sh
License: MIT
"""

from unittest.mock import Mock, patch

import pytest

from vsphere_exporter.__main__ import build_collector, build_parser, main, overrides_from_args
from vsphere_exporter.config import ExporterConfig
from vsphere_exporter.exceptions import VCenterConnectionError
from vsphere_exporter.walker import Strategy


class TestParser:
    """Test argument parsing"""

    def test_no_flags(self):
        """Test unset flags do not override other sources"""
        args = build_parser().parse_args([])

        assert all(value is None for value in overrides_from_args(args).values())

    def test_flags(self):
        args = build_parser().parse_args([
            "--vcenter-url", "vcenter.example.com",
            "--username", "monitor",
            "--secure",
            "--web.listen-address", ":9200",
            "--web.telemetry-path", "/scrape",
            "--hierarchy-labels",
            "--log-level", "DEBUG",
            "--log-format", "console",
        ])

        assert overrides_from_args(args) == {
            "vcenter_url": "vcenter.example.com",
            "username": "monitor",
            "password": None,
            "insecure": False,
            "listen_address": ":9200",
            "metrics_path": "/scrape",
            "hierarchy_labels": True,
            "log_level": "DEBUG",
            "log_format": "console",
        }

    def test_insecure(self):
        args = build_parser().parse_args(["--insecure"])

        assert args.insecure == True


class TestBuildCollector:
    """Test component wiring"""

    @pytest.mark.parametrize("hierarchy_labels,strategy", [
        (False, Strategy.FLAT),
        (True, Strategy.HIERARCHICAL),
    ])
    def test_strategy_follows_labels(self, hierarchy_labels, strategy):
        config = ExporterConfig(hierarchy_labels=hierarchy_labels, poll_timeout=20.0)

        collector = build_collector(config, Mock())

        try:
            assert collector.walker.strategy is strategy
            assert collector.registry.hierarchy_labels == hierarchy_labels
            assert collector.poll_timeout == 20.0
        finally:
            collector.walker.close()


class TestMain:
    """Test startup failures"""

    def test_invalid_configuration(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--web.telemetry-path", "metrics"])

        assert exc_info.value.code == 1
        assert "Metrics path" in capsys.readouterr().err

    @patch('vsphere_exporter.__main__.setup_logging')
    @patch('vsphere_exporter.__main__.VCenterClient')
    def test_connection_failure(self, mock_client_class, mock_setup_logging):
        """Test the exporter exits when vCenter is unreachable"""
        mock_client_class.return_value.connect.side_effect = VCenterConnectionError("refused")

        with pytest.raises(SystemExit) as exc_info:
            main(["--vcenter-url", "vcenter.example.com"])

        assert exc_info.value.code == 1
        mock_client_class.return_value.connect.assert_called_once()
