"""
Tests for logging setup

Author: uldyssian-sh
License: MIT
"""

import logging
import logging.handlers

import structlog

from vsphere_exporter.logging_config import setup_logging


class TestSetupLogging:
    """Test setup_logging"""

    def setup_method(self):
        """Setup test fixtures"""
        self.root_logger = logging.getLogger()
        self.handlers = list(self.root_logger.handlers)
        self.level = self.root_logger.level

    def teardown_method(self):
        for handler in self.root_logger.handlers:
            handler.close()
        self.root_logger.handlers[:] = self.handlers
        self.root_logger.setLevel(self.level)
        structlog.reset_defaults()

    def test_json_renderer(self):
        setup_logging("WARNING")

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        assert self.root_logger.level == logging.WARNING

    def test_console_renderer(self):
        """Test console output is selectable"""
        setup_logging("INFO", json_logs=False)

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_log_file(self, tmp_path):
        setup_logging("INFO", log_dir=str(tmp_path / "logs"))

        file_handlers = [h for h in self.root_logger.handlers
                         if isinstance(h, logging.handlers.RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert (tmp_path / "logs").is_dir()
