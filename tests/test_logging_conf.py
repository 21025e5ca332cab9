# tests/test_logging_conf.py
"""
Logging Configuration Tests - Log File Placement and Library Noise

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- fxpad.shared.logging_conf (setup_logging)
- pytest (testing framework)
"""
import logging  # Logger levels

from fxpad.shared.logging_conf import setup_logging


class TestSetupLogging:
    def test_log_dir_creates_log_file(self, tmp_path):
        log_dir = tmp_path / "logs"

        setup_logging(log_dir=log_dir, log_to_stdout=False)

        assert (log_dir / "fxpad.log").exists()

    def test_log_file_parent_is_created(self, tmp_path):
        log_file = tmp_path / "nested" / "run.log"

        setup_logging(log_file=log_file, log_to_stdout=False)

        assert log_file.exists()

    def test_httpx_is_quieted(self):
        setup_logging()
        assert logging.getLogger("httpx").level == logging.WARNING
