"""
Logger tests
"""
import logging

from cert_updater.logger import StructuredLogger, get_logger, setup_logger


class TestStructuredLogger:
    """StructuredLogger tests"""

    def _logger(self, verbose=False):
        # Bind the handler to the stream captured for this test
        return setup_logger(name="CertUpdaterTest", verbose=verbose, use_colors=False)

    def test_abort_writes_one_fatal_line(self, capsys):
        self._logger().abort("Local certificate invalid: expired")

        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 1
        assert "[CRITICAL] FATAL Local certificate invalid: expired" in lines[0]

    def test_stdlib_fatal_alias_untouched(self, capsys):
        self._logger().fatal("disk on %s is gone", "host")

        out = capsys.readouterr().out
        assert "[CRITICAL] disk on host is gone" in out
        assert "FATAL" not in out

    def test_step_and_success(self, capsys):
        logger = self._logger()
        logger.step("Uploading private key.")
        logger.success("Uploaded certificate for example.org")

        out = capsys.readouterr().out
        assert "--- Uploading private key." in out
        assert "[OK] Uploaded certificate for example.org" in out

    def test_verbose_enables_debug(self, capsys):
        logger = self._logger(verbose=True)

        logger.debug("inventory page 1")

        assert logger.level == logging.DEBUG
        assert "[DEBUG] inventory page 1" in capsys.readouterr().out

    def test_get_logger_returns_configured_instance(self):
        logger = self._logger()

        assert get_logger() is logger
        assert isinstance(logger, StructuredLogger)
