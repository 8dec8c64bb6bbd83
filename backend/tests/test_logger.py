"""
Tests for logging configuration
"""

import logging

import shouldercheck.main  # noqa: F401
from shouldercheck.utils.logger import ColoredFormatter, PerformanceLogger, get_logger


def console_handlers_for(logger):
    """Coloured console handlers a record passes through on its way up to the root"""
    handlers = []
    current = logger
    while current is not None:
        handlers.extend(h for h in current.handlers if isinstance(h.formatter, ColoredFormatter))
        if not current.propagate:
            break
        current = current.parent
    return handlers


def test_app_records_are_printed_once():
    assert len(console_handlers_for(logging.getLogger("shouldercheck.main"))) == 1


def test_service_records_are_printed_once():
    logger = get_logger("shouldercheck.services.camera")
    assert len(console_handlers_for(logger)) == 1


def test_root_logger_has_no_console_handler():
    root = logging.getLogger()
    assert not [h for h in root.handlers if isinstance(h.formatter, ColoredFormatter)]


def test_get_logger_is_idempotent():
    first = get_logger("shouldercheck.tests.repeated")
    second = get_logger("shouldercheck.tests.repeated")

    assert first is second
    assert len(first.handlers) == 1


def test_colored_formatter_leaves_record_plain():
    formatter = ColoredFormatter(fmt="%(levelname)s %(message)s")
    record = logging.LogRecord("x", logging.WARNING, __file__, 1, "careful", None, None)

    assert "\033[33m" in formatter.format(record)
    assert record.levelname == "WARNING"


def test_performance_logger_reports_averages(caplog):
    perf = PerformanceLogger("tests", report_every=2)

    with caplog.at_level(logging.INFO, logger="perf.tests"):
        for _ in range(2):
            perf.start()
            assert perf.end() >= 0.0

    assert "METRIC | avg_ms" in caplog.text
