"""Unit tests for structured logging."""

import io
import json
import logging
import sys

import pytest

from cdc_router import __version__
from cdc_router.observability.logging_config import JSONFormatter, event_fields, setup_logging
from cdc_router.routing.envelope import parse_envelope
from tests.fakes import envelope


def make_log_record(msg="Forward of %s failed", args=("shop.orders_7",), exc_info=None):
    return logging.LogRecord(
        name="cdc_router.pipeline.router",
        level=logging.WARNING,
        pathname=__file__,
        lineno=10,
        msg=msg,
        args=args,
        exc_info=exc_info,
    )


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way the test found it."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.unit
class TestJSONFormatter:
    """Test JSON rendering of log records."""

    def test_core_fields(self):
        """Test level, logger, message and service identity are emitted."""
        payload = json.loads(JSONFormatter().format(make_log_record()))

        assert payload["level"] == "WARNING"
        assert payload["logger"] == "cdc_router.pipeline.router"
        assert payload["message"] == "Forward of shop.orders_7 failed"
        assert payload["service"] == "cdc-router"
        assert payload["version"] == __version__

    def test_extra_fields_are_merged(self):
        """Test fields passed through extra appear at the top level."""
        record = make_log_record()
        record.extra = {"destination_topic": "orders-out", "offset": 12}

        payload = json.loads(JSONFormatter().format(record))

        assert payload["destination_topic"] == "orders-out"
        assert payload["offset"] == 12

    def test_extra_fields_do_not_override_core_fields(self):
        """Test an extra named like a core field leaves the core value intact."""
        record = make_log_record()
        record.extra = {"level": "DEBUG"}

        payload = json.loads(JSONFormatter().format(record))

        assert payload["level"] == "WARNING"

    def test_non_json_values_are_stringified(self):
        """Test raw key bytes in extras do not break formatting."""
        record = make_log_record()
        record.extra = {"key": b'{"id": 7}'}

        payload = json.loads(JSONFormatter().format(record))

        assert payload["key"] == str(b'{"id": 7}')

    def test_exception_is_included(self):
        """Test exc_info is rendered as a traceback string."""
        try:
            raise RuntimeError("classify failed")
        except RuntimeError:
            record = make_log_record(msg="Unexpected error", args=(), exc_info=sys.exc_info())

        payload = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: classify failed" in payload["exception"]


@pytest.mark.unit
class TestEventFields:
    """Test structured fields describing a change event."""

    def test_fields_identify_event_and_position(self):
        """Test topic, database, table, operation and position are all present."""
        event = parse_envelope(
            envelope("u", "shop", "orders_7"), "cdc.orders", partition=3, offset=41
        )

        assert event_fields(event) == {
            "source_topic": "cdc.orders",
            "database": "shop",
            "table": "orders_7",
            "operation": "update",
            "partition": 3,
            "offset": 41,
        }


@pytest.mark.unit
class TestSetupLogging:
    """Test root logger configuration."""

    def test_installs_single_json_handler(self, restore_root_logger):
        """Test existing handlers are replaced and output is JSON."""
        restore_root_logger.addHandler(logging.NullHandler())
        stream = io.StringIO()

        setup_logging("DEBUG", stream=stream)
        logging.getLogger("cdc_router.test").debug("routed", extra={"extra": {"table": "t"}})

        assert len(restore_root_logger.handlers) == 1
        assert restore_root_logger.level == logging.DEBUG
        line = json.loads(stream.getvalue().splitlines()[-1])
        assert line["message"] == "routed"
        assert line["table"] == "t"

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        """Test an unrecognised level name is treated as INFO."""
        setup_logging("chatty", stream=io.StringIO())

        assert restore_root_logger.level == logging.INFO

    def test_client_loggers_are_quieted(self, restore_root_logger):
        """Test Kafka client chatter is capped at WARNING."""
        setup_logging("DEBUG", stream=io.StringIO())

        assert logging.getLogger("kafka").level == logging.WARNING
