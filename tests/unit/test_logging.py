"""Tests for dqfoundry.lib.logging module."""

import json
import logging

from dqfoundry.lib.logging import JSONFormatter, RunLogger, get_run_logger, setup_logging


def _record(msg="hello", **extra):
    record = logging.LogRecord("dqfoundry.test", logging.INFO, __file__, 10, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_basic_fields(self):
        """Records carry timestamp, level, logger and message."""
        data = json.loads(JSONFormatter().format(_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "dqfoundry.test"
        assert data["message"] == "hello"
        assert data["timestamp"].endswith("Z")
        assert data["source"]["line"] == 10

    def test_extra_fields(self):
        """Extra record attributes are grouped under extra."""
        data = json.loads(JSONFormatter().format(_record(rule="L1", metric_value=3)))
        assert data["extra"] == {"rule": "L1", "metric_value": 3}

    def test_exclude_fields(self):
        """Excluded attributes are left out."""
        formatter = JSONFormatter(exclude_fields=["rule"])
        data = json.loads(formatter.format(_record(rule="L1")))
        assert "extra" not in data

    def test_include_fields(self):
        """Included attributes are promoted to the top level."""
        formatter = JSONFormatter(include_fields=["run_id"])
        data = json.loads(formatter.format(_record(run_id="abc")))
        assert data["run_id"] == "abc"


class TestRunLogger:
    """Tests for RunLogger."""

    def test_context_added_to_records(self, caplog):
        """Context fields are attached to every record."""
        run_log = RunLogger("dqfoundry.test")
        run_log.set_context(run_id="abc", table="lease_master")
        with caplog.at_level(logging.INFO, logger="dqfoundry.test"):
            run_log.info("Starting %s", "run")

        record = caplog.records[-1]
        assert record.getMessage() == "Starting run"
        assert record.run_id == "abc"
        assert record.table == "lease_master"

    def test_context_copy_and_clear(self):
        """context returns a copy and clear_context empties it."""
        run_log = get_run_logger("dqfoundry.test")
        run_log.set_context(run_id="abc")
        context = run_log.context
        context["run_id"] = "changed"
        assert run_log.context == {"run_id": "abc"}
        run_log.clear_context()
        assert run_log.context == {}

    def test_metric(self, caplog):
        """metric logs a name and value with the context."""
        run_log = RunLogger("dqfoundry.test")
        run_log.set_context(run_id="abc")
        with caplog.at_level(logging.INFO, logger="dqfoundry.test"):
            run_log.metric("rows_failed", 2, unit="rows", rule="L1")

        record = caplog.records[-1]
        assert record.getMessage() == "METRIC rows_failed=2"
        assert record.metric_name == "rows_failed"
        assert record.metric_value == 2
        assert record.metric_unit == "rows"
        assert record.rule == "L1"
        assert record.run_id == "abc"

    def test_levels(self, caplog):
        """Each level method logs at its own level."""
        run_log = RunLogger("dqfoundry.test")
        with caplog.at_level(logging.DEBUG, logger="dqfoundry.test"):
            run_log.debug("d")
            run_log.warning("w")
            run_log.error("e")
            run_log.log(logging.INFO, "i")
        assert [r.levelno for r in caplog.records] == [
            logging.DEBUG,
            logging.WARNING,
            logging.ERROR,
            logging.INFO,
        ]


class TestSetupLogging:
    """Tests for setup_logging."""

    def setup_method(self):
        self._level = logging.getLogger().level

    def teardown_method(self):
        root = logging.getLogger()
        for handler in root.handlers[:]:
            if type(handler) in (logging.StreamHandler, logging.FileHandler):
                root.removeHandler(handler)
                handler.close()
        root.setLevel(self._level)

    def test_verbose_sets_debug(self):
        """verbose switches the root logger to DEBUG."""
        setup_logging(verbose=True)
        assert logging.getLogger().level == logging.DEBUG

    def test_json_format(self):
        """json_format installs the JSON formatter."""
        setup_logging(json_format=True)
        assert isinstance(logging.getLogger().handlers[0].formatter, JSONFormatter)

    def test_log_file(self, tmp_path):
        """log_file also writes records to the file."""
        log_file = tmp_path / "dq.log"
        setup_logging(log_file=str(log_file))
        logging.getLogger("dqfoundry.test").info("written to file")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "written to file" in log_file.read_text()
