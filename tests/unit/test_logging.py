"""Unit tests for logger setup and run-bound adapters."""

from __future__ import annotations

import json
import logging

from newsreel.core.logging import (
    ROOT_LOGGER,
    JsonFormatter,
    TextFormatter,
    bind_run_logger,
    get_logger,
    setup_logging,
)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(ROOT_LOGGER + ".engine", logging.INFO, __file__, 1, "Step done", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_bound_fields_and_data(self):
        line = JsonFormatter().format(
            _record(run_id="r-1", program="news-scraper", step="check-cache", data={"hit": True})
        )
        entry = json.loads(line)
        assert entry["message"] == "Step done"
        assert entry["level"] == "INFO"
        assert entry["run_id"] == "r-1"
        assert entry["program"] == "news-scraper"
        assert entry["step"] == "check-cache"
        assert entry["data"] == {"hit": True}

    def test_unbound_record_has_no_run_fields(self):
        entry = json.loads(JsonFormatter().format(_record()))
        assert "run_id" not in entry
        assert "data" not in entry


class TestTextFormatter:
    def test_includes_run_and_step(self):
        text = TextFormatter().format(_record(run_id="r-1", program="news-scraper", step="refresh"))
        assert "[news-scraper:r-1]" in text
        assert "(refresh)" in text
        assert text.endswith("- Step done")

    def test_data_skips_none_values(self):
        text = TextFormatter().format(_record(data={"count": 3, "skipped": None}))
        assert "| count=3" in text
        assert "skipped" not in text


class TestAdapters:
    def test_bound_logger_merges_extras(self, caplog):
        adapter = bind_run_logger(get_logger("test"), "r-9", "article-scraper").for_step("capture")
        with caplog.at_level(logging.INFO, logger=ROOT_LOGGER):
            adapter.info("Captured", extra={"data": {"pick_id": "p-1"}})
        record = caplog.records[-1]
        assert record.run_id == "r-9"
        assert record.program == "article-scraper"
        assert record.step == "capture"
        assert record.data == {"pick_id": "p-1"}

    def test_setup_logging_replaces_handlers(self):
        setup_logging("debug", "json")
        setup_logging("warning", "json")
        root = logging.getLogger(ROOT_LOGGER)
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        root.handlers.clear()
