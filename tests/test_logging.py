"""Tests for log formatting."""

import json
import logging

from observability.logging import JSONFormatter, get_structured_logger


def make_record(message, **extra):
    record = logging.LogRecord("sources.uniprot", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_context():
    record = make_record("Finished updating UniProt data", ctx_namespace="uniprot", ctx_batches=2)

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "Finished updating UniProt data"
    assert payload["level"] == "INFO"
    assert payload["service"] == "grounding-search"
    assert payload["ctx_namespace"] == "uniprot"
    assert payload["ctx_batches"] == 2


def test_structured_logger_passes_context(caplog):
    log = get_structured_logger("tests.structured", namespace="uniprot")

    with caplog.at_level(logging.INFO, logger="tests.structured"):
        log.info("Processing", source_path="input/uniprot.xml.gz")

    record = caplog.records[-1]
    assert record.getMessage() == "Processing"
    assert record.ctx_namespace == "uniprot"
    assert record.ctx_source_path == "input/uniprot.xml.gz"
