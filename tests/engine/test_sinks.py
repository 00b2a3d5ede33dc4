from __future__ import annotations

import json
import sqlite3
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from xml_ingest.engine.sink import JsonlSink, LogSink, SQLiteSink
from xml_ingest.models import Invoice, Invoices, IngestResult


@pytest.fixture
def parsed() -> IngestResult:
    document = Invoices(invoices=[Invoice(id="INV-5", amount=Decimal("999.00"), currency="CHF")])
    return IngestResult.success("invoices.xml", document)


@pytest.fixture
def failed() -> IngestResult:
    return IngestResult.failure("orders.xml", "Unsupported XML for XmlDocument: cannot resolve subtype via namespace")


def test_jsonl_sink_appends_one_line_per_result(tmp_path, parsed, failed) -> None:
    sink = JsonlSink(tmp_path / "out", run_tag="test")
    sink.ingest(parsed)
    sink.ingest(failed)
    sink.flush()
    sink.close()
    sink.close()

    assert sink.path.name == "ingest-test.jsonl"
    lines = [json.loads(line) for line in sink.path.read_text(encoding="utf-8").splitlines()]
    assert lines[0]["kind"] == "Invoices"
    assert lines[0]["document"]["invoices"][0] == {"id": "INV-5", "amount": "999.00", "currency": "CHF"}
    assert lines[0]["error"] is None
    assert lines[1] == {
        "filename": "orders.xml",
        "kind": None,
        "document": None,
        "error": failed.error,
    }


def test_sqlite_sink_stores_rows(tmp_path, parsed, failed) -> None:
    path = tmp_path / "results.db"
    sink = SQLiteSink(path)
    sink.ingest(parsed)
    sink.ingest(failed)
    sink.close()

    conn = sqlite3.connect(path)
    rows = conn.execute("SELECT filename, kind, payload, error FROM ingest_results ORDER BY id").fetchall()
    conn.close()
    assert rows[0][0:2] == ("invoices.xml", "Invoices")
    assert json.loads(rows[0][2])["invoices"][0]["id"] == "INV-5"
    assert rows[0][3] is None
    assert rows[1] == ("orders.xml", None, None, failed.error)


def test_log_sink_reports_success_and_failure(parsed, failed) -> None:
    logger = MagicMock()
    sink = LogSink(logger=logger)
    sink.ingest(parsed)
    sink.ingest(failed)

    args, kwargs = logger.info.call_args
    assert args == ("document_received",)
    assert kwargs["filename"] == "invoices.xml"
    assert kwargs["kind"] == "Invoices"
    logger.warning.assert_called_once_with("document_failed", filename="orders.xml", error=failed.error)
