from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from xml_ingest.models import Invoice, Invoices, IngestResult, RemoteFileRef, Transaction, Transactions


def test_remote_file_ref_joins_directory() -> None:
    ref = RemoteFileRef.in_directory("upload", "invoices.xml", "batch-1")
    assert ref.path == "upload/invoices.xml"
    assert RemoteFileRef.in_directory("upload/", "a.xml", "b").path == "upload/a.xml"
    assert RemoteFileRef.in_directory("", "a.xml", "b").path == "a.xml"


def test_result_requires_exactly_one_outcome() -> None:
    document = Invoices(invoices=[Invoice(id="INV-1")])
    with pytest.raises(ValidationError):
        IngestResult(filename="a.xml")
    with pytest.raises(ValidationError):
        IngestResult(filename="a.xml", document=document, error="boom")


def test_result_helpers() -> None:
    ok = IngestResult.success("tx.xml", Transactions(transactions=[Transaction(id="TX-1")]))
    assert ok.ok
    assert ok.document_kind == "Transactions"
    failed = IngestResult.failure("orders.xml", "nope")
    assert not failed.ok
    assert failed.document_kind is None
    assert failed.to_record()["document"] is None


def test_documents_are_immutable() -> None:
    invoice = Invoice(id="INV-1", amount=Decimal("1.00"))
    with pytest.raises(ValidationError):
        invoice.id = "INV-2"


def test_single_element_becomes_a_list() -> None:
    document = Invoices.model_validate({"invoice": {"id": "INV-1"}})
    assert [invoice.id for invoice in document.invoices] == ["INV-1"]
    assert Invoices.model_validate({}).invoices == []
