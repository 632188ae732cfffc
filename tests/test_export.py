"""Tests for CSV export."""

import csv
import io
from decimal import Decimal

from bizflow.export import export_filename, to_csv
from bizflow.models import Quotation, Receipt


def _parse(text: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(text)))


class TestToCsv:
    def test_empty_collection_has_message(self):
        text = to_csv([], "invoices")
        assert text == "No invoices data available for export."
        assert "," not in text

    def test_header_excludes_id(self):
        rows = _parse(to_csv([Receipt(client_name="Ann", id="r1")], "receipts"))
        assert rows[0] == Receipt.document_keys()
        assert "id" not in rows[0]
        assert "r1" not in rows[1]

    def test_comma_field_round_trips(self):
        quote = Quotation(client_name="Lee, Ann", items='Audit, "premium" tier', id="q1")
        rows = _parse(to_csv([quote], "quotations"))
        header, row = rows
        assert row[header.index("clientName")] == "Lee, Ann"
        assert row[header.index("items")] == 'Audit, "premium" tier'

    def test_one_row_per_record(self):
        quotes = [Quotation(total=Decimal("1.5"), id="a"), Quotation(total=Decimal("2"), id="b")]
        rows = _parse(to_csv(quotes, "quotations"))
        assert len(rows) == 3
        totals = [row[rows[0].index("total")] for row in rows[1:]]
        assert totals == ["1.5", "2"]

    def test_nested_values_serialized(self):
        rows = _parse(to_csv([{"id": "x", "clientName": "Ann", "meta": {"tags": ["a", "b"]}}], "quotations"))
        assert rows[0] == ["clientName", "meta"]
        assert rows[1][1] == '{"tags": ["a", "b"]}'

    def test_missing_back_reference_is_blank(self):
        rows = _parse(to_csv([Receipt(client_name="Ann")], "receipts"))
        assert rows[1][rows[0].index("invoiceId")] == ""


def test_export_filename():
    assert export_filename("appointments") == "Appointments_Export.csv"
