import io
import os
import sys
import unittest
from datetime import datetime
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest
import requests

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))
from row_extractor import (
    UNSUPPORTED_MESSAGE,
    ClaudeVoucherExtractor,
    detect_file_kind,
    extract_rows,
    map_columns,
)
from voucher_models import ExtractionError, UnsupportedFileTypeError, VoucherRow


CSV = (
    "Date,Bank Name,Bank Code,Voucher Code,Paid To,Reference No,Amount,Being\n"
    "01-04-2025,State Bank,SBIN0001,PV-001,Ravi Kumar,UTR123,\"12,500.00\",GRANULES PAYMENT\n"
    ",,,,,,,\n"
    "02-04-2025,HDFC,HDFC0002,PV-002,Sita,UTR124,800,RANDOM TEXT\n"
)


def test_csv_rows_in_order():
    rows = extract_rows("payments.csv", CSV.encode("utf-8"))
    assert len(rows) == 2
    assert rows[0] == VoucherRow("01-04-2025", "State Bank", "SBIN0001", "PV-001", "Ravi Kumar", "UTR123", 12500.0, "GRANULES PAYMENT")
    assert rows[1].description == "RANDOM TEXT"
    assert rows[1].amount == 800.0


def test_xlsx_rows():
    buf = io.BytesIO()
    pd.DataFrame([
        {"Voucher No": "PV-9", "Pay To": "Anil", "Amount": 1500, "Narration": "BHEL rent"},
    ]).to_excel(buf, index=False)
    rows = extract_rows("register.xlsx", buf.getvalue())
    assert rows == [VoucherRow(voucher_code="PV-9", paid_to="Anil", amount=1500.0, description="BHEL rent")]


@pytest.mark.parametrize("cell,amount", [
    ("Rs. 12,500", 12500.0),
    ("Rs.12,500.50", 12500.5),
    ("INR 800", 800.0),
    ("₹ 1,00,000", 100000.0),
    ("12,500/-", 12500.0),
    ("", 0.0),
])
def test_currency_prefixed_amounts(cell, amount):
    rows = extract_rows("amounts.csv", f"Amount,Being\n\"{cell}\",GRANULES\n".encode("utf-8"))
    assert rows[0].amount == amount


def test_excel_dates_are_date_only():
    buf = io.BytesIO()
    pd.DataFrame([
        {"Date": datetime(2025, 4, 1), "Voucher Code": 1001, "Bank Code": 1234.0, "Amount": 99.5, "Being": "ECIL"},
    ]).to_excel(buf, index=False)
    rows = extract_rows("dated.xlsx", buf.getvalue())
    assert rows[0].date == "01-04-2025"
    assert rows[0].voucher_code == "1001"
    assert rows[0].bank_code == "1234"
    assert rows[0].amount == 99.5


def test_missing_columns_are_empty():
    rows = extract_rows("short.csv", b"Amount,Being\n100,MYP\n")
    assert rows[0].bank_name == ""
    assert rows[0].date == ""


def test_map_columns_fuzzy_headers():
    mapping = map_columns(["Vouchr Code", "Paid-To", "Referance No", "Amnt", "Being"])
    assert mapping["Vouchr Code"] == "voucher_code"
    assert mapping["Paid-To"] == "paid_to"
    assert mapping["Referance No"] == "reference_no"
    assert mapping["Being"] == "description"


def test_no_voucher_columns():
    with pytest.raises(ExtractionError):
        extract_rows("other.csv", b"foo,bar\n1,2\n")


@pytest.mark.parametrize("filename,content_type,kind", [
    ("a.xlsx", None, "spreadsheet"),
    ("a.XLS", None, "spreadsheet"),
    ("a.csv", None, "spreadsheet"),
    ("upload", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "spreadsheet"),
    ("upload", "text/csv", "spreadsheet"),
    ("scan.jpg", None, "image"),
    ("scan", "image/png", "image"),
])
def test_detect_file_kind(filename, content_type, kind):
    assert detect_file_kind(filename, content_type) == kind


@pytest.mark.parametrize("filename,content_type", [("doc.pdf", "application/pdf"), ("scan.gif", "image/gif")])
def test_unsupported_file_type(filename, content_type):
    with pytest.raises(UnsupportedFileTypeError) as exc:
        extract_rows(filename, b"x", content_type)
    assert str(exc.value) == UNSUPPORTED_MESSAGE


def test_image_without_extractor():
    with pytest.raises(ExtractionError):
        extract_rows("scan.png", b"png-bytes")


class TestClaudeVoucherExtractor(unittest.TestCase):
    def setUp(self):
        self.extractor = ClaudeVoucherExtractor("test-key")

    def _response(self, text):
        resp = MagicMock()
        resp.json.return_value = {"content": [{"text": text}]}
        resp.raise_for_status.return_value = None
        return resp

    @patch("row_extractor.requests.post")
    def test_parses_fenced_json(self, mock_post):
        mock_post.return_value = self._response(
            '```json\n[{"date": "01/04/2025", "bankName": "SBI", "paidTo": "Ravi", "amount": "1,000", "description": "GHM"}]\n```'
        )
        rows = extract_rows("scan.jpg", b"\xff\xd8jpeg", image_extractor=self.extractor)

        self.assertEqual(rows, [VoucherRow(date="01/04/2025", bank_name="SBI", paid_to="Ravi", amount=1000.0, description="GHM")])
        payload = mock_post.call_args.kwargs["json"]
        image_block = payload["messages"][0]["content"][0]
        self.assertEqual(image_block["source"]["media_type"], "image/jpeg")
        self.assertEqual(mock_post.call_args.kwargs["headers"]["x-api-key"], "test-key")

    @patch("row_extractor.requests.post")
    def test_http_error_becomes_extraction_error(self, mock_post):
        resp = MagicMock()
        resp.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
        mock_post.return_value = resp
        with self.assertRaises(ExtractionError) as ctx:
            self.extractor.extract_rows(b"img", "image/png")
        self.assertIn("500 Server Error", str(ctx.exception))

    @patch("row_extractor.requests.post")
    def test_invalid_json(self, mock_post):
        mock_post.return_value = self._response("I could not read this image.")
        with self.assertRaises(ExtractionError):
            self.extractor.extract_rows(b"img", "image/png")

    @patch("row_extractor.requests.post")
    def test_single_object_reply(self, mock_post):
        mock_post.return_value = self._response('{"voucherCode": "PV-1", "amount": 50}')
        rows = self.extractor.extract_rows(b"img", "image/png")
        self.assertEqual(rows, [VoucherRow(voucher_code="PV-1", amount=50.0)])


if __name__ == "__main__":
    unittest.main()
