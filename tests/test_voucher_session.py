"""
VoucherSession（ページ送り・リセット・エラー表示）のテスト
"""

import io
import os
import random
import sys
from unittest.mock import MagicMock

import pytest
from PIL import Image

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))
from signature_pool import image_to_data_url
from voucher_models import ExtractionError, VoucherAssets, VoucherRow
from voucher_session import VoucherSession


CSV = (
    "Date,Voucher Code,Paid To,Amount,Being\n"
    "01-04-2025,PV-1,Ravi,100,GRANULES PAYMENT\n"
    "02-04-2025,PV-2,Sita,200,RANDOM TEXT\n"
    "03-04-2025,PV-3,Anil,300,BHEL rent\n"
).encode("utf-8")


def _png(color="black") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (6, 3), color).save(buf, "PNG")
    return buf.getvalue()


@pytest.fixture
def defaults():
    blank = image_to_data_url(_png("white"))
    return VoucherAssets(logo=blank, checked_by_signature=blank,
                         approved_by_signature=blank, default_receiver_signature="DEFAULT-SIG")


@pytest.fixture
def session(defaults):
    s = VoucherSession(defaults, rng=random.Random(1))
    s.select_data_file("payments.csv", CSV)
    assert s.generate()
    return s


class TestCursor:

    def test_previous_at_first_stays(self, session):
        session.previous()
        assert session.current_index == 0

    def test_next_at_last_stays(self, session):
        session.next()
        session.next()
        assert session.current_index == 2
        session.next()
        assert session.current_index == 2
        assert session.position_label == "3 / 3"
        assert session.current_row.voucher_code == "PV-3"

    def test_navigation_on_empty_session(self, defaults):
        s = VoucherSession(defaults)
        s.next()
        s.previous()
        assert s.current_index == 0
        assert s.current_row is None


def test_reset_clears_everything_together(session):
    session.next()
    session.error = "previous failure"
    session.reset()

    assert (session.rows, session.current_index, session.data_file, session.error) == ([], 0, None, None)
    assert session.file_name == ""


def test_reset_keeps_signature_pool(session):
    session.upload_receiver_signatures([("granules.png", _png())])
    session.reset()
    assert list(session.signature_pool) == ["GRANULES"]


def test_generate_without_file(defaults):
    s = VoucherSession(defaults)
    assert s.generate() is False
    assert s.rows == []


def test_unsupported_file_sets_error(defaults):
    s = VoucherSession(defaults)
    s.select_data_file("notes.txt", b"hello")
    assert s.generate() is False
    assert "Unsupported file type" in s.error
    assert s.rows == []

    s.select_data_file("payments.csv", CSV)
    assert s.error is None


def test_extraction_failure_clears_previous_rows(session):
    extractor = MagicMock()
    extractor.extract_rows.side_effect = ExtractionError("quota exceeded")
    session.image_extractor = extractor
    session.select_data_file("scan.png", b"img", "image/png")

    assert session.generate() is False
    assert session.error == "quota exceeded"
    assert session.rows == []
    assert session.current_index == 0
    assert session.is_loading is False


def test_image_file_uses_extractor(defaults):
    extractor = MagicMock()
    extractor.extract_rows.return_value = [VoucherRow(description="MKR")]
    s = VoucherSession(defaults, image_extractor=extractor)
    s.select_data_file("scan.jpeg", b"img")
    assert s.generate()
    extractor.extract_rows.assert_called_once_with(b"img", "image/jpeg")


def test_receiver_signature_end_to_end(session):
    errors = session.upload_receiver_signatures([("GRANULES.png", _png("red"))])
    assert errors == []
    img_a = session.signature_pool["GRANULES"]

    assert session.receiver_signature_for(session.rows[0]) == img_a
    assert session.receiver_signature_for(session.rows[1]) == img_a


def test_receiver_signature_default_when_pool_empty(session):
    assert session.receiver_signature_for(session.rows[1]) == "DEFAULT-SIG"


def test_bad_signature_upload_reports_and_keeps_others(session):
    errors = session.upload_receiver_signatures([("bhel.png", b"broken"), ("ecil.png", _png())])
    assert len(errors) == 1
    assert session.error == "Failed to upload image bhel.png. Please try again."
    assert list(session.signature_pool) == ["ECIL"]


class TestAssetOverrides:

    def test_defaults_used_when_not_overridden(self, session, defaults):
        assert session.assets == defaults

    def test_logo_override(self, session, defaults):
        assert session.upload_logo(_png("blue"))
        assert session.assets.logo != defaults.logo
        assert session.assets.checked_by_signature == defaults.checked_by_signature

    def test_invalid_override_sets_error(self, session, defaults):
        assert session.upload_approved_by_signature(b"nope") is False
        assert session.error == "Failed to upload image. Please try another one."
        assert session.assets.approved_by_signature == defaults.approved_by_signature


def test_export_pdf(session, tmp_path):
    target = session.export_pdf(str(tmp_path))
    assert target.name == "vouchers_payments.pdf"
    assert target.read_bytes().startswith(b"%PDF")


def test_oversized_override_sets_error(session, defaults, monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    buf = io.BytesIO()
    Image.new("1", (100, 100)).save(buf, "PNG")

    assert session.upload_logo(buf.getvalue()) is False
    assert session.error == "Failed to upload image. Please try another one."
    assert session.assets.logo == defaults.logo


def test_random_pick_is_kept_between_preview_and_export(defaults):
    s = VoucherSession(defaults)
    s.select_data_file("payments.csv", CSV)
    assert s.generate()
    s.upload_receiver_signatures([(f"sig{i}.png", _png(color)) for i, color in enumerate(["red", "green", "blue", "gray"])])

    previewed = [s.receiver_signature_for(row) for row in s.rows]
    exported = [s.receiver_signature_for(row) for row in s.rows]
    assert exported == previewed


def test_new_signatures_reassign(session):
    first = session.receiver_signature_for(session.rows[0])
    assert first == "DEFAULT-SIG"
    session.upload_receiver_signatures([("granules.png", _png())])
    assert session.receiver_signature_for(session.rows[0]) == session.signature_pool["GRANULES"]


def test_default_receiver_override_is_used(session):
    assert session.upload_default_receiver_signature(_png("purple"))
    assert session.receiver_signature_for(session.rows[1]) == session.assets.default_receiver_signature
    assert session.receiver_signature_for(session.rows[1]) != "DEFAULT-SIG"
