"""
Tests for the receipt OCR pipeline (normalize -> OCR -> extract -> merge)

Uses real normalization on generated images with scripted OCR providers.
"""
import asyncio
import datetime as dt
from decimal import Decimal

import pytest
from PIL import Image

from expense_ocr.common.schemas.receipt_extraction import ImageQuality
from expense_ocr.parsers.extraction.field_extractor import MULTIPLE_DATES_WARNING
from expense_ocr.parsers.image_normalizer import InvalidImageError
from expense_ocr.parsers.ocr import OcrProcessingError, OcrProviderSelector
from expense_ocr.services.receipt_ocr_service import (
    ALL_PAGES_FAILED,
    POOR_QUALITY_WARNING,
    ReceiptOcrService,
)

from conftest import FakeProvider, make_image_bytes

RECEIPT_TEXT = "Corner Cafe\nDate: 15/03/2024\nLatte 4.50\nMuffin 3.25\nTOTAL $7.75\nPaid by VISA"


@pytest.fixture
def make_service(normalizer, extractor):
    def _make(*providers):
        return ReceiptOcrService(
            normalizer=normalizer,
            selector=OcrProviderSelector(providers),
            extractor=extractor,
        )
    return _make


class TestProcessSingle:
    """One image in, one record out"""

    def test_extracts_fields(self, make_service):
        service = make_service(FakeProvider(text=RECEIPT_TEXT))

        record = asyncio.run(service.process_single(make_image_bytes(1000, 800), "receipt.png"))

        assert record.merchant == "Corner Cafe"
        assert record.amount == Decimal("7.75")
        assert record.date == dt.date(2024, 3, 15)
        assert record.currency == "USD"
        assert record.payment_method == "Credit Card"
        assert record.suggested_category == "Food & Dining"
        assert [i.description for i in record.items] == ["Latte", "Muffin"]
        assert record.image_quality == ImageQuality.GOOD
        assert record.warnings == []
        assert record.processing_time_ms >= 0

    def test_poor_quality_warning_follows_extractor_warnings(self, make_service):
        text = "Corner Cafe\n01/03/2024\n15/03/2024\nTOTAL 7.75"
        service = make_service(FakeProvider(text=text))

        record = asyncio.run(service.process_single(make_image_bytes(150, 150), "tiny.png"))

        assert record.image_quality == ImageQuality.POOR
        assert record.warnings == [MULTIPLE_DATES_WARNING, POOR_QUALITY_WARNING]

    def test_falls_back_to_second_provider(self, make_service):
        first = FakeProvider("First", available=False)
        second = FakeProvider("Second", text=RECEIPT_TEXT)
        service = make_service(first, second)

        record = asyncio.run(service.process_single(make_image_bytes(), "receipt.png"))

        assert record.amount == Decimal("7.75")
        assert service.active_provider_name() == "Second"
        assert second.calls == 1

    def test_no_provider_available(self, make_service):
        service = make_service(FakeProvider(available=False))

        assert not service.is_service_available()
        assert service.active_provider_name() == "None"
        with pytest.raises(OcrProcessingError):
            asyncio.run(service.process_single(make_image_bytes(), "receipt.png"))

    def test_provider_failure_surfaces(self, make_service):
        service = make_service(FakeProvider(error="engine crashed"))

        with pytest.raises(OcrProcessingError, match="engine crashed"):
            asyncio.run(service.process_single(make_image_bytes(), "receipt.png"))

    def test_invalid_upload_surfaces(self, make_service):
        provider = FakeProvider(text=RECEIPT_TEXT)
        service = make_service(provider)

        with pytest.raises(InvalidImageError):
            asyncio.run(service.process_single(make_image_bytes(), "receipt.pdf"))
        assert provider.calls == 0

    def test_blank_ocr_text(self, make_service):
        service = make_service(FakeProvider(text="   "))

        record = asyncio.run(service.process_single(make_image_bytes(), "receipt.png"))

        assert record.warnings == ["OCR extraction produced no usable text"]
        assert record.overall_confidence == 0.0


class TestProcessMulti:
    """Several photos of one receipt"""

    def test_pages_merged(self, make_service):
        provider = FakeProvider(text={
            "page1.png": "STAR BAZAAR\nMilk 45.00\nTOTAL: 45.00",
            "page2.png": "Bread 30.00\nMilk 45.00\nNet Payable 500.00",
        })
        service = make_service(provider)

        record = asyncio.run(service.process_multi([
            (make_image_bytes(), "page1.png"),
            (make_image_bytes(), "page2.png"),
        ]))

        assert record.merchant == "STAR BAZAAR"
        assert record.amount == Decimal("500.00")
        assert record.confidence_map["amount"].score == 1.0
        assert [i.description for i in record.items] == ["Milk", "Bread"]
        assert record.warnings[0] == "Scanned 2 pages, merged results"
        assert "--- PAGE 1 ---" in record.raw_text
        assert "--- PAGE 2 ---" in record.raw_text

    def test_failed_page_recorded(self, make_service):
        service = make_service(FakeProvider(text={"page1.png": "Corner Cafe\nTOTAL 7.75"}))

        record = asyncio.run(service.process_multi([
            (make_image_bytes(), "page1.png"),
            (make_image_bytes(), "page2.pdf"),
        ]))

        assert record.amount == Decimal("7.75")
        assert record.warnings[0] == "Scanned 2 pages, merged results"
        assert record.warnings[-1].startswith("Page 2 processing failed: Invalid file type")

    def test_undecodable_page_does_not_abort_scan(self, make_service, monkeypatch):
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
        service = make_service(FakeProvider(text={"page1.png": "Corner Cafe\nTOTAL 7.75"}))

        record = asyncio.run(service.process_multi([
            (make_image_bytes(30, 30), "page1.png"),
            (make_image_bytes(100, 100), "page2.png"),
        ]))

        assert record.amount == Decimal("7.75")
        assert record.warnings[-1].startswith("Page 2 processing failed: Could not read image file")

    def test_all_pages_failed(self, make_service):
        service = make_service(FakeProvider(error="engine crashed"))

        with pytest.raises(OcrProcessingError, match=ALL_PAGES_FAILED):
            asyncio.run(service.process_multi([
                (make_image_bytes(), "page1.png"),
                (b"", "page2.png"),
            ]))

    def test_empty_page_list(self, make_service):
        service = make_service(FakeProvider(text=RECEIPT_TEXT))

        with pytest.raises(OcrProcessingError, match=ALL_PAGES_FAILED):
            asyncio.run(service.process_multi([]))

    def test_unexpected_errors_propagate(self, make_service):
        service = make_service(FakeProvider(raises=RuntimeError("bug")))

        with pytest.raises(RuntimeError, match="bug"):
            asyncio.run(service.process_multi([(make_image_bytes(), "page1.png")]))
