"""
Shared fixtures: settings, in-memory images and a scriptable OCR provider
"""
import datetime as dt
import io
from typing import Optional

import pytest
from PIL import Image

from expense_ocr.common.config import Settings
from expense_ocr.parsers.extraction import FieldExtractor
from expense_ocr.parsers.image_normalizer import ImageNormalizer
from expense_ocr.parsers.ocr.base import NormalizedImage, OcrResult

TODAY = dt.date(2024, 6, 1)


def make_image_bytes(width: int = 1000, height: int = 800, fmt: str = "PNG", color=(200, 200, 200)) -> bytes:
    """Encode a solid-color image in memory"""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=color).save(buffer, format=fmt)
    return buffer.getvalue()


class FakeProvider:
    """OCR provider returning canned text, keyed by source filename when given a dict"""

    def __init__(
        self,
        name: str = "Fake",
        text="",
        confidence: float = 80.0,
        available: bool = True,
        error: Optional[str] = None,
        raises: Optional[BaseException] = None,
    ):
        self.provider_name = name
        self.text = text
        self.confidence = confidence
        self.available = available
        self.error = error
        self.raises = raises
        self.calls = 0

    def is_available(self) -> bool:
        return self.available

    @property
    def unavailable_reason(self) -> Optional[str]:
        return None if self.available else f"{self.provider_name} is switched off"

    async def extract_text(self, image: NormalizedImage) -> OcrResult:
        self.calls += 1
        if self.raises is not None:
            raise self.raises
        if self.error is not None:
            return OcrResult.failure(self.error, method=self.provider_name.lower())

        text = self.text
        if isinstance(text, dict):
            text = text[image.source_filename]

        return OcrResult.ok(
            text=text,
            confidence=self.confidence,
            processing_time_ms=5,
            method=self.provider_name.lower(),
            image_width=image.width,
            image_height=image.height,
        )


@pytest.fixture
def settings():
    return Settings(
        preprocessing_enabled=True,
        max_width=2000,
        max_height=2000,
        max_file_size="10MB",
        ocr_providers="tesseract,textract",
        textract_enabled=False,
        log_level="INFO",
        log_format="json",
    )


@pytest.fixture
def normalizer(settings):
    return ImageNormalizer(settings)


@pytest.fixture
def extractor(settings):
    return FieldExtractor(settings, today=TODAY)
