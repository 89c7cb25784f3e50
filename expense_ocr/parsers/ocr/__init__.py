"""
OCR Package

Provides pluggable OCR providers behind a selector.

Main entry point:
    from expense_ocr.parsers.ocr import get_provider_selector

    result = await get_provider_selector().perform_ocr(normalized_image)

Available providers:
    - TesseractProvider: local Tesseract OCR (default, first in order)
    - TextractProvider: AWS Textract (opt-in with TEXTRACT_ENABLED=true)

Configuration via environment:
    - OCR_PROVIDERS: Provider order (default: tesseract,textract)
    - TESSERACT_LANGUAGE / TESSERACT_PAGE_SEG_MODE / TESSERACT_OEM_MODE
    - TESSERACT_DATA_PATH: tessdata directory (auto-resolved if unset)
    - TESSERACT_PATH: Path to tesseract binary
"""
from expense_ocr.parsers.ocr.base import (
    NoProviderAvailableError,
    NormalizedImage,
    OcrProcessingError,
    OcrProvider,
    OcrResult,
)
from expense_ocr.parsers.ocr.factory import (
    OcrProviderSelector,
    build_default_providers,
    get_provider_selector,
    select_provider,
)

__all__ = [
    "NoProviderAvailableError",
    "NormalizedImage",
    "OcrProcessingError",
    "OcrProvider",
    "OcrProviderSelector",
    "OcrResult",
    "build_default_providers",
    "get_provider_selector",
    "select_provider",
]
