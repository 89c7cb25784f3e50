"""
Receipt OCR service - Image upload to structured receipt record

Flow:
1. Normalize the upload (validate, decode, resize, grayscale, contrast, sharpen)
2. Grade image quality
3. OCR with the first available provider
4. Extract structured fields from the text
5. For multi-page uploads: process pages concurrently, then merge

Invalid uploads and OCR failures are surfaced to the caller for single
pages. For multi-page uploads they are recorded per page and only raised
when no page succeeds.
"""
import asyncio
import time
from typing import List, Optional, Sequence, Tuple

import structlog

from expense_ocr.common.config import get_settings
from expense_ocr.common.schemas.receipt_extraction import ImageQuality, ReceiptRecord
from expense_ocr.parsers.extraction import FieldExtractor
from expense_ocr.parsers.image_normalizer import ImageNormalizer, InvalidImageError
from expense_ocr.parsers.multi_page_handler import PageFailure, PageMerger, PageResult
from expense_ocr.parsers.ocr import OcrProcessingError, OcrProviderSelector, get_provider_selector

logger = structlog.get_logger()

POOR_QUALITY_WARNING = "Image quality is poor - OCR results may be inaccurate"
ALL_PAGES_FAILED = "Failed to process any of the uploaded images"

# Per-page errors that do not abort a multi-page scan
RECOVERABLE_PAGE_ERRORS = (InvalidImageError, OcrProcessingError)


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class ReceiptOcrService:
    """Runs the receipt pipeline for one image or a multi-page scan"""

    def __init__(
        self,
        normalizer: ImageNormalizer,
        selector: OcrProviderSelector,
        extractor: FieldExtractor,
        merger: Optional[PageMerger] = None,
    ):
        self.normalizer = normalizer
        self.selector = selector
        self.extractor = extractor
        self.merger = merger or PageMerger()

    async def process_single(self, image_bytes: bytes, filename: str) -> ReceiptRecord:
        """
        Process one receipt image.

        Args:
            image_bytes: Uploaded file content
            filename: Uploaded filename (extension is validated)

        Returns:
            ReceiptRecord with fields, confidence and warnings

        Raises:
            InvalidImageError: If the upload is rejected
            OcrProcessingError: If no provider is available or OCR fails
        """
        start = time.perf_counter()
        logger.info("receipt_processing_started", filename=filename, size_bytes=len(image_bytes or b""))

        image = await asyncio.to_thread(self.normalizer.normalize, image_bytes, filename)
        quality = self.normalizer.assess_quality(image)

        pipeline_warnings: List[str] = []
        if quality == ImageQuality.POOR:
            pipeline_warnings.append(POOR_QUALITY_WARNING)

        ocr_result = await self.selector.perform_ocr(image)

        record = self.extractor.extract(
            ocr_result.text,
            processing_time_ms=ocr_result.processing_time_ms,
            image_quality=quality,
        )

        record = record.model_copy(update={
            "warnings": record.warnings + pipeline_warnings,
            "processing_time_ms": _elapsed_ms(start),
        })

        logger.info("receipt_processing_complete",
                   filename=filename,
                   method=ocr_result.method,
                   ocr_confidence=ocr_result.confidence,
                   overall_confidence=round(record.overall_confidence, 3),
                   processing_time_ms=record.processing_time_ms)

        return record

    async def process_multi(self, pages: Sequence[Tuple[bytes, str]]) -> ReceiptRecord:
        """
        Process several photos of the same receipt and merge them.

        Args:
            pages: (image_bytes, filename) per page, in page order

        Returns:
            Merged ReceiptRecord

        Raises:
            OcrProcessingError: If no page could be processed
        """
        start = time.perf_counter()
        logger.info("multi_page_processing_started", pages=len(pages))

        outcomes = await asyncio.gather(
            *(self.process_single(image_bytes, filename) for image_bytes, filename in pages),
            return_exceptions=True,
        )

        results: List[PageResult] = []
        failures: List[PageFailure] = []

        for page_number, outcome in enumerate(outcomes, 1):
            if isinstance(outcome, RECOVERABLE_PAGE_ERRORS):
                logger.warning("page_processing_failed",
                              page=page_number,
                              filename=pages[page_number - 1][1],
                              error=str(outcome))
                failures.append(PageFailure(page_number=page_number, reason=str(outcome)))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(PageResult(page_number=page_number, record=outcome))

        if not results:
            logger.error("multi_page_processing_failed", pages=len(pages))
            raise OcrProcessingError(ALL_PAGES_FAILED)

        merged = self.merger.merge(results, failures)
        merged = merged.model_copy(update={"processing_time_ms": _elapsed_ms(start)})

        logger.info("multi_page_processing_complete",
                   pages=len(pages),
                   failed_pages=len(failures),
                   processing_time_ms=merged.processing_time_ms)

        return merged

    def is_service_available(self) -> bool:
        return self.selector.is_any_available()

    def active_provider_name(self) -> str:
        return self.selector.active_provider_name()


# Singleton service instance (configured from environment)
_default_service: Optional[ReceiptOcrService] = None


def get_receipt_ocr_service() -> ReceiptOcrService:
    """Get the default receipt OCR service (singleton)"""
    global _default_service

    if _default_service is None:
        settings = get_settings()
        _default_service = ReceiptOcrService(
            normalizer=ImageNormalizer(settings),
            selector=get_provider_selector(),
            extractor=FieldExtractor(settings),
        )

    return _default_service
