"""
AWS Textract OCR Provider

Cloud OCR used when Tesseract is unavailable (or listed after it in
OCR_PROVIDERS). Disabled unless TEXTRACT_ENABLED=true and AWS credentials
resolve.
"""
import asyncio
import io
import time
from typing import Any, Optional

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError, NoCredentialsError

from expense_ocr.common.config import Settings
from expense_ocr.parsers.ocr.base import NormalizedImage, OcrResult, ProviderAvailability

logger = structlog.get_logger()


class TextractProvider:
    """
    AWS Textract OCR provider.

    Sends the normalized image as PNG to detect_document_text and joins
    the LINE blocks. Confidence is the mean LINE confidence (0-100).
    """

    provider_name = "Textract"

    def __init__(self, settings: Settings, client: Optional[Any] = None):
        """
        Initialize Textract provider.

        Args:
            settings: Application settings (enable flag, AWS region)
            client: Preconfigured boto3 Textract client (created from
                settings when omitted)
        """
        self.region = settings.aws_textract_region
        self._availability = ProviderAvailability()
        self.textract = client

        if not settings.textract_enabled:
            self._availability.mark_unavailable("Textract is disabled (TEXTRACT_ENABLED=false)")
            logger.info("textract_disabled")
            return

        if self.textract is None:
            session = boto3.Session(region_name=self.region)
            if session.get_credentials() is None:
                self._availability.mark_unavailable("AWS credentials not configured for Textract")
                logger.warning("textract_unavailable", reason="no_aws_credentials")
                return
            self.textract = session.client("textract")

        self._availability.mark_available()
        logger.info("textract_provider_initialized", region=self.region)

    def is_available(self) -> bool:
        return self._availability.available

    @property
    def unavailable_reason(self) -> Optional[str]:
        return self._availability.reason

    async def extract_text(self, image: NormalizedImage) -> OcrResult:
        """
        Extract text from a normalized image using AWS Textract.

        Args:
            image: Image produced by the normalizer

        Returns:
            OcrResult with the joined LINE text, or a failure result
        """
        if not self.is_available():
            return OcrResult.failure(
                self.unavailable_reason or "Textract is not available",
                method="textract",
            )

        if image is None:
            return OcrResult.failure("Image is null", method="textract")

        buffer = io.BytesIO()
        image.image.save(buffer, format="PNG")
        image_bytes = buffer.getvalue()

        logger.info("calling_textract", size_bytes=len(image_bytes))
        start = time.perf_counter()

        try:
            response = await asyncio.to_thread(
                self.textract.detect_document_text,
                Document={"Bytes": image_bytes},
            )
        except (NoCredentialsError, EndpointConnectionError) as e:
            reason = f"Textract unreachable: {e}"
            self._availability.mark_unavailable(reason, fatal=True)
            logger.error("textract_fatal_error", error=str(e), exc_info=True)
            return OcrResult.failure(reason, method="textract")
        except (ClientError, BotoCoreError) as e:
            logger.error("textract_failed", error=str(e), exc_info=True)
            return OcrResult.failure(f"Textract extraction failed: {e}", method="textract")

        processing_time_ms = int((time.perf_counter() - start) * 1000)

        text_blocks = []
        confidences = []
        for block in response.get("Blocks", []):
            if block.get("BlockType") == "LINE":
                text_blocks.append(block.get("Text", ""))
                if "Confidence" in block:
                    confidences.append(block["Confidence"])

        text = "\n".join(text_blocks)
        avg_confidence = sum(confidences) / len(confidences) if confidences else 0.0

        logger.info("textract_complete",
                   chars=len(text),
                   lines=len(text_blocks),
                   confidence=avg_confidence,
                   processing_time_ms=processing_time_ms)

        return OcrResult.ok(
            text=text,
            confidence=max(0.0, min(100.0, avg_confidence)),
            processing_time_ms=processing_time_ms,
            method="textract",
            image_width=image.width,
            image_height=image.height,
        )
