"""
OCR Provider Selector

Picks the first available OCR provider from an ordered list.
Selection is a pure function over the list; providers own their
availability state.
"""
from typing import Dict, List, Optional, Sequence

import structlog

from expense_ocr.common.config import Settings, get_settings
from expense_ocr.parsers.ocr.base import (
    NoProviderAvailableError,
    NormalizedImage,
    OcrProcessingError,
    OcrProvider,
    OcrResult,
)

logger = structlog.get_logger()


def select_provider(providers: Sequence[OcrProvider]) -> OcrProvider:
    """
    Return the first provider (registration order) that is available.

    Raises:
        NoProviderAvailableError: If no provider reports itself available
    """
    for provider in providers:
        if provider.is_available():
            return provider
    raise NoProviderAvailableError(
        "No OCR provider is available. Please install Tesseract OCR or enable Textract."
    )


class OcrProviderSelector:
    """
    Routes OCR requests to the first available provider.

    Strategy:
    - Providers are tried in registration order (OCR_PROVIDERS)
    - Unavailable providers are skipped without retrying
    - A provider failure is reported to the caller, not retried elsewhere
    """

    def __init__(self, providers: Sequence[OcrProvider]):
        self.providers: List[OcrProvider] = list(providers)

        logger.info("ocr_selector_initialized",
                   providers=[p.provider_name for p in self.providers],
                   available=[p.provider_name for p in self.providers if p.is_available()])

    def select(self) -> OcrProvider:
        return select_provider(self.providers)

    def is_any_available(self) -> bool:
        return any(p.is_available() for p in self.providers)

    def active_provider_name(self) -> str:
        """Name of the provider that would serve the next request, "None" if none"""
        try:
            return self.select().provider_name
        except NoProviderAvailableError:
            return "None"

    def provider_status(self) -> Dict[str, Optional[str]]:
        """
        Availability of every registered provider.

        Returns:
            Dict mapping provider name to None (available) or the reason it
            is unavailable
        """
        return {
            p.provider_name: None if p.is_available() else (p.unavailable_reason or "unavailable")
            for p in self.providers
        }

    async def perform_ocr(self, image: Optional[NormalizedImage]) -> OcrResult:
        """
        Run OCR on the image with the first available provider.

        Args:
            image: Normalized image

        Returns:
            Successful OcrResult

        Raises:
            OcrProcessingError: If the image is missing, no provider is
                available, or the provider returned a failure
        """
        if image is None:
            raise OcrProcessingError("Image is null")

        provider = self.select()

        logger.info("ocr_extract_started",
                   provider=provider.provider_name,
                   width=image.width,
                   height=image.height)

        result = await provider.extract_text(image)

        if not result.success:
            logger.error("ocr_extract_failed",
                        provider=provider.provider_name,
                        error=result.error_message)
            raise OcrProcessingError(result.error_message or "OCR processing failed")

        return result


def build_default_providers(settings: Settings) -> List[OcrProvider]:
    """
    Instantiate providers in the order named by OCR_PROVIDERS.

    Unknown names are logged and ignored.
    """
    providers: List[OcrProvider] = []

    for name in settings.ocr_provider_order:
        if name == "tesseract":
            from expense_ocr.parsers.ocr.provider_tesseract import TesseractProvider
            providers.append(TesseractProvider(settings))
        elif name == "textract":
            from expense_ocr.parsers.ocr.provider_textract import TextractProvider
            providers.append(TextractProvider(settings))
        else:
            logger.warning("unknown_ocr_provider", name=name)

    return providers


# Singleton selector instance (configured from environment)
_default_selector: Optional[OcrProviderSelector] = None


def get_provider_selector() -> OcrProviderSelector:
    """
    Get the default provider selector (singleton).

    Providers are built from settings on first use; availability checks
    (the Tesseract smoke test) run once here.
    """
    global _default_selector

    if _default_selector is None:
        _default_selector = OcrProviderSelector(build_default_providers(get_settings()))

    return _default_selector
