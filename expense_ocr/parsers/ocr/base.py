"""
OCR Provider Base Interface

Defines the contract for all OCR providers (Tesseract, Textract, etc.)
This allows swapping OCR backends via configuration without changing calling code.
"""
import threading
from dataclasses import dataclass
from typing import Optional, Protocol

from PIL import Image


@dataclass(frozen=True)
class NormalizedImage:
    """
    OCR-ready image produced by the image normalizer.

    Attributes:
        image: Pillow image (mode "L" when preprocessing is enabled)
        source_filename: Filename of the upload this image came from
    """
    image: Image.Image
    source_filename: Optional[str] = None

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


@dataclass(frozen=True)
class OcrResult:
    """
    Result from OCR extraction.

    Attributes:
        text: Extracted text content
        confidence: Overall confidence score (0 to 100)
        processing_time_ms: Time spent inside the OCR engine
        image_width: Width of the image that was read
        image_height: Height of the image that was read
        success: False when the provider could not produce text
        error_message: Human-readable failure reason
        method: Name of the provider that produced the result
    """
    text: str
    confidence: float  # 0 to 100
    processing_time_ms: int = 0
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    success: bool = True
    error_message: Optional[str] = None
    method: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate confidence is in valid range"""
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"Confidence must be 0-100, got {self.confidence}")

    @classmethod
    def ok(
        cls,
        text: str,
        confidence: float,
        processing_time_ms: int,
        method: str,
        image_width: Optional[int] = None,
        image_height: Optional[int] = None,
    ) -> "OcrResult":
        return cls(
            text=text,
            confidence=confidence,
            processing_time_ms=processing_time_ms,
            image_width=image_width,
            image_height=image_height,
            method=method,
        )

    @classmethod
    def failure(cls, error_message: str, method: Optional[str] = None) -> "OcrResult":
        return cls(
            text="",
            confidence=0.0,
            success=False,
            error_message=error_message,
            method=method,
        )


class OcrProvider(Protocol):
    """
    Protocol for OCR providers.

    All OCR providers must implement this interface to be compatible
    with the provider selector and calling code.
    """

    provider_name: str

    def is_available(self) -> bool:
        """
        Check whether the provider can currently serve requests.

        A provider that hits a fatal engine error flips itself to
        unavailable for the rest of the process lifetime.
        """
        ...

    @property
    def unavailable_reason(self) -> Optional[str]:
        """Why the provider is unavailable, None while it is available"""
        ...

    async def extract_text(self, image: NormalizedImage) -> OcrResult:
        """
        Extract text from a normalized image.

        Args:
            image: Image produced by the normalizer

        Returns:
            OcrResult; engine errors are reported as failure results
            rather than raised
        """
        ...


class OcrProcessingError(Exception):
    """Raised when OCR cannot produce text for an image"""
    pass


class NoProviderAvailableError(OcrProcessingError):
    """Raised when no registered OCR provider reports itself available"""
    pass


class ProviderAvailability:
    """
    Availability flag shared by concurrent OCR calls.

    Starts unavailable until the provider's startup check passes. Once
    marked unavailable after a fatal error it never recovers.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._available = False
        self._reason: Optional[str] = "Provider has not been initialized"
        self._fatal = False

    @property
    def available(self) -> bool:
        with self._lock:
            return self._available

    @property
    def reason(self) -> Optional[str]:
        with self._lock:
            return self._reason

    def mark_available(self) -> None:
        with self._lock:
            if self._fatal:
                return
            self._available = True
            self._reason = None

    def mark_unavailable(self, reason: str, fatal: bool = False) -> None:
        with self._lock:
            self._available = False
            self._reason = reason
            self._fatal = self._fatal or fatal
