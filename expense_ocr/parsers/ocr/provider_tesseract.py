"""
Tesseract OCR Provider

Free, local OCR for receipt images. Requires the tesseract-ocr system
package and language training data (eng.traineddata by default).

Availability is decided once at construction by running a smoke test
against a blank image. A fatal engine error during real use (binary gone,
process cannot start) flips the provider to unavailable for good.
"""
import asyncio
import re
import time
from pathlib import Path
from typing import Iterable, List, Optional

import pytesseract
import structlog
from PIL import Image

from expense_ocr.common.config import Settings
from expense_ocr.parsers.ocr.base import NormalizedImage, OcrResult, ProviderAvailability

logger = structlog.get_logger()

# Characters Tesseract may emit; everything else is treated as noise
CHAR_WHITELIST = (
    "0123456789"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "abcdefghijklmnopqrstuvwxyz"
    ".,/$₹€£@#%&*()-+=:;"
)

# Characters that count as legitimate when estimating garble
_PLAIN_PUNCTUATION = set(".,/$@#%&*()-+=:;'\"₹€£¥")

_DECIMAL_AMOUNT = re.compile(r"\d+\.\d{2}")
_DATE_LIKE = re.compile(r"\d{1,2}[/-]\d{1,2}[/-]\d{2,4}")

# Conventional build-output locations, relative to the working directory
BUILD_TESSDATA_DIRS = [
    Path("tessdata"),
    Path("build/tessdata"),
]

# Package-adjacent tessdata (shipped next to the expense_ocr package)
PACKAGE_TESSDATA_DIR = Path(__file__).resolve().parents[3] / "tessdata"

SYSTEM_TESSDATA_DIRS = [
    Path.home() / "AppData/Local/Programs/Tesseract-OCR/tessdata",
    Path.home() / "AppData/Local/Tesseract-OCR/tessdata",
    Path("C:/Program Files/Tesseract-OCR/tessdata"),
    Path("C:/Program Files (x86)/Tesseract-OCR/tessdata"),
    Path("/usr/share/tesseract-ocr/4.00/tessdata"),
    Path("/usr/share/tesseract-ocr/5/tessdata"),
    Path("/usr/share/tessdata"),
    Path("/usr/local/share/tessdata"),
    Path("/opt/homebrew/share/tessdata"),
    Path.home() / "tessdata",
]


def resolve_tessdata_path(
    configured_path: Optional[str],
    language: str = "eng",
    search_paths: Optional[Iterable[Path]] = None,
) -> Optional[Path]:
    """
    Find a tessdata directory containing training data for `language`.

    Resolution order: explicit configured path, conventional build output
    directories, package-adjacent directory, OS install locations.

    Returns:
        Absolute path to the directory, or None to let Tesseract use its
        compiled-in default
    """
    traineddata = f"{language.split('+')[0]}.traineddata"

    candidates: List[Path] = []
    if configured_path:
        candidates.append(Path(configured_path))
    if search_paths is None:
        candidates.extend(BUILD_TESSDATA_DIRS)
        candidates.append(PACKAGE_TESSDATA_DIR)
        candidates.extend(SYSTEM_TESSDATA_DIRS)
    else:
        candidates.extend(search_paths)

    for candidate in candidates:
        if candidate.is_dir() and (candidate / traineddata).exists():
            logger.info("tessdata_resolved", path=str(candidate.absolute()))
            return candidate.absolute()

    logger.warning("tessdata_not_found",
                   language=language,
                   message="No tessdata directory found, Tesseract will use its defaults")
    return None


def estimate_confidence(text: Optional[str]) -> float:
    """
    Estimate OCR confidence (0-100) from receipt-like features of the text.

    Tesseract's per-word confidences are unreliable on receipt photos, so
    the score is built from what a receipt should contain: currency symbols,
    decimal amounts, total keywords and dates, minus a penalty when more
    than 10% of the characters are garbage.
    """
    if text is None or not text.strip():
        return 0.0

    confidence = 50.0

    if any(symbol in text for symbol in ("$", "€", "£", "₹", "¥")):
        confidence += 10
    if _DECIMAL_AMOUNT.search(text):
        confidence += 10
    lower = text.lower()
    if "total" in lower or "subtotal" in lower:
        confidence += 10
    if _DATE_LIKE.search(text):
        confidence += 5

    garble_count = sum(
        1 for c in text
        if not c.isalnum() and not c.isspace() and c not in _PLAIN_PUNCTUATION
    )
    if garble_count / len(text) > 0.1:
        confidence -= 20

    return max(0.0, min(100.0, confidence))


class TesseractProvider:
    """
    Tesseract OCR provider for receipt images.

    Configured for receipts: restricted character set, preserved
    inter-word spacing, configurable language / page segmentation / engine
    mode.
    """

    provider_name = "Tesseract"

    def __init__(self, settings: Settings, run_smoke_test: bool = True):
        """
        Initialize Tesseract provider.

        Args:
            settings: Application settings (language, modes, paths)
            run_smoke_test: Probe the engine now; when False the provider
                stays unavailable until check_engine() is called
        """
        if settings.tesseract_path:
            pytesseract.pytesseract.tesseract_cmd = settings.tesseract_path

        self.language = settings.tesseract_language
        self.tessdata_dir = resolve_tessdata_path(
            settings.tesseract_data_path,
            language=settings.tesseract_language,
        )
        self.config = self._build_config(
            page_seg_mode=settings.tesseract_page_seg_mode,
            oem_mode=settings.tesseract_oem_mode,
            tessdata_dir=self.tessdata_dir,
        )
        self._availability = ProviderAvailability()

        if run_smoke_test:
            self.check_engine()

    @staticmethod
    def _build_config(page_seg_mode: int, oem_mode: int, tessdata_dir: Optional[Path]) -> str:
        parts = [
            f"--oem {oem_mode}",
            f"--psm {page_seg_mode}",
            f"-c tessedit_char_whitelist={CHAR_WHITELIST}",
            "-c preserve_interword_spaces=1",
        ]
        if tessdata_dir is not None:
            parts.insert(0, f'--tessdata-dir "{tessdata_dir}"')
        return " ".join(parts)

    def check_engine(self) -> bool:
        """
        Run a smoke-test OCR over a blank 50x50 image and cache the outcome.

        A TesseractError means the engine started and rejected the input,
        which proves the installation works. A missing binary or OS-level
        failure marks the provider unavailable.
        """
        test_image = Image.new("RGB", (50, 50), color="white")
        try:
            pytesseract.image_to_string(test_image, lang=self.language, config=self.config)
        except pytesseract.TesseractNotFoundError as e:
            reason = (
                "Tesseract OCR binary not found. Install tesseract-ocr or set TESSERACT_PATH. "
                f"({e})"
            )
            self._availability.mark_unavailable(reason)
            logger.warning("tesseract_unavailable", reason=reason)
            return False
        except pytesseract.TesseractError as e:
            logger.debug("tesseract_smoke_test_rejected_input", error=str(e))
        except (OSError, RuntimeError) as e:
            reason = f"Failed to initialize Tesseract OCR: {e}"
            self._availability.mark_unavailable(reason)
            logger.error("tesseract_init_failed", reason=reason)
            return False

        self._availability.mark_available()
        logger.info("tesseract_provider_initialized",
                   language=self.language,
                   tessdata_dir=str(self.tessdata_dir) if self.tessdata_dir else None)
        return self.is_available()

    def is_available(self) -> bool:
        return self._availability.available

    @property
    def unavailable_reason(self) -> Optional[str]:
        return self._availability.reason

    def _run_engine(self, image: Image.Image) -> str:
        return pytesseract.image_to_string(image, lang=self.language, config=self.config)

    async def extract_text(self, image: NormalizedImage) -> OcrResult:
        """
        Extract text from a normalized receipt image.

        Args:
            image: Image produced by the normalizer

        Returns:
            OcrResult with extracted text and estimated confidence, or a
            failure result when the engine errors
        """
        if not self.is_available():
            return OcrResult.failure(
                self.unavailable_reason or "Tesseract OCR is not available",
                method="tesseract",
            )

        if image is None:
            return OcrResult.failure("Image is null", method="tesseract")

        start = time.perf_counter()

        try:
            text = await asyncio.to_thread(self._run_engine, image.image)
        except pytesseract.TesseractError as e:
            logger.error("tesseract_failed", error=str(e), exc_info=True)
            return OcrResult.failure(f"OCR processing failed: {e}", method="tesseract")
        except (pytesseract.TesseractNotFoundError, OSError) as e:
            reason = f"Tesseract native error: {e}"
            self._availability.mark_unavailable(reason, fatal=True)
            logger.error("tesseract_fatal_error",
                        error=str(e),
                        message="Provider disabled for the rest of the process",
                        exc_info=True)
            return OcrResult.failure(
                "OCR engine error. Please ensure Tesseract is properly installed.",
                method="tesseract",
            )

        processing_time_ms = int((time.perf_counter() - start) * 1000)
        confidence = estimate_confidence(text)

        logger.info("tesseract_complete",
                   chars=len(text),
                   confidence=confidence,
                   processing_time_ms=processing_time_ms)

        return OcrResult.ok(
            text=text,
            confidence=confidence,
            processing_time_ms=processing_time_ms,
            method="tesseract",
            image_width=image.width,
            image_height=image.height,
        )
