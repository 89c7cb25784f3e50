"""
Image normalizer - Prepares uploaded receipt photos for OCR

Pipeline (fixed order):
1. Validate upload (extension whitelist, size ceiling)
2. Decode (JPEG/PNG/..., HEIC/HEIF via pillow-heif)
3. Resize if larger than OCR_MAX_WIDTH x OCR_MAX_HEIGHT
4. Grayscale
5. Contrast stretch
6. Sharpen

Steps 3-6 are skipped when OCR_PREPROCESSING_ENABLED=false.
"""
import io
from typing import List, Optional

import structlog
from PIL import Image, ImageFilter, UnidentifiedImageError
from pillow_heif import register_heif_opener

from expense_ocr.common.config import Settings
from expense_ocr.common.schemas.receipt_extraction import ImageQuality
from expense_ocr.parsers.ocr.base import NormalizedImage

# Register HEIF/HEIC support in Pillow
register_heif_opener()

logger = structlog.get_logger()

# Images whose intensity range is narrower than this get a wider window
NARROW_RANGE = 50
RANGE_PADDING = 20

SHARPEN_KERNEL = ImageFilter.Kernel(
    (3, 3),
    [
        0, -1, 0,
        -1, 5, -1,
        0, -1, 0,
    ],
    scale=1,
    offset=0,
)

POOR_MIN_DIMENSION = 200
GOOD_MIN_WIDTH = 800
GOOD_MIN_HEIGHT = 600


class InvalidImageError(Exception):
    """Raised when an upload is missing, of the wrong type, too large or undecodable"""
    pass


def get_file_extension(filename: str) -> str:
    """Extension after the last dot, '' when there is none ("receipt." and ".env" included)"""
    last_dot = filename.rfind(".")
    if 0 < last_dot < len(filename) - 1:
        return filename[last_dot + 1:]
    return ""


def stretch_contrast(image: Image.Image) -> Image.Image:
    """
    Linearly stretch a grayscale image's intensities to 0-255.

    When the observed range is narrow (< 50 levels) the window is widened by
    20 levels on each side first, so near-flat images are not blown out.
    """
    low, high = image.getextrema()

    if high - low < NARROW_RANGE:
        low = max(0, low - RANGE_PADDING)
        high = min(255, high + RANGE_PADDING)

    scale = 255.0 / (high - low)
    lut = [max(0, min(255, int((value - low) * scale))) for value in range(256)]

    return image.point(lut)


def sharpen(image: Image.Image) -> Image.Image:
    """Apply the 3x3 sharpening kernel; border pixels are copied unchanged"""
    return image.filter(SHARPEN_KERNEL)


def assess_quality(image: Optional[Image.Image]) -> ImageQuality:
    """
    Grade an image for OCR from its dimensions alone.

    POOR below 200px on either side, GOOD from 800x600 up, FAIR otherwise.
    """
    if image is None:
        return ImageQuality.POOR

    width, height = image.width, image.height

    if width < POOR_MIN_DIMENSION or height < POOR_MIN_DIMENSION:
        return ImageQuality.POOR

    if width >= GOOD_MIN_WIDTH and height >= GOOD_MIN_HEIGHT:
        return ImageQuality.GOOD

    return ImageQuality.FAIR


class ImageNormalizer:
    """Validates uploads and turns them into OCR-friendly grayscale images"""

    def __init__(self, settings: Settings):
        self.preprocessing_enabled = settings.preprocessing_enabled
        self.max_width = settings.max_width
        self.max_height = settings.max_height
        self.allowed_extensions: List[str] = settings.allowed_extensions_list
        self.allowed_extensions_display = settings.allowed_extensions
        self.max_file_size = settings.max_file_size
        self.max_file_size_bytes = settings.max_file_size_bytes

    def validate(self, image_bytes: Optional[bytes], filename: Optional[str]) -> None:
        """
        Validate an upload before decoding it.

        Raises:
            InvalidImageError: If the upload is empty, has no usable filename,
                has an extension outside the whitelist, or is too large
        """
        if not image_bytes:
            raise InvalidImageError("No image file provided")

        if not filename:
            raise InvalidImageError("Invalid filename")

        extension = get_file_extension(filename).lower()
        if extension not in self.allowed_extensions:
            raise InvalidImageError(
                f"Invalid file type. Allowed: {self.allowed_extensions_display}"
            )

        if len(image_bytes) > self.max_file_size_bytes:
            raise InvalidImageError(
                f"File size exceeds maximum allowed: {self.max_file_size}"
            )

    def decode(self, image_bytes: bytes) -> Image.Image:
        """
        Decode image bytes with Pillow.

        Raises:
            InvalidImageError: If the bytes are not a readable image
        """
        try:
            image = Image.open(io.BytesIO(image_bytes))
            image.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            logger.warning("image_decode_failed", error=str(e))
            raise InvalidImageError(
                "Could not read image file. Invalid or corrupted image format."
            ) from e
        return image

    def resize_if_needed(self, image: Image.Image) -> Image.Image:
        """Scale down uniformly so the image fits within the configured maximum"""
        if image.width <= self.max_width and image.height <= self.max_height:
            return image

        scale = min(self.max_width / image.width, self.max_height / image.height)
        new_size = (max(1, round(image.width * scale)), max(1, round(image.height * scale)))

        if image.mode not in ("L", "RGB"):
            image = image.convert("RGB")
        resized = image.resize(new_size, Image.Resampling.BILINEAR)

        logger.debug("image_resized",
                    original=f"{image.width}x{image.height}",
                    resized=f"{new_size[0]}x{new_size[1]}")
        return resized

    def normalize(self, image_bytes: bytes, filename: str) -> NormalizedImage:
        """
        Validate, decode and preprocess an uploaded receipt image.

        Args:
            image_bytes: Raw upload content
            filename: Declared filename (used for the extension check)

        Returns:
            NormalizedImage ready for OCR

        Raises:
            InvalidImageError: If validation or decoding fails
        """
        self.validate(image_bytes, filename)
        image = self.decode(image_bytes)

        if not self.preprocessing_enabled:
            logger.debug("preprocessing_disabled", filename=filename)
            return NormalizedImage(image=image, source_filename=filename)

        logger.debug("image_preprocessing_started",
                    filename=filename,
                    width=image.width,
                    height=image.height)

        resized = self.resize_if_needed(image)
        grayscale = resized.convert("L")
        enhanced = stretch_contrast(grayscale)
        sharpened = sharpen(enhanced)

        logger.debug("image_preprocessing_complete",
                    width=sharpened.width,
                    height=sharpened.height)

        return NormalizedImage(image=sharpened, source_filename=filename)

    def assess_quality(self, image: Optional[NormalizedImage]) -> ImageQuality:
        return assess_quality(image.image if image is not None else None)
