"""
Tests for upload validation and OCR preprocessing
"""
import pytest
from PIL import Image

from expense_ocr.common.config import Settings
from expense_ocr.common.schemas.receipt_extraction import ImageQuality
from expense_ocr.parsers.image_normalizer import (
    ImageNormalizer,
    InvalidImageError,
    assess_quality,
    get_file_extension,
    sharpen,
    stretch_contrast,
)

from conftest import make_image_bytes


def pixels(image: Image.Image) -> list:
    """Row-major grayscale values"""
    return list(image.tobytes())


class TestValidation:
    """Extension whitelist and size ceiling"""

    @pytest.mark.parametrize("filename", [
        "receipt.jpg", "receipt.JPEG", "scan.png", "IMG_0001.HEIC", "page.tiff", "photo.webp",
    ])
    def test_whitelisted_extensions_pass(self, normalizer, filename):
        normalizer.validate(b"not checked here", filename)

    @pytest.mark.parametrize("filename", ["receipt.pdf", "receipt.exe", "receipt", "receipt.", ".env"])
    def test_other_extensions_rejected(self, normalizer, filename):
        with pytest.raises(InvalidImageError, match="Invalid file type"):
            normalizer.validate(b"data", filename)

    def test_empty_upload_rejected(self, normalizer):
        with pytest.raises(InvalidImageError, match="No image file provided"):
            normalizer.validate(b"", "receipt.png")

    def test_missing_filename_rejected(self, normalizer):
        with pytest.raises(InvalidImageError, match="Invalid filename"):
            normalizer.validate(b"data", None)

    def test_oversized_upload_rejected(self):
        normalizer = ImageNormalizer(Settings(max_file_size="1KB"))

        with pytest.raises(InvalidImageError, match="File size exceeds maximum allowed: 1KB"):
            normalizer.validate(b"x" * 2048, "receipt.png")

    def test_file_extension(self):
        assert get_file_extension("a.b.PNG") == "PNG"
        assert get_file_extension("noext") == ""


class TestNormalize:
    """Decode and preprocessing pipeline"""

    def test_undecodable_bytes_rejected(self, normalizer):
        with pytest.raises(InvalidImageError, match="Could not read image file"):
            normalizer.normalize(b"definitely not a png", "receipt.png")

    def test_decompression_bomb_rejected(self, normalizer, monkeypatch):
        # A small file can still declare more pixels than Pillow will decode
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

        with pytest.raises(InvalidImageError, match="Could not read image file"):
            normalizer.normalize(make_image_bytes(100, 100), "huge.png")

    def test_output_is_grayscale(self, normalizer):
        image = normalizer.normalize(make_image_bytes(640, 480), "receipt.png")

        assert image.image.mode == "L"
        assert (image.width, image.height) == (640, 480)
        assert image.source_filename == "receipt.png"

    def test_jpeg_decodes(self, normalizer):
        image = normalizer.normalize(make_image_bytes(300, 300, fmt="JPEG"), "receipt.jpg")

        assert image.image.mode == "L"

    def test_large_image_scaled_uniformly(self, normalizer):
        image = normalizer.normalize(make_image_bytes(3000, 1000), "wide.png")

        assert (image.width, image.height) == (2000, 667)

    def test_tall_image_scaled_to_height(self):
        normalizer = ImageNormalizer(Settings(max_width=2000, max_height=1000))

        image = normalizer.normalize(make_image_bytes(500, 4000), "long.png")

        assert (image.width, image.height) == (125, 1000)

    def test_preprocessing_disabled_returns_decoded_image(self):
        normalizer = ImageNormalizer(Settings(preprocessing_enabled=False))

        image = normalizer.normalize(make_image_bytes(3000, 1000), "wide.png")

        assert image.image.mode == "RGB"
        assert (image.width, image.height) == (3000, 1000)


class TestContrastStretch:
    """Intensity stretching"""

    def _gradient(self, low: int, high: int) -> Image.Image:
        image = Image.new("L", (high - low + 1, 1))
        image.putdata(list(range(low, high + 1)))
        return image

    def test_full_range_after_stretch(self):
        stretched = stretch_contrast(self._gradient(60, 180))

        assert stretched.getextrema() == (0, 255)

    def test_values_stay_in_range_and_monotonic(self):
        source = self._gradient(100, 130)

        values = pixels(stretch_contrast(source))

        assert all(0 <= v <= 255 for v in values)
        assert values == sorted(values)

    def test_narrow_range_is_widened(self):
        # 100..130 is narrower than 50 levels, window becomes 80..150
        values = pixels(stretch_contrast(self._gradient(100, 130)))

        assert values[0] == int((100 - 80) * 255 / 70)
        assert values[-1] == int((130 - 80) * 255 / 70)

    def test_flat_image_does_not_fail(self):
        flat = Image.new("L", (10, 10), color=0)

        values = set(pixels(stretch_contrast(flat)))

        assert values == {0}


class TestSharpen:
    """3x3 sharpening kernel"""

    def _spot(self, value: int) -> Image.Image:
        image = Image.new("L", (4, 4), color=10)
        image.putpixel((1, 1), value)
        return image

    def test_interior_uses_kernel(self):
        sharpened = sharpen(self._spot(30))

        assert sharpened.getpixel((1, 1)) == 5 * 30 - 4 * 10
        assert sharpened.getpixel((2, 2)) == 5 * 10 - 4 * 10

    def test_results_are_clamped(self):
        sharpened = sharpen(self._spot(100))

        assert sharpened.getpixel((1, 1)) == 255
        # 5*10 - (100 + 10 + 10 + 10) is negative
        assert sharpened.getpixel((2, 1)) == 0
        assert sharpened.getpixel((1, 2)) == 0

    def test_border_pixels_unchanged(self):
        source = self._spot(100)

        sharpened = sharpen(source)

        border = [(x, y) for x in range(4) for y in range(4) if x in (0, 3) or y in (0, 3)]
        assert all(sharpened.getpixel(xy) == source.getpixel(xy) for xy in border)
        assert sharpened.getpixel((0, 1)) == 10


class TestQuality:
    """Quality grading from dimensions"""

    @pytest.mark.parametrize("size,expected", [
        ((1000, 800), ImageQuality.GOOD),
        ((800, 600), ImageQuality.GOOD),
        ((799, 600), ImageQuality.FAIR),
        ((400, 300), ImageQuality.FAIR),
        ((199, 1000), ImageQuality.POOR),
        ((1000, 150), ImageQuality.POOR),
    ])
    def test_grades(self, size, expected):
        assert assess_quality(Image.new("L", size)) == expected

    def test_missing_image_is_poor(self, normalizer):
        assert assess_quality(None) == ImageQuality.POOR
        assert normalizer.assess_quality(None) == ImageQuality.POOR

    def test_depends_only_on_dimensions(self):
        dark = Image.new("L", (900, 700), color=0)
        light = Image.new("RGB", (900, 700), color=(255, 255, 255))

        assert assess_quality(dark) == assess_quality(light) == ImageQuality.GOOD
