"""
Tests for settings, size parsing and logging setup
"""
import json

import pytest
import structlog
from pydantic import ValidationError

from expense_ocr.common.config import Settings, get_settings, parse_file_size
from expense_ocr.common.logging import configure_logging


class TestParseFileSize:
    """Human-readable size strings"""

    @pytest.mark.parametrize("size_str,expected", [
        ("10MB", 10 * 1024 * 1024),
        ("512KB", 512 * 1024),
        ("1GB", 1024 ** 3),
        ("2048", 2048),
        (" 5mb ", 5 * 1024 * 1024),
    ])
    def test_parses_suffixes(self, size_str, expected):
        assert parse_file_size(size_str) == expected

    @pytest.mark.parametrize("size_str", ["ten megabytes", "MB", "1.5MB", ""])
    def test_rejects_garbage(self, size_str):
        with pytest.raises(ValueError):
            parse_file_size(size_str)


class TestSettings:
    """Environment-driven configuration"""

    def test_defaults(self):
        settings = Settings()

        assert settings.max_width == 2000
        assert settings.max_height == 2000
        assert settings.max_file_size_bytes == 10 * 1024 * 1024
        assert "heic" in settings.allowed_extensions_list
        assert settings.ocr_provider_order == ["tesseract", "textract"]
        assert settings.item_price_ceiling == 50000.0
        assert settings.item_match_tolerance == 1.0

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("OCR_MAX_WIDTH", "1500")
        monkeypatch.setenv("UPLOAD_ALLOWED_EXTENSIONS", "JPG, .png")
        monkeypatch.setenv("OCR_PROVIDERS", "Textract")

        settings = Settings()

        assert settings.max_width == 1500
        assert settings.allowed_extensions_list == ["jpg", "png"]
        assert settings.ocr_provider_order == ["textract"]

    def test_log_level_is_normalized(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    @pytest.mark.parametrize("kwargs", [
        {"log_level": "verbose"},
        {"log_format": "xml"},
        {"max_file_size": "lots"},
    ])
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValidationError):
            Settings(**kwargs)

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestLogging:
    """structlog configuration"""

    @pytest.fixture(autouse=True)
    def reset_structlog(self):
        yield
        structlog.reset_defaults()

    def test_json_renderer_writes_to_stderr(self, capsys):
        configure_logging(Settings(log_format="json", log_level="INFO"))

        structlog.get_logger().info("receipt_scanned", pages=2)

        captured = capsys.readouterr()
        line = json.loads(captured.err.strip().splitlines()[-1])
        assert line["event"] == "receipt_scanned"
        assert line["pages"] == 2
        assert line["level"] == "info"
        assert "timestamp" in line
        assert captured.out == ""

    def test_level_filtering(self, capsys):
        configure_logging(Settings(log_format="json", log_level="WARNING"))

        logger = structlog.get_logger()
        logger.info("hidden_event")
        logger.warning("shown_event")

        err = capsys.readouterr().err
        assert "hidden_event" not in err
        assert "shown_event" in err

    def test_console_renderer_selected(self):
        configure_logging(Settings(log_format="console"))

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
