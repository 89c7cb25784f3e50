"""
Application configuration using Pydantic Settings
Reads from environment variables and .env file
"""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_SIZE_MULTIPLIERS = {
    "KB": 1024,
    "MB": 1024 * 1024,
    "GB": 1024 * 1024 * 1024,
}


def parse_file_size(size_str: str) -> int:
    """
    Parse a human-readable size string into bytes.

    "10MB" -> 10485760, "512KB" -> 524288, "2048" -> 2048

    Raises:
        ValueError: If the string is not a whole number with an optional
            KB/MB/GB suffix
    """
    size_str = size_str.strip().upper()
    multiplier = 1

    for suffix, factor in _SIZE_MULTIPLIERS.items():
        if size_str.endswith(suffix):
            multiplier = factor
            size_str = size_str[:-len(suffix)]
            break

    return int(size_str.strip()) * multiplier


class Settings(BaseSettings):
    """Application settings from environment"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    # Image preprocessing
    preprocessing_enabled: bool = Field(default=True, alias="OCR_PREPROCESSING_ENABLED")
    max_width: int = Field(default=2000, gt=0, alias="OCR_MAX_WIDTH")
    max_height: int = Field(default=2000, gt=0, alias="OCR_MAX_HEIGHT")

    # Upload validation
    allowed_extensions: str = Field(
        default="jpg,jpeg,png,bmp,gif,tiff,tif,webp,heic,heif",
        alias="UPLOAD_ALLOWED_EXTENSIONS",
    )
    max_file_size: str = Field(default="10MB", alias="UPLOAD_MAX_FILE_SIZE")

    # OCR providers, tried in this order
    ocr_providers: str = Field(default="tesseract,textract", alias="OCR_PROVIDERS")

    # Tesseract
    tesseract_language: str = Field(default="eng", alias="TESSERACT_LANGUAGE")
    tesseract_page_seg_mode: int = Field(default=3, ge=0, le=13, alias="TESSERACT_PAGE_SEG_MODE")
    tesseract_oem_mode: int = Field(default=3, ge=0, le=3, alias="TESSERACT_OEM_MODE")
    tesseract_data_path: Optional[str] = Field(default=None, alias="TESSERACT_DATA_PATH")
    tesseract_path: Optional[str] = Field(default=None, alias="TESSERACT_PATH")

    # AWS Textract (second provider, off unless explicitly enabled)
    textract_enabled: bool = Field(default=False, alias="TEXTRACT_ENABLED")
    aws_textract_region: str = Field(default="us-east-1", alias="AWS_TEXTRACT_REGION")

    # Line item heuristics, tuned on regional hypermarket bills
    item_price_ceiling: float = Field(default=50000.0, gt=0, alias="ITEM_PRICE_CEILING")
    item_match_tolerance: float = Field(default=1.0, ge=0, alias="ITEM_MATCH_TOLERANCE")

    @property
    def allowed_extensions_list(self) -> List[str]:
        """Allowed upload extensions, lower-cased, without dots"""
        return [
            ext.strip().lower().lstrip(".")
            for ext in self.allowed_extensions.split(",")
            if ext.strip()
        ]

    @property
    def max_file_size_bytes(self) -> int:
        """Upload size ceiling in bytes"""
        return parse_file_size(self.max_file_size)

    @property
    def ocr_provider_order(self) -> List[str]:
        """Provider names in registration order"""
        return [name.strip().lower() for name in self.ocr_providers.split(",") if name.strip()]

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Validate log renderer"""
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"LOG_FORMAT must be one of {valid_formats}")
        return v.lower()

    @field_validator("max_file_size")
    @classmethod
    def validate_max_file_size(cls, v):
        """Reject size strings that cannot be parsed"""
        try:
            parse_file_size(v)
        except ValueError as e:
            raise ValueError(f"UPLOAD_MAX_FILE_SIZE must look like '10MB', got {v!r}") from e
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
