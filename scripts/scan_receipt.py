#!/usr/bin/env python3
"""
Scan one or more receipt images and print the extracted record as JSON.

Several images are treated as pages of the same receipt and merged.

Usage:
    python scripts/scan_receipt.py <image> [<image> ...]

Example:
    python scripts/scan_receipt.py IMG_001.heic IMG_002.heic
"""
import sys
import os
import asyncio
from pathlib import Path

# Add parent directory to path so we can import modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from expense_ocr.common.config import get_settings
from expense_ocr.common.logging import configure_logging
from expense_ocr.parsers.image_normalizer import InvalidImageError
from expense_ocr.parsers.ocr import OcrProcessingError
from expense_ocr.services.receipt_ocr_service import get_receipt_ocr_service


async def main():
    if len(sys.argv) < 2:
        print("Usage: python scripts/scan_receipt.py <image> [<image> ...]")
        sys.exit(1)

    configure_logging(get_settings())
    service = get_receipt_ocr_service()

    if not service.is_service_available():
        print("No OCR provider is available. Install Tesseract or enable Textract.", file=sys.stderr)
        sys.exit(2)

    paths = [Path(arg) for arg in sys.argv[1:]]
    pages = [(path.read_bytes(), path.name) for path in paths]

    print(f"Scanning {len(pages)} image(s) with {service.active_provider_name()}...", file=sys.stderr)

    try:
        if len(pages) == 1:
            record = await service.process_single(*pages[0])
        else:
            record = await service.process_multi(pages)
    except (InvalidImageError, OcrProcessingError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(record.model_dump_json(indent=2))


if __name__ == "__main__":
    asyncio.run(main())
