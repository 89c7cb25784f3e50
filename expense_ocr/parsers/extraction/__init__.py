"""
Receipt field extraction

    from expense_ocr.parsers.extraction import FieldExtractor

    record = FieldExtractor().extract(ocr_text)
"""
from expense_ocr.parsers.extraction.field_extractor import (
    ConfidenceMapBuilder,
    FieldExtractor,
    FieldResult,
    parse_amount,
)

__all__ = [
    "ConfidenceMapBuilder",
    "FieldExtractor",
    "FieldResult",
    "parse_amount",
]
