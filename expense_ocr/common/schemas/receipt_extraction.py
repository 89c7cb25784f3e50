"""
Receipt extraction schema (Pydantic models)
Structured output of the OCR pipeline for one receipt (single or multi-page)
"""
import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConfidenceLevel(str, Enum):
    """Coarse rating of how strongly the text supported a value"""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def score(self) -> float:
        return CONFIDENCE_SCORES[self]


CONFIDENCE_SCORES = {
    ConfidenceLevel.HIGH: 0.9,
    ConfidenceLevel.MEDIUM: 0.6,
    ConfidenceLevel.LOW: 0.3,
}


class ImageQuality(str, Enum):
    """Image fitness for OCR, graded from dimensions"""
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


class FieldConfidence(BaseModel):
    """Confidence attached to one extracted field"""
    model_config = ConfigDict(frozen=True)

    field: str = Field(..., description="Field name (merchant, amount, date, tax)")
    level: ConfidenceLevel
    reason: str = Field(..., description="Why this level was assigned")
    score: float = Field(..., ge=0.0, le=1.0)

    @classmethod
    def of(cls, field: str, level: ConfidenceLevel, reason: str) -> "FieldConfidence":
        return cls(field=field, level=level, reason=reason, score=level.score)

    @classmethod
    def high(cls, field: str, reason: str) -> "FieldConfidence":
        return cls.of(field, ConfidenceLevel.HIGH, reason)

    @classmethod
    def medium(cls, field: str, reason: str) -> "FieldConfidence":
        return cls.of(field, ConfidenceLevel.MEDIUM, reason)

    @classmethod
    def low(cls, field: str, reason: str) -> "FieldConfidence":
        return cls.of(field, ConfidenceLevel.LOW, reason)


class ExtractedExpenseItem(BaseModel):
    """Single line item harvested from receipt text"""
    model_config = ConfigDict(frozen=True)

    description: str
    quantity: Decimal = Field(default=Decimal("1"), ge=0)
    unit_price: Optional[Decimal] = None
    total_price: Decimal
    confidence: ConfidenceLevel

    @property
    def dedup_key(self) -> str:
        """Normalized (description, total) key used to collapse duplicates"""
        description = " ".join(self.description.lower().split())
        total = self.total_price.quantize(Decimal("0.01"))
        return f"{description}|{total}"


class ReceiptRecord(BaseModel):
    """
    Extracted receipt data with per-field confidence

    One record per page; multi-page scans are merged into a new record.
    """
    merchant: Optional[str] = None
    amount: Optional[Decimal] = Field(None, description="Grand total")
    date: Optional[dt.date] = Field(None, description="Transaction date")
    tax: Optional[Decimal] = None
    subtotal: Optional[Decimal] = None
    currency: Optional[str] = Field(None, description="ISO currency code")
    payment_method: Optional[str] = None

    items: List[ExtractedExpenseItem] = Field(default_factory=list)

    confidence_map: Dict[str, FieldConfidence] = Field(default_factory=dict)
    overall_confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    raw_text: Optional[str] = None
    processing_time_ms: int = Field(default=0, ge=0)
    image_quality: Optional[ImageQuality] = None
    suggested_category: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "merchant": "STAR BAZAAR PVT LTD",
                "amount": 1234.50,
                "date": "2024-03-15",
                "tax": 58.79,
                "subtotal": 1175.71,
                "currency": "INR",
                "payment_method": "UPI",
                "items": [
                    {
                        "description": "Watermelon Sugar Q",
                        "quantity": 3.945,
                        "unit_price": 82.85,
                        "total_price": 134.13,
                        "confidence": "HIGH",
                    }
                ],
                "confidence_map": {
                    "amount": {
                        "field": "amount",
                        "level": "HIGH",
                        "reason": "Total amount found with keyword label",
                        "score": 0.9,
                    }
                },
                "overall_confidence": 0.75,
                "image_quality": "GOOD",
                "suggested_category": "Groceries",
                "warnings": [],
            }
        }
    )
