"""
Field Extractor - Heuristic structured-field extraction from OCR text

Turns noisy receipt text (Indian GST receipts and generic Western receipts)
into a ReceiptRecord with a confidence entry per field.

Strategy:
- Each field has its own sub-extractor returning (value, confidence)
- Sub-extractors never raise on unparsable text; the field is left None
- Confidence entries are collected per call and weighted into an overall score
"""
import datetime as dt
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Sequence
import re

import structlog

from expense_ocr.common.config import Settings, get_settings
from expense_ocr.common.schemas.receipt_extraction import (
    ConfidenceLevel,
    ExtractedExpenseItem,
    FieldConfidence,
    ImageQuality,
    ReceiptRecord,
)
from expense_ocr.parsers.extraction import patterns

logger = structlog.get_logger()

NO_TEXT_WARNING = "OCR extraction produced no usable text"
MULTIPLE_DATES_WARNING = "Multiple dates found in receipt - using most recent"

CENTS = Decimal("0.01")

_LEADING_SYMBOL = re.compile(r"^(?:[₹$€£]|Rs\.?\s*|INR\s*)", re.IGNORECASE)


@dataclass(frozen=True)
class FieldResult:
    """Outcome of one sub-extractor: value (None when not found) plus optional confidence"""
    value: object = None
    confidence: Optional[FieldConfidence] = None
    warnings: List[str] = field(default_factory=list)


class ConfidenceMapBuilder:
    """Collects per-field confidence for a single extraction call"""

    def __init__(self):
        self._entries: Dict[str, FieldConfidence] = {}

    def add(self, result: FieldResult) -> None:
        if result.confidence is not None:
            self._entries[result.confidence.field] = result.confidence

    def build(self) -> Dict[str, FieldConfidence]:
        return dict(self._entries)


def parse_amount(amount_str: Optional[str]) -> Optional[Decimal]:
    """
    Parse a money string like "₹1,234.50", "Rs. 99.00" or "%45.00".

    Returns:
        Decimal amount, or None if the string does not hold a number
    """
    if amount_str is None or not amount_str.strip():
        return None

    cleaned = _LEADING_SYMBOL.sub("", amount_str.strip()).replace(",", "").strip()

    # One stray OCR glyph ahead of the digits ('%' for a misread '₹')
    if cleaned and not cleaned[0].isdigit() and cleaned[0] != ".":
        cleaned = cleaned[1:].strip()

    if not cleaned:
        return None

    try:
        return Decimal(cleaned)
    except InvalidOperation:
        logger.debug("amount_parse_failed", raw=amount_str, cleaned=cleaned)
        return None


def _shift_years(day: dt.date, years: int) -> dt.date:
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return day.replace(year=day.year + years, day=28)


def _month_number(name: str) -> int:
    lowered = name.lower()
    for index, abbreviation in enumerate(patterns.MONTH_ABBREVIATIONS):
        if lowered.startswith(abbreviation):
            return index + 1
    return 0


def _count_digits(text: str) -> int:
    return sum(1 for c in text if c.isdigit())


def _count_letters(text: str) -> int:
    return sum(1 for c in text if c.isascii() and c.isalpha())


def _clean_merchant(line: str) -> str:
    return " ".join(patterns.MERCHANT_NOISE.sub(" ", line).split())


def _contains_any(text: str, keywords: Sequence[str]) -> bool:
    return any(keyword in text for keyword in keywords)


class FieldExtractor:
    """
    Extracts merchant, totals, tax, date, currency, payment method, line
    items and a category suggestion from raw receipt text.
    """

    def __init__(self, settings: Optional[Settings] = None, today: Optional[dt.date] = None):
        """
        Args:
            settings: Application settings (item price ceiling and match tolerance)
            today: Reference date for date sanity checks (defaults to the
                current date on each call)
        """
        settings = settings or get_settings()
        self.price_ceiling = Decimal(str(settings.item_price_ceiling))
        self.match_tolerance = Decimal(str(settings.item_match_tolerance))
        self._today = today

    @property
    def today(self) -> dt.date:
        return self._today or dt.date.today()

    def extract(
        self,
        text: Optional[str],
        processing_time_ms: int = 0,
        image_quality: Optional[ImageQuality] = None,
    ) -> ReceiptRecord:
        """
        Extract every field from OCR text.

        Args:
            text: Raw OCR text
            processing_time_ms: OCR time carried onto the record
            image_quality: Quality grade carried onto the record

        Returns:
            ReceiptRecord with confidence map and overall confidence
        """
        if text is None or not text.strip():
            logger.warning("field_extraction_no_text")
            return ReceiptRecord(
                raw_text=text,
                processing_time_ms=processing_time_ms,
                image_quality=image_quality,
                overall_confidence=0.0,
                warnings=[NO_TEXT_WARNING],
            )

        confidence = ConfidenceMapBuilder()
        warnings: List[str] = []

        merchant = self.extract_merchant(text)
        amount = self.extract_total_amount(text)
        date = self.extract_date(text)
        tax = self.extract_tax(text)

        for result in (merchant, amount, date, tax):
            confidence.add(result)
        warnings.extend(date.warnings)

        confidence_map = confidence.build()
        items = self.extract_line_items(text)

        record = ReceiptRecord(
            merchant=merchant.value,
            amount=amount.value,
            date=date.value,
            tax=tax.value,
            subtotal=self.extract_subtotal(text).value,
            currency=self.detect_currency(text),
            payment_method=self.extract_payment_method(text),
            items=items,
            confidence_map=confidence_map,
            overall_confidence=self.calculate_overall_confidence(confidence_map),
            raw_text=text,
            processing_time_ms=processing_time_ms,
            image_quality=image_quality,
            suggested_category=self.suggest_category(merchant.value, text),
            warnings=warnings,
        )

        logger.info("field_extraction_complete",
                   merchant=record.merchant,
                   amount=str(record.amount) if record.amount is not None else None,
                   date=str(record.date) if record.date else None,
                   items=len(items),
                   overall_confidence=round(record.overall_confidence, 3))

        return record

    # --- Merchant ---------------------------------------------------------

    def extract_merchant(self, text: str) -> FieldResult:
        """
        Identify the merchant name.

        Tries, in order: known chain names, lines carrying a company suffix
        (Pvt Ltd, Limited), then the first plausible header line.
        """
        lines = text.splitlines()
        lower_text = text.lower()

        for name in patterns.KNOWN_MERCHANTS:
            if name not in lower_text:
                continue
            for line in lines:
                if name in line.lower():
                    merchant = _clean_merchant(line)
                    if 5 <= len(merchant) <= 60:
                        return FieldResult(merchant, FieldConfidence.high(
                            "merchant", "Merchant identified by known store pattern"))

        for line in lines:
            trimmed = line.strip()
            lower = trimmed.lower()
            has_suffix = (
                _contains_any(lower, patterns.COMPANY_SUFFIXES_ANYWHERE)
                or lower.endswith(patterns.COMPANY_SUFFIXES_AT_END)
            )
            if has_suffix and len(trimmed) >= 10 and not _contains_any(lower, patterns.MERCHANT_SKIP_KEYWORDS):
                return FieldResult(_clean_merchant(trimmed), FieldConfidence.high(
                    "merchant", "Merchant identified by company suffix"))

        candidates = self._merchant_candidates(lines)
        if candidates:
            candidate = _clean_merchant(candidates[0])
            letters = _count_letters(candidate)
            if letters >= 3 and letters > _count_digits(candidate) and len(candidate) <= 60:
                return FieldResult(candidate, FieldConfidence.low(
                    "merchant", "Merchant name extracted from first lines - verify manually"))

        return FieldResult(None, FieldConfidence.low("merchant", "No valid merchant name found"))

    def _merchant_candidates(self, lines: Sequence[str], limit: int = 5) -> List[str]:
        candidates = []
        for line in lines:
            trimmed = line.strip()
            if len(trimmed) < 4:
                continue

            lower = trimmed.lower()
            if _contains_any(lower, patterns.MERCHANT_SKIP_KEYWORDS):
                continue

            if (patterns.DATE_LIKE.search(trimmed)
                    or patterns.PRICE_WITH_SYMBOL.search(trimmed)
                    or patterns.NUMERIC_ONLY.match(trimmed)
                    or patterns.LEADING_ITEM_CODE.match(trimmed)):
                continue

            if _count_digits(trimmed) >= _count_letters(trimmed):
                continue

            candidates.append(trimmed)
            if len(candidates) >= limit:
                break
        return candidates

    # --- Amounts ----------------------------------------------------------

    def extract_total_amount(self, text: str) -> FieldResult:
        """
        Find the grand total.

        Labeled totals win (HIGH). Without a label the largest currency
        amount on the receipt is used (MEDIUM).
        """
        for pattern in patterns.TOTAL_PATTERNS:
            for match in pattern.finditer(text):
                amount = parse_amount(match.group(1))
                if amount is not None:
                    return FieldResult(amount, FieldConfidence.high(
                        "amount", "Total amount found with keyword label"))

        amounts = []
        for match in patterns.CURRENCY_TOKEN.finditer(text):
            amount = parse_amount(match.group(1) or match.group(2))
            if amount is not None:
                amounts.append(amount)

        if amounts:
            return FieldResult(max(amounts), FieldConfidence.medium(
                "amount", "Amount extracted as highest value - no 'TOTAL' keyword found"))

        return FieldResult(None, FieldConfidence.low("amount", "No amount could be extracted"))

    def extract_tax(self, text: str) -> FieldResult:
        """First labeled tax amount (GST components before Western taxes)"""
        for pattern in patterns.TAX_PATTERNS:
            for match in pattern.finditer(text):
                tax = parse_amount(match.group(1))
                if tax is not None:
                    return FieldResult(tax, FieldConfidence.high("tax", "Tax found with keyword label"))
        return FieldResult(None)

    def extract_subtotal(self, text: str) -> FieldResult:
        for pattern in patterns.SUBTOTAL_PATTERNS:
            for match in pattern.finditer(text):
                subtotal = parse_amount(match.group(1))
                if subtotal is not None:
                    return FieldResult(subtotal)
        return FieldResult(None)

    # --- Date -------------------------------------------------------------

    def extract_date(self, text: str) -> FieldResult:
        """
        Find the transaction date.

        All supported formats are scanned; dates outside the last 5 years
        (or more than a year ahead) are ignored. When several distinct dates
        remain, the most recent is used.
        """
        found = []
        for date_pattern in patterns.DATE_PATTERNS:
            for match in date_pattern.regex.finditer(text):
                parsed = self._parse_date(match, date_pattern)
                if parsed is not None and self._is_reasonable_date(parsed) and parsed not in found:
                    found.append(parsed)

        if not found:
            return FieldResult(None, FieldConfidence.low("date", "No date found"))

        if len(found) > 1:
            return FieldResult(
                max(found),
                FieldConfidence.medium("date", "Multiple dates found - selected most recent"),
                [MULTIPLE_DATES_WARNING],
            )

        return FieldResult(found[0], FieldConfidence.high("date", "Single date found"))

    def _parse_date(self, match: re.Match, date_pattern: patterns.DatePattern) -> Optional[dt.date]:
        parts = dict(zip(date_pattern.order, match.groups()))

        month_raw = parts["month"]
        if month_raw.isdigit():
            month = int(month_raw)
        else:
            month = _month_number(month_raw)
            if month == 0:
                return None

        day = int(parts["day"])
        year = int(parts["year"])
        if year < 100:
            year += 2000

        # Day-first reading failed but the other order works
        if month > 12 and day <= 12:
            month, day = day, month

        try:
            return dt.date(year, month, day)
        except ValueError:
            logger.debug("date_parse_failed", format=date_pattern.label, raw=match.group(0))
            return None

    def _is_reasonable_date(self, value: dt.date) -> bool:
        today = self.today
        return _shift_years(today, -5) <= value <= _shift_years(today, 1)

    # --- Payment / currency / category --------------------------------------

    def extract_payment_method(self, text: str) -> Optional[str]:
        upper_text = text.upper()
        for pattern, label in patterns.PAYMENT_PATTERNS:
            if pattern.search(upper_text):
                return label
        return None

    def detect_currency(self, text: str) -> str:
        """ISO currency code from symbols, then rupee words, then GST markers"""
        upper_text = text.upper()

        for symbol, code in patterns.CURRENCY_SYMBOLS:
            if symbol not in text:
                continue
            # '$' next to 'Rs' is usually a misread rupee sign
            if symbol == "$" and patterns.RUPEE_ABBREVIATION.search(upper_text):
                continue
            return code

        if patterns.INR_KEYWORDS.search(upper_text):
            return "INR"

        if _contains_any(upper_text, patterns.INR_TAX_MARKERS):
            return "INR"

        return patterns.DEFAULT_CURRENCY

    def suggest_category(self, merchant: Optional[str], text: str) -> str:
        search_text = f"{merchant or ''} {text}".lower()
        for category, keywords in patterns.CATEGORY_KEYWORDS.items():
            if _contains_any(search_text, keywords):
                return category
        return patterns.DEFAULT_CATEGORY

    # --- Line items -------------------------------------------------------

    def extract_line_items(self, text: str) -> List[ExtractedExpenseItem]:
        """
        Harvest line items.

        Regional receipts print an item-code line (code, qty, unit price,
        total) followed by a description line with the HSN code and taxable
        amount; the two are paired when the amounts agree. Simpler
        "description [xN] price" lines are accepted on their own.
        """
        items: Dict[str, ExtractedExpenseItem] = {}
        pending: Optional[dict] = None

        for raw_line in text.splitlines():
            line = raw_line.strip()
            if not line or self._should_skip_line(line):
                continue

            match = patterns.ITEM_CODE_LINE.search(line)
            if match:
                pending = self._pending_from_code_line(match)
                continue

            match = patterns.ITEM_HSN_LINE.search(line)
            if match:
                item = self._item_from_hsn_line(match, pending)
                pending = None
                if item is not None:
                    items.setdefault(item.dedup_key, item)
                continue

            match = patterns.ITEM_SIMPLE_LINE.search(line)
            if match:
                item = self._item_from_simple_line(match)
                if item is not None:
                    items.setdefault(item.dedup_key, item)
                continue

            match = patterns.ITEM_DESC_AMOUNT_LINE.search(line)
            if match:
                item = self._item_from_desc_amount_line(match)
                if item is not None:
                    items.setdefault(item.dedup_key, item)

        result = list(items.values())[:patterns.MAX_ITEMS]
        logger.debug("line_items_extracted", count=len(result))
        return result

    def _should_skip_line(self, line: Optional[str]) -> bool:
        if line is None or len(line) < 3:
            return True
        lower = line.lower()
        return _contains_any(lower, patterns.ITEM_SKIP_KEYWORDS) or bool(patterns.DATE_LIKE.search(lower))

    def _within_ceiling(self, amount: Optional[Decimal]) -> bool:
        return amount is not None and amount <= self.price_ceiling

    def _pending_from_code_line(self, match: re.Match) -> Optional[dict]:
        unit_price = parse_amount(match.group(4))
        total_price = parse_amount(match.group(5))

        if not (self._within_ceiling(unit_price) and self._within_ceiling(total_price)):
            logger.debug("item_price_rejected", unit_price=str(unit_price), total_price=str(total_price))
            return None

        try:
            quantity = Decimal(match.group(2))
        except InvalidOperation:
            quantity = Decimal("1")

        return {
            "code": match.group(1),
            "quantity": quantity,
            "unit": match.group(3),
            "unit_price": unit_price,
            "total_price": total_price,
        }

    def _item_from_hsn_line(self, match: re.Match, pending: Optional[dict]) -> Optional[ExtractedExpenseItem]:
        description = match.group(1).strip()
        taxable_amount = parse_amount(match.group(3))

        if not self._within_ceiling(taxable_amount) or self._should_skip_line(description):
            return None

        if pending is not None and abs(taxable_amount - pending["total_price"]) < self.match_tolerance:
            return ExtractedExpenseItem(
                description=description,
                quantity=pending["quantity"],
                unit_price=pending["unit_price"],
                total_price=pending["total_price"],
                confidence=ConfidenceLevel.HIGH,
            )

        return ExtractedExpenseItem(
            description=description,
            quantity=Decimal("1"),
            unit_price=taxable_amount,
            total_price=taxable_amount,
            confidence=ConfidenceLevel.MEDIUM,
        )

    def _item_from_simple_line(self, match: re.Match) -> Optional[ExtractedExpenseItem]:
        description = match.group(1).strip()
        if self._should_skip_line(description):
            return None

        price = parse_amount(match.group(3))
        if not self._within_ceiling(price):
            return None

        quantity = Decimal(match.group(2)) if match.group(2) else Decimal("1")
        if quantity == 0:
            quantity = Decimal("1")

        return ExtractedExpenseItem(
            description=description,
            quantity=quantity,
            unit_price=(price / quantity).quantize(CENTS),
            total_price=price,
            confidence=ConfidenceLevel.MEDIUM,
        )

    def _item_from_desc_amount_line(self, match: re.Match) -> Optional[ExtractedExpenseItem]:
        description = match.group(1).strip()
        if self._should_skip_line(description):
            return None

        price = parse_amount(match.group(2))
        if not self._within_ceiling(price) or price < 1:
            return None

        return ExtractedExpenseItem(
            description=description,
            quantity=Decimal("1"),
            unit_price=price,
            total_price=price,
            confidence=ConfidenceLevel.LOW,
        )

    # --- Overall confidence -------------------------------------------------

    def calculate_overall_confidence(self, confidence_map: Dict[str, FieldConfidence]) -> float:
        """Weighted mean of field scores (amount and date weigh the most)"""
        if not confidence_map:
            return 0.0

        weighted_sum = 0.0
        total_weight = 0.0
        for name, entry in confidence_map.items():
            weight = patterns.FIELD_WEIGHTS.get(name, patterns.DEFAULT_FIELD_WEIGHT)
            weighted_sum += entry.score * weight
            total_weight += weight

        return weighted_sum / total_weight if total_weight > 0 else 0.0
