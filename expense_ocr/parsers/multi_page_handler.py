"""
Multi-page receipt handler - Combines per-page extractions into one receipt

Handles cases where:
- Receipt is too long for one photo
- User takes several photos of the same receipt (header, items, totals)
- Some pages fail to process while others succeed
"""
from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

import structlog

from expense_ocr.common.schemas.receipt_extraction import (
    ConfidenceLevel,
    ExtractedExpenseItem,
    FieldConfidence,
    ImageQuality,
    ReceiptRecord,
)
from expense_ocr.parsers.extraction.patterns import MAX_ITEMS

logger = structlog.get_logger()

# Labels that mark the page carrying the authoritative grand total
INVOICE_TOTAL_MARKERS = ("total invoice amount", "net payable", "total received amount")

DEFAULT_MERGED_CURRENCY = "INR"

# Score for a page amount without a confidence entry
UNTRACKED_AMOUNT_SCORE = 0.5

_QUALITY_RANK = {
    ImageQuality.GOOD: 0,
    ImageQuality.FAIR: 1,
    ImageQuality.POOR: 2,
}


@dataclass(frozen=True)
class PageResult:
    """Extraction result for one page (1-based page number)"""
    page_number: int
    record: ReceiptRecord


@dataclass(frozen=True)
class PageFailure:
    """A page that could not be processed"""
    page_number: int
    reason: str


def deduplicate_items(items: Iterable[ExtractedExpenseItem]) -> List[ExtractedExpenseItem]:
    """Drop items whose (description, total) key was already seen; order kept"""
    unique: Dict[str, ExtractedExpenseItem] = {}
    for item in items:
        unique.setdefault(item.dedup_key, item)
    return list(unique.values())


def combine_page_texts(pages: Sequence[PageResult]) -> str:
    """
    Combine OCR text from multiple pages into single text.

    Each page is preceded by a "--- PAGE N ---" marker.
    """
    combined = []

    for page in pages:
        combined.append(f"\n--- PAGE {page.page_number} ---\n")
        combined.append(page.record.raw_text or "")

    return "\n".join(combined)


def _worst_quality(qualities: Iterable[Optional[ImageQuality]]) -> Optional[ImageQuality]:
    observed = [q for q in qualities if q is not None]
    if not observed:
        return None
    return max(observed, key=lambda q: _QUALITY_RANK[q])


def _has_invoice_total(raw_text: Optional[str]) -> bool:
    if not raw_text:
        return False
    lower = raw_text.lower()
    return any(marker in lower for marker in INVOICE_TOTAL_MARKERS)


class PageMerger:
    """
    Merges page records into one receipt record.

    Merge rules:
    - Merchant, date, subtotal, payment method, category: first page that has one
    - Amount: best-scored page; a page labeled with the invoice total always wins
    - Tax: sum of page taxes
    - Items: all pages, deduplicated
    - Currency: most common (ties go to the first seen)
    - Image quality: worst page
    """

    def merge(
        self,
        pages: Sequence[PageResult],
        failures: Sequence[PageFailure] = (),
    ) -> ReceiptRecord:
        """
        Merge successful pages (in page order) into a new record.

        Args:
            pages: Successful page results
            failures: Pages that failed; reported in the warnings

        Returns:
            New ReceiptRecord owning its own confidence map and item list

        Raises:
            ValueError: If there are no successful pages
        """
        if not pages:
            raise ValueError("Cannot merge an empty list of pages")

        pages = sorted(pages, key=lambda p: p.page_number)
        confidence_map: Dict[str, FieldConfidence] = {}

        merchant = None
        amount: Optional[Decimal] = None
        best_amount_score = 0.0
        date = None
        subtotal = None
        payment_method = None
        category = None
        total_tax = Decimal("0")
        all_items: List[ExtractedExpenseItem] = []
        currency_votes: Counter = Counter()

        for page in pages:
            record = page.record

            if merchant is None and record.merchant and record.merchant.strip():
                merchant = record.merchant
                if "merchant" in record.confidence_map:
                    confidence_map["merchant"] = record.confidence_map["merchant"]

            if record.amount is not None:
                entry = record.confidence_map.get("amount")
                score = entry.score if entry is not None else UNTRACKED_AMOUNT_SCORE

                if _has_invoice_total(record.raw_text):
                    amount = record.amount
                    best_amount_score = 1.0
                    confidence_map["amount"] = FieldConfidence(
                        field="amount",
                        level=ConfidenceLevel.HIGH,
                        reason=f"Invoice total label found on page {page.page_number}",
                        score=1.0,
                    )
                elif score > best_amount_score:
                    amount = record.amount
                    best_amount_score = score
                    if entry is not None:
                        confidence_map["amount"] = entry

            if date is None and record.date is not None:
                date = record.date
                if "date" in record.confidence_map:
                    confidence_map["date"] = record.confidence_map["date"]

            if record.tax is not None and record.tax > 0:
                total_tax += record.tax

            if subtotal is None:
                subtotal = record.subtotal
            if payment_method is None:
                payment_method = record.payment_method
            if category is None:
                category = record.suggested_category

            all_items.extend(record.items)

            if record.currency:
                currency_votes[record.currency] += 1

        # Counter.most_common keeps insertion order among equal counts
        currency = currency_votes.most_common(1)[0][0] if currency_votes else DEFAULT_MERGED_CURRENCY

        merged = ReceiptRecord(
            merchant=merchant,
            amount=amount,
            date=date,
            tax=total_tax if total_tax > 0 else None,
            subtotal=subtotal,
            currency=currency,
            payment_method=payment_method,
            items=deduplicate_items(all_items)[:MAX_ITEMS],
            confidence_map=confidence_map,
            overall_confidence=sum(p.record.overall_confidence for p in pages) / len(pages),
            raw_text=combine_page_texts(pages),
            processing_time_ms=sum(p.record.processing_time_ms for p in pages),
            image_quality=_worst_quality(p.record.image_quality for p in pages),
            suggested_category=category,
            warnings=self._merge_warnings(pages, failures),
        )

        logger.info("pages_merged",
                   pages=len(pages),
                   failed_pages=len(failures),
                   merchant=merged.merchant,
                   amount=str(merged.amount) if merged.amount is not None else None,
                   items=len(merged.items))

        return merged

    def _merge_warnings(self, pages: Sequence[PageResult], failures: Sequence[PageFailure]) -> List[str]:
        notes = []
        for page in pages:
            for warning in page.record.warnings:
                notes.append((page.page_number, f"Page {page.page_number}: {warning}"))
        for failure in failures:
            notes.append((failure.page_number, f"Page {failure.page_number} processing failed: {failure.reason}"))

        # Stable sort keeps each page's own warning order
        notes.sort(key=lambda note: note[0])

        total_pages = len(pages) + len(failures)
        return [f"Scanned {total_pages} pages, merged results"] + [text for _, text in notes]
