"""
Pattern tables for receipt field extraction

Compiled once at import and shared by every FieldExtractor. Order inside
each table is priority: the first matching entry wins.

Amount patterns tolerate OCR misreading the rupee sign as '%', 'Rs' or '.'.
Indian numbering (1,23,456.00) and Western (123,456.00) both parse once
commas are stripped.
"""
import re
from dataclasses import dataclass
from typing import Dict, List, Pattern, Tuple

_I = re.IGNORECASE

# Money with exactly two decimals, commas allowed for grouping
AMOUNT = r"([\d,]+\.\d{2})"

# OCR'd rupee prefix: '₹', 'Rs', 'Rs.', '%', '.', in any run
_RUPEE_GLYPHS = r"[₹Rs\.%]*"

# Grand total lines carry either a rupee glyph or a Western symbol
_ANY_GLYPHS = r"[₹Rs\.%$€£]*"

# --- Amount ---------------------------------------------------------------

# Any currency-looking token; group 1 = symbol before, group 2 = symbol after
CURRENCY_TOKEN = re.compile(
    r"(?:Rs\.?|INR|[$€£¥₹%])\s*" + AMOUNT + r"|" + AMOUNT + r"\s*[$€£¥₹%]",
    _I,
)

TOTAL_PATTERNS: Tuple[Pattern, ...] = (
    # Regional labels, most specific first
    re.compile(r"TOTAL\s*INVOICE\s*AMOUNT[:\s]*" + _RUPEE_GLYPHS + r"\s*" + AMOUNT, _I),
    re.compile(r"TOTAL\s*RECEIVED\s*AMOUNT[:\s]*" + _RUPEE_GLYPHS + r"\s*" + AMOUNT, _I),
    re.compile(r"(?<!SUB[\s\-.])(?<!SUB\s\s)\b(?:GRAND\s*)?TOTAL[:\s]*" + _ANY_GLYPHS + r"\s*" + AMOUNT, _I),
    re.compile(r"NET\s*(?:AMOUNT|PAYABLE)[:\s]*" + _RUPEE_GLYPHS + r"\s*" + AMOUNT, _I),
    re.compile(r"(?:AMOUNT|AMT)\s*(?:PAYABLE|DUE|PAID)[:\s]*" + _RUPEE_GLYPHS + r"\s*" + AMOUNT, _I),
    re.compile(r"BILL\s*AMOUNT[:\s]*" + _RUPEE_GLYPHS + r"\s*" + AMOUNT, _I),
    # Western
    re.compile(r"(?:BALANCE|DUE)[:\s]*[$€£]?\s*" + AMOUNT, _I),
    re.compile(r"PAYMENT[:\s]*[$€£]?\s*" + AMOUNT, _I),
)

SUBTOTAL_PATTERNS: Tuple[Pattern, ...] = (
    re.compile(r"SUB[\s\-.]*TOTAL[:\s]*[₹Rs\.$€£]*\s*" + AMOUNT, _I),
    re.compile(r"TAXABLE\s*(?:VALUE|AMOUNT)[:\s]*[₹Rs\.]*\s*" + AMOUNT, _I),
)

# --- Tax ------------------------------------------------------------------

TAX_PATTERNS: Tuple[Pattern, ...] = (
    # GST components
    re.compile(r"(?:TOTAL\s*)?GST[:\s]*[₹Rs\.]*\s*" + AMOUNT, _I),
    re.compile(r"CGST[:\s@%\d\.]*?[₹Rs\.]*\s*" + AMOUNT, _I),
    re.compile(r"SGST[:\s@%\d\.]*?[₹Rs\.]*\s*" + AMOUNT, _I),
    re.compile(r"IGST[:\s@%\d\.]*?[₹Rs\.]*\s*" + AMOUNT, _I),
    re.compile(r"CESS[:\s@%\d\.]*?[₹Rs\.]*\s*" + AMOUNT, _I),
    # Western
    re.compile(r"(?:SALES\s*)?TAX[:\s]*[$€£]?\s*" + AMOUNT, _I),
    re.compile(r"VAT[:\s]*[$€£]?\s*" + AMOUNT, _I),
    re.compile(r"HST[:\s]*[$€£]?\s*" + AMOUNT, _I),
)

# --- Dates ----------------------------------------------------------------


@dataclass(frozen=True)
class DatePattern:
    """
    A date regex plus how to read its groups.

    order: group roles, e.g. ("day", "month", "year") for DD/MM/YYYY.
    The month group may be a month name (text formats).
    """
    regex: Pattern
    label: str
    order: Tuple[str, str, str]


_MONTHS = r"(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?"

DATE_PATTERNS: Tuple[DatePattern, ...] = (
    # Day-first numeric formats are tried first (regional receipts)
    DatePattern(re.compile(r"(?<!\d)(\d{1,2})[/-](\d{1,2})[/-](\d{4})(?!\d)"),
                "DD/MM/YYYY", ("day", "month", "year")),
    DatePattern(re.compile(r"(?<!\d)(\d{1,2})[/-](\d{1,2})[/-](\d{2})(?![\d/-])"),
                "DD/MM/YY", ("day", "month", "year")),
    DatePattern(re.compile(r"(?<!\d)(\d{4})[/-](\d{1,2})[/-](\d{1,2})(?!\d)"),
                "YYYY-MM-DD", ("year", "month", "day")),
    DatePattern(re.compile(r"(?<!\d)(\d{1,2})\s*" + _MONTHS + r",?\s*(\d{4})(?!\d)", _I),
                "DD Mon YYYY", ("day", "month", "year")),
    DatePattern(re.compile(_MONTHS + r"\s*(\d{1,2}),?\s*(\d{4})(?!\d)", _I),
                "Mon DD YYYY", ("month", "day", "year")),
)

MONTH_ABBREVIATIONS = ("jan", "feb", "mar", "apr", "may", "jun",
                       "jul", "aug", "sep", "oct", "nov", "dec")

# Loose date shape used to reject merchant candidates and item lines
DATE_LIKE = re.compile(r"\d{1,2}[/-]\d{1,2}[/-]\d{2,4}")

# --- Payment methods --------------------------------------------------------

# Keyword -> label. Order is priority: specific phrases before bare brands,
# card brands before CASH.
PAYMENT_KEYWORDS: Dict[str, str] = {
    "CREDIT CARD": "Credit Card",
    "CREDITCARD": "Credit Card",
    "DEBIT CARD": "Debit Card",
    "DEBITCARD": "Debit Card",
    "VISA": "Credit Card",
    "MASTERCARD": "Credit Card",
    "MASTER CARD": "Credit Card",
    "AMEX": "Credit Card",
    "AMERICAN EXPRESS": "Credit Card",
    "RUPAY": "Debit Card",
    "UPI": "UPI",
    "PHONEPE": "UPI",
    "PAYTM": "UPI",
    "GPAY": "UPI",
    "GOOGLE PAY": "UPI",
    "NET BANKING": "Net Banking",
    "NEFT": "Net Banking",
    "IMPS": "Net Banking",
    "CASH": "Cash",
    "CHECK": "Check",
    "CHEQUE": "Check",
}

PAYMENT_PATTERNS: Tuple[Tuple[Pattern, str], ...] = tuple(
    (re.compile(r"\b" + re.escape(keyword) + r"\b"), label)
    for keyword, label in PAYMENT_KEYWORDS.items()
)

# --- Currency ---------------------------------------------------------------

CURRENCY_SYMBOLS: Tuple[Tuple[str, str], ...] = (
    ("₹", "INR"),
    ("$", "USD"),
    ("€", "EUR"),
    ("£", "GBP"),
    ("¥", "JPY"),
)

# Whole-word rupee markers; "HOURS" or "CUSTOMERS" must not count
RUPEE_ABBREVIATION = re.compile(r"\bRS(?![A-Z])")
INR_KEYWORDS = re.compile(r"\bRS(?![A-Z])|\bRUPEES\b|\bINR(?![A-Z])|\bPAISA\b")
INR_TAX_MARKERS = ("CGST", "SGST", "IGST", "GSTIN", "FSSAI")

DEFAULT_CURRENCY = "USD"

# --- Merchant ---------------------------------------------------------------

KNOWN_MERCHANTS: Tuple[str, ...] = (
    "trent hypermarket", "star bazaar", "star market", "dmart", "d-mart",
    "big bazaar", "bigbazaar", "reliance", "more supermarket", "spencer",
    "nilgiri", "nature basket", "easyday", "spar", "ratnadeep", "heritage",
    "foodworld", "hypercity", "lulu", "margin free", "metro cash", "walmart",
)

MERCHANT_SKIP_KEYWORDS: Tuple[str, ...] = (
    "tax details", "tax detail", "invoice", "tender detail", "tender details",
    "payment", "gst ind", "cgst", "sgst", "igst", "cess", "total", "subtotal",
    "customer id", "cashier", "counter", "credit card", "debit card", "cash",
    "saving", "discount", "received", "balance", "fssai", "gstin", "amount",
    "item", "description", "qty", "hsn", "taxable", "net.amt", "net amt",
)

COMPANY_SUFFIXES_ANYWHERE = ("pvt ltd", "pvt. ltd", "private limited")
COMPANY_SUFFIXES_AT_END = (" ltd", " limited")

# Decorative runs OCR picks up from banner lines
MERCHANT_NOISE = re.compile(r"[*#=\-_]+")

PRICE_WITH_SYMBOL = re.compile(r"[₹$€£]\s*\d+")
NUMERIC_ONLY = re.compile(r"^[\d\s\-:]+$")
LEADING_ITEM_CODE = re.compile(r"^\d{6,7}\s+")

# --- Line items -------------------------------------------------------------

_ITEM_CURRENCY = r"(?:Rs\.?|[₹$€£%.])?"

# "1283328 3.945 KG ₹82.85 ₹134.13": item code (6-7 digits, never the
# 8-digit HSN), quantity, optional unit, unit price, total
ITEM_CODE_LINE = re.compile(
    r"^\s*(\d{6,7})\s+"
    r"(\d+(?:\.\d+)?)\s*(KG|PCS|PC|GM|LTR|ML|NOS)?\s*"
    + _ITEM_CURRENCY + r"\s*" + AMOUNT + r"\s+"
    + _ITEM_CURRENCY + r"\s*" + AMOUNT,
    _I,
)

# "Watermelon Sugar Q 08135020 ₹134.13": description, HSN code, taxable amount
ITEM_HSN_LINE = re.compile(
    r"^\s*([A-Za-z][A-Za-z0-9\s]{2,35}?)\s+"
    r"(\d{8})\s*"
    + _ITEM_CURRENCY + r"\s*" + AMOUNT,
    _I,
)

# "BANANA YELLAKI x2 ₹93.63" / "Milk 45.00"
ITEM_SIMPLE_LINE = re.compile(
    r"^\s*([A-Za-z][A-Za-z0-9\s]{2,35}?)\s+"
    r"(?:[xX]?(\d+)\s+)?"
    + _ITEM_CURRENCY + r"\s*" + AMOUNT + r"\s*$",
    _I,
)

# Description followed by a bare amount, for longer descriptions
ITEM_DESC_AMOUNT_LINE = re.compile(
    r"^\s*([A-Za-z][A-Za-z0-9\s]{3,40})\s+" + AMOUNT + r"\s*$",
    _I,
)

ITEM_SKIP_KEYWORDS: Tuple[str, ...] = (
    "total", "subtotal", "sub total", "balance", "cgst", "sgst", "igst",
    "cess", "tax", "gst", "invoice", "tender", "payment", "payable",
    "bill amount", "credit card", "debit card", "received", "saving",
    "discount", "customer", "cashier", "counter", "fssai", "gstin",
)

MAX_ITEMS = 20

# --- Categories -------------------------------------------------------------

# Category -> keywords. Order is priority: keyword sets overlap (e.g. a
# hypermarket bill mentions fruit and "store"), Groceries must win first.
CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "Groceries": [
        "grocery", "supermarket", "market", "walmart", "kroger", "safeway",
        "costco", "whole foods", "trader joe",
        "star bazaar", "trent hypermarket", "trent", "hypermarket",
        "reliance fresh", "reliance smart", "dmart", "d-mart", "big bazaar",
        "bigbazaar", "more supermarket", "spencer", "nilgiri", "nature basket",
        "easyday", "spar", "ratnadeep", "heritage", "foodworld", "hypercity",
        "lulu", "margin free",
        "banana", "fruit", "vegetable", "kg", "gm", "ltr",
    ],
    "Food & Dining": [
        "restaurant", "cafe", "coffee", "pizza", "burger", "grill", "diner",
        "bistro", "kitchen", "mcdonald", "starbucks", "subway", "wendy",
        "taco", "domino", "swiggy", "zomato", "biryani", "dhaba", "hotel",
    ],
    "Transportation": [
        "gas", "fuel", "shell", "exxon", "chevron", "bp", "uber", "lyft",
        "taxi", "parking", "petrol", "diesel", "indian oil", "iocl", "hpcl",
        "bpcl", "ola", "rapido",
    ],
    "Shopping": [
        "store", "shop", "retail", "mall", "amazon", "target", "best buy",
        "flipkart", "myntra", "ajio", "westside", "pantaloons", "lifestyle",
        "shopper stop", "central", "max", "fbb",
    ],
    "Healthcare": [
        "pharmacy", "drug", "cvs", "walgreens", "medical", "clinic",
        "hospital", "apollo", "medplus", "netmeds", "1mg", "pharmeasy",
    ],
    "Entertainment": [
        "cinema", "movie", "theater", "theatre", "netflix", "spotify", "pvr",
        "inox", "bookmyshow",
    ],
    "Utilities": [
        "electric", "power", "water", "internet", "phone", "cable", "airtel",
        "jio", "vodafone", "vi", "bsnl", "bescom", "electricity",
    ],
}

DEFAULT_CATEGORY = "Uncategorized"

# --- Overall confidence -----------------------------------------------------

FIELD_WEIGHTS: Dict[str, float] = {
    "amount": 3.0,
    "date": 2.0,
    "merchant": 1.0,
    "tax": 0.5,
}
DEFAULT_FIELD_WEIGHT = 1.0
