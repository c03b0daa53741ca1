"""Regexes and fixed tables shared by the extractors and the matcher."""

import re

# Accepted date layouts, tried in order. ISO first, then US month-first,
# then day-first, then textual months.
DATE_FORMATS = [
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%m/%d/%y",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
]

# DD/MM/YYYY, MM/DD/YYYY, YYYY-MM-DD and two-digit year variants
DATE_TOKEN_RX = re.compile(
    r"\b(\d{4}[/-]\d{1,2}[/-]\d{1,2}|\d{1,2}[/-]\d{1,2}[/-]\d{2,4})\b"
)
VIN_RX = re.compile(r"\b[A-HJ-NPR-Z0-9]{17}\b", re.IGNORECASE)
# "$1,234.56", "$ 80", "412.50", "450", "1200.5"; only used on amount lines
# after date tokens are removed
CURRENCY_RX = re.compile(r"\$?\s*(?<![\d.])(\d[\d,]*(?:\.\d{1,2})?)")
INTEGER_RX = re.compile(r"\d[\d,]*")

WORK_ORDER_MARKER_RX = re.compile(r"work order|invoice|service", re.IGNORECASE)
SECTION_HEADER_RX = re.compile(r"invoice|work order", re.IGNORECASE)
AMOUNT_LINE_RX = re.compile(r"total|amount|cost", re.IGNORECASE)
ODOMETER_LINE_RX = re.compile(r"odometer|mileage|km", re.IGNORECASE)
PAGE_MARKER_RX = re.compile(r"^page\s+\d+", re.IGNORECASE)

ODOMETER_MIN = 100
ODOMETER_MAX = 999_999
# exclusive bounds: a description line is 11..199 characters
DESCRIPTION_MIN_LEN = 10
DESCRIPTION_MAX_LEN = 200
DESCRIPTION_CUTOFF = 500

WORK_ORDER_CATEGORY = "Work Order"
UNCATEGORIZED = "Uncategorized"

# Header keyword -> column role, first matching header wins per role.
CSV_COLUMN_HINTS = {
    "date": ("date",),
    "vehicle": ("vehicle", "vin", "plate"),
    "branch": ("branch", "location"),
    "category": ("category", "type"),
    "amount": ("amount", "cost", "total"),
    "description": ("description", "notes"),
    "odometer": ("odometer", "km", "mileage"),
}

MIN_CSV_VALUES = 3
