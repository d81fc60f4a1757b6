"""
Free-text normalization for deal fields.

Pure functions that turn source text into canonical forms:
- normalize_company_name: comparison key for company names
- parse_status / parse_value: status and money strings
- detect_sector / detect_geography: keyword classification
- generate_slug / generate_title: storage natural key and display title

parse_value is a best-effort heuristic, not an authoritative money parser.
"""

import math
import re
from datetime import date

from ..models.deal import DealStatus

_SUFFIX_RE = re.compile(
    r'\s+(inc\.?|corp\.?|corporation|ltd\.?|limited|llc|plc|s\.?a\.?|ag|gmbh|co\.?)$',
    re.IGNORECASE,
)
_LEADING_THE_RE = re.compile(r'^the\s+', re.IGNORECASE)
_WHITESPACE_RE = re.compile(r'\s+')
_PUNCTUATION_RE = re.compile(r'[.,]')

# Checked in order; first group with a matching keyword wins
STATUS_KEYWORDS: list[tuple[DealStatus, tuple[str, ...]]] = [
    (DealStatus.COMPLETED, ('complet', 'closed', 'finalized')),
    (DealStatus.PENDING, ('pending', 'review', 'regulatory')),
    (DealStatus.WITHDRAWN, ('withdrawn', 'cancelled', 'terminated')),
    (DealStatus.RUMORED, ('rumor', 'rumour', 'speculation')),
]

_CURRENCY_RE = re.compile(r'[$€£¥]')
_VALUE_RE = re.compile(
    r'([0-9,.]+)\s*(billion|million|trillion|b|m|t|bn|mn)?',
    re.IGNORECASE,
)
_LEADING_FLOAT_RE = re.compile(r'^\d*\.?\d*')

SECTOR_KEYWORDS: dict[str, tuple[str, ...]] = {
    'Technology': ('software', 'tech', 'cloud', 'saas', 'ai', 'semiconductor', 'chip', 'digital'),
    'Healthcare': ('pharma', 'biotech', 'medical', 'health', 'hospital', 'drug', 'therapeutic'),
    'Financial Services': ('bank', 'fintech', 'insurance', 'asset management', 'investment', 'financial'),
    'Energy': ('oil', 'gas', 'energy', 'renewable', 'solar', 'wind', 'utility', 'power'),
    'Consumer': ('retail', 'consumer', 'food', 'beverage', 'restaurant', 'brand'),
    'Industrial': ('manufacturing', 'industrial', 'aerospace', 'defense', 'automotive'),
    'Real Estate': ('real estate', 'property', 'reit', 'commercial property'),
    'Telecommunications': ('telecom', 'wireless', '5g', 'broadband', 'network'),
    'Media & Entertainment': ('media', 'entertainment', 'streaming', 'gaming', 'studio'),
    'Mining & Metals': ('mining', 'metal', 'lithium', 'copper', 'gold', 'steel'),
}
DEFAULT_SECTOR = 'Diversified'

GEOGRAPHY_KEYWORDS: dict[str, tuple[str, ...]] = {
    'North America': ('united states', 'usa', 'us', 'american', 'canada', 'canadian', 'mexico'),
    'Europe': ('europe', 'european', 'uk', 'british', 'germany', 'german', 'france', 'french', 'spain', 'italy'),
    'Asia Pacific': ('asia', 'asian', 'china', 'chinese', 'japan', 'japanese', 'australia', 'india', 'korea', 'singapore'),
    'Latin America': ('brazil', 'argentina', 'latin america', 'south america'),
    'Middle East': ('middle east', 'uae', 'saudi', 'israel', 'dubai'),
    'Africa': ('africa', 'south africa', 'nigeria', 'egypt'),
}
DEFAULT_GEOGRAPHY = 'Global'

SLUG_MAX_LENGTH = 100


def _normalize_once(name: str) -> str:
    value = name.lower().strip()
    value = _SUFFIX_RE.sub('', value)
    value = _LEADING_THE_RE.sub('', value)
    value = _WHITESPACE_RE.sub(' ', value)
    value = _PUNCTUATION_RE.sub('', value)
    return value.strip()


def normalize_company_name(name: str | None) -> str:
    """
    Canonical comparison form of a company name.

    Lower-cases, strips a trailing corporate suffix and a leading "the",
    collapses whitespace and drops commas and periods. The steps repeat until
    the value is stable so that stacked suffixes ("Acme Corp., Inc.") reach
    the same fixed point and the function is idempotent.

    Never raises; None or empty input returns ''.
    """
    if not name:
        return ''
    current = _normalize_once(name)
    while True:
        nxt = _normalize_once(current)
        if nxt == current:
            return current
        current = nxt


def parse_status(text: str | None) -> DealStatus:
    """Map a free-text status onto DealStatus; Announced when nothing matches."""
    if not text:
        return DealStatus.ANNOUNCED
    lowered = text.lower().strip()
    for status, keywords in STATUS_KEYWORDS:
        if any(kw in lowered for kw in keywords):
            return status
    return DealStatus.ANNOUNCED


def parse_value(text: str | None) -> int | None:
    """
    Best-effort parse of a money string into whole USD.

    "$5.2 billion" -> 5_200_000_000, "750M" -> 750_000_000. Without a
    magnitude word, numbers above 1,000,000 are taken as USD and numbers
    below 1,000 as billions; anything in between is returned unscaled.
    Returns None when no number can be found.
    """
    if not text:
        return None

    cleaned = _CURRENCY_RE.sub('', text).strip()
    match = _VALUE_RE.search(cleaned)
    if not match:
        return None

    digits = _LEADING_FLOAT_RE.match(match.group(1).replace(',', '')).group(0)
    if digits in ('', '.'):
        return None
    num = float(digits)
    magnitude = (match.group(2) or '').lower()

    if magnitude.startswith('t'):
        return whole_usd(num * 1e12)
    if magnitude.startswith('b'):
        return whole_usd(num * 1e9)
    if magnitude.startswith('m'):
        return whole_usd(num * 1e6)

    if num > 1_000_000:
        return whole_usd(num)
    if num < 1000:
        return whole_usd(num * 1e9)
    # 1,000 - 1,000,000 without a magnitude word is ambiguous; left unscaled
    return whole_usd(num)


def whole_usd(amount: float) -> int | None:
    """Round to whole dollars; None for inf/nan (overlong digit strings, 1e400)."""
    if not math.isfinite(amount):
        return None
    return round(amount)


def _classify(text: str | None, table: dict[str, tuple[str, ...]], default: str) -> str:
    if not text:
        return default
    lowered = text.lower()
    for category, keywords in table.items():
        if any(kw in lowered for kw in keywords):
            return category
    return default


def detect_sector(text: str | None) -> str:
    """First sector whose keywords appear in the text, else 'Diversified'."""
    return _classify(text, SECTOR_KEYWORDS, DEFAULT_SECTOR)


def detect_geography(text: str | None) -> str:
    """First region whose keywords appear in the text, else 'Global'."""
    return _classify(text, GEOGRAPHY_KEYWORDS, DEFAULT_GEOGRAPHY)


def generate_slug(acquirer: str, target: str, announced: date | str) -> str:
    """
    URL-safe natural key: "<acquirer>-<target>-YYYYMM".

    Two deals between the same parties in the same month share a slug and are
    treated as the same deal by the storage upsert.
    """
    date_str = announced.isoformat() if isinstance(announced, date) else str(announced)
    month = date_str[:7].replace('-', '', 1)
    slug = f'{normalize_company_name(acquirer)}-{normalize_company_name(target)}-{month}'
    slug = re.sub(r'\s+', '-', slug)
    slug = re.sub(r'[^a-z0-9-]', '', slug)
    slug = re.sub(r'-+', '-', slug)
    return slug[:SLUG_MAX_LENGTH]


def generate_title(acquirer: str, target: str) -> str:
    """Display title for a deal."""
    return f'{acquirer} to Acquire {target}'
