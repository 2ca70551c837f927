from __future__ import annotations

import csv
import io
import math
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional

from .models import FavoritesStats, MarketComparison, PriceEntry, QuotationAnalysis
from .utils import format_amount, normalize_text

BELOW_MARKET = "Below Market"
ABOVE_MARKET = "Above Market"
MARKET_RATE = "Market Rate"
# Percent distance from the market midpoint that still counts as market rate.
MARKET_RATE_BAND = 5.0

ANALYSIS_CSV_HEADERS = [
    "Type",
    "Product Name",
    "Vendor",
    "Location",
    "Price/Price Range",
    "Specifications",
    "Contact",
]
ENTRIES_CSV_HEADERS = ["Location", "Product Name", "Specifications", "Price (₹)", "Date Added"]


def _matches(query: str, *fields: Optional[str]) -> bool:
    needle = normalize_text(query)
    if not needle:
        return True
    return any(needle in normalize_text(value or "") for value in fields)


def _bounds(min_price: Optional[float], max_price: Optional[float]) -> tuple:
    low = min_price if min_price is not None else 0.0
    high = max_price if max_price is not None else math.inf
    return low, high


def filter_comparisons(
    items: Iterable[MarketComparison],
    query: str = "",
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
) -> List[MarketComparison]:
    """Purpose: Narrow vendor comparisons by a search query and a price window.
    Inputs/Outputs: Inputs are comparisons, a query, and optional bounds; returns the
        comparisons whose whole range lies in [min_price, max_price] and whose product,
        vendor, or location contains the query.
    Side Effects / State: None; pure function.
    Dependencies: normalize_text for case- and accent-insensitive matching.
    Failure Modes: None; missing bounds mean 0 and unbounded.
    If Removed: The comparisons endpoint cannot filter results.
    Testing Notes: A range straddling max_price must be excluded.
    """
    low, high = _bounds(min_price, max_price)
    return [
        item
        for item in items
        if item.price_range.min >= low
        and item.price_range.max <= high
        and _matches(query, item.product_name, item.vendor_name, item.location)
    ]


def filter_entries(
    entries: Iterable[PriceEntry],
    query: str = "",
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
) -> List[PriceEntry]:
    """Keep entries priced inside the window whose product or location matches the query."""
    low, high = _bounds(min_price, max_price)
    return [
        entry
        for entry in entries
        if low <= entry.price <= high and _matches(query, entry.product_name, entry.location)
    ]


def price_position(quoted_price: float, market_min: float, market_max: float) -> str:
    """Classify a quoted price against the midpoint of a market range (±5 % band)."""
    midpoint = (market_min + market_max) / 2
    if midpoint <= 0:
        return MARKET_RATE
    diff = (quoted_price - midpoint) / midpoint * 100
    if diff < -MARKET_RATE_BAND:
        return BELOW_MARKET
    if diff > MARKET_RATE_BAND:
        return ABOVE_MARKET
    return MARKET_RATE


def favorites_stats(favorites: List[MarketComparison]) -> Optional[FavoritesStats]:
    """Lowest minimum, highest maximum, and mean midpoint across saved vendors."""
    if not favorites:
        return None
    midpoints = [(item.price_range.min + item.price_range.max) / 2 for item in favorites]
    return FavoritesStats(
        count=len(favorites),
        lowest_price=min(item.price_range.min for item in favorites),
        highest_price=max(item.price_range.max for item in favorites),
        average_price=sum(midpoints) / len(midpoints),
    )


def _to_csv(rows: List[List[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()


def analysis_to_csv(analysis: QuotationAnalysis, location: str) -> str:
    """Purpose: Export an analysis as CSV rows for the user's quotation and market prices.
    Inputs/Outputs: Inputs are a decoded analysis and the searched location; output is
        CSV text with a header row.
    Side Effects / State: None.
    Dependencies: csv module quoting, format_amount for rupee values.
    Failure Modes: None; missing notes or phone render as "-".
    If Removed: Results cannot be downloaded.
    Testing Notes: A vendor note containing a comma must stay one field.
    """
    rows = [list(ANALYSIS_CSV_HEADERS)]
    for item in analysis.quoted_items:
        rows.append(
            [
                "Your Quotation",
                item.name,
                "-",
                location,
                f"₹{format_amount(item.quoted_price)}",
                item.specifications,
                "-",
            ]
        )
    for item in analysis.market_comparisons:
        rows.append(
            [
                "Market Price",
                item.product_name,
                item.vendor_name,
                item.location,
                f"₹{format_amount(item.price_range.min)} - ₹{format_amount(item.price_range.max)}",
                item.notes or "-",
                item.phone or "-",
            ]
        )
    return _to_csv(rows)


def entries_to_csv(entries: List[PriceEntry]) -> str:
    rows = [list(ENTRIES_CSV_HEADERS)]
    for entry in entries:
        rows.append(
            [
                entry.location,
                entry.product_name,
                entry.specifications,
                format_amount(entry.price),
                entry.created_at.date().isoformat(),
            ]
        )
    return _to_csv(rows)


def export_filename(prefix: str, today: Optional[date] = None) -> str:
    """Build ``<prefix>-YYYY-MM-DD.csv`` using the UTC date by default."""
    today = today or datetime.now(timezone.utc).date()
    return f"{prefix}-{today.isoformat()}.csv"
