"""
CSV layout shared by the seller product export and import endpoints.

Parsing goes through pandas. Uploads are read as UTF-8 first; anything else is
decoded with the encoding chardet detects.
"""
import io
import logging
from typing import Dict, Iterable, List, Sequence, Tuple

import chardet
import pandas as pd

from constructmart.errors import InvalidRequestError
from constructmart.models.product import Product

logger = logging.getLogger(__name__)

COLUMNS = [
    "sku",
    "name",
    "brand",
    "upc",
    "main_category_uid",
    "subcategory_uid",
    "short_description",
    "base_price_cents",
    "cost_cents",
    "currency",
    "quantity_available",
    "low_stock_threshold",
    "backorder_allowed",
    "listing_status",
    "is_active",
]
REQUIRED_HEADERS = ("sku", "name")
TRUE_VALUES = ("1", "true", "yes", "y")


def product_row(p: Product) -> Dict[str, object]:
    return {
        "sku": p.sku,
        "name": p.name,
        "brand": p.brand or "",
        "upc": p.upc or "",
        "main_category_uid": p.main_category_uid or "",
        "subcategory_uid": p.subcategory_uid or "",
        "short_description": p.short_description,
        "base_price_cents": p.base_price_cents,
        "cost_cents": "" if p.cost_cents is None else p.cost_cents,
        "currency": p.currency,
        "quantity_available": p.quantity_available,
        "low_stock_threshold": p.low_stock_threshold,
        "backorder_allowed": str(bool(p.backorder_allowed)).lower(),
        "listing_status": p.listing_status,
        "is_active": str(bool(p.is_active)).lower(),
    }


def to_csv(rows: Iterable[Dict[str, object]], columns: Sequence[str]) -> str:
    """Render dict rows as CSV text with a fixed header, even when there are no rows."""
    return pd.DataFrame(list(rows), columns=list(columns)).to_csv(index=False)


def export_products(products: Iterable[Product]) -> str:
    return to_csv((product_row(p) for p in products), COLUMNS)


def detect_encoding(content: bytes) -> str:
    try:
        content.decode("utf-8")
        return "utf-8-sig"
    except UnicodeDecodeError:
        pass
    result = chardet.detect(content[:10000])
    encoding = result.get("encoding")
    if not encoding or encoding.lower() == "ascii":
        return "utf-8-sig"
    logger.info("Detected CSV encoding %s (confidence %.2f)", encoding, result.get("confidence") or 0)
    return encoding


def read_rows(content: bytes) -> List[Tuple[int, Dict[str, str]]]:
    """Parse an uploaded CSV into ``(row_number, row)`` pairs; the header is row 1."""
    encoding = detect_encoding(content)
    try:
        df = pd.read_csv(
            io.BytesIO(content),
            encoding=encoding,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=False,
        )
    except (UnicodeDecodeError, LookupError):
        raise InvalidRequestError("File could not be decoded as CSV text")
    except pd.errors.EmptyDataError:
        raise InvalidRequestError("CSV file is empty")
    except pd.errors.ParserError as e:
        raise InvalidRequestError(f"CSV could not be parsed: {e}")

    df.columns = [str(c).strip() for c in df.columns]
    missing = [h for h in REQUIRED_HEADERS if h not in df.columns]
    if missing:
        raise InvalidRequestError(f"CSV is missing required columns: {', '.join(missing)}")

    rows = []
    for index, record in zip(df.index, df.to_dict(orient="records")):
        cleaned = {
            k: "" if pd.isna(v) else str(v).strip()
            for k, v in record.items()
            if k and not k.startswith("Unnamed:")
        }
        if not any(cleaned.values()):
            continue
        rows.append((int(index) + 2, cleaned))
    return rows


def to_bool(value: str) -> bool:
    return value.strip().lower() in TRUE_VALUES
