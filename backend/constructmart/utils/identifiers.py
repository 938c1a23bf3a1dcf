import random
import secrets
import string
import uuid
from datetime import datetime, timezone

COUPON_ALPHABET = string.ascii_uppercase + string.digits


def new_uid(prefix: str) -> str:
    """Public identifier such as ``user-1a2b3c4d``."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def new_order_number() -> str:
    year = datetime.now(timezone.utc).year
    return f"ORD-{year}-{random.randint(1000, 9999)}"


def new_coupon_code(length: int = 8, prefix: str = "") -> str:
    body = "".join(secrets.choice(COUPON_ALPHABET) for _ in range(length))
    return f"{prefix.upper()}{body}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value):
    """SQLite drops tzinfo; treat naive datetimes read back from the DB as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
