import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(size: int = 9) -> str:
    return uuid.uuid4().hex[:size]


def new_quotation_id() -> str:
    return uuid.uuid4().hex[:6].upper()
