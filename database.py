"""
Snapshot storage.

The whole application state lives in a single MongoDB document and is
replaced wholesale on every save.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from pymongo import MongoClient

from config import settings
from schemas import AppSnapshot, InventoryItem, SystemSettings

logger = logging.getLogger(__name__)

SNAPSHOT_ID = "app"

db = None
if settings.DATABASE_URL and settings.DATABASE_NAME:
    try:
        client = MongoClient(settings.DATABASE_URL)
        db = client[settings.DATABASE_NAME]
    except Exception as e:
        logger.error(f"Could not configure database: {e}")
        db = None

DEMO_ITEMS = [
    InventoryItem(id="1", name="Metal scaffolding", category="Construction", rate_per_unit=150, available_qty=20),
    InventoryItem(id="2", name="Generator 5KW", category="Power", rate_per_unit=500, available_qty=5),
    InventoryItem(id="3", name="Forklift", category="Heavy", rate_per_unit=1200, available_qty=2),
]


def fresh_snapshot() -> AppSnapshot:
    return AppSnapshot(system_settings=SystemSettings(
        currency=settings.DEFAULT_CURRENCY,
        rental_system=settings.DEFAULT_RENTAL_SYSTEM,
        next_invoice_number=settings.FIRST_INVOICE_NUMBER,
    ))


def _collection():
    if db is None:
        raise RuntimeError("Database not configured")
    return db[settings.SNAPSHOT_COLLECTION]


def load_snapshot() -> AppSnapshot:
    doc: Optional[dict] = _collection().find_one({"_id": SNAPSHOT_ID})
    if not doc:
        return fresh_snapshot()
    doc.pop("_id", None)
    doc.pop("saved_at", None)
    return AppSnapshot.model_validate(doc)


def save_snapshot(snapshot: AppSnapshot) -> None:
    data = snapshot.model_dump(mode="json")
    data["_id"] = SNAPSHOT_ID
    data["saved_at"] = datetime.now(timezone.utc)
    _collection().replace_one({"_id": SNAPSHOT_ID}, data, upsert=True)
