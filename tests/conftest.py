from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from schemas import AppSnapshot, InventoryItem, LineDraft, QuotationDraft, RentalDraft, SystemSettings

T0 = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return T0


@pytest.fixture
def snapshot():
    return AppSnapshot(
        items=[
            InventoryItem(id="X", name="Scaffolding", category="Construction", rate_per_unit=100, available_qty=20),
            InventoryItem(id="Y", name="Generator", category="Power", rate_per_unit=50, available_qty=10),
        ],
        system_settings=SystemSettings(rental_system="weekly", next_invoice_number=1001),
    )


def stock(snapshot, item_id):
    return next(i.available_qty for i in snapshot.items if i.id == item_id)


@pytest.fixture
def draft():
    def make(*lines, customer="Acme Builders", **extra):
        return QuotationDraft(
            customer_name=customer,
            customer_phone="0500000000",
            lines=[LineDraft(item_id=item_id, qty=qty) for item_id, qty in lines],
            **extra,
        )
    return make


@pytest.fixture
def rental_draft():
    def make(*lines, customer="Acme Builders", **extra):
        return RentalDraft(
            customer_name=customer,
            customer_phone="0500000000",
            lines=[LineDraft(item_id=item_id, qty=qty) for item_id, qty in lines],
            **extra,
        )
    return make


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(database, "db", mongomock.MongoClient()["rental_test"])
    import main
    with TestClient(main.app) as c:
        yield c
