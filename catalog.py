"""
Catalog maintenance, expenses, settings and read-side views.

Catalog edits set quantities directly: they are the operator correcting the
books, not a document moving stock, so they bypass the stock ledger.
"""
import logging
from datetime import datetime
from typing import List, Optional

from pydantic import ValidationError

import billing
from exceptions import DocumentNotFound, ValidationRejected
from schemas import AppSnapshot, CompanySettings, Expense, InventoryItem, Rental, SystemSettings
from utils import new_id, utcnow

logger = logging.getLogger(__name__)


# ----- Inventory items -----

def add_item(snapshot: AppSnapshot, name: str, category: str, rate_per_unit: float, available_qty: int) -> AppSnapshot:
    if not name.strip():
        raise ValidationRejected("Item name is required")
    item = InventoryItem(
        id=new_id(),
        name=name.strip(),
        category=category or "General",
        rate_per_unit=rate_per_unit,
        available_qty=available_qty,
    )
    logger.info(f"Catalog item {item.id} added: {item.name}")
    return snapshot.model_copy(update={"items": [*snapshot.items, item]})


def update_item(snapshot: AppSnapshot, item_id: str, **changes) -> AppSnapshot:
    current = next((i for i in snapshot.items if i.id == item_id), None)
    if current is None:
        raise DocumentNotFound(f"Item {item_id} not found")
    changes = {k: v for k, v in changes.items() if v is not None}
    # Re-validate so negative quantities or rates never reach the snapshot.
    try:
        updated = InventoryItem(**{**current.model_dump(), **changes, "id": item_id})
    except ValidationError as e:
        raise ValidationRejected(f"Invalid item: {e.errors()[0]['msg']}")
    return snapshot.model_copy(update={
        "items": [updated if i.id == item_id else i for i in snapshot.items],
    })


def delete_item(snapshot: AppSnapshot, item_id: str) -> AppSnapshot:
    if not any(i.id == item_id for i in snapshot.items):
        raise DocumentNotFound(f"Item {item_id} not found")
    logger.info(f"Catalog item {item_id} deleted")
    return snapshot.model_copy(update={"items": [i for i in snapshot.items if i.id != item_id]})


def list_items(snapshot: AppSnapshot, search: Optional[str] = None) -> List[InventoryItem]:
    if not search:
        return list(snapshot.items)
    needle = search.lower()
    return [i for i in snapshot.items if needle in i.name.lower() or needle in i.category.lower()]


# ----- Expenses -----

def add_expense(snapshot: AppSnapshot, description: str, amount: float, category: str = "General",
                date: Optional[datetime] = None) -> AppSnapshot:
    if not description.strip():
        raise ValidationRejected("Expense description is required")
    if amount <= 0:
        raise ValidationRejected("Expense amount must be greater than zero")
    expense = Expense(id=new_id(), description=description.strip(), amount=amount,
                      category=category or "General", date=date or utcnow())
    return snapshot.model_copy(update={"expenses": [*snapshot.expenses, expense]})


def delete_expense(snapshot: AppSnapshot, expense_id: str) -> AppSnapshot:
    if not any(e.id == expense_id for e in snapshot.expenses):
        raise DocumentNotFound(f"Expense {expense_id} not found")
    return snapshot.model_copy(update={"expenses": [e for e in snapshot.expenses if e.id != expense_id]})


def expenses_total(snapshot: AppSnapshot) -> float:
    return sum(e.amount for e in snapshot.expenses)


def list_expenses(snapshot: AppSnapshot, search: Optional[str] = None) -> List[Expense]:
    """Expenses whose description or category contains `search`, newest first."""
    found = snapshot.expenses
    if search:
        needle = search.lower()
        found = [e for e in found if needle in e.description.lower() or needle in e.category.lower()]
    return sorted(found, key=lambda e: e.date.timestamp(), reverse=True)


def monthly_total(snapshot: AppSnapshot, now: Optional[datetime] = None) -> float:
    """Total spent in the calendar month of `now`."""
    now = now or utcnow()
    return sum(e.amount for e in snapshot.expenses
               if (e.date.year, e.date.month) == (now.year, now.month))


# ----- Archive -----

def delete_archived_rental(snapshot: AppSnapshot, rental_id: str) -> AppSnapshot:
    if not any(r.id == rental_id for r in snapshot.archived_rentals):
        raise DocumentNotFound(f"Archived contract {rental_id} not found")
    logger.info(f"Archived contract {rental_id} permanently deleted")
    return snapshot.model_copy(update={
        "archived_rentals": [r for r in snapshot.archived_rentals if r.id != rental_id],
    })


# ----- Settings -----

def update_system_settings(snapshot: AppSnapshot, **changes) -> AppSnapshot:
    changes = {k: v for k, v in changes.items() if v is not None}
    number = changes.get("next_invoice_number")
    if number is not None and number < snapshot.system_settings.next_invoice_number:
        # Lowering the counter would hand out contract numbers already in use.
        raise ValidationRejected("Next invoice number cannot go backwards")
    try:
        settings = SystemSettings(**{**snapshot.system_settings.model_dump(), **changes})
    except ValidationError as e:
        raise ValidationRejected(f"Invalid settings: {e.errors()[0]['msg']}")
    return snapshot.model_copy(update={"system_settings": settings})


def update_company_settings(snapshot: AppSnapshot, **changes) -> AppSnapshot:
    changes = {k: v for k, v in changes.items() if v is not None}
    try:
        company = CompanySettings(**{**snapshot.company_settings.model_dump(), **changes})
    except ValidationError as e:
        raise ValidationRejected(f"Invalid company settings: {e.errors()[0]['msg']}")
    return snapshot.model_copy(update={"company_settings": company})


# ----- Views -----

def _matches(rental: Rental, search: Optional[str]) -> bool:
    if not search:
        return True
    return search.lower() in rental.customer_name.lower() or search in rental.customer_phone


def list_rentals(snapshot: AppSnapshot, search: Optional[str] = None, now: Optional[datetime] = None) -> List[Rental]:
    """Active contracts first, then closed ones still owing, then the rest; newest first."""
    now = now or utcnow()
    periodicity = snapshot.system_settings.rental_system

    def priority(rental: Rental) -> int:
        if rental.status == 'active':
            return 0
        if billing.settle(rental, now, periodicity).remaining > 0:
            return 1
        return 2

    found = [r for r in snapshot.rentals if _matches(r, search)]
    found.sort(key=lambda r: r.start_date.timestamp(), reverse=True)
    found.sort(key=priority)
    return found


def list_archived(snapshot: AppSnapshot, search: Optional[str] = None) -> List[Rental]:
    found = [r for r in snapshot.archived_rentals if _matches(r, search)]
    return sorted(found, key=lambda r: r.start_date.timestamp(), reverse=True)


def dashboard(snapshot: AppSnapshot, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    periodicity = snapshot.system_settings.rental_system
    receivables = 0
    for rental in snapshot.rentals:
        receivables += max(0, billing.settle(rental, now, periodicity).remaining)
    return {
        "active_rentals": sum(1 for r in snapshot.rentals if r.status == 'active'),
        "pending_quotations": sum(1 for q in snapshot.quotations if q.status == 'pending'),
        "permits": sum(1 for q in snapshot.quotations if q.status == 'permit'),
        "outstanding_receivables": receivables,
        "expenses_total": expenses_total(snapshot),
        "expenses_this_month": monthly_total(snapshot, now),
        "currency": snapshot.system_settings.currency,
    }
