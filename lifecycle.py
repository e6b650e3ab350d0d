"""
Document lifecycle for quotations, permits and rental contracts.

Every operation takes the current AppSnapshot and returns a new one. Input
snapshots are never mutated, and all validation happens before anything is
built, so a refused operation leaves no trace.

The stock effect of each step is looked up in a transition table keyed by
(current status, action). Quotations also carry `stock_committed`, so a
quotation is deducted at most once and restored only while it holds stock.
Each line records in `held_qty` what was really taken from the catalog, and
that amount, never more, is what goes back.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import billing
import stock_ledger
from exceptions import DocumentNotFound, InvalidTransition, ValidationRejected
from schemas import (
    AppSnapshot,
    InventoryItem,
    LineDraft,
    LineItem,
    Quotation,
    QuotationDraft,
    Rental,
    RentalDraft,
    ReturnLog,
)
from sequence import allocate_contract_number
from utils import new_id, new_quotation_id, utcnow

logger = logging.getLogger(__name__)

NONE = 'none'
DEDUCT = 'deduct'
RESTORE = 'restore'

# Pseudo-statuses: a document that does not exist yet, and a rental sitting
# in the archive collection.
NEW = None
ARCHIVED = 'archived'


@dataclass(frozen=True)
class Transition:
    target: Optional[str]  # None keeps the current status
    stock: str = NONE
    noop: bool = False


QUOTATION_TRANSITIONS: Dict[Tuple[Optional[str], str], Transition] = {
    (NEW, 'create_quotation'): Transition('pending'),
    (NEW, 'create_permit'): Transition('permit', DEDUCT),
    ('pending', 'issue_permit'): Transition('permit', DEDUCT),
    ('permit', 'issue_permit'): Transition('permit', noop=True),
    ('pending', 'convert'): Transition('converted', DEDUCT),
    ('permit', 'convert'): Transition('converted'),
    ('pending', 'archive'): Transition(None),
    ('permit', 'archive'): Transition(None, RESTORE),
    ('converted', 'archive'): Transition(None),
    ('pending', 'delete'): Transition(None),
    ('permit', 'delete'): Transition(None, RESTORE),
    ('converted', 'delete'): Transition(None),
    ('permit', 'return_line'): Transition(None, RESTORE),
    ('pending', 'discount'): Transition(None),
    ('permit', 'discount'): Transition(None),
}

RENTAL_TRANSITIONS: Dict[Tuple[Optional[str], str], Transition] = {
    (NEW, 'create'): Transition('active', DEDUCT),
    ('active', 'archive'): Transition(None, RESTORE),
    ('closed', 'archive'): Transition(None, RESTORE),
    (ARCHIVED, 'restore'): Transition(None, DEDUCT),
    ('active', 'add_line'): Transition(None, DEDUCT),
    ('active', 'return_line'): Transition(None, RESTORE),
    ('closed', 'return_line'): Transition(None, RESTORE),
    ('active', 'close'): Transition('closed'),
    ('closed', 'close'): Transition('closed', noop=True),
}


def lookup(table: Dict[Tuple[Optional[str], str], Transition], status: Optional[str], action: str) -> Transition:
    transition = table.get((status, action))
    if transition is None:
        logger.warning(f"Rejected transition: {action} from status {status}")
        raise InvalidTransition(f"Action '{action}' is not allowed in status '{status}'")
    return transition


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _find(documents, doc_id: str, label: str):
    for doc in documents:
        if doc.id == doc_id:
            return doc
    raise DocumentNotFound(f"{label} {doc_id} not found")


def _replace(documents, updated) -> list:
    return [updated if doc.id == updated.id else doc for doc in documents]


def _without(documents, doc_id: str) -> list:
    return [doc for doc in documents if doc.id != doc_id]


def _validate_draft(draft: QuotationDraft):
    if not draft.customer_name.strip():
        raise ValidationRejected("Customer name is required")
    if not draft.lines:
        raise ValidationRejected("Select at least one item")


def _build_lines(catalog: List[InventoryItem], drafts: List[LineDraft], now: datetime) -> List[LineItem]:
    by_id = {inv.id: inv for inv in catalog}
    lines = []
    for d in drafts:
        inv = by_id.get(d.item_id)
        if inv is None:
            raise ValidationRejected(f"Inventory item {d.item_id} not found")
        lines.append(LineItem(
            id=new_id(),
            item_id=inv.id,
            name=inv.name,
            original_qty=d.qty,
            returned_qty=0,
            current_qty=d.qty,
            rate=inv.rate_per_unit if d.rate is None else d.rate,
            start_date=now,
        ))
    return lines


def _commit_quotation_stock(items: List[InventoryItem], quote: Quotation, effect: str) -> Tuple[List[InventoryItem], Quotation]:
    if effect == DEDUCT and not quote.stock_committed:
        items, lines = stock_ledger.apply_lines(items, quote.items, 'deduct')
        quote = quote.model_copy(update={"items": lines, "stock_committed": True})
    elif effect == RESTORE and quote.stock_committed:
        items, lines = stock_ledger.apply_lines(items, quote.items, 'restore')
        quote = quote.model_copy(update={"items": lines, "stock_committed": False})
    return items, quote


def _return_line(items: List[InventoryItem], document, line_id: str, qty: int, now: datetime):
    line = next((ln for ln in document.items if ln.id == line_id), None)
    if line is None:
        raise ValidationRejected(f"Line {line_id} not found on document {document.id}")
    if qty < 1 or qty > line.current_qty:
        raise ValidationRejected(f"Return quantity must be between 1 and {line.current_qty}")

    # Only stock the line really took goes back; the rest was never deducted.
    released = min(qty, line.held_qty)
    returned = line.model_copy(update={
        "returned_qty": line.returned_qty + qty,
        "current_qty": line.current_qty - qty,
        "held_qty": line.held_qty - released,
    })
    log = ReturnLog(id=new_id(), item_id=line.item_id, item_name=line.name, qty=qty, date=now)
    document = document.model_copy(update={
        "items": [returned if ln.id == line_id else ln for ln in document.items],
        "return_logs": [*document.return_logs, log],
    })
    if released:
        items = stock_ledger.restore(items, line.item_id, released)
    return items, document


# ---------------------------------------------------------------------------
# Quotations and permits
# ---------------------------------------------------------------------------

def create_quotation(snapshot: AppSnapshot, draft: QuotationDraft, mode: str = 'quotation',
                     now: Optional[datetime] = None) -> AppSnapshot:
    if mode not in ('quotation', 'permit'):
        raise ValidationRejected(f"Unknown creation mode: {mode}")
    _validate_draft(draft)
    transition = lookup(QUOTATION_TRANSITIONS, NEW, f"create_{mode}")
    now = now or utcnow()

    quote = Quotation(
        id=new_quotation_id(),
        customer_name=draft.customer_name.strip(),
        customer_phone=draft.customer_phone,
        customer_address=draft.customer_address,
        items=_build_lines(snapshot.items, draft.lines, now),
        date=now,
        notes=draft.notes,
        discount_value=draft.discount_value,
        discount_type=draft.discount_type,
        security_deposit=draft.security_deposit,
        status=transition.target,
    )
    items, quote = _commit_quotation_stock(snapshot.items, quote, transition.stock)
    logger.info(f"Created {quote.status} document {quote.id} for {quote.customer_name}")
    return snapshot.model_copy(update={"items": items, "quotations": [quote, *snapshot.quotations]})


def issue_permit(snapshot: AppSnapshot, quotation_id: str) -> AppSnapshot:
    quote = _find(snapshot.quotations, quotation_id, "Quotation")
    transition = lookup(QUOTATION_TRANSITIONS, quote.status, 'issue_permit')
    if transition.noop:
        logger.info(f"Quotation {quotation_id} is already a permit")
        return snapshot

    items, quote = _commit_quotation_stock(snapshot.items, quote, transition.stock)
    quote = quote.model_copy(update={"status": transition.target})
    logger.info(f"Issued permit for quotation {quotation_id}")
    return snapshot.model_copy(update={"items": items, "quotations": _replace(snapshot.quotations, quote)})


def convert_to_contract(snapshot: AppSnapshot, quotation_id: str, now: Optional[datetime] = None) -> AppSnapshot:
    quote = _find(snapshot.quotations, quotation_id, "Quotation")
    transition = lookup(QUOTATION_TRANSITIONS, quote.status, 'convert')
    now = now or utcnow()

    items, quote = _commit_quotation_stock(snapshot.items, quote, transition.stock)
    number, settings = allocate_contract_number(snapshot.system_settings)
    rental = Rental(
        id=str(number),
        customer_name=quote.customer_name,
        customer_phone=quote.customer_phone,
        customer_address=quote.customer_address,
        items=[line.model_copy(update={"start_date": now}) for line in quote.items],
        start_date=now,
        status='active',
        discount_value=quote.discount_value,
        discount_type=quote.discount_type,
        security_deposit=quote.security_deposit,
        opening_balance=0,
        notes=quote.notes or f"Converted from #{quote.id}",
        source_quotation=quote.id,
    )
    # The contract now holds the stock; the quotation is finished with it.
    quote = quote.model_copy(update={
        "status": transition.target,
        "stock_committed": False,
        "converted_to": rental.id,
    })
    logger.info(f"Converted quotation {quotation_id} to contract {rental.id}")
    return snapshot.model_copy(update={
        "items": items,
        "quotations": _replace(snapshot.quotations, quote),
        "rentals": [rental, *snapshot.rentals],
        "system_settings": settings,
    })


def _remove_quotation(snapshot: AppSnapshot, quotation_id: str, action: str) -> AppSnapshot:
    quote = _find(snapshot.quotations, quotation_id, "Quotation")
    transition = lookup(QUOTATION_TRANSITIONS, quote.status, action)
    items, _ = _commit_quotation_stock(snapshot.items, quote, transition.stock)
    logger.info(f"Quotation {quotation_id} removed ({action}, was {quote.status})")
    return snapshot.model_copy(update={"items": items, "quotations": _without(snapshot.quotations, quotation_id)})


def archive_quotation(snapshot: AppSnapshot, quotation_id: str) -> AppSnapshot:
    return _remove_quotation(snapshot, quotation_id, 'archive')


def delete_quotation(snapshot: AppSnapshot, quotation_id: str) -> AppSnapshot:
    return _remove_quotation(snapshot, quotation_id, 'delete')


def return_quotation_line(snapshot: AppSnapshot, quotation_id: str, line_id: str, qty: int,
                          now: Optional[datetime] = None) -> AppSnapshot:
    quote = _find(snapshot.quotations, quotation_id, "Quotation")
    lookup(QUOTATION_TRANSITIONS, quote.status, 'return_line')
    items, quote = _return_line(snapshot.items, quote, line_id, qty, now or utcnow())
    logger.info(f"Returned {qty} on permit {quotation_id} line {line_id}")
    return snapshot.model_copy(update={"items": items, "quotations": _replace(snapshot.quotations, quote)})


# ---------------------------------------------------------------------------
# Rental contracts
# ---------------------------------------------------------------------------

def create_rental(snapshot: AppSnapshot, draft: RentalDraft, now: Optional[datetime] = None) -> AppSnapshot:
    _validate_draft(draft)
    transition = lookup(RENTAL_TRANSITIONS, NEW, 'create')
    now = now or utcnow()
    lines = _build_lines(snapshot.items, draft.lines, now)

    number, settings = allocate_contract_number(snapshot.system_settings)
    rental = Rental(
        id=str(number),
        customer_name=draft.customer_name.strip(),
        customer_phone=draft.customer_phone,
        customer_address=draft.customer_address,
        items=lines,
        start_date=now,
        status=transition.target,
        discount_value=draft.discount_value,
        discount_type=draft.discount_type,
        security_deposit=draft.security_deposit,
        opening_balance=draft.opening_balance,
        notes=draft.notes,
    )
    items, lines = stock_ledger.apply_lines(snapshot.items, rental.items, transition.stock)
    rental = rental.model_copy(update={"items": lines})
    logger.info(f"Created contract {rental.id} for {rental.customer_name}")
    return snapshot.model_copy(update={
        "items": items,
        "rentals": [rental, *snapshot.rentals],
        "system_settings": settings,
    })


def _active_rental(snapshot: AppSnapshot, rental_id: str) -> Rental:
    if any(r.id == rental_id for r in snapshot.archived_rentals):
        raise InvalidTransition(f"Contract {rental_id} is archived")
    return _find(snapshot.rentals, rental_id, "Contract")


def archive_rental(snapshot: AppSnapshot, rental_id: str) -> AppSnapshot:
    rental = _active_rental(snapshot, rental_id)
    transition = lookup(RENTAL_TRANSITIONS, rental.status, 'archive')
    items, lines = stock_ledger.apply_lines(snapshot.items, rental.items, transition.stock)
    rental = rental.model_copy(update={"items": lines})
    logger.info(f"Archived contract {rental_id}")
    return snapshot.model_copy(update={
        "items": items,
        "rentals": _without(snapshot.rentals, rental_id),
        "archived_rentals": [rental, *snapshot.archived_rentals],
    })


def restore_rental(snapshot: AppSnapshot, rental_id: str) -> AppSnapshot:
    rental = _find(snapshot.archived_rentals, rental_id, "Archived contract")
    transition = lookup(RENTAL_TRANSITIONS, ARCHIVED, 'restore')
    items, lines = stock_ledger.apply_lines(snapshot.items, rental.items, transition.stock)
    rental = rental.model_copy(update={"items": lines})
    logger.info(f"Restored contract {rental_id} from archive")
    return snapshot.model_copy(update={
        "items": items,
        "rentals": [rental, *snapshot.rentals],
        "archived_rentals": _without(snapshot.archived_rentals, rental_id),
    })


def add_rental_line(snapshot: AppSnapshot, rental_id: str, item_id: str, qty: int,
                    rate: Optional[float] = None, now: Optional[datetime] = None) -> AppSnapshot:
    rental = _active_rental(snapshot, rental_id)
    lookup(RENTAL_TRANSITIONS, rental.status, 'add_line')
    inv = next((i for i in snapshot.items if i.id == item_id), None)
    if inv is None:
        raise ValidationRejected(f"Inventory item {item_id} not found")
    if inv.available_qty <= 0:
        raise ValidationRejected(f"No stock available for {inv.name}")
    if qty < 1:
        raise ValidationRejected("Quantity must be at least 1")
    if rate is not None and rate < 0:
        raise ValidationRejected("Rate cannot be negative")

    line = _build_lines(snapshot.items, [LineDraft(item_id=item_id, qty=qty, rate=rate)], now or utcnow())[0]
    items, taken = stock_ledger.take(snapshot.items, item_id, qty)
    line = line.model_copy(update={"held_qty": taken})
    rental = rental.model_copy(update={"items": [*rental.items, line]})
    logger.info(f"Added {qty} x {inv.name} to contract {rental_id}")
    return snapshot.model_copy(update={"items": items, "rentals": _replace(snapshot.rentals, rental)})


def return_rental_line(snapshot: AppSnapshot, rental_id: str, line_id: str, qty: int,
                       now: Optional[datetime] = None) -> AppSnapshot:
    rental = _active_rental(snapshot, rental_id)
    lookup(RENTAL_TRANSITIONS, rental.status, 'return_line')
    items, rental = _return_line(snapshot.items, rental, line_id, qty, now or utcnow())
    logger.info(f"Returned {qty} on contract {rental_id} line {line_id}")
    return snapshot.model_copy(update={"items": items, "rentals": _replace(snapshot.rentals, rental)})


def close_rental(snapshot: AppSnapshot, rental_id: str) -> AppSnapshot:
    rental = _active_rental(snapshot, rental_id)
    transition = lookup(RENTAL_TRANSITIONS, rental.status, 'close')
    if transition.noop:
        logger.info(f"Contract {rental_id} is already closed")
        return snapshot
    rental = billing.close_document(rental)
    logger.info(f"Closed contract {rental_id}")
    return snapshot.model_copy(update={"rentals": _replace(snapshot.rentals, rental)})


def record_payment(snapshot: AppSnapshot, rental_id: str, amount: float,
                   now: Optional[datetime] = None) -> AppSnapshot:
    rental = billing.add_payment(_active_rental(snapshot, rental_id), amount, now)
    return snapshot.model_copy(update={"rentals": _replace(snapshot.rentals, rental)})


def set_discount(snapshot: AppSnapshot, kind: str, doc_id: str, value: float, discount_type: str) -> AppSnapshot:
    if kind == 'quotation':
        quote = _find(snapshot.quotations, doc_id, "Quotation")
        lookup(QUOTATION_TRANSITIONS, quote.status, 'discount')
        quote = billing.apply_discount(quote, value, discount_type)
        return snapshot.model_copy(update={"quotations": _replace(snapshot.quotations, quote)})
    if kind == 'rental':
        rental = billing.apply_discount(_active_rental(snapshot, doc_id), value, discount_type)
        return snapshot.model_copy(update={"rentals": _replace(snapshot.rentals, rental)})
    raise ValidationRejected(f"Unknown document kind: {kind}")
