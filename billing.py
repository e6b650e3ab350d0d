"""
Billing and settlement for quotations and rental contracts.

Quotations price a flat estimate (quantity x rate). Contracts are a running
meter: each line bills quantity x rate x elapsed periods from its own start
date. Every money term is rounded on its own before the terms are combined.
"""
import logging
import math
from datetime import datetime
from typing import Optional, Union

from exceptions import ValidationRejected
from rental_units import rental_units
from schemas import Payment, Quotation, Rental, Settlement
from utils import new_id, utcnow

logger = logging.getLogger(__name__)

Document = Union[Quotation, Rental]


def round_money(value: float) -> int:
    # half up, so 2.5 -> 3 and -2.5 -> -2
    return int(math.floor(value + 0.5))


def subtotal(document: Document, now: datetime, periodicity: str) -> float:
    if isinstance(document, Quotation):
        return sum(line.current_qty * line.rate for line in document.items)
    total = 0.0
    for line in document.items:
        units = rental_units(line.start_date, now, periodicity)
        total += line.current_qty * line.rate * units
    return total


def discount_amount(document: Document, base: float) -> float:
    if document.discount_type == 'percentage':
        return base * document.discount_value / 100
    return document.discount_value


def settle(document: Document, now: Optional[datetime], periodicity: str) -> Settlement:
    now = now or utcnow()
    raw = subtotal(document, now, periodicity)
    opening = document.opening_balance if isinstance(document, Rental) else 0
    payments = document.payments if isinstance(document, Rental) else []

    sub = round_money(raw)
    disc = round_money(discount_amount(document, raw))
    opening = round_money(opening)
    deposit = round_money(document.security_deposit)
    total_due = sub - disc + opening + deposit
    total_paid = round_money(sum(p.amount for p in payments))

    return Settlement(
        subtotal=sub,
        discount=disc,
        deposit=deposit,
        opening_balance=opening,
        total_due=total_due,
        total_paid=total_paid,
        remaining=total_due - total_paid,
    )


def add_payment(rental: Rental, amount: float, now: Optional[datetime] = None) -> Rental:
    if amount is None or amount <= 0:
        raise ValidationRejected("Payment amount must be greater than zero")
    rounded = round_money(amount)
    if rounded <= 0:
        raise ValidationRejected("Payment amount must be greater than zero")
    payment = Payment(id=new_id(), amount=rounded, date=now or utcnow())
    logger.info(f"Payment of {rounded} recorded on contract {rental.id}")
    return rental.model_copy(update={"payments": [*rental.payments, payment]})


def apply_discount(document: Document, value: float, kind: str) -> Document:
    if kind not in ('fixed', 'percentage'):
        raise ValidationRejected(f"Unknown discount type: {kind}")
    if value < 0:
        raise ValidationRejected("Discount cannot be negative")
    if kind == 'percentage' and value > 100:
        raise ValidationRejected("Percentage discount cannot exceed 100")
    return document.model_copy(update={"discount_value": value, "discount_type": kind})


def close_document(rental: Rental) -> Rental:
    # Payments, lines and returns are left exactly as they are.
    return rental.model_copy(update={"status": "closed"})
