from datetime import timedelta

import pytest

import billing
from exceptions import ValidationRejected
from schemas import LineItem, Payment, Quotation, Rental


def make_line(now, qty=10, rate=100, returned=0, start=None):
    return LineItem(id="l1", item_id="X", name="Scaffolding", original_qty=qty + returned,
                    returned_qty=returned, current_qty=qty, rate=rate, start_date=start or now)


def make_rental(now, lines, **extra):
    return Rental(id="1001", customer_name="Acme", items=lines, start_date=now, **extra)


def test_percentage_discount_settlement(now):
    rental = make_rental(now, [make_line(now)], discount_value=10, discount_type='percentage')
    s = billing.settle(rental, now, 'weekly')
    assert s.subtotal == 1000
    assert s.discount == 100
    assert s.total_due == 900
    assert s.remaining == 900


def test_paying_exactly_clears_and_overpaying_gives_credit(now):
    rental = make_rental(now, [make_line(now)], discount_value=10, discount_type='percentage')
    paid = billing.add_payment(rental, 900, now)
    assert billing.settle(paid, now, 'weekly').remaining == 0

    over = billing.add_payment(rental, 1000, now)
    assert billing.settle(over, now, 'weekly').remaining == -100


def test_total_due_adds_rounded_deposit_and_opening_balance(now):
    rental = make_rental(now, [make_line(now, qty=1, rate=100.4)],
                         discount_value=0.5, security_deposit=49.5, opening_balance=10.4)
    s = billing.settle(rental, now, 'weekly')
    assert (s.subtotal, s.discount, s.deposit, s.opening_balance) == (100, 1, 50, 10)
    assert s.total_due == 100 - 1 + 10 + 50


def test_rental_lines_bill_by_their_own_start(now):
    later = now + timedelta(days=10)
    lines = [make_line(now, qty=2, rate=100), make_line(later, qty=1, rate=100).model_copy(update={"id": "l2"})]
    rental = make_rental(now, lines)
    # first line: 10 days = 2 weeks, second line: 0 days = 1 week
    assert billing.settle(rental, later, 'weekly').subtotal == 2 * 100 * 2 + 1 * 100 * 1


def test_returned_quantity_is_not_billed(now):
    rental = make_rental(now, [make_line(now, qty=3, returned=2)])
    assert billing.settle(rental, now, 'weekly').subtotal == 300


def test_quotation_is_priced_flat(now):
    quote = Quotation(id="Q1", customer_name="Acme", date=now - timedelta(days=60),
                      items=[make_line(now - timedelta(days=60), qty=5, rate=20)], security_deposit=100)
    s = billing.settle(quote, now, 'weekly')
    assert s.subtotal == 100
    assert s.total_due == 200
    assert s.total_paid == 0


def test_closed_rental_keeps_accruing(now):
    rental = billing.close_document(make_rental(now, [make_line(now, qty=1, rate=100)]))
    assert rental.status == 'closed'
    assert billing.settle(rental, now + timedelta(days=21), 'weekly').subtotal == 300


def test_total_paid_is_rounded_once(now):
    rental = make_rental(now, [], payments=[
        Payment(id="p1", amount=10.4, date=now),
        Payment(id="p2", amount=10.4, date=now),
    ])
    assert billing.settle(rental, now, 'weekly').total_paid == 21


@pytest.mark.parametrize("amount", [0, -5, 0.3])
def test_non_positive_payments_are_rejected(now, amount):
    with pytest.raises(ValidationRejected):
        billing.add_payment(make_rental(now, []), amount, now)


def test_payment_is_timestamped_and_appended(now):
    rental = billing.add_payment(make_rental(now, []), 250.6, now)
    assert len(rental.payments) == 1
    assert rental.payments[0].amount == 251
    assert rental.payments[0].date == now


def test_apply_discount_replaces_in_place(now):
    rental = billing.apply_discount(make_rental(now, []), 15, 'percentage')
    assert (rental.discount_value, rental.discount_type) == (15, 'percentage')
    rental = billing.apply_discount(rental, 40, 'fixed')
    assert (rental.discount_value, rental.discount_type) == (40, 'fixed')


@pytest.mark.parametrize("value,kind", [(-1, 'fixed'), (101, 'percentage'), (5, 'bogus')])
def test_invalid_discounts_are_rejected(now, value, kind):
    with pytest.raises(ValidationRejected):
        billing.apply_discount(make_rental(now, []), value, kind)


def test_round_money_rounds_half_up():
    assert billing.round_money(2.5) == 3
    assert billing.round_money(-2.5) == -2
    assert billing.round_money(2.49) == 2


def test_settlement_follows_the_given_periodicity(now):
    rental = make_rental(now, [make_line(now, qty=1)])
    later = now + timedelta(days=20)
    # 20 days: 3 weeks (6 extra days > 2 grace), or 1 month
    assert billing.settle(rental, later, 'weekly').subtotal == 300
    assert billing.settle(rental, later, 'monthly').subtotal == 100
    with pytest.raises(TypeError):
        billing.settle(rental, later)
