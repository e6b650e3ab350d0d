from datetime import timedelta

import pytest

import catalog
import lifecycle
from conftest import stock
from exceptions import DocumentNotFound, ValidationRejected


def test_add_update_delete_item(snapshot):
    result = catalog.add_item(snapshot, "Ladder", "Access", 30, 8)
    item = result.items[-1]
    assert (item.name, item.available_qty) == ("Ladder", 8)

    result = catalog.update_item(result, item.id, rate_per_unit=35, name=None)
    assert result.items[-1].rate_per_unit == 35
    assert result.items[-1].name == "Ladder"

    result = catalog.delete_item(result, item.id)
    assert all(i.id != item.id for i in result.items)


def test_update_item_rejects_negative_quantity(snapshot):
    with pytest.raises(ValidationRejected):
        catalog.update_item(snapshot, "X", available_qty=-1)


def test_catalog_rate_change_does_not_touch_existing_lines(snapshot, rental_draft, now):
    result = lifecycle.create_rental(snapshot, rental_draft(("X", 1)), now)
    result = catalog.update_item(result, "X", rate_per_unit=999)
    assert result.rentals[0].items[0].rate == 100


def test_expenses(snapshot, now):
    result = catalog.add_expense(snapshot, "Fuel", 120, "Transport", now)
    result = catalog.add_expense(result, "Repairs", 80)
    assert catalog.expenses_total(result) == 200

    result = catalog.delete_expense(result, result.expenses[0].id)
    assert catalog.expenses_total(result) == 80

    with pytest.raises(ValidationRejected):
        catalog.add_expense(result, "Nothing", 0)
    with pytest.raises(DocumentNotFound):
        catalog.delete_expense(result, "missing")


def test_list_items_filters_by_name_or_category(snapshot):
    assert [i.id for i in catalog.list_items(snapshot, "gen")] == ["Y"]
    assert [i.id for i in catalog.list_items(snapshot, "CONSTRUCTION")] == ["X"]
    assert len(catalog.list_items(snapshot)) == 2
    assert catalog.list_items(snapshot, "ladder") == []


def test_list_expenses_searches_and_puts_newest_first(snapshot, now):
    result = catalog.add_expense(snapshot, "Diesel", 120, "Transport", now - timedelta(days=10))
    result = catalog.add_expense(result, "Truck tyres", 300, "Transport", now)
    result = catalog.add_expense(result, "Office rent", 900, "Premises", now - timedelta(days=3))

    assert [e.description for e in catalog.list_expenses(result)] == ["Truck tyres", "Office rent", "Diesel"]
    assert [e.description for e in catalog.list_expenses(result, "transport")] == ["Truck tyres", "Diesel"]
    assert [e.description for e in catalog.list_expenses(result, "RENT")] == ["Office rent"]


def test_monthly_total_counts_only_the_current_month(snapshot, now):
    # now is 2026-01-01, so the December expense falls in the previous month
    result = catalog.add_expense(snapshot, "Diesel", 120, "Transport", now)
    result = catalog.add_expense(result, "Repairs", 80, "Maintenance", now + timedelta(days=20))
    result = catalog.add_expense(result, "Old invoice", 500, "Maintenance", now - timedelta(days=1))
    result = catalog.add_expense(result, "Last year", 70, "Maintenance", now.replace(year=2025))

    assert catalog.monthly_total(result, now) == 200
    assert catalog.expenses_total(result) == 770
    assert catalog.dashboard(result, now)["expenses_this_month"] == 200


def test_dashboard_counts_and_receivables(snapshot, draft, rental_draft, now):
    result = lifecycle.create_quotation(snapshot, draft(("X", 1)), 'quotation', now)
    result = lifecycle.create_quotation(result, draft(("X", 1)), 'permit', now)
    result = lifecycle.create_rental(result, rental_draft(("X", 2)), now)
    paid = lifecycle.create_rental(result, rental_draft(("Y", 1)), now)
    rid = paid.rentals[0].id
    paid = lifecycle.record_payment(paid, rid, 500, now)

    summary = catalog.dashboard(paid, now)
    assert summary["active_rentals"] == 2
    assert summary["pending_quotations"] == 1
    assert summary["permits"] == 1
    # 200 owed on the first contract, the second is in credit and counts as 0
    assert summary["outstanding_receivables"] == 200


def test_list_rentals_orders_by_priority_and_searches(snapshot, rental_draft, now):
    result = lifecycle.create_rental(snapshot, rental_draft(("X", 1), customer="Old Settled"), now - timedelta(days=5))
    settled = result.rentals[0].id
    result = lifecycle.record_payment(result, settled, 1000, now)
    result = lifecycle.close_rental(result, settled)

    result = lifecycle.create_rental(result, rental_draft(("X", 1), customer="Closed Owing"), now - timedelta(days=3))
    owing = result.rentals[0].id
    result = lifecycle.close_rental(result, owing)

    result = lifecycle.create_rental(result, rental_draft(("X", 1), customer="Active One"), now - timedelta(days=10))
    active = result.rentals[0].id

    ordered = [r.id for r in catalog.list_rentals(result, now=now)]
    assert ordered == [active, owing, settled]

    assert [r.id for r in catalog.list_rentals(result, search="owing", now=now)] == [owing]


def test_delete_archived_rental_has_no_stock_effect(snapshot, rental_draft, now):
    result = lifecycle.create_rental(snapshot, rental_draft(("X", 4)), now)
    rid = result.rentals[0].id
    result = lifecycle.archive_rental(result, rid)
    result = catalog.delete_archived_rental(result, rid)
    assert result.archived_rentals == []
    assert stock(result, "X") == 20


def test_invoice_counter_cannot_go_backwards(snapshot):
    with pytest.raises(ValidationRejected):
        catalog.update_system_settings(snapshot, next_invoice_number=5)
    result = catalog.update_system_settings(snapshot, rental_system='monthly', next_invoice_number=2000)
    assert result.system_settings.rental_system == 'monthly'
    assert result.system_settings.next_invoice_number == 2000


def test_company_settings_update(snapshot):
    result = catalog.update_company_settings(snapshot, name="Arab Equipment", phone=None)
    assert result.company_settings.name == "Arab Equipment"
    with pytest.raises(ValidationRejected):
        catalog.update_company_settings(snapshot, email="not-an-email")
