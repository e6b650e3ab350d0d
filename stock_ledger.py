"""
Available-quantity ledger over the inventory catalog.

Insufficient stock is never an error: deductions floor at zero and the
operator judges physical stock. References to items that were removed from
the catalog are ignored.
"""
import logging
from typing import Iterable, List, Literal, Tuple

from schemas import InventoryItem, LineItem

logger = logging.getLogger(__name__)

Direction = Literal['deduct', 'restore']


def _adjust(items: List[InventoryItem], item_id: str, delta: int) -> List[InventoryItem]:
    updated = []
    for inv in items:
        if inv.id == item_id:
            new_qty = inv.available_qty + delta
            if new_qty < 0:
                logger.warning(f"Stock for item {item_id} clamped at zero (had {inv.available_qty}, deducting {-delta})")
                new_qty = 0
            logger.debug(f"Item {item_id}: available {inv.available_qty} -> {new_qty}")
            inv = inv.model_copy(update={"available_qty": new_qty})
        updated.append(inv)
    return updated


def has_item(items: List[InventoryItem], item_id: str) -> bool:
    return any(inv.id == item_id for inv in items)


def deduct(items: List[InventoryItem], item_id: str, qty: int) -> List[InventoryItem]:
    if not has_item(items, item_id):
        logger.warning(f"Deduct skipped, item {item_id} not in catalog")
        return list(items)
    return _adjust(items, item_id, -qty)


def restore(items: List[InventoryItem], item_id: str, qty: int) -> List[InventoryItem]:
    if not has_item(items, item_id):
        logger.warning(f"Restore skipped, item {item_id} not in catalog")
        return list(items)
    return _adjust(items, item_id, qty)


def take(items: List[InventoryItem], item_id: str, qty: int) -> Tuple[List[InventoryItem], int]:
    """Deduct like `deduct`, also returning how much stock was actually taken."""
    inv = next((i for i in items if i.id == item_id), None)
    if inv is None:
        logger.warning(f"Deduct skipped, item {item_id} not in catalog")
        return list(items), 0
    return _adjust(items, item_id, -qty), min(qty, inv.available_qty)


def apply_lines(items: List[InventoryItem], lines: Iterable[LineItem],
                direction: Direction) -> Tuple[List[InventoryItem], List[LineItem]]:
    """
    Deduct each line's current quantity, or give back what each line holds.

    Deducting records on every line the quantity really taken (`held_qty`),
    which can be less than `current_qty` when stock ran out. Restoring hands
    back exactly `held_qty` and zeroes it, so clamped deductions never turn
    into extra stock.
    """
    if direction not in ('deduct', 'restore'):
        raise ValueError(f"Unknown stock direction: {direction}")
    result = list(items)
    updated = []
    for line in lines:
        if direction == 'deduct':
            taken = 0
            if line.current_qty > 0:
                result, taken = take(result, line.item_id, line.current_qty)
            line = line.model_copy(update={"held_qty": taken})
        elif line.held_qty > 0:
            result = restore(result, line.item_id, line.held_qty)
            line = line.model_copy(update={"held_qty": 0})
        updated.append(line)
    return result, updated
