"""Contract number allocation."""
import logging
from typing import Tuple

from schemas import SystemSettings

logger = logging.getLogger(__name__)


def allocate_contract_number(settings: SystemSettings) -> Tuple[int, SystemSettings]:
    number = settings.next_invoice_number
    advanced = settings.model_copy(update={"next_invoice_number": number + 1})
    logger.debug(f"Allocated contract number {number}")
    return number, advanced
