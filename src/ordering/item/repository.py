"""Item repository: persistence plus the inventory adjuster.

``reserve`` is the only path that decrements stock. Each attempt re-reads the
persisted item, applies the guarded decrement and saves against the version it
read; a concurrent writer surfaces as ``ExpectedVersionError`` and the attempt
is repeated on fresh state.
"""

import structlog
from protean.exceptions import ExpectedVersionError

from ordering.domain import ordering
from ordering.errors import ConflictError
from ordering.item.item import Item

logger = structlog.get_logger(__name__)

MAX_RESERVE_ATTEMPTS = 5


@ordering.repository(part_of=Item)
class ItemRepository:
    def reserve(self, item_id, quantity) -> Item:
        """Decrement stock for one order line.

        Raises ``InsufficientStock`` when the persisted stock cannot cover the
        quantity and ``ConflictError`` once the retry budget is exhausted.
        """
        for attempt in range(1, MAX_RESERVE_ATTEMPTS + 1):
            item = self.get(item_id)
            item.reserve(quantity)
            try:
                self.add(item)
            except ExpectedVersionError:
                logger.info(
                    "Stock decrement lost a version race, retrying",
                    item_id=str(item_id),
                    attempt=attempt,
                )
                continue
            return item

        raise ConflictError(
            f"Could not reserve stock for item {item_id} after {MAX_RESERVE_ATTEMPTS} attempts",
            item_id=str(item_id),
            quantity=quantity,
        )
