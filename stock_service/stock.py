"""
Stock movements.

``StockCoordinator.record`` is the only path for stock-in/stock-out. The ledger
append and the quantity change run in one database transaction: the appended
row is only flushed, and any failure before the commit rolls both back, so
no ledger entry survives without its quantity change and vice versa.
"""

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.sql import func
import logging

from . import models
from .errors import InvalidInput, NotFound, StockServiceError, StorageFailure
from .ledger import TransactionLedger

logger = logging.getLogger(__name__)


class StockCoordinator:

    def __init__(self, db: AsyncSession, ledger: TransactionLedger):
        self.db = db
        self.ledger = ledger

    async def record(
        self,
        actor_id: int,
        item_id: int,
        direction: str,
        quantity: int,
        notes: str | None = None,
    ) -> int:
        if not item_id or not direction or not quantity:
            raise InvalidInput("Item ID, type, and quantity required")
        if direction not in models.DIRECTIONS:
            raise InvalidInput('Type must be "in" or "out"')
        if isinstance(item_id, bool) or not isinstance(item_id, int) or not 0 < item_id <= models.INT_MAX:
            raise InvalidInput("Item ID must be a positive integer")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or not 0 < quantity <= models.INT_MAX:
            raise InvalidInput("Quantity must be a positive integer")

        delta = quantity if direction == models.DIRECTION_IN else -quantity
        try:
            current = await self._lock_owned_item(actor_id, item_id)
            if not models.INT_MIN <= current + delta <= models.INT_MAX:
                raise InvalidInput("Resulting quantity is out of range")
            entry = await self.ledger.append(item_id, direction, quantity, actor_id, notes)
            await self._apply_delta(item_id, delta)
            await self.db.commit()
        except StockServiceError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Rolled back stock movement on item {item_id} by user {actor_id}: {e}")
            raise StorageFailure("Failed to record transaction") from e

        logger.info(f"Recorded transaction {entry.id}: item {item_id} {direction} {quantity} by user {actor_id}")
        return entry.id

    async def _lock_owned_item(self, actor_id: int, item_id: int) -> int:
        # FOR UPDATE serializes concurrent movements on the same item (no-op on SQLite)
        result = await self.db.execute(
            select(models.Item.quantity)
            .where(
                models.Item.id == item_id,
                models.Item.user_id == actor_id,
                models.Item.deleted_at.is_(None),
            )
            .with_for_update()
        )
        row = result.first()
        if row is None:
            logger.warning(f"User {actor_id} tried to move stock on item {item_id} they do not own")
            raise NotFound("Item not found")
        return row.quantity

    async def _apply_delta(self, item_id: int, delta: int) -> None:
        result = await self.db.execute(
            update(models.Item)
            .where(models.Item.id == item_id)
            .values(quantity=models.Item.quantity + delta, updated_at=func.now())
        )
        if result.rowcount != 1:
            raise StorageFailure(f"Quantity update matched {result.rowcount} rows")
