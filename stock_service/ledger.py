from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from typing import List
import logging

from . import config, models

logger = logging.getLogger(__name__)


class TransactionLedger:
    """
    Append-only history of stock movements.

    ``append`` only stages the row in the caller's unit of work; committing
    (and adjusting item quantity) is up to the caller.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        item_id: int,
        direction: str,
        quantity: int,
        actor_id: int,
        notes: str | None = None,
    ) -> models.StockTransaction:
        entry = models.StockTransaction(
            item_id=item_id,
            type=direction,
            quantity=quantity,
            notes=notes or "",
            user_id=actor_id,
        )
        self.db.add(entry)
        await self.db.flush() # Assigns the id without committing
        logger.debug(f"Staged ledger entry {entry.id}: item {item_id} {direction} {quantity}")
        return entry

    async def list(self, actor_id: int, item_id: int | None = None) -> List[dict]:
        """Most recent entries of ``actor_id``, newest first, with item name and sku joined in."""
        stmt = (
            select(models.StockTransaction, models.Item.name, models.Item.sku)
            .join(models.Item, models.StockTransaction.item_id == models.Item.id)
            .where(models.StockTransaction.user_id == actor_id)
        )
        if item_id is not None:
            stmt = stmt.where(models.StockTransaction.item_id == item_id)
        stmt = stmt.order_by(
            models.StockTransaction.created_at.desc(), models.StockTransaction.id.desc()
        ).limit(config.TRANSACTION_HISTORY_LIMIT)

        result = await self.db.execute(stmt)
        return [
            {
                "id": entry.id,
                "item_id": entry.item_id,
                "type": entry.type,
                "quantity": entry.quantity,
                "notes": entry.notes,
                "user_id": entry.user_id,
                "created_at": entry.created_at,
                "item_name": item_name,
                "sku": sku,
            }
            for entry, item_name, sku in result.all()
        ]
