from sqlalchemy import case
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.sql import func
import logging

from . import models

logger = logging.getLogger(__name__)


class StatsReporter:
    """Dashboard figures, recomputed from the owner's live items on every call."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def stats(self, owner_id: int) -> dict:
        item = models.Item
        stmt = select(
            func.count(item.id),
            func.coalesce(func.sum(item.quantity), 0),
            func.coalesce(func.sum(item.quantity * item.price), 0.0),
            func.coalesce(func.sum(case((item.quantity <= item.min_stock, 1), else_=0)), 0),
        ).where(item.user_id == owner_id, item.deleted_at.is_(None))

        result = await self.db.execute(stmt)
        total_items, total_quantity, total_value, low_stock = result.one()
        logger.debug(f"Stats for user {owner_id}: {total_items} items, {low_stock} low on stock")
        return {
            "total_items": int(total_items),
            "total_quantity": int(total_quantity),
            "total_value": float(total_value),
            "low_stock": int(low_stock),
        }
