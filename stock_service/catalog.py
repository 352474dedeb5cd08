from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.sql import func
from typing import List
import logging

from . import models
from .errors import Conflict, InvalidInput, NotFound, StorageFailure
from .ledger import TransactionLedger

logger = logging.getLogger(__name__)

OPENING_BALANCE_NOTE = "Opening balance"
ADJUSTMENT_NOTE = "Quantity adjusted via item update"


def _direction_for(delta: int) -> str:
    return models.DIRECTION_IN if delta > 0 else models.DIRECTION_OUT


def _check_stock_levels(quantity: int | None, min_stock: int | None) -> None:
    for label, value in (("Quantity", quantity), ("Minimum stock", min_stock)):
        if value is not None and not models.INT_MIN <= value <= models.INT_MAX:
            raise InvalidInput(f"{label} is out of range")


class ItemCatalog:
    """
    Items scoped to their owner.

    Any quantity the catalog writes directly (an opening quantity on create,
    a changed quantity on update) is mirrored by a ledger entry in the same
    commit, so quantity always equals the signed sum of the item's ledger.
    Deleted items are tombstoned and disappear from every read here.
    """

    def __init__(self, db: AsyncSession, ledger: TransactionLedger):
        self.db = db
        self.ledger = ledger

    def _owned(self, owner_id: int):
        return select(models.Item).where(
            models.Item.user_id == owner_id,
            models.Item.deleted_at.is_(None),
        )

    async def _sku_taken(self, sku: str, exclude_id: int | None = None) -> bool:
        # Tombstoned items keep their sku reserved
        stmt = select(models.Item.id).where(models.Item.sku == sku)
        if exclude_id is not None:
            stmt = stmt.where(models.Item.id != exclude_id)
        result = await self.db.execute(stmt)
        return result.first() is not None

    async def _commit(self, action: str) -> None:
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"Integrity error while trying to {action}: {e.orig}")
            raise Conflict("SKU already exists") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise StorageFailure(f"Failed to {action}") from e

    async def create(
        self,
        owner_id: int,
        name: str,
        sku: str,
        category: str | None = None,
        quantity: int | None = 0,
        min_stock: int | None = 0,
        price: float | None = 0.0,
        supplier: str | None = None,
    ) -> int:
        if not name or not sku:
            raise InvalidInput("Name and SKU are required")
        if price is not None and price < 0:
            raise InvalidInput("Price must not be negative")
        _check_stock_levels(quantity, min_stock)
        if quantity is not None and abs(quantity) > models.INT_MAX:
            # The opening balance entry books abs(quantity)
            raise InvalidInput("Quantity is out of range")
        if await self._sku_taken(sku):
            logger.warning(f"Rejected item create, sku '{sku}' already exists")
            raise Conflict("SKU already exists")

        quantity = quantity or 0
        item = models.Item(
            name=name,
            sku=sku,
            category=category or "",
            quantity=quantity,
            min_stock=min_stock or 0,
            price=price or 0.0,
            supplier=supplier or "",
            user_id=owner_id,
        )
        self.db.add(item)
        try:
            await self.db.flush()
            if quantity:
                await self.ledger.append(
                    item.id, _direction_for(quantity), abs(quantity), owner_id, OPENING_BALANCE_NOTE
                )
        except IntegrityError as e:
            await self.db.rollback()
            raise Conflict("SKU already exists") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create item '{sku}': {e}")
            raise StorageFailure("Failed to create item") from e
        await self._commit(f"create item '{sku}'")

        logger.info(f"Created item {item.id} ('{sku}') for user {owner_id} with quantity {quantity}")
        return item.id

    async def get(self, owner_id: int, item_id: int) -> models.Item:
        result = await self.db.execute(self._owned(owner_id).where(models.Item.id == item_id))
        item = result.scalars().first()
        if item is None:
            raise NotFound("Item not found")
        return item

    async def list(self, owner_id: int) -> List[models.Item]:
        result = await self.db.execute(
            self._owned(owner_id).order_by(models.Item.created_at.desc(), models.Item.id.desc())
        )
        return list(result.scalars().all())

    async def update(
        self,
        owner_id: int,
        item_id: int,
        name: str,
        sku: str,
        category: str | None = None,
        quantity: int | None = 0,
        min_stock: int | None = 0,
        price: float | None = 0.0,
        supplier: str | None = None,
    ) -> None:
        """Replaces every editable field at once; there is no partial update."""
        if not name or not sku:
            raise InvalidInput("Name and SKU are required")
        if price is not None and price < 0:
            raise InvalidInput("Price must not be negative")
        _check_stock_levels(quantity, min_stock)
        result = await self.db.execute(
            self._owned(owner_id)
            .where(models.Item.id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        item = result.scalars().first()
        if item is None:
            logger.warning(f"Update of missing item {item_id} requested by user {owner_id}")
            raise NotFound("Item not found")
        if sku != item.sku and await self._sku_taken(sku, exclude_id=item.id):
            raise Conflict("SKU already exists")

        quantity = quantity or 0
        delta = quantity - item.quantity
        if abs(delta) > models.INT_MAX:
            raise InvalidInput("Quantity change is out of range")
        item.name = name
        item.sku = sku
        item.category = category or ""
        item.quantity = quantity
        item.min_stock = min_stock or 0
        item.price = price or 0.0
        item.supplier = supplier or ""
        item.updated_at = func.now()
        try:
            if delta:
                await self.ledger.append(item.id, _direction_for(delta), abs(delta), owner_id, ADJUSTMENT_NOTE)
        except IntegrityError as e:
            # sku taken by a concurrent request after the pre-check
            await self.db.rollback()
            raise Conflict("SKU already exists") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to record adjustment for item {item_id}: {e}")
            raise StorageFailure("Failed to update item") from e
        await self._commit(f"update item {item_id}")
        logger.info(f"Updated item {item_id} for user {owner_id} (quantity delta {delta:+d})")

    async def delete(self, owner_id: int, item_id: int) -> None:
        result = await self.db.execute(self._owned(owner_id).where(models.Item.id == item_id))
        item = result.scalars().first()
        if item is None:
            logger.warning(f"Attempted to delete non-existent item {item_id} for user {owner_id}")
            raise NotFound("Item not found")
        item.deleted_at = func.now()
        await self._commit(f"delete item {item_id}")
        logger.info(f"Deleted item {item_id} for user {owner_id}")

    async def list_low_stock(self, owner_id: int) -> List[models.Item]:
        result = await self.db.execute(
            self._owned(owner_id)
            .where(models.Item.quantity <= models.Item.min_stock)
            .order_by(models.Item.created_at.desc(), models.Item.id.desc())
        )
        return list(result.scalars().all())
