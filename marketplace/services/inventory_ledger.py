import logging
from dataclasses import dataclass
from typing import List, Union

from sqlalchemy import text
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from marketplace.core.exceptions import InsufficientStockError, NotFoundError, ValidationError
from marketplace.models.database import Product

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class InsufficientStock:
    """Outcome of a reservation that the current stock cannot cover"""
    product_id: int
    requested: int
    available: int

    def to_error(self, name=None) -> InsufficientStockError:
        return InsufficientStockError(self.product_id, self.requested, self.available, name=name)


ReserveResult = Union[Reservation, InsufficientStock]


class InventoryLedger:
    """
    Sole owner of ``products.stock``.

    Every mutation is a single conditional UPDATE evaluated by the database,
    so concurrent reservations against the same row are serialized by the
    store itself and stock can never go negative. The ledger never commits:
    the caller's unit of work decides when stock changes become durable.
    """

    def __init__(self, db: Session):
        self.db = db

    def reserve(self, product_id: int, quantity: int) -> ReserveResult:
        """
        Atomically take ``quantity`` units of stock.

        Returns a Reservation on success, or an InsufficientStock value
        carrying the quantity that was actually available.
        """
        self._check_quantity(quantity)

        update_count = self.db.execute(
            text("""
                UPDATE products
                SET stock = stock - :quantity,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = :product_id AND stock >= :quantity
            """),
            {"product_id": product_id, "quantity": quantity}
        ).rowcount

        if update_count == 1:
            self._expire_cached(product_id)
            logger.info(f"Reserved {quantity} of product {product_id}")
            return Reservation(product_id=product_id, quantity=quantity)

        available = self.available(product_id)
        logger.info(
            f"Reservation refused for product {product_id}: "
            f"requested {quantity}, available {available}"
        )
        return InsufficientStock(product_id=product_id, requested=quantity, available=available)

    def release(self, product_id: int, quantity: int) -> None:
        """Give back previously reserved units. Callers release each reservation once."""
        self._increment(product_id, quantity)
        logger.info(f"Released {quantity} of product {product_id}")

    def restock(self, product_id: int, quantity: int) -> None:
        """Record new stock intake for a product"""
        self._increment(product_id, quantity)
        logger.info(f"Restocked product {product_id} with {quantity} units")

    def available(self, product_id: int) -> int:
        stock = self.db.execute(
            text("SELECT stock FROM products WHERE id = :product_id"),
            {"product_id": product_id}
        ).scalar()
        if stock is None:
            raise NotFoundError(f"Product {product_id} not found")
        return stock

    def get_inventory_status(self) -> List[dict]:
        """Get current inventory status for debugging"""
        products = self.db.query(Product).order_by(Product.id).all()
        return [
            {
                "id": product.id,
                "shop_id": product.shop_id,
                "name": product.name,
                "stock": product.stock,
                "is_active": product.is_active,
            }
            for product in products
        ]

    def _increment(self, product_id: int, quantity: int) -> None:
        self._check_quantity(quantity)
        update_count = self.db.execute(
            text("""
                UPDATE products
                SET stock = stock + :quantity,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = :product_id
            """),
            {"product_id": product_id, "quantity": quantity}
        ).rowcount
        if update_count == 0:
            raise NotFoundError(f"Product {product_id} not found")
        self._expire_cached(product_id)

    def _expire_cached(self, product_id: int) -> None:
        # Raw UPDATEs bypass the identity map; drop any stale in-session copy.
        product = self.db.identity_map.get(identity_key(Product, product_id))
        if product is not None:
            self.db.expire(product, ["stock"])

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if quantity is None or quantity <= 0:
            raise ValidationError(f"Quantity must be a positive integer, got {quantity}")
