import logging
import math
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from marketplace.core.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from marketplace.core.exceptions import (
    AuthorizationError, ConcurrencyConflictError, NotFoundError,
)
from marketplace.core.security import Actor
from marketplace.models.database import Order, OrderStatus, Shop
from marketplace.services.inventory_ledger import InventoryLedger
from marketplace.services.notifications import Notifier, notify_status_change
from marketplace.services.order_state import CUSTOMER_CANCELLABLE, ensure_transition

logger = logging.getLogger(__name__)

ADMIN = "admin"
VENDOR = "vendor"
CUSTOMER = "customer"


@dataclass
class Page:
    items: List[Order]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class OrderService:
    """
    Order reads and status changes.

    Status writes are conditional on the version and status that were read,
    so of two concurrent transitions on one order only the first applies;
    the other fails with ConcurrencyConflictError instead of overwriting it.
    """

    def __init__(self, db: Session, ledger: Optional[InventoryLedger] = None,
                 notifier: Optional[Notifier] = None):
        self.db = db
        self.ledger = ledger or InventoryLedger(db)
        self.notifier = notifier

    def get_order(self, order_id: int, actor: Actor) -> Order:
        order = self._load(order_id)
        if self._relation(order, actor) is None:
            raise AuthorizationError("You are not allowed to view this order")
        return order

    def list_customer_orders(self, customer_id: int, page: int = 1, limit: Optional[int] = None,
                             status: Optional[OrderStatus] = None) -> Page:
        query = self.db.query(Order).filter(Order.customer_id == customer_id)
        if status:
            query = query.filter(Order.status == OrderStatus(status).value)
        return self._paginate(query, page, limit)

    def list_shop_orders(self, shop_id: int, actor: Actor, page: int = 1,
                         limit: Optional[int] = None, status: Optional[OrderStatus] = None) -> Page:
        shop = self.db.query(Shop).filter(Shop.id == shop_id).first()
        if not shop:
            raise NotFoundError("Shop not found")
        if not actor.is_admin and shop.vendor_id != actor.user_id:
            raise AuthorizationError("You are not allowed to view this shop's orders")

        query = self.db.query(Order).filter(Order.shop_id == shop_id)
        if status:
            query = query.filter(Order.status == OrderStatus(status).value)
        return self._paginate(query, page, limit)

    def list_all_orders(self, actor: Actor, page: int = 1, limit: Optional[int] = None,
                        status: Optional[OrderStatus] = None, shop_id: Optional[int] = None,
                        customer_id: Optional[int] = None) -> Page:
        if not actor.is_admin:
            raise AuthorizationError("Only administrators can list all orders")

        query = self.db.query(Order)
        if status:
            query = query.filter(Order.status == OrderStatus(status).value)
        if shop_id:
            query = query.filter(Order.shop_id == shop_id)
        if customer_id:
            query = query.filter(Order.customer_id == customer_id)
        return self._paginate(query, page, limit)

    def transition(self, order_id: int, target: OrderStatus, actor: Actor) -> Order:
        """
        Move an order to ``target``.

        Checks, in order: the order exists, the actor is related to it, the
        table allows the change, and the actor's role may request it.
        Cancelling releases every item's quantity back to stock in the same
        transaction as the status write.
        """
        target = OrderStatus(target)
        order = self._load(order_id)

        relation = self._relation(order, actor)
        if relation is None:
            raise AuthorizationError("You are not allowed to update this order")

        source = OrderStatus(order.status)
        ensure_transition(source, target)
        self._authorize_transition(relation, source, target)

        try:
            update_count = self.db.execute(
                text("""
                    UPDATE orders
                    SET status = :target,
                        version = version + 1,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE id = :order_id AND version = :expected_version AND status = :source
                """),
                {
                    "target": target.value,
                    "order_id": order.id,
                    "expected_version": order.version,
                    "source": source.value,
                }
            ).rowcount

            if update_count == 0:
                raise ConcurrencyConflictError(
                    f"Order {order.order_number} was modified by another transaction"
                )

            if target == OrderStatus.CANCELLED:
                for item in order.items:
                    self.ledger.release(item.product_id, item.quantity)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(order)
        logger.info(
            f"Order {order.order_number}: {source.value} -> {target.value} "
            f"by {relation} {actor.user_id}"
        )
        notify_status_change(self.notifier, order)
        return order

    def cancel(self, order_id: int, actor: Actor) -> Order:
        return self.transition(order_id, OrderStatus.CANCELLED, actor)

    def _load(self, order_id: int) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order not found")
        return order

    @staticmethod
    def _relation(order: Order, actor: Actor) -> Optional[str]:
        if actor.is_admin:
            return ADMIN
        if order.shop.vendor_id == actor.user_id:
            return VENDOR
        if order.customer_id == actor.user_id:
            return CUSTOMER
        return None

    @staticmethod
    def _authorize_transition(relation: str, source: OrderStatus, target: OrderStatus) -> None:
        if relation in (ADMIN, VENDOR):
            return
        if target != OrderStatus.CANCELLED:
            raise AuthorizationError("Only the shop or an administrator can advance an order")
        if source not in CUSTOMER_CANCELLABLE:
            raise AuthorizationError(f"Order can no longer be cancelled once {source.value}")

    @staticmethod
    def _paginate(query, page: int, limit: Optional[int]) -> Page:
        page = max(page or 1, 1)
        limit = min(max(limit or DEFAULT_PAGE_SIZE, 1), MAX_PAGE_SIZE)
        total = query.count()
        items = query.order_by(Order.created_at.desc(), Order.id.desc()).offset(
            (page - 1) * limit
        ).limit(limit).all()
        return Page(items=items, page=page, limit=limit, total=total)
