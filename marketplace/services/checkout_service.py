import logging
import uuid
from dataclasses import asdict, dataclass, field, replace
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from marketplace.core.exceptions import ErrorKind, NotFoundError, ValidationError
from marketplace.core.security import Actor
from marketplace.models.database import (
    Address, Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus, Shop,
)
from marketplace.services.cart_service import PARTIAL_STOCK, CartIssue, CartLine, CartService
from marketplace.services.inventory_ledger import InsufficientStock, InventoryLedger
from marketplace.services.notifications import Notifier, notify_new_order, notify_status_change
from marketplace.services.order_splitter import ShopOrderDraft, split

logger = logging.getLogger(__name__)


@dataclass
class ShopRejection:
    """A shop-order that could not be placed, and the line that blocked it"""
    shop_id: int
    product_id: int
    product_name: str
    requested: int
    available: int
    reason: str = ErrorKind.INSUFFICIENT_STOCK.value

    @property
    def message(self) -> str:
        return (
            f"Insufficient stock for {self.product_name}. "
            f"Available: {self.available}, Requested: {self.requested}"
        )


@dataclass
class QuantityAdjustment:
    item_id: int
    product_id: int
    requested: int
    accepted: int


@dataclass
class CheckoutResult:
    orders: List[Order] = field(default_factory=list)
    rejections: List[ShopRejection] = field(default_factory=list)
    warnings: List[CartIssue] = field(default_factory=list)
    adjustments: List[QuantityAdjustment] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return bool(self.orders)


def generate_order_number() -> str:
    return f"ORD-{uuid.uuid4().hex[:10].upper()}"


class CheckoutService:
    """
    Turns a customer's cart into one order per shop.

    Each shop-order is all-or-nothing: its stock reservations and its order
    rows are committed together, and a reservation failure on any of its
    lines rejects the whole shop-order. Other shops are unaffected.
    """

    def __init__(self, db: Session, notifier: Optional[Notifier] = None,
                 ledger: Optional[InventoryLedger] = None, carts: Optional[CartService] = None):
        self.db = db
        self.notifier = notifier
        self.ledger = ledger or InventoryLedger(db)
        self.carts = carts or CartService(db, self.ledger)

    def checkout(self, actor: Actor, address_id: int, payment_method: PaymentMethod,
                 notes: Optional[str] = None, accept_partial: bool = False) -> CheckoutResult:
        """
        Place the actor's cart.

        With ``accept_partial`` lines that stock only partly covers are
        reduced to what is available; otherwise they are placed as requested
        and the reservation decides whether their shop-order goes through.
        """
        logger.info(f"Processing checkout for user {actor.user_id}")

        cart = self.carts.get(actor.user_id)
        if cart is None:
            raise ValidationError("Cart is empty")

        validation = self.carts.validate_for_checkout(cart)
        if not validation.valid:
            raise ValidationError(
                "Cart contains unavailable items",
                {"errors": [asdict(issue) for issue in validation.errors]},
            )

        address = self.db.query(Address).filter(
            Address.id == address_id,
            Address.user_id == actor.user_id,
        ).first()
        if not address:
            raise NotFoundError("Address not found")

        payment_method = PaymentMethod(payment_method)

        lines = self.carts.lines(cart)
        adjustments = []
        if accept_partial:
            lines, adjustments = self._apply_partial(lines, validation.warnings)

        result = CheckoutResult(warnings=validation.warnings, adjustments=adjustments)
        placed_products = []
        try:
            for draft in split(lines):
                order, rejection = self._place_shop_order(
                    draft, actor.user_id, address.id, payment_method, notes
                )
                if order is not None:
                    result.orders.append(order)
                    placed_products.extend(line.product_id for line in draft.lines)
                else:
                    result.rejections.append(rejection)
        except Exception:
            # Orders already committed must not be placed again when the caller retries
            if placed_products:
                self.carts.remove_products(cart, placed_products)
                logger.warning(
                    f"Checkout for user {actor.user_id} failed after {len(result.orders)} "
                    f"order(s) were placed; their lines were removed from the cart"
                )
            raise

        # Rejected lines go too; the caller reports them from the result
        self.carts.clear(cart)

        vendors = {
            shop.id: shop.vendor_id
            for shop in self.db.query(Shop).filter(
                Shop.id.in_([order.shop_id for order in result.orders])
            )
        }
        for order in result.orders:
            notify_new_order(self.notifier, vendors[order.shop_id], order)
            notify_status_change(self.notifier, order)

        logger.info(
            f"Checkout for user {actor.user_id}: {len(result.orders)} order(s) placed, "
            f"{len(result.rejections)} shop-order(s) rejected"
        )
        return result

    def _place_shop_order(self, draft: ShopOrderDraft, customer_id: int, address_id: int,
                          payment_method: PaymentMethod,
                          notes: Optional[str]) -> Tuple[Optional[Order], Optional[ShopRejection]]:
        reserved = []
        try:
            for line in draft.lines:
                outcome = self.ledger.reserve(line.product_id, line.quantity)
                if isinstance(outcome, InsufficientStock):
                    for reservation in reserved:
                        self.ledger.release(reservation.product_id, reservation.quantity)
                    self.db.commit()
                    logger.warning(
                        f"Rejected order for shop {draft.shop_id}: product {line.product_id} "
                        f"requested {line.quantity}, available {outcome.available}"
                    )
                    return None, ShopRejection(
                        shop_id=draft.shop_id,
                        product_id=line.product_id,
                        product_name=line.name,
                        requested=line.quantity,
                        available=outcome.available,
                    )
                reserved.append(outcome)

            order = Order(
                order_number=generate_order_number(),
                customer_id=customer_id,
                shop_id=draft.shop_id,
                address_id=address_id,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                payment_method=payment_method.value,
                subtotal=draft.subtotal,
                delivery_fee=draft.delivery_fee,
                discount=draft.discount,
                total=draft.total,
                notes=notes,
            )
            order.items = [
                OrderItem(
                    product_id=line.product_id,
                    name=line.name,
                    price=line.unit_price,
                    quantity=line.quantity,
                    total=line.total,
                )
                for line in draft.lines
            ]
            self.db.add(order)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error placing order for shop {draft.shop_id}: {str(e)}")
            raise

        self.db.refresh(order)
        logger.info(f"Order {order.order_number} placed for shop {draft.shop_id}")
        return order, None

    @staticmethod
    def _apply_partial(lines: List[CartLine],
                       warnings: List[CartIssue]) -> Tuple[List[CartLine], List[QuantityAdjustment]]:
        partial = {
            issue.item_id: issue
            for issue in warnings
            if issue.code == PARTIAL_STOCK
        }
        adjusted, adjustments = [], []
        for line in lines:
            issue = partial.get(line.item_id)
            if issue is not None:
                adjustments.append(QuantityAdjustment(
                    item_id=line.item_id,
                    product_id=line.product_id,
                    requested=line.quantity,
                    accepted=issue.available,
                ))
                line = replace(line, quantity=issue.available)
            adjusted.append(line)
        return adjusted, adjustments
