import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.core.exceptions import InsufficientStockError, NotFoundError, ValidationError
from marketplace.models.database import Cart, CartItem, Product, Shop, ShopStatus
from marketplace.services.inventory_ledger import InventoryLedger
from marketplace.services.pricing import delivery_fee_for, effective_unit_price, to_money

logger = logging.getLogger(__name__)

# Validation issue codes
PRODUCT_UNAVAILABLE = "PRODUCT_UNAVAILABLE"
SHOP_CLOSED = "SHOP_CLOSED"
OUT_OF_STOCK = "OUT_OF_STOCK"
PARTIAL_STOCK = "PARTIAL_STOCK"


@dataclass
class CartIssue:
    code: str
    item_id: int
    product_id: int
    message: str
    requested: int
    available: Optional[int] = None


@dataclass
class CartValidation:
    errors: List[CartIssue] = field(default_factory=list)
    warnings: List[CartIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


@dataclass
class CartLine:
    item_id: int
    product_id: int
    shop_id: int
    name: str
    unit_price: Decimal
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


@dataclass
class CartSummary:
    cart_id: int
    lines: List[CartLine]
    subtotal: Decimal
    delivery_fee: Decimal
    total: Decimal
    item_count: int


class CartService:
    """
    A customer's pending selections.

    Stock checks made here are advisory: they stop obviously impossible
    carts early, but only the inventory ledger's reservation at checkout
    guarantees availability.
    """

    def __init__(self, db: Session, ledger: Optional[InventoryLedger] = None):
        self.db = db
        self.ledger = ledger or InventoryLedger(db)

    def get(self, user_id: int) -> Optional[Cart]:
        return self.db.query(Cart).filter(Cart.user_id == user_id).first()

    def get_or_create(self, user_id: int) -> Cart:
        cart = self.get(user_id)
        if cart:
            return cart

        cart = Cart(user_id=user_id)
        self.db.add(cart)
        try:
            self.db.commit()
        except IntegrityError:
            # Another request created it first
            self.db.rollback()
            cart = self.db.query(Cart).filter(Cart.user_id == user_id).one()
        else:
            logger.info(f"Created cart {cart.id} for user {user_id}")
        return cart

    def add_item(self, cart: Cart, product_id: int, quantity: int) -> CartItem:
        """Add a product, merging into the existing line for that product if any"""
        if quantity is None or quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        product = self._get_purchasable_product(product_id)

        for attempt in range(2):
            item = self._find_line(cart, product_id)
            new_quantity = quantity + (item.quantity if item else 0)
            self._check_stock(product, new_quantity)

            if item:
                item.quantity = new_quantity
            else:
                item = CartItem(cart_id=cart.id, product_id=product_id, quantity=new_quantity)
                self.db.add(item)

            try:
                self.db.commit()
            except IntegrityError:
                # A concurrent request inserted the same line; merge into it
                self.db.rollback()
                if attempt == 1:
                    raise
                continue

            self.db.refresh(item)
            logger.info(f"Cart {cart.id}: product {product_id} quantity now {item.quantity}")
            return item

    def set_item_quantity(self, cart: Cart, item_id: int, quantity: int) -> Optional[CartItem]:
        """Set a line's quantity; zero removes the line"""
        if quantity is None or quantity < 0:
            raise ValidationError("Quantity cannot be negative")

        item = self._get_item(cart, item_id)
        if quantity == 0:
            self.db.delete(item)
            self.db.commit()
            return None

        self._check_stock(item.product, quantity)
        item.quantity = quantity
        self.db.commit()
        self.db.refresh(item)
        return item

    def remove_item(self, cart: Cart, item_id: int) -> None:
        item = self._get_item(cart, item_id)
        self.db.delete(item)
        self.db.commit()

    def clear(self, cart: Cart) -> int:
        removed = self.db.query(CartItem).filter(
            CartItem.cart_id == cart.id
        ).delete(synchronize_session=False)
        self.db.commit()
        logger.info(f"Cleared {removed} line(s) from cart {cart.id}")
        return removed

    def remove_products(self, cart: Cart, product_ids: Iterable[int]) -> int:
        removed = self.db.query(CartItem).filter(
            CartItem.cart_id == cart.id,
            CartItem.product_id.in_(list(product_ids)),
        ).delete(synchronize_session=False)
        self.db.commit()
        return removed

    def sync(self, cart: Cart, items: Iterable[Tuple[int, int]]) -> List[CartItem]:
        """
        Replace the cart's contents with ``(product_id, quantity)`` pairs held
        by the client, e.g. a guest cart after login.

        Lines for unknown, inactive or closed-shop products, non-positive
        quantities and quantities above visible stock are dropped without error.
        """
        requested: Dict[int, int] = {}
        for product_id, quantity in items:
            if quantity is None or quantity < 1:
                continue
            requested[product_id] = requested.get(product_id, 0) + quantity

        try:
            self.db.query(CartItem).filter(
                CartItem.cart_id == cart.id
            ).delete(synchronize_session=False)

            kept = []
            for product_id, quantity in requested.items():
                product = self._find_purchasable_product(product_id)
                if product is None or self.ledger.available(product.id) < quantity:
                    continue
                item = CartItem(cart_id=cart.id, product_id=product_id, quantity=quantity)
                self.db.add(item)
                kept.append(item)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Synced cart {cart.id}: kept {len(kept)} of {len(requested)} line(s)"
        )
        return kept

    def item_count(self, cart: Cart) -> int:
        total = self.db.query(func.sum(CartItem.quantity)).filter(
            CartItem.cart_id == cart.id
        ).scalar()
        return int(total or 0)

    def lines(self, cart: Cart) -> List[CartLine]:
        items = self.db.query(CartItem).filter(
            CartItem.cart_id == cart.id
        ).order_by(CartItem.id).all()
        return [
            CartLine(
                item_id=item.id,
                product_id=item.product_id,
                shop_id=item.product.shop_id,
                name=item.product.name,
                unit_price=effective_unit_price(item.product),
                quantity=item.quantity,
            )
            for item in items
        ]

    def summarize(self, cart: Cart) -> CartSummary:
        """Derive totals from the current lines; nothing here is stored"""
        lines = self.lines(cart)
        subtotal = to_money(sum((line.line_total for line in lines), Decimal("0")))
        delivery_fee = delivery_fee_for(subtotal) if lines else to_money(0)
        return CartSummary(
            cart_id=cart.id,
            lines=lines,
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            total=to_money(subtotal + delivery_fee),
            item_count=sum(line.quantity for line in lines),
        )

    def validate_for_checkout(self, cart: Cart) -> CartValidation:
        """
        Re-check every line against the current catalogue.

        Unavailable products, closed shops and sold-out products are errors;
        lines that stock only partly covers are warnings, left for the caller
        to accept or refuse.
        """
        items = self.db.query(CartItem).filter(
            CartItem.cart_id == cart.id
        ).order_by(CartItem.id).all()
        if not items:
            raise ValidationError("Cart is empty")

        result = CartValidation()
        for item in items:
            product = item.product
            if not product.is_active:
                result.errors.append(CartIssue(
                    PRODUCT_UNAVAILABLE, item.id, product.id,
                    f'Product "{product.name}" is no longer available', item.quantity,
                ))
                continue

            if product.shop.status != ShopStatus.ACTIVE.value:
                result.errors.append(CartIssue(
                    SHOP_CLOSED, item.id, product.id,
                    f'Shop "{product.shop.name}" is currently closed', item.quantity,
                ))
                continue

            if product.stock < item.quantity:
                if product.stock == 0:
                    result.errors.append(CartIssue(
                        OUT_OF_STOCK, item.id, product.id,
                        f'Product "{product.name}" is out of stock', item.quantity, 0,
                    ))
                else:
                    result.warnings.append(CartIssue(
                        PARTIAL_STOCK, item.id, product.id,
                        f'Only {product.stock} of "{product.name}" available',
                        item.quantity, product.stock,
                    ))
        return result

    def _find_purchasable_product(self, product_id: int) -> Optional[Product]:
        return self.db.query(Product).join(Shop).filter(
            Product.id == product_id,
            Product.is_active.is_(True),
            Shop.status == ShopStatus.ACTIVE.value,
        ).first()

    def _get_purchasable_product(self, product_id: int) -> Product:
        product = self._find_purchasable_product(product_id)
        if not product:
            raise NotFoundError("Product not found or unavailable")
        return product

    def _find_line(self, cart: Cart, product_id: int) -> Optional[CartItem]:
        return self.db.query(CartItem).filter(
            CartItem.cart_id == cart.id,
            CartItem.product_id == product_id,
        ).first()

    def _get_item(self, cart: Cart, item_id: int) -> CartItem:
        item = self.db.query(CartItem).filter(
            CartItem.id == item_id,
            CartItem.cart_id == cart.id,
        ).first()
        if not item:
            raise NotFoundError("Item not found in cart")
        return item

    def _check_stock(self, product: Product, quantity: int) -> None:
        available = self.ledger.available(product.id)
        if available < quantity:
            raise InsufficientStockError(product.id, quantity, available, name=product.name)
