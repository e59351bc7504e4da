from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List

from marketplace.services.cart_service import CartLine
from marketplace.services.pricing import delivery_fee_for, to_money


@dataclass(frozen=True)
class DraftLine:
    """Snapshot of a cart line at checkout time"""
    product_id: int
    name: str
    unit_price: Decimal
    quantity: int

    @property
    def total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


@dataclass
class ShopOrderDraft:
    shop_id: int
    lines: List[DraftLine] = field(default_factory=list)
    discount: Decimal = Decimal("0.00")

    @property
    def subtotal(self) -> Decimal:
        return to_money(sum((line.total for line in self.lines), Decimal("0")))

    @property
    def delivery_fee(self) -> Decimal:
        # Each shop-order is billed and delivered on its own.
        return delivery_fee_for(self.subtotal)

    @property
    def total(self) -> Decimal:
        return to_money(self.subtotal + self.delivery_fee - self.discount)


def split(lines: Iterable[CartLine]) -> List[ShopOrderDraft]:
    """Partition cart lines into one draft per shop, in first-seen shop order"""
    drafts: Dict[int, ShopOrderDraft] = {}
    for line in lines:
        draft = drafts.setdefault(line.shop_id, ShopOrderDraft(shop_id=line.shop_id))
        draft.lines.append(DraftLine(
            product_id=line.product_id,
            name=line.name,
            unit_price=to_money(line.unit_price),
            quantity=line.quantity,
        ))
    return list(drafts.values())
