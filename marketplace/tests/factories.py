from decimal import Decimal

from marketplace.models.database import Address, Order, Product, Shop, ShopStatus

ADMIN_ID = 1
VENDOR_1_ID = 10
VENDOR_2_ID = 20
CUSTOMER_ID = 100
OTHER_CUSTOMER_ID = 200


class Catalog:
    """Builds shops, products and addresses straight into the test database"""

    def __init__(self, db):
        self.db = db

    def shop(self, vendor_id=VENDOR_1_ID, name="Fresh Greens", status=ShopStatus.ACTIVE):
        shop = Shop(vendor_id=vendor_id, name=name, status=status.value)
        self.db.add(shop)
        self.db.commit()
        self.db.refresh(shop)
        return shop

    def product(self, shop, name="Tomatoes", price="10.00", stock=5, sale_price=None, is_active=True):
        product = Product(
            shop_id=shop.id,
            name=name,
            price=Decimal(price),
            sale_price=Decimal(sale_price) if sale_price is not None else None,
            stock=stock,
            is_active=is_active,
        )
        self.db.add(product)
        self.db.commit()
        self.db.refresh(product)
        return product

    def address(self, user_id=CUSTOMER_ID, label="Home"):
        address = Address(
            user_id=user_id,
            label=label,
            street="12 Nile Street",
            district="First District",
            city="Qena",
            is_default=True,
        )
        self.db.add(address)
        self.db.commit()
        self.db.refresh(address)
        return address

    def set_status(self, order, status):
        """Test-only shortcut to put an order in an arbitrary state"""
        self.db.query(Order).filter(Order.id == order.id).update(
            {"status": status.value}, synchronize_session=False
        )
        self.db.commit()
        self.db.refresh(order)
        return order
