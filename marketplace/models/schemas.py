from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from marketplace.models.database import OrderStatus, PaymentMethod, PaymentStatus

# Cart

class CartItemAdd(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1)

class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=0)

class CartSyncItem(BaseModel):
    product_id: int
    quantity: int

class CartSync(BaseModel):
    items: List[CartSyncItem] = []

class CartLine(BaseModel):
    item_id: int
    product_id: int
    shop_id: int
    name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal

    class Config:
        from_attributes = True

class Cart(BaseModel):
    cart_id: int
    lines: List[CartLine] = []
    subtotal: Decimal
    delivery_fee: Decimal
    total: Decimal
    item_count: int

    class Config:
        from_attributes = True

class CartCount(BaseModel):
    count: int

class CartIssue(BaseModel):
    code: str
    item_id: int
    product_id: int
    message: str
    requested: int
    available: Optional[int] = None

    class Config:
        from_attributes = True

class CartValidation(BaseModel):
    valid: bool
    errors: List[CartIssue] = []
    warnings: List[CartIssue] = []

    class Config:
        from_attributes = True

# Orders

class OrderItem(BaseModel):
    id: int
    product_id: int
    name: str
    price: Decimal
    quantity: int
    total: Decimal

    class Config:
        from_attributes = True

class Order(BaseModel):
    id: int
    order_number: str
    customer_id: int
    shop_id: int
    address_id: int
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    subtotal: Decimal
    delivery_fee: Decimal
    discount: Decimal
    total: Decimal
    notes: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime
    items: List[OrderItem] = []

    class Config:
        from_attributes = True

class CheckoutRequest(BaseModel):
    address_id: int
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY
    notes: Optional[str] = Field(None, max_length=500)
    accept_partial: bool = False

class ShopRejection(BaseModel):
    shop_id: int
    product_id: int
    product_name: str
    requested: int
    available: int
    reason: str
    message: str

    class Config:
        from_attributes = True

class QuantityAdjustment(BaseModel):
    item_id: int
    product_id: int
    requested: int
    accepted: int

    class Config:
        from_attributes = True

class CheckoutResponse(BaseModel):
    orders: List[Order] = []
    rejections: List[ShopRejection] = []
    warnings: List[CartIssue] = []
    adjustments: List[QuantityAdjustment] = []

    class Config:
        from_attributes = True

class OrderStatusUpdate(BaseModel):
    status: OrderStatus

class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int

class OrderPage(BaseModel):
    data: List[Order]
    meta: PageMeta

# Inventory

class InventoryLevel(BaseModel):
    product_id: int
    stock: int

class RestockRequest(BaseModel):
    quantity: int = Field(..., ge=1)

# Addresses

class AddressCreate(BaseModel):
    label: str
    street: str
    city: str
    district: Optional[str] = None
    phone: Optional[str] = None
    is_default: bool = False

class Address(AddressCreate):
    id: int
    user_id: int
    created_at: datetime

    class Config:
        from_attributes = True
