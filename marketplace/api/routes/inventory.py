from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from marketplace.core.database import get_db
from marketplace.core.exceptions import AuthorizationError, NotFoundError
from marketplace.core.security import Actor, get_current_actor
from marketplace.models.database import Product
from marketplace.models.schemas import InventoryLevel, RestockRequest
from marketplace.services.inventory_ledger import InventoryLedger

router = APIRouter()

@router.get("/status/debug")
def get_inventory_status(db: Session = Depends(get_db)):
    """Get inventory status for debugging stock levels"""
    ledger = InventoryLedger(db)
    return ledger.get_inventory_status()

@router.get("/{product_id}", response_model=InventoryLevel)
def get_inventory_level(product_id: int, db: Session = Depends(get_db)):
    """Get the stock currently available for a product"""
    ledger = InventoryLedger(db)
    return InventoryLevel(product_id=product_id, stock=ledger.available(product_id))

@router.post("/{product_id}/restock", response_model=InventoryLevel)
def restock_product(
    product_id: int,
    restock_data: RestockRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Add stock to a product (shop vendor or admin)"""
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError("Product not found")
    if not actor.is_admin and product.shop.vendor_id != actor.user_id:
        raise AuthorizationError("You are not allowed to restock this product")

    ledger = InventoryLedger(db)
    try:
        ledger.restock(product_id, restock_data.quantity)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return InventoryLevel(product_id=product_id, stock=ledger.available(product_id))
