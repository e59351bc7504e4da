from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.core.database import get_db
from marketplace.core.security import Actor, get_current_actor
from marketplace.models import schemas
from marketplace.services.cart_service import CartService

router = APIRouter()


def _summary(service: CartService, actor: Actor) -> schemas.Cart:
    cart = service.get_or_create(actor.user_id)
    return schemas.Cart.model_validate(service.summarize(cart))


@router.get("/", response_model=schemas.Cart)
def get_cart(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Get the current user's cart with derived totals"""
    return _summary(CartService(db), actor)

@router.get("/count", response_model=schemas.CartCount)
def get_cart_count(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    service = CartService(db)
    cart = service.get(actor.user_id)
    return {"count": service.item_count(cart) if cart else 0}

@router.get("/validate", response_model=schemas.CartValidation)
def validate_cart(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Re-check the cart against the catalogue before checkout"""
    service = CartService(db)
    cart = service.get_or_create(actor.user_id)
    return schemas.CartValidation.model_validate(service.validate_for_checkout(cart))

@router.post("/items", response_model=schemas.Cart)
def add_cart_item(
    item_data: schemas.CartItemAdd,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Add a product to the cart, merging with an existing line"""
    service = CartService(db)
    cart = service.get_or_create(actor.user_id)
    service.add_item(cart, item_data.product_id, item_data.quantity)
    return _summary(service, actor)

@router.patch("/items/{item_id}", response_model=schemas.Cart)
def update_cart_item(
    item_id: int,
    item_data: schemas.CartItemUpdate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = CartService(db)
    cart = service.get_or_create(actor.user_id)
    service.set_item_quantity(cart, item_id, item_data.quantity)
    return _summary(service, actor)

@router.delete("/items/{item_id}", response_model=schemas.Cart)
def remove_cart_item(
    item_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = CartService(db)
    cart = service.get_or_create(actor.user_id)
    service.remove_item(cart, item_id)
    return _summary(service, actor)

@router.put("/", response_model=schemas.Cart)
def sync_cart(
    sync_data: schemas.CartSync,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Replace the cart with a client-held cart; unavailable lines are dropped"""
    service = CartService(db)
    cart = service.get_or_create(actor.user_id)
    service.sync(cart, [(item.product_id, item.quantity) for item in sync_data.items])
    return _summary(service, actor)

@router.delete("/", response_model=schemas.Cart)
def clear_cart(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    service = CartService(db)
    cart = service.get_or_create(actor.user_id)
    service.clear(cart)
    return _summary(service, actor)
