from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session
from typing import Optional
from marketplace.api.deps import get_notifier
from marketplace.core.database import get_db
from marketplace.core.security import Actor, get_current_actor
from marketplace.models import schemas
from marketplace.models.database import OrderStatus
from marketplace.services.checkout_service import CheckoutService
from marketplace.services.notifications import Notifier
from marketplace.services.order_service import OrderService, Page

router = APIRouter()


def _page(page: Page) -> schemas.OrderPage:
    return schemas.OrderPage(
        data=[schemas.Order.model_validate(order) for order in page.items],
        meta=schemas.PageMeta(
            page=page.page, limit=page.limit, total=page.total, total_pages=page.total_pages
        ),
    )


@router.post("/", response_model=schemas.CheckoutResponse, status_code=201)
def create_orders(
    checkout_data: schemas.CheckoutRequest,
    response: Response,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier)
):
    """Check out the current cart, producing one order per shop"""
    service = CheckoutService(db, notifier=notifier)
    result = service.checkout(
        actor,
        checkout_data.address_id,
        checkout_data.payment_method,
        notes=checkout_data.notes,
        accept_partial=checkout_data.accept_partial,
    )
    if not result.succeeded:
        response.status_code = 409
    return schemas.CheckoutResponse.model_validate(result)

@router.get("/", response_model=schemas.OrderPage)
def get_my_orders(
    page: int = 1,
    limit: Optional[int] = None,
    status: Optional[OrderStatus] = None,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Get the current user's orders"""
    service = OrderService(db)
    return _page(service.list_customer_orders(actor.user_id, page=page, limit=limit, status=status))

@router.get("/shop/{shop_id}", response_model=schemas.OrderPage)
def get_shop_orders(
    shop_id: int,
    page: int = 1,
    limit: Optional[int] = None,
    status: Optional[OrderStatus] = None,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Get the orders of a shop (shop vendor or admin)"""
    service = OrderService(db)
    return _page(service.list_shop_orders(shop_id, actor, page=page, limit=limit, status=status))

@router.get("/admin/all", response_model=schemas.OrderPage)
def get_all_orders(
    page: int = 1,
    limit: Optional[int] = None,
    status: Optional[OrderStatus] = None,
    shop_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = OrderService(db)
    return _page(service.list_all_orders(
        actor, page=page, limit=limit, status=status, shop_id=shop_id, customer_id=customer_id
    ))

@router.get("/{order_id}", response_model=schemas.Order)
def get_order(
    order_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Get a specific order"""
    return OrderService(db).get_order(order_id, actor)

@router.patch("/{order_id}/status", response_model=schemas.Order)
def update_order_status(
    order_id: int,
    status_data: schemas.OrderStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier)
):
    """Move an order along its status pipeline"""
    service = OrderService(db, notifier=notifier)
    return service.transition(order_id, status_data.status, actor)

@router.patch("/{order_id}/cancel", response_model=schemas.Order)
def cancel_order(
    order_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier)
):
    """Cancel an order and restore its stock"""
    service = OrderService(db, notifier=notifier)
    return service.cancel(order_id, actor)
