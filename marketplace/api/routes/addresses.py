from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session
from typing import List
from marketplace.core.database import get_db
from marketplace.core.security import Actor, get_current_actor
from marketplace.models import schemas
from marketplace.services.address_service import AddressService

router = APIRouter()

@router.get("/", response_model=List[schemas.Address])
def get_addresses(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return AddressService(db).list_addresses(actor.user_id)

@router.post("/", response_model=schemas.Address, status_code=201)
def create_address(
    address_data: schemas.AddressCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Create a delivery address; the first one becomes the default"""
    return AddressService(db).create_address(actor.user_id, **address_data.model_dump())

@router.delete("/{address_id}", status_code=204)
def delete_address(
    address_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Delete an address that no order refers to"""
    AddressService(db).delete_address(address_id, actor.user_id)
    return Response(status_code=204)
