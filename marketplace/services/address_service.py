import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from marketplace.core.exceptions import NotFoundError, ValidationError
from marketplace.models.database import Address, Order

logger = logging.getLogger(__name__)


class AddressService:
    """Customer address book. Addresses used by an order are never deleted."""

    def __init__(self, db: Session):
        self.db = db

    def list_addresses(self, user_id: int) -> List[Address]:
        return self.db.query(Address).filter(
            Address.user_id == user_id
        ).order_by(Address.is_default.desc(), Address.created_at.desc(), Address.id.desc()).all()

    def get_address(self, address_id: int, user_id: int) -> Address:
        address = self.db.query(Address).filter(
            Address.id == address_id,
            Address.user_id == user_id,
        ).first()
        if not address:
            raise NotFoundError("Address not found")
        return address

    def create_address(self, user_id: int, label: str, street: str, city: str,
                       district: Optional[str] = None, phone: Optional[str] = None,
                       is_default: bool = False) -> Address:
        # The first address is always the default one
        has_addresses = self.db.query(Address.id).filter(Address.user_id == user_id).first()
        is_default = True if not has_addresses else is_default

        try:
            if is_default:
                self.db.query(Address).filter(
                    Address.user_id == user_id,
                    Address.is_default.is_(True),
                ).update({"is_default": False}, synchronize_session=False)

            address = Address(
                user_id=user_id,
                label=label,
                street=street,
                city=city,
                district=district,
                phone=phone,
                is_default=is_default,
            )
            self.db.add(address)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(address)
        return address

    def delete_address(self, address_id: int, user_id: int) -> None:
        address = self.get_address(address_id, user_id)

        orders_with_address = self.db.query(Order).filter(Order.address_id == address.id).count()
        if orders_with_address > 0:
            raise ValidationError("Address cannot be deleted because it is used by existing orders")

        was_default = address.is_default
        try:
            self.db.delete(address)
            self.db.flush()

            if was_default:
                replacement = self.db.query(Address).filter(
                    Address.user_id == user_id
                ).order_by(Address.created_at.desc(), Address.id.desc()).first()
                if replacement:
                    replacement.is_default = True

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Deleted address {address_id} of user {user_id}")
