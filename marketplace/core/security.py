"""Identity handed to the core by the authentication layer.

Authentication itself happens upstream; requests arrive with the resolved
user id and role in headers, which are trusted as-is.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Header, HTTPException


class Role(str, Enum):
    CUSTOMER = "CUSTOMER"
    VENDOR = "VENDOR"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


async def get_current_actor(
    x_user_id: Optional[int] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Actor:
    """Actor dependency for FastAPI"""
    if x_user_id is None or x_user_role is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        role = Role(x_user_role.upper())
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Unknown role {x_user_role}")
    return Actor(user_id=x_user_id, role=role)
