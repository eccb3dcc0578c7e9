"""Request principal: the authenticated caller passed into core operations."""

from dataclasses import dataclass
from enum import Enum


class Role(Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    SYSTEM = "system"


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: Role = Role.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_customer(self) -> bool:
        return self.role == Role.CUSTOMER

    @classmethod
    def system(cls) -> "Principal":
        """Principal used by provider callbacks (webhooks) and maintenance jobs."""
        return cls(user_id="system", role=Role.SYSTEM)
