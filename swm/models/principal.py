"""The authenticated caller, as supplied by the auth collaborator."""
from dataclasses import dataclass
from typing import Optional

from swm.models.enums import ADMIN_ROLES, Role


@dataclass(frozen=True)
class Principal:
    id: str
    role: str
    username: Optional[str] = None
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.username or self.id

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_manager(self) -> bool:
        return self.role == Role.MANAGER.value
