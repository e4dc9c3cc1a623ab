from dataclasses import dataclass

from farmstand.core.errors import AccessDeniedError

ROLE_CUSTOMER = "customer"
ROLE_FARM_MANAGER = "farm_manager"
ROLE_ADMIN = "admin"
ALLOWED_ROLES = {ROLE_CUSTOMER, ROLE_FARM_MANAGER, ROLE_ADMIN}


@dataclass(frozen=True)
class Actor:
    """Caller identity handed to engine operations that check ownership."""

    user_id: str
    role: str
    farm_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def manages_farm(self, farm_id: str) -> bool:
        if self.is_admin:
            return True
        return self.role == ROLE_FARM_MANAGER and self.farm_id is not None and self.farm_id == farm_id


def ensure_farm_access(actor: Actor, farm_id: str, *, message: str = "Access denied") -> None:
    if not actor.manages_farm(farm_id):
        raise AccessDeniedError(message)
