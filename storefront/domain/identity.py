# storefront/domain/identity.py
from dataclasses import dataclass

ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class Identity:
    """Zweryfikowana tozsamosc przekazana przez gateway (nie wystawiamy tokenow)."""

    user_id: str
    role: str = "customer"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
