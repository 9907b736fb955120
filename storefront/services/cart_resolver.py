# storefront/services/cart_resolver.py
import secrets
from datetime import datetime, timezone, timedelta
from typing import Tuple

from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.domain.identity import Identity
from storefront.repos.cart_repo import CartRepo
from storefront.utils.settings import CART_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def new_cart_token() -> str:
    # token jest poswiadczeniem (bearer) - musi byc nieprzewidywalny
    return secrets.token_urlsafe(32)


class CartResolver:
    """
    Znajduje koszyk dla wywolujacego:
    - zalogowany user -> najnowszy niewygasly koszyk usera (token anonimowy ignorowany)
    - anonim z tokenem -> koszyk z dokladnie tym tokenem
    - w pozostalych przypadkach nowy koszyk, ale tylko gdy create_if_absent
    Brak merge koszyka anonimowego przy logowaniu.
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)

    def resolve(
        self,
        identity: Identity | None,
        handle: str | None,
        create_if_absent: bool = False,
    ) -> Tuple[CartModel | None, str | None]:
        """Zwraca (koszyk albo None, nowo wydany token albo None). Tylko flush."""
        now = datetime.now(timezone.utc)
        expires = now + timedelta(seconds=CART_TTL_SECONDS)

        if identity is not None:
            cart = self.repo.get_latest_cart_by_user(identity.user_id, now)
            if cart or not create_if_absent:
                return cart, None
            cart = self.repo.create_cart(CartModel(user_id=identity.user_id, expires_at=expires))
            logger.info(f"Utworzono koszyk {cart.id} dla uzytkownika {identity.user_id}")
            return cart, None

        if handle:
            cart = self.repo.get_cart_by_token(handle, now)
            if cart:
                return cart, None

        if not create_if_absent:
            return None, None

        # nieznany token nigdy nie jest adoptowany, zawsze nowy
        token = new_cart_token()
        cart = self.repo.create_cart(CartModel(session_token=token, expires_at=expires))
        logger.info(f"Utworzono anonimowy koszyk {cart.id}")
        return cart, token
