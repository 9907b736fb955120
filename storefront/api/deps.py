# storefront/api/deps.py
from fastapi import Header

from storefront.domain.identity import Identity
from storefront.utils.settings import CART_TOKEN_HEADER, USER_ID_HEADER, USER_ROLE_HEADER


def get_identity(
    user_id: str | None = Header(None, alias=USER_ID_HEADER),
    role: str | None = Header(None, alias=USER_ROLE_HEADER),
) -> Identity | None:
    # naglowki ustawia gateway po weryfikacji tokenu, brak = anonim
    if not user_id:
        return None
    return Identity(user_id=user_id, role=role or "customer")


def get_cart_token(token: str | None = Header(None, alias=CART_TOKEN_HEADER)) -> str | None:
    return token or None
