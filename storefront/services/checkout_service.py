# storefront/services/checkout_service.py
import uuid
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.checkout_session import CheckoutSessionModel
from storefront.domain.errors import EmptyCart
from storefront.domain.identity import Identity, ANONYMOUS
from storefront.repos.cart_repo import CartRepo
from storefront.repos.checkout_repo import CheckoutRepo
from storefront.repos.user_repo import UserRepo
from storefront.services import stripe_client
from storefront.services.cart_resolver import CartResolver
from storefront.utils.settings import (
    STORE_CURRENCY,
    CHECKOUT_ALLOWED_COUNTRIES,
    CHECKOUT_AUTOMATIC_TAX,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def with_session_placeholder(success_url: str) -> str:
    sep = "&" if "?" in success_url else "?"
    return f"{success_url}{sep}session_id={{CHECKOUT_SESSION_ID}}"


def freeze_line(
    item: CartItemModel,
    product_name: str | None,
    variant_name: str | None,
    sku: str | None,
) -> Dict[str, Any]:
    """Niezmienny opis pozycji - z tego powstaja pozycje zamowienia."""
    product_name = product_name or f"Product {item.product_id}"
    name = f"{product_name} - {variant_name}" if variant_name else product_name
    return {
        "product_id": item.product_id,
        "variant_id": item.variant_id,
        "sku": sku,
        "product_name": product_name,
        "variant_name": variant_name,
        "name": name,
        "unit_price_cents": item.price_cents,
        "quantity": item.quantity,
    }


def to_stripe_line(line: Dict[str, Any], currency: str) -> Dict[str, Any]:
    metadata = {"product_id": line["product_id"]}
    if line["variant_id"]:
        metadata["variant_id"] = line["variant_id"]
    return {
        "price_data": {
            "currency": currency,
            "unit_amount": line["unit_price_cents"],
            "product_data": {"name": line["name"], "metadata": metadata},
        },
        "quantity": line["quantity"],
    }


class CheckoutService:
    """
    Snapshot koszyka -> hosted Checkout w Stripe.
    Nie zmienia stanow magazynowych ani pozycji koszyka.
    """

    def __init__(self, db: Session):
        self.carts = CartRepo(db)
        self.sessions = CheckoutRepo(db)
        self.users = UserRepo(db)
        self.resolver = CartResolver(db)

    def create_session(
        self,
        identity: Identity | None,
        handle: str | None,
        success_url: str,
        cancel_url: str,
    ) -> Dict[str, Any]:
        cart, _ = self.resolver.resolve(identity, handle, create_if_absent=False)
        rows = self.carts.get_cart_lines(cart.id) if cart else []
        if not rows:
            raise EmptyCart()

        frozen: List[Dict[str, Any]] = [freeze_line(*row) for row in rows]
        currency = STORE_CURRENCY

        # jedyne powiazanie eventu Stripe z koszykiem
        metadata = {
            "cart_id": cart.id,
            "user_id": identity.user_id if identity else ANONYMOUS,
        }
        params: Dict[str, Any] = {
            "mode": "payment",
            "line_items": [to_stripe_line(line, currency) for line in frozen],
            "success_url": with_session_placeholder(success_url),
            "cancel_url": cancel_url,
            "client_reference_id": cart.id,
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
        }
        if CHECKOUT_ALLOWED_COUNTRIES:
            params["shipping_address_collection"] = {"allowed_countries": CHECKOUT_ALLOWED_COUNTRIES}
        if CHECKOUT_AUTOMATIC_TAX:
            params["automatic_tax"] = {"enabled": True}

        user = self.users.get_user(identity.user_id) if identity else None
        if user is not None and user.stripe_customer_id:
            params["customer"] = user.stripe_customer_id
        else:
            params["customer_creation"] = "always"
            if user is not None and user.email:
                params["customer_email"] = user.email

        # nic nie jest zapisywane dopoki Stripe nie odpowie
        idempotency_key = f"checkout-{cart.id}-{uuid.uuid4().hex}"
        session = stripe_client.create_checkout_session(params, idempotency_key=idempotency_key)

        try:
            self.sessions.save_session(
                CheckoutSessionModel(
                    id=session["id"],
                    cart_id=cart.id,
                    user_id=identity.user_id if identity else None,
                    line_items=frozen,
                    currency=currency,
                    amount_subtotal=sum(l["unit_price_cents"] * l["quantity"] for l in frozen),
                )
            )
            # nadpisuje poprzednia sesje - wygrywa ostatnia
            self.carts.set_stripe_session(cart, session["id"])
            self.carts.commit()
        except Exception as e:
            logger.error(f"Nie udalo sie zapisac sesji checkout {session.get('id')}: {e}")
            self.carts.rollback()
            raise

        logger.info(f"Utworzono sesje checkout {session['id']} dla koszyka {cart.id} ({len(frozen)} pozycji)")
        return {"session_id": session["id"], "url": session.get("url")}
