# storefront/services/stripe_client.py
import json
from typing import Any, Dict, List

import stripe

from storefront.domain.errors import InvalidSignature, PaymentProviderError
from storefront.utils.logging import get_logger
from storefront.utils.retry import stripe_retry
from storefront.utils.settings import (
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
    STRIPE_WEBHOOK_TOLERANCE,
)

logger = get_logger(__name__)


def require_stripe():
    if not STRIPE_SECRET_KEY:
        raise PaymentProviderError("STRIPE_SECRET_KEY is not configured")
    stripe.api_key = STRIPE_SECRET_KEY


def _as_dict(obj: Any) -> Dict[str, Any]:
    # StripeObject -> zwykly dict (rekurencyjnie)
    if hasattr(obj, "to_dict_recursive"):
        return obj.to_dict_recursive()
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


@stripe_retry()
def _create_session(params: Dict[str, Any], idempotency_key: str | None):
    # ten sam klucz przy kazdym ponowieniu - Stripe nie utworzy drugiej sesji
    return stripe.checkout.Session.create(idempotency_key=idempotency_key, **params)


@stripe_retry()
def _list_line_items(session_id: str):
    return stripe.checkout.Session.list_line_items(
        session_id,
        limit=100,
        expand=["data.price.product"],
    )


def create_checkout_session(params: Dict[str, Any], idempotency_key: str | None = None) -> Dict[str, Any]:
    """Hosted Checkout session; zwraca dict z id i url."""
    require_stripe()
    try:
        session = _create_session(params, idempotency_key)
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout session create failed: {e}")
        raise PaymentProviderError(f"Payment provider error: {e.user_message or e}") from e
    return _as_dict(session)


def list_line_items(session_id: str) -> List[Dict[str, Any]]:
    require_stripe()
    try:
        listing = _list_line_items(session_id)
    except stripe.StripeError as e:
        raise PaymentProviderError(f"Could not list line items of {session_id}: {e}") from e
    return _as_dict(listing).get("data") or []


def verify_event(payload: bytes, sig_header: str | None) -> Dict[str, Any]:
    """
    Weryfikacja podpisu webhooka (Stripe-Signature) PRZED jakimkolwiek przetwarzaniem.
    Brak sekretu to tez odrzucenie - nie ma trybu "dev bez podpisu".
    """
    if not STRIPE_WEBHOOK_SECRET:
        raise InvalidSignature("Webhook secret is not configured")
    if not sig_header:
        raise InvalidSignature("Missing Stripe-Signature header")

    try:
        text = payload.decode("utf-8")
        stripe.WebhookSignature.verify_header(
            text,
            sig_header,
            STRIPE_WEBHOOK_SECRET,
            STRIPE_WEBHOOK_TOLERANCE,
        )
        event = json.loads(text)
    except stripe.SignatureVerificationError as e:
        raise InvalidSignature(f"Invalid signature: {e}") from e
    except ValueError as e:
        # UnicodeDecodeError i JSONDecodeError dziedzicza po ValueError
        raise InvalidSignature(f"Invalid payload: {e}") from e

    if not isinstance(event, dict):
        raise InvalidSignature("Invalid payload: expected a JSON object")
    return event
