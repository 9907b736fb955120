# storefront/domain/payment_events.py
"""
Zamkniety zestaw rodzajow eventow Stripe, na ktore reaguje silnik rozliczen.

Kazdy event webhooka mapowany jest na jedna z klas ponizej; wszystko czego
nie znamy trafia do UnhandledEvent i jest potwierdzane jako no-op.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Union

from storefront.domain.identity import ANONYMOUS

PAID_STATUSES = ("paid", "no_payment_required")


@dataclass(frozen=True)
class PaymentSucceeded:
    event_id: str
    event_type: str
    session: Dict[str, Any] = field(repr=False)

    @property
    def session_id(self) -> str:
        return self.session["id"]

    @property
    def cart_id(self) -> str | None:
        return (self.session.get("metadata") or {}).get("cart_id") or None

    @property
    def user_id(self) -> str | None:
        user_id = (self.session.get("metadata") or {}).get("user_id")
        if not user_id or user_id == ANONYMOUS:
            return None
        return user_id


@dataclass(frozen=True)
class PaymentPending:
    """Sesja zakonczona, ale platnosc asynchroniczna jeszcze nie rozliczona."""

    event_id: str
    event_type: str
    session_id: str


@dataclass(frozen=True)
class PaymentFailed:
    event_id: str
    event_type: str
    payment_intent_id: str | None
    reason: str


@dataclass(frozen=True)
class ChargeRefunded:
    event_id: str
    event_type: str
    payment_intent_id: str | None


@dataclass(frozen=True)
class UnhandledEvent:
    event_id: str
    event_type: str


PaymentEvent = Union[PaymentSucceeded, PaymentPending, PaymentFailed, ChargeRefunded, UnhandledEvent]


def object_id(value: Any) -> str | None:
    # Stripe zwraca id albo rozwiniety obiekt
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def _session_id(obj: Dict[str, Any]) -> str:
    session_id = obj.get("id")
    if not session_id:
        raise ValueError("Checkout session object is missing id")
    return session_id


def _completed(event_id: str, event_type: str, obj: Dict[str, Any]) -> PaymentEvent:
    session_id = _session_id(obj)
    if obj.get("payment_status") in PAID_STATUSES:
        return PaymentSucceeded(event_id, event_type, obj)
    return PaymentPending(event_id, event_type, session_id)


def _async_succeeded(event_id: str, event_type: str, obj: Dict[str, Any]) -> PaymentEvent:
    _session_id(obj)
    return PaymentSucceeded(event_id, event_type, obj)


def _async_failed(event_id: str, event_type: str, obj: Dict[str, Any]) -> PaymentEvent:
    return PaymentFailed(event_id, event_type, object_id(obj.get("payment_intent")), "asynchronous payment failed")


def _intent_failed(event_id: str, event_type: str, obj: Dict[str, Any]) -> PaymentEvent:
    error = obj.get("last_payment_error") or {}
    return PaymentFailed(event_id, event_type, obj.get("id"), error.get("message") or "payment failed")


def _refunded(event_id: str, event_type: str, obj: Dict[str, Any]) -> PaymentEvent:
    return ChargeRefunded(event_id, event_type, object_id(obj.get("payment_intent")))


_PARSERS = {
    "checkout.session.completed": _completed,
    "checkout.session.async_payment_succeeded": _async_succeeded,
    "checkout.session.async_payment_failed": _async_failed,
    "payment_intent.payment_failed": _intent_failed,
    "charge.refunded": _refunded,
}


def parse_payment_event(event: Dict[str, Any]) -> PaymentEvent:
    """
    Zamienia zweryfikowany payload eventu Stripe na wariant PaymentEvent.
    - Wymaga event["id"] i event["type"].
    - event.data.object to obiekt, ktorego dotyczy event (sesja, payment intent, charge).
    """
    event_id = event.get("id")
    event_type = event.get("type")
    if not event_id or not event_type:
        raise ValueError("Event payload is missing id or type")

    obj = (event.get("data") or {}).get("object") or {}
    parser = _PARSERS.get(event_type)
    if parser is None:
        return UnhandledEvent(event_id, event_type)
    return parser(event_id, event_type, obj)
