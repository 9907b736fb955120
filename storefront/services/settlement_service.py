# storefront/services/settlement_service.py
"""
Rozliczanie eventow platnosci Stripe (webhook) - dokladnie raz.

Stripe dostarcza eventy "at least once", wiec:
- rejestr processed_events (klucz = id eventu) sprawdzany na poczatku,
- efekt biznesowy + wpis do rejestru w JEDNEJ transakcji,
- konflikt unikalnosci (rejestr albo orders.stripe_session_id) = ktos nas wyprzedzil,
  rollback i ponowny odczyt rejestru,
- awaria w trakcie = rollback, wiersz "errored" w osobnej transakcji i 500,
  Stripe ponowi dostarczenie.
"""
from typing import Any, Callable, Dict, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel, OrderItemModel
from storefront.data.models.processed_event import EVENT_SUCCEEDED, EVENT_FAILED
from storefront.domain.errors import EventAlreadyRecorded, SettlementFailure
from storefront.domain.payment_events import (
    PaymentSucceeded,
    PaymentPending,
    PaymentFailed,
    ChargeRefunded,
    UnhandledEvent,
    object_id,
    parse_payment_event,
)
from storefront.repos.cart_repo import CartRepo
from storefront.repos.catalog_repo import CatalogRepo
from storefront.repos.checkout_repo import CheckoutRepo
from storefront.repos.event_repo import EventRepo
from storefront.repos.order_repo import OrderRepo
from storefront.repos.user_repo import UserRepo
from storefront.services import stripe_client
from storefront.utils.settings import STORE_CURRENCY
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

Outcome = Tuple[str, str | None]


def line_from_stripe(item: Dict[str, Any]) -> Dict[str, Any]:
    """Pozycja z Session.list_line_items -> ten sam ksztalt co zamrozony snapshot."""
    price = item.get("price") or {}
    product = price.get("product") if isinstance(price.get("product"), dict) else {}
    metadata = product.get("metadata") or {}
    quantity = item.get("quantity") or 1
    unit = price.get("unit_amount")
    if unit is None:
        unit = (item.get("amount_subtotal") or 0) // quantity
    name = item.get("description") or product.get("name") or "Item"
    return {
        "product_id": metadata.get("product_id"),
        "variant_id": metadata.get("variant_id") or None,
        "sku": None,
        "product_name": name,
        "variant_name": None,
        "name": name,
        "unit_price_cents": unit,
        "quantity": quantity,
    }


def ack(event_id: str, status: str, duplicate: bool = False) -> Dict[str, Any]:
    return {"received": True, "event_id": event_id, "status": status, "duplicate": duplicate}


class SettlementService:
    def __init__(self, db: Session):
        self.db = db
        self.events = EventRepo(db)
        self.orders = OrderRepo(db)
        self.carts = CartRepo(db)
        self.catalog = CatalogRepo(db)
        self.checkouts = CheckoutRepo(db)
        self.users = UserRepo(db)

        self._handlers: Dict[type, Callable[[Any], Outcome]] = {
            PaymentSucceeded: self._settle,
            PaymentPending: self._await_payment,
            PaymentFailed: self._payment_failed,
            ChargeRefunded: self._refund,
            UnhandledEvent: self._ignore,
        }

    def handle(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Przetwarza zweryfikowany event; zwraca potwierdzenie dla Stripe.
        ValueError - event bez id/type. SettlementFailure - awaria, Stripe ma ponowic.
        """
        payment_event = parse_payment_event(event)
        event_id, event_type = payment_event.event_id, payment_event.event_type

        recorded = self.events.get(event_id)
        if recorded is not None and recorded.is_terminal:
            logger.info(f"Event {event_id} ({event_type}) already processed as {recorded.status}, duplicate delivery")
            return ack(event_id, recorded.status, duplicate=True)

        handler = self._handlers[type(payment_event)]
        try:
            locked = self.events.lock(event_id)
            if locked is not None and locked.is_terminal:
                self.db.rollback()
                logger.info(f"Event {event_id} ({event_type}) processed meanwhile as {locked.status}")
                return ack(event_id, locked.status, duplicate=True)

            status, error = handler(payment_event)
            self.events.record(event_id, event_type, status, error, payload=event)
            self.db.commit()

        except (IntegrityError, EventAlreadyRecorded) as e:
            # drugi zapisujacy przegrywa, jego efekt biznesowy idzie do rollbacku
            self.db.rollback()
            recorded = self.events.get(event_id)
            if recorded is not None and recorded.is_terminal:
                logger.info(f"Event {event_id} ({event_type}) settled by a concurrent delivery as {recorded.status}")
                return ack(event_id, recorded.status, duplicate=True)
            return self._fail(event, event_id, event_type, e)

        except Exception as e:
            self.db.rollback()
            return self._fail(event, event_id, event_type, e)

        logger.info(f"Event {event_id} ({event_type}) recorded as {status}" + (f": {error}" if error else ""))
        return ack(event_id, status)

    def _fail(self, event: Dict[str, Any], event_id: str, event_type: str, exc: Exception):
        logger.exception(f"Settlement of event {event_id} ({event_type}) failed")
        detail = f"{type(exc).__name__}: {exc}"
        self.events.record_error(event_id, event_type, detail, payload=event)
        raise SettlementFailure(event_id, detail) from exc

    # handlers - kazdy zwraca (status, error) i NIE commituje
    def _settle(self, ev: PaymentSucceeded) -> Outcome:
        session = ev.session

        existing = self.orders.get_by_session(ev.session_id)
        if existing is not None:
            logger.info(f"Session {ev.session_id} already settled as order {existing.id}")
            return EVENT_SUCCEEDED, None

        snapshot = self.checkouts.get_session(ev.session_id)
        if snapshot is not None:
            lines = snapshot.line_items
        else:
            logger.warning(f"No local snapshot for session {ev.session_id}, listing line items from Stripe")
            lines = [line_from_stripe(i) for i in stripe_client.list_line_items(ev.session_id)]

        subtotal = sum(l["unit_price_cents"] * l["quantity"] for l in lines)
        totals = session.get("total_details") or {}
        customer = session.get("customer_details") or {}
        shipping = session.get("shipping_details") or (session.get("collected_information") or {}).get(
            "shipping_details"
        ) or {}

        order = OrderModel(
            user_id=ev.user_id,
            cart_id=ev.cart_id,
            status="paid",
            stripe_session_id=ev.session_id,
            stripe_payment_intent_id=object_id(session.get("payment_intent")),
            stripe_customer_id=object_id(session.get("customer")),
            subtotal_cents=session.get("amount_subtotal") if session.get("amount_subtotal") is not None else subtotal,
            tax_cents=totals.get("amount_tax") or 0,
            shipping_cents=totals.get("amount_shipping") or 0,
            discount_cents=totals.get("amount_discount") or 0,
            total_cents=session.get("amount_total") if session.get("amount_total") is not None else subtotal,
            currency=(session.get("currency") or STORE_CURRENCY).lower(),
            customer_email=customer.get("email") or "",
            customer_name=customer.get("name") or shipping.get("name"),
            shipping_address=shipping.get("address"),
            billing_address=customer.get("address"),
        )
        for position, line in enumerate(lines):
            order.items.append(
                OrderItemModel(
                    position=position,
                    product_id=line.get("product_id"),
                    variant_id=line.get("variant_id"),
                    sku=line.get("sku"),
                    product_name=line["product_name"],
                    variant_name=line.get("variant_name"),
                    quantity=line["quantity"],
                    unit_price_cents=line["unit_price_cents"],
                    total_cents=line["unit_price_cents"] * line["quantity"],
                )
            )
        self.orders.create_order(order)

        # stala kolejnosc blokad wierszy variants
        for line in sorted(lines, key=lambda l: l.get("variant_id") or ""):
            if line.get("variant_id"):
                self._decrement_stock(line["variant_id"], line["quantity"], order.id)

        if ev.user_id and order.stripe_customer_id:
            self._remember_customer(ev.user_id, order.stripe_customer_id)

        if ev.cart_id:
            self._release_cart(ev.cart_id, ev.session_id)
        if snapshot is not None:
            self.checkouts.mark_settled(ev.session_id)

        logger.info(f"Order {order.id} created from session {ev.session_id}, total {order.total_cents} {order.currency}")
        return EVENT_SUCCEEDED, None

    def _decrement_stock(self, variant_id: str, quantity: int, order_id: str) -> None:
        available = self.catalog.get_stock(variant_id)
        if available is None:
            logger.warning(f"Variant {variant_id} of order {order_id} no longer exists, stock not adjusted")
            return
        if available < quantity:
            # platnosc juz przeszla - sprzedaz zostaje, stan do zera
            logger.warning(
                f"Short stock for variant {variant_id} (order {order_id}): sold {quantity}, available {available}"
            )
        self.catalog.decrement_stock(variant_id, quantity)

    def _remember_customer(self, user_id: str, customer_id: str) -> None:
        user = self.users.get_user(user_id)
        if user is None or user.stripe_customer_id == customer_id:
            return
        holder = self.users.get_by_stripe_customer(customer_id)
        if holder is not None:
            logger.warning(f"Stripe customer {customer_id} already linked to user {holder.id}, not reassigning")
            return
        self.users.set_stripe_customer_id(user, customer_id)

    def _release_cart(self, cart_id: str, session_id: str) -> None:
        cart = self.carts.get_cart(cart_id)
        if cart is None:
            return
        if cart.stripe_session_id != session_id:
            # nowsza sesja checkout nadpisala te - koszyk zostaje
            logger.info(f"Session {session_id} is not the latest for cart {cart_id}, cart items kept")
            return
        cleared = self.carts.clear_items(cart_id)
        self.carts.set_stripe_session(cart, None)
        logger.info(f"Cart {cart_id} cleared ({cleared} items) after settlement")

    def _await_payment(self, ev: PaymentPending) -> Outcome:
        logger.info(f"Session {ev.session_id} completed but payment not settled yet")
        return EVENT_SUCCEEDED, None

    def _payment_failed(self, ev: PaymentFailed) -> Outcome:
        order = self.orders.get_by_payment_intent(ev.payment_intent_id) if ev.payment_intent_id else None
        if order is not None and order.status != "pending":
            logger.info(f"Order {order.id} marked pending after failed payment {ev.payment_intent_id}")
            self.orders.update_order_status(order, "pending")
        return EVENT_FAILED, ev.reason

    def _refund(self, ev: ChargeRefunded) -> Outcome:
        order = self.orders.get_by_payment_intent(ev.payment_intent_id) if ev.payment_intent_id else None
        if order is None:
            return EVENT_FAILED, f"No order found for payment intent {ev.payment_intent_id}"
        self.orders.update_order_status(order, "refunded")
        logger.info(f"Order {order.id} refunded")
        return EVENT_SUCCEEDED, None

    def _ignore(self, ev: UnhandledEvent) -> Outcome:
        logger.info(f"Event type {ev.event_type} not handled, acknowledged")
        return EVENT_SUCCEEDED, None

