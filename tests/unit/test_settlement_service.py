import pytest
from sqlalchemy import select, func

from storefront.data.models import (
    CartItemModel,
    CartModel,
    CheckoutSessionModel,
    OrderModel,
    ProcessedEventModel,
    UserModel,
    VariantModel,
)
from storefront.domain.errors import SettlementFailure
from storefront.domain.identity import Identity
from storefront.repos.catalog_repo import CatalogRepo
from storefront.repos.event_repo import EventRepo
from storefront.repos.order_repo import OrderRepo
from storefront.services.cart_service import CartService
from storefront.services.checkout_service import CheckoutService
from storefront.services.settlement_service import SettlementService

SUCCESS_URL = "https://shop.test/checkout/success"
CANCEL_URL = "https://shop.test/cart"


def _count(db, model, *where):
    return db.execute(select(func.count()).select_from(model).where(*where)).scalar_one()


def _stock(db, variant_id):
    return db.execute(select(VariantModel.stock_qty).where(VariantModel.id == variant_id)).scalar_one()


@pytest.fixture()
def checked_out(db, catalog, fake_stripe):
    """Koszyk anonimowy: A x2 @1000 + B/red x1 @2500, po utworzeniu sesji checkout."""
    carts = CartService(db)
    _, token = carts.add_item(None, None, catalog["a"], None, 2)
    snapshot, _ = carts.add_item(None, token, catalog["b"], catalog["red"], 1)
    session = CheckoutService(db).create_session(None, token, SUCCESS_URL, CANCEL_URL)
    return {"cart_id": snapshot["cart_id"], "session_id": session["session_id"], "token": token}


def test_duplicate_delivery_settles_exactly_once(db, catalog, checked_out, make_event, session_object):
    event = make_event(
        "checkout.session.completed",
        session_object(checked_out["session_id"], checked_out["cart_id"]),
        event_id="evt_dup",
    )
    svc = SettlementService(db)

    first = svc.handle(event)
    second = svc.handle(event)

    assert first == {"received": True, "event_id": "evt_dup", "status": "succeeded", "duplicate": False}
    assert second == {"received": True, "event_id": "evt_dup", "status": "succeeded", "duplicate": True}

    orders = db.execute(select(OrderModel)).scalars().all()
    assert len(orders) == 1
    order = orders[0]
    assert order.status == "paid"
    assert order.total_cents == 4500
    assert order.customer_email == "shopper@example.com"
    assert order.shipping_address["city"] == "Springfield"
    assert [(i.product_name, i.variant_name, i.quantity, i.unit_price_cents) for i in order.items] == [
        ("Product A", None, 2, 1000),
        ("Product B", "Red", 1, 2500),
    ]
    assert sum(i.total_cents for i in order.items) == 4500

    assert _stock(db, catalog["red"]) == 9
    assert _count(db, CartItemModel, CartItemModel.cart_id == checked_out["cart_id"]) == 0
    assert db.get(CartModel, checked_out["cart_id"]).stripe_session_id is None
    assert db.get(CheckoutSessionModel, checked_out["session_id"]).status == "settled"
    assert _count(db, ProcessedEventModel) == 1


def test_frozen_snapshot_wins_over_later_catalog_edits(db, catalog, checked_out, make_event, session_object):
    variant = db.get(VariantModel, catalog["red"])
    variant.price_cents = 9900
    variant.name = "Crimson"
    db.commit()

    SettlementService(db).handle(
        make_event("checkout.session.completed", session_object(checked_out["session_id"], checked_out["cart_id"]))
    )

    order = db.execute(select(OrderModel)).scalar_one()
    assert [(i.variant_name, i.unit_price_cents) for i in order.items] == [(None, 1000), ("Red", 2500)]


def test_concurrent_delivery_loses_on_unique_key(
    db, catalog, checked_out, make_event, session_object, monkeypatch
):
    event = make_event(
        "checkout.session.completed",
        session_object(checked_out["session_id"], checked_out["cart_id"]),
        event_id="evt_race",
    )
    SettlementService(db).handle(event)

    # druga dostawa przeszla sprawdzenie rejestru zanim pierwsza zrobila commit
    real_get = EventRepo.get
    calls = {"n": 0}

    def stale_get(self, event_id):
        calls["n"] += 1
        return None if calls["n"] == 1 else real_get(self, event_id)

    monkeypatch.setattr(EventRepo, "get", stale_get)
    monkeypatch.setattr(EventRepo, "lock", lambda self, event_id: None)
    monkeypatch.setattr(OrderRepo, "get_by_session", lambda self, session_id: None)

    result = SettlementService(db).handle(event)

    assert result["duplicate"] is True
    assert result["status"] == "succeeded"
    assert _count(db, OrderModel) == 1
    assert _stock(db, catalog["red"]) == 9


def test_crash_records_errored_and_redelivery_settles(
    db, catalog, checked_out, make_event, session_object, monkeypatch
):
    event = make_event(
        "checkout.session.completed",
        session_object(checked_out["session_id"], checked_out["cart_id"]),
        event_id="evt_crash",
    )
    working_decrement = CatalogRepo.decrement_stock

    def broken(self, variant_id, quantity):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(CatalogRepo, "decrement_stock", broken)

    with pytest.raises(SettlementFailure) as exc:
        SettlementService(db).handle(event)

    assert exc.value.event_id == "evt_crash"
    assert _count(db, OrderModel) == 0
    assert _stock(db, catalog["red"]) == 10
    assert _count(db, CartItemModel) == 2
    row = db.get(ProcessedEventModel, "evt_crash")
    assert row.status == "errored"
    assert "connection reset" in row.error

    monkeypatch.setattr(CatalogRepo, "decrement_stock", working_decrement)
    result = SettlementService(db).handle(event)

    assert result == {"received": True, "event_id": "evt_crash", "status": "succeeded", "duplicate": False}
    assert _count(db, OrderModel) == 1
    assert _stock(db, catalog["red"]) == 9
    db.expire_all()
    assert db.get(ProcessedEventModel, "evt_crash").error is None


def test_other_event_for_settled_session_is_noop(db, catalog, checked_out, make_event, session_object):
    obj = session_object(checked_out["session_id"], checked_out["cart_id"])
    svc = SettlementService(db)

    svc.handle(make_event("checkout.session.completed", obj))
    result = svc.handle(make_event("checkout.session.async_payment_succeeded", obj))

    assert result["status"] == "succeeded"
    assert result["duplicate"] is False
    assert _count(db, OrderModel) == 1
    assert _stock(db, catalog["red"]) == 9
    assert _count(db, ProcessedEventModel) == 2


def test_short_stock_is_clamped_and_sale_stands(db, catalog, checked_out, make_event, session_object):
    db.get(VariantModel, catalog["red"]).stock_qty = 0
    db.commit()

    result = SettlementService(db).handle(
        make_event("checkout.session.completed", session_object(checked_out["session_id"], checked_out["cart_id"]))
    )

    assert result["status"] == "succeeded"
    assert _count(db, OrderModel) == 1
    assert _stock(db, catalog["red"]) == 0


def test_superseded_session_settles_but_keeps_cart(db, catalog, checked_out, make_event, session_object, fake_stripe):
    # klient wrocil do koszyka i otworzyl nowa sesje
    newer = CheckoutService(db).create_session(None, checked_out["token"], SUCCESS_URL, CANCEL_URL)

    SettlementService(db).handle(
        make_event("checkout.session.completed", session_object(checked_out["session_id"], checked_out["cart_id"]))
    )

    assert _count(db, OrderModel) == 1
    assert _count(db, CartItemModel, CartItemModel.cart_id == checked_out["cart_id"]) == 2
    db.expire_all()
    assert db.get(CartModel, checked_out["cart_id"]).stripe_session_id == newer["session_id"]


def test_unpaid_completion_creates_no_order(db, catalog, checked_out, make_event, session_object):
    obj = session_object(checked_out["session_id"], checked_out["cart_id"], payment_status="unpaid")

    result = SettlementService(db).handle(make_event("checkout.session.completed", obj))

    assert result["status"] == "succeeded"
    assert _count(db, OrderModel) == 0
    assert _count(db, CartItemModel) == 2


def test_known_user_gets_stripe_customer_saved(db, catalog, fake_stripe, make_event, session_object):
    db.add(UserModel(id="user-1", email="user1@example.com"))
    db.commit()
    user = Identity(user_id="user-1")
    snapshot, _ = CartService(db).add_item(user, None, catalog["a"], None, 1)
    session = CheckoutService(db).create_session(user, None, SUCCESS_URL, CANCEL_URL)
    assert fake_stripe.created[0]["customer_creation"] == "always"
    assert fake_stripe.created[0]["customer_email"] == "user1@example.com"

    SettlementService(db).handle(
        make_event(
            "checkout.session.completed",
            session_object(session["session_id"], snapshot["cart_id"], user_id="user-1", customer="cus_saved"),
        )
    )
    db.expire_all()
    assert db.get(UserModel, "user-1").stripe_customer_id == "cus_saved"
    assert db.execute(select(OrderModel)).scalar_one().user_id == "user-1"

    CartService(db).add_item(user, None, catalog["a"], None, 1)
    CheckoutService(db).create_session(user, None, SUCCESS_URL, CANCEL_URL)
    assert fake_stripe.created[1]["customer"] == "cus_saved"
    assert "customer_creation" not in fake_stripe.created[1]


def test_missing_snapshot_falls_back_to_stripe_line_items(db, catalog, fake_stripe, make_event, session_object):
    fake_stripe.line_items["cs_remote"] = [
        {
            "description": "Product B - Red",
            "quantity": 2,
            "amount_subtotal": 5000,
            "price": {
                "unit_amount": 2500,
                "product": {"name": "Product B - Red", "metadata": {"product_id": "prod-b", "variant_id": "var-red"}},
            },
        }
    ]

    SettlementService(db).handle(
        make_event("checkout.session.completed", session_object("cs_remote", None, amount_subtotal=5000, amount_total=5000))
    )

    order = db.execute(select(OrderModel)).scalar_one()
    assert order.total_cents == 5000
    assert [(i.product_id, i.variant_id, i.quantity, i.unit_price_cents) for i in order.items] == [
        ("prod-b", "var-red", 2, 2500)
    ]
    assert _stock(db, catalog["red"]) == 8


def test_refund_marks_order_refunded(db, catalog, checked_out, make_event, session_object):
    svc = SettlementService(db)
    svc.handle(
        make_event(
            "checkout.session.completed",
            session_object(checked_out["session_id"], checked_out["cart_id"], payment_intent="pi_refund"),
        )
    )

    result = svc.handle(make_event("charge.refunded", {"id": "ch_1", "object": "charge", "payment_intent": "pi_refund"}))

    assert result["status"] == "succeeded"
    assert db.execute(select(OrderModel)).scalar_one().status == "refunded"


def test_refund_without_order_records_failure(db, make_event):
    event = make_event("charge.refunded", {"id": "ch_1", "payment_intent": "pi_unknown"}, event_id="evt_refund")

    result = SettlementService(db).handle(event)

    assert result == {"received": True, "event_id": "evt_refund", "status": "failed", "duplicate": False}
    row = db.get(ProcessedEventModel, "evt_refund")
    assert row.status == "failed"
    assert "pi_unknown" in row.error


def test_payment_failed_is_recorded_as_failure(db, make_event):
    event = make_event(
        "payment_intent.payment_failed",
        {"id": "pi_declined", "last_payment_error": {"message": "Your card was declined."}},
        event_id="evt_declined",
    )

    result = SettlementService(db).handle(event)

    assert result["status"] == "failed"
    assert db.get(ProcessedEventModel, "evt_declined").error == "Your card was declined."
    assert _count(db, OrderModel) == 0


def test_unknown_event_is_acknowledged_as_noop(db, make_event):
    result = SettlementService(db).handle(make_event("invoice.paid", {"id": "in_1"}, event_id="evt_inv"))

    assert result["status"] == "succeeded"
    assert db.get(ProcessedEventModel, "evt_inv").type == "invoice.paid"


def _handle_past_dedup_check(db, monkeypatch, event):
    """Dostawa, ktora przeszla sprawdzenie rejestru zanim inna zrobila commit."""
    real_get = EventRepo.get
    calls = {"n": 0}

    def stale_get(self, event_id):
        calls["n"] += 1
        return None if calls["n"] == 1 else real_get(self, event_id)

    with monkeypatch.context() as m:
        m.setattr(EventRepo, "get", stale_get)
        m.setattr(EventRepo, "lock", lambda self, event_id: None)
        return SettlementService(db).handle(event)


def test_late_delivery_cannot_flip_recorded_failure(
    db, catalog, checked_out, make_event, session_object, monkeypatch
):
    refund = make_event("charge.refunded", {"id": "ch_1", "payment_intent": "pi_x"}, event_id="evt_flip")
    first = SettlementService(db).handle(refund)
    assert first["status"] == "failed"

    # zamowienie dla pi_x pojawia sie dopiero po pierwszej dostawie
    SettlementService(db).handle(
        make_event(
            "checkout.session.completed",
            session_object(checked_out["session_id"], checked_out["cart_id"], payment_intent="pi_x"),
        )
    )

    second = _handle_past_dedup_check(db, monkeypatch, refund)

    assert second == {"received": True, "event_id": "evt_flip", "status": "failed", "duplicate": True}
    assert db.execute(select(OrderModel.status)).scalar_one() == "paid"
    db.expire_all()
    assert db.get(ProcessedEventModel, "evt_flip").status == "failed"


def test_late_delivery_of_unhandled_event_is_duplicate(db, make_event, monkeypatch):
    event = make_event("invoice.paid", {"id": "in_1"}, event_id="evt_inv_race")
    SettlementService(db).handle(event)

    result = _handle_past_dedup_check(db, monkeypatch, event)

    assert result == {"received": True, "event_id": "evt_inv_race", "status": "succeeded", "duplicate": True}
    assert _count(db, ProcessedEventModel) == 1


def test_payment_failed_moves_existing_order_to_pending(db, catalog, checked_out, make_event, session_object):
    svc = SettlementService(db)
    svc.handle(
        make_event(
            "checkout.session.completed",
            session_object(checked_out["session_id"], checked_out["cart_id"], payment_intent="pi_x"),
        )
    )

    result = svc.handle(
        make_event(
            "payment_intent.payment_failed",
            {"id": "pi_x", "object": "payment_intent", "last_payment_error": {"message": "Your card was declined."}},
            event_id="evt_pi_failed",
        )
    )

    assert result["status"] == "failed"
    assert db.execute(select(OrderModel.status)).scalar_one() == "pending"
    row = db.get(ProcessedEventModel, "evt_pi_failed")
    assert row.status == "failed"
    assert row.error == "Your card was declined."


def test_stock_is_decremented_in_variant_id_order(db, catalog, fake_stripe, make_event, session_object, monkeypatch):
    carts = CartService(db)
    _, token = carts.add_item(None, None, catalog["b"], catalog["red"], 1)
    snapshot, _ = carts.add_item(None, token, catalog["b"], catalog["green"], 1)
    session = CheckoutService(db).create_session(None, token, SUCCESS_URL, CANCEL_URL)

    decremented = []
    real_decrement = CatalogRepo.decrement_stock

    def recording(self, variant_id, quantity):
        decremented.append(variant_id)
        return real_decrement(self, variant_id, quantity)

    monkeypatch.setattr(CatalogRepo, "decrement_stock", recording)

    SettlementService(db).handle(
        make_event("checkout.session.completed", session_object(session["session_id"], snapshot["cart_id"]))
    )

    assert decremented == [catalog["green"], catalog["red"]]
    assert _stock(db, catalog["red"]) == 9
    assert _stock(db, catalog["green"]) == 4
