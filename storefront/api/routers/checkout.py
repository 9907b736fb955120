# storefront/api/routers/checkout.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.api.deps import get_identity, get_cart_token
from storefront.data.database import get_db
from storefront.domain.errors import EmptyCart, PaymentProviderError
from storefront.domain.identity import Identity
from storefront.domain.schemas import CheckoutSessionIn, CheckoutSessionOut
from storefront.services.checkout_service import CheckoutService

router = APIRouter(prefix="/checkout", tags=["checkout"])


def get_service(db: Session):
    return CheckoutService(db)


@router.post("/session", response_model=CheckoutSessionOut)
def create_checkout_session(
    payload: CheckoutSessionIn,
    identity: Identity | None = Depends(get_identity),
    handle: str | None = Depends(get_cart_token),
    db: Session = Depends(get_db),
):
    """
    Zamraza koszyk i tworzy hosted Checkout w Stripe.
    Zwraca id sesji i URL, na ktory frontend przekierowuje klienta.
    """
    svc = get_service(db)
    try:
        return svc.create_session(identity, handle, payload.success_url, payload.cancel_url)
    except EmptyCart as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PaymentProviderError as e:
        raise HTTPException(status_code=502, detail=str(e))
