# storefront/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.api.deps import get_identity
from storefront.data.database import get_db
from storefront.domain.errors import NotFound, IdentityRequired
from storefront.domain.identity import Identity
from storefront.domain.schemas import OrderSummaryOut, OrderOut
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session):
    return OrderService(db)


@router.get("", response_model=List[OrderSummaryOut])
def list_orders(
    identity: Identity | None = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """
    Ostatnie zamówienia zalogowanego użytkownika (najnowsze pierwsze).
    """
    svc = get_service(db)
    try:
        return svc.list_orders(identity)
    except IdentityRequired as e:
        raise HTTPException(status_code=401, detail=str(e))


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: str,
    identity: Identity | None = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """
    Pobiera szczegóły zamówienia.
    """
    svc = get_service(db)
    try:
        return svc.get_order(order_id, identity)
    except IdentityRequired as e:
        raise HTTPException(status_code=401, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
