# storefront/api/routers/carts.py
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from storefront.api.deps import get_identity, get_cart_token
from storefront.data.database import get_db
from storefront.domain.errors import NotFound, InvalidQuantity, InsufficientStock
from storefront.domain.identity import Identity
from storefront.domain.schemas import ItemIn, QuantityIn, CartOut
from storefront.services.cart_service import CartService
from storefront.utils.settings import CART_TOKEN_HEADER

router = APIRouter(prefix="/cart", tags=["cart"])


def get_service(db: Session):
    return CartService(db)


def _echo_token(
    response: Response,
    identity: Identity | None,
    handle: str | None,
    issued: str | None,
    snapshot: Dict[str, Any],
) -> None:
    # anonim dostaje token z powrotem w naglowku (nowy albo ten, ktory przyslal)
    if identity is not None or snapshot["cart_id"] is None:
        return
    token = issued or handle
    if token:
        response.headers[CART_TOKEN_HEADER] = token


@router.get("", response_model=CartOut)
def get_cart(
    response: Response,
    identity: Identity | None = Depends(get_identity),
    handle: str | None = Depends(get_cart_token),
    db: Session = Depends(get_db),
):
    """Brak koszyka to pusty snapshot, nie blad."""
    svc = get_service(db)
    snapshot = svc.get_cart(identity, handle)
    _echo_token(response, identity, handle, None, snapshot)
    return snapshot


@router.post("/items", response_model=CartOut, status_code=201)
def add_item(
    payload: ItemIn,
    response: Response,
    identity: Identity | None = Depends(get_identity),
    handle: str | None = Depends(get_cart_token),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        snapshot, issued = svc.add_item(
            identity,
            handle,
            product_id=payload.product_id,
            variant_id=payload.variant_id,
            quantity=payload.quantity,
        )
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (InvalidQuantity, InsufficientStock) as e:
        raise HTTPException(status_code=400, detail=str(e))

    _echo_token(response, identity, handle, issued, snapshot)
    return snapshot


@router.patch("/items/{item_id}", response_model=CartOut)
def update_item(
    item_id: str,
    payload: QuantityIn,
    response: Response,
    identity: Identity | None = Depends(get_identity),
    handle: str | None = Depends(get_cart_token),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        snapshot = svc.update_quantity(identity, handle, item_id, payload.quantity)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidQuantity as e:
        raise HTTPException(status_code=400, detail=str(e))

    _echo_token(response, identity, handle, None, snapshot)
    return snapshot


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(
    item_id: str,
    response: Response,
    identity: Identity | None = Depends(get_identity),
    handle: str | None = Depends(get_cart_token),
    db: Session = Depends(get_db),
):
    """Idempotentne - drugie usuniecie tej samej pozycji tez zwraca 200."""
    svc = get_service(db)
    snapshot = svc.remove_item(identity, handle, item_id)
    _echo_token(response, identity, handle, None, snapshot)
    return snapshot
