# storefront/repos/cart_repo.py
from datetime import datetime, timezone
from typing import List, Tuple

from sqlalchemy import select, update, delete
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.catalog import ProductModel, VariantModel

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    # carts
    def get_cart(self, cart_id: str) -> CartModel | None:
        return self.db.get(CartModel, cart_id)

    def get_latest_cart_by_user(self, user_id: str, now: datetime) -> CartModel | None:
        return self.db.execute(
            select(CartModel)
            .where(CartModel.user_id == user_id, CartModel.expires_at > now)
            .order_by(CartModel.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def get_cart_by_token(self, token: str, now: datetime) -> CartModel | None:
        return self.db.execute(
            select(CartModel).where(CartModel.session_token == token, CartModel.expires_at > now)
        ).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.flush()
        return cart

    def touch_cart(self, cart: CartModel, expires_at: datetime) -> CartModel:
        cart.expires_at = expires_at
        self.db.flush()
        return cart

    def set_stripe_session(self, cart: CartModel, session_id: str | None) -> CartModel:
        # tylko ostatnia sesja checkout jest honorowana przy rozliczeniu
        cart.stripe_session_id = session_id
        self.db.flush()
        return cart

    def delete_expired_carts(self, now: datetime, limit: int) -> int:
        ids = self.db.execute(
            select(CartModel.id).where(CartModel.expires_at <= now).limit(limit)
        ).scalars().all()
        if not ids:
            return 0
        self.db.execute(
            delete(CartModel).where(CartModel.id.in_(ids)).execution_options(synchronize_session=False)
        )
        return len(ids)

    # items
    def get_cart_lines(self, cart_id: str) -> List[Tuple[CartItemModel, str | None, str | None, str | None]]:
        """Pozycje koszyka + nazwa produktu, nazwa i sku wariantu, w kolejnosci dodania."""
        rows = self.db.execute(
            select(CartItemModel, ProductModel.name, VariantModel.name, VariantModel.sku)
            .outerjoin(ProductModel, ProductModel.id == CartItemModel.product_id)
            .outerjoin(VariantModel, VariantModel.id == CartItemModel.variant_id)
            .where(CartItemModel.cart_id == cart_id)
            .order_by(CartItemModel.created_at, CartItemModel.id)
            # upsert idzie z pominieciem identity map
            .execution_options(populate_existing=True)
        ).all()
        return [tuple(row) for row in rows]

    def get_line_quantity(self, cart_id: str, product_id: str, variant_id: str | None) -> int:
        qty = self.db.execute(
            select(CartItemModel.quantity).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.product_id == product_id,
                CartItemModel.variant_key == (variant_id or ""),
            )
        ).scalar_one_or_none()
        return qty or 0

    def upsert_item(
        self,
        cart_id: str,
        product_id: str,
        variant_id: str | None,
        quantity: int,
        price_cents: int,
    ) -> None:
        """
        INSERT ... ON CONFLICT (cart_id, product_id, variant_key) DO UPDATE
        - nowa pozycja: zapis ceny (snapshot)
        - istniejaca: quantity += quantity, cena bez zmian
        """
        dialect = self.db.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            raise NotImplementedError(f"Cart item upsert is not supported on {dialect}")

        now = datetime.now(timezone.utc)
        stmt = insert(CartItemModel).values(
            cart_id=cart_id,
            product_id=product_id,
            variant_id=variant_id,
            variant_key=variant_id or "",
            quantity=quantity,
            price_cents=price_cents,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["cart_id", "product_id", "variant_key"],
            set_={
                "quantity": CartItemModel.quantity + stmt.excluded.quantity,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        self.db.execute(stmt)

    def update_item_quantity(self, cart_id: str, item_id: str, quantity: int) -> int:
        res = self.db.execute(
            update(CartItemModel)
            .where(CartItemModel.id == item_id, CartItemModel.cart_id == cart_id)
            .values(quantity=quantity, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def delete_cart_item(self, cart_id: str, item_id: str) -> int:
        res = self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.id == item_id, CartItemModel.cart_id == cart_id)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def clear_items(self, cart_id: str) -> int:
        res = self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.cart_id == cart_id)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
