# storefront/services/cart_service.py
from datetime import datetime, timezone, timedelta
from typing import Dict, Any, Tuple

from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.domain.errors import NotFound, InvalidQuantity, InsufficientStock
from storefront.domain.identity import Identity
from storefront.repos.cart_repo import CartRepo
from storefront.repos.catalog_repo import CatalogRepo
from storefront.services.cart_resolver import CartResolver
from storefront.utils.settings import CART_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def empty_snapshot() -> Dict[str, Any]:
    return {
        "cart_id": None,
        "items": [],
        "subtotal_cents": 0,
        "item_count": 0,
        "expires_at": None,
    }


class CartService:
    """
    Ledger pozycji koszyka.
    commands (add, update, remove) modyfikuja stan i przesuwaja TTL koszyka
    query (get) tylko odczyt, nigdy nie tworzy koszyka
    Cena pozycji zapisywana raz - przy pierwszym dodaniu.
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)
        self.catalog = CatalogRepo(db)
        self.resolver = CartResolver(db)

    #query - odczyt
    def get_cart(self, identity: Identity | None, handle: str | None) -> Dict[str, Any]:
        cart, _ = self.resolver.resolve(identity, handle, create_if_absent=False)
        return self.snapshot(cart)

    def snapshot(self, cart: CartModel | None) -> Dict[str, Any]:
        if cart is None:
            return empty_snapshot()

        items = []
        for item, product_name, variant_name, _sku in self.repo.get_cart_lines(cart.id):
            items.append(
                {
                    "id": item.id,
                    "product_id": item.product_id,
                    "variant_id": item.variant_id,
                    "product_name": product_name,
                    "variant_name": variant_name,
                    "quantity": item.quantity,
                    "unit_price_cents": item.price_cents,
                    "line_total_cents": item.price_cents * item.quantity,
                }
            )

        return {
            "cart_id": cart.id,
            "items": items,
            "subtotal_cents": sum(i["line_total_cents"] for i in items),
            "item_count": sum(i["quantity"] for i in items),
            "expires_at": cart.expires_at,
        }

    #commands
    def add_item(
        self,
        identity: Identity | None,
        handle: str | None,
        product_id: str,
        variant_id: str | None,
        quantity: int,
    ) -> Tuple[Dict[str, Any], str | None]:
        """Zwraca (snapshot, nowy token anonimowy albo None)."""
        if quantity < 1:
            raise InvalidQuantity("Quantity must be at least 1")

        # walidacja katalogu przed utworzeniem koszyka - odrzucony add nie zostawia koszyka
        product = self.catalog.get_product(product_id)
        if product is None:
            raise NotFound(f"Product {product_id} not found")

        unit_price = product.price_cents
        variant = None
        if variant_id:
            variant = self.catalog.get_variant(variant_id, product_id)
            if variant is None:
                raise NotFound(f"Variant {variant_id} not found for product {product_id}")
            if variant.price_cents is not None:
                unit_price = variant.price_cents

        cart, issued = self.resolver.resolve(identity, handle, create_if_absent=False)
        in_cart = self.repo.get_line_quantity(cart.id, product_id, variant_id) if cart else 0

        # stan sprawdzany dla ilosci lacznej (w koszyku + nowa)
        if variant is not None and variant.stock_qty < in_cart + quantity:
            raise InsufficientStock(variant.id, in_cart + quantity, variant.stock_qty)

        try:
            if cart is None:
                cart, issued = self.resolver.resolve(identity, handle, create_if_absent=True)

            logger.info(f"Dodaje produkt {product_id} (wariant {variant_id}) x{quantity} do koszyka {cart.id}")
            self.repo.upsert_item(cart.id, product_id, variant_id, quantity, unit_price)
            self._touch(cart)
            self.repo.commit()
        except Exception as e:
            logger.error(f"Blad podczas dodawania produktu: {e}")
            self.repo.rollback()
            raise

        return self.snapshot(cart), issued

    def update_quantity(
        self,
        identity: Identity | None,
        handle: str | None,
        item_id: str,
        quantity: int,
    ) -> Dict[str, Any]:
        # bez sprawdzania stanu - stan jest wiazacy dopiero przy rozliczeniu
        if quantity < 1:
            raise InvalidQuantity("Quantity must be at least 1, use DELETE to remove an item")

        cart, _ = self.resolver.resolve(identity, handle, create_if_absent=False)
        if cart is None:
            raise NotFound("Cart not found")

        if self.repo.update_item_quantity(cart.id, item_id, quantity) == 0:
            self.repo.rollback()
            raise NotFound(f"Cart item {item_id} not found")

        self._touch(cart)
        self.repo.commit()
        logger.info(f"Zmieniono ilosc pozycji {item_id} w koszyku {cart.id} na {quantity}")
        return self.snapshot(cart)

    def remove_item(self, identity: Identity | None, handle: str | None, item_id: str) -> Dict[str, Any]:
        """Idempotentne - usuniecie nieistniejacej pozycji to sukces."""
        cart, _ = self.resolver.resolve(identity, handle, create_if_absent=False)
        if cart is None:
            return empty_snapshot()

        removed = self.repo.delete_cart_item(cart.id, item_id)
        self._touch(cart)
        self.repo.commit()

        if removed:
            logger.info(f"Usunieto pozycje {item_id} z koszyka {cart.id}")
        return self.snapshot(cart)

    def _touch(self, cart: CartModel) -> None:
        # kazda zmiana przedluza waznosc koszyka
        self.repo.touch_cart(cart, datetime.now(timezone.utc) + timedelta(seconds=CART_TTL_SECONDS))
