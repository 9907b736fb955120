#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from storefront.data.models.user import UserModel
from storefront.data.models.catalog import ProductModel, VariantModel
from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.checkout_session import CheckoutSessionModel
from storefront.data.models.order import OrderModel, OrderItemModel
from storefront.data.models.processed_event import ProcessedEventModel

__all__ = [
    "UserModel",
    "ProductModel",
    "VariantModel",
    "CartModel",
    "CartItemModel",
    "CheckoutSessionModel",
    "OrderModel",
    "OrderItemModel",
    "ProcessedEventModel",
]
