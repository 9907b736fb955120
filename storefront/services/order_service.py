# storefront/services/order_service.py
from typing import List

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.domain.errors import NotFound, IdentityRequired
from storefront.domain.identity import Identity
from storefront.repos.order_repo import OrderRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

ORDER_LIST_LIMIT = 50


class OrderService:
    """
    Odczyt zamowien (query). Zamowienia powstaja wylacznie w SettlementService.
    """

    def __init__(self, db: Session):
        self.repo = OrderRepo(db)

    def list_orders(self, identity: Identity | None) -> List[OrderModel]:
        if identity is None:
            raise IdentityRequired()
        return self.repo.list_for_user(identity.user_id, limit=ORDER_LIST_LIMIT)

    def get_order(self, order_id: str, identity: Identity | None) -> OrderModel:
        """
        Use Case: Pobranie zamówienia ze snapshotem pozycji.
        Admin widzi kazde zamowienie, pozostali tylko swoje.
        """
        if identity is None:
            raise IdentityRequired()

        order = self.repo.get_order(order_id)

        if not order:
            raise NotFound("Zamówienie nie istnieje")

        if order.user_id != identity.user_id and not identity.is_admin:
            logger.warning(f"User {identity.user_id} tried to read order {order_id}")
            raise PermissionError("Brak dostępu do zamówienia")

        return order
