# storefront/repos/catalog_repo.py
from sqlalchemy import select, update, case
from sqlalchemy.orm import Session

from storefront.data.models.catalog import ProductModel, VariantModel


class CatalogRepo:
    """Odczyt cen i stanow magazynowych + atomowe zmniejszanie stanu."""

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: str) -> ProductModel | None:
        return self.db.execute(
            select(ProductModel).where(ProductModel.id == product_id, ProductModel.is_active.is_(True))
        ).scalar_one_or_none()

    def get_variant(self, variant_id: str, product_id: str) -> VariantModel | None:
        return self.db.execute(
            select(VariantModel).where(
                VariantModel.id == variant_id,
                VariantModel.product_id == product_id,
                VariantModel.is_active.is_(True),
            )
        ).scalar_one_or_none()

    def get_stock(self, variant_id: str) -> int | None:
        return self.db.execute(
            select(VariantModel.stock_qty).where(VariantModel.id == variant_id)
        ).scalar_one_or_none()

    def decrement_stock(self, variant_id: str, quantity: int) -> int:
        """
        UPDATE variants SET stock_qty = GREATEST(0, stock_qty - n) jako jedno zapytanie,
        bez read-modify-write po stronie aplikacji.
        """
        res = self.db.execute(
            update(VariantModel)
            .where(VariantModel.id == variant_id)
            .values(
                stock_qty=case(
                    (VariantModel.stock_qty > quantity, VariantModel.stock_qty - quantity),
                    else_=0,
                )
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount
