# storefront/data/models/catalog.py
import uuid

from sqlalchemy import Column, String, Integer, Boolean, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slug = Column(String(200), unique=True, nullable=False)
    name = Column(String(200), nullable=False)
    price_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="usd")
    is_active = Column(Boolean, nullable=False, default=True)

    variants = relationship("VariantModel", back_populates="product")

    __table_args__ = (CheckConstraint("price_cents >= 0", name="ck_products_price"),)


class VariantModel(Base):
    __tablename__ = "variants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    sku = Column(String(100), unique=True, nullable=False)
    name = Column(String(200), nullable=False)

    # NULL = cena produktu
    price_cents = Column(Integer, nullable=True)
    stock_qty = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    product = relationship("ProductModel", back_populates="variants")

    __table_args__ = (CheckConstraint("stock_qty >= 0", name="ck_variants_stock"),)
