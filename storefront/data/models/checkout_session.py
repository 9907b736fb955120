# storefront/data/models/checkout_session.py
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, JSON

from storefront.data.database import Base


class CheckoutSessionModel(Base):
    """Zamrozona lista pozycji przekazana do Stripe dla jednej proby zakupu."""

    __tablename__ = "checkout_sessions"

    # id sesji nadane przez Stripe (cs_...)
    id = Column(String(255), primary_key=True)
    cart_id = Column(String(36), ForeignKey("carts.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = Column(String(64), nullable=True)

    line_items = Column(JSON, nullable=False)
    currency = Column(String(3), nullable=False)
    amount_subtotal = Column(Integer, nullable=False)

    status = Column(String(20), nullable=False, default="open")  # open, settled
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
