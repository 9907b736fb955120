# storefront/repos/checkout_repo.py
from sqlalchemy import update
from sqlalchemy.orm import Session

from storefront.data.models.checkout_session import CheckoutSessionModel


class CheckoutRepo:
    def __init__(self, db: Session):
        self.db = db

    def save_session(self, session: CheckoutSessionModel) -> CheckoutSessionModel:
        self.db.add(session)
        self.db.flush()
        return session

    def get_session(self, session_id: str) -> CheckoutSessionModel | None:
        return self.db.get(CheckoutSessionModel, session_id)

    def mark_settled(self, session_id: str) -> int:
        res = self.db.execute(
            update(CheckoutSessionModel)
            .where(CheckoutSessionModel.id == session_id)
            .values(status="settled")
            .execution_options(synchronize_session=False)
        )
        return res.rowcount
