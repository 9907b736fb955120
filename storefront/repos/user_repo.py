from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.data.models.user import UserModel


class UserRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: str) -> UserModel | None:
        return self.db.get(UserModel, user_id)

    def get_by_stripe_customer(self, customer_id: str) -> UserModel | None:
        return self.db.execute(
            select(UserModel).where(UserModel.stripe_customer_id == customer_id)
        ).scalar_one_or_none()

    def set_stripe_customer_id(self, user: UserModel, customer_id: str) -> UserModel:
        user.stripe_customer_id = customer_id
        self.db.flush()
        return user
