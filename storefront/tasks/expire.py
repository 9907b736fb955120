# storefront/tasks/expire.py
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.repos.cart_repo import CartRepo
from storefront.services.lock_service import LockService
from storefront.utils.settings import CART_SWEEP_BATCH, CART_SWEEP_INTERVAL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)
lock_service = LockService()

SWEEP_LOCK = "carts:sweep"


def sweep_expired_carts(db: Session, now: datetime | None = None, batch: int = CART_SWEEP_BATCH) -> int:
    """Usuwa wygasle koszyki partiami (pozycje leca kaskadowo)."""
    now = now or datetime.now(timezone.utc)
    repo = CartRepo(db)
    total = 0
    while True:
        deleted = repo.delete_expired_carts(now, batch)
        repo.commit()
        total += deleted
        if deleted < batch:
            break
    return total


@celery_app.task(name="storefront.tasks.expire.expire_carts_task")
def expire_carts_task():
    logger.info("Expire carts task started")

    owner = str(uuid.uuid4())
    if not lock_service.acquire(SWEEP_LOCK, owner, ttl=CART_SWEEP_INTERVAL_SECONDS):
        logger.info("Cart sweep already running on another worker, skipping")
        return 0

    db = SessionLocal()
    try:
        deleted = sweep_expired_carts(db)
        logger.info(f"Deleted {deleted} expired carts")
        return deleted
    finally:
        db.close()
        try:
            lock_service.release(SWEEP_LOCK, owner)
        except Exception as e:
            # lock i tak wygasnie po TTL
            logger.warning(f"Failed to release lock {SWEEP_LOCK}: {e}")
