# storefront/tasks/expire.py
from datetime import datetime, timezone

from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.repos.cart_repo import CartRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def expire_carts(db, now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    repo = CartRepo(db)
    try:
        deleted = repo.delete_expired(now)
        repo.commit()
    except Exception:
        repo.rollback()
        raise
    logger.info(f"Deleted {deleted} expired carts")
    return deleted


@celery_app.task(name="storefront.tasks.expire.expire_carts_task")
def expire_carts_task():
    logger.info("Expire carts task started")

    db = SessionLocal()
    try:
        return expire_carts(db)
    finally:
        db.close()
