# storefront/tasks/expire.py
from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.services.cart_service import CartService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="storefront.tasks.expire.expire_carts_task")
def expire_carts_task():
    logger.info("Expire guest carts task started")

    db = SessionLocal()
    try:
        count = CartService(db).abandon_expired_carts()
        logger.info(f"Expired {count} guest carts")
        return count
    finally:
        db.close()
