# storefront/celery_worker.py
from celery import Celery

from storefront.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND, CART_SWEEP_INTERVAL_SECONDS

celery_app = Celery(
    "storefront",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# taski rejestrowane przez import modulow
celery_app.conf.imports = (
    "storefront.tasks.expire",
    "storefront.services.notification_service",
)

# payloady powiadomien to zwykle dicty, bez pickle
celery_app.conf.task_serializer = "json"
celery_app.conf.result_serializer = "json"
celery_app.conf.accept_content = ["json"]

celery_app.conf.beat_schedule = {
    "abandon-expired-guest-carts": {
        "task": "storefront.tasks.expire.expire_carts_task",
        "schedule": float(CART_SWEEP_INTERVAL_SECONDS),
    },
}

celery_app.conf.timezone = "UTC"
