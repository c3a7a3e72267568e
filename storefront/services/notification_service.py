# storefront/services/notification_service.py
import requests

from storefront.celery_worker import celery_app
from storefront.domain.order_status import status_message
from storefront.utils.retry import http_retry
from storefront.utils.settings import NOTIFICATION_WEBHOOK_URL, NOTIFICATION_TIMEOUT_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def _money(value) -> str:
    return f"{value:.2f}" if value is not None else "0.00"


def build_confirmation_payload(order, items, address: dict, payment_method_label: str) -> dict:
    return {
        "event": "order_confirmed",
        "order_number": order.order_number,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "total": _money(order.total),
        "items": [
            {
                "product_name": i.product_name,
                "quantity": i.quantity,
                "unit_price": _money(i.unit_price),
                "total": _money(i.total),
            }
            for i in items
        ],
        "shipping_address": address,
        "payment_method": payment_method_label,
    }


def build_status_payload(order, new_status: str, tracking_number: str | None) -> dict:
    return {
        "event": "order_status_changed",
        "order_number": order.order_number,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "status": new_status,
        "status_message": status_message(new_status),
        "tracking_number": tracking_number,
    }


class NotificationService:
    """
    Serwis do wysyłania powiadomień.
    Wywolywany dopiero po commicie - blad kolejki jest logowany i porzucany,
    nigdy nie cofa zamowienia.
    """

    def order_confirmed(self, order, items, address: dict, payment_method_label: str) -> bool:
        try:
            payload = build_confirmation_payload(order, items, address, payment_method_label)
            send_order_confirmation_task.delay(payload)
            return True
        except Exception as e:
            logger.error(f"Failed to dispatch confirmation for order {order.order_number}: {e}")
            return False

    def order_status_changed(self, order, new_status: str, tracking_number: str | None = None) -> bool:
        try:
            payload = build_status_payload(order, new_status, tracking_number)
            send_order_status_task.delay(payload)
            return True
        except Exception as e:
            logger.error(f"Failed to dispatch status change for order {order.order_number}: {e}")
            return False


@http_retry()
def _post_webhook(payload: dict):
    resp = requests.post(NOTIFICATION_WEBHOOK_URL, json=payload, timeout=NOTIFICATION_TIMEOUT_SECONDS)
    resp.raise_for_status()


def deliver(payload: dict) -> dict:
    if not NOTIFICATION_WEBHOOK_URL:
        #brak mailera - tylko log
        logger.info(f"[NOTIFICATION] {payload['event']} {payload['order_number']} -> {payload['customer_email']}")
        return {"order_number": payload["order_number"], "status": "logged"}

    _post_webhook(payload)
    logger.info(f"[NOTIFICATION] {payload['event']} {payload['order_number']} delivered")
    return {"order_number": payload["order_number"], "status": "sent"}


@celery_app.task(name="storefront.services.notification_service.send_order_confirmation_task")
def send_order_confirmation_task(payload: dict):
    return deliver(payload)


@celery_app.task(name="storefront.services.notification_service.send_order_status_task")
def send_order_status_task(payload: dict):
    return deliver(payload)
