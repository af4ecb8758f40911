from sqlalchemy.orm import Session
from typing import Optional, Dict, Any, Iterable
import logging

from models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)

# event kind -> (type, title, message template)
EVENT_TEMPLATES: Dict[str, tuple] = {
    "order_placed": (NotificationType.ORDER, "Order placed", "Your order {order_id} has been placed."),
    "new_order": (NotificationType.ORDER, "New order received", "You received a new order {order_id}."),
    "order_confirmed": (NotificationType.ORDER, "Order confirmed", "Order {order_id} was confirmed by the vendor."),
    "order_rejected": (NotificationType.ORDER, "Order rejected", "Order {order_id} was rejected by the vendor."),
    "order_cancelled": (NotificationType.ORDER, "Order cancelled", "Order {order_id} has been cancelled."),
    "order_assigned": (NotificationType.DELIVERY, "Courier assigned", "A courier has been assigned to order {order_id}."),
    "delivery_assigned": (NotificationType.DELIVERY, "New delivery", "Order {order_id} has been assigned to you."),
    "claim_cancelled": (NotificationType.DELIVERY, "Courier unassigned", "The courier for order {order_id} cancelled the claim."),
    "delivery_status": (NotificationType.DELIVERY, "Delivery update", "Order {order_id} is now {status}."),
    "payment_confirmed": (NotificationType.PAYMENT, "Payment received", "Cash payment for order {order_id} was confirmed."),
    "vendor_payment_approved": (NotificationType.VENDOR_PAYMENT, "Payout approved", "Payout for order {order_id} is approved."),
    "vendor_payment_processed": (NotificationType.VENDOR_PAYMENT, "Payout sent", "Payout of {net_amount} for order {order_id} has been sent."),
}

class _SafeDict(dict):
    def __missing__(self, key):
        return "{" + key + "}"

class NotificationService:
    """Writes in-app notifications. Callers invoke it after their business
    transaction has committed; a failure here never propagates."""

    def __init__(self, db: Session):
        self.db = db

    def notify(self, user_id: Optional[str], event_kind: str, payload: Optional[Dict[str, Any]] = None) -> Optional[Notification]:
        if not user_id:
            return None

        payload = payload or {}
        notification_type, title, template = EVENT_TEMPLATES.get(
            event_kind, (NotificationType.SYSTEM, event_kind.replace("_", " ").capitalize(), "{message}")
        )
        try:
            notification = Notification(
                user_id=user_id,
                event_kind=event_kind,
                title=title,
                message=template.format_map(_SafeDict({k: str(v) for k, v in payload.items()})),
                type=notification_type,
                related_id=payload.get("order_id"),
                related_type="order" if payload.get("order_id") else None
            )
            self.db.add(notification)
            self.db.commit()
            logger.info(f"Created notification {notification.id} ({event_kind}) for user {user_id}")
            return notification
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating notification {event_kind} for user {user_id}: {str(e)}")
            return None

    def notify_many(self, user_ids: Iterable[Optional[str]], event_kind: str, payload: Optional[Dict[str, Any]] = None) -> int:
        sent = 0
        for user_id in dict.fromkeys(user_ids):
            if self.notify(user_id, event_kind, payload) is not None:
                sent += 1
        return sent
