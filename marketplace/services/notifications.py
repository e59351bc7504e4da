"""
Notification collaborator.

The order core only ever *asks* for a notification to be sent; delivery
(push, e-mail) lives elsewhere. A failed notification is logged and dropped
and never affects the order change that triggered it.
"""
import logging
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from marketplace.models.database import Notification, NotificationKind, OrderStatus
from marketplace.services.order_state import STATUS_LABELS

logger = logging.getLogger(__name__)


class Notifier:
    """Interface of the notification collaborator"""

    def notify(self, user_id: int, kind: NotificationKind, title: str, message: str,
               context: Optional[dict] = None) -> None:
        raise NotImplementedError


class DatabaseNotifier(Notifier):
    """Stores notifications as rows, in a session of its own"""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def notify(self, user_id, kind, title, message, context=None):
        db = self.session_factory()
        try:
            db.add(Notification(
                user_id=user_id,
                kind=NotificationKind(kind).value,
                title=title,
                message=message,
                data=context or {},
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class RecordingNotifier(Notifier):
    """Keeps notifications in memory; used where no delivery is wanted"""

    def __init__(self):
        self.sent: List[dict] = []

    def notify(self, user_id, kind, title, message, context=None):
        self.sent.append({
            "user_id": user_id,
            "kind": NotificationKind(kind),
            "title": title,
            "message": message,
            "context": context or {},
        })


class BackgroundNotifier(Notifier):
    """Defers delivery to FastAPI background tasks, after the response is sent"""

    def __init__(self, background_tasks, inner: Notifier):
        self.background_tasks = background_tasks
        self.inner = inner

    def notify(self, user_id, kind, title, message, context=None):
        self.background_tasks.add_task(
            notify_safely, self.inner, user_id, kind, title, message, context
        )


def notify_safely(notifier: Optional[Notifier], user_id, kind, title, message, context=None) -> None:
    if notifier is None:
        return
    try:
        notifier.notify(user_id, kind, title, message, context)
    except Exception:
        logger.exception(f"Failed to notify user {user_id}: {title}")


def notify_status_change(notifier: Optional[Notifier], order) -> None:
    status = OrderStatus(order.status)
    notify_safely(
        notifier,
        order.customer_id,
        NotificationKind.ORDER,
        "Order update",
        f"Your order {order.order_number} is now: {STATUS_LABELS[status]}",
        {"order_id": order.id, "order_number": order.order_number, "status": status.value},
    )


def notify_new_order(notifier: Optional[Notifier], vendor_id: int, order) -> None:
    notify_safely(
        notifier,
        vendor_id,
        NotificationKind.ORDER,
        "New order",
        f"You have a new order {order.order_number}",
        {"order_id": order.id, "order_number": order.order_number},
    )
