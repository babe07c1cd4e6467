from fastapi import Depends
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.services.bulk import BulkGenerator
from app.services.dispatcher import NotificationDispatcher, NotificationPolicy
from app.services.lifecycle import LifecycleService
from app.services.store import TransactionStore


def get_store(db: Session = Depends(get_db)) -> TransactionStore:
    return TransactionStore(db)


def get_notification_dispatcher() -> NotificationDispatcher:
    """Unbound dispatcher built from settings; tests override this one."""
    return NotificationDispatcher(settings.dispatcher_config())


def get_dispatcher(
    store: TransactionStore = Depends(get_store),
    base: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> NotificationDispatcher:
    return base.with_store(store)


def get_policy() -> NotificationPolicy:
    return NotificationPolicy(settings.notify_status_list())


def get_lifecycle(
    store: TransactionStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    policy: NotificationPolicy = Depends(get_policy),
) -> LifecycleService:
    return LifecycleService(store, dispatcher, policy)


def get_bulk_generator(
    store: TransactionStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    policy: NotificationPolicy = Depends(get_policy),
) -> BulkGenerator:
    return BulkGenerator(store, dispatcher, policy)
