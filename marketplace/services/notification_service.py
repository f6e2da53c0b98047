"""
Notification store - per-user notifications and their read state.

Every mutation of an existing notification is a single statement whose
WHERE clause names both the notification and its owner, so one user can
never touch another user's rows.  A miss is reported as ``NotFoundError``
whether the row is absent or belongs to someone else.

The read flag only ever moves from unread to read, and ``read_at`` is
written in the same statement that sets it.
"""
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.database import store_errors, transaction
from marketplace.exceptions import NotFoundError, PersistenceError, ValidationError
from marketplace.models import NOTIFICATION_CATEGORIES, REFERENCE_TYPES, Notification, User
from marketplace.validators import (
    optional_id,
    require_choice,
    require_id,
    require_limit,
    require_positive,
    require_text,
)

logger = logging.getLogger(__name__)

_ORDER_STATUS_MESSAGES: dict[str, str] = {
    "confirmed": "Your order has been confirmed",
    "shipped": "Your order is on its way",
    "delivered": "Your order has been delivered",
    "cancelled": "Your order has been cancelled",
}


def _notification_to_dict(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "title": notification.title,
        "body": notification.body,
        "category": notification.category,
        "reference_id": notification.reference_id,
        "reference_type": notification.reference_type,
        "is_read": notification.is_read,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
        "read_at": notification.read_at.isoformat() if notification.read_at else None,
    }


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def create_notification(
    db: AsyncSession,
    *,
    user_id: int,
    title: str,
    body: str,
    category: str = "system",
    reference_id: int | None = None,
    reference_type: str | None = None,
) -> dict:
    """
    Create an unread notification for *user_id* and return the stored row.

    The row is read back by the primary key generated for this INSERT.
    """
    user_id = require_id(user_id, "user_id")
    title = require_text(title, "title")
    body = require_text(body, "body")
    category = require_choice(category or "system", NOTIFICATION_CATEGORIES, "category")
    reference_id = optional_id(reference_id, "reference_id")
    if reference_type is not None:
        reference_type = require_choice(reference_type, REFERENCE_TYPES, "reference_type")

    async with transaction(db):
        recipient = await db.execute(select(User.id).where(User.id == user_id))
        if recipient.scalar_one_or_none() is None:
            raise NotFoundError("Recipient does not exist")

        notification = Notification(
            user_id=user_id,
            title=title,
            body=body,
            category=category,
            reference_id=reference_id,
            reference_type=reference_type,
            is_read=False,
        )
        db.add(notification)
        await db.flush()

        q = (
            select(Notification)
            .where(Notification.id == notification.id)
            .execution_options(populate_existing=True)
        )
        created = (await db.execute(q)).scalar_one_or_none()
        if created is None:
            raise PersistenceError("Notification could not be read back after insert")
        data = _notification_to_dict(created)

    logger.info("Notification %s (%s) created for user %s", data["id"], category, user_id)
    return data


async def list_for_user(
    db: AsyncSession,
    user_id: int,
    limit: int | None = None,
    unread_only: bool = False,
) -> list[dict]:
    """
    Return up to *limit* notifications for *user_id*, newest first.

    *limit* defaults to ``settings.DEFAULT_NOTIFICATION_LIMIT`` and is
    clamped to ``settings.MAX_NOTIFICATION_LIMIT``.
    """
    user_id = require_id(user_id, "user_id")
    if limit is None:
        limit = settings.DEFAULT_NOTIFICATION_LIMIT
    limit = require_limit(limit, settings.MAX_NOTIFICATION_LIMIT)

    q = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        q = q.where(Notification.is_read == False)  # noqa: E712
    q = (
        q.order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )

    with store_errors():
        result = await db.execute(q)
        return [_notification_to_dict(n) for n in result.scalars().all()]


async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> None:
    """
    Mark one of *user_id*'s notifications as read.

    A notification that is already read keeps its original ``read_at``.
    """
    notification_id = require_id(notification_id, "notification_id")
    user_id = require_id(user_id, "user_id")
    owned = (Notification.id == notification_id, Notification.user_id == user_id)

    async with transaction(db):
        result = await db.execute(
            update(Notification)
            .where(*owned, Notification.is_read == False)  # noqa: E712
            .values(is_read=True, read_at=datetime.now(timezone.utc))
        )
        if result.rowcount == 0:
            # Nothing flipped: either it was already read or it is not ours.
            existing = await db.execute(select(Notification.id).where(*owned))
            if existing.scalar_one_or_none() is None:
                raise NotFoundError("Notification not found")


async def mark_all_read(db: AsyncSession, user_id: int) -> dict:
    """Mark every unread notification of *user_id* as read in one statement."""
    user_id = require_id(user_id, "user_id")

    async with transaction(db):
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
            .values(is_read=True, read_at=datetime.now(timezone.utc))
        )
        updated = result.rowcount

    logger.info("Marked %d notification(s) read for user %s", updated, user_id)
    return {"updated_count": updated}


async def delete_notification(db: AsyncSession, notification_id: int, user_id: int) -> None:
    notification_id = require_id(notification_id, "notification_id")
    user_id = require_id(user_id, "user_id")

    async with transaction(db):
        result = await db.execute(
            delete(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Notification not found")


async def count_unread(db: AsyncSession, user_id: int) -> int:
    user_id = require_id(user_id, "user_id")
    q = (
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
    )
    with store_errors():
        return (await db.execute(q)).scalar_one()


async def purge_older_than(db: AsyncSession, days: int = 30) -> dict:
    """
    Delete every notification created more than *days* days ago, read or
    not, in one statement.  Returns ``{"deleted_count": int}``.
    """
    days = require_positive(days, "days")
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)

    async with transaction(db):
        result = await db.execute(
            delete(Notification)
            .where(Notification.created_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        deleted = result.rowcount

    logger.info("Purged %d notification(s) older than %d day(s)", deleted, days)
    return {"deleted_count": deleted}


# ---------------------------------------------------------------------------
# Event helpers - thin wrappers used by the order and messaging flows
# ---------------------------------------------------------------------------

async def notify_new_order(
    db: AsyncSession, producer_id: int, order_id: int, item_count: int
) -> dict:
    return await create_notification(
        db,
        user_id=producer_id,
        title="New order received",
        body=f"You have received order #{order_id} with {item_count} product(s)",
        category="order",
        reference_id=order_id,
        reference_type="order",
    )


async def notify_order_status_change(
    db: AsyncSession, consumer_id: int, order_id: int, status: str
) -> dict:
    """Tell a consumer their order moved to *status*."""
    message = _ORDER_STATUS_MESSAGES.get(status, f"Order status changed to: {status}")
    return await create_notification(
        db,
        user_id=consumer_id,
        title="Order update",
        body=f"{message} - Order #{order_id}",
        category="order",
        reference_id=order_id,
        reference_type="order",
    )


async def notify_low_stock(db: AsyncSession, producer_id: int, product_ids: list[int]) -> dict:
    """
    Warn a producer that some of their products are running low.

    A single product is linked as the notification's reference; several
    products are only counted in the body.
    """
    if not product_ids:
        raise ValidationError("product_ids must list at least one product")
    single = product_ids[0] if len(product_ids) == 1 else None
    return await create_notification(
        db,
        user_id=producer_id,
        title="Low stock alert",
        body=f"{len(product_ids)} product(s) are running low on stock",
        category="stock",
        reference_id=single,
        reference_type="product" if single is not None else None,
    )


async def notify_new_message(
    db: AsyncSession,
    recipient_id: int,
    sender_name: str,
    subject: str,
    message_id: int | None = None,
) -> dict:
    return await create_notification(
        db,
        user_id=recipient_id,
        title="New message",
        body=f"{sender_name} sent you a message: {subject}",
        category="message",
        reference_id=message_id,
        reference_type="message" if message_id is not None else None,
    )
