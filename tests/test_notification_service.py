"""
Notification store tests - creation, inbox listing, the one-way read flag
and owner-scoped mutations.
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.exceptions import NotFoundError, ValidationError
from marketplace.models import Notification
from marketplace.services import notification_service


async def _notify(db: AsyncSession, user_id: int, title: str = "Hello", **kwargs) -> dict:
    return await notification_service.create_notification(
        db, user_id=user_id, title=title, body=f"Body of {title}", **kwargs
    )


async def _stored(db: AsyncSession, notification_id: int) -> Notification:
    q = select(Notification).where(Notification.id == notification_id).execution_options(
        populate_existing=True
    )
    return (await db.execute(q)).scalar_one()


# ---------------------------------------------------------------------------
# create_notification
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_notification_defaults(db_session: AsyncSession, catalog):
    created = await _notify(db_session, catalog.alice)
    assert created["category"] == "system"
    assert created["is_read"] is False
    assert created["read_at"] is None
    assert created["reference_id"] is None
    assert created["reference_type"] is None
    assert created["created_at"] is not None


@pytest.mark.asyncio
async def test_create_notification_with_reference(db_session: AsyncSession, catalog):
    created = await _notify(
        db_session, catalog.alice, category="order",
        reference_id=catalog.alice_order, reference_type="order",
    )
    stored = await _stored(db_session, created["id"])
    assert stored.category == "order"
    assert stored.reference_id == catalog.alice_order
    assert stored.reference_type == "order"
    assert stored.user_id == catalog.alice


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"user_id": None},
        {"user_id": 0},
        {"title": ""},
        {"title": "   "},
        {"body": None},
        {"category": "gossip"},
        {"reference_type": "invoice"},
        {"reference_id": -1},
    ],
)
async def test_create_notification_validation(db_session: AsyncSession, catalog, overrides):
    payload = {"user_id": catalog.alice, "title": "T", "body": "B"}
    payload.update(overrides)
    with pytest.raises(ValidationError):
        await notification_service.create_notification(db_session, **payload)


@pytest.mark.asyncio
async def test_create_notification_for_unknown_recipient(db_session: AsyncSession, catalog):
    with pytest.raises(NotFoundError):
        await _notify(db_session, 99999)


# ---------------------------------------------------------------------------
# list_for_user / count_unread
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_for_user_newest_first_and_scoped(db_session: AsyncSession, catalog):
    ids = [(await _notify(db_session, catalog.alice, title=f"n{i}"))["id"] for i in range(3)]
    await _notify(db_session, catalog.bob, title="not yours")

    listed = await notification_service.list_for_user(db_session, catalog.alice)
    assert [n["id"] for n in listed] == list(reversed(ids))
    assert all(n["user_id"] == catalog.alice for n in listed)


@pytest.mark.asyncio
async def test_list_for_user_limit_and_unread_only(db_session: AsyncSession, catalog):
    first = await _notify(db_session, catalog.alice, title="first")
    for i in range(4):
        await _notify(db_session, catalog.alice, title=f"more {i}")
    await notification_service.mark_read(db_session, first["id"], catalog.alice)

    assert len(await notification_service.list_for_user(db_session, catalog.alice, limit=2)) == 2
    unread = await notification_service.list_for_user(db_session, catalog.alice, unread_only=True)
    assert len(unread) == 4
    assert first["id"] not in {n["id"] for n in unread}


@pytest.mark.asyncio
async def test_list_for_user_rejects_non_positive_limit(db_session: AsyncSession, catalog):
    with pytest.raises(ValidationError):
        await notification_service.list_for_user(db_session, catalog.alice, limit=0)


@pytest.mark.asyncio
async def test_count_unread(db_session: AsyncSession, catalog):
    assert await notification_service.count_unread(db_session, catalog.alice) == 0
    a = await _notify(db_session, catalog.alice)
    await _notify(db_session, catalog.alice)
    await _notify(db_session, catalog.bob)
    assert await notification_service.count_unread(db_session, catalog.alice) == 2

    await notification_service.mark_read(db_session, a["id"], catalog.alice)
    assert await notification_service.count_unread(db_session, catalog.alice) == 1


# ---------------------------------------------------------------------------
# mark_read / mark_all_read
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_mark_read_sets_flag_and_timestamp_together(db_session: AsyncSession, catalog):
    created = await _notify(db_session, catalog.alice)
    await notification_service.mark_read(db_session, created["id"], catalog.alice)

    stored = await _stored(db_session, created["id"])
    assert stored.is_read is True
    assert stored.read_at is not None


@pytest.mark.asyncio
async def test_mark_read_twice_keeps_first_timestamp(db_session: AsyncSession, catalog):
    created = await _notify(db_session, catalog.alice)
    await notification_service.mark_read(db_session, created["id"], catalog.alice)
    first_read_at = (await _stored(db_session, created["id"])).read_at

    await notification_service.mark_read(db_session, created["id"], catalog.alice)
    assert (await _stored(db_session, created["id"])).read_at == first_read_at


@pytest.mark.asyncio
async def test_mark_read_wrong_owner(db_session: AsyncSession, catalog):
    created = await _notify(db_session, catalog.alice)
    with pytest.raises(NotFoundError):
        await notification_service.mark_read(db_session, created["id"], catalog.bob)

    stored = await _stored(db_session, created["id"])
    assert stored.is_read is False
    assert stored.read_at is None


@pytest.mark.asyncio
async def test_mark_read_missing(db_session: AsyncSession, catalog):
    with pytest.raises(NotFoundError):
        await notification_service.mark_read(db_session, 99999, catalog.alice)


@pytest.mark.asyncio
async def test_mark_all_read_is_idempotent(db_session: AsyncSession, catalog):
    for i in range(3):
        await _notify(db_session, catalog.alice, title=f"n{i}")
    bob_note = await _notify(db_session, catalog.bob)

    assert await notification_service.mark_all_read(db_session, catalog.alice) == {"updated_count": 3}
    assert await notification_service.mark_all_read(db_session, catalog.alice) == {"updated_count": 0}

    assert await notification_service.count_unread(db_session, catalog.alice) == 0
    assert (await _stored(db_session, bob_note["id"])).is_read is False
    for note in await notification_service.list_for_user(db_session, catalog.alice):
        assert note["is_read"] is True
        assert note["read_at"] is not None


# ---------------------------------------------------------------------------
# delete_notification
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_notification(db_session: AsyncSession, catalog):
    created = await _notify(db_session, catalog.alice)
    await notification_service.delete_notification(db_session, created["id"], catalog.alice)
    assert await notification_service.list_for_user(db_session, catalog.alice) == []


@pytest.mark.asyncio
async def test_delete_notification_wrong_owner(db_session: AsyncSession, catalog):
    created = await _notify(db_session, catalog.alice)
    with pytest.raises(NotFoundError):
        await notification_service.delete_notification(db_session, created["id"], catalog.bob)
    assert len(await notification_service.list_for_user(db_session, catalog.alice)) == 1


# ---------------------------------------------------------------------------
# purge_older_than
# ---------------------------------------------------------------------------

async def _aged(db: AsyncSession, user_id: int, title: str, days: int, is_read: bool = False) -> None:
    created_at = datetime.now(timezone.utc) - timedelta(days=days)
    db.add(Notification(
        user_id=user_id, title=title, body=title, category="system",
        is_read=is_read, read_at=created_at if is_read else None, created_at=created_at,
    ))
    await db.commit()


@pytest.mark.asyncio
async def test_purge_deletes_only_old_notifications(db_session: AsyncSession, catalog):
    await _aged(db_session, catalog.alice, "old unread", days=40)
    await _aged(db_session, catalog.alice, "old read", days=31, is_read=True)
    await _aged(db_session, catalog.bob, "old for bob", days=45)
    await _aged(db_session, catalog.alice, "last week", days=7)
    await _notify(db_session, catalog.alice, "today")

    result = await notification_service.purge_older_than(db_session)
    assert result == {"deleted_count": 3}

    titles = [n["title"] for n in await notification_service.list_for_user(db_session, catalog.alice)]
    assert sorted(titles) == ["last week", "today"]
    assert await notification_service.list_for_user(db_session, catalog.bob) == []

    again = await notification_service.purge_older_than(db_session)
    assert again == {"deleted_count": 0}


@pytest.mark.asyncio
async def test_purge_with_shorter_window(db_session: AsyncSession, catalog):
    await _aged(db_session, catalog.alice, "last week", days=7)
    await _notify(db_session, catalog.alice, "today")

    assert await notification_service.purge_older_than(db_session, days=3) == {"deleted_count": 1}
    assert await notification_service.count_unread(db_session, catalog.alice) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("days", [0, -5, None, 1.5])
async def test_purge_rejects_bad_window(db_session: AsyncSession, catalog, days):
    with pytest.raises(ValidationError):
        await notification_service.purge_older_than(db_session, days=days)


# ---------------------------------------------------------------------------
# Event helpers
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_notify_order_status_change(db_session: AsyncSession, catalog):
    note = await notification_service.notify_order_status_change(
        db_session, catalog.alice, catalog.alice_order, "shipped"
    )
    assert note["category"] == "order"
    assert note["reference_type"] == "order"
    assert note["reference_id"] == catalog.alice_order
    assert note["body"] == f"Your order is on its way - Order #{catalog.alice_order}"


@pytest.mark.asyncio
async def test_notify_order_status_change_unknown_status(db_session: AsyncSession, catalog):
    note = await notification_service.notify_order_status_change(
        db_session, catalog.alice, catalog.alice_order, "on_hold"
    )
    assert note["body"].startswith("Order status changed to: on_hold")


@pytest.mark.asyncio
async def test_notify_new_order(db_session: AsyncSession, catalog):
    note = await notification_service.notify_new_order(db_session, catalog.producer, catalog.bob_order, 3)
    assert note["user_id"] == catalog.producer
    assert "3 product(s)" in note["body"]


@pytest.mark.asyncio
async def test_notify_low_stock_links_single_product(db_session: AsyncSession, catalog):
    single = await notification_service.notify_low_stock(db_session, catalog.producer, [catalog.potato])
    assert single["category"] == "stock"
    assert single["reference_type"] == "product"
    assert single["reference_id"] == catalog.potato

    several = await notification_service.notify_low_stock(
        db_session, catalog.producer, [catalog.potato, catalog.tomato]
    )
    assert several["reference_id"] is None
    assert several["reference_type"] is None


@pytest.mark.asyncio
async def test_notify_new_message(db_session: AsyncSession, catalog):
    note = await notification_service.notify_new_message(
        db_session, catalog.producer, "Alice", "Bulk tomatoes?", message_id=12
    )
    assert note["category"] == "message"
    assert note["reference_type"] == "message"
    assert note["body"] == "Alice sent you a message: Bulk tomatoes?"


@pytest.mark.asyncio
async def test_notify_low_stock_needs_products(db_session: AsyncSession, catalog):
    with pytest.raises(ValidationError):
        await notification_service.notify_low_stock(db_session, catalog.producer, [])
    assert await notification_service.count_unread(db_session, catalog.producer) == 0
