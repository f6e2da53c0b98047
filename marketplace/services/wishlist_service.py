"""
Wishlist registry - membership of (user, product) pairs.

The UNIQUE(user_id, product_id) constraint on ``wishlist_entries`` is the
source of truth for "no duplicate pair".  ``add`` still looks for an
existing pair first, inside the same transaction as the INSERT, so the
common case fails fast with a clear message; a concurrent writer that
slips past the pre-read is caught by the constraint and reported as the
same ``DuplicateError``.  Any other integrity failure, such as an
unknown user, is a store error and surfaces as ``PersistenceError``.

Product rows are only read here, as a display projection for
``list_for_user``.
"""
import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from marketplace.database import is_unique_violation, store_errors, transaction
from marketplace.exceptions import DuplicateError, NotFoundError, PersistenceError
from marketplace.models import Product, WishlistEntry
from marketplace.validators import require_id

logger = logging.getLogger(__name__)

_ALREADY_LISTED = "The product is already in your wishlist"
_UNIQUE_PAIR = "uq_wishlist_entries_user_product"


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _entry_to_dict(entry: WishlistEntry) -> dict:
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "product_id": entry.product_id,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


def _product_summary(product: Product | None) -> dict | None:
    if product is None:
        return None
    return {
        "name": product.name,
        "description": product.description,
        "price": product.price,
        "stock": product.stock,
        "unit": product.unit,
        "main_image": product.main_image,
        "is_available": product.is_available,
        "category_id": product.category_id,
        "category_name": product.category.name if product.category else None,
        "producer_name": product.producer.name if product.producer else None,
    }


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def add(db: AsyncSession, user_id: int, product_id: int) -> dict:
    """
    Add *product_id* to *user_id*'s wishlist and return the new entry.

    Raises ``DuplicateError`` if the pair already exists and
    ``NotFoundError`` if the product does not exist.
    """
    user_id = require_id(user_id, "user_id")
    product_id = require_id(product_id, "product_id")

    async with transaction(db):
        existing = await db.execute(
            select(WishlistEntry.id).where(
                WishlistEntry.user_id == user_id,
                WishlistEntry.product_id == product_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateError(_ALREADY_LISTED)

        product = await db.execute(select(Product.id).where(Product.id == product_id))
        if product.scalar_one_or_none() is None:
            raise NotFoundError("product does not exist")

        entry = WishlistEntry(user_id=user_id, product_id=product_id)
        db.add(entry)
        try:
            await db.flush()
        except IntegrityError as exc:
            # Only the pair constraint means "duplicate"; a foreign key
            # failure propagates and is reported as a store error.
            if is_unique_violation(exc, WishlistEntry.__table__, _UNIQUE_PAIR):
                raise DuplicateError(_ALREADY_LISTED) from exc
            raise

        q = (
            select(WishlistEntry)
            .where(WishlistEntry.id == entry.id)
            .execution_options(populate_existing=True)
        )
        created = (await db.execute(q)).scalar_one_or_none()
        if created is None:
            raise PersistenceError("Wishlist entry could not be read back after insert")
        data = _entry_to_dict(created)

    logger.info("User %s added product %s to wishlist", user_id, product_id)
    return data


async def list_for_user(db: AsyncSession, user_id: int) -> list[dict]:
    """
    Return *user_id*'s wishlist, newest first, each entry carrying a
    read-only ``product`` summary (category and producer names included).
    """
    user_id = require_id(user_id, "user_id")
    q = (
        select(WishlistEntry)
        .where(WishlistEntry.user_id == user_id)
        .options(
            joinedload(WishlistEntry.product).joinedload(Product.category),
            joinedload(WishlistEntry.product).joinedload(Product.producer),
        )
        .order_by(WishlistEntry.created_at.desc(), WishlistEntry.id.desc())
        .execution_options(populate_existing=True)
    )
    with store_errors():
        result = await db.execute(q)
        entries = result.unique().scalars().all()

    items = []
    for entry in entries:
        data = _entry_to_dict(entry)
        data["product"] = _product_summary(entry.product)
        items.append(data)
    return items


async def remove(db: AsyncSession, entry_id: int, user_id: int) -> None:
    """Remove one of *user_id*'s entries by its id."""
    entry_id = require_id(entry_id, "entry_id")
    user_id = require_id(user_id, "user_id")

    async with transaction(db):
        result = await db.execute(
            delete(WishlistEntry).where(
                WishlistEntry.id == entry_id,
                WishlistEntry.user_id == user_id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Wishlist entry not found")


async def remove_by_product(db: AsyncSession, product_id: int, user_id: int) -> None:
    """Remove *product_id* from *user_id*'s wishlist."""
    product_id = require_id(product_id, "product_id")
    user_id = require_id(user_id, "user_id")

    async with transaction(db):
        result = await db.execute(
            delete(WishlistEntry).where(
                WishlistEntry.product_id == product_id,
                WishlistEntry.user_id == user_id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("The product is not in your wishlist")


async def clear(db: AsyncSession, user_id: int) -> dict:
    """Delete every entry of *user_id*; other users are untouched."""
    user_id = require_id(user_id, "user_id")

    async with transaction(db):
        result = await db.execute(delete(WishlistEntry).where(WishlistEntry.user_id == user_id))
        removed = result.rowcount

    logger.info("Cleared %d wishlist entr(ies) for user %s", removed, user_id)
    return {"removed_count": removed}


async def contains(db: AsyncSession, product_id: int, user_id: int) -> bool:
    product_id = require_id(product_id, "product_id")
    user_id = require_id(user_id, "user_id")
    q = select(WishlistEntry.id).where(
        WishlistEntry.product_id == product_id,
        WishlistEntry.user_id == user_id,
    )
    with store_errors():
        return (await db.execute(q)).scalar_one_or_none() is not None
