"""
Review ledger - product reviews and the per-product rating aggregate.

Design notes
------------
- A review's order, product, consumer and producer references are fixed
  at creation; only ``rating`` and ``comment`` are ever written again.
- A consumer reviews a product at most once.  ``create_review`` checks
  for an existing review before the INSERT and the
  UNIQUE(consumer_id, product_id) constraint catches a concurrent writer
  that slips past that read.
- ``create_review`` takes the generated primary key from its own INSERT
  (populated on the instance by ``flush``) and re-reads the row by that
  key inside the same transaction.  It never asks the table for "the
  latest row", which under concurrent writers could belong to someone
  else.
- ``average_rating`` is computed in SQL on every call and is never
  stored, so it always agrees with ``list_reviews_by_product`` at read
  time.
- Author checks happen in the router; ``update_review`` accepts an
  identifier-only path.
"""
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from marketplace.config import settings
from marketplace.database import is_unique_violation, store_errors, transaction
from marketplace.exceptions import DuplicateError, NotFoundError, PersistenceError, ValidationError
from marketplace.models import Product, Review
from marketplace.validators import require_id, require_rating

logger = logging.getLogger(__name__)

_MUTABLE_FIELDS: frozenset[str] = frozenset({"rating", "comment"})

_ONE_PER_CONSUMER = "uq_reviews_consumer_product"
_ALREADY_REVIEWED = "You have already reviewed this product"

_NEWEST_FIRST = (Review.created_at.desc(), Review.id.desc())


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _review_to_dict(review: Review) -> dict:
    return {
        "id": review.id,
        "order_id": review.order_id,
        "product_id": review.product_id,
        "consumer_id": review.consumer_id,
        "producer_id": review.producer_id,
        "rating": review.rating,
        "comment": review.comment,
        "created_at": review.created_at.isoformat() if review.created_at else None,
    }


def _review_with_names_to_dict(review: Review) -> dict:
    """List-by-product view: adds the reviewer and product display names."""
    data = _review_to_dict(review)
    data["consumer_name"] = review.consumer.name if review.consumer else None
    data["product_name"] = review.product.name if review.product else None
    return data


def _clean_comment(comment) -> str | None:
    if comment is None:
        return None
    if not isinstance(comment, str):
        raise ValidationError("comment must be a string")
    return comment.strip() or None


async def _fetch_review(db: AsyncSession, review_id: int) -> Review | None:
    # populate_existing reloads server-side defaults (created_at) on an
    # instance that is already in the identity map after a flush.
    q = (
        select(Review)
        .where(Review.id == review_id)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(q)).scalar_one_or_none()


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def list_reviews(db: AsyncSession) -> list[dict]:
    """Return every review, newest first."""
    with store_errors():
        result = await db.execute(select(Review).order_by(*_NEWEST_FIRST))
        return [_review_to_dict(r) for r in result.scalars().all()]


async def get_review(db: AsyncSession, review_id: int) -> dict:
    review_id = require_id(review_id, "review_id")
    with store_errors():
        review = await _fetch_review(db, review_id)
    if review is None:
        raise NotFoundError("Review not found")
    return _review_to_dict(review)


async def create_review(
    db: AsyncSession,
    *,
    order_id: int,
    product_id: int,
    consumer_id: int,
    producer_id: int,
    rating: int,
    comment: str | None = None,
) -> dict:
    """
    Insert a review and return exactly the row that was written.

    Raises ``ValidationError`` for an out-of-range rating or a missing /
    non-positive reference, ``DuplicateError`` if the consumer already
    reviewed the product, and ``PersistenceError`` if the store rejects
    the insert (for example a dangling foreign key).
    """
    review = Review(
        order_id=require_id(order_id, "order_id"),
        product_id=require_id(product_id, "product_id"),
        consumer_id=require_id(consumer_id, "consumer_id"),
        producer_id=require_id(producer_id, "producer_id"),
        rating=require_rating(rating),
        comment=_clean_comment(comment),
    )

    async with transaction(db):
        existing = await db.execute(
            select(Review.id).where(
                Review.consumer_id == review.consumer_id,
                Review.product_id == review.product_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateError(_ALREADY_REVIEWED)

        db.add(review)
        try:
            await db.flush()
        except IntegrityError as exc:
            if is_unique_violation(exc, Review.__table__, _ONE_PER_CONSUMER):
                raise DuplicateError(_ALREADY_REVIEWED) from exc
            raise
        created = await _fetch_review(db, review.id)
        if created is None:
            raise PersistenceError("Review could not be read back after insert")
        data = _review_to_dict(created)

    logger.info("Review %s created for product %s", data["id"], data["product_id"])
    return data


async def update_review(db: AsyncSession, review_id: int, changes: dict) -> dict:
    """
    Partially update a review and return its new state.

    Only keys present in *changes* are written; an omitted rating or
    comment keeps its stored value.  Callers typically build *changes*
    with ``model_dump(exclude_unset=True)``.
    """
    review_id = require_id(review_id, "review_id")

    unknown = set(changes) - _MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    values: dict = {}
    if "rating" in changes:
        values["rating"] = require_rating(changes["rating"])
    if "comment" in changes:
        values["comment"] = _clean_comment(changes["comment"])

    async with transaction(db):
        review = await _fetch_review(db, review_id)
        if review is None:
            raise NotFoundError("Review not found")

        for field, value in values.items():
            setattr(review, field, value)

        await db.flush()
        data = _review_to_dict(review)

    logger.info("Review %s updated (%s)", review_id, ", ".join(sorted(values)) or "no changes")
    return data


async def delete_review(db: AsyncSession, review_id: int) -> None:
    """Delete a review; ``NotFoundError`` when no row was affected."""
    review_id = require_id(review_id, "review_id")

    async with transaction(db):
        result = await db.execute(delete(Review).where(Review.id == review_id))
        if result.rowcount == 0:
            raise NotFoundError("Review not found")

    logger.info("Review %s deleted", review_id)


async def list_reviews_by_product(db: AsyncSession, product_id: int) -> list[dict]:
    """Return the reviews for *product_id*, newest first, with display names."""
    product_id = require_id(product_id, "product_id")
    q = (
        select(Review)
        .where(Review.product_id == product_id)
        .options(joinedload(Review.consumer), joinedload(Review.product))
        .order_by(*_NEWEST_FIRST)
        # noload relationships on instances already in the session would
        # otherwise be left as None.
        .execution_options(populate_existing=True)
    )
    with store_errors():
        result = await db.execute(q)
        return [_review_with_names_to_dict(r) for r in result.unique().scalars().all()]


async def average_rating(db: AsyncSession, product_id: int) -> dict:
    """
    Return ``{"average": float, "count": int}`` for *product_id*.

    The mean is rounded to ``settings.RATING_DECIMALS`` places; a product
    with no reviews yields ``{"average": 0.0, "count": 0}``.
    """
    product_id = require_id(product_id, "product_id")
    q = select(
        func.coalesce(func.avg(Review.rating), 0),
        func.count(Review.id),
    ).where(Review.product_id == product_id)

    with store_errors():
        average, count = (await db.execute(q)).one()

    return {
        "average": round(float(average), settings.RATING_DECIMALS),
        "count": int(count),
    }


async def resolve_producer(db: AsyncSession, product_id: int) -> int:
    """Return the producer who owns *product_id*."""
    product_id = require_id(product_id, "product_id")
    with store_errors():
        producer_id = (
            await db.execute(select(Product.producer_id).where(Product.id == product_id))
        ).scalar_one_or_none()
    if producer_id is None:
        raise NotFoundError("Product not found")
    return producer_id
