from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from marketplace.database import get_db, store_errors
from marketplace.dependencies import Actor, require_roles
from marketplace.models import Notification, Review, WishlistEntry
from marketplace.schemas import MetricsResponse

router = APIRouter(prefix="/api/v1/metrics", tags=["metrics"])

@router.get("", response_model=MetricsResponse)
async def get_metrics(
    actor: Actor = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    with store_errors():
        total_reviews = (await db.execute(select(func.count()).select_from(Review))).scalar_one()

        total_notifications = (
            await db.execute(select(func.count()).select_from(Notification))
        ).scalar_one()

        unread = (
            await db.execute(
                select(func.count()).select_from(Notification).where(Notification.is_read == False)  # noqa: E712
            )
        ).scalar_one()

        total_wishlist = (await db.execute(select(func.count()).select_from(WishlistEntry))).scalar_one()

        avg_rating = (await db.execute(select(func.coalesce(func.avg(Review.rating), 0)))).scalar_one()

    return MetricsResponse(
        total_reviews=total_reviews,
        total_notifications=total_notifications,
        unread_notifications=unread,
        total_wishlist_entries=total_wishlist,
        avg_rating=round(float(avg_rating), 2),
    )
