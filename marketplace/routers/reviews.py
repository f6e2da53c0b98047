from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from marketplace.database import get_db
from marketplace.dependencies import Actor, require_roles
from marketplace.schemas import Envelope, RatingSummary, ReviewCreate, ReviewResponse, ReviewUpdate
from marketplace.services import review_service

router = APIRouter(prefix="/api/v1/reviews", tags=["reviews"])

@router.get("", response_model=Envelope)
async def list_reviews(
    actor: Actor = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    reviews = await review_service.list_reviews(db)
    return Envelope(message=f"{len(reviews)} review(s) found", data=reviews)

@router.get("/product/{product_id}", response_model=Envelope)
async def list_product_reviews(product_id: int, db: AsyncSession = Depends(get_db)):
    reviews = await review_service.list_reviews_by_product(db, product_id)
    return Envelope(message=f"{len(reviews)} review(s) found", data=reviews)

@router.get("/product/{product_id}/rating", response_model=Envelope)
async def get_product_rating(product_id: int, db: AsyncSession = Depends(get_db)):
    summary = await review_service.average_rating(db, product_id)
    return Envelope(message="Rating computed", data=RatingSummary(**summary))

@router.post("", status_code=201, response_model=Envelope)
async def create_review(
    data: ReviewCreate,
    actor: Actor = Depends(require_roles("consumer", "producer")),
    db: AsyncSession = Depends(get_db),
):
    producer_id = data.producer_id or await review_service.resolve_producer(db, data.product_id)
    review = await review_service.create_review(
        db,
        order_id=data.order_id,
        product_id=data.product_id,
        consumer_id=actor.id,
        producer_id=producer_id,
        rating=data.rating,
        comment=data.comment,
    )
    return Envelope(message="Review created", data=ReviewResponse(**review))

@router.put("/{review_id}", response_model=Envelope)
async def update_review(
    review_id: int,
    data: ReviewUpdate,
    actor: Actor = Depends(require_roles("consumer", "producer")),
    db: AsyncSession = Depends(get_db),
):
    current = await review_service.get_review(db, review_id)
    if current["consumer_id"] != actor.id and not actor.is_admin:
        raise HTTPException(status_code=403, detail="Only the author can edit this review")
    review = await review_service.update_review(db, review_id, data.model_dump(exclude_unset=True))
    return Envelope(message="Review updated", data=ReviewResponse(**review))

@router.delete("/{review_id}", response_model=Envelope)
async def delete_review(
    review_id: int,
    actor: Actor = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    await review_service.delete_review(db, review_id)
    return Envelope(message="Review deleted")
