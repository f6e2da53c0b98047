from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from marketplace.database import get_db
from marketplace.dependencies import Actor, require_roles
from marketplace.schemas import Envelope, WishlistAdd
from marketplace.services import wishlist_service

router = APIRouter(prefix="/api/v1/wishlist", tags=["wishlist"])

consumer = require_roles("consumer")

@router.get("", response_model=Envelope)
async def get_my_wishlist(actor: Actor = Depends(consumer), db: AsyncSession = Depends(get_db)):
    items = await wishlist_service.list_for_user(db, actor.id)
    return Envelope(message=f"{len(items)} product(s) in wishlist", data=items)

@router.post("", status_code=201, response_model=Envelope)
async def add_to_wishlist(
    data: WishlistAdd,
    actor: Actor = Depends(consumer),
    db: AsyncSession = Depends(get_db),
):
    entry = await wishlist_service.add(db, actor.id, data.product_id)
    return Envelope(message="Product added to wishlist", data=entry)

# Declared before "/{entry_id}" so "clear" is not parsed as an id.
@router.delete("/clear", response_model=Envelope)
async def clear_wishlist(actor: Actor = Depends(consumer), db: AsyncSession = Depends(get_db)):
    result = await wishlist_service.clear(db, actor.id)
    return Envelope(message=f"{result['removed_count']} product(s) removed from wishlist", data=result)

@router.delete("/product/{product_id}", response_model=Envelope)
async def remove_product(
    product_id: int,
    actor: Actor = Depends(consumer),
    db: AsyncSession = Depends(get_db),
):
    await wishlist_service.remove_by_product(db, product_id, actor.id)
    return Envelope(message="Product removed from wishlist")

@router.get("/product/{product_id}/contains", response_model=Envelope)
async def contains_product(
    product_id: int,
    actor: Actor = Depends(consumer),
    db: AsyncSession = Depends(get_db),
):
    present = await wishlist_service.contains(db, product_id, actor.id)
    return Envelope(message="Checked", data={"in_wishlist": present})

@router.delete("/{entry_id}", response_model=Envelope)
async def remove_entry(
    entry_id: int,
    actor: Actor = Depends(consumer),
    db: AsyncSession = Depends(get_db),
):
    await wishlist_service.remove(db, entry_id, actor.id)
    return Envelope(message="Product removed from wishlist")
