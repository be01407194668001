"""
Orderboard — Menu API (catalog management)
"""
from fastapi import APIRouter, Depends, Query, status

from orderboard.api.deps import get_feed, require_staff
from orderboard.feed.base import ChangeFeedClient
from orderboard.models.menu import MenuItem, menu_by_category
from orderboard.schemas.order import MenuItemRequest
from orderboard.services.catalog import CatalogService

router = APIRouter(prefix="/menu", tags=["menu"])


@router.get("")
async def list_menu(
    grouped: bool = Query(False, description="Group items by category"),
    feed: ChangeFeedClient = Depends(get_feed),
):
    items = await CatalogService(feed).list_items()
    if grouped:
        return {
            category: [item.model_dump() for item in members]
            for category, members in menu_by_category(items).items()
        }
    return [item.model_dump() for item in items]


@router.post("", response_model=MenuItem, status_code=status.HTTP_201_CREATED)
async def create_menu_item(
    payload: MenuItemRequest,
    _staff: str = Depends(require_staff),
    feed: ChangeFeedClient = Depends(get_feed),
):
    return await CatalogService(feed).save_item(payload.model_dump())


@router.put("/{item_id}", response_model=MenuItem)
async def update_menu_item(
    item_id: str,
    payload: MenuItemRequest,
    _staff: str = Depends(require_staff),
    feed: ChangeFeedClient = Depends(get_feed),
):
    return await CatalogService(feed).save_item({**payload.model_dump(), "id": item_id})


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_menu_item(
    item_id: str,
    _staff: str = Depends(require_staff),
    feed: ChangeFeedClient = Depends(get_feed),
):
    await CatalogService(feed).delete_item(item_id)
