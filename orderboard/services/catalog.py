"""
Orderboard — Catalog management (staff side)

[CONFIG DATA] — menu items preserved across resets; the initial menu below is
written only when the collection is empty on first start.
"""
import logging
from typing import Any

from pydantic import ValidationError as ModelValidationError

from orderboard.core.config import get_settings
from orderboard.core.errors import ValidationError
from orderboard.feed.base import SERVER_TIMESTAMP, ChangeFeedClient, Snapshot
from orderboard.models.menu import MenuItem

settings = get_settings()
logger = logging.getLogger(__name__)

_BEANS = ["Dark", "Medium-Dark", "Medium", "Medium-Light", "Light"]
_SWEETNESS = ["100", "50", "25"]
_TEMPERATURE = ["Hot", "Iced"]
_MILK = ["Dairy", "Oat", "Almond"]

INITIAL_MENU_ITEMS: list[dict[str, Any]] = [
    {"category": "Espresso Drinks", "id": "espresso", "name": "Espresso", "price": 3.00,
     "options": {"beans": _BEANS, "sweetness": _SWEETNESS, "temperature": _TEMPERATURE}},
    {"category": "Espresso Drinks", "id": "cappuccino", "name": "Cappuccino", "price": 4.80,
     "options": {"beans": _BEANS, "milk": _MILK, "sweetness": _SWEETNESS, "temperature": _TEMPERATURE}},
    {"category": "Espresso Drinks", "id": "latte", "name": "Latte", "price": 5.20,
     "options": {"beans": _BEANS, "flavor": ["None", "Vanilla", "Caramel", "Hazelnut"],
                 "milk": _MILK, "sweetness": _SWEETNESS, "temperature": _TEMPERATURE}},
    {"category": "Brewed Coffee", "id": "drip", "name": "Drip Coffee", "price": 2.80,
     "options": {"beans": _BEANS, "sweetness": _SWEETNESS, "temperature": _TEMPERATURE}},
    {"category": "Non-Coffee", "id": "chai_latte", "name": "Chai Latte", "price": 5.00,
     "options": {"milk": _MILK, "sweetness": _SWEETNESS, "temperature": _TEMPERATURE}},
    {"category": "Food/Pastries", "id": "croissant", "name": "Butter Croissant", "price": 3.50,
     "options": {}},
]


def menu_from_snapshot(snapshot: Snapshot) -> list[MenuItem]:
    items = []
    for doc in snapshot:
        try:
            items.append(MenuItem.from_document(doc.key, doc.fields))
        except ModelValidationError as exc:
            logger.warning("Skipping malformed menu item %s: %s", doc.key, exc.errors()[0]["msg"])
    return items


def validate_menu_item(data: dict[str, Any]) -> MenuItem:
    """Catalog writes need a name and a category; price must be non-negative."""
    try:
        item = MenuItem.model_validate(data)
    except ModelValidationError as exc:
        raise ValidationError(f"Invalid menu item: {exc.errors()[0]['msg']}") from None
    if not item.name.strip():
        raise ValidationError("Menu item name is required.")
    if not item.category.strip():
        raise ValidationError("Menu item category is required.")
    return item


class CatalogService:
    def __init__(self, feed: ChangeFeedClient, collection: str = settings.MENU_COLLECTION):
        self.feed = feed
        self.collection = collection

    async def list_items(self) -> list[MenuItem]:
        return menu_from_snapshot(await self.feed.get_snapshot(self.collection))

    async def save_item(self, data: dict[str, Any]) -> MenuItem:
        """Create when `id` is absent, otherwise update that item in place."""
        item = validate_menu_item(data)
        fields = item.to_fields()
        if item.id:
            await self.feed.update_fields(self.collection, item.id, fields)
            logger.info("Menu item %s updated", item.id)
            return item
        key = await self.feed.create_document(
            self.collection, {**fields, "createdAt": SERVER_TIMESTAMP}
        )
        logger.info("Menu item %s created", key)
        return item.model_copy(update={"id": key})

    async def delete_item(self, item_id: str) -> None:
        await self.feed.delete_document(self.collection, item_id)
        logger.info("Menu item %s deleted", item_id)

    async def seed_if_empty(self) -> int:
        snapshot = await self.feed.get_snapshot(self.collection)
        if len(snapshot):
            return 0
        for raw in INITIAL_MENU_ITEMS:
            item = validate_menu_item(raw)
            await self.feed.create_document(self.collection, item.to_fields(), key=item.id)
        logger.info("Seeded %d menu items into '%s'", len(INITIAL_MENU_ITEMS), self.collection)
        return len(INITIAL_MENU_ITEMS)
