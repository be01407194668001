"""
Orderboard — Menu item model

[CONFIG DATA] — catalog items in the `menu` collection, edited by staff.
Options are a per-item tagged mapping: option key -> ordered allowed values.
"""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNCATEGORIZED = "Uncategorized"

# Option keys a staff member can attach to an item from the editor.
AVAILABLE_OPTION_KEYS: tuple[str, ...] = ("beans", "flavor", "milk", "sweetness", "temperature")


class MenuItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str | None = None
    category: str = ""
    name: str = ""
    price: float = Field(0.0, ge=0)
    options: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("price", mode="before")
    @classmethod
    def _parse_price(cls, value: Any) -> Any:
        # Stored prices may arrive as strings from older editors.
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                return 0.0
        return value

    @field_validator("options")
    @classmethod
    def _drop_empty_keys(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        return {key: list(values) for key, values in value.items() if values}

    def has_option(self, key: str) -> bool:
        return key in self.options

    def allows(self, key: str, value: str) -> bool:
        return value in self.options.get(key, ())

    @classmethod
    def from_document(cls, key: str, fields: dict[str, Any]) -> "MenuItem":
        return cls.model_validate({**fields, "id": key})

    def to_fields(self) -> dict[str, Any]:
        return self.model_dump(exclude={"id"}, mode="json")


# ── Option schema editing ─────────────────────────────────────────────────────
# Pure helpers; each returns a new options mapping and never mutates its input.

def add_option_value(options: dict[str, list[str]], key: str, value: str) -> dict[str, list[str]]:
    updated = {k: list(v) for k, v in options.items()}
    updated.setdefault(key, []).append(value)
    return updated


def update_option_value(
    options: dict[str, list[str]], key: str, index: int, value: str
) -> dict[str, list[str]]:
    updated = {k: list(v) for k, v in options.items()}
    updated[key][index] = value
    return updated


def remove_option_value(options: dict[str, list[str]], key: str, index: int) -> dict[str, list[str]]:
    """Remove one value; a key left without values disappears entirely."""
    updated = {k: list(v) for k, v in options.items()}
    values = [v for i, v in enumerate(updated[key]) if i != index]
    if values:
        updated[key] = values
    else:
        del updated[key]
    return updated


def unused_option_keys(options: dict[str, list[str]]) -> list[str]:
    return [key for key in AVAILABLE_OPTION_KEYS if key not in options]


def default_option_value(key: str) -> str:
    return "Hot" if key == "temperature" else "Standard"


def menu_by_category(items: list[MenuItem]) -> dict[str, list[MenuItem]]:
    """Group items by category, preserving the order items were given in."""
    grouped: dict[str, list[MenuItem]] = {}
    for item in items:
        grouped.setdefault(item.category or UNCATEGORIZED, []).append(item)
    return grouped
