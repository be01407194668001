"""
Orderboard — Cart accumulator and checkout helpers (customer side)

Nothing here touches the store; CheckoutService turns a Cart into one order document.
"""
import secrets
import string
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from orderboard.core.errors import ValidationError
from orderboard.models.menu import MenuItem
from orderboard.models.order import LineItem

TEMPERATURE = "temperature"
ICED = "Iced"
ICE_SEPARATION = "ice_separation"
ICE_SEPARATION_VALUES: tuple[str, ...] = ("Yes", "No")
ICE_SEPARATION_DEFAULT = "No"

ORDER_ID_ALPHABET = string.digits + string.ascii_uppercase
PICKUP_LABEL_FORMAT = "%I:%M %p"


def default_selection(item: MenuItem) -> dict[str, str]:
    """First allowed value of every declared option."""
    return {key: values[0] for key, values in item.options.items() if values}


class ItemCustomizer:
    """Option selection for one menu item before it goes into the cart.

    The ice-separation choice exists only while the drink is iced; switching the
    temperature away from iced drops any stored ice-separation value.
    """

    def __init__(self, item: MenuItem):
        self.item = item
        self.selected = default_selection(item)
        self._sync_ice_separation()

    @property
    def offers_iced(self) -> bool:
        return self.item.allows(TEMPERATURE, ICED)

    @property
    def is_iced(self) -> bool:
        return self.offers_iced and self.selected.get(TEMPERATURE) == ICED

    def option_keys(self) -> list[str]:
        keys = list(self.item.options)
        if self.is_iced:
            keys.append(ICE_SEPARATION)
        return keys

    def choose(self, key: str, value: str) -> None:
        if key == ICE_SEPARATION:
            if not self.is_iced:
                raise ValidationError("Ice separation is only available for iced drinks.")
            if value not in ICE_SEPARATION_VALUES:
                raise ValidationError(f"'{value}' is not a valid ice separation choice.")
        elif not self.item.has_option(key):
            raise ValidationError(f"'{self.item.name}' has no option '{key}'.")
        elif not self.item.allows(key, value):
            raise ValidationError(f"'{value}' is not allowed for '{key}' on '{self.item.name}'.")
        self.selected[key] = value
        self._sync_ice_separation()

    def _sync_ice_separation(self) -> None:
        if self.is_iced:
            self.selected.setdefault(ICE_SEPARATION, ICE_SEPARATION_DEFAULT)
        else:
            self.selected.pop(ICE_SEPARATION, None)

    def build_line_item(self) -> LineItem:
        if not self.item.id:
            raise ValidationError(f"Menu item '{self.item.name}' has no id.")
        return LineItem(
            id=f"{self.item.id}-{uuid.uuid4().hex[:12]}",
            base_id=self.item.id,
            name=self.item.name,
            price=self.item.price,
            options=dict(self.selected),
        )


def build_line_item(item: MenuItem, choices: dict[str, str] | None = None) -> LineItem:
    """Defaults overlaid with `choices`, temperature applied first so that an
    ice-separation choice in the same mapping is judged against it."""
    customizer = ItemCustomizer(item)
    choices = dict(choices or {})
    if TEMPERATURE in choices:
        customizer.choose(TEMPERATURE, choices.pop(TEMPERATURE))
    for key, value in choices.items():
        customizer.choose(key, value)
    return customizer.build_line_item()


class Cart:
    def __init__(self):
        self.items: list[LineItem] = []

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def add(self, line: LineItem) -> LineItem:
        self.items.append(line)
        return line

    def remove(self, line_id: str) -> None:
        self.items = [line for line in self.items if line.id != line_id]

    def clear(self) -> None:
        self.items = []

    @property
    def total(self) -> Decimal:
        return sum((Decimal(str(line.price)) for line in self.items), Decimal("0"))


@dataclass(frozen=True)
class PickupSlot:
    at: datetime
    label: str

    @classmethod
    def at_time(cls, at: datetime) -> "PickupSlot":
        return cls(at, at.strftime(PICKUP_LABEL_FORMAT))


def first_pickup_time(now: datetime, lead_minutes: int = 10, step_minutes: int = 15) -> datetime:
    """`now + lead`, seconds dropped, moved up to the next step boundary.
    A time already on a boundary still advances to the following one."""
    start = (now + timedelta(minutes=lead_minutes)).replace(second=0, microsecond=0)
    boundary = (start.minute // step_minutes + 1) * step_minutes
    return start.replace(minute=0) + timedelta(minutes=boundary)


def pickup_slots(
    now: datetime, count: int = 8, lead_minutes: int = 10, step_minutes: int = 15
) -> list[PickupSlot]:
    first = first_pickup_time(now, lead_minutes, step_minutes)
    return [PickupSlot.at_time(first + timedelta(minutes=step_minutes * i)) for i in range(count)]


def offered_pickup_slot(
    label: str, now: datetime, count: int = 8, lead_minutes: int = 10, step_minutes: int = 15
) -> PickupSlot:
    """
    The slot a customer picked, looked up among the slots offered at `now`.
    A page rendered one step earlier may still submit its slots, as long as
    the time has not already passed.
    """
    wanted = label.strip()
    current = pickup_slots(now, count, lead_minutes, step_minutes)
    earlier = pickup_slots(now - timedelta(minutes=step_minutes), count, lead_minutes, step_minutes)
    for slot in current + [s for s in earlier if s.at >= now]:
        if slot.label == wanted:
            return slot
    raise ValidationError(f"'{label}' is not an available pickup time.")


def generate_order_id(length: int = 6) -> str:
    return "".join(secrets.choice(ORDER_ID_ALPHABET) for _ in range(length))
