"""
Cart accumulator: option selection, ice separation, totals, pickup slots, order ids.
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from orderboard.core.errors import ValidationError
from orderboard.domain.cart import (
    ICE_SEPARATION,
    ORDER_ID_ALPHABET,
    Cart,
    ItemCustomizer,
    PickupSlot,
    build_line_item,
    default_selection,
    first_pickup_time,
    generate_order_id,
    offered_pickup_slot,
    pickup_slots,
)


def test_defaults_pick_first_value_of_each_option(menu_items):
    assert default_selection(menu_items["latte"]) == {
        "beans": "Dark",
        "flavor": "None",
        "milk": "Dairy",
        "sweetness": "100",
        "temperature": "Hot",
    }
    assert default_selection(menu_items["croissant"]) == {}


def test_iced_drink_offers_ice_separation(menu_items):
    customizer = ItemCustomizer(menu_items["latte"])
    assert not customizer.is_iced
    assert ICE_SEPARATION not in customizer.option_keys()

    customizer.choose("temperature", "Iced")
    assert customizer.is_iced
    assert customizer.selected[ICE_SEPARATION] == "No"
    assert ICE_SEPARATION in customizer.option_keys()


def test_leaving_iced_clears_ice_separation(menu_items):
    customizer = ItemCustomizer(menu_items["cappuccino"])
    customizer.choose("temperature", "Iced")
    customizer.choose(ICE_SEPARATION, "Yes")
    assert customizer.selected[ICE_SEPARATION] == "Yes"

    customizer.choose("temperature", "Hot")
    assert ICE_SEPARATION not in customizer.selected
    assert ICE_SEPARATION not in customizer.build_line_item().options


def test_ice_separation_rejected_for_hot_drink(menu_items):
    customizer = ItemCustomizer(menu_items["drip"])
    with pytest.raises(ValidationError):
        customizer.choose(ICE_SEPARATION, "Yes")


def test_selection_validated_against_item_schema(menu_items):
    customizer = ItemCustomizer(menu_items["espresso"])
    with pytest.raises(ValidationError):
        customizer.choose("milk", "Oat")          # espresso has no milk option
    with pytest.raises(ValidationError):
        customizer.choose("beans", "Green")       # not an allowed value
    customizer.choose("beans", "Light")
    assert customizer.selected["beans"] == "Light"


def test_build_line_item_applies_temperature_before_ice_choice(menu_items):
    line = build_line_item(menu_items["latte"], {ICE_SEPARATION: "Yes", "temperature": "Iced"})
    assert line.options["temperature"] == "Iced"
    assert line.options[ICE_SEPARATION] == "Yes"
    assert line.base_id == "latte"
    assert line.id.startswith("latte-")
    assert line.price == 5.2


def test_line_items_get_distinct_ids(menu_items):
    first = build_line_item(menu_items["croissant"])
    second = build_line_item(menu_items["croissant"])
    assert first.id != second.id


def test_cart_add_remove_and_exact_total(menu_items):
    cart = Cart()
    latte = cart.add(build_line_item(menu_items["latte"]))
    cart.add(build_line_item(menu_items["cappuccino"]))
    cart.add(build_line_item(menu_items["drip"]))
    assert cart.total == Decimal("12.80")

    cart.remove(latte.id)
    assert len(cart) == 2
    assert cart.total == Decimal("7.60")

    cart.clear()
    assert cart.is_empty
    assert cart.total == Decimal("0")


@pytest.mark.parametrize("now,expected", [
    (datetime(2024, 5, 17, 9, 0, 30), datetime(2024, 5, 17, 9, 15)),
    (datetime(2024, 5, 17, 9, 5), datetime(2024, 5, 17, 9, 30)),    # 9:15 on the boundary moves on
    (datetime(2024, 5, 17, 9, 21), datetime(2024, 5, 17, 9, 45)),
    (datetime(2024, 5, 17, 9, 40), datetime(2024, 5, 17, 10, 0)),
    (datetime(2024, 5, 17, 23, 52), datetime(2024, 5, 18, 0, 15)),
])
def test_first_pickup_time(now, expected):
    assert first_pickup_time(now) == expected


def test_pickup_slots_are_quarter_hours():
    slots = pickup_slots(datetime(2024, 5, 17, 9, 40), count=8)
    assert len(slots) == 8
    assert [s.label for s in slots[:3]] == ["10:00 AM", "10:15 AM", "10:30 AM"]
    assert slots[-1].label == "11:45 AM"
    assert all(s.at.minute in (0, 15, 30, 45) for s in slots)


def test_offered_slot_is_looked_up_among_generated_slots():
    now = datetime(2024, 5, 17, 9, 40, tzinfo=timezone.utc)
    assert offered_pickup_slot("10:00 AM", now) == PickupSlot.at_time(datetime(2024, 5, 17, 10, 0, tzinfo=timezone.utc))
    assert offered_pickup_slot(" 11:45 AM ", now).at == datetime(2024, 5, 17, 11, 45, tzinfo=timezone.utc)
    # Slot from a page rendered one step earlier, still ahead of now.
    assert offered_pickup_slot("09:45 AM", now).at == datetime(2024, 5, 17, 9, 45, tzinfo=timezone.utc)


@pytest.mark.parametrize("label", [
    "09:41 AM",     # one minute away
    "10:05 AM",     # not on a quarter hour
    "06:55 PM",
    "09:30 AM",     # already passed
    "12:00 PM",     # beyond the last offered slot
    "whenever",
])
def test_labels_outside_offered_slots_rejected(label):
    now = datetime(2024, 5, 17, 9, 40, tzinfo=timezone.utc)
    with pytest.raises(ValidationError):
        offered_pickup_slot(label, now)


def test_offered_slots_across_midnight():
    now = datetime(2024, 5, 17, 23, 52, tzinfo=timezone.utc)
    assert offered_pickup_slot("12:15 AM", now).at == datetime(2024, 5, 18, 0, 15, tzinfo=timezone.utc)
    assert offered_pickup_slot("12:00 AM", now).at == datetime(2024, 5, 18, 0, 0, tzinfo=timezone.utc)


def test_generate_order_id():
    order_id = generate_order_id()
    assert len(order_id) == 6
    assert set(order_id) <= set(ORDER_ID_ALPHABET)
    assert len(generate_order_id(10)) == 10
