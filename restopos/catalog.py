"""Menu, category and restaurant settings maintenance (admin role).

Orders never reference these records live: lines carry their own snapshot,
so editing a price here leaves open orders untouched.
"""

from __future__ import annotations

from dataclasses import replace
from uuid import uuid4

from restopos.domain import ZERO, Category, MenuItem, money, parse_quantity
from restopos.effects import DeleteMenuItem, SaveCategory, SaveMenuItem, SaveSettings, Transition
from restopos.errors import ValidationError

MENU_FIELDS = (
    "name",
    "price",
    "category",
    "description",
    "preparation_time",
    "is_spicy",
    "is_vegetarian",
    "available",
)


def _category_names(state):
    return {c.name for c in state.categories}


def _clean(state, data: dict) -> dict:
    values = {k: data[k] for k in MENU_FIELDS if k in data}
    if "name" in values:
        values["name"] = (values["name"] or "").strip()
        if not values["name"]:
            raise ValidationError("name is required")
    if "price" in values:
        values["price"] = money(values["price"], "price")
        if values["price"] < ZERO:
            raise ValidationError("price cannot be negative")
    if "category" in values and values["category"] not in _category_names(state):
        raise ValidationError(f"unknown category {values['category']!r}")
    if "preparation_time" in values:
        values["preparation_time"] = parse_quantity(values["preparation_time"])
        if values["preparation_time"] < 0:
            raise ValidationError("preparation_time cannot be negative")
    for flag in ("is_spicy", "is_vegetarian", "available"):
        if flag in values:
            values[flag] = bool(values[flag])
    if "description" in values:
        values["description"] = values["description"] or ""
    return values


def add_category(state, name, order_index=None) -> Transition:
    name = (name or "").strip()
    if not name:
        raise ValidationError("category name is required")
    if name in _category_names(state):
        raise ValidationError(f"category {name!r} already exists")
    if order_index is None:
        order_index = len(state.categories)
    category = Category(id=uuid4().hex, name=name, order_index=parse_quantity(order_index))
    categories = tuple(sorted(state.categories + (category,), key=lambda c: c.order_index))
    return Transition(replace(state, categories=categories), (SaveCategory(category),), category)


def add_menu_item(state, data: dict) -> Transition:
    values = _clean(state, data)
    for required in ("name", "price", "category"):
        if required not in values:
            raise ValidationError(f"{required} is required")
    item = MenuItem(id=uuid4().hex, **values)
    new_state = replace(state, menu_items=state.menu_items + (item,))
    return Transition(new_state, (SaveMenuItem(item, created=True),), item)


def update_menu_item(state, item_id, data: dict) -> Transition:
    item = replace(state.menu_item(item_id), **_clean(state, data))
    menu_items = tuple(item if m.id == item_id else m for m in state.menu_items)
    return Transition(replace(state, menu_items=menu_items), (SaveMenuItem(item),), item)


def toggle_availability(state, item_id) -> Transition:
    item = state.menu_item(item_id)
    return update_menu_item(state, item_id, {"available": not item.available})


def delete_menu_item(state, item_id) -> Transition:
    item = state.menu_item(item_id)
    menu_items = tuple(m for m in state.menu_items if m.id != item_id)
    return Transition(replace(state, menu_items=menu_items), (DeleteMenuItem(item.id),), item)


SETTINGS_TEXT_FIELDS = ("restaurant_name", "restaurant_address", "restaurant_phone")


def update_settings(state, data: dict) -> Transition:
    fields = {k: str(data[k] or "").strip() for k in SETTINGS_TEXT_FIELDS if k in data}
    if "cash_initial_amount" in data:
        amount = money(data["cash_initial_amount"], "cash_initial_amount")
        if amount < ZERO:
            raise ValidationError("cash_initial_amount cannot be negative")
        fields["cash_initial_amount"] = amount
    settings = replace(state.settings, **fields)
    return Transition(replace(state, settings=settings), (SaveSettings(fields),), settings)
