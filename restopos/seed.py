"""Load a starter chifa menu and six tables into an empty store."""

from restopos.app import create_app
from restopos.models import db

CATEGORIES = ["Entradas", "Arroces", "Tallarines", "Sopas", "Bebidas"]

MENU = [
    {"name": "Wantán Frito", "price": 12.00, "category": "Entradas", "preparation_time": 8},
    {"name": "Chaufa de Pollo", "price": 18.50, "category": "Arroces", "preparation_time": 12},
    {"name": "Chaufa Especial", "price": 24.00, "category": "Arroces", "preparation_time": 15},
    {"name": "Tallarín Saltado", "price": 22.00, "category": "Tallarines", "preparation_time": 14},
    {"name": "Kam Lu Wantán", "price": 26.00, "category": "Tallarines", "preparation_time": 18, "is_spicy": True},
    {"name": "Sopa Wantán", "price": 15.00, "category": "Sopas", "preparation_time": 10},
    {"name": "Verduras Saltadas", "price": 16.00, "category": "Entradas", "is_vegetarian": True},
    {"name": "Inca Kola 1L", "price": 7.00, "category": "Bebidas"},
]

TABLES = [(1, 4), (2, 4), (3, 2), (4, 6), (5, 4), (6, 8)]

app = create_app()
with app.app_context():
    db.create_all()
    pos = app.extensions["pos"]

    if not pos.state.categories:
        for name in CATEGORIES:
            pos.add_category(name)

    if not pos.state.menu_items:
        for item in MENU:
            pos.add_menu_item(item)

    if not pos.state.tables:
        for number, capacity in TABLES:
            pos.add_table(number, capacity)

    print(f"Seeded {len(pos.state.menu_items)} dishes and {len(pos.state.tables)} tables.")
