import asyncio

import pytest

from menu_api.storage import Storage, StorageError, generate_slug


class DummyResult:
    def __init__(self, data):
        self.data = data


class DummyQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.filters = []
        self.rows = None

    def select(self, columns):
        self.db.selects.append((self.table, columns))
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def limit(self, count):
        return self

    def insert(self, rows):
        self.rows = rows
        return self

    def execute(self):
        if self.rows is not None:
            return DummyResult(self.db.insert(self.table, self.rows))
        matches = [row for row in self.db.tables.get(self.table, [])
                   if all(row.get(column) == value for column, value in self.filters)]
        return DummyResult(matches)


class DummySupabase:
    def __init__(self, tables=None, fail_table=None):
        self.tables = tables or {}
        self.fail_table = fail_table
        self.selects = []
        self.inserts = []
        self.next_id = 1

    def table(self, name):
        return DummyQuery(self, name)

    def insert(self, table, rows):
        if table == self.fail_table:
            return []
        created = []
        for row in rows if isinstance(rows, list) else [rows]:
            row = dict(row, id=self.next_id)
            self.next_id += 1
            self.inserts.append((table, row))
            self.tables.setdefault(table, []).append(row)
            created.append(row)
        return created


def test_generate_slug():
    assert generate_slug("Joe's Café & Bar!") == "joe-s-caf-bar"
    assert generate_slug("  Acme Diner  ") == "acme-diner"


def test_storage_requires_credentials(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_SERVICE_KEY", raising=False)

    with pytest.raises(ValueError, match="SUPABASE_SERVICE_KEY"):
        Storage()


def test_save_restaurant_groups_items_and_adds_fallback_category():
    db = DummySupabase()
    storage = Storage(client=db)
    menu = {
        "categories": ["Breakfast", "Lunch"],
        "items": [
            {"name": "Pancakes", "price": "$9", "category": "Breakfast"},
            {"name": "Club Sandwich", "price": "$13", "category": "Lunch"},
            {"name": "Mystery Special", "price": None, "category": "Specials"},
            {"name": "Coffee", "category": None},
        ],
    }

    saved = asyncio.run(storage.save_restaurant({"name": "Acme Diner", "slug": "acme-diner"}, menu))

    assert saved == {"id": 1, "slug": "acme-diner", "total_categories": 3, "total_items": 4}
    categories = {row["name"]: row for table, row in db.inserts if table == "Menu_Category"}
    assert [categories[name]["display_order"] for name in ("Breakfast", "Lunch", "Menu")] == [0, 1, 999]

    items = {row["name"]: row for table, row in db.inserts if table == "Menu_Item"}
    assert items["Pancakes"]["category_id"] == categories["Breakfast"]["id"]
    assert items["Mystery Special"]["category_id"] == categories["Menu"]["id"]
    assert items["Coffee"]["category_id"] == categories["Menu"]["id"]
    assert all(row["restaurant_id"] == 1 for row in items.values())


def test_save_restaurant_raises_when_insert_returns_nothing():
    storage = Storage(client=DummySupabase(fail_table="Restaurant"))

    with pytest.raises(StorageError):
        asyncio.run(storage.save_restaurant({"name": "Acme"}, {"categories": [], "items": []}))


def test_get_restaurant_sorts_categories():
    db = DummySupabase({"Restaurant": [{
        "id": 7,
        "slug": "acme-diner",
        "google_place_id": "P1",
        "Menu_Category": [
            {"name": "Menu", "display_order": 999},
            {"name": "Lunch", "display_order": 1},
            {"name": "Breakfast", "display_order": 0},
        ],
    }]})
    storage = Storage(client=db)

    restaurant = asyncio.run(storage.get_restaurant(slug="acme-diner"))

    assert [c["name"] for c in restaurant["Menu_Category"]] == ["Breakfast", "Lunch", "Menu"]
    assert asyncio.run(storage.get_restaurant(place_id="nope")) is None


def test_get_restaurant_by_place_id():
    db = DummySupabase({"Restaurant": [{"id": 7, "google_place_id": "P1"}]})
    storage = Storage(client=db)

    assert asyncio.run(storage.get_restaurant_by_place_id("P1"))["id"] == 7
    assert asyncio.run(storage.get_restaurant_by_place_id("P2")) is None
    assert "Menu_Category" in db.selects[0][1]
