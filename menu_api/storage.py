from supabase import create_client, Client
from typing import Dict, Any, List, Optional
import os
import re
import logging
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

RESTAURANT_WITH_MENU = (
    'id, name, slug, logo_url, primary_colour, secondary_colour, accent_colour, '
    'Menu_Category(id, name, display_order, Menu_Item(id, name, description, price))'
)

FULL_RESTAURANT_WITH_MENU = (
    '*, Menu_Category(id, name, display_order, Menu_Item(id, name, description, price))'
)

UNCATEGORIZED_NAME = 'Menu'
UNCATEGORIZED_ORDER = 999


class StorageError(Exception):
    """A write to the database did not go through"""


def generate_slug(name: str) -> str:
    """URL slug: lowercase, runs of non-alphanumerics become one hyphen"""
    return re.sub(r'[^a-z0-9]+', '-', name.lower()).strip('-')


def sort_categories(restaurant: Dict[str, Any]) -> Dict[str, Any]:
    categories = restaurant.get('Menu_Category')
    if categories:
        categories.sort(key=lambda c: c.get('display_order') or 0)
    return restaurant


class Storage:
    def __init__(self, client: Optional[Client] = None):
        if client is not None:
            self.client = client
            return

        supabase_url = os.getenv("SUPABASE_URL")
        supabase_key = os.getenv("SUPABASE_SERVICE_KEY")

        if not supabase_url or not supabase_key:
            missing = []
            if not supabase_url:
                missing.append("SUPABASE_URL")
            if not supabase_key:
                missing.append("SUPABASE_SERVICE_KEY")

            error_msg = (
                f"Supabase credentials not found in environment.\n"
                f"Missing variables: {', '.join(missing)}\n\n"
                f"Please set the following environment variables:\n"
                f"  - SUPABASE_URL: Your Supabase project URL\n"
                f"  - SUPABASE_SERVICE_KEY: Your Supabase service role key (needed for writes)\n\n"
                f"Example .env file:\n"
                f"  SUPABASE_URL=https://your-project.supabase.co\n"
                f"  SUPABASE_SERVICE_KEY=your-service-key-here"
            )
            raise ValueError(error_msg)

        self.client: Client = create_client(supabase_url, supabase_key)
        logger.info("Successfully created Supabase client")

    async def get_restaurant_by_place_id(self, place_id: str) -> Optional[Dict[str, Any]]:
        """Existing restaurant with its categories and items, or None"""
        response = (
            self.client.table('Restaurant')
            .select(RESTAURANT_WITH_MENU)
            .eq('google_place_id', place_id)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    async def get_restaurant(self, place_id: Optional[str] = None, slug: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Full restaurant record by place id or slug, categories sorted by display order"""
        if not place_id and not slug:
            raise ValueError("placeId or slug is required")

        query = self.client.table('Restaurant').select(FULL_RESTAURANT_WITH_MENU)
        if place_id:
            query = query.eq('google_place_id', place_id)
        else:
            query = query.eq('slug', slug)

        response = query.limit(1).execute()
        if not response.data:
            return None
        return sort_categories(response.data[0])

    async def save_restaurant(self, restaurant: Dict[str, Any], menu: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a restaurant, its categories (in menu order) and its items.

        ``menu`` is ``{"categories": [name, ...], "items": [item, ...]}``. Items
        whose category is missing or unknown go under a trailing "Menu"
        category. Returns the new restaurant's ``id`` and ``slug`` with
        ``total_categories`` and ``total_items`` as stored.
        """
        response = self.client.table('Restaurant').insert(restaurant).execute()
        if not response.data:
            raise StorageError("Failed to create restaurant")
        created = response.data[0]
        restaurant_id = created['id']
        logger.info(f"Created restaurant {restaurant_id} ({created.get('slug')})")

        category_ids: Dict[str, Any] = {}
        for order, name in enumerate(menu.get('categories') or []):
            if name in category_ids:
                continue
            category_ids[name] = self._insert_category(restaurant_id, name, order)

        items: List[Dict[str, Any]] = menu.get('items') or []
        for name, category_id in category_ids.items():
            self._insert_items(restaurant_id, category_id, [i for i in items if i.get('category') == name])

        uncategorized = [i for i in items if i.get('category') not in category_ids]
        if uncategorized:
            category_id = self._insert_category(restaurant_id, UNCATEGORIZED_NAME, UNCATEGORIZED_ORDER)
            self._insert_items(restaurant_id, category_id, uncategorized)

        total_categories = len(category_ids) + (1 if uncategorized else 0)
        return {'id': restaurant_id, 'slug': created.get('slug'),
                'total_categories': total_categories, 'total_items': len(items)}

    def _insert_category(self, restaurant_id, name: str, display_order: int):
        response = self.client.table('Menu_Category').insert({
            'restaurant_id': restaurant_id,
            'name': name,
            'display_order': display_order,
        }).execute()
        if not response.data:
            raise StorageError(f"Failed to create category '{name}'")
        return response.data[0]['id']

    def _insert_items(self, restaurant_id, category_id, items: List[Dict[str, Any]]):
        if not items:
            return
        rows = [{
            'restaurant_id': restaurant_id,
            'category_id': category_id,
            'name': item.get('name') or 'Unknown Item',
            'description': item.get('description') or None,
            'price': item.get('price') or None,
        } for item in items]
        self.client.table('Menu_Item').insert(rows).execute()
