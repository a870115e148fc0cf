"""
Menu structuring with Google Gemini.

Turns scraped free text into a categorized menu, either in one call or as a
stream of MenuChunk values emitted as soon as each piece of the model's JSON
output is complete. Get a free Gemini API key at
https://makersuite.google.com/app/apikey
"""
import inspect
import json
import logging
import os
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import google.generativeai as genai
from dotenv import load_dotenv
from pydantic import ValidationError

from .models import DIETARY_TAGS, MenuChunk, MenuItem, StructuredMenu

load_dotenv()

logger = logging.getLogger(__name__)

PLACEHOLDER_TEXT = "No text content available."

MODEL_NAMES = [
    'gemini-1.5-flash',
    'gemini-1.5-flash-latest',
    'gemini-1.5-pro',
]

CUISINES = [
    "Italian", "Japanese", "Mexican", "American", "Indian", "Chinese", "French", "Korean",
    "Mediterranean", "Thai", "Vietnamese", "Spanish", "Pakistani", "Persian", "Greek", "Turkish",
    "Lebanese", "Middle Eastern", "Ethiopian", "Moroccan", "Brazilian", "Caribbean", "African",
    "Fusion", "International",
]

SYSTEM_INSTRUCTION = (
    "You are a professional menu extraction expert. Extract menu items and write compelling "
    "descriptions. Ensure proper capitalization and grammar. Respond with JSON only."
)

MENU_PROMPT = """Extract menu items and restaurant information from the following content. Be concise.

Restaurant: {restaurant_name}
Sources: {sources}

Text Content:
{content}

Return a JSON object with exactly these keys, in this order:
{{"description": string, "cuisine": string, "tags": [string], "categories": [string],
  "items": [{{"name": string, "description": string|null, "price": string|null, "category": string|null, "tags": [string]}}]}}

Rules for Menu Items:
- Extract only food and drink items with their full details
- For each item, include the name, description (if any text describes the item), and price
- Descriptions may appear on the same line or nearby lines - capture any descriptive text about each menu item
- Include prices if available (keep currency symbols like $)
- Group items by category if possible; every item category must appear in "categories"
- If a field is not available, use null (not empty string)
- If no clear menu is found, return an empty items array
- Do not make up items - only extract what you see in the text
- Keep the category structure the same as it appears on the restaurant's website
- Sections marked like "=== LUNCH ===" are menu categories

Deduplication Rules:
- Remove duplicate menu items - items are duplicates if they have very similar names and the same price
- When deduplicating, keep the version with the more descriptive/complete name
- Items with different prices are NOT duplicates even if names are similar

Rules for Restaurant Description:
- Write a concise, appealing 2-3 sentence description of the restaurant
- Include cuisine type, specialties, and what makes it unique
- Base it ONLY on information found in the content; if there is none, describe the menu items and restaurant name

Rules for Cuisine Type:
- Identify the PRIMARY cuisine type from this list: {cuisines}
- Return ONLY ONE cuisine type; if unclear, infer from the menu items

Rules for Tags:
- Restaurant and item tags may only use: {tags}
- Only include a tag when there is clear evidence in the menu or description; otherwise use an empty array

Formatting Rules:
- Capitalize item and category names using title case (e.g., "Chicken Caesar Salad", "Main Courses")
- Fix grammar errors in descriptions and keep abbreviations in proper case (e.g., "BBQ")
- Preserve brand names in their proper capitalization"""

BOILERPLATE_PATTERNS = [
    re.compile(r'privacy policy[^\n]*', re.IGNORECASE),
    re.compile(r'terms of service[^\n]*', re.IGNORECASE),
    re.compile(r'terms & conditions[^\n]*', re.IGNORECASE),
    re.compile(r'cookie policy[^\n]*', re.IGNORECASE),
    re.compile(r'all rights reserved[^\n]*', re.IGNORECASE),
]

ChunkCallback = Callable[[MenuChunk], Union[None, Awaitable[None]]]


class MenuParserError(Exception):
    """The model call failed or returned something that is not a menu"""


def preprocess_menu_content(content: str) -> str:
    """Strip boilerplate, URLs and decorative runs while keeping one menu line per line"""
    for pattern in BOILERPLATE_PATTERNS:
        content = pattern.sub('', content)
    content = re.sub(r'https?://\S+', '', content)
    content = re.sub(r'[ \t]+', ' ', content)
    content = re.sub(r'([=\-_*])\1{4,}', '', content)
    content = re.sub(r'\n\s*\n+', '\n', content)
    lines = (line.strip() for line in content.split('\n'))
    return '\n'.join(line for line in lines if line).strip()


def is_placeholder(text: Optional[str]) -> bool:
    return not text or not text.strip() or text.strip() == PLACEHOLDER_TEXT


def build_prompt(content: str, restaurant_name: str, has_website_content: bool) -> str:
    sources = "restaurant website and Google Maps" if has_website_content else "Google Maps"
    return MENU_PROMPT.format(
        restaurant_name=restaurant_name,
        sources=sources,
        content=content,
        cuisines=", ".join(CUISINES),
        tags=", ".join(DIETARY_TAGS),
    )


def clean_json_response(text: str) -> str:
    """Clean AI response to extract valid JSON"""
    text = text.strip()
    text = re.sub(r'^```json\s*', '', text)
    text = re.sub(r'^```\s*', '', text)
    text = re.sub(r'\s*```$', '', text)
    return text.strip()


def normalize_item(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None

    raw = dict(raw)
    price = raw.get('price')
    if isinstance(price, (int, float)) and not isinstance(price, bool):
        raw['price'] = str(int(price)) if float(price).is_integer() else str(price)
    if raw.get('tags') is None:
        raw['tags'] = []

    try:
        item = MenuItem.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Skipping malformed menu item {raw!r}: {e}")
        return None
    item.tags = [tag for tag in item.tags if tag in DIETARY_TAGS]
    return item.model_dump()


def structured_menu_from_dict(data: Any) -> StructuredMenu:
    if not isinstance(data, dict):
        raise MenuParserError(f"Expected a JSON object, got {type(data).__name__}")

    items = [item for item in (normalize_item(raw) for raw in data.get('items') or []) if item]
    categories = [c for c in data.get('categories') or [] if isinstance(c, str) and c]
    tags = [t for t in data.get('tags') or [] if t in DIETARY_TAGS]

    return StructuredMenu(
        items=items,
        categories=categories,
        description=data.get('description') or None,
        cuisine=data.get('cuisine') or None,
        tags=tags,
    )


class IncrementalMenuDecoder:
    """
    Decode a streamed JSON menu object into MenuChunk values.

    Each ``feed`` appends the delta and re-reads the longest prefix that can
    be closed into valid JSON. Only values known to be complete are emitted:
    a top-level key is complete once another key follows it, and list
    elements are complete once the list has moved past them. Every value is
    emitted once. ``finish`` parses the whole text and flushes the rest.
    """

    def __init__(self):
        self.buffer = ""
        self._start: Optional[int] = None
        self._pos = 0
        self._in_string = False
        self._escaped = False
        self._stack: List[str] = []
        self._cut: Optional[Tuple[int, Tuple[str, ...]]] = None

        self.sent_description = False
        self.sent_cuisine = False
        self.sent_tags = False
        self.sent_categories = 0
        self.sent_items = 0

    def feed(self, delta: str) -> List[MenuChunk]:
        if not delta:
            return []
        self.buffer += delta
        self._scan()

        if self._cut is None:
            return []
        end, stack = self._cut
        closers = ''.join('}' if opener == '{' else ']' for opener in reversed(stack))
        try:
            data = json.loads(self.buffer[self._start:end] + closers)
        except json.JSONDecodeError:
            return []
        return self._emit(data, depth=len(stack))

    def finish(self) -> List[MenuChunk]:
        text = clean_json_response(self.buffer)
        if not text:
            raise MenuParserError("Model returned no content")
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise MenuParserError(f"Model returned malformed JSON: {e}") from e
        if not isinstance(data, dict):
            raise MenuParserError(f"Expected a JSON object, got {type(data).__name__}")
        return self._emit(data, depth=0)

    def _scan(self):
        """Advance the lexer, remembering the last position a valid prefix can end at"""
        text = self.buffer
        if self._start is None:
            start = text.find('{')
            if start == -1:
                return
            self._start = self._pos = start

        for i in range(self._pos, len(text)):
            ch = text[i]
            if self._in_string:
                if self._escaped:
                    self._escaped = False
                elif ch == '\\':
                    self._escaped = True
                elif ch == '"':
                    self._in_string = False
            elif ch == '"':
                self._in_string = True
            elif ch in '{[':
                self._stack.append(ch)
                self._cut = (i + 1, tuple(self._stack))
            elif ch in '}]':
                if self._stack:
                    self._stack.pop()
            elif ch == ',' and self._stack:
                self._cut = (i, tuple(self._stack))
        self._pos = len(text)

    def _emit(self, data: Any, depth: int) -> List[MenuChunk]:
        if not isinstance(data, dict):
            return []

        # At depth 1 the prefix ended right after a complete top-level value
        keys = list(data.keys())
        open_key = keys[-1] if keys and depth > 1 else None

        def complete(key: str) -> bool:
            return key in data and key != open_key

        chunks: List[MenuChunk] = []

        if not self.sent_description and complete('description') and data['description']:
            self.sent_description = True
            chunks.append(MenuChunk.description(data['description']))

        if not self.sent_cuisine and complete('cuisine') and data['cuisine']:
            self.sent_cuisine = True
            chunks.append(MenuChunk.cuisine(data['cuisine']))

        if not self.sent_tags and complete('tags') and isinstance(data['tags'], list):
            tags = [tag for tag in data['tags'] if tag in DIETARY_TAGS]
            if tags:
                self.sent_tags = True
                chunks.append(MenuChunk.tags(tags))

        categories = self._finished_elements(data, 'categories', open_key, depth)
        for name in categories[self.sent_categories:]:
            if isinstance(name, str) and name:
                chunks.append(MenuChunk.category(name))
        self.sent_categories = max(self.sent_categories, len(categories))

        items = self._finished_elements(data, 'items', open_key, depth)
        for raw in items[self.sent_items:]:
            item = normalize_item(raw)
            if item:
                chunks.append(MenuChunk.item(item))
        self.sent_items = max(self.sent_items, len(items))

        return chunks

    @staticmethod
    def _finished_elements(data: Dict[str, Any], key: str, open_key: Optional[str], depth: int) -> list:
        values = data.get(key)
        if not isinstance(values, list):
            return []
        if key == open_key and depth > 2:
            return values[:-1]
        return values


async def _deliver(on_chunk: ChunkCallback, chunk: MenuChunk):
    result = on_chunk(chunk)
    if inspect.isawaitable(result):
        await result


def _response_text(response) -> str:
    try:
        return response.text or ""
    except ValueError:
        # Raised by the SDK when a candidate has no text parts (e.g. blocked)
        return ""


class MenuParser:
    """Gemini-backed menu structuring, single-shot or streamed"""

    def __init__(self, api_key: Optional[str] = None, model_names: Optional[List[str]] = None):
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        if not self.api_key:
            raise ValueError(
                "Gemini API key not found in environment.\n"
                "Please set GEMINI_API_KEY (get a free key at https://makersuite.google.com/app/apikey)."
            )

        genai.configure(api_key=self.api_key)
        self.model = None
        self.model_name = None

        for model_name in model_names or MODEL_NAMES:
            try:
                self.model = genai.GenerativeModel(
                    model_name,
                    system_instruction=SYSTEM_INSTRUCTION,
                    generation_config={
                        "response_mime_type": "application/json",
                        "temperature": 0.2,
                    },
                )
                self.model_name = model_name
                logger.info(f"Menu parser initialized with Google Gemini ({model_name})")
                break
            except Exception as model_error:
                logger.debug(f"Failed to initialize model {model_name}: {model_error}")

        if self.model is None:
            raise ValueError(f"None of the Gemini models could be initialized: {', '.join(model_names or MODEL_NAMES)}")

    async def parse(self, text: str, restaurant_name: str, has_website_content: bool = False) -> StructuredMenu:
        """
        Structure menu text in one call. The placeholder text (or no text)
        returns an empty menu without calling the model.
        """
        if is_placeholder(text):
            logger.info("No menu content, skipping model call")
            return StructuredMenu()

        content = preprocess_menu_content(text)
        logger.info(f"Parsing menu for {restaurant_name}: {len(text)} chars, "
                    f"{len(content)} after preprocessing, website content: {has_website_content}")

        try:
            response = await self.model.generate_content_async(
                build_prompt(content, restaurant_name, has_website_content)
            )
        except Exception as e:
            raise MenuParserError(f"Menu structuring failed: {e}") from e

        result_text = clean_json_response(_response_text(response))
        try:
            data = json.loads(result_text)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse model JSON: {result_text[:500]}")
            raise MenuParserError(f"Model returned malformed JSON: {e}") from e

        menu = structured_menu_from_dict(data)
        logger.info(f"Parsed {len(menu.items)} items across {len(menu.categories)} categories")
        return menu

    async def parse_stream(
        self,
        text: str,
        restaurant_name: str,
        has_website_content: bool,
        on_chunk: ChunkCallback,
    ) -> IncrementalMenuDecoder:
        """
        Structure menu text with a streamed model call, invoking ``on_chunk``
        (sync or async) for each completed piece. Returns once the model is
        done and every chunk has been delivered.
        """
        decoder = IncrementalMenuDecoder()
        if is_placeholder(text):
            logger.info("No menu content, skipping model call")
            return decoder

        content = preprocess_menu_content(text)
        logger.info(f"Streaming menu parse for {restaurant_name} ({len(content)} chars)")

        try:
            response = await self.model.generate_content_async(
                build_prompt(content, restaurant_name, has_website_content),
                stream=True,
            )
            async for part in response:
                for chunk in decoder.feed(_response_text(part)):
                    await _deliver(on_chunk, chunk)
        except MenuParserError:
            raise
        except Exception as e:
            raise MenuParserError(f"Menu structuring failed: {e}") from e

        for chunk in decoder.finish():
            await _deliver(on_chunk, chunk)

        logger.info(f"Streamed {decoder.sent_items} items across {decoder.sent_categories} categories")
        return decoder
