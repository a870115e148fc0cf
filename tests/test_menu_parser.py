import asyncio
import json

import pytest

from menu_api import menu_parser
from menu_api.menu_parser import (
    IncrementalMenuDecoder,
    MenuParser,
    MenuParserError,
    PLACEHOLDER_TEXT,
    preprocess_menu_content,
)


MENU_JSON = json.dumps({
    "description": "A neighborhood diner serving classic American breakfasts.",
    "cuisine": "American",
    "tags": ["vegetarian"],
    "categories": ["Breakfast", "Lunch"],
    "items": [
        {"name": "Buttermilk Pancakes", "description": "Maple syrup", "price": "$9",
         "category": "Breakfast", "tags": ["vegetarian"]},
        {"name": "Club Sandwich", "description": None, "price": "$13", "category": "Lunch", "tags": []},
        {"name": "Tomato Soup", "description": "With basil", "price": "$7", "category": "Lunch",
         "tags": ["vegetarian", "spicy"]},
    ],
})


def feed_in_pieces(decoder, text, size):
    chunks = []
    for i in range(0, len(text), size):
        chunks.extend(decoder.feed(text[i:i + size]))
    chunks.extend(decoder.finish())
    return chunks


@pytest.mark.parametrize("size", [1, 7, 64, len(MENU_JSON)])
def test_decoder_emits_every_value_once(size):
    chunks = feed_in_pieces(IncrementalMenuDecoder(), MENU_JSON, size)

    kinds = [c.type for c in chunks]
    assert kinds.count("description") == 1
    assert kinds.count("cuisine") == 1
    assert kinds.count("tags") == 1
    assert [c.data["categoryName"] for c in chunks if c.type == "category"] == ["Breakfast", "Lunch"]
    assert [c.data["item"]["name"] for c in chunks if c.type == "item"] == [
        "Buttermilk Pancakes", "Club Sandwich", "Tomato Soup",
    ]


def test_decoder_emits_items_before_stream_ends():
    decoder = IncrementalMenuDecoder()
    cut = MENU_JSON.index('{"name": "Tomato Soup"')

    early = decoder.feed(MENU_JSON[:cut])

    assert [c.data["item"]["name"] for c in early if c.type == "item"] == ["Buttermilk Pancakes", "Club Sandwich"]
    assert [c.type for c in early][:3] == ["description", "cuisine", "tags"]


def test_decoder_holds_back_value_still_being_written():
    decoder = IncrementalMenuDecoder()

    chunks = decoder.feed('{"description": "A cozy spot", "cuisine": "Ita')

    assert [c.type for c in chunks] == ["description"]


def test_decoder_ignores_braces_inside_strings():
    decoder = IncrementalMenuDecoder()
    text = '{"description": "Open {daily}, [mostly]", "cuisine": "Thai", "tags": [], "categories": [], "items": []}'

    chunks = feed_in_pieces(decoder, text, 5)

    assert chunks[0].data["description"] == "Open {daily}, [mostly]"
    assert [c.type for c in chunks] == ["description", "cuisine"]


def test_decoder_filters_unknown_item_tags():
    chunks = feed_in_pieces(IncrementalMenuDecoder(), MENU_JSON, 16)
    soup = [c for c in chunks if c.type == "item" and c.data["item"]["name"] == "Tomato Soup"][0]

    assert soup.data["item"]["tags"] == ["vegetarian"]


@pytest.mark.parametrize("price, expected", [(12.5, "12.5"), (14, "14"), (9.0, "9"), ("$12", "$12")])
def test_normalize_item_keeps_numeric_prices(price, expected):
    item = menu_parser.normalize_item({"name": "Burger", "price": price, "category": None, "tags": []})

    assert item["price"] == expected


def test_normalize_item_accepts_null_tags():
    item = menu_parser.normalize_item({"name": "Burger", "price": "$12", "description": None, "tags": None})

    assert item["tags"] == []


def test_decoder_keeps_items_with_numeric_price_and_null_tags():
    text = json.dumps({
        "description": None, "cuisine": "American", "tags": [], "categories": ["Mains"],
        "items": [
            {"name": "Burger", "description": None, "price": 12.5, "category": "Mains", "tags": None},
            {"name": "Fries", "description": None, "price": 4, "category": "Mains", "tags": []},
        ],
    })

    chunks = feed_in_pieces(IncrementalMenuDecoder(), text, 9)
    items = [c.data["item"] for c in chunks if c.type == "item"]

    assert [(i["name"], i["price"], i["tags"]) for i in items] == [("Burger", "12.5", []), ("Fries", "4", [])]


def test_decoder_rejects_malformed_output():
    decoder = IncrementalMenuDecoder()
    decoder.feed('{"description": "cut off')

    with pytest.raises(MenuParserError):
        decoder.finish()


def test_decoder_accepts_fenced_json():
    chunks = feed_in_pieces(IncrementalMenuDecoder(), "```json\n" + MENU_JSON + "\n```", 10)

    assert len([c for c in chunks if c.type == "item"]) == 3


def test_preprocess_strips_boilerplate_urls_and_decoration():
    text = (
        "Starters\n\n\n"
        "Garlic   Bread\t$6\n"
        "==========\n"
        "Visit https://example.com/order today\n"
        "Privacy Policy | Terms\n"
        "© 2024 Acme. All rights reserved.\n"
    )

    assert preprocess_menu_content(text) == "Starters\nGarlic Bread $6\nVisit today\n© 2024 Acme."


class DummyResponse:
    def __init__(self, text):
        self.text = text


class DummyStream:
    def __init__(self, parts):
        self.parts = parts

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for part in self.parts:
            yield DummyResponse(part)


class DummyModel:
    def __init__(self, text=MENU_JSON, parts=None, error=None):
        self.text = text
        self.parts = parts
        self.error = error
        self.prompts = []

    async def generate_content_async(self, prompt, stream=False):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        if stream:
            return DummyStream(self.parts)
        return DummyResponse(self.text)


@pytest.fixture
def parser(monkeypatch):
    monkeypatch.setattr(menu_parser.genai, "configure", lambda api_key: None)
    monkeypatch.setattr(menu_parser.genai, "GenerativeModel", lambda *args, **kwargs: DummyModel())
    return MenuParser(api_key="test-key")


def test_parser_requires_api_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    with pytest.raises(ValueError, match="GEMINI_API_KEY"):
        MenuParser()


def test_parse_placeholder_skips_model(parser):
    menu = asyncio.run(parser.parse(PLACEHOLDER_TEXT, "Acme Diner", False))

    assert menu.items == []
    assert parser.model.prompts == []


def test_parse_returns_structured_menu(parser):
    menu = asyncio.run(parser.parse("Pancakes $9\nClub Sandwich $13", "Acme Diner", True))

    assert [item.name for item in menu.items] == ["Buttermilk Pancakes", "Club Sandwich", "Tomato Soup"]
    assert menu.cuisine == "American"
    assert "Acme Diner" in parser.model.prompts[0]
    assert "restaurant website" in parser.model.prompts[0]


def test_parse_wraps_model_errors(parser):
    parser.model = DummyModel(error=RuntimeError("quota exceeded"))

    with pytest.raises(MenuParserError, match="quota exceeded"):
        asyncio.run(parser.parse("Pancakes $9", "Acme Diner", False))


def test_parse_stream_delivers_chunks_to_async_callback(parser):
    parts = [MENU_JSON[i:i + 40] for i in range(0, len(MENU_JSON), 40)]
    parser.model = DummyModel(parts=parts)
    received = []

    async def on_chunk(chunk):
        received.append(chunk)

    decoder = asyncio.run(parser.parse_stream("Pancakes $9", "Acme Diner", False, on_chunk))

    assert decoder.sent_items == 3
    assert len([c for c in received if c.type == "item"]) == 3


def test_parse_stream_placeholder_emits_nothing(parser):
    received = []

    asyncio.run(parser.parse_stream(PLACEHOLDER_TEXT, "Acme Diner", False, received.append))

    assert received == []
    assert parser.model.prompts == []


def test_parse_keeps_items_the_model_prices_as_numbers(parser):
    parser.model = DummyModel(text=json.dumps({
        "description": "Burgers.", "cuisine": "American", "tags": [], "categories": [],
        "items": [{"name": "Burger", "description": None, "price": 12.5, "category": None, "tags": None}],
    }))

    menu = asyncio.run(parser.parse("Burger 12.50", "Acme Diner", False))

    assert [(item.name, item.price, item.tags) for item in menu.items] == [("Burger", "12.5", [])]
