import asyncio

import httpx

from menu_scraper import website
from menu_scraper.branding import (
    EXTRACT_COLORS_JS,
    EXTRACT_LOGO_JS,
    extract_colors,
    extract_logo,
    normalize_hex,
)
from menu_scraper.config import ScraperConfig
from menu_scraper.website import WebsiteMenuScraper

from conftest import FakeSession, session_factory


MENU_HTML = """
<html><head>
  <meta name="theme-color" content="#c0392b">
  <style>:root { --brand-secondary: #2c3e50; } a { color: #e67e22; }</style>
</head><body>
  <header><img class="site-logo" src="/img/logo.png"></header>
  <div class="menu">
    <h3>Breakfast</h3>
    <p>Buttermilk Pancakes - short stack with maple syrup and whipped butter $9</p>
    <p>Eggs Benedict - poached eggs, ham, hollandaise on an english muffin $14</p>
  </div>
</body></html>
"""

SPA_SHELL = '<html><body><div id="root"></div><a href="/menu">Menu</a></body></html>'


def client_for(pages):
    def handler(request):
        status, body = pages.get(str(request.url), (404, ""))
        return httpx.Response(status, text=body)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def run_scraper(pages, session=None, **config):
    async def run():
        async with client_for(pages) as client:
            scraper = WebsiteMenuScraper(
                ScraperConfig(**config),
                session_factory=session_factory(session or FakeSession()),
                client=client,
            )
            return await scraper.scrape("https://acme-diner.com/")

    return asyncio.run(run())


def test_static_path_returns_text_logo_and_colors_without_browser():
    session = FakeSession()
    result = run_scraper({"https://acme-diner.com/": (200, MENU_HTML)}, session)

    assert "Buttermilk Pancakes" in result.text
    assert result.logo == "https://acme-diner.com/img/logo.png"
    assert result.colors.primary == "#C0392B"
    assert result.colors.secondary == "#2C3E50"
    assert result.colors.accent == "#E67E22"
    assert not session.entered


def test_browser_path_used_when_static_text_is_too_short():
    rendered = MENU_HTML.replace(
        '<header><img class="site-logo" src="/img/logo.png"></header>',
        '<nav><a href="/menu">Menu</a></nav>',
    )
    session = FakeSession({
        EXTRACT_LOGO_JS: "https://cdn.acme-diner.com/logo.svg",
        EXTRACT_COLORS_JS: {"primary": "#112233"},
    }, html=rendered)

    result = run_scraper({"https://acme-diner.com/": (200, SPA_SHELL)}, session)

    assert session.entered and session.closed
    assert session.navigations[0] == "https://acme-diner.com/"
    assert "https://acme-diner.com/menu" in session.navigations
    assert "Eggs Benedict" in result.text
    assert result.logo == "https://cdn.acme-diner.com/logo.svg"
    assert result.colors.primary == "#112233"
    assert result.menu_url == "https://acme-diner.com/menu"


def test_browser_path_clicks_menu_button_when_no_link():
    session = FakeSession({website.CLICK_MENU_BUTTON_JS: True}, html=MENU_HTML)

    result = run_scraper({"https://acme-diner.com/": (200, "<html><body></body></html>")}, session)

    assert any(script == website.CLICK_MENU_BUTTON_JS for script, _ in session.evaluations)
    assert "Buttermilk Pancakes" in result.text


def test_returns_none_when_rendered_text_stays_short():
    session = FakeSession(html="<html><body><p>Coming soon</p></body></html>")

    assert run_scraper({}, session) is None


def test_browser_crash_returns_none():
    session = FakeSession(fail_on="navigate")

    assert run_scraper({}, session) is None
    assert session.closed


def test_normalize_hex_filters_near_white_and_black():
    assert normalize_hex("#abc") == "#AABBCC"
    assert normalize_hex("#FFFFFF") is None
    assert normalize_hex("#050505") is None
    assert normalize_hex("red") is None


def test_extract_logo_falls_back_to_icons():
    html = '<html><head><link rel="icon" href="/favicon.ico"></head><body></body></html>'
    assert extract_logo(html, "https://example.com/") == "https://example.com/favicon.ico"


def test_extract_colors_none_without_signals():
    assert extract_colors("<html><body><p>Plain</p></body></html>") is None
