"""
Google Maps place-page menu scraper.

Opens the place page in a headless browser, activates the Menu tab and any
category sub-tabs, scrolls the panel until lazy content stops loading and
concatenates the text of each category. Also surfaces an outbound menu/order
link, the business logo and a small color palette when the page exposes them.
"""
import logging
from typing import List, Optional
from urllib.parse import quote

from .config import ScraperConfig, GOOGLE_MAPS_PLACE_URL
from .fetch import BrowserSession, SessionFactory
from .shadow_dom import count_deep, query_deep_text, with_shadow_helpers
from .types import ColorPalette, ScrapeResult
from .scraper_logger import get_scraper_logger

logger = logging.getLogger(__name__)

TABLIST_SELECTOR = '[role="tablist"]'
MENU_PANEL_SELECTOR = '[role="main"]'


EXTRACT_MENU_LINK_JS = """
    () => {
        for (const link of Array.from(document.querySelectorAll('a'))) {
            const text = (link.textContent || '').toLowerCase().trim();
            const href = link.getAttribute('href') || '';
            const ariaLabel = (link.getAttribute('aria-label') || '').toLowerCase();

            const mentionsMenu = text.includes('menu') || text.includes('order') ||
                ariaLabel.includes('menu') || ariaLabel.includes('order');
            if (mentionsMenu && href && !href.includes('google.com/maps') && !href.startsWith('#')) {
                return link.href || href;
            }
        }
        return null;
    }
"""

EXTRACT_LOGO_JS = """
    () => {
        const isUiImage = (src, alt) => src.includes('/vt/') || src.includes('maps_api_') || alt.includes('map');

        for (const img of Array.from(document.querySelectorAll('img'))) {
            const src = img.src || '';
            const alt = (img.alt || '').toLowerCase();
            if (!src.includes('googleusercontent.com') && !src.includes('gstatic.com')) continue;

            const rect = img.getBoundingClientRect();
            if (rect.width >= 80 && rect.height >= 80 && rect.width <= 500 && rect.height <= 500 && !isUiImage(src, alt)) {
                return src;
            }
        }

        const sidePanel = document.querySelector('[role="main"]');
        if (!sidePanel) return null;

        let largest = null;
        let largestArea = 0;
        for (const img of Array.from(sidePanel.querySelectorAll('img'))) {
            const rect = img.getBoundingClientRect();
            const area = rect.width * rect.height;
            const src = img.src || '';
            if (area > largestArea && area >= 6400 && area <= 250000 &&
                    src.startsWith('http') && !isUiImage(src, '')) {
                largestArea = area;
                largest = src;
            }
        }
        return largest;
    }
"""

EXTRACT_COLORS_JS = """
    () => {
        const toHex = (color) => {
            if (!color || color === 'transparent' || color === 'inherit') return null;
            if (color.startsWith('#')) return color.length === 7 ? color.toUpperCase() : null;

            const match = color.match(/rgba?\\((\\d+),\\s*(\\d+),\\s*(\\d+)/);
            if (!match) return null;
            const [r, g, b] = [match[1], match[2], match[3]].map(Number);
            if (r > 240 && g > 240 && b > 240) return null;
            if (r < 15 && g < 15 && b < 15) return null;
            return '#' + [r, g, b].map(x => x.toString(16).padStart(2, '0')).join('').toUpperCase();
        };

        const bgCounts = new Map();
        const textCounts = new Map();
        const sidePanel = document.querySelector('[role="main"]');
        if (sidePanel) {
            for (const el of Array.from(sidePanel.querySelectorAll('*'))) {
                const style = window.getComputedStyle(el);
                const bg = toHex(style.backgroundColor);
                if (bg) bgCounts.set(bg, (bgCounts.get(bg) || 0) + 1);
                const fg = toHex(style.color);
                if (fg) textCounts.set(fg, (textCounts.get(fg) || 0) + 1);
            }
        }

        const ranked = (counts) => Array.from(counts.entries()).sort((a, b) => b[1] - a[1]).map(([c]) => c);
        const bgColors = ranked(bgCounts);
        const textColors = ranked(textCounts);

        const palette = {};
        if (bgColors.length > 0) palette.primary = bgColors[0];
        if (bgColors.length > 1) palette.background = bgColors[1];
        if (textColors.length > 0) palette.text = textColors[0];
        return palette;
    }
"""

EXTRACT_IMAGES_JS = """
    () => {
        const urls = [];
        for (const img of Array.from(document.querySelectorAll('img'))) {
            const src = img.src || '';
            if (src.includes('googleusercontent') && src.includes('=w')) {
                const highRes = src.split('=w')[0] + '=w800';
                if (!urls.includes(highRes)) urls.push(highRes);
            }
            if (urls.length >= 20) break;
        }
        return urls;
    }
"""

FIND_MENU_TAB_JS = with_shadow_helpers("""
    const tablists = querySelectorAllDeep('[role="tablist"]');
    const tabs = querySelectorAllDeep('[role="tab"]').filter(
        tab => tablists.length === 0 || tablists[0].contains(tab)
    );

    for (const tab of tabs) {
        const text = (tab.textContent || '').trim().toLowerCase();
        if (text === 'menu' || text.includes('menu')) {
            tab.click();
            return true;
        }
    }
    return false;
""")

GET_SUBTABS_JS = with_shadow_helpers("""
    const tablists = querySelectorAllDeep('[role="tablist"]');
    if (tablists.length < 2) return [];
    return Array.from(tablists[1].querySelectorAll('[role="tab"]'))
        .map(tab => (tab.textContent || '').trim())
        .filter(text => text.length > 0);
""")

CLICK_SUBTAB_JS = with_shadow_helpers("""
    const tablists = querySelectorAllDeep('[role="tablist"]');
    if (tablists.length < 2) return false;
    const tabs = Array.from(tablists[1].querySelectorAll('[role="tab"]'))
        .filter(tab => (tab.textContent || '').trim().length > 0);
    if (!tabs[index]) return false;
    tabs[index].click();
    return true;
""", params="index")

MARK_SCROLL_CONTAINER_JS = with_shadow_helpers("""
    const isScrollable = (el) => {
        const style = window.getComputedStyle(el);
        return ['auto', 'scroll'].includes(style.overflow) || ['auto', 'scroll'].includes(style.overflowY);
    };

    for (const old of querySelectorAllDeep('[data-menu-scroll]')) old.removeAttribute('data-menu-scroll');

    const panel = querySelectorDeep('[role="main"]');
    let container = null;

    for (let el = panel; el && el instanceof Element; el = el.parentElement) {
        if (isScrollable(el)) { container = el; break; }
    }

    if (!container && panel) {
        const candidates = Array.from(panel.querySelectorAll('*'))
            .filter(el => isScrollable(el) && el.scrollHeight > el.clientHeight)
            .sort((a, b) => b.scrollHeight - a.scrollHeight);
        container = candidates[0] || null;
    }

    if (!container) {
        for (const selector of ['[class*="scrollable"]', '[style*="overflow"]']) {
            const el = querySelectorDeep(selector);
            if (el && isScrollable(el)) { container = el; break; }
        }
    }

    if (!container) return false;
    container.setAttribute('data-menu-scroll', '1');
    return true;
""")

SCROLL_STEP_JS = with_shadow_helpers("""
    const container = querySelectorDeep('[data-menu-scroll]');
    if (!container) return null;
    container.scrollBy(0, increment);
    return container.scrollTop;
""", params="increment")

EXTRACT_MENU_TEXT_JS = with_shadow_helpers("""
    const selectors = ['[role="main"]', '[class*="section"]', '[class*="content"]', '[aria-label*="menu" i]'];
    let container = null;
    for (const selector of selectors) {
        const el = querySelectorDeep(selector);
        if (el && el.textContent && el.textContent.length > 200) { container = el; break; }
    }
    if (!container) container = document.body;

    let text = container.innerText || getTextContentDeep(container) || '';
    text = text.replace(/\\n{3,}/g, '\\n\\n');
    text = text.replace(/[ \\t]{2,}/g, ' ');
    return text.trim();
""")


def format_section(label: str, content: str) -> str:
    """Delimit one category so it stays machine-distinguishable in combined text"""
    return f"\n\n=== {label.upper()} ===\n{content}"


async def scroll_to_exhaustion(session, config: ScraperConfig) -> int:
    """
    Scroll the menu panel's scroll container until its position stops changing.

    Stops after the position is unchanged for two consecutive steps or after
    ``scroll_max_attempts`` steps. Returns the number of steps that moved.
    """
    if not await session.evaluate(MARK_SCROLL_CONTAINER_JS):
        return 0

    last_position = 0
    stable_count = 0
    attempts = 0

    while attempts < config.scroll_max_attempts:
        position = await session.evaluate(SCROLL_STEP_JS, config.scroll_increment)
        await session.wait(config.scroll_interval_ms)

        if position == last_position:
            stable_count += 1
            if stable_count >= 2:
                break
        else:
            stable_count = 0

        last_position = position
        attempts += 1

    return attempts


class GoogleMapsMenuScraper:
    """Scrapes menu text from a Google Maps place page"""

    def __init__(self, config: Optional[ScraperConfig] = None, session_factory: SessionFactory = BrowserSession):
        self.config = config or ScraperConfig()
        self.session_factory = session_factory

    async def scrape(self, place_id: str) -> Optional[ScrapeResult]:
        """
        Scrape the menu for a place. Never raises; any failure returns None
        after the browser has been closed.
        """
        detail_logger = get_scraper_logger()
        url = GOOGLE_MAPS_PLACE_URL.format(place_id=quote(place_id, safe=''))
        detail_logger.log_url_visit(url, method="BROWSER")

        try:
            async with self.session_factory(self.config) as session:
                result = await self._scrape_place(session, url)
        except Exception as e:
            detail_logger.log_error("Google Maps scrape failed", url=url, exception=e)
            return None

        if result is None:
            detail_logger.log_warning("No menu content or menu link found", url=url)
        else:
            detail_logger.log_source_result(
                "Google Maps", url, len(result.text), menu_url=result.menu_url,
                has_logo=bool(result.logo), has_colors=result.colors is not None,
            )
        return result

    async def _scrape_place(self, session, url: str) -> Optional[ScrapeResult]:
        await session.navigate(url)
        await session.wait(self.config.maps_settle_ms)

        menu_url = await session.evaluate(EXTRACT_MENU_LINK_JS)
        logo = await self._best_effort(session, EXTRACT_LOGO_JS, None)
        colors = ColorPalette.from_dict(await self._best_effort(session, EXTRACT_COLORS_JS, {}))
        images = await self._best_effort(session, EXTRACT_IMAGES_JS, []) or []

        def link_only() -> Optional[ScrapeResult]:
            if not menu_url:
                return None
            return ScrapeResult(text='', images=images, menu_url=menu_url, logo=logo, colors=colors)

        if not await session.evaluate(FIND_MENU_TAB_JS):
            logger.info("No Menu tab on place page")
            return link_only()

        await session.wait(self.config.tab_settle_ms)
        subtabs = await self._menu_subtabs(session)

        if not subtabs:
            await scroll_to_exhaustion(session, self.config)
            menu_text = await self._menu_text(session)
        else:
            menu_text = await self._extract_subtabs(session, subtabs)

        if len(menu_text) < self.config.min_content_length:
            logger.info(f"Menu text below threshold ({len(menu_text)} chars)")
            return link_only()

        return ScrapeResult(text=menu_text, images=images, menu_url=menu_url, logo=logo, colors=colors)

    async def _menu_subtabs(self, session) -> List[str]:
        await session.wait(self.config.subtab_settle_ms)
        # Category tabs form a second tablist under the place tabs
        if await count_deep(session, TABLIST_SELECTOR) < 2:
            return []
        return await session.evaluate(GET_SUBTABS_JS) or []

    async def _menu_text(self, session) -> str:
        text = await session.evaluate(EXTRACT_MENU_TEXT_JS)
        if not text:
            text = await query_deep_text(session, MENU_PANEL_SELECTOR)
        return text or ""

    async def _extract_subtabs(self, session, subtabs: List[str]) -> str:
        sections = []
        for index, label in enumerate(subtabs):
            # Tabs are re-rendered between clicks, so they are re-queried by position each time
            await session.evaluate(CLICK_SUBTAB_JS, index)
            await session.wait(self.config.subtab_settle_ms)
            await scroll_to_exhaustion(session, self.config)

            content = await self._menu_text(session)
            logger.info(f"Category '{label}': {len(content)} chars")
            sections.append(format_section(label, content))
        return ''.join(sections)

    async def _best_effort(self, session, script: str, default):
        try:
            return await session.evaluate(script)
        except Exception as e:
            logger.debug(f"Optional page extraction failed: {e}")
            return default
