"""
Restaurant website menu scraper.

Tries a plain HTTP fetch first and only falls back to a headless browser
when the static page does not yield enough menu text. The browser path
dismisses popups, moves to the menu page, expands collapsed sections and
scrolls lazy content into the DOM before extracting.
"""
import logging
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from .branding import extract_logo, extract_colors, EXTRACT_LOGO_JS, EXTRACT_COLORS_JS
from .config import ScraperConfig
from .extract import (
    extract_images,
    extract_text,
    fetch_menu_document,
    find_menu_link,
    same_page,
)
from .fetch import BrowserSession, SessionFactory
from .scraper_logger import get_scraper_logger
from .types import ColorPalette, ScrapeResult

logger = logging.getLogger(__name__)


DISMISS_POPUPS_JS = """
    () => {
        const acceptKeywords = ['accept', 'allow', 'agree', 'continue', 'ok', 'got it',
                                'close', 'dismiss', 'no thanks', '×'];
        const buttons = Array.from(document.querySelectorAll(
            'button, a, [role="button"], [class*="modal"] button, [class*="popup"] button'
        ));

        for (const btn of buttons) {
            const text = (btn.textContent || '').toLowerCase().trim();
            const ariaLabel = (btn.getAttribute('aria-label') || '').toLowerCase();
            const rect = btn.getBoundingClientRect();
            if (rect.width === 0 || rect.height === 0 || text.length > 60) continue;

            const inModal = btn.closest('[role="dialog"], [class*="modal"], [class*="popup"], [class*="cookie"]');
            if (inModal && acceptKeywords.some(kw => text.includes(kw) || ariaLabel.includes(kw))) {
                btn.click();
                return true;
            }
        }

        for (const overlay of Array.from(document.querySelectorAll('[class*="overlay"], [class*="backdrop"]'))) {
            const style = window.getComputedStyle(overlay);
            const rect = overlay.getBoundingClientRect();
            if (style.position === 'fixed' && parseInt(style.zIndex) > 100 && rect.width > window.innerWidth * 0.8) {
                overlay.remove();
                return true;
            }
        }
        return false;
    }
"""

CLICK_MENU_BUTTON_JS = """
    () => {
        const priorities = [
            { keywords: ['menu', 'view menu', 'see menu', 'our menu'], score: 100 },
            { keywords: ['order now', 'order online', 'start order'], score: 80 },
            { keywords: ['pickup', 'takeout'], score: 70 },
        ];
        const skip = ['cart', 'checkout', 'account', 'login', 'delivery', 'about', 'contact'];

        let best = null;
        for (const btn of Array.from(document.querySelectorAll('a, button, [role="button"]'))) {
            const text = (btn.textContent || '').trim();
            const lower = text.toLowerCase();
            const rect = btn.getBoundingClientRect();
            if (!text || text.length > 60 || rect.width === 0 || rect.height === 0) continue;
            if (skip.some(s => lower.includes(s))) continue;

            for (const p of priorities) {
                if (p.keywords.some(k => lower.includes(k)) && (!best || p.score > best.score)) {
                    best = { el: btn, score: p.score };
                }
            }
        }

        if (!best) return false;
        best.el.click();
        return true;
    }
"""

EXPAND_SECTIONS_JS = """
    async () => {
        let count = 0;
        for (const el of Array.from(document.querySelectorAll('[aria-expanded="false"]'))) {
            if (count >= 50) break;
            const rect = el.getBoundingClientRect();
            if (rect.width > 0 && rect.height > 0) {
                el.click();
                count++;
                await new Promise(r => setTimeout(r, 50));
            }
        }
        return count;
    }
"""

SCROLL_LAZY_CONTENT_JS = """
    async () => {
        for (let i = 0; i < 3; i++) {
            window.scrollTo(0, document.body.scrollHeight);
            await new Promise(r => setTimeout(r, 200));
        }

        const scrollables = Array.from(document.querySelectorAll('*')).filter(el => {
            const style = window.getComputedStyle(el);
            return (style.overflowY === 'auto' || style.overflowY === 'scroll') &&
                el.scrollHeight > el.clientHeight + 20;
        }).sort((a, b) => b.scrollHeight - a.scrollHeight);

        for (const container of scrollables.slice(0, 10)) {
            let stable = 0;
            let lastHeight = container.scrollHeight;
            for (let i = 0; i < 8; i++) {
                container.scrollTop = container.scrollHeight - container.clientHeight;
                await new Promise(r => setTimeout(r, 100));
                if (container.scrollHeight === lastHeight) {
                    if (++stable >= 2) break;
                } else {
                    stable = 0;
                }
                lastHeight = container.scrollHeight;
            }
        }

        window.scrollTo(0, 0);
        scrollables.forEach(el => el.scrollTop = 0);
    }
"""


class WebsiteMenuScraper:
    """Scrapes menu text, logo and brand colors from a restaurant's own website"""

    def __init__(
        self,
        config: Optional[ScraperConfig] = None,
        session_factory: SessionFactory = BrowserSession,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or ScraperConfig()
        self.session_factory = session_factory
        self.client = client

    async def scrape(self, website_url: str) -> Optional[ScrapeResult]:
        """
        Scrape a website. Returns None when neither the static nor the
        rendered page yields at least ``min_content_length`` characters, or
        on any error.
        """
        detail_logger = get_scraper_logger()
        detail_logger.log_url_visit(website_url)

        try:
            result = await self._scrape_static(website_url)
            if result is None or len(result.text) < self.config.min_content_length:
                logger.info(f"Static content insufficient for {website_url}, rendering in browser")
                result = await self._scrape_rendered(website_url, result)
        except Exception as e:
            detail_logger.log_error("Website scrape failed", url=website_url, exception=e)
            return None

        if result is None or len(result.text) < self.config.min_content_length:
            detail_logger.log_warning("No usable menu content", url=website_url)
            return None

        detail_logger.log_source_result(
            "Website", website_url, len(result.text), menu_url=result.menu_url,
            has_logo=bool(result.logo), has_colors=result.colors is not None,
        )
        return result

    async def _scrape_static(self, website_url: str) -> Optional[ScrapeResult]:
        document = await fetch_menu_document(website_url, self.config, self.client)
        if document is None:
            return None

        logo = extract_logo(document.home_html, document.home_url)
        if not logo and document.html is not document.home_html:
            logo = extract_logo(document.html, document.url)

        return ScrapeResult(
            text=extract_text(document.html, self.config),
            images=extract_images(document.html, document.url),
            menu_url=document.url if document.url != document.home_url else None,
            logo=logo,
            colors=extract_colors(document.home_html),
        )

    async def _scrape_rendered(self, website_url: str, static: Optional[ScrapeResult]) -> Optional[ScrapeResult]:
        async with self.session_factory(self.config) as session:
            await session.navigate(website_url)
            await session.wait(self.config.website_settle_ms)
            await self._best_effort(session, DISMISS_POPUPS_JS)

            logo = await self._best_effort(session, EXTRACT_LOGO_JS)
            colors = ColorPalette.from_dict(await self._best_effort(session, EXTRACT_COLORS_JS))

            menu_url = await self._open_menu_page(session, website_url)

            await self._best_effort(session, DISMISS_POPUPS_JS)
            await self._best_effort(session, EXPAND_SECTIONS_JS)
            await self._best_effort(session, SCROLL_LAZY_CONTENT_JS)

            html = await session.content()
            text = extract_text(html, self.config)
            logger.info(f"Rendered content length for {website_url}: {len(text)}")

            return ScrapeResult(
                text=text,
                images=extract_images(html, session.url or website_url),
                menu_url=menu_url,
                logo=logo or (static.logo if static else None),
                colors=colors or (static.colors if static else None),
            )

    async def _open_menu_page(self, session, website_url: str) -> Optional[str]:
        """Follow a menu link from the rendered page, else click the best menu-like button"""
        soup = BeautifulSoup(await session.content(), 'lxml')
        menu_link = find_menu_link(soup, session.url or website_url)

        if menu_link and not same_page(menu_link, website_url):
            try:
                await session.navigate(menu_link)
                await session.wait(self.config.website_settle_ms)
                return menu_link
            except Exception as e:
                logger.info(f"Menu page navigation failed for {menu_link}: {e}")
                await session.navigate(website_url)

        if await self._best_effort(session, CLICK_MENU_BUTTON_JS):
            await session.wait(self.config.tab_settle_ms)
            return session.url if not same_page(session.url, website_url) else None
        return None

    async def _best_effort(self, session, script: str):
        try:
            return await session.evaluate(script)
        except Exception as e:
            logger.debug(f"Optional page step failed: {e}")
            return None
