"""
Fetch layer for the menu scrapers.
Handles static HTTP requests and the headless browser session the scrapers drive.
"""
import logging
from typing import Any, Callable, Optional

import httpx
from playwright.async_api import async_playwright, Browser, BrowserContext, Page

from .config import ScraperConfig, BROWSER_LAUNCH_ARGS

logger = logging.getLogger(__name__)


STEALTH_SCRIPT = """
    Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
    Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
    window.chrome = { runtime: {} };
"""


class FetchError(Exception):
    """Raised when a page cannot be loaded"""
    pass


def build_headers(config: ScraperConfig) -> dict:
    return {
        'User-Agent': config.get_user_agent(),
        'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8',
        'Accept-Language': 'en-US,en;q=0.9',
        'Cache-Control': 'no-cache',
        'Pragma': 'no-cache',
        'Sec-Fetch-Dest': 'document',
        'Sec-Fetch-Mode': 'navigate',
        'Sec-Fetch-Site': 'none',
        'Sec-Fetch-User': '?1',
        'Upgrade-Insecure-Requests': '1',
    }


async def fetch_page(
    url: str,
    config: Optional[ScraperConfig] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[str]:
    """
    Fetch raw HTML with realistic browser headers.

    A 403 is retried once with a minimal user agent. Any other failure
    returns None so callers treat the source as empty.
    """
    config = config or ScraperConfig()
    if client is None:
        async with httpx.AsyncClient(timeout=config.request_timeout, follow_redirects=True) as owned:
            return await _fetch_with_client(owned, url, config)
    return await _fetch_with_client(client, url, config)


async def _fetch_with_client(client: httpx.AsyncClient, url: str, config: ScraperConfig) -> Optional[str]:
    try:
        response = await client.get(url, headers=build_headers(config))

        if response.status_code == 403:
            logger.info(f"Blocked fetching {url}, retrying with minimal headers")
            response = await client.get(url, headers={'User-Agent': config.fallback_user_agent})

        if response.status_code >= 400:
            logger.warning(f"Failed to fetch {url}: {response.status_code} {response.reason_phrase}")
            return None

        return response.text
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning(f"Fetch error for {url}: {e}")
        return None


class BrowserSession:
    """
    One headless browser with a single page, owned by one scrape task.

    Exposes the narrow capability the scrapers need (navigate, evaluate,
    wait, content) and closes the browser on every exit path when used as
    an async context manager.
    """

    def __init__(self, config: Optional[ScraperConfig] = None):
        self.config = config or ScraperConfig()
        self.playwright = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    async def __aenter__(self):
        try:
            self.playwright = await async_playwright().start()
            browser_launcher = getattr(self.playwright, self.config.browser_type)
            self.browser = await browser_launcher.launch(
                headless=self.config.headless,
                args=BROWSER_LAUNCH_ARGS,
            )
            self.context = await self.browser.new_context(
                viewport={
                    'width': self.config.viewport_width,
                    'height': self.config.viewport_height,
                },
                user_agent=self.config.get_user_agent(),
                locale=self.config.locale,
            )
            self.page = await self.context.new_page()
            self.page.set_default_navigation_timeout(self.config.navigation_timeout)
            await self.page.add_init_script(STEALTH_SCRIPT)
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        for closer in (self.context, self.browser):
            if closer is None:
                continue
            try:
                await closer.close()
            except Exception as e:
                logger.debug(f"Error closing browser resource: {e}")
        if self.playwright:
            try:
                await self.playwright.stop()
            except Exception as e:
                logger.debug(f"Error stopping playwright: {e}")
        self.page = self.context = self.browser = self.playwright = None

    @property
    def url(self) -> str:
        return self.page.url if self.page else ""

    async def navigate(self, url: str, wait_until: str = "domcontentloaded"):
        if not self.page:
            raise FetchError("Browser not initialized. Use async context manager.")
        await self.page.goto(url, wait_until=wait_until, timeout=self.config.navigation_timeout)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if arg is None:
            return await self.page.evaluate(script)
        return await self.page.evaluate(script, arg)

    async def wait(self, ms: int):
        await self.page.wait_for_timeout(ms)

    async def content(self) -> str:
        return await self.page.content()


SessionFactory = Callable[[ScraperConfig], BrowserSession]
