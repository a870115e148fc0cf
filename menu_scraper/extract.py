"""
HTML text extraction for restaurant menus.

Finds a menu sub-page by link heuristics, strips non-content markup and
returns cleaned, size-capped text suitable for the structuring model.
"""
import logging
import re
from typing import List, NamedTuple, Optional
from urllib.parse import urljoin, urldefrag

import httpx
from bs4 import BeautifulSoup

from .config import ScraperConfig, MENU_LINK_KEYWORDS, MENU_SIGNAL_SELECTORS, NOISE_TAGS
from .fetch import fetch_page

logger = logging.getLogger(__name__)

SKIPPED_SCHEMES = ('mailto:', 'tel:', 'javascript:', 'data:')


class MenuDocument(NamedTuple):
    """HTML chosen for extraction plus the landing page it was discovered from"""
    html: str
    url: str
    home_html: str
    home_url: str


def resolve_url(href: str, base_url: str) -> str:
    """Resolve an absolute, origin-relative or relative href against the page URL"""
    return urljoin(base_url, href.strip())


def same_page(first: str, second: str) -> bool:
    return urldefrag(first)[0].rstrip('/') == urldefrag(second)[0].rstrip('/')


def find_menu_link(soup: BeautifulSoup, base_url: str) -> Optional[str]:
    """First anchor whose text or href mentions a menu keyword, resolved to an absolute URL"""
    for link in soup.find_all('a'):
        href = link.get('href')
        if not href or href.strip().lower().startswith(SKIPPED_SCHEMES):
            continue

        text = link.get_text().lower()
        href_lower = href.lower()
        if any(keyword in text or keyword in href_lower for keyword in MENU_LINK_KEYWORDS):
            menu_url = resolve_url(href, base_url)
            logger.info(f"Found menu link: {menu_url}")
            return menu_url

    return None


def normalize_whitespace(text: str) -> str:
    text = re.sub(r'[ \t\r\f\v]+', ' ', text)
    text = re.sub(r' ?\n ?', '\n', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()


def extract_text(html: str, config: Optional[ScraperConfig] = None) -> str:
    """
    Extract menu-like text from an HTML document.

    Text is taken from menu-signal elements first (each block at least
    ``min_block_length`` characters, nested matches counted once). When
    that yields less than ``min_content_length`` characters the whole body
    text is used instead. The result is whitespace-normalized and capped at
    ``max_content_length``.
    """
    config = config or ScraperConfig()
    soup = BeautifulSoup(html, 'lxml')

    for tag in soup(NOISE_TAGS):
        tag.decompose()

    blocks: List[str] = []
    taken = set()
    for element in soup.select(', '.join(MENU_SIGNAL_SELECTORS)):
        if any(id(parent) in taken for parent in element.parents):
            continue
        text = element.get_text('\n', strip=True)
        if len(text) >= config.min_block_length:
            blocks.append(text)
            taken.add(id(element))

    menu_content = '\n\n'.join(blocks)

    if len(menu_content) < config.min_content_length:
        root = soup.body or soup
        menu_content = root.get_text('\n', strip=True)

    menu_content = normalize_whitespace(menu_content)
    return menu_content[:config.max_content_length]


def extract_images(html: str, base_url: str, limit: int = 20) -> List[str]:
    soup = BeautifulSoup(html, 'lxml')
    images = []
    for img in soup.find_all('img'):
        src = img.get('src') or img.get('data-src')
        if not src or src.startswith('data:'):
            continue
        absolute = resolve_url(src, base_url)
        if absolute not in images:
            images.append(absolute)
        if len(images) >= limit:
            break
    return images


async def fetch_menu_document(
    url: str,
    config: Optional[ScraperConfig] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[MenuDocument]:
    """
    Fetch the landing page and, when it links to a distinct menu page, that page too.

    A failed menu-page fetch keeps the landing page. Returns None only when
    the landing page itself cannot be fetched.
    """
    config = config or ScraperConfig()
    logger.info(f"Fetching website: {url}")

    html = await fetch_page(url, config, client)
    if not html:
        return None

    soup = BeautifulSoup(html, 'lxml')
    menu_link = find_menu_link(soup, url)

    if menu_link and not same_page(menu_link, url):
        logger.info(f"Following menu link: {menu_link}")
        menu_html = await fetch_page(menu_link, config, client)
        if menu_html:
            return MenuDocument(html=menu_html, url=menu_link, home_html=html, home_url=url)
        logger.info(f"Menu page unavailable, using landing page for {url}")

    return MenuDocument(html=html, url=url, home_html=html, home_url=url)


async def scrape_website_content(
    url: str,
    config: Optional[ScraperConfig] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[str]:
    """Cleaned menu text for a website, or None when the site cannot be fetched"""
    document = await fetch_menu_document(url, config, client)
    if document is None:
        return None

    text = extract_text(document.html, config)
    logger.info(f"Scraped content length: {len(text)}")
    return text
