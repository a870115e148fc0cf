"""
Configuration module for the menu scrapers.
All settings can be overridden via CLI arguments, environment variables or a YAML file.
"""
import os
from typing import List
from dataclasses import dataclass, field
from pathlib import Path


# Keywords that mark a link as pointing at a menu page
MENU_LINK_KEYWORDS = ['menu', 'order', 'food', 'our-menu', 'ourmenu', 'online-order']

# Selectors empirically correlated with menu content
MENU_SIGNAL_SELECTORS = [
    '[class*="menu" i]',
    '[id*="menu" i]',
    '[class*="food" i]',
    '[id*="food" i]',
    '[class*="dish" i]',
    '[class*="item" i]',
    'main',
    'article',
]

# Markup that never carries menu text
NOISE_TAGS = ['script', 'style', 'noscript', 'iframe', 'svg']

GOOGLE_MAPS_PLACE_URL = "https://www.google.com/maps/place/?q=place_id:{place_id}"

BROWSER_LAUNCH_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-gpu',
    '--disable-software-rasterizer',
    '--disable-extensions',
    '--disable-blink-features=AutomationControlled',
    '--window-size=1920,1080',
]


@dataclass
class ScraperConfig:
    """Main configuration class for the menu scrapers"""

    # Content thresholds
    max_content_length: int = 2500  # ~625 tokens sent to the model per source
    min_content_length: int = 100  # below this a source counts as empty
    min_block_length: int = 50  # shorter menu-signal blocks are nav/footer noise

    # Timeouts
    request_timeout: float = 30.0  # seconds, static fetches
    navigation_timeout: int = 30000  # milliseconds
    scrape_timeout: float = 120.0  # seconds, joint budget for both scrapers

    # Settle delays (milliseconds)
    website_settle_ms: int = 500
    maps_settle_ms: int = 2000
    tab_settle_ms: int = 600
    subtab_settle_ms: int = 300

    # Scroll-to-exhaustion
    scroll_increment: int = 2000
    scroll_interval_ms: int = 100
    scroll_max_attempts: int = 5

    # Browser Configuration
    headless: bool = True
    browser_type: str = "chromium"
    viewport_width: int = 1920
    viewport_height: int = 1080
    locale: str = "en-US"

    user_agents: List[str] = field(default_factory=lambda: [
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    ])
    fallback_user_agent: str = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"

    # Logging
    log_level: str = "INFO"

    def get_user_agent(self) -> str:
        """Desktop user agent used for every browser context and static fetch"""
        return self.user_agents[0]


def load_config_from_env() -> ScraperConfig:
    """Load configuration from environment variables"""
    config = ScraperConfig()

    if os.getenv("SCRAPER_HEADLESS"):
        config.headless = os.getenv("SCRAPER_HEADLESS").lower() == "true"

    if os.getenv("SCRAPER_TIMEOUT"):
        config.scrape_timeout = float(os.getenv("SCRAPER_TIMEOUT"))

    if os.getenv("SCRAPER_MAX_CONTENT_LENGTH"):
        config.max_content_length = int(os.getenv("SCRAPER_MAX_CONTENT_LENGTH"))

    if os.getenv("SCRAPER_LOG_LEVEL"):
        config.log_level = os.getenv("SCRAPER_LOG_LEVEL")

    return config


def load_config_from_file(config_path: str) -> ScraperConfig:
    """Load configuration from YAML file"""
    import yaml

    config = ScraperConfig()

    if not Path(config_path).exists():
        return config

    with open(config_path, 'r') as f:
        yaml_config = yaml.safe_load(f)

    if yaml_config:
        for key, value in yaml_config.items():
            if hasattr(config, key):
                setattr(config, key, value)

    return config
