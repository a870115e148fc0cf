"""
Detailed logging module for menu scraping runs.
Logs every page visited, every source result and the merged content handed to the model.
"""
import logging
import os
import traceback
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional


class ScraperLogger:
    """Detailed logger for scraper operations"""

    def __init__(self, log_file: Optional[str] = None):
        """
        Initialize the scraper logger.

        Args:
            log_file: Path to log file. If None, uses '$SCRAPER_LOG_DIR/scraper_{timestamp}.log'
                (``scraper_logs`` when the variable is unset)
        """
        if log_file is None:
            log_dir = Path(os.getenv("SCRAPER_LOG_DIR", "scraper_logs"))
            log_dir.mkdir(parents=True, exist_ok=True)

            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file = str(log_dir / f"scraper_{timestamp}.log")

        self.log_file = log_file

        self.logger = logging.getLogger('scraper_detailed')
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

        for handler in list(self.logger.handlers):
            handler.close()
        self.logger.handlers = []

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)

        formatter = logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler.setFormatter(formatter)
        console_handler.setFormatter(formatter)

        self.logger.addHandler(file_handler)
        self.logger.addHandler(console_handler)

        self.logger.info("=" * 80)
        self.logger.info(f"Scraper logging started - Log file: {log_file}")
        self.logger.info("=" * 80)

    def log_url_visit(self, url: str, method: str = "GET", status: str = "STARTED"):
        """Log when a URL is being visited"""
        self.logger.info(f"[URL VISIT] {status} | Method: {method} | URL: {url}")

    def log_source_result(self, source: str, url: str, text_length: int,
                          menu_url: Optional[str] = None, has_logo: bool = False,
                          has_colors: bool = False):
        """Log the outcome of one scrape source"""
        parts = [f"[SOURCE] {source}", f"URL: {url}", f"Text: {text_length:,} chars"]
        if menu_url:
            parts.append(f"Menu link: {menu_url}")
        parts.append(f"Logo: {'yes' if has_logo else 'no'}")
        parts.append(f"Colors: {'yes' if has_colors else 'no'}")
        self.logger.info(" | ".join(parts))

    def log_restaurant_processing(self, place_id: str, step: str, details: Optional[str] = None):
        """Log pipeline steps for one place"""
        msg = f"[RESTAURANT] Place: {place_id} | Step: {step}"
        if details:
            msg += f" | {details}"
        self.logger.info(msg)

    def log_data_summary(self, place_id: str, data: Dict[str, Any]):
        """Log summary of extracted data"""
        self.logger.info(f"[DATA SUMMARY] Place: {place_id}")
        for key, value in data.items():
            if isinstance(value, (list, dict)):
                count = len(value) if value else 0
                self.logger.info(f"[DATA SUMMARY]   {key}: {count} items")
            elif value:
                value_str = str(value)[:100]
                self.logger.info(f"[DATA SUMMARY]   {key}: {value_str}")

    def log_separator(self, text: str = ""):
        """Log a separator line"""
        if text:
            self.logger.info(f"{'=' * 80}")
            self.logger.info(f"  {text}")
            self.logger.info(f"{'=' * 80}")
        else:
            self.logger.info("-" * 80)

    def log_warning(self, message: str, url: Optional[str] = None):
        """Log a warning"""
        if url:
            self.logger.warning(f"[WARNING] URL: {url} | {message}")
        else:
            self.logger.warning(f"[WARNING] {message}")

    def log_error(self, message: str, url: Optional[str] = None, exception: Optional[Exception] = None):
        """Log an error"""
        if url:
            msg = f"[ERROR] URL: {url} | {message}"
        else:
            msg = f"[ERROR] {message}"

        if exception:
            msg += f" | Exception: {type(exception).__name__}: {str(exception)}"

        self.logger.error(msg)
        if exception:
            self.logger.debug(f"[ERROR TRACEBACK]\n{traceback.format_exc()}")


# Global logger instance
_scraper_logger: Optional[ScraperLogger] = None


def get_scraper_logger(log_file: Optional[str] = None) -> ScraperLogger:
    """Get or create the global scraper logger"""
    global _scraper_logger
    if _scraper_logger is None:
        _scraper_logger = ScraperLogger(log_file)
    return _scraper_logger


def reset_logger():
    """Reset the global logger (useful for testing)"""
    global _scraper_logger
    if _scraper_logger is not None:
        for handler in list(_scraper_logger.logger.handlers):
            handler.close()
        _scraper_logger.logger.handlers = []
    _scraper_logger = None
