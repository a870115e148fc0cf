import asyncio
import sys
from pathlib import Path

import pytest

# Ensure the top-level packages are importable when running pytest from the repo root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from menu_scraper import scraper_logger  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_scraper_logs(tmp_path, monkeypatch):
    monkeypatch.setenv("SCRAPER_LOG_DIR", str(tmp_path / "scraper_logs"))
    scraper_logger.reset_logger()
    yield
    scraper_logger.reset_logger()


class Sequence:
    """Evaluate response consumed one value per call; ``None`` once exhausted"""

    def __init__(self, values):
        self.values = list(values)

    def next(self):
        return self.values.pop(0) if self.values else None


class FakeSession:
    """
    Stand-in for BrowserSession. ``responses`` maps a script to a plain
    value (lists included), a callable taking the evaluate argument, or a
    ``Sequence`` consumed in order. ``fail_on="navigate"`` raises on
    navigation; ``block_on="navigate"`` never returns from it.
    """

    def __init__(self, responses=None, html="<html><body></body></html>", fail_on=None, block_on=None):
        self.responses = dict(responses or {})
        self.html = html
        self.fail_on = fail_on
        self.block_on = block_on
        self.url = None
        self.navigations = []
        self.evaluations = []
        self.waits = []
        self.entered = False
        self.closed = False

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True
        return False

    async def navigate(self, url, wait_until="domcontentloaded"):
        if self.fail_on == "navigate":
            raise RuntimeError("navigation failed")
        self.navigations.append(url)
        if self.block_on == "navigate":
            await asyncio.Event().wait()
        self.url = url

    async def evaluate(self, script, arg=None):
        self.evaluations.append((script, arg))
        if script not in self.responses:
            return None
        response = self.responses[script]
        if isinstance(response, Sequence):
            return response.next()
        if callable(response):
            return response(arg)
        return response

    async def wait(self, ms):
        self.waits.append(ms)

    async def content(self):
        return self.html


def session_factory(session):
    """Factory that hands out the same fake session and ignores the config"""
    return lambda config: session
