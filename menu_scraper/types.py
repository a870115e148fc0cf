"""Value types shared by the scrapers and the orchestrator."""
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class ColorPalette:
    primary: Optional[str] = None
    secondary: Optional[str] = None
    accent: Optional[str] = None
    text: Optional[str] = None
    background: Optional[str] = None

    def is_empty(self) -> bool:
        return not any(asdict(self).values())

    def to_dict(self) -> Dict[str, str]:
        return {key: value for key, value in asdict(self).items() if value}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["ColorPalette"]:
        """Build a palette from an in-page result, ``None`` when nothing was sampled"""
        if not data:
            return None
        palette = cls(**{key: data.get(key) for key in ('primary', 'secondary', 'accent', 'text', 'background')})
        return None if palette.is_empty() else palette


@dataclass(frozen=True)
class ScrapeResult:
    """Output of one source (restaurant website or map page)."""
    text: str
    images: List[str] = field(default_factory=list)
    menu_url: Optional[str] = None
    logo: Optional[str] = None
    colors: Optional[ColorPalette] = None


@dataclass(frozen=True)
class CombinedContent:
    """Merged output of both sources. ``text`` is empty only when neither produced usable content."""
    text: str
    logo: Optional[str] = None
    colors: Optional[ColorPalette] = None
    website_text: str = ""
    maps_text: str = ""
    website: Optional[ScrapeResult] = None
    maps: Optional[ScrapeResult] = None

    @property
    def has_website_content(self) -> bool:
        return bool(self.website_text)

    @property
    def has_branding(self) -> bool:
        return bool(self.logo) or self.colors is not None
