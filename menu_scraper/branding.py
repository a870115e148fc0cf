"""
Brand logo and color discovery.

Static helpers work on fetched HTML; the ``*_JS`` scripts run against a live
page so computed styles can be sampled. Everything here is best-effort and
returns None when nothing convincing is found.
"""
import re
from collections import Counter
from typing import Optional

from bs4 import BeautifulSoup

from .extract import resolve_url
from .types import ColorPalette


HEX_COLOR_RE = re.compile(r'#(?:[0-9a-fA-F]{6}|[0-9a-fA-F]{3})\b')
CSS_VAR_COLOR_RE = re.compile(
    r'--[\w-]*?(primary|secondary|accent)[\w-]*\s*:\s*(#(?:[0-9a-fA-F]{6}|[0-9a-fA-F]{3}))\b',
    re.IGNORECASE,
)


def normalize_hex(color: str) -> Optional[str]:
    """Uppercase 6-digit hex, or None for near-white/near-black and malformed values"""
    value = color.strip().lstrip('#')
    if len(value) == 3:
        value = ''.join(ch * 2 for ch in value)
    if len(value) != 6 or not re.fullmatch(r'[0-9a-fA-F]{6}', value):
        return None

    r, g, b = (int(value[i:i + 2], 16) for i in (0, 2, 4))
    if r > 240 and g > 240 and b > 240:
        return None
    if r < 15 and g < 15 and b < 15:
        return None
    return '#' + value.upper()


def _has_logo_signal(tag) -> bool:
    classes = ' '.join(tag.get('class') or [])
    signals = ' '.join([classes, tag.get('id') or '', tag.get('alt') or '', tag.get('src') or '']).lower()
    return 'logo' in signals or 'brand' in signals


def extract_logo(html: str, base_url: str) -> Optional[str]:
    """Header logo image, then any logo image, then touch icon, open-graph image or favicon"""
    soup = BeautifulSoup(html, 'lxml')

    for container in soup.select('header, [class*="header" i], nav'):
        for img in container.find_all('img'):
            if img.get('src') and _has_logo_signal(img):
                return resolve_url(img['src'], base_url)

    for img in soup.find_all('img'):
        if img.get('src') and not img['src'].startswith('data:') and _has_logo_signal(img):
            return resolve_url(img['src'], base_url)

    touch_icon = soup.select_one('link[rel~="apple-touch-icon"][href]')
    if touch_icon:
        return resolve_url(touch_icon['href'], base_url)

    og_image = soup.select_one('meta[property="og:image"][content]')
    if og_image:
        return resolve_url(og_image['content'], base_url)

    icon = soup.select_one('link[rel~="icon"][href]')
    if icon:
        return resolve_url(icon['href'], base_url)

    return None


def extract_colors(html: str) -> Optional[ColorPalette]:
    """
    Palette from static markup: named CSS custom properties win, then the
    ``theme-color`` meta tag, then the most frequent inline hex colors.
    """
    soup = BeautifulSoup(html, 'lxml')

    css = '\n'.join(style.get_text() for style in soup.find_all('style'))
    css += '\n' + '\n'.join(tag['style'] for tag in soup.find_all(style=True))

    named = {}
    for role, value in CSS_VAR_COLOR_RE.findall(css):
        color = normalize_hex(value)
        if color and role.lower() not in named:
            named[role.lower()] = color

    theme = soup.find('meta', attrs={'name': 'theme-color'})
    if theme and theme.get('content') and 'primary' not in named:
        color = normalize_hex(theme['content'])
        if color:
            named['primary'] = color

    counts = Counter(c for c in (normalize_hex(h) for h in HEX_COLOR_RE.findall(css)) if c)
    ranked = [color for color, _ in counts.most_common() if color not in named.values()]

    for role in ('primary', 'secondary', 'accent'):
        if role not in named and ranked:
            named[role] = ranked.pop(0)

    return ColorPalette.from_dict(named)


EXTRACT_LOGO_JS = """
    () => {
        const hasSignal = (img) => {
            const signals = [img.className, img.id, img.alt, img.getAttribute('src')].join(' ').toLowerCase();
            return signals.includes('logo') || signals.includes('brand');
        };

        for (const container of Array.from(document.querySelectorAll('header, [class*="header" i], nav'))) {
            for (const img of Array.from(container.querySelectorAll('img'))) {
                if (img.src && hasSignal(img)) return img.src;
            }
        }
        for (const img of Array.from(document.querySelectorAll('img'))) {
            if (img.src && !img.src.startsWith('data:') && hasSignal(img)) return img.src;
        }

        const touchIcon = document.querySelector('link[rel~="apple-touch-icon"][href]');
        if (touchIcon) return touchIcon.href;
        const ogImage = document.querySelector('meta[property="og:image"][content]');
        if (ogImage) return new URL(ogImage.getAttribute('content'), window.location.href).href;
        const icon = document.querySelector('link[rel~="icon"][href]');
        if (icon) return icon.href;
        return null;
    }
"""

EXTRACT_COLORS_JS = """
    () => {
        const toHex = (color) => {
            const match = (color || '').match(/rgba?\\((\\d+),\\s*(\\d+),\\s*(\\d+)(?:,\\s*([\\d.]+))?/);
            if (!match) return null;
            if (match[4] !== undefined && parseFloat(match[4]) === 0) return null;
            const [r, g, b] = [match[1], match[2], match[3]].map(Number);
            if (r > 240 && g > 240 && b > 240) return null;
            if (r < 15 && g < 15 && b < 15) return null;
            return '#' + [r, g, b].map(x => x.toString(16).padStart(2, '0')).join('').toUpperCase();
        };

        const sample = (selectors, property) => {
            for (const selector of selectors) {
                for (const el of Array.from(document.querySelectorAll(selector)).slice(0, 10)) {
                    const color = toHex(window.getComputedStyle(el)[property]);
                    if (color) return color;
                }
            }
            return null;
        };

        const palette = {};
        const primary = sample(['header', '[class*="header" i]', 'nav'], 'backgroundColor');
        const secondary = sample(['button', '[class*="btn" i]', '[class*="button" i]'], 'backgroundColor');
        const accent = sample(['a'], 'color');
        if (primary) palette.primary = primary;
        if (secondary) palette.secondary = secondary;
        if (accent) palette.accent = accent;
        return palette;
    }
"""
