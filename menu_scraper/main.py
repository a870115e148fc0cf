"""
CLI entry point for the menu scrapers.
Scrapes one place (and optionally its website) and prints what each source produced.

    python -m menu_scraper.main <place_id> [--website URL]
"""
import argparse
import asyncio
import logging
import sys

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import ScraperConfig, load_config_from_env, load_config_from_file
from .orchestrator import scrape_all
from .types import CombinedContent

console = Console()


def setup_logging(config: ScraperConfig):
    """Setup structured logging"""
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper()),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)]
    )


def print_summary(place_id: str, combined: CombinedContent):
    table = Table(title=f"Menu scrape: {place_id}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Website text", f"{len(combined.website_text)} chars")
    table.add_row("Google Maps text", f"{len(combined.maps_text)} chars")
    table.add_row("Combined text", f"{len(combined.text)} chars")
    if combined.maps and combined.maps.menu_url:
        table.add_row("Menu link", combined.maps.menu_url)
    table.add_row("Logo", combined.logo or "-")
    table.add_row("Colors", ", ".join(f"{k}={v}" for k, v in combined.colors.to_dict().items())
                  if combined.colors else "-")

    console.print(table)


async def main_async(args):
    """Main async function"""
    config = load_config_from_file(args.config) if args.config else load_config_from_env()

    if args.headless is not None:
        config.headless = args.headless
    if args.timeout:
        config.scrape_timeout = args.timeout
    if args.debug:
        config.log_level = "DEBUG"

    setup_logging(config)

    console.print("[bold green]Menu Scraper Starting[/bold green]")
    console.print(f"Place: {args.place_id}")
    console.print(f"Website: {args.website or '-'}")

    combined = await scrape_all(args.place_id, args.website, config=config)

    print_summary(args.place_id, combined)
    if not combined.text:
        console.print("[yellow]⚠ No usable menu content from either source[/yellow]")
        return 1

    if args.show_text:
        console.print(combined.text)
    return 0


def main():
    """CLI entry point"""
    parser = argparse.ArgumentParser(
        description="Scrape restaurant menu text from a website and its Google Maps place page"
    )

    parser.add_argument('place_id', help='Google Maps place id')
    parser.add_argument('--website', help='Restaurant website URL')
    parser.add_argument('--config', help='Path to YAML configuration file')
    parser.add_argument('--timeout', type=float, help='Joint scrape timeout in seconds (default: 120)')
    parser.add_argument('--show-text', action='store_true', help='Print the combined menu text')
    parser.add_argument('--headless', dest='headless', action='store_true', default=None,
                        help='Run browser in headless mode (default)')
    parser.add_argument('--no-headless', dest='headless', action='store_false',
                        help='Run browser with GUI')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode with verbose logging')

    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(main_async(args)))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(1)


if __name__ == '__main__':
    main()
