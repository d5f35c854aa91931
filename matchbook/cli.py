"""CLI tool for Matchbook: resolve shared map links from the command line.

Usage:
    python -m matchbook.cli resolve "Check this out https://maps.app.goo.gl/abc123"
    python -m matchbook.cli search "Dishoom Shoreditch" --lat 51.52 --lng -0.08
    python -m matchbook.cli classify "https://www.google.com/maps/place/Big+Ben/@51.5,-0.12,17z"
"""

import argparse
import asyncio
import json
import logging
import sys

from matchbook.core.exceptions import MatchbookError, NotAMapLinkError

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOT_A_MAP_LINK = 2


def _setup_logging(verbose: bool = False):
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _print_json(data: dict):
    print(json.dumps(data, indent=2, ensure_ascii=False))


async def _cmd_resolve(args):
    """Resolve shared text to a place."""
    from matchbook.services.browser import browser_manager
    from matchbook.services.resolver import PlaceResolver

    resolver = PlaceResolver()
    try:
        resolution = await resolver.resolve(args.text)
    finally:
        await resolver.aclose()
        await browser_manager.shutdown()

    _print_json(resolution.model_dump(mode="json", exclude_none=True))


async def _cmd_search(args):
    """Text search for a place (manual entry)."""
    from matchbook.services.google_places import PlacesClient
    from matchbook.services.resolver import PlaceResolver

    async with PlacesClient() as places:
        resolver = PlaceResolver(places=places)
        try:
            place = await resolver.search_text(args.query, lat=args.lat, lng=args.lng)
        finally:
            await resolver.expander.aclose()

    _print_json(place.model_dump(mode="json", exclude_none=True))


def _cmd_classify(args):
    """Classify text and print URL hints without any network access."""
    from matchbook.services.url_classifier import classify, extract_hints

    link = classify(args.text)
    output = {"link": link.model_dump(mode="json")}
    if link.is_valid:
        output["hints"] = extract_hints(link.canonical_url).model_dump(
            mode="json", exclude_none=True
        )
    _print_json(output)


def _run(args) -> int:
    try:
        if args.command == "resolve":
            asyncio.run(_cmd_resolve(args))
        elif args.command == "search":
            asyncio.run(_cmd_search(args))
        elif args.command == "classify":
            _cmd_classify(args)
    except NotAMapLinkError as e:
        _print_json({"success": False, "error": e.message, "error_code": e.error_code})
        return EXIT_NOT_A_MAP_LINK
    except MatchbookError as e:
        _print_json({"success": False, "error": e.message, "error_code": e.error_code})
        return EXIT_ERROR
    except ValueError as e:
        _print_json({"success": False, "error": str(e)})
        return EXIT_ERROR
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="matchbook",
        description="Matchbook CLI: resolve shared Google Maps links to places",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # --- resolve ---
    resolve_parser = subparsers.add_parser("resolve", help="Resolve shared text or a map link")
    resolve_parser.add_argument("text", help="Shared text containing a Google Maps link")

    # --- search ---
    search_parser = subparsers.add_parser("search", help="Search for a place by text")
    search_parser.add_argument("query", help="Place name and/or address")
    search_parser.add_argument("--lat", type=float, default=None, help="Bias latitude")
    search_parser.add_argument("--lng", type=float, default=None, help="Bias longitude")

    # --- classify ---
    classify_parser = subparsers.add_parser(
        "classify", help="Show link classification and URL hints (no network)"
    )
    classify_parser.add_argument("text", help="Text or URL to classify")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_ERROR

    _setup_logging(args.verbose)
    return _run(args)


if __name__ == "__main__":
    sys.exit(main())
