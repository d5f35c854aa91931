"""Map link classification and URL hint extraction.

Everything here is pure: no I/O, and malformed input yields ``None`` /
``False`` rather than an exception. Google changes its URL formats without
notice, so each extraction is an ordered list of small strategies and the
first one that produces a well-formed value wins.
"""

import logging
import re
from collections.abc import Callable
from urllib.parse import parse_qs, unquote, unquote_plus, urlparse

from pydantic import ValidationError

from matchbook.core.metrics import coordinate_rule_total
from matchbook.schemas.place import (
    ClassifiedLink,
    Coordinates,
    ExtractedHints,
    PlaceIdentifier,
    PlaceIdKind,
)
from matchbook.services.duplicates import haversine_meters

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Link recognition
# ---------------------------------------------------------------------------

# google.com, google.de, google.com.au, google.co.uk ...
_GOOGLE_TLD = r"google\.(?:com(?:\.[a-z]{2})?|co\.[a-z]{2}|[a-z]{2,3})"

MAP_LINK_PATTERNS = [
    re.compile(rf"(?:https?://)?(?:www\.)?{_GOOGLE_TLD}/maps", re.I),
    re.compile(rf"(?:https?://)?maps\.{_GOOGLE_TLD}", re.I),
    re.compile(r"(?:https?://)?goo\.gl/maps/", re.I),
    re.compile(r"(?:https?://)?maps\.app\.goo\.gl/", re.I),
]

_LINK_IN_TEXT = re.compile(
    rf"(?:https?://)?(?:"
    rf"(?:www\.)?{_GOOGLE_TLD}/maps\S*"
    rf"|maps\.{_GOOGLE_TLD}\S*"
    rf"|goo\.gl/maps/\S+"
    rf"|maps\.app\.goo\.gl/\S+"
    rf")",
    re.I,
)

_SHORTENED = re.compile(r"^https?://(?:goo\.gl/maps/|maps\.app\.goo\.gl/)", re.I)

# Shared text often wraps the link in punctuation: "(see https://...)."
_TRAILING_PUNCTUATION = ".,;:!?'\")]}>"

_MAPS_HOST = re.compile(rf"^(?:www\.)?{_GOOGLE_TLD}$", re.I)
_MAPS_SUBDOMAIN_HOST = re.compile(rf"^maps\.{_GOOGLE_TLD}$", re.I)
_CONSENT_HOST = re.compile(rf"^consent\.{_GOOGLE_TLD}$", re.I)


def is_map_link(text: str | None) -> bool:
    if not text or not isinstance(text, str):
        return False
    return any(p.search(text) for p in MAP_LINK_PATTERNS)


def extract_link(text: str | None) -> str | None:
    """First map link in *text*, with ``https://`` added when it has no scheme."""
    if not text or not isinstance(text, str):
        return None
    match = _LINK_IN_TEXT.search(text)
    if not match:
        return None
    url = match.group(0).rstrip(_TRAILING_PUNCTUATION)
    if not re.match(r"^https?://", url, re.I):
        url = f"https://{url}"
    return url


def is_shortened(url: str | None) -> bool:
    if not url:
        return False
    return bool(_SHORTENED.match(url))


def classify(text: str | None) -> ClassifiedLink:
    original = text if isinstance(text, str) else ""
    if not is_map_link(original):
        return ClassifiedLink(is_valid=False, original_text=original)

    url = extract_link(original)
    if url is None:
        return ClassifiedLink(is_valid=False, original_text=original)

    return ClassifiedLink(
        is_valid=True,
        canonical_url=url,
        is_shortened=is_shortened(url),
        original_text=original,
    )


def _host_and_path(url: str) -> tuple[str, str]:
    try:
        parsed = urlparse(url)
    except ValueError:
        return "", ""
    return (parsed.hostname or "").lower(), parsed.path or ""


def is_consent_url(url: str | None) -> bool:
    if not url:
        return False
    host, _ = _host_and_path(url)
    return bool(_CONSENT_HOST.match(host))


def consent_continue_target(url: str | None) -> str | None:
    """The ``continue`` destination of a consent interstitial, if present."""
    if not is_consent_url(url):
        return None
    try:
        values = parse_qs(urlparse(url).query).get("continue")
    except ValueError:
        return None
    if not values or not values[0]:
        return None
    return values[0]


def is_maps_destination(url: str | None) -> bool:
    """True when *url* points at a Google Maps page (host and path, not query)."""
    if not url:
        return False
    host, path = _host_and_path(url)
    if _MAPS_SUBDOMAIN_HOST.match(host):
        return True
    return bool(_MAPS_HOST.match(host)) and path.startswith("/maps")


# ---------------------------------------------------------------------------
# Place identifiers
# ---------------------------------------------------------------------------

_HEX_PAIR = r"0x[0-9a-f]+(?::|%3A)0x[0-9a-f]+"

_OPAQUE_ID_MARKER = re.compile(r"!1s(ChI[A-Za-z0-9_-]+)")
_HEX_ID_MARKER = re.compile(rf"!1s({_HEX_PAIR})", re.I)
_PARAM_ID_PATTERNS = [
    re.compile(r"[?&]query_place_id=([A-Za-z0-9_-]+)", re.I),
    re.compile(r"place_id[=:]([A-Za-z0-9_-]+)", re.I),
    re.compile(rf"ftid=({_HEX_PAIR})", re.I),
]
_DATA_PARAM = re.compile(r"data=([^&?#]+)")
_CHI_IN_DATA = re.compile(r"ChI[A-Za-z0-9_-]{20,}")


def _identifier(value: str) -> PlaceIdentifier:
    value = unquote(value)
    kind = PlaceIdKind.COORDINATE if value.lower().startswith("0x") else PlaceIdKind.OPAQUE
    return PlaceIdentifier(value=value, kind=kind)


def extract_place_id(url: str | None) -> PlaceIdentifier | None:
    """Most specific place identifier embedded in a Maps URL.

    Opaque ``ChI...`` ids are preferred because the structured API can look
    them up directly; hex feature ids (``0x...:0x...``) only tell the caller
    that a specific place was shared.
    """
    if not url:
        return None

    m = _OPAQUE_ID_MARKER.search(url)
    if m:
        return _identifier(m.group(1))

    m = _HEX_ID_MARKER.search(url)
    if m:
        return _identifier(m.group(1))

    for pattern in _PARAM_ID_PATTERNS:
        m = pattern.search(url)
        if m:
            return _identifier(m.group(1))

    for data in _DATA_PARAM.findall(url):
        m = _CHI_IN_DATA.search(data)
        if m:
            return _identifier(m.group(0))

    return None


# ---------------------------------------------------------------------------
# Coordinates
# ---------------------------------------------------------------------------

_NUM = r"-?\d{1,3}(?:\.\d+)?"

_EMBEDDED_PAIR = re.compile(rf"!3d({_NUM})!4d({_NUM})")
_IDENTIFIER_THEN_PAIR = re.compile(
    rf"!1s[^!/?&]+(?:![^!/?&]*?)*?!3d({_NUM})!4d({_NUM})"
)
_PLACE_BLOCK_PAIR = re.compile(rf"!8m2!3d({_NUM})!4d({_NUM})")
_PLACE_PATH_PAIR = re.compile(
    rf"/(?:place|search)/(?:[^/?#]+/)?\s*({_NUM})\s*,\s*\+?({_NUM})(?=[/?#@&]|$)"
)
_QUERY_PAIR = re.compile(
    rf"[?&](?:q|ll|query|center|destination)=(?:loc:)?\s*({_NUM})\s*,\s*\+?({_NUM})(?=[&#]|$)",
    re.I,
)
_VIEWPORT_PAIR = re.compile(rf"@({_NUM}),({_NUM})")

# Embedded pairs closer than this to the viewport centre are the viewport echoed
VIEWPORT_EPSILON_METERS = 11.0


def _to_coordinates(lat: str, lng: str) -> Coordinates | None:
    """Parse a pair, discarding (never clamping) out-of-range values."""
    try:
        return Coordinates(lat=float(lat), lng=float(lng))
    except (ValueError, ValidationError):
        return None


def _valid_pairs(pattern: re.Pattern, url: str) -> list[Coordinates]:
    pairs = []
    for m in pattern.finditer(url):
        coords = _to_coordinates(m.group(1), m.group(2))
        if coords is not None:
            pairs.append(coords)
    return pairs


def _first_valid(pattern: re.Pattern, url: str) -> Coordinates | None:
    pairs = _valid_pairs(pattern, url)
    return pairs[0] if pairs else None


def _after_identifier(url: str) -> Coordinates | None:
    return _first_valid(_IDENTIFIER_THEN_PAIR, url)


def _place_path(url: str) -> Coordinates | None:
    return _first_valid(_PLACE_PATH_PAIR, url) or _first_valid(_PLACE_BLOCK_PAIR, url)


def _off_viewport(url: str) -> Coordinates | None:
    viewport = _first_valid(_VIEWPORT_PAIR, url)
    if viewport is None:
        return None
    for pair in _valid_pairs(_EMBEDDED_PAIR, url):
        if haversine_meters(pair, viewport) > VIEWPORT_EPSILON_METERS:
            return pair
    return None


def _last_embedded(url: str) -> Coordinates | None:
    pairs = _valid_pairs(_EMBEDDED_PAIR, url)
    return pairs[-1] if pairs else None


def _query_param(url: str) -> Coordinates | None:
    return _first_valid(_QUERY_PAIR, url)


def _viewport(url: str) -> Coordinates | None:
    return _first_valid(_VIEWPORT_PAIR, url)


# Highest confidence first. The viewport centre is where the map was
# scrolled to, not necessarily the place, so it comes last.
COORDINATE_STRATEGIES: list[tuple[str, Callable[[str], Coordinates | None]]] = [
    ("identifier", _after_identifier),
    ("place_path", _place_path),
    ("off_viewport", _off_viewport),
    ("last_embedded", _last_embedded),
    ("query", _query_param),
    ("viewport", _viewport),
]

_HIGH_CONFIDENCE_RULES = {"identifier", "place_path"}


def extract_coordinates(url: str | None) -> tuple[Coordinates | None, str | None]:
    """Best coordinate pair in *url* and the name of the rule that found it."""
    if not url:
        return None, None

    decoded = unquote(url)
    for rule, strategy in COORDINATE_STRATEGIES:
        coords = strategy(decoded)
        if coords is None:
            continue
        coordinate_rule_total.labels(rule=rule).inc()
        if rule in _HIGH_CONFIDENCE_RULES:
            logger.debug(f"Coordinates {coords.as_query()} from rule {rule}")
        else:
            logger.info(
                f"Coordinates {coords.as_query()} from low-priority rule {rule}",
                extra={"coordinate_rule": rule},
            )
        return coords, rule
    return None, None


# ---------------------------------------------------------------------------
# Name and address fragments
# ---------------------------------------------------------------------------

_PLACE_SEGMENT = re.compile(r"/place/([^/@?#]+)")
_COORDINATE_SHAPED = re.compile(rf"^\s*{_NUM}\s*,\s*\+?{_NUM}\s*$")


def _place_segment(url: str | None) -> str | None:
    if not url:
        return None
    m = _PLACE_SEGMENT.search(url)
    if not m:
        return None
    segment = unquote_plus(m.group(1)).strip()
    if not segment or _COORDINATE_SHAPED.match(segment):
        return None
    return segment


def extract_name_fragment(url: str | None) -> str | None:
    segment = _place_segment(url)
    if segment is None or len(segment) < 2 or segment.replace(" ", "").isdigit():
        return None
    return segment


def extract_address_fragment(url: str | None) -> str | None:
    """The place segment when it plausibly reads as an address.

    A weak substitute, used only when nothing better is available.
    """
    segment = _place_segment(url)
    if segment is None:
        return None
    if any(ch.isdigit() for ch in segment) or "," in segment:
        return segment
    return None


def extract_hints(url: str | None) -> ExtractedHints:
    coords, rule = extract_coordinates(url)
    return ExtractedHints(
        place_id=extract_place_id(url),
        coordinates=coords,
        coordinate_source=rule,
        name_fragment=extract_name_fragment(url),
        address_fragment=extract_address_fragment(url),
    )
