from prometheus_client import (
    Counter,
    Gauge,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# ---------------------------------------------------------------------------
# Resolution pipeline
# ---------------------------------------------------------------------------
resolution_requests_total = Counter(
    "resolution_requests_total",
    "Place resolution requests by final outcome",
    ["outcome"],
)
resolution_stage_total = Counter(
    "resolution_stage_total",
    "Resolution stage executions by stage and outcome",
    ["stage", "outcome"],
)
coordinate_rule_total = Counter(
    "coordinate_rule_total",
    "Which coordinate tie-break rule produced the extracted pair",
    ["rule"],
)

# ---------------------------------------------------------------------------
# External services
# ---------------------------------------------------------------------------
places_api_requests_total = Counter(
    "places_api_requests_total",
    "Google Places API calls by endpoint and status",
    ["endpoint", "status"],
)
link_expansions_total = Counter(
    "link_expansions_total",
    "Short link expansions by outcome",
    ["outcome"],
)

# ---------------------------------------------------------------------------
# Browser session
# ---------------------------------------------------------------------------
browser_launches_total = Counter(
    "browser_launches_total",
    "Headless browser processes launched",
)
browser_evictions_total = Counter(
    "browser_evictions_total",
    "Headless browser processes closed by the idle reaper",
)
active_browser_pages = Gauge(
    "active_browser_pages",
    "Pages currently open on the shared browser",
)


def get_metrics() -> bytes:
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
