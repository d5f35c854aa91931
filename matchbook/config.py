import logging

from pydantic_settings import BaseSettings
from typing import List

_logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Matchbook"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    # "production" switches the browser to the sandbox-constrained launch profile
    ENVIRONMENT: str = "development"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Google Places API (New)
    GOOGLE_MAPS_API_KEY: str = ""
    PLACES_API_BASE_URL: str = "https://places.googleapis.com/v1"
    PLACES_API_TIMEOUT: float = 10.0  # seconds
    PLACES_SEARCH_RADIUS_METERS: float = 5000.0

    # Short link expansion
    EXPANSION_TIMEOUT: float = 10.0  # seconds

    # Browser session
    BROWSER_HEADLESS: bool = True
    BROWSER_EXECUTABLE_PATH: str = ""  # empty = Playwright-managed Chromium
    BROWSER_IDLE_TIMEOUT: float = 60.0  # seconds since last acquire()
    BROWSER_IDLE_CHECK_INTERVAL: float = 10.0  # seconds between idle checks

    # Scraping
    SCRAPE_NAVIGATION_TIMEOUT: int = 30000  # ms
    SCRAPE_SELECTOR_TIMEOUT: int = 10000  # ms
    SCRAPE_SETTLE_MS: int = 2500
    SCRAPE_TOTAL_TIMEOUT: float = 60.0  # seconds, hard cap per scrape

    # Duplicate detection
    DUPLICATE_THRESHOLD_METERS: float = 50.0

    # Sentry
    SENTRY_DSN: str = ""
    SENTRY_TRACES_SAMPLE_RATE: float = 0.2
    SENTRY_ENVIRONMENT: str = "development"

    # Logging
    LOG_FORMAT: str = "json"  # "json" for production, "text" for development
    LOG_LEVEL: str = "INFO"

    # Metrics
    METRICS_ENABLED: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def model_post_init(self, __context) -> None:
        if not self.GOOGLE_MAPS_API_KEY:
            _logger.warning(
                "GOOGLE_MAPS_API_KEY not set; Places API stages will be skipped "
                "and resolution falls back to scraping."
            )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


settings = Settings()
