import json
import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional

from estate_scraper.connectors.extraction import extract_detail_record
from estate_scraper.connectors.fetcher import Fetcher
from estate_scraper.core.config import Settings, get_settings

from .normalization import build_listing

logger = logging.getLogger(__name__)

DETAIL_API_PATH = "/api/search/bolt-on/{listing_id}/"


class DetailEnricher:
    """Fetches the richer record behind a search result.

    The per-listing data endpoint is tried first when the listing has an
    identifier, then the listing's own page. Only embedded state and linked
    data are read from detail pages.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.fetcher = fetcher
        self.settings = settings or get_settings()
        self._sleep = sleep

    def _detail_api_url(self, listing_id: str) -> str:
        return self.settings.base_url.rstrip("/") + DETAIL_API_PATH.format(listing_id=listing_id)

    def fetch_detail_api(self, listing_id: Optional[str], referer: Optional[str] = None) -> Optional[Dict[str, Any]]:
        if not listing_id:
            return None
        outcome = self.fetcher.fetch(self._detail_api_url(listing_id), kind="data", referer=referer)
        if not outcome.ok or outcome.status_code != 200:
            return None
        try:
            payload = json.loads(outcome.body or "")
        except ValueError as exc:
            logger.debug("Detail data parse failed for %s: %s", listing_id, exc)
            return None
        data = payload.get("data") if isinstance(payload, Mapping) else None
        return data if isinstance(data, dict) and data else None

    def fetch_detail_page(self, url: Optional[str], referer: Optional[str] = None) -> Optional[Dict[str, Any]]:
        if not url:
            return None
        outcome = self.fetcher.fetch(url, kind="document", referer=referer)
        if not outcome.ok:
            return None
        return extract_detail_record(outcome.body or "", url)

    def enrich(self, listing: Mapping[str, Any], referer: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Return the detail record for ``listing`` in canonical field names, or None."""
        url = listing.get("url")
        listing_id = listing.get("listing_id")
        attempts = max(self.settings.detail_attempts, 1)
        for attempt in range(1, attempts + 1):
            raw = self.fetch_detail_api(listing_id, referer) or self.fetch_detail_page(url, referer)
            if raw:
                return build_listing(raw, fallback_url=url)
            if attempt < attempts:
                logger.warning("Detail attempt %s failed for %s", attempt, url or listing_id)
                self._sleep(self.settings.detail_retry_delay_seconds * attempt)
        logger.warning("Failed to fetch detail for %s", url or listing_id)
        return None
