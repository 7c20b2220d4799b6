import logging
import random
import re
import time
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Iterator, List, Mapping, Optional
from urllib.parse import urlencode, urljoin

from estate_scraper.core.config import Settings, get_settings
from estate_scraper.schemas.run import RunConfig
from estate_scraper.services.dedup import DedupIndex
from estate_scraper.services.enrichment import DetailEnricher
from estate_scraper.services.normalization import dedup_key, merge_detail, normalize_listing, strip_empty

from .base import BaseConnector
from .extraction import TIER_EMBEDDED, TIER_LINKED_DATA, SearchPayload, extract_search_payload
from .fetcher import Fetcher

logger = logging.getLogger(__name__)

BASE_URL = "https://www.zoopla.co.uk"
PROGRESS_EVERY = 10


def build_search_url(config: RunConfig, page: int = 1, base_url: str = BASE_URL) -> str:
    location_slug = re.sub(r"\s+", "-", (config.location or "").strip().lower())
    params: Dict[str, str] = {}
    if config.location:
        params["q"] = config.location
    params["search_source"] = config.listing_type
    if config.min_beds is not None:
        params["beds_min"] = str(config.min_beds)
    if config.max_beds is not None:
        params["beds_max"] = str(config.max_beds)
    if config.min_price:
        params["price_min"] = str(config.min_price)
    if config.max_price:
        params["price_max"] = str(config.max_price)
    if config.radius:
        params["radius"] = f"{config.radius:g}"
    if page > 1:
        params["pn"] = str(page)
    path = "/".join(part for part in (config.listing_type, config.property_type, location_slug) if part)
    return f"{base_url.rstrip('/')}/{path}/?{urlencode(params)}"


def get_start_urls(config: RunConfig, base_url: str = BASE_URL) -> List[str]:
    seeds = config.explicit_start_urls() or [build_search_url(config, base_url=base_url)]
    absolute = [urljoin(base_url.rstrip("/") + "/", seed.strip()) for seed in seeds]
    return list(dict.fromkeys(url for url in absolute if url))


@dataclass
class PaginationState:
    seed_url: str
    current_url: Optional[str]
    page: int = 1


@dataclass
class ScrapeStats:
    pages: int = 0
    embedded: int = 0
    linked_data: int = 0
    markup: int = 0
    detail_enhanced: int = 0
    saved: int = 0
    duplicates: int = 0
    dropped: int = 0
    failed_pages: int = 0

    def count_tier(self, tier: str) -> None:
        if tier == TIER_EMBEDDED:
            self.embedded += 1
        elif tier == TIER_LINKED_DATA:
            self.linked_data += 1
        else:
            self.markup += 1

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


class ZooplaConnector(BaseConnector):
    """Walks search result pages seed by seed and yields canonical listings."""

    name = "zoopla"

    def __init__(
        self,
        config: RunConfig,
        fetcher: Fetcher,
        enricher: Optional[DetailEnricher] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config
        self.fetcher = fetcher
        self.enricher = enricher
        self.settings = settings or get_settings()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.base_url = self.settings.base_url
        self.dedup = DedupIndex()
        self.stats = ScrapeStats()

    def _delay(self, low: float, high: float) -> None:
        if high <= 0:
            return
        self._sleep(self._rng.uniform(low, max(low, high)))

    def _cap_reached(self) -> bool:
        return self.stats.saved >= self.config.results_wanted

    def start_urls(self) -> List[str]:
        return get_start_urls(self.config, base_url=self.base_url)

    def parse_listing(self, payload: Mapping) -> SearchPayload:
        return extract_search_payload(str(payload.get("html") or ""), str(payload.get("url") or ""))

    def normalize_fields(self, parsed: Mapping) -> Optional[dict]:
        return normalize_listing(parsed, self.config.listing_type, self.config.location)

    def fetch_listings(self) -> Iterator[dict]:
        if self.settings.warm_up:
            self.fetcher.warm_up(self.absolute_url("/"))

        for seed in self.start_urls():
            if self._cap_reached():
                break
            yield from self._walk_seed(seed)

        logger.info(
            "[zoopla] completed: saved=%s pages=%s embedded=%s linked_data=%s markup=%s detail_enhanced=%s",
            self.stats.saved,
            self.stats.pages,
            self.stats.embedded,
            self.stats.linked_data,
            self.stats.markup,
            self.stats.detail_enhanced,
        )

    def _walk_seed(self, seed: str) -> Iterator[dict]:
        state = PaginationState(seed_url=seed, current_url=seed)
        while state.current_url and not self._cap_reached() and state.page <= self.config.max_pages:
            if state.page > 1:
                self._delay(self.settings.page_delay_min_seconds, self.settings.page_delay_max_seconds)
            logger.info(
                "[zoopla] page %s/%s (saved %s/%s) %s",
                state.page,
                self.config.max_pages,
                self.stats.saved,
                self.config.results_wanted,
                state.current_url,
            )

            outcome = self.fetcher.fetch(state.current_url, kind="document")
            if not outcome.ok:
                self.stats.failed_pages += 1
                logger.warning("[zoopla] no response for %s, stopping this seed", state.current_url)
                return

            self.stats.pages += 1
            payload = self.parse_listing({"html": outcome.body, "url": state.current_url})
            if not payload.records:
                logger.warning("[zoopla] no listings on %s, stopping this seed", state.current_url)
                return
            self.stats.count_tier(payload.tier)
            logger.info("[zoopla] extracted %s listings from %s data", len(payload.records), payload.tier)

            for raw in payload.records:
                if self._cap_reached():
                    break
                record = self._process(raw, referer=state.current_url)
                if record is not None:
                    yield record

            if not payload.next_page_url:
                logger.info("[zoopla] no further page after %s, stopping this seed", state.current_url)
                return
            state.current_url = payload.next_page_url
            state.page += 1

    def _process(self, raw: Mapping, referer: str) -> Optional[dict]:
        listing = self.normalize_fields(raw)
        if listing is None:
            self.stats.dropped += 1
            return None
        if not self.dedup.add(dedup_key(listing)):
            self.stats.duplicates += 1
            return None

        if self.config.include_details and self.enricher is not None:
            self._delay(self.settings.detail_delay_min_seconds, self.settings.detail_delay_max_seconds)
            detail = self.enricher.enrich(listing, referer=referer)
            if detail:
                merge_detail(listing, detail)
                self.stats.detail_enhanced += 1

        self.stats.saved += 1
        if self.stats.saved % PROGRESS_EVERY == 0:
            logger.info("[zoopla] progress: %s/%s listings saved", self.stats.saved, self.config.results_wanted)
        return strip_empty(listing)
