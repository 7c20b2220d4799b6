from abc import ABC, abstractmethod
from typing import Iterator, List, Mapping, Optional
from urllib.parse import urljoin


class BaseConnector(ABC):
    """A listing source walked seed by seed, page by page."""

    name: str
    base_url: str

    def absolute_url(self, href: str) -> str:
        return urljoin(self.base_url.rstrip("/") + "/", href.strip())

    @abstractmethod
    def start_urls(self) -> List[str]:  # pragma: no cover - interface
        """Absolute, de-duplicated seed URLs for this run."""

    @abstractmethod
    def fetch_listings(self) -> Iterator[dict]:  # pragma: no cover - interface
        """Walk every seed and yield finished listing records in emission order."""

    @abstractmethod
    def parse_listing(self, payload: Mapping):  # pragma: no cover - interface
        """Extract raw records and the next-page pointer from ``{"html": ..., "url": ...}``."""

    @abstractmethod
    def normalize_fields(self, parsed: Mapping) -> Optional[dict]:  # pragma: no cover - interface
        """Map one raw record onto canonical listing fields, or None to drop it."""
