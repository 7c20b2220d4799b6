import logging
import random
from typing import Optional, Sequence

logger = logging.getLogger(__name__)


class ProxyPool:
    """Hands out egress URLs; a new one is requested on every session rotation."""

    def __init__(self, urls: Sequence[str] = (), rotate_per_request: bool = False, rng: Optional[random.Random] = None) -> None:
        self.urls = [url for url in urls if url]
        self.rotate_per_request = rotate_per_request
        self._rng = rng or random.Random()
        self._current: Optional[str] = None

    def __bool__(self) -> bool:
        return bool(self.urls)

    def new_url(self) -> Optional[str]:
        if not self.urls:
            return None
        candidates = [url for url in self.urls if url != self._current] or self.urls
        self._current = self._rng.choice(candidates)
        logger.debug("Switched egress proxy")
        return self._current

    def current_url(self) -> Optional[str]:
        if self._current is None:
            return self.new_url()
        return self._current
