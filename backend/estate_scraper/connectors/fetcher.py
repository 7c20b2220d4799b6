import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from estate_scraper.core.config import Settings, get_settings
from estate_scraper.core.errors import TransportError

from .proxy import ProxyPool
from .session import Session, rotate_session
from .transports import BaseTransport, TransportResponse

logger = logging.getLogger(__name__)

CHALLENGE_MARKERS = ("cf-browser-verification", "Just a moment", "Checking your browser")

HTML_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-GB,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Upgrade-Insecure-Requests": "1",
}

JSON_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-GB,en;q=0.9",
}


class FetchStatus(str, Enum):
    SUCCESS = "success"
    BLOCKED = "blocked"
    SERVER_ERROR = "server_error"
    CHALLENGE = "challenge"
    TRANSPORT_FAILURE = "transport_failure"


@dataclass
class FetchOutcome:
    url: str
    status: FetchStatus
    status_code: Optional[int] = None
    body: Optional[str] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.SUCCESS


def is_challenge(body: Optional[str]) -> bool:
    if not body:
        return False
    return any(marker in body for marker in CHALLENGE_MARKERS)


class Fetcher:
    """Fetches one URL at a time with bounded retries and identity rotation.

    The session and any browser context are owned by the fetcher: a block, an
    unresolved challenge or a transport failure rotates the session in place and
    resets every transport before the next attempt.
    """

    def __init__(
        self,
        session: Session,
        document_transport: BaseTransport,
        data_transport: Optional[BaseTransport] = None,
        proxies: Optional[ProxyPool] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.session = session
        self.document_transport = document_transport
        self.data_transport = data_transport or document_transport
        self.proxies = proxies or ProxyPool()
        self.settings = settings or get_settings()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._proxy_url = self.proxies.current_url()
        self.rotations = 0

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _transports(self) -> List[BaseTransport]:
        if self.data_transport is self.document_transport:
            return [self.document_transport]
        return [self.document_transport, self.data_transport]

    def close(self) -> None:
        for transport in self._transports():
            transport.close()

    def _headers(self, kind: str, referer: Optional[str]) -> Dict[str, str]:
        headers = dict(self.session.headers)
        headers.update(JSON_HEADERS if kind == "data" else HTML_HEADERS)
        if referer:
            headers["Referer"] = referer
        return headers

    def _proxy_for_request(self) -> Optional[str]:
        if self.proxies.rotate_per_request:
            self._proxy_url = self.proxies.new_url()
        return self._proxy_url

    def rotate(self, reason: str) -> None:
        rotate_session(self.session, self._rng)
        for transport in self._transports():
            transport.reset()
        if self.proxies:
            self._proxy_url = self.proxies.new_url()
        self.rotations += 1
        logger.warning("Rotated session after %s (rotation #%s)", reason, self.rotations)

    def _retry_delay(self, attempt: int) -> float:
        return self.settings.retry_base_delay_seconds * attempt + self._rng.uniform(0, self.settings.retry_jitter_seconds)

    def _await_challenge(self, transport: BaseTransport) -> Optional[str]:
        timeout = self.settings.challenge_timeout_seconds
        interval = max(self.settings.challenge_poll_interval_seconds, 0.1)
        logger.info("Challenge page detected, waiting up to %.0fs for it to clear", timeout)
        waited = 0.0
        while waited < timeout:
            self._sleep(interval)
            waited += interval
            body = transport.current_body()
            if body is None:
                break
            if not is_challenge(body):
                logger.info("Challenge passed after %.1fs", waited)
                return body
        logger.warning("Challenge not resolved")
        return None

    def _classify(
        self, response: TransportResponse, transport: BaseTransport, kind: str
    ) -> Tuple[FetchStatus, Optional[int], Optional[str]]:
        # Interstitials are often served with 403/503, so look for them first.
        if kind == "document" and is_challenge(response.body):
            resolved = self._await_challenge(transport)
            if resolved is None:
                return FetchStatus.CHALLENGE, response.status_code, None
            return FetchStatus.SUCCESS, 200, resolved
        if response.status_code in (403, 429):
            return FetchStatus.BLOCKED, response.status_code, None
        if response.status_code >= 500:
            return FetchStatus.SERVER_ERROR, response.status_code, None
        return FetchStatus.SUCCESS, response.status_code, response.body

    def fetch(self, url: str, kind: str = "document", referer: Optional[str] = None) -> FetchOutcome:
        transport = self.data_transport if kind == "data" else self.document_transport
        max_attempts = max(self.settings.max_fetch_attempts, 1)
        status = FetchStatus.TRANSPORT_FAILURE
        status_code: Optional[int] = None

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                delay = self._retry_delay(attempt)
                logger.info("Retry attempt %s/%s for %s after %.1fs", attempt, max_attempts, url, delay)
                self._sleep(delay)

            try:
                response = transport.send(
                    url,
                    self.session,
                    self._headers(kind, referer),
                    self._proxy_for_request(),
                    self.settings.request_timeout_seconds,
                    kind=kind,
                )
            except TransportError as exc:
                status, status_code = FetchStatus.TRANSPORT_FAILURE, None
                logger.warning("Fetch attempt %s failed for %s: %s", attempt, url, exc)
                self.rotate("transport failure")
                continue

            status, status_code, body = self._classify(response, transport, kind)
            if status is FetchStatus.SUCCESS:
                return FetchOutcome(url=url, status=status, status_code=status_code, body=body, attempts=attempt)

            if status is FetchStatus.SERVER_ERROR:
                logger.warning("Server error %s on attempt %s for %s", status_code, attempt, url)
                self._sleep(self.settings.server_error_delay_seconds * attempt)
            else:
                logger.warning("Request %s (%s) on attempt %s for %s", status.value, status_code, attempt, url)
                self.rotate(status.value)

        logger.error("Failed to fetch %s after %s attempts (last: %s)", url, max_attempts, status.value)
        return FetchOutcome(url=url, status=status, status_code=status_code, body=None, attempts=max_attempts)

    def warm_up(self, url: str) -> bool:
        logger.info("Warming up session on %s", url)
        outcome = self.fetch(url, kind="document")
        if not outcome.ok:
            logger.warning("Session warm-up failed for %s (%s); continuing without it", url, outcome.status.value)
            return False
        return True
