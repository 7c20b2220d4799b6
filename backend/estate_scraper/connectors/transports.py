import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

import httpx
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from estate_scraper.core.config import Settings
from estate_scraper.core.errors import TransportError

from .session import Session

logger = logging.getLogger(__name__)

# Managed by the browser itself; forcing them breaks navigation.
_BROWSER_MANAGED_HEADERS = {"user-agent", "accept-encoding", "connection"}


@dataclass
class TransportResponse:
    status_code: int
    body: str


class BaseTransport(ABC):
    @abstractmethod
    def send(
        self,
        url: str,
        session: Session,
        headers: Mapping[str, str],
        proxy_url: Optional[str],
        timeout: float,
        kind: str = "document",
    ) -> TransportResponse:  # pragma: no cover - interface
        """Issue one request. Raises TransportError when no response was received."""

    def current_body(self) -> Optional[str]:
        """Body of the live document, for transports that keep one open."""
        return None

    def reset(self) -> None:
        """Drop connection and render state tied to the current identity."""

    def close(self) -> None:
        self.reset()


def _cookie_header(cookies: Mapping[str, str]) -> Optional[str]:
    if not cookies:
        return None
    return "; ".join(f"{name}={value}" for name, value in cookies.items())


class HttpxTransport(BaseTransport):
    def __init__(self, client: Optional[httpx.Client] = None) -> None:
        self._client = client
        self._owns_client = client is None
        self._client_proxy: Optional[str] = None

    def _client_for(self, proxy_url: Optional[str]) -> httpx.Client:
        if self._client is not None and (not self._owns_client or proxy_url == self._client_proxy):
            return self._client
        self.reset()
        self._client = httpx.Client(proxy=proxy_url, follow_redirects=True)
        self._client_proxy = proxy_url
        self._owns_client = True
        return self._client

    def send(
        self,
        url: str,
        session: Session,
        headers: Mapping[str, str],
        proxy_url: Optional[str],
        timeout: float,
        kind: str = "document",
    ) -> TransportResponse:
        request_headers: Dict[str, str] = dict(headers)
        cookie = _cookie_header(session.cookies)
        if cookie:
            request_headers["Cookie"] = cookie
        client = self._client_for(proxy_url)
        try:
            response = client.get(url, headers=request_headers, timeout=timeout)
        except httpx.TransportError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc
        session.cookies.update({name: value for name, value in response.cookies.items()})
        return TransportResponse(status_code=response.status_code, body=response.text)

    def reset(self) -> None:
        if self._client is None:
            return
        if self._owns_client:
            self._client.close()
            self._client = None
            self._client_proxy = None
        else:
            self._client.cookies.clear()


class PlaywrightTransport(BaseTransport):
    """Headless Firefox page renderer.

    The browser is launched on first use. The context and page belong to one
    identity and are torn down on ``reset()``; ``close()`` also stops the browser.
    """

    def __init__(
        self,
        headless: bool = True,
        block_resources: bool = True,
        cookie_url: str = "https://www.zoopla.co.uk",
        locale: str = "en-GB",
        timezone_id: str = "Europe/London",
    ) -> None:
        self.headless = headless
        self.block_resources = block_resources
        self.cookie_url = cookie_url
        self.locale = locale
        self.timezone_id = timezone_id
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None
        self._context_key: Optional[Tuple[str, Optional[str]]] = None

    def _ensure_page(self, session: Session, proxy_url: Optional[str]):
        key = (session.id, proxy_url)
        if self._page is not None and not self._page.is_closed() and key == self._context_key:
            return self._page
        self.reset()
        if self._playwright is None:
            self._playwright = sync_playwright().start()
        if self._browser is None:
            self._browser = self._playwright.firefox.launch(headless=self.headless)

        context_args = {
            "user_agent": session.user_agent,
            "viewport": {"width": 1920, "height": 1080},
            "locale": self.locale,
            "timezone_id": self.timezone_id,
        }
        if proxy_url:
            context_args["proxy"] = {"server": proxy_url}
        self._context = self._browser.new_context(**context_args)
        if session.cookies:
            self._context.add_cookies(
                [{"name": name, "value": value, "url": self.cookie_url} for name, value in session.cookies.items()]
            )
        if self.block_resources:
            self._context.route("**/*", lambda route: self._block_resources(route))
        self._page = self._context.new_page()
        self._context_key = key
        logger.debug("Opened browser context for session %s", session.id)
        return self._page

    def _block_resources(self, route) -> None:
        if route.request.resource_type in {"image", "media", "font"}:
            return route.abort()
        return route.continue_()

    def _sync_cookies(self, session: Session) -> None:
        for cookie in self._context.cookies():
            session.cookies[cookie["name"]] = cookie["value"]

    def send(
        self,
        url: str,
        session: Session,
        headers: Mapping[str, str],
        proxy_url: Optional[str],
        timeout: float,
        kind: str = "document",
    ) -> TransportResponse:
        timeout_ms = timeout * 1000
        extra_headers = {k: v for k, v in headers.items() if k.lower() not in _BROWSER_MANAGED_HEADERS}
        try:
            page = self._ensure_page(session, proxy_url)
            if kind == "data":
                response = self._context.request.get(url, headers=extra_headers, timeout=timeout_ms)
                return TransportResponse(status_code=response.status, body=response.text())

            self._context.set_extra_http_headers(extra_headers)
            response = page.goto(url, wait_until="networkidle", timeout=timeout_ms)
            body = page.content()
            self._sync_cookies(session)
        except PlaywrightError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc
        return TransportResponse(status_code=response.status if response else 0, body=body)

    def current_body(self) -> Optional[str]:
        if self._page is None or self._page.is_closed():
            return None
        try:
            return self._page.content()
        except PlaywrightError as exc:
            logger.debug("Unable to read rendered page: %s", exc)
            return None

    def reset(self) -> None:
        if self._context is not None:
            try:
                self._context.close()
            except PlaywrightError as exc:
                logger.debug("Browser context close failed: %s", exc)
        self._context = None
        self._page = None
        self._context_key = None

    def close(self) -> None:
        self.reset()
        if self._browser is not None:
            try:
                self._browser.close()
            except PlaywrightError as exc:
                logger.debug("Browser close failed: %s", exc)
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None


def build_transports(
    settings: Settings, client: Optional[httpx.Client] = None
) -> Tuple[BaseTransport, BaseTransport]:
    """Return ``(document_transport, data_transport)`` for ``settings.transport_mode``."""
    mode = settings.transport_mode
    if mode == "http":
        http = HttpxTransport(client)
        return http, http

    renderer = PlaywrightTransport(
        headless=settings.browser_headless,
        block_resources=settings.block_resources,
        cookie_url=settings.base_url,
    )
    if mode == "browser":
        return renderer, renderer
    return renderer, HttpxTransport(client)
