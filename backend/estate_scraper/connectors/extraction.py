import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Mapping, Optional, Sequence
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup

from estate_scraper.services.normalization import extract_listing_id

logger = logging.getLogger(__name__)

TIER_EMBEDDED = "embedded"
TIER_LINKED_DATA = "linked-data"
TIER_MARKUP = "markup"

PAGE_PARAM = "pn"
MAX_SEARCH_DEPTH = 12

LISTING_MARKERS = ("listingId", "listing_id", "id", "propertyId", "listingUris", "displayAddress")

WINDOW_STATE_PATTERN = re.compile(r"window\.(?:__PRELOADED_STATE__|__INITIAL_STATE__)\s*=\s*")

NEXT_LINK_PATHS = (
    ("props", "pageProps", "searchResults", "pagination", "next", "link"),
    ("props", "pageProps", "searchResults", "pagination", "nextUrl"),
    ("searchResults", "pagination", "next", "link"),
    ("searchResults", "pagination", "nextUrl"),
    ("pagination", "next", "link"),
    ("pagination", "nextUrl"),
    ("pagination", "next"),
    ("nextUrl",),
)

NEXT_PAGE_NUMBER_PATHS = (
    ("props", "pageProps", "searchResults", "pagination", "nextPage"),
    ("props", "pageProps", "searchResults", "pagination", "next"),
    ("searchResults", "pagination", "nextPage"),
    ("pagination", "nextPage"),
    ("pagination", "next"),
    ("nextPage",),
)

DETAIL_STATE_PATHS = (
    ("props", "pageProps", "listingDetails"),
    ("props", "pageProps", "listing"),
    ("listing",),
    ("pageProps", "listingDetails"),
    ("pageProps", "listing"),
)

# Typed linked-data payloads that describe the page, not a listing.
NON_LISTING_TYPES = {"BreadcrumbList", "WebSite", "WebPage", "Organization", "SearchResultsPage", "SearchAction"}

MARKUP_CARD_SELECTOR = '[data-testid="search-result"], .listing-results-wrapper > div, article'
MARKUP_LINK_SELECTOR = 'a[href*="/for-sale/details"], a[href*="/to-rent/details"], a[href*="/details/"]'
NEXT_TEXTS = {"next", "next page"}
NEXT_GLYPHS = "›»>→"


@dataclass
class SearchPayload:
    records: List[dict] = field(default_factory=list)
    next_page_url: Optional[str] = None
    tier: str = TIER_MARKUP


def to_absolute_url(href: Optional[str], base: str) -> Optional[str]:
    if not href or not isinstance(href, str):
        return None
    try:
        return urljoin(base, href.strip())
    except ValueError:
        return href


def _pick(data: Any, path: Sequence[str]) -> Any:
    node = data
    for key in path:
        if not isinstance(node, Mapping) or key not in node:
            return None
        node = node[key]
    return node


def with_page_number(url: str, page: int) -> str:
    parsed = urlparse(url)
    params = [(key, value) for key, value in parse_qsl(parsed.query, keep_blank_values=True) if key != PAGE_PARAM]
    params.append((PAGE_PARAM, str(page)))
    return urlunparse(parsed._replace(query=urlencode(params)))


def _text(node) -> Optional[str]:
    if node is None:
        return None
    text = node.get_text(" ", strip=True)
    return text or None


# ---------------------------------------------------------------------------
# Embedded page state
# ---------------------------------------------------------------------------


def extract_embedded_state(soup: BeautifulSoup, html: str) -> Optional[dict]:
    script = soup.find("script", id="__NEXT_DATA__")
    if script is not None:
        try:
            payload = json.loads(script.string or script.get_text())
            if isinstance(payload, dict):
                return payload
        except (TypeError, ValueError) as exc:
            logger.debug("Failed to parse __NEXT_DATA__: %s", exc)

    match = WINDOW_STATE_PATTERN.search(html)
    if match:
        try:
            payload, _ = json.JSONDecoder().raw_decode(html, match.end())
            if isinstance(payload, dict):
                return payload
        except ValueError as exc:
            logger.debug("Failed to parse window state: %s", exc)
    return None


def _looks_like_listing(item: Any) -> bool:
    return isinstance(item, Mapping) and any(item.get(marker) for marker in LISTING_MARKERS)


def find_listing_array(data: Any, max_depth: int = MAX_SEARCH_DEPTH) -> Optional[list]:
    """Depth-first search, in document order, for the first list of listing-like objects."""
    seen: set[int] = set()
    stack = [(data, 0)]
    while stack:
        node, depth = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))

        if isinstance(node, list):
            if any(_looks_like_listing(item) for item in node):
                return node
            children = node
        elif isinstance(node, Mapping):
            children = list(node.values())
        else:
            continue

        if depth >= max_depth:
            continue
        for child in reversed(children):
            if isinstance(child, (Mapping, list)):
                stack.append((child, depth + 1))
    return None


def next_page_from_state(state: Optional[Mapping], current_url: str) -> Optional[str]:
    if not state:
        return None
    for path in NEXT_LINK_PATHS:
        candidate = _pick(state, path)
        if isinstance(candidate, str) and candidate.strip():
            return to_absolute_url(candidate, current_url)
    for path in NEXT_PAGE_NUMBER_PATHS:
        candidate = _pick(state, path)
        if isinstance(candidate, int) and not isinstance(candidate, bool) and candidate > 0:
            return with_page_number(current_url, candidate)
    return None


# ---------------------------------------------------------------------------
# Linked data (JSON-LD)
# ---------------------------------------------------------------------------


def _iter_linked_data(soup: BeautifulSoup) -> Iterator[dict]:
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            parsed = json.loads(script.string or script.get_text())
        except (TypeError, ValueError) as exc:
            logger.debug("Failed to parse JSON-LD: %s", exc)
            continue
        payloads = parsed if isinstance(parsed, list) else [parsed]
        for payload in payloads:
            if not isinstance(payload, dict):
                continue
            graph = payload.get("@graph")
            if isinstance(graph, list):
                yield from (entry for entry in graph if isinstance(entry, dict))
            else:
                yield payload


def _ld_types(payload: Mapping) -> set[str]:
    value = payload.get("@type")
    if isinstance(value, list):
        return {str(item) for item in value}
    return {str(value)} if value else set()


def extract_linked_data_listings(soup: BeautifulSoup, base_url: str) -> List[dict]:
    results: List[dict] = []
    for payload in _iter_linked_data(soup):
        types = _ld_types(payload)
        if "ItemList" in types and isinstance(payload.get("itemListElement"), list):
            for entry in payload["itemListElement"]:
                if not isinstance(entry, dict):
                    continue
                item = entry.get("item")
                if isinstance(item, dict):
                    results.append({**item, "url": to_absolute_url(item.get("url") or item.get("@id"), base_url)})
                elif entry.get("url"):
                    results.append(
                        {
                            "url": to_absolute_url(entry["url"], base_url),
                            "title": entry.get("name"),
                            "price": entry.get("price"),
                        }
                    )
        elif types and not types & NON_LISTING_TYPES and payload.get("url"):
            results.append({**payload, "url": to_absolute_url(payload["url"], base_url)})
    return results


# ---------------------------------------------------------------------------
# Markup heuristics
# ---------------------------------------------------------------------------


def extract_markup_listings(soup: BeautifulSoup, base_url: str) -> List[dict]:
    results: List[dict] = []
    seen_urls: set[str] = set()
    for card in soup.select(MARKUP_CARD_SELECTOR):
        link = card.select_one(MARKUP_LINK_SELECTOR) or card.select_one("a[href]")
        href = link.get("href") if link else None
        if not href:
            continue
        url = to_absolute_url(href, base_url)
        if url in seen_urls:
            continue
        seen_urls.add(url)

        title = _text(card.select_one('h2, h3, [class*="title"]'))
        price = _text(card.select_one('[class*="price"], [data-testid*="price"]'))
        address = _text(card.select_one('address, [class*="address"]'))
        results.append(
            {
                "url": url,
                "title": title or address,
                "price": price,
                "address": address,
                "listingId": extract_listing_id(href),
            }
        )
    return results


def _is_next_text(text: Optional[str]) -> bool:
    text = (text or "").strip().lower()
    label = text.rstrip(NEXT_GLYPHS + " ")
    # a bare chevron counts, a bare ">" does not
    return label in NEXT_TEXTS or (not label and text in ("›", "»"))


def next_page_from_markup(soup: BeautifulSoup, current_url: str) -> Optional[str]:
    link = soup.select_one('link[rel~="next"][href]')
    if link:
        return to_absolute_url(link.get("href"), current_url)

    anchor = (
        soup.select_one('a[rel~="next"][href]')
        or soup.select_one('a[aria-label*="next" i][href]')
        or soup.select_one('a[title*="next" i][href]')
    )
    if anchor:
        return to_absolute_url(anchor.get("href"), current_url)

    for anchor in soup.find_all("a", href=True):
        if _is_next_text(anchor.get_text(" ", strip=True)):
            return to_absolute_url(anchor["href"], current_url)
    return None


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def extract_search_payload(html: str, page_url: str) -> SearchPayload:
    soup = BeautifulSoup(html or "", "html.parser")
    state = extract_embedded_state(soup, html or "")
    next_page = next_page_from_state(state, page_url) or next_page_from_markup(soup, page_url)

    listings = find_listing_array(state) if state else None
    records = [item for item in listings or [] if isinstance(item, dict)]
    if records:
        return SearchPayload(records=records, next_page_url=next_page, tier=TIER_EMBEDDED)

    records = extract_linked_data_listings(soup, page_url)
    if records:
        return SearchPayload(records=records, next_page_url=next_page, tier=TIER_LINKED_DATA)

    return SearchPayload(records=extract_markup_listings(soup, page_url), next_page_url=next_page, tier=TIER_MARKUP)


def extract_detail_record(html: str, page_url: str) -> Optional[dict]:
    soup = BeautifulSoup(html or "", "html.parser")
    state = extract_embedded_state(soup, html or "")
    if state:
        for path in DETAIL_STATE_PATHS:
            candidate = _pick(state, path)
            if isinstance(candidate, dict) and candidate:
                return candidate

    for payload in _iter_linked_data(soup):
        types = _ld_types(payload)
        if not types or types & NON_LISTING_TYPES:
            continue
        if payload.get("url") or payload.get("@id") or payload.get("address"):
            return {**payload, "url": to_absolute_url(payload.get("url") or payload.get("@id"), page_url)}
    return None
