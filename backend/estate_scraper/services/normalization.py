import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

SITE_URL = "https://www.zoopla.co.uk"
LISTING_ID_PATTERN = re.compile(r"details/(\d+)")
NUMBER_PATTERN = re.compile(r"\d+(?:\.\d+)?")

# Ordered raw key paths per canonical field; the first non-empty value wins.
# Upstream payloads drift over time, so new spellings are added here.
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "url": ("url", "listingUrl", "permalink", "listingUris.detail", "detailUrl"),
    "listing_id": ("listingId", "listing_id", "id"),
    "listing_id_fallback": ("propertyId", "slug"),
    "address": ("displayAddress", "address", "location", "streetAddress", "name"),
    "title": ("title", "name", "heading"),
    "price": (
        "price",
        "priceText",
        "formattedPrice",
        "displayPrice",
        "amount",
        "offers.price",
        "pricing.label",
        "pricing.value",
    ),
    "property_type": ("propertyType", "property_type", "type"),
    "bedrooms": ("numBedrooms", "bedrooms", "numberOfBedrooms", "beds", "counts.numBedrooms"),
    "bathrooms": ("numBathrooms", "bathrooms", "numberOfBathrooms", "baths", "counts.numBathrooms"),
    "receptions": ("numReceptions", "receptions", "numberOfReceptions", "counts.numLivingRooms"),
    "description": ("summaryDescription", "description", "detailedDescription"),
    "agent": ("branch.name", "agentName", "seller.name", "agent.name"),
    "agent_phone": ("branch.telephone", "phoneNumber", "telephone", "agent.telephone"),
    "tenure": ("tenure", "tenureType", "tenure.label"),
    "council_tax_band": ("councilTaxBand", "council_tax_band", "councilTax.band"),
    "epc_rating": ("epcRating", "epc_rating", "epc.rating", "energyRating"),
    "floorplan": ("floorplan", "floorPlan", "floorplans", "floorPlans"),
    "images": ("image", "images", "propertyImages", "photos"),
    "features": ("features", "keyFeatures", "bullets", "amenities"),
    "coordinates": ("coordinates", "location.coordinates", "geo", "pin", "location"),
}

# Detail-only fields copied into a search result only when it has no value.
ENRICHABLE_FIELDS = (
    "description",
    "tenure",
    "council_tax_band",
    "epc_rating",
    "bathrooms",
    "bedrooms",
    "receptions",
    "images",
    "features",
    "floorplan",
    "coordinates",
)

COUNT_FIELDS = ("bedrooms", "bathrooms", "receptions")
TEXT_FIELDS = (
    "title",
    "property_type",
    "description",
    "agent",
    "agent_phone",
    "tenure",
    "council_tax_band",
    "epc_rating",
)


def extract_listing_id(url: Optional[str]) -> Optional[str]:
    if not url or not isinstance(url, str):
        return None
    match = LISTING_ID_PATTERN.search(url)
    return match.group(1) if match else None


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def strip_empty(record: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in record.items() if not is_empty(value)}


def _lookup(raw: Mapping[str, Any], path: str) -> Any:
    node: Any = raw
    for key in path.split("."):
        # schema.org allows a list wherever a single object is expected
        if isinstance(node, list) and node:
            node = node[0]
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def first_value(raw: Mapping[str, Any], aliases: Sequence[str], reader=None) -> Any:
    for path in aliases:
        value = _lookup(raw, path)
        if reader is not None:
            value = reader(value)
        if not is_empty(value) and value is not False:
            return value
    return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, Mapping):
        value = value.get("label") or value.get("name") or value.get("value") or value.get("text")
    if isinstance(value, (list, tuple)):
        return None
    text = str(value).strip() if value is not None else ""
    return text or None


def _as_count(value: Any) -> Any:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        match = NUMBER_PATTERN.search(value)
        return int(float(match.group(0))) if match else value.strip()
    return None


def parse_price_value(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None
    match = NUMBER_PATTERN.search(value.replace(",", ""))
    if not match:
        return None
    return float(match.group(0))


def _format_address(value: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        parts = [
            value.get("streetAddress"),
            value.get("addressLocality"),
            value.get("addressRegion"),
            value.get("postalCode"),
        ]
        text = ", ".join(str(part).strip() for part in parts if not is_empty(part))
        return text or None
    return _as_text(value)


def _media_url(item: Any) -> Optional[str]:
    if isinstance(item, str):
        return item.strip() or None
    if isinstance(item, Mapping):
        for key in ("url", "src", "contentUrl", "filename", "original"):
            value = item.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def _collect(raw: Mapping[str, Any], aliases: Iterable[str], item_reader) -> List[Any]:
    """Accumulate items from every alias, keeping the first occurrence of each."""
    collected: List[Any] = []
    for path in aliases:
        value = _lookup(raw, path)
        if value is None:
            continue
        items = value if isinstance(value, (list, tuple)) else [value]
        for item in items:
            read = item_reader(item)
            if read is not None and read not in collected:
                collected.append(read)
    return collected


def _feature_text(item: Any) -> Optional[str]:
    if isinstance(item, Mapping):
        item = item.get("content") or item.get("text") or item.get("name") or item.get("label")
    return _as_text(item)


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _coordinates(raw: Mapping[str, Any]) -> Optional[Dict[str, float]]:
    for path in FIELD_ALIASES["coordinates"]:
        value = _lookup(raw, path)
        if not isinstance(value, Mapping):
            continue
        latitude = _as_float(value.get("latitude", value.get("lat")))
        longitude = _as_float(value.get("longitude", value.get("lng", value.get("lon"))))
        if latitude is not None and longitude is not None:
            return {"latitude": latitude, "longitude": longitude}
    return None


def _resolve_url(raw: Mapping[str, Any], fallback_url: Optional[str]) -> Optional[str]:
    for path in FIELD_ALIASES["url"]:
        value = _lookup(raw, path)
        if isinstance(value, str) and value.strip():
            value = value.strip()
            return f"{SITE_URL}{value}" if value.startswith("/") else value
    return fallback_url or None


def _resolve_listing_id(raw: Mapping[str, Any], url: Optional[str]) -> Optional[str]:
    value = first_value(raw, FIELD_ALIASES["listing_id"])
    if value is None:
        value = extract_listing_id(url)
    if value is None:
        value = first_value(raw, FIELD_ALIASES["listing_id_fallback"])
    if value is None or isinstance(value, (Mapping, list)):
        return None
    return str(value).strip() or None


def build_listing(
    raw: Mapping[str, Any],
    category: Optional[str] = None,
    location: Optional[str] = None,
    fallback_url: Optional[str] = None,
) -> Dict[str, Any]:
    """Map a raw record onto canonical field names and strip empty values."""
    url = _resolve_url(raw, fallback_url)
    address = first_value(raw, FIELD_ALIASES["address"], _format_address)
    price_raw = first_value(raw, FIELD_ALIASES["price"])
    floorplans = _collect(raw, FIELD_ALIASES["floorplan"], _media_url)

    record: Dict[str, Any] = {
        "listing_id": _resolve_listing_id(raw, url),
        "title": first_value(raw, FIELD_ALIASES["title"], _as_text) or address,
        "address": address,
        "price": _as_text(price_raw),
        "price_value": parse_price_value(price_raw if not isinstance(price_raw, Mapping) else _as_text(price_raw)),
    }
    for name in TEXT_FIELDS:
        if name not in record:
            record[name] = first_value(raw, FIELD_ALIASES[name], _as_text)
    for name in COUNT_FIELDS:
        record[name] = _as_count(first_value(raw, FIELD_ALIASES[name]))
    record.update(
        {
            "images": _collect(raw, FIELD_ALIASES["images"], _media_url),
            "features": _collect(raw, FIELD_ALIASES["features"], _feature_text),
            "floorplan": floorplans[0] if floorplans else None,
            "coordinates": _coordinates(raw),
            "url": url,
            "category": category,
            "location": location,
        }
    )
    return strip_empty(record)


def normalize_listing(
    raw: Mapping[str, Any],
    category: Optional[str],
    location: Optional[str],
    fallback_url: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Return the canonical listing for ``raw`` or ``None`` when it cannot be keyed."""
    listing = build_listing(raw, category, location, fallback_url)
    if not listing.get("listing_id") and not listing.get("url"):
        logger.debug("Dropping record without identifier or url: keys=%s", sorted(raw)[:10])
        return None
    return listing


def dedup_key(listing: Mapping[str, Any]) -> Optional[str]:
    return listing.get("listing_id") or listing.get("url")


def merge_detail(base: MutableMapping[str, Any], detail: Optional[Mapping[str, Any]]) -> MutableMapping[str, Any]:
    """Fill enrichable fields of ``base`` from ``detail``; existing values are never replaced."""
    if not detail:
        return base
    for name in ENRICHABLE_FIELDS:
        if is_empty(base.get(name)) and not is_empty(detail.get(name)):
            base[name] = detail[name]
    return base
