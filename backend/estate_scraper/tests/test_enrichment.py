import json

from estate_scraper.services.enrichment import DetailEnricher
from estate_scraper.services.normalization import merge_detail
from estate_scraper.tests.fakes import FakeFetcher, make_settings, read_fixture

DETAIL_URL = "https://www.zoopla.co.uk/for-sale/details/123/"
API_URL = "https://www.zoopla.co.uk/api/search/bolt-on/123/"
SEARCH_URL = "https://www.zoopla.co.uk/for-sale/property/london/"
LISTING = {"listing_id": "123", "url": DETAIL_URL, "price": "£500,000"}


def test_detail_api_is_tried_first():
    fetcher = FakeFetcher(
        {API_URL: json.dumps({"data": {"detailedDescription": "Bright flat", "tenure": "Freehold"}})}
    )
    enricher = DetailEnricher(fetcher, make_settings())

    detail = enricher.enrich(LISTING, referer=SEARCH_URL)

    assert detail == {
        "listing_id": "123",
        "description": "Bright flat",
        "tenure": "Freehold",
        "url": DETAIL_URL,
    }
    assert fetcher.calls == [(API_URL, "data", SEARCH_URL)]


def test_detail_page_used_when_api_unavailable():
    fetcher = FakeFetcher({DETAIL_URL: read_fixture("zoopla_detail.html")})
    enricher = DetailEnricher(fetcher, make_settings())

    detail = enricher.enrich(LISTING)

    assert detail["description"] == "A bright two bedroom flat close to the park."
    assert detail["tenure"] == "Leasehold"
    assert detail["council_tax_band"] == "D"
    assert detail["epc_rating"] == "C"
    assert detail["bedrooms"] == 2
    assert detail["bathrooms"] == 1
    assert detail["receptions"] == 1
    assert detail["floorplan"] == "https://lc.zoocdn.com/123-floorplan.png"
    assert detail["images"] == ["https://lid.zoocdn.com/123-9.jpg"]
    assert detail["features"] == ["Balcony"]
    assert detail["coordinates"] == {"latitude": 51.49, "longitude": -0.14}
    assert [call[1] for call in fetcher.calls] == ["data", "document"]


def test_unusable_api_payload_falls_through_to_page():
    fetcher = FakeFetcher(
        {
            API_URL: json.dumps({"data": []}),
            DETAIL_URL: read_fixture("zoopla_detail.html"),
        }
    )

    detail = DetailEnricher(fetcher, make_settings()).enrich(LISTING)

    assert detail["tenure"] == "Leasehold"


def test_invalid_api_json_falls_through_to_page():
    fetcher = FakeFetcher({API_URL: "<html>not json</html>", DETAIL_URL: read_fixture("zoopla_detail.html")})

    detail = DetailEnricher(fetcher, make_settings()).enrich(LISTING)

    assert detail["epc_rating"] == "C"


def test_linked_data_detail_page():
    url = "https://www.zoopla.co.uk/for-sale/details/555/"
    fetcher = FakeFetcher({url: read_fixture("zoopla_detail_jsonld.html")})

    detail = DetailEnricher(fetcher, make_settings()).enrich({"url": url})

    assert detail["listing_id"] == "555"
    assert detail["address"] == "12 Mill Lane, London, N1 1AA"
    assert detail["description"] == "Period terrace with a south-facing garden."
    assert detail["coordinates"] == {"latitude": 51.54, "longitude": -0.1}
    assert fetcher.fetched_urls("data") == []


def test_enrich_gives_up_after_configured_attempts(sleeps, fake_sleep):
    fetcher = FakeFetcher({})
    enricher = DetailEnricher(fetcher, make_settings(detail_retry_delay_seconds=0.4), sleep=fake_sleep)

    assert enricher.enrich(LISTING) is None
    assert fetcher.calls == [
        (API_URL, "data", None),
        (DETAIL_URL, "document", None),
        (API_URL, "data", None),
        (DETAIL_URL, "document", None),
    ]
    assert sleeps == [0.4]


def test_enrich_without_identifier_or_url_does_nothing():
    fetcher = FakeFetcher({})

    assert DetailEnricher(fetcher, make_settings(detail_attempts=1)).enrich({"title": "x"}) is None
    assert fetcher.calls == []


def test_site_metadata_never_reaches_the_listing():
    url = "https://www.zoopla.co.uk/for-sale/details/555/"
    page = """
    <script type="application/ld+json">
    {"@type": "Organization", "url": "https://www.zoopla.co.uk/",
     "description": "Search homes for sale and to rent across the UK",
     "image": "https://www.zoopla.co.uk/logo.png"}
    </script>
    <script type="application/ld+json">
    {"@type": "Residence", "url": "/for-sale/details/555/", "description": "Period terrace"}
    </script>
    """
    fetcher = FakeFetcher({url: page})
    base = {"url": url, "listing_id": "555"}

    merge_detail(base, DetailEnricher(fetcher, make_settings()).enrich({"url": url}))

    assert base["description"] == "Period terrace"
    assert "images" not in base
