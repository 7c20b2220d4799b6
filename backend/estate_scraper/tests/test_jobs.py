import json
import logging

import pytest

from estate_scraper.connectors.transports import HttpxTransport
from estate_scraper.core.errors import ConfigurationError
from estate_scraper.schemas.run import parse_run_config
from estate_scraper.workers import jobs
from estate_scraper.tests.fakes import FakeFetcher, make_settings, read_fixture

PAGE_1 = "https://www.zoopla.co.uk/for-sale/property/london/?q=london"


class FakeJob:
    def __init__(self, job_id: str) -> None:
        self.id = job_id


class FakeQueue:
    def __init__(self) -> None:
        self.enqueued = []

    def enqueue(self, func, *args, **kwargs):
        self.enqueued.append((func, args, kwargs))
        return FakeJob("job-1")


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    settings = make_settings()
    monkeypatch.setattr(jobs, "get_settings", lambda: settings)
    return settings


def test_run_scrape_writes_records_and_reports_counters(tmp_path):
    output = tmp_path / "listings.jsonl"
    fetcher = FakeFetcher({PAGE_1: read_fixture("zoopla_search_embedded.html")})

    result = jobs.run_scrape(
        {"startUrl": PAGE_1, "includeDetails": False, "maxPages": 1},
        output_path=str(output),
        database_url=f"sqlite:///{tmp_path / 'listings.db'}",
        run_id="run-1",
        fetcher=fetcher,
    )

    lines = [json.loads(line) for line in output.read_text(encoding="utf-8").splitlines()]
    assert [line["listing_id"] for line in lines] == ["123", "124"]
    assert result["run_id"] == "run-1"
    assert result["saved"] == 2
    assert result["pages"] == 1
    assert result["embedded"] == 1
    assert result["rotations"] == 0
    assert fetcher.closed


def test_run_scrape_rejects_invalid_input_before_fetching(tmp_path):
    fetcher = FakeFetcher({})

    with pytest.raises(ConfigurationError):
        jobs.run_scrape({"resultsWanted": 5}, output_path=str(tmp_path / "x.jsonl"), fetcher=fetcher)

    assert fetcher.calls == []
    assert not (tmp_path / "x.jsonl").exists()


def test_run_scrape_enriches_when_details_requested(tmp_path):
    pages = {
        PAGE_1: read_fixture("zoopla_search_embedded.html"),
        "https://www.zoopla.co.uk/for-sale/details/123/": read_fixture("zoopla_detail.html"),
    }
    fetcher = FakeFetcher(pages)

    result = jobs.run_scrape(
        {"startUrl": PAGE_1, "maxPages": 1, "resultsWanted": 1},
        output_path=str(tmp_path / "listings.jsonl"),
        run_id="run-2",
        fetcher=fetcher,
    )

    assert result["detail_enhanced"] == 1
    assert fetcher.fetched_urls("data") == ["https://www.zoopla.co.uk/api/search/bolt-on/123/"]


def test_enqueue_scrape_serializes_config():
    queue = FakeQueue()

    job = jobs.enqueue_scrape({"location": "London", "resultsWanted": 5}, queue=queue)

    assert job.id == "job-1"
    func, args, kwargs = queue.enqueued[0]
    assert func is jobs.run_scrape
    assert args[0]["location"] == "London"
    assert args[0]["results_wanted"] == 5
    assert kwargs["job_timeout"] == jobs.JOB_TIMEOUT_SECONDS
    assert parse_run_config(args[0]).results_wanted == 5


def test_enqueue_scrape_rejects_invalid_input():
    queue = FakeQueue()

    with pytest.raises(ConfigurationError):
        jobs.enqueue_scrape({}, queue=queue)

    assert queue.enqueued == []


def test_build_fetcher_warns_without_proxy(caplog, test_settings):
    config = parse_run_config({"location": "London"})

    with caplog.at_level(logging.WARNING):
        fetcher = jobs.build_fetcher(config, test_settings)

    assert "No proxy configured" in caplog.text
    assert isinstance(fetcher.document_transport, HttpxTransport)
    assert fetcher.data_transport is fetcher.document_transport
    fetcher.close()
