import logging
import uuid
from typing import Any, Mapping, Optional

import httpx
from redis import Redis
from rq import Queue, get_current_job
from rq.job import Job

from estate_scraper.connectors.fetcher import Fetcher
from estate_scraper.connectors.proxy import ProxyPool
from estate_scraper.connectors.session import create_session
from estate_scraper.connectors.transports import build_transports
from estate_scraper.connectors.zoopla import ZooplaConnector
from estate_scraper.core.config import Settings, get_settings
from estate_scraper.db.session import make_session_factory
from estate_scraper.schemas.run import RunConfig, parse_run_config
from estate_scraper.services.enrichment import DetailEnricher
from estate_scraper.services.sinks import build_sinks

logger = logging.getLogger(__name__)

QUEUE_NAME = "scraping"
JOB_TIMEOUT_SECONDS = 6 * 60 * 60


def build_fetcher(config: RunConfig, settings: Settings, client: Optional[httpx.Client] = None) -> Fetcher:
    document_transport, data_transport = build_transports(settings, client)
    proxies = ProxyPool(config.proxy.urls, rotate_per_request=config.proxy.rotate_per_request)
    if not proxies:
        logger.warning("No proxy configured; the site blocks datacenter IPs, a residential proxy is recommended")
    return Fetcher(create_session(), document_transport, data_transport, proxies=proxies, settings=settings)


def _current_run_id() -> str:
    job = get_current_job()
    return job.id if job is not None else uuid.uuid4().hex


def run_scrape(
    payload: Mapping[str, Any] | RunConfig,
    output_path: Optional[str] = None,
    database_url: Optional[str] = None,
    run_id: Optional[str] = None,
    fetcher: Optional[Fetcher] = None,
) -> dict:
    settings = get_settings()
    config = parse_run_config(payload)
    run_id = run_id or _current_run_id()
    session_factory = make_session_factory(database_url) if database_url else None
    sinks = build_sinks(run_id, output_path if output_path is not None else settings.output_path, session_factory)

    with fetcher or build_fetcher(config, settings) as active_fetcher:
        enricher = DetailEnricher(active_fetcher, settings) if config.include_details else None
        connector = ZooplaConnector(config, active_fetcher, enricher, settings)
        try:
            for record in connector.fetch_listings():
                for sink in sinks:
                    sink.write(record)
        finally:
            for sink in sinks:
                sink.close()

    result = {"run_id": run_id, "rotations": active_fetcher.rotations, **connector.stats.as_dict()}
    logger.info("Scrape run %s finished: %s", run_id, result)
    return result


def enqueue_scrape(payload: Mapping[str, Any] | RunConfig, queue: Optional[Queue] = None) -> Job:
    config = parse_run_config(payload)
    if queue is None:
        queue = Queue(QUEUE_NAME, connection=Redis.from_url(get_settings().redis_url))
    job = queue.enqueue(run_scrape, config.model_dump(mode="json"), job_timeout=JOB_TIMEOUT_SECONDS)
    logger.info("Enqueued scrape run %s for location=%s", job.id, config.location)
    return job
