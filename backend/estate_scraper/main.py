from fastapi import FastAPI

from estate_scraper.api import health, runs
from estate_scraper.core.config import get_settings
from estate_scraper.core.logging_config import setup_logging

setup_logging()
settings = get_settings()
app = FastAPI(title=settings.app_name, version="0.1.0")

app.include_router(health.router)
app.include_router(runs.router)
