import datetime as dt

from sqlalchemy import JSON, Column, DateTime, Float, Integer, String

from estate_scraper.db.base import Base


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class ScrapedListing(Base):
    __tablename__ = "scraped_listings"

    id = Column(Integer, primary_key=True)
    run_id = Column(String, nullable=False, index=True)
    listing_id = Column(String, index=True)
    url = Column(String)
    category = Column(String)
    location = Column(String)
    price_value = Column(Float)
    payload = Column(JSON, nullable=False)
    scraped_at = Column(DateTime, default=_utcnow, nullable=False)
