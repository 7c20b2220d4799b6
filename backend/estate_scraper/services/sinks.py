import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.orm import sessionmaker

from estate_scraper.models.listing import ScrapedListing
from estate_scraper.schemas.listing import ListingRecord

from .normalization import strip_empty

logger = logging.getLogger(__name__)


class ListingSink(ABC):
    """Append-only destination for finished listings."""

    def __enter__(self) -> "ListingSink":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _prepare(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        return strip_empty(ListingRecord.model_validate(record).model_dump(mode="json"))

    @abstractmethod
    def write(self, record: Mapping[str, Any]) -> None:  # pragma: no cover - interface
        """Durably store one record."""

    def close(self) -> None:
        pass


class JsonLinesSink(ListingSink):
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._handle = None
        self.written = 0

    def write(self, record: Mapping[str, Any]) -> None:
        if self._handle is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self.path.open("a", encoding="utf-8")
        self._handle.write(json.dumps(self._prepare(record), ensure_ascii=False) + "\n")
        self._handle.flush()
        self.written += 1

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
        logger.info("Wrote %s listings to %s", self.written, self.path)


class DatabaseSink(ListingSink):
    def __init__(self, session_factory: sessionmaker, run_id: str) -> None:
        self.session_factory = session_factory
        self.run_id = run_id
        self.written = 0

    def write(self, record: Mapping[str, Any]) -> None:
        data = self._prepare(record)
        with self.session_factory() as db:
            db.add(
                ScrapedListing(
                    run_id=self.run_id,
                    listing_id=data.get("listing_id"),
                    url=data.get("url"),
                    category=data.get("category"),
                    location=data.get("location"),
                    price_value=data.get("price_value"),
                    payload=data,
                )
            )
            db.commit()
        self.written += 1


def build_sinks(
    run_id: str, output_path: Optional[str] = None, session_factory: Optional[sessionmaker] = None
) -> list[ListingSink]:
    sinks: list[ListingSink] = []
    if output_path:
        sinks.append(JsonLinesSink(output_path))
    if session_factory is not None:
        sinks.append(DatabaseSink(session_factory, run_id))
    return sinks
