from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from estate_scraper.core.errors import ConfigurationError

ListingType = Literal["for-sale", "to-rent", "new-homes"]

DEFAULT_RESULTS_WANTED = 100
DEFAULT_MAX_PAGES = 20


class _InputModel(BaseModel):
    # Accept both snake_case and the camelCase keys used by existing run inputs.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ProxyConfig(_InputModel):
    urls: List[str] = Field(default_factory=list, alias="proxyUrls")
    rotate_per_request: bool = False


class StartUrl(_InputModel):
    url: str


class RunConfig(_InputModel):
    location: Optional[str] = None
    listing_type: ListingType = "for-sale"
    property_type: str = "property"
    min_beds: Optional[int] = None
    max_beds: Optional[int] = None
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    radius: Optional[float] = None
    include_details: bool = True
    results_wanted: int = DEFAULT_RESULTS_WANTED
    max_pages: int = DEFAULT_MAX_PAGES
    start_url: Optional[str] = None
    start_urls: List[Union[str, StartUrl]] = Field(default_factory=list)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig, alias="proxyConfiguration")

    @field_validator("location", "start_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @field_validator("start_urls", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        if value is None:
            return []
        return [value] if isinstance(value, (str, dict)) else value

    @field_validator("listing_type", "property_type", mode="before")
    @classmethod
    def _lower(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("results_wanted", mode="before")
    @classmethod
    def _clamp_results(cls, value):
        return _at_least_one(value, DEFAULT_RESULTS_WANTED)

    @field_validator("max_pages", mode="before")
    @classmethod
    def _clamp_pages(cls, value):
        return _at_least_one(value, DEFAULT_MAX_PAGES)

    @model_validator(mode="after")
    def _require_seed(self) -> "RunConfig":
        if not self.location and not self.explicit_start_urls():
            raise ValueError("Provide either location or start_url/start_urls.")
        return self

    def explicit_start_urls(self) -> List[str]:
        urls: List[str] = []
        if self.start_url:
            urls.append(self.start_url)
        for entry in self.start_urls:
            url = entry.url if isinstance(entry, StartUrl) else entry
            if url and url.strip():
                urls.append(url.strip())
        return urls


def _at_least_one(value, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return max(1, int(float(value)))
    except (TypeError, ValueError):
        return default


def parse_run_config(payload) -> RunConfig:
    if isinstance(payload, RunConfig):
        return payload
    try:
        return RunConfig.model_validate(payload or {})
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc
