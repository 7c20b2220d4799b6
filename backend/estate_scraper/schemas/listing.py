from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict


class Coordinates(BaseModel):
    latitude: float
    longitude: float


class ListingRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    listing_id: Optional[str] = None
    title: Optional[str] = None
    address: Optional[str] = None
    price: Optional[str] = None
    price_value: Optional[float] = None
    property_type: Optional[str] = None
    bedrooms: Optional[Union[int, str]] = None
    bathrooms: Optional[Union[int, str]] = None
    receptions: Optional[Union[int, str]] = None
    description: Optional[str] = None
    agent: Optional[str] = None
    agent_phone: Optional[str] = None
    tenure: Optional[str] = None
    council_tax_band: Optional[str] = None
    epc_rating: Optional[str] = None
    images: List[str] = []
    features: List[str] = []
    floorplan: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    url: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None


class RunAccepted(BaseModel):
    enqueued: bool
    job_id: str


class RunStatus(BaseModel):
    job_id: str
    status: str
    result: Optional[dict] = None
