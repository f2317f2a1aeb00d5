# app/models/gallery.py
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import List

class TripCreate(BaseModel):
    location: str
    final_image: str
    mime_type: str
    items: List[str]
    summary: str

class StoredTripPublic(TripCreate):
    id: str
    timestamp: int # Epoch milliseconds

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)
