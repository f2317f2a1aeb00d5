# app/schemas/gallery.py
from sqlalchemy import Column, String, Text, BigInteger, JSON

from app.db.base_class import Base

class StoredTrip(Base):
    __tablename__ = "stored_trips" # Explicitly set table name

    id = Column(String, primary_key=True, index=True) # "trip-<epoch ms>-<suffix>"
    timestamp = Column(BigInteger, nullable=False, index=True) # Epoch milliseconds, newest first on read
    location = Column(String, nullable=False) # The destination / base prompt of the trip
    final_image = Column(Text, nullable=False) # base64 image data
    mime_type = Column(String, nullable=False)
    items = Column(JSON, nullable=False, default=list) # Item texts in the order they were added
    summary = Column(Text, nullable=False)
