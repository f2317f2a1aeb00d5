# app/crud/crud_gallery.py
import logging
import time
import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.gallery import TripCreate
from app.schemas.gallery import StoredTrip

logger = logging.getLogger("app.crud.crud_gallery")  # Logger for this module

def get_trips(db: Session) -> List[StoredTrip]:
    """All saved trips, newest first."""
    return db.query(StoredTrip).order_by(StoredTrip.timestamp.desc(), StoredTrip.id.desc()).all()

def get_trip(db: Session, trip_id: str) -> Optional[StoredTrip]:
    return db.query(StoredTrip).filter(StoredTrip.id == trip_id).first()

def save_trip(db: Session, trip_in: TripCreate, max_trips: Optional[int] = None) -> StoredTrip:
    """
    Stores a completed trip and evicts the oldest ones so that at most
    `max_trips` (default GALLERY_MAX_TRIPS) remain.
    """
    limit = max_trips if max_trips is not None else settings.GALLERY_MAX_TRIPS
    now_ms = int(time.time() * 1000)
    db_trip = StoredTrip(
        id=f"trip-{now_ms}-{uuid.uuid4().hex[:6]}",
        timestamp=now_ms,
        location=trip_in.location,
        final_image=trip_in.final_image,
        mime_type=trip_in.mime_type,
        items=list(trip_in.items),
        summary=trip_in.summary,
    )
    db.add(db_trip)
    db.flush()

    # The new trip always survives; keep the (limit - 1) most recent of the others
    overflow = (
        db.query(StoredTrip)
        .filter(StoredTrip.id != db_trip.id)
        .order_by(StoredTrip.timestamp.desc(), StoredTrip.id.desc())
        .offset(max(limit - 1, 0))
        .all()
    )
    for old_trip in overflow:
        logger.info(f"Gallery full ({limit} trips). Evicting oldest trip {old_trip.id}.")
        db.delete(old_trip)

    db.commit()
    db.refresh(db_trip)
    return db_trip

def delete_trip(db: Session, trip_id: str) -> bool:
    db_trip = get_trip(db, trip_id)
    if not db_trip:
        return False
    db.delete(db_trip)
    db.commit()
    return True
