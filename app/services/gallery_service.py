# app/services/gallery_service.py
import logging
from typing import List, Optional

from app.crud import crud_gallery
from app.db.session import SessionLocal
from app.models.gallery import StoredTripPublic, TripCreate

logger = logging.getLogger("app.services.gallery_service")  # Logger for this module

# Gallery persistence is best-effort: failures are logged and never reach the player.

def save_completed_trip(trip: TripCreate) -> Optional[StoredTripPublic]:
    """Called from game-over handling, outside any request, so it opens its own DB session."""
    db = SessionLocal()
    try:
        stored = crud_gallery.save_trip(db, trip)
        logger.info(f"Saved trip {stored.id} to '{stored.location}' with {len(stored.items)} items.")
        return StoredTripPublic.model_validate(stored)
    except Exception as e:
        logger.exception(f"Failed to save trip to '{trip.location}' to the gallery: {e}")
        db.rollback()
        return None
    finally:
        db.close()

def list_trips(db) -> List[StoredTripPublic]:
    try:
        return [StoredTripPublic.model_validate(trip) for trip in crud_gallery.get_trips(db)]
    except Exception as e:
        logger.exception(f"Failed to read trips from the gallery: {e}")
        return []
