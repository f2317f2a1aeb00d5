# app/api/gallery.py
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api import deps
from app.crud import crud_gallery
from app.models.gallery import StoredTripPublic
from app.services import gallery_service

logger = logging.getLogger("app.api.gallery")  # Logger for this module
router = APIRouter()

@router.get("", response_model=List[StoredTripPublic], response_model_by_alias=True)
def list_trips(db: Session = Depends(deps.get_db)):
    """Saved trips, newest first. An unreadable gallery is reported as empty."""
    return gallery_service.list_trips(db)

@router.get("/{trip_id}", response_model=StoredTripPublic, response_model_by_alias=True)
def get_trip(trip_id: str, db: Session = Depends(deps.get_db)):
    trip = crud_gallery.get_trip(db, trip_id)
    if not trip:
        raise HTTPException(status_code=404, detail="Trip not found.")
    return StoredTripPublic.model_validate(trip)

@router.delete("/{trip_id}", status_code=204)
def delete_trip(trip_id: str, db: Session = Depends(deps.get_db)):
    if not crud_gallery.delete_trip(db, trip_id):
        raise HTTPException(status_code=404, detail="Trip not found.")
    logger.info(f"Trip {trip_id} deleted from the gallery.")
