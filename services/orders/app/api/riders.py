from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.api.deps import require_admin, require_rider
from app.application.rider_service import RiderService
from app.application.schemas import RiderCreate, RiderProfileUpdate, RiderRead
from app.infrastructure.db import get_db

router = APIRouter(prefix="/api/riders", tags=["riders"])

@router.get("", response_model=list[RiderRead], dependencies=[Depends(require_admin)])
def list_riders(db: Session = Depends(get_db)):
    return RiderService(db).list()

@router.post("", response_model=RiderRead, status_code=201, dependencies=[Depends(require_admin)])
def create_rider(payload: RiderCreate, db: Session = Depends(get_db)):
    return RiderService(db).create(payload)

@router.get("/profile", response_model=RiderRead)
def get_profile(rider_id: int = Depends(require_rider), db: Session = Depends(get_db)):
    return RiderService(db).get(rider_id)

@router.put("/profile", response_model=RiderRead)
def update_profile(
    payload: RiderProfileUpdate,
    rider_id: int = Depends(require_rider),
    db: Session = Depends(get_db),
):
    return RiderService(db).update_profile(rider_id, payload)
