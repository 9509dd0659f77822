from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.domain.errors import NotFoundError, ValidationError
from app.domain.models import Rider
from shared.core import get_logger
from .schemas import RiderCreate, RiderProfileUpdate

logger = get_logger(__name__)


class RiderService:
    """Rider records and the self-service profile.

    Credentials are issued elsewhere; a rider token names its row through
    the ``rider_id`` claim.
    """

    def __init__(self, db: Session):
        self.db = db

    def list(self):
        return list(self.db.scalars(select(Rider).order_by(Rider.name)))

    def get(self, rider_id: int) -> Rider:
        rider = self.db.get(Rider, rider_id)
        if not rider:
            raise NotFoundError("Rider not found")
        return rider

    def create(self, data: RiderCreate) -> Rider:
        rider = Rider(**data.model_dump())
        self.db.add(rider)
        self._commit_unique()
        self.db.refresh(rider)
        logger.info(f"Rider {rider.id} registered", extra={'extra_fields': {'rider_id': rider.id}})
        return rider

    def update_profile(self, rider_id: int, data: RiderProfileUpdate) -> Rider:
        rider = self.get(rider_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            return rider
        for field, value in changes.items():
            setattr(rider, field, value)
        self._commit_unique()
        self.db.refresh(rider)
        logger.info(f"Rider {rider_id} updated profile", extra={'extra_fields': {'fields': sorted(changes)}})
        return rider

    def _commit_unique(self) -> None:
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValidationError("Invalid rider", [
                {"field": "email", "message": "Email or phone is already registered"}
            ])
