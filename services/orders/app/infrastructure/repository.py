from datetime import datetime
from typing import Optional
from sqlalchemy import select, update, func
from sqlalchemy.orm import Session, selectinload
from app.domain.models import Order
from app.domain.lifecycle import OrderStatus


class OrderRepository:
    """Data access for orders and their items.

    The repository never commits; the caller owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def add(self, order: Order) -> Order:
        self.db.add(order)
        self.db.flush()  # assign ids
        return order

    def get(self, order_id: int, refresh: bool = False) -> Optional[Order]:
        stmt = select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return self.db.scalars(stmt).first()

    def current_status(self, order_id: int) -> Optional[str]:
        return self.db.scalar(select(Order.status).where(Order.id == order_id))

    @staticmethod
    def _filtered(stmt, status: Optional[str], user_id: Optional[int]):
        if status:
            stmt = stmt.where(Order.status == status)
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)
        return stmt

    def list(
        self,
        status: Optional[str] = None,
        user_id: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Order]:
        stmt = select(Order).options(selectinload(Order.items)).order_by(Order.created_at.desc(), Order.id.desc())
        stmt = self._filtered(stmt, status, user_id)
        if limit is not None:
            stmt = stmt.limit(limit).offset(offset)
        return list(self.db.scalars(stmt))

    def count(self, status: Optional[str] = None, user_id: Optional[int] = None) -> int:
        stmt = self._filtered(select(func.count(Order.id)), status, user_id)
        return self.db.scalar(stmt) or 0

    def compare_and_set_status(
        self,
        order_id: int,
        expected: str,
        new: str,
        rejection_reason: Optional[str] = None,
    ) -> bool:
        """Move ``order_id`` from ``expected`` to ``new``; False if the row was not in ``expected``."""
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == expected)
            .values(status=new, rejection_reason=rejection_reason, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def count_by_status(self) -> dict[str, int]:
        rows = self.db.execute(select(Order.status, func.count(Order.id)).group_by(Order.status))
        counts = {status.value: 0 for status in OrderStatus}
        counts.update({status: count for status, count in rows})
        return counts

    def revenue(self, status: str) -> float:
        """Sum of order totals in ``status``."""
        stmt = select(func.coalesce(func.sum(Order.total_amount), 0)).where(Order.status == status)
        return float(self.db.scalar(stmt) or 0)
