from datetime import datetime
from decimal import Decimal
from math import ceil
from typing import Callable, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from app.core_settings import get_settings
from app.domain.errors import NotFoundError, PersistenceError, ValidationError, InvalidTransitionError
from app.domain.lifecycle import OrderStatus, INITIAL_STATUS, ACCEPTED_STATUS, ensure_transition, ensure_rider_may
from app.domain.models import Order, OrderItem
from app.domain.money import line_total, order_total, to_cents
from app.infrastructure.repository import OrderRepository
from app.realtime.notifier import RealtimeNotifier
from shared.core import get_logger
from .schemas import OrderCreate, OrderRead, DashboardStats, ADDRESS_REQUIRED_FIELDS

logger = get_logger(__name__)


class OrderService:
    """Order lifecycle: creation and every status transition.

    Each mutation runs in one transaction on ``db``; realtime notifications
    go out only after the commit and their failures never reach the caller.
    """

    def __init__(self, db: Session, notifier: Optional[RealtimeNotifier] = None):
        self.db = db
        self.orders = OrderRepository(db)
        self.notifier = notifier
        self.settings = get_settings()

    def _generate_order_number(self, order: Order) -> str:
        """Order number in format ORD-YYYYMMDD-NNNNNN, derived from the row id."""
        return f"{self.settings.ORDER_NUMBER_PREFIX}-{order.created_at:%Y%m%d}-{order.id:06d}"

    # -- queries ------------------------------------------------------------

    def get(self, order_id: int) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def list(self, status: Optional[str] = None, user_id: Optional[int] = None) -> list[Order]:
        return self.orders.list(status=self._parse_status(status).value if status else None, user_id=user_id)

    def list_page(
        self,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
        user_id: Optional[int] = None,
    ) -> tuple[List[Order], dict]:
        status_value = self._parse_status(status).value if status else None
        total = self.orders.count(status_value, user_id=user_id)
        orders = self.orders.list(status=status_value, user_id=user_id, limit=limit, offset=(page - 1) * limit)
        pagination = {"total": total, "page": page, "limit": limit, "pages": ceil(total / limit) if limit else 0}
        return orders, pagination

    def dashboard_stats(self) -> DashboardStats:
        counts = self.orders.count_by_status()
        return DashboardStats(
            total_orders=sum(counts.values()),
            pending_orders=counts[OrderStatus.PENDING_ADMIN_DECISION.value],
            accepted_orders=counts[OrderStatus.ADMIN_ACCEPTED.value],
            preparing_orders=counts[OrderStatus.PREPARING.value],
            out_for_delivery_orders=counts[OrderStatus.OUT_FOR_DELIVERY.value],
            completed_orders=counts[OrderStatus.DELIVERED.value],
            rejected_orders=counts[OrderStatus.REJECTED_BY_ADMIN.value],
            cancelled_orders=counts[OrderStatus.CANCELLED.value],
            total_revenue=self.orders.revenue(OrderStatus.DELIVERED.value),
        )

    # -- create -------------------------------------------------------------

    def _validate_create(self, data: OrderCreate) -> List[Decimal]:
        """Check the payload and return each line total in cents."""
        errors = []
        if not data.items:
            errors.append({"field": "items", "message": "Order must contain at least one item"})
        address = data.delivery_address
        for field in ADDRESS_REQUIRED_FIELDS:
            value = getattr(address, field, None) if address is not None else None
            if not value or not str(value).strip():
                errors.append({"field": f"delivery_address.{field}", "message": "Field is required"})
        if errors:
            raise ValidationError("Invalid order", errors)

        lines = [line_total(item.price, item.quantity) for item in data.items]
        computed = order_total(lines)
        if data.total_amount is not None and to_cents(data.total_amount) != computed:
            raise ValidationError("Invalid order", [{
                "field": "total_amount",
                "message": f"total_amount {data.total_amount} does not match item total {computed}",
            }])
        return lines

    def create(self, data: OrderCreate) -> Order:
        lines = self._validate_create(data)
        now = datetime.utcnow()
        order = Order(
            user_id=data.user_id,
            status=INITIAL_STATUS.value,
            total_amount=float(order_total(lines)),
            delivery_address=data.delivery_address.model_dump(exclude_none=True),
            created_at=now,
            updated_at=now,
        )
        # Stored totals are the same cent values the order total was summed from
        order.items = [
            OrderItem(
                product_id=item.product_id,
                name=item.name,
                quantity=item.quantity,
                price=float(to_cents(item.price)),
                total=float(total),
            )
            for item, total in zip(data.items, lines)
        ]

        try:
            self.orders.add(order)
            order.order_number = self._generate_order_number(order)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Failed to create order for user {data.user_id}: {exc}")
            raise PersistenceError("Failed to create order") from exc

        order = self.orders.get(order.id, refresh=True)
        logger.info(
            f"Order {order.order_number} created",
            extra={'extra_fields': {'order_id': order.id, 'items': len(order.items), 'total': order.total_amount}}
        )
        if self.notifier is not None:
            self._notify(self.notifier.publish_new_order, OrderRead.model_validate(order).model_dump(mode="json"))
        return order

    # -- transitions --------------------------------------------------------

    def accept(self, order_id: int, actor: Optional[str] = None) -> Order:
        return self.transition(order_id, ACCEPTED_STATUS, actor=actor)

    def reject(self, order_id: int, reason: Optional[str], actor: Optional[str] = None) -> Order:
        if not reason or not reason.strip():
            raise ValidationError("Rejection reason is required", [
                {"field": "reason", "message": "Rejection reason is required"}
            ])
        return self.transition(order_id, OrderStatus.REJECTED_BY_ADMIN, reason=reason.strip(), actor=actor)

    def advance(
        self,
        order_id: int,
        status: str,
        reason: Optional[str] = None,
        actor: Optional[str] = None,
        by_rider: bool = False,
    ) -> Order:
        """Move to any status the transition graph allows.

        Riders may only take the delivery steps; admins may take any edge.
        """
        target = self._parse_status(status)
        if by_rider:
            ensure_rider_may(target)
        if target is OrderStatus.REJECTED_BY_ADMIN:
            return self.reject(order_id, reason, actor=actor)
        return self.transition(order_id, target, actor=actor)

    def transition(
        self,
        order_id: int,
        target: OrderStatus,
        reason: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Order:
        current = self.orders.current_status(order_id)
        if current is None:
            self.db.rollback()
            raise NotFoundError(f"Order {order_id} not found")
        try:
            ensure_transition(current, target)
        except InvalidTransitionError:
            self.db.rollback()
            raise

        rejection_reason = reason if target is OrderStatus.REJECTED_BY_ADMIN else None
        try:
            swapped = self.orders.compare_and_set_status(order_id, current, target.value, rejection_reason)
            if not swapped:
                # Another transaction moved the order first
                self.db.rollback()
                latest = self.orders.current_status(order_id)
                self.db.rollback()
                raise InvalidTransitionError(latest or current, target.value)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Failed to move order {order_id} to {target.value}: {exc}")
            raise PersistenceError("Failed to update order status") from exc

        order = self.orders.get(order_id, refresh=True)
        logger.info(
            f"Order {order_id} moved {current} -> {target.value}",
            extra={'extra_fields': {'order_id': order_id, 'from': current, 'to': target.value, 'actor': actor}}
        )
        if self.notifier is not None:
            self._notify(self.notifier.publish_status_update, order.id, order.status, {
                "orderNumber": order.order_number,
                "previousStatus": current,
                "rejectionReason": order.rejection_reason,
                "updatedAt": order.updated_at.isoformat(),
                "updatedBy": actor,
            })
        return order

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _parse_status(status: str) -> OrderStatus:
        try:
            return OrderStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown order status: {status}", [
                {"field": "status", "message": f"Must be one of {', '.join(s.value for s in OrderStatus)}"}
            ])

    @staticmethod
    def _notify(publish: Callable, *args) -> None:
        try:
            publish(*args)
        except Exception:
            logger.error("Realtime notification failed", exc_info=True)
