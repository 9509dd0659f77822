from typing import Optional
from fastapi import APIRouter, Depends, Query
from app.api.deps import get_order_service, require_admin, require_staff
from app.auth_local import is_admin
from app.application.service import OrderService
from app.application.schemas import (
    OrderCreate, OrderRead, OrderPage, OrderReject, OrderStatusUpdate, DashboardStats,
)

router = APIRouter(prefix="/api/orders", tags=["orders"])

@router.get("", response_model=OrderPage)
def list_orders(
    status: Optional[str] = None,
    user_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: OrderService = Depends(get_order_service),
):
    """List orders newest first, optionally filtered by status."""
    orders, pagination = service.list_page(status=status, page=page, limit=limit, user_id=user_id)
    return {"data": orders, "pagination": pagination}

@router.get("/user/{user_id}", response_model=OrderPage)
def list_user_orders(
    user_id: int,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: OrderService = Depends(get_order_service),
):
    """One customer's order history, newest first."""
    orders, pagination = service.list_page(status=status, page=page, limit=limit, user_id=user_id)
    return {"data": orders, "pagination": pagination}

@router.get("/stats/dashboard", response_model=DashboardStats)
def dashboard_stats(service: OrderService = Depends(get_order_service)):
    return service.dashboard_stats()

@router.get("/{order_id}", response_model=OrderRead)
def get_order(order_id: int, service: OrderService = Depends(get_order_service)):
    return service.get(order_id)

@router.post("", response_model=OrderRead, status_code=201)
def create_order(payload: OrderCreate, service: OrderService = Depends(get_order_service)):
    return service.create(payload)

@router.post("/{order_id}/accept", response_model=OrderRead)
def accept_order(
    order_id: int,
    admin: dict = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    return service.accept(order_id, actor=admin.get("sub"))

@router.post("/{order_id}/reject", response_model=OrderRead)
def reject_order(
    order_id: int,
    payload: OrderReject,
    admin: dict = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    return service.reject(order_id, payload.reason, actor=admin.get("sub"))

@router.put("/{order_id}/status", response_model=OrderRead)
def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    staff: dict = Depends(require_staff),
    service: OrderService = Depends(get_order_service),
):
    return service.advance(
        order_id,
        payload.status,
        reason=payload.rejection_reason,
        actor=staff.get("sub"),
        by_rider=not is_admin(staff),
    )
